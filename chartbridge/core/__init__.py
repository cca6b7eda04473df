"""
Core application plumbing.
"""

from chartbridge.core.config import Settings, settings

__all__ = ["Settings", "settings"]
