"""
Storage Module

Persisted bridge state.
"""

from chartbridge.storage.preferences import (
    DuckDBPreferenceStore,
    InMemoryPreferenceStore,
    PreferenceStore,
)

__all__ = [
    "DuckDBPreferenceStore",
    "InMemoryPreferenceStore",
    "PreferenceStore",
]
