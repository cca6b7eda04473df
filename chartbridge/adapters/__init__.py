"""
Data engine ports.

Usage:
    from chartbridge.adapters import InMemoryEngine

    engine = InMemoryEngine()
"""

from chartbridge.adapters.base import (
    DataEnginePort,
    DataResponse,
    EngineError,
    EngineInitError,
    EngineQueryError,
    is_empty_response,
)
from chartbridge.adapters.memory_adapter import InMemoryEngine

__all__ = [
    "DataEnginePort",
    "DataResponse",
    "EngineError",
    "EngineInitError",
    "EngineQueryError",
    "InMemoryEngine",
    "is_empty_response",
]
