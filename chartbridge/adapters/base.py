"""
Data Engine Port for ChartBridge

The native engine that stores, indexes and downsamples series rows lives
outside this package. Every engine binding implements this interface so the
bridge can treat it as a swappable dependency.

DESIGN PRINCIPLES:
-----------------
1. init() receives both configuration blobs in their wire shape, verbatim
2. query() receives the query JSON shape and returns an opaque mapping
3. insert() receives {"startDate", "endDate", "points": [...]}
4. Failures are raised as EngineError, never returned as sentinel values
5. Ports must tolerate concurrent query() calls; the bridge adds no locking
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)


DataResponse = Dict[str, Any]


class EngineError(Exception):
    """Base exception for engine port errors."""

    def __init__(self, message: str, engine: str, original_error: Optional[Exception] = None):
        super().__init__(message)
        self.engine = engine
        self.original_error = original_error


class EngineInitError(EngineError):
    """Engine refused the configuration or storage location."""
    pass


class EngineQueryError(EngineError):
    """Query or insert failed inside the engine."""
    pass


class DataEnginePort(ABC):
    """
    Abstract base class for data engine bindings.

    Each binding must implement:
    - init(): Create or open the store
    - query(): Return data for a time window
    - insert(): Add data points

    Usage:
        engine = InMemoryEngine()
        engine.init(cache_setup, data_schema, "/path/to/store.db", False)

        response = engine.query({
            "startDate": "2020-01-01",
            "endDate": "2020-01-31",
            "numOfPoints": 40
        })
    """

    # Engine identifier (e.g., "memory", "graphfilter")
    ENGINE: str = "base"

    def __init__(self):
        self._initialized = False

    @abstractmethod
    def init(
        self,
        cache_setup: Dict[str, Any],
        data_schema: Dict[str, Any],
        storage_location: str,
        reset: bool,
    ) -> None:
        """
        Create or open the backing store.

        Args:
            cache_setup: Cache configuration JSON shape
            data_schema: Data schema JSON shape
            storage_location: Path of the engine's store
            reset: Delete all existing data first

        Raises:
            EngineInitError: If the engine cannot be initialized
        """
        pass

    @abstractmethod
    def query(self, params: Dict[str, Any]) -> Optional[DataResponse]:
        """
        Retrieve (possibly downsampled) data for a time window.

        Args:
            params: {"startDate", "endDate", "numOfPoints", "metrics"?}

        Returns:
            Opaque response mapping, or None/empty when nothing matched

        Raises:
            EngineQueryError: If the query fails
        """
        pass

    @abstractmethod
    def insert(self, data_values: Dict[str, Any]) -> None:
        """
        Add data points.

        Raises:
            EngineQueryError: If the engine rejects the data
        """
        pass

    def is_initialized(self) -> bool:
        return self._initialized

    def get_engine_info(self) -> Dict[str, Any]:
        """Get information about this engine binding."""
        return {
            "engine": self.ENGINE,
            "initialized": self._initialized,
        }


def is_empty_response(response: Optional[DataResponse]) -> bool:
    """
    The only interpretation the bridge applies to engine output.

    None, an empty mapping, or a response whose "points" list is empty
    counts as "no data in range".
    """
    if not response:
        return True
    points = response.get("points")
    return isinstance(points, list) and not points
