"""
In-Memory Engine for ChartBridge

A stand-in for the native engine, useful for:
- Unit and API tests
- Local development of a rendering surface
- Demos without the native library

It keeps points in a dict keyed by the date key column and returns every
point in the requested window. It does not downsample: numOfPoints is
accepted and ignored.
"""

import logging
import threading
from typing import Any, Dict, List, Optional

from chartbridge.adapters.base import DataEnginePort, DataResponse, EngineInitError, EngineQueryError

logger = logging.getLogger(__name__)


class InMemoryEngine(DataEnginePort):
    """
    Engine port backed by a Python dict.

    Example:
        engine = InMemoryEngine()
        engine.init(cache_setup, {"table": "data", "date_key_column": "date",
                                  "columns": {"date": "TEXT", "steps": "INT"}}, ":memory:", False)
        engine.insert({"points": [{"date": "2020-01-01 00:00Z", "steps": 10}]})
    """

    ENGINE = "memory"

    def __init__(self):
        super().__init__()
        self._points: Dict[str, Dict[str, Any]] = {}
        self._lock = threading.Lock()
        self.cache_setup: Dict[str, Any] = {}
        self.data_schema: Dict[str, Any] = {}
        self.storage_location: Optional[str] = None
        self.query_calls = 0

    @property
    def date_key(self) -> str:
        return self.data_schema.get("date_key_column", "date")

    def init(
        self,
        cache_setup: Dict[str, Any],
        data_schema: Dict[str, Any],
        storage_location: str,
        reset: bool,
    ) -> None:
        if "columns" not in data_schema:
            raise EngineInitError("Data schema has no columns", engine=self.ENGINE)

        self.cache_setup = cache_setup
        self.data_schema = data_schema
        self.storage_location = storage_location

        if reset:
            with self._lock:
                self._points.clear()

        self._initialized = True
        logger.info(f"In-memory engine initialized (table={data_schema.get('table')}, reset={reset})")

    def query(self, params: Dict[str, Any]) -> Optional[DataResponse]:
        if not self._initialized:
            raise EngineQueryError("Engine not initialized", engine=self.ENGINE)

        start, end = params["startDate"], params["endDate"]
        metrics = params.get("metrics")

        with self._lock:
            self.query_calls += 1
            keys = sorted(k for k in self._points if start <= k <= end)
            rows = [self._points[k] for k in keys]

        if metrics is not None:
            keep = {self.date_key, *metrics}
            rows = [{k: v for k, v in row.items() if k in keep} for row in rows]

        return {"startDate": start, "endDate": end, "points": rows}

    def insert(self, data_values: Dict[str, Any]) -> None:
        if not self._initialized:
            raise EngineQueryError("Engine not initialized", engine=self.ENGINE)

        points: List[Dict[str, Any]] = data_values.get("points", [])
        with self._lock:
            for point in points:
                self._points[point[self.date_key]] = dict(point)

        logger.debug(f"Inserted {len(points)} points")

    def __len__(self) -> int:
        with self._lock:
            return len(self._points)
