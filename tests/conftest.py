"""
Pytest configuration and shared fixtures for ChartBridge tests.
"""

import copy
import threading

import pytest
from fastapi.testclient import TestClient

from chartbridge.adapters import InMemoryEngine
from chartbridge.bridge import ChartBridge
from chartbridge.core.config import Settings


CACHE_CONFIG = {
    "useCache": True,
    "cacheRawData": True,
    "downsamplingFilter": "TIME_WEIGHTED_POINTS",
    "fetchAhead": 1,
    "fetchBehind": 2,
    "downsamplingLevels": [
        {"duration": 86400, "numOfPoints": 100},
        {"duration": 2592000, "numOfPoints": 100},
        {"duration": 31536000, "numOfPoints": 100},
    ],
}

DATA_SCHEMA = {
    "table": "data",
    "date_key_column": "date",
    "columns": {"date": "TEXT", "steps": "INT", "calories": "REAL"},
}

JANUARY_QUERY = {"startDate": "2020-01-01", "endDate": "2020-01-31", "numOfPoints": 40}


class RecordingSink:
    """Script sink that remembers every evaluated script."""

    def __init__(self):
        self.scripts = []
        self._lock = threading.Lock()

    def __call__(self, script: str):
        with self._lock:
            self.scripts.append(script)


@pytest.fixture
def cache_config():
    """Return a valid cache configuration (wire shape)."""
    return copy.deepcopy(CACHE_CONFIG)


@pytest.fixture
def data_schema():
    """Return a valid data schema (wire shape)."""
    return copy.deepcopy(DATA_SCHEMA)


@pytest.fixture
def january_query():
    """Return the query for every point in January 2020."""
    return dict(JANUARY_QUERY)


@pytest.fixture
def sample_points():
    """Return ten daily points starting 2020-01-01."""
    return [
        {"date": f"2020-01-{day:02d}", "steps": day * 1000, "calories": day * 1.5}
        for day in range(1, 11)
    ]


@pytest.fixture
def settings(tmp_path):
    """Settings isolated from the environment, logging under tmp_path."""
    return Settings(
        _env_file=None,
        log_dir=str(tmp_path / "logs"),
        storage_location=":memory:",
        max_workers=4,
    )


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def engine():
    return InMemoryEngine()


@pytest.fixture
def empty_bridge(engine, cache_config, data_schema, settings, sink):
    """Bridge over an engine with no data."""
    bridge = ChartBridge(engine, cache_config, data_schema, ":memory:", sink=sink, settings=settings)
    yield bridge
    bridge.close()


@pytest.fixture
def bridge(empty_bridge, sample_points):
    """Bridge over an engine seeded with sample_points."""
    empty_bridge.add_data({
        "startDate": sample_points[0]["date"],
        "endDate": sample_points[-1]["date"],
        "points": sample_points,
    })
    return empty_bridge


@pytest.fixture
def client(bridge, settings):
    """Create a test client for the FastAPI app."""
    from chartbridge.main import create_app
    return TestClient(create_app(bridge, settings))
