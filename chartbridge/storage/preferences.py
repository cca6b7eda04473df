"""
Preference Storage for ChartBridge

Persisted boolean options (e.g. LOGGING_ENABLED) are read and written through
a PreferenceStore so the read-modify-write on a flag is explicit.

KNOWN RACE:
-----------
get_bool() followed by set_bool() is not atomic. Two writers toggling the
same option concurrently may interleave; the last write wins. Nothing in the
bridge depends on stronger guarantees.

Backends:
- InMemoryPreferenceStore: process-local dict (tests, ephemeral hosts)
- DuckDBPreferenceStore: single-file embedded database, survives restarts
"""

import logging
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, Optional

import duckdb

logger = logging.getLogger(__name__)


class PreferenceStore(ABC):
    """Key/value store for persisted boolean options."""

    @abstractmethod
    def get_bool(self, key: str, default: bool = False) -> bool:
        pass

    @abstractmethod
    def set_bool(self, key: str, value: bool) -> None:
        pass

    def close(self) -> None:
        pass


class InMemoryPreferenceStore(PreferenceStore):
    """Preferences that live as long as the process."""

    def __init__(self, initial: Optional[Dict[str, bool]] = None):
        self._values: Dict[str, bool] = dict(initial or {})

    def get_bool(self, key: str, default: bool = False) -> bool:
        return self._values.get(key, default)

    def set_bool(self, key: str, value: bool) -> None:
        self._values[key] = bool(value)


class DuckDBPreferenceStore(PreferenceStore):
    """
    Preferences persisted in a DuckDB database file.

    Args:
        db_path: Path to the DuckDB file. Defaults to ./data/preferences.db
    """

    def __init__(self, db_path: Optional[str] = None):
        if db_path is None:
            db_dir = Path.cwd() / "data"
            db_dir.mkdir(parents=True, exist_ok=True)
            db_path = str(db_dir / "preferences.db")
        else:
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)

        self.db_path = db_path
        self._lock = threading.Lock()
        self._connection: Optional[duckdb.DuckDBPyConnection] = None
        self._init_database()

    def _get_connection(self) -> duckdb.DuckDBPyConnection:
        """Get or create DuckDB connection."""
        if self._connection is None:
            self._connection = duckdb.connect(self.db_path)
        return self._connection

    def _init_database(self):
        with self._lock:
            self._get_connection().execute("""
                CREATE TABLE IF NOT EXISTS preferences (
                    key TEXT PRIMARY KEY,
                    value BOOLEAN NOT NULL
                )
            """)
        logger.info(f"Preference store ready at {self.db_path}")

    def get_bool(self, key: str, default: bool = False) -> bool:
        with self._lock:
            row = self._get_connection().execute(
                "SELECT value FROM preferences WHERE key = ?", [key]
            ).fetchone()
        return bool(row[0]) if row else default

    def set_bool(self, key: str, value: bool) -> None:
        with self._lock:
            self._get_connection().execute(
                "INSERT OR REPLACE INTO preferences (key, value) VALUES (?, ?)",
                [key, bool(value)],
            )

    def close(self) -> None:
        with self._lock:
            if self._connection is not None:
                self._connection.close()
                self._connection = None
