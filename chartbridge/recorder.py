"""
Performance Recorder for ChartBridge

Opt-in, append-only CSV log of per-request timing and size metadata.

SESSIONS:
---------
Enabling LOGGING_ENABLED starts a session: a new file named from the enable
timestamp is created with the header row. Every log line goes to that file
until logging is disabled (which ends the session) or the process exits.
Re-enabling starts a new file.

    <log_dir>/<prefix>-20200101-120000-000000.csv

    timestamp,durationMs,dataSize,method
    2020-01-01 12:00:03,42,120,loadData()
    2020-01-01 12:00:04,0,0,"emitSignal(zoom, {""level"":2})"

prune_old_logs() deletes every <prefix>-*.csv except the active file. The
active-file handle is guarded by one lock shared with writes and pruning, so
the active file is never removed mid-write.
"""

import csv
import logging
import re
import threading
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Callable, List, Optional, Union

from chartbridge.storage.preferences import PreferenceStore

logger = logging.getLogger(__name__)

LOGGING_ENABLED = "LOGGING_ENABLED"

LOG_HEADER = ["timestamp", "durationMs", "dataSize", "method"]


@dataclass(frozen=True)
class LogEntry:
    """One row in a performance log."""
    timestamp: str
    durationMs: int
    dataSize: int
    method: str

    def to_row(self) -> List[str]:
        return [self.timestamp, str(self.durationMs), str(self.dataSize), self.method]


class PerformanceRecorder:
    """
    Writes LogEntry rows to the active session file.

    Args:
        preferences: Where LOGGING_ENABLED (and other options) are persisted
        log_dir: Directory holding the session files
        prefix: File name prefix, also the pruning pattern
        clock: Returns "now"; injectable for tests
    """

    def __init__(
        self,
        preferences: PreferenceStore,
        log_dir: Union[str, Path],
        prefix: str = "chartbridge",
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.preferences = preferences
        self.log_dir = Path(log_dir)
        self.prefix = prefix
        self._clock = clock or datetime.now
        self._lock = threading.Lock()
        self._active: Optional[Path] = None
        self._pattern = re.compile(rf"^{re.escape(prefix)}-.*\.csv$")

        if self.logging_enabled:
            with self._lock:
                self._start_session()

    # -------------------------------------------------------------------------
    # Options
    # -------------------------------------------------------------------------

    @property
    def logging_enabled(self) -> bool:
        return self.preferences.get_bool(LOGGING_ENABLED, False)

    @property
    def active_log_path(self) -> Optional[Path]:
        with self._lock:
            return self._active

    def logging_option_enabled(self, option: str) -> bool:
        return self.preferences.get_bool(option, False)

    def set_logging_option(self, option: str, enable: bool) -> None:
        """Persist an option; LOGGING_ENABLED also starts or ends the session."""
        if option == LOGGING_ENABLED:
            with self._lock:
                if enable and self._active is None:
                    self._start_session()
                elif not enable and self._active is not None:
                    logger.info(f"Performance logging session ended: {self._active}")
                    self._active = None

        self.preferences.set_bool(option, enable)

    # -------------------------------------------------------------------------
    # Writing
    # -------------------------------------------------------------------------

    def _start_session(self) -> None:
        """Create a new log file. Caller holds the lock."""
        started = self._clock()
        path = self.log_dir / f"{self.prefix}-{started:%Y%m%d-%H%M%S-%f}.csv"
        try:
            self.log_dir.mkdir(parents=True, exist_ok=True)
            with open(path, "w", newline="", encoding="utf-8") as f:
                csv.writer(f).writerow(LOG_HEADER)
        except OSError as e:
            logger.error(f"Cannot create performance log {path}: {e}")
            return

        self._active = path
        logger.info(f"Performance logging session started: {path}")

    def log_event(
        self,
        method: str,
        duration_ms: int,
        data_size: int,
        timestamp: Optional[str] = None,
    ) -> Optional[LogEntry]:
        """
        Append one row to the active session file.

        Returns:
            The written entry, or None when no session is active
        """
        entry = LogEntry(
            timestamp=timestamp or f"{self._clock():%Y-%m-%d %H:%M:%S}",
            durationMs=int(duration_ms),
            dataSize=int(data_size),
            method=method,
        )

        with self._lock:
            if self._active is None:
                return None
            try:
                with open(self._active, "a", newline="", encoding="utf-8") as f:
                    csv.writer(f).writerow(entry.to_row())
            except OSError as e:
                logger.error(f"Cannot append to performance log {self._active}: {e}")
                return None

        logger.debug(f"Logged {entry}")
        return entry

    def log_signal(self, name: str, values: str) -> Optional[LogEntry]:
        """Event marker for a signal: zero duration and size, only while logging is enabled."""
        if not self.logging_enabled:
            return None
        return self.log_event(f"emitSignal({name}, {values})", 0, 0)

    # -------------------------------------------------------------------------
    # Maintenance
    # -------------------------------------------------------------------------

    def list_logs(self) -> List[Path]:
        if not self.log_dir.is_dir():
            return []
        return sorted(p for p in self.log_dir.iterdir() if p.is_file() and self._pattern.match(p.name))

    def prune_old_logs(self) -> List[Path]:
        """
        Delete every session file except the active one. Idempotent.

        Returns:
            Paths that were removed
        """
        removed: List[Path] = []
        with self._lock:
            for path in self.list_logs():
                if self._active is not None and path.name == self._active.name:
                    continue
                try:
                    path.unlink()
                except FileNotFoundError:
                    continue
                removed.append(path)
                logger.info(f"Removed log file {path.name}")

        return removed
