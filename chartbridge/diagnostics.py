"""
Diagnostics channel for contained failures.

Decode failures, unsupported parameters, validation errors and empty results
never cross the bridge boundary. They are logged and kept here so that the
host application (and tests) can inspect what was dropped.
"""

import logging
import threading
from collections import deque
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Deque, List, Optional

from chartbridge.errors import ChartBridgeError, ErrorCode

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DiagnosticRecord:
    """One contained failure."""
    timestamp: datetime
    code: ErrorCode
    message: str
    transport: str


class Diagnostics:
    """Thread-safe, bounded record of contained failures."""

    def __init__(self, max_records: int = 200):
        self._records: Deque[DiagnosticRecord] = deque(maxlen=max_records)
        self._lock = threading.Lock()

    def record(self, error: ChartBridgeError, transport: str, level: str = "warning") -> DiagnosticRecord:
        record = DiagnosticRecord(
            timestamp=datetime.now(timezone.utc),
            code=error.code,
            message=error.message,
            transport=transport,
        )
        error.log(level=level)
        with self._lock:
            self._records.append(record)
        return record

    def recent(self, code: Optional[ErrorCode] = None) -> List[DiagnosticRecord]:
        with self._lock:
            records = list(self._records)
        if code is not None:
            records = [r for r in records if r.code == code]
        return records

    def clear(self) -> None:
        with self._lock:
            self._records.clear()
