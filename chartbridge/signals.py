"""
Signal Bus for ChartBridge

Named, opaque-payload events raised by the rendering surface for the host
application, independent of the query path.

CAPACITY LIMIT:
---------------
Exactly one listener at a time. Registering a listener replaces the previous
one; there is no fan-out. Hosts that need several consumers wrap them in a
single listener.

Delivery is synchronous on the emitting thread and fire-and-forget: with no
listener the signal is dropped. When performance logging is enabled the
signal is also written to the log as a zero-duration marker.
"""

import logging
import threading
from dataclasses import dataclass
from typing import Callable, Optional

from chartbridge.recorder import PerformanceRecorder

logger = logging.getLogger(__name__)

SignalListener = Callable[[str, str], None]


@dataclass(frozen=True)
class Signal:
    name: str
    values: str


class SignalBus:
    """Single-subscriber publish mechanism."""

    def __init__(self, recorder: Optional[PerformanceRecorder] = None):
        self.recorder = recorder
        self._listener: Optional[SignalListener] = None
        self._lock = threading.Lock()

    def set_listener(self, listener: Optional[SignalListener]) -> None:
        """Register (or with None, remove) the one listener. Last registration wins."""
        with self._lock:
            self._listener = listener

    @property
    def listener(self) -> Optional[SignalListener]:
        with self._lock:
            return self._listener

    def emit(self, name: str, values: str = "") -> Signal:
        signal = Signal(name=name, values=values)
        listener = self.listener

        if listener is not None:
            try:
                listener(signal.name, signal.values)
            except Exception:
                logger.exception(f"Signal listener failed for '{name}'")

        if self.recorder is not None:
            self.recorder.log_signal(signal.name, signal.values)

        return signal
