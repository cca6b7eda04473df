"""
Callback Emitter for ChartBridge

Marshals a query result or an error message into the exact script string the
rendering surface's scripting host evaluates, and delivers it on the
surface's safe execution context.

INVOCATION FORMATS:
-------------------
    successCallback('<escaped-json-result>','<opaque-args>')
    errorCallback('<message>')

The JSON and the message are embedded in single-quoted literals, so
backslashes and single quotes are escaped. The args value is an opaque token
from the surface and is passed through unchanged.

DELIVERY:
---------
The consumer supplies a sink (e.g. "evaluate this script in the web view")
and a DeliveryContext that runs the sink on the context the surface requires.
Every delivery returns a concurrent.futures.Future that resolves with the
CallbackInvocation once the sink has run.
"""

import asyncio
import json
import logging
from abc import ABC, abstractmethod
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Optional, TypeVar

from chartbridge.adapters.base import DataResponse

logger = logging.getLogger(__name__)

T = TypeVar("T")

ScriptSink = Callable[[str], Any]


# =============================================================================
# DELIVERY CONTEXTS
# =============================================================================

class DeliveryContext(ABC):
    """The single execution context allowed to invoke surface callbacks."""

    @abstractmethod
    def post(self, fn: Callable[[], T]) -> "Future[T]":
        """Run fn on the context; the returned future carries its result."""
        pass

    def close(self) -> None:
        pass


class SerialDeliveryContext(DeliveryContext):
    """
    One dedicated thread runs every delivery in submission order, so no two
    callback invocations ever race.
    """

    def __init__(self, name: str = "chartbridge-delivery"):
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix=name)

    def post(self, fn: Callable[[], T]) -> "Future[T]":
        return self._executor.submit(fn)

    def close(self) -> None:
        self._executor.shutdown(wait=True)


class AsyncioDeliveryContext(DeliveryContext):
    """Hands deliveries to an asyncio event loop (e.g. the one serving the surface)."""

    def __init__(self, loop: asyncio.AbstractEventLoop):
        self._loop = loop

    def post(self, fn: Callable[[], T]) -> "Future[T]":
        future: Future = Future()

        def _run():
            if not future.set_running_or_notify_cancel():
                return
            try:
                future.set_result(fn())
            except Exception as e:
                future.set_exception(e)

        self._loop.call_soon_threadsafe(_run)
        return future


# =============================================================================
# INVOCATION FORMATTING
# =============================================================================

class CallbackKind(str, Enum):
    SUCCESS = "success"
    ERROR = "error"


@dataclass(frozen=True)
class CallbackInvocation:
    """A formatted script ready for (or already given to) the sink."""
    kind: CallbackKind
    callback: str
    script: str


def escape_literal(text: str) -> str:
    """Escape text for embedding inside a single-quoted script literal."""
    return text.replace("\\", "\\\\").replace("'", "\\'")


def format_success(callback: str, payload: DataResponse, args: str = "") -> CallbackInvocation:
    result = json.dumps(payload, separators=(",", ":"))
    return CallbackInvocation(
        kind=CallbackKind.SUCCESS,
        callback=callback,
        script=f"{callback}('{escape_literal(result)}','{args}')",
    )


def format_error(callback: str, message: str) -> CallbackInvocation:
    return CallbackInvocation(
        kind=CallbackKind.ERROR,
        callback=callback,
        script=f"{callback}('{escape_literal(message)}')",
    )


# =============================================================================
# EMITTER
# =============================================================================

class CallbackEmitter:
    """Formats invocations and hands them to the sink on the delivery context."""

    def __init__(self, sink: ScriptSink, context: DeliveryContext):
        self.sink = sink
        self.context = context

    def deliver(self, invocation: CallbackInvocation) -> "Future[CallbackInvocation]":
        def _invoke() -> CallbackInvocation:
            self.sink(invocation.script)
            logger.debug(f"Delivered {invocation.kind.value} callback {invocation.callback}")
            return invocation

        return self.context.post(_invoke)

    def success(self, callback: str, payload: DataResponse, args: str = "") -> "Future[CallbackInvocation]":
        return self.deliver(format_success(callback, payload, args))

    def error(self, callback: Optional[str], message: str) -> "Future[Optional[CallbackInvocation]]":
        if not callback:
            logger.warning(f"No error callback registered, dropping: {message}")
            future: Future = Future()
            future.set_result(None)
            return future
        return self.deliver(format_error(callback, message))
