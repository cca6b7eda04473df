"""
Dispatcher for ChartBridge

Decides synchronous vs. asynchronous execution and owns completion delivery.

SYNCHRONOUS PATH (resource fetch):
----------------------------------
decode URL → validate → engine.query() → JSON text, all on the calling thread.
Anything that is not a non-empty result (invalid, undecodable, empty, engine
failure) is answered with "{}".

ASYNCHRONOUS PATH (explicit call):
----------------------------------
The request is queued on a worker pool. Once the engine returns, exactly one
callback is handed to the CallbackEmitter, which runs it on the delivery
context:

    success            → callback('<json>','<args>')
    empty dates        → errorCallback('No startDate or endDate provided')
    empty result       → errorCallback('Failed to find any data in that range')
    engine failure     → errorCallback('Data engine query failed')
    undecodable input  → nothing (recorded in diagnostics)

load_data() returns a Future that resolves with the delivered
CallbackInvocation, or None when the request was dropped.

There is no ordering between concurrent requests, no cancellation and no
timeout; a stalled engine call leaves its future pending.
"""

import json
import logging
import time
from concurrent.futures import Executor, Future, ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Mapping, Optional, Union

from chartbridge.adapters.base import DataResponse, is_empty_response
from chartbridge.callbacks import CallbackEmitter, CallbackInvocation
from chartbridge.configurator import EngineHandle
from chartbridge.diagnostics import Diagnostics
from chartbridge.errors import (
    QueryDecodeError,
    QueryValidationError,
    engine_query_failed,
    no_data_in_range,
    unsupported_parameter,
)
from chartbridge.protocol import (
    DEFAULT_MARKER,
    QueryParams,
    decode_call_params,
    decode_resource_url,
    is_query_url,
    validate_date_range,
)
from chartbridge.recorder import PerformanceRecorder

logger = logging.getLogger(__name__)

EMPTY_RESULT = "{}"

TRANSPORT_SYNC = "sync"
TRANSPORT_ASYNC = "async"

QueryInput = Union[QueryParams, Mapping[str, Any], str, bytes]


@dataclass(frozen=True)
class ResourceResponse:
    """Content served for an intercepted resource fetch."""
    body: bytes
    mime_type: str = "application/json"
    encoding: str = "UTF-8"

    @property
    def content_type(self) -> str:
        return f"{self.mime_type}; charset={self.encoding}"

    def text(self) -> str:
        return self.body.decode(self.encoding)


def _chain(source: Future, target: Future) -> None:
    """Copy the outcome of source into target when it completes."""
    def _copy(done: Future):
        error = done.exception()
        if error is not None:
            target.set_exception(error)
        else:
            target.set_result(done.result())

    source.add_done_callback(_copy)


class Dispatcher:
    """
    Runs queries against an initialized engine on either dispatch path.

    Args:
        handle: Initialized engine
        emitter: Delivers async completions to the surface
        diagnostics: Receives contained failures
        recorder: Optional performance recorder for per-query timing
        marker: Token identifying resource-fetch query URLs
        max_workers: Worker pool size for the async path
        executor: Pre-built executor (the dispatcher then does not shut it down)
    """

    def __init__(
        self,
        handle: EngineHandle,
        emitter: CallbackEmitter,
        diagnostics: Optional[Diagnostics] = None,
        recorder: Optional[PerformanceRecorder] = None,
        marker: str = DEFAULT_MARKER,
        max_workers: int = 4,
        executor: Optional[Executor] = None,
    ):
        self.handle = handle
        self.emitter = emitter
        self.diagnostics = diagnostics or Diagnostics()
        self.recorder = recorder
        self.marker = marker
        self._owns_executor = executor is None
        self._executor = executor or ThreadPoolExecutor(
            max_workers=max_workers,
            thread_name_prefix="chartbridge-query",
        )

    # =========================================================================
    # Engine call
    # =========================================================================

    def _execute(self, params: QueryParams, method: str) -> Optional[DataResponse]:
        started = time.perf_counter()
        payload = self.handle.query(params)
        duration_ms = int((time.perf_counter() - started) * 1000)

        if self.recorder is not None:
            points = payload.get("points") if payload else None
            size = len(points) if isinstance(points, list) else 0
            self.recorder.log_event(method, duration_ms, size)

        return payload

    # =========================================================================
    # Synchronous path
    # =========================================================================

    def handle_resource_request(self, url: str) -> Optional[ResourceResponse]:
        """
        Answer an intercepted resource fetch.

        Returns:
            ResourceResponse for query URLs, None for URLs the bridge does not own
        """
        if not is_query_url(url, self.marker):
            return None

        try:
            decoded = decode_resource_url(url, self.marker)
        except QueryDecodeError as e:
            self.diagnostics.record(e, TRANSPORT_SYNC)
            return ResourceResponse(body=EMPTY_RESULT.encode("utf-8"))

        for name in decoded.unsupported:
            self.diagnostics.record(unsupported_parameter(name), TRANSPORT_SYNC)

        return ResourceResponse(body=self.sync_get_data(decoded.params).encode("utf-8"))

    def sync_get_data(self, request: QueryInput) -> str:
        """Run a query on the calling thread and return the JSON text."""
        try:
            params = request if isinstance(request, QueryParams) else decode_call_params(request)
        except QueryDecodeError as e:
            self.diagnostics.record(e, TRANSPORT_SYNC)
            return EMPTY_RESULT

        try:
            validate_date_range(params)
        except QueryValidationError as e:
            self.diagnostics.record(e, TRANSPORT_SYNC, level="info")
            return EMPTY_RESULT

        try:
            payload = self._execute(params, "syncGetData()")
        except Exception as e:
            self.diagnostics.record(
                engine_query_failed(self.handle.engine_name, str(e)), TRANSPORT_SYNC, level="error"
            )
            return EMPTY_RESULT

        if is_empty_response(payload):
            self.diagnostics.record(
                no_data_in_range(params.startDate, params.endDate), TRANSPORT_SYNC, level="info"
            )
            return EMPTY_RESULT

        return json.dumps(payload)

    # =========================================================================
    # Asynchronous path
    # =========================================================================

    def load_data(
        self,
        request: QueryInput,
        callback: str,
        args: str = "",
        error_callback: Optional[str] = None,
    ) -> "Future[Optional[CallbackInvocation]]":
        """
        Queue a query; exactly one callback is delivered when it completes.

        Args:
            request: Query JSON text, mapping, or QueryParams
            callback: Name of the surface's success callback
            args: Opaque value passed back as the second success argument
            error_callback: Name of the surface's error callback

        Returns:
            Future resolving with the delivered invocation, or None if dropped
        """
        completion: Future = Future()
        self._executor.submit(self._run_load, request, callback, args, error_callback, completion)
        return completion

    def _run_load(self, request, callback, args, error_callback, completion: Future) -> None:
        try:
            delivered = self._load(request, callback, args, error_callback)
        except Exception as e:
            logger.exception("Unexpected failure while dispatching loadData")
            completion.set_exception(e)
            return

        if delivered is None:
            completion.set_result(None)
        else:
            _chain(delivered, completion)

    def _load(self, request, callback, args, error_callback) -> Optional[Future]:
        try:
            params = request if isinstance(request, QueryParams) else decode_call_params(request)
        except QueryDecodeError as e:
            self.diagnostics.record(e, TRANSPORT_ASYNC)
            return None

        try:
            validate_date_range(params)
        except QueryValidationError as e:
            self.diagnostics.record(e, TRANSPORT_ASYNC, level="info")
            return self.emitter.error(error_callback, e.message)

        try:
            payload = self._execute(params, "loadData()")
        except Exception as e:
            error = engine_query_failed(self.handle.engine_name, str(e))
            self.diagnostics.record(error, TRANSPORT_ASYNC, level="error")
            return self.emitter.error(error_callback, error.message)

        if is_empty_response(payload):
            error = no_data_in_range(params.startDate, params.endDate)
            self.diagnostics.record(error, TRANSPORT_ASYNC, level="info")
            return self.emitter.error(error_callback, error.message)

        return self.emitter.success(callback, payload, args)

    def close(self) -> None:
        if self._owns_executor:
            self._executor.shutdown(wait=True)
