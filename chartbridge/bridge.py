"""
ChartBridge - request/response bridge between a chart surface and a data engine

The one object a host application constructs. It configures the engine once,
then exposes the operations the rendering surface calls:

    bridge = ChartBridge(
        engine=InMemoryEngine(),
        cache_config=cache_json,
        data_schema=schema_json,
        storage_location="/var/lib/app/series.db",
        sink=web_view.evaluate_script,
    )

    bridge.load_data('{"startDate": "...", "endDate": "...", "numOfPoints": 40}',
                     "newDataReceived", "left", "errorCB")
    bridge.intercept_request("https://localhost/tsdv?startDate=...")
    bridge.emit_signal("AppLoaded", "true")

Construction raises InitializationError when the configuration is invalid or
the storage location is not writable; no bridge exists in that case.
"""

import logging
from typing import Any, Mapping, Optional

from chartbridge.adapters.base import DataEnginePort, EngineError
from chartbridge.callbacks import CallbackEmitter, DeliveryContext, ScriptSink, SerialDeliveryContext
from chartbridge.configurator import (
    CacheConfigInput,
    DataSchemaInput,
    configure,
    load_bridge_config,
)
from chartbridge.core.config import Settings, settings as default_settings
from chartbridge.diagnostics import Diagnostics
from chartbridge.dispatcher import Dispatcher, QueryInput, ResourceResponse
from chartbridge.errors import config_file_invalid, data_invalid, engine_query_failed
from chartbridge.recorder import LogEntry, PerformanceRecorder
from chartbridge.signals import SignalBus, SignalListener
from chartbridge.storage.preferences import (
    DuckDBPreferenceStore,
    InMemoryPreferenceStore,
    PreferenceStore,
)

logger = logging.getLogger(__name__)


def _log_sink(script: str) -> None:
    logger.debug(f"No script sink configured, dropping: {script[:120]}")


class ChartBridge:
    """
    Facade over configurator, dispatcher, emitter, signal bus and recorder.

    Args:
        engine: Data engine port to initialize
        cache_config: CacheConfig, mapping, or JSON text
        data_schema: DataSchema, mapping, or JSON text
        storage_location: Path of the engine store, or ":memory:"
        reset_existing: Delete existing engine data on init
        sink: Evaluates a callback script on the rendering surface
        delivery_context: Context the sink runs on (default: one dedicated thread)
        preferences: Persisted option store (default: in-memory)
        settings: Settings instance for marker, workers and log location
    """

    def __init__(
        self,
        engine: DataEnginePort,
        cache_config: CacheConfigInput,
        data_schema: DataSchemaInput,
        storage_location: str,
        reset_existing: bool = False,
        *,
        sink: Optional[ScriptSink] = None,
        delivery_context: Optional[DeliveryContext] = None,
        preferences: Optional[PreferenceStore] = None,
        settings: Optional[Settings] = None,
    ):
        self.settings = settings or default_settings

        # Fatal on failure: nothing below runs for an unusable engine.
        self.handle = configure(cache_config, data_schema, storage_location, reset_existing, engine)

        self.diagnostics = Diagnostics()
        self._owns_preferences = preferences is None
        self.preferences = preferences or InMemoryPreferenceStore()
        self.recorder = PerformanceRecorder(
            self.preferences,
            log_dir=self.settings.log_dir,
            prefix=self.settings.log_prefix,
        )
        self.signals = SignalBus(self.recorder)

        self._owns_delivery = delivery_context is None
        self._delivery = delivery_context or SerialDeliveryContext()
        self.emitter = CallbackEmitter(sink or _log_sink, self._delivery)

        self.dispatcher = Dispatcher(
            handle=self.handle,
            emitter=self.emitter,
            diagnostics=self.diagnostics,
            recorder=self.recorder,
            marker=self.settings.resource_marker,
            max_workers=self.settings.max_workers,
        )

    @classmethod
    def from_settings(
        cls,
        engine: DataEnginePort,
        settings: Optional[Settings] = None,
        **kwargs: Any,
    ) -> "ChartBridge":
        """
        Build a bridge from a configuration file and persisted preferences.

        Raises:
            InitializationError: If config_path is unset or the file is invalid
        """
        settings = settings or default_settings
        if not settings.config_path:
            raise config_file_invalid("<unset>", "CHARTBRIDGE_CONFIG_PATH is not set")

        config = load_bridge_config(settings.config_path)
        owns_preferences = "preferences" not in kwargs
        if owns_preferences:
            kwargs["preferences"] = (
                DuckDBPreferenceStore(settings.preferences_path)
                if settings.preferences_path
                else InMemoryPreferenceStore()
            )

        try:
            bridge = cls(
                engine,
                config.cache,
                config.schema,
                settings.storage_location,
                settings.reset_storage,
                settings=settings,
                **kwargs,
            )
        except Exception:
            if owns_preferences:
                kwargs["preferences"].close()
            raise

        if owns_preferences:
            bridge._owns_preferences = True
        return bridge

    # =========================================================================
    # Query operations
    # =========================================================================

    def load_data(self, params: QueryInput, callback: str, args: str = "", error_callback: Optional[str] = None):
        """Asynchronous request; see Dispatcher.load_data()."""
        return self.dispatcher.load_data(params, callback, args, error_callback)

    def sync_get_data(self, params: QueryInput) -> str:
        return self.dispatcher.sync_get_data(params)

    def intercept_request(self, url: str) -> Optional[ResourceResponse]:
        """Resource-fetch hook: a response for query URLs, None to fall through."""
        return self.dispatcher.handle_resource_request(url)

    def add_data(self, data_values: Mapping[str, Any]) -> None:
        """
        Forward data points to the engine after checking them against the schema.

        Raises:
            DataError: If points are missing the date key or carry unknown columns
        """
        schema = self.handle.data_schema
        points = data_values.get("points")
        if not isinstance(points, list):
            raise data_invalid("'points' must be a list")

        for index, point in enumerate(points):
            if not isinstance(point, Mapping):
                raise data_invalid("every point must be an object", {"index": index})
            if schema.dateKeyColumn not in point:
                raise data_invalid(
                    f"point is missing date key column '{schema.dateKeyColumn}'", {"index": index}
                )
            unknown = [name for name in point if name not in schema.columns]
            if unknown:
                raise data_invalid("point has columns not in the schema", {"index": index, "columns": unknown})

        try:
            self.handle.insert(dict(data_values))
        except EngineError as e:
            error = engine_query_failed(self.handle.engine_name, str(e))
            error.log()
            raise error from e

    # =========================================================================
    # Signals
    # =========================================================================

    def set_signal_listener(self, listener: Optional[SignalListener]) -> None:
        self.signals.set_listener(listener)

    def emit_signal(self, name: str, values: str = "") -> None:
        self.signals.emit(name, values)

    # =========================================================================
    # Performance logging
    # =========================================================================

    def logging_option_enabled(self, option: str) -> bool:
        return self.recorder.logging_option_enabled(option)

    def set_logging_option(self, option: str, enable: bool) -> None:
        self.recorder.set_logging_option(option, enable)

    def log_to_file(
        self,
        timestamp: Optional[str],
        duration_ms: int,
        data_size: int,
        method: str,
    ) -> Optional[LogEntry]:
        return self.recorder.log_event(method, duration_ms, data_size, timestamp=timestamp)

    def delete_old_logs(self):
        return self.recorder.prune_old_logs()

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def close(self) -> None:
        self.dispatcher.close()
        if self._owns_delivery:
            self._delivery.close()
        if self._owns_preferences:
            self.preferences.close()

    def __enter__(self) -> "ChartBridge":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
