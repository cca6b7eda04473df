"""
ChartBridge - time-windowed series data for interactive chart surfaces

A rendering surface asks for a date range at some resolution; the bridge
decodes the request, queries a data engine, and hands the JSON back either
through a named callback or as the body of an intercepted resource fetch.

Usage:
    from chartbridge import ChartBridge, InMemoryEngine

    bridge = ChartBridge(InMemoryEngine(), cache_config, data_schema, ":memory:")
"""

from chartbridge.adapters import DataEnginePort, InMemoryEngine
from chartbridge.bridge import ChartBridge
from chartbridge.callbacks import AsyncioDeliveryContext, CallbackInvocation, CallbackKind, SerialDeliveryContext
from chartbridge.configurator import CacheConfig, DataSchema, EngineHandle, configure
from chartbridge.dispatcher import ResourceResponse
from chartbridge.errors import ChartBridgeError, ErrorCode, InitializationError
from chartbridge.protocol import QueryParams
from chartbridge.recorder import LOGGING_ENABLED

__version__ = "1.0.0"

__all__ = [
    "AsyncioDeliveryContext",
    "CacheConfig",
    "CallbackInvocation",
    "CallbackKind",
    "ChartBridge",
    "ChartBridgeError",
    "DataEnginePort",
    "DataSchema",
    "EngineHandle",
    "ErrorCode",
    "InMemoryEngine",
    "InitializationError",
    "LOGGING_ENABLED",
    "QueryParams",
    "ResourceResponse",
    "SerialDeliveryContext",
    "configure",
]
