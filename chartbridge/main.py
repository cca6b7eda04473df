"""
ChartBridge - HTTP Surface

Serves the bridge to a browser-based rendering surface.

ENDPOINTS:
----------
- GET  /v1/health            Engine and bridge status
- POST /v1/data              Insert points {startDate?, endDate?, points}
- POST /v1/signals           Emit a named signal {name, values}
- GET  /v1/logging           Is performance logging enabled?
- PUT  /v1/logging           Enable/disable performance logging {enabled}
- POST /v1/logs              Append a timing row {durationMs, dataSize, method, timestamp?}
- DELETE /v1/logs            Prune every log file except the active one
- GET  /<...marker...>?...   Resource-fetch query (synchronous path)

Run:
    uvicorn chartbridge.main:create_app --factory --port 8080
"""

import uuid
import logging
from contextvars import ContextVar
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel, Field

from chartbridge.adapters.memory_adapter import InMemoryEngine
from chartbridge.bridge import ChartBridge
from chartbridge.core.config import Settings, settings as default_settings
from chartbridge.errors import install_error_handlers
from chartbridge.recorder import LOGGING_ENABLED


# =============================================================================
# LOGGING CONFIGURATION
# =============================================================================

_request_id: ContextVar[str] = ContextVar("request_id", default="-")


class RequestIdFilter(logging.Filter):
    def filter(self, record):
        if not hasattr(record, "request_id"):
            record.request_id = _request_id.get()
        return True


logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - [%(request_id)s] %(message)s',
    datefmt='%Y-%m-%d %H:%M:%S'
)

for handler in logging.root.handlers:
    handler.addFilter(RequestIdFilter())

logger = logging.getLogger(__name__)


# =============================================================================
# REQUEST MODELS
# =============================================================================

class DataValuesIn(BaseModel):
    startDate: Optional[str] = None
    endDate: Optional[str] = None
    points: List[Dict[str, Any]]


class SignalIn(BaseModel):
    name: str = Field(min_length=1)
    values: str = ""


class LoggingOptionIn(BaseModel):
    enabled: bool


class LogEventIn(BaseModel):
    durationMs: int = Field(ge=0)
    dataSize: int = Field(ge=0)
    method: str
    timestamp: Optional[str] = None


# =============================================================================
# APPLICATION FACTORY
# =============================================================================

def create_app(bridge: Optional[ChartBridge] = None, settings: Optional[Settings] = None) -> FastAPI:
    """
    Build the HTTP surface around a bridge.

    Without a bridge, one is built from settings with the in-memory engine.
    Initialization errors propagate: the app is never created for an
    unusable engine.
    """
    settings = settings or default_settings
    if bridge is None:
        bridge = ChartBridge.from_settings(InMemoryEngine(), settings=settings)

    app = FastAPI(
        title=f"{settings.app_name} API",
        version=settings.app_version,
        description="Time-windowed series data for interactive chart surfaces",
    )
    app.state.bridge = bridge
    install_error_handlers(app)

    @app.on_event("shutdown")
    def shutdown_event():
        bridge.close()
        logger.info("Bridge closed")

    # -------------------------------------------------------------------------
    # Middleware
    # -------------------------------------------------------------------------

    @app.middleware("http")
    async def add_request_id(request: Request, call_next):
        """Add request ID for tracing and structured logging."""
        request_id = request.headers.get("X-Request-ID", str(uuid.uuid4())[:8])
        token = _request_id.set(request_id)
        try:
            response = await call_next(request)
        finally:
            _request_id.reset(token)
        response.headers["X-Request-ID"] = request_id
        return response

    # The surface is typically served from file:// or a dev server
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["*"],
    )

    # -------------------------------------------------------------------------
    # Bridge endpoints
    # -------------------------------------------------------------------------

    @app.get("/v1/health")
    def health():
        return {
            "status": "ok",
            "version": settings.app_version,
            "engine": bridge.handle.engine.get_engine_info(),
        }

    @app.post("/v1/data", status_code=201)
    def add_data(data: DataValuesIn):
        values: Dict[str, Any] = {"points": data.points}
        if data.startDate is not None:
            values["startDate"] = data.startDate
        if data.endDate is not None:
            values["endDate"] = data.endDate
        bridge.add_data(values)
        return {"inserted": len(data.points)}

    @app.post("/v1/signals", status_code=202)
    def emit_signal(signal: SignalIn):
        bridge.emit_signal(signal.name, signal.values)
        return {"status": "accepted"}

    @app.get("/v1/logging")
    def get_logging():
        active = bridge.recorder.active_log_path
        return {
            "enabled": bridge.logging_option_enabled(LOGGING_ENABLED),
            "activeLog": active.name if active else None,
        }

    @app.put("/v1/logging")
    def set_logging(option: LoggingOptionIn):
        bridge.set_logging_option(LOGGING_ENABLED, option.enabled)
        return get_logging()

    @app.post("/v1/logs")
    def log_event(event: LogEventIn):
        entry = bridge.log_to_file(event.timestamp, event.durationMs, event.dataSize, event.method)
        return {"logged": entry is not None}

    @app.delete("/v1/logs")
    def prune_logs():
        removed = bridge.delete_old_logs()
        return {"removed": [path.name for path in removed]}

    # -------------------------------------------------------------------------
    # Resource-fetch interception (must stay last)
    # -------------------------------------------------------------------------

    @app.get("/{resource_path:path}")
    def intercept(resource_path: str, request: Request):
        resource = bridge.intercept_request(str(request.url))
        if resource is None:
            return JSONResponse(status_code=404, content={"detail": "Not Found"})
        return Response(content=resource.body, media_type=resource.content_type)

    return app
