"""
ChartBridge - Structured Error Handling

Every failure the bridge can hit is classified with a unique code so that
diagnostics, log lines and HTTP responses can be correlated.

ESCALATION POLICY:
------------------
1. Initialization errors (1xxx) are fatal and raised to the owner of the bridge
2. Query errors (2xxx) are contained: recorded, logged, or routed to the
   error callback, never raised across the bridge boundary
3. Data errors (3xxx) are routed to the error callback, except invalid
   inserted data which is raised to the host caller of add_data()

ERROR RESPONSE FORMAT:
----------------------
{
    "error": {
        "code": "ERR_1002",
        "message": "downsamplingLevels must be sorted ascending by duration",
        "details": {"durations": [86400, 3600]},
        "timestamp": "2020-01-01T00:00:00+00:00"
    }
}
"""

import logging
from typing import Optional, Dict, Any, List
from enum import Enum
from dataclasses import dataclass, field
from datetime import datetime, timezone

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


# =============================================================================
# ERROR CODES
# =============================================================================

class ErrorCode(str, Enum):
    """Unique error codes for every error type."""

    # Initialization (1xxx) - fatal
    ERR_STORAGE_NOT_WRITABLE = "ERR_1001"
    ERR_CACHE_CONFIG_INVALID = "ERR_1002"
    ERR_SCHEMA_INVALID = "ERR_1003"
    ERR_ENGINE_INIT_FAILED = "ERR_1004"
    ERR_CONFIG_FILE_INVALID = "ERR_1005"

    # Query protocol (2xxx) - contained
    ERR_QUERY_DATES_MISSING = "ERR_2001"
    ERR_QUERY_MALFORMED = "ERR_2002"
    ERR_QUERY_FIELD_INVALID = "ERR_2003"
    ERR_UNSUPPORTED_PARAMETER = "ERR_2004"

    # Data (3xxx)
    ERR_NO_DATA_IN_RANGE = "ERR_3001"
    ERR_ENGINE_QUERY_FAILED = "ERR_3002"
    ERR_DATA_INVALID = "ERR_3003"


# Messages delivered verbatim to the rendering surface's error callback
MSG_DATES_MISSING = "No startDate or endDate provided"
MSG_NO_DATA_IN_RANGE = "Failed to find any data in that range"
MSG_ENGINE_QUERY_FAILED = "Data engine query failed"


# =============================================================================
# ERROR TYPES
# =============================================================================

@dataclass
class ChartBridgeError(Exception):
    """
    Structured error with all context needed for debugging.

    Attributes:
        code: Unique error code for searching logs
        message: Human-readable error message
        status_code: HTTP status code when surfaced through the API
        details: Additional context (dict)
    """
    code: ErrorCode
    message: str
    status_code: int = 400
    details: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to API response format."""
        error_dict = {
            "code": self.code.value,
            "message": self.message,
        }

        if self.details:
            error_dict["details"] = self.details

        error_dict["timestamp"] = datetime.now(timezone.utc).isoformat()

        return {"error": error_dict}

    def to_response(self) -> JSONResponse:
        """Convert to FastAPI JSONResponse."""
        return JSONResponse(
            status_code=self.status_code,
            content=self.to_dict()
        )

    def log(self, level: str = "error"):
        """Log the error with context."""
        log_msg = f"[{self.code.value}] {self.message}"
        if self.details:
            log_msg += f" | details={self.details}"

        getattr(logger, level)(log_msg)


class InitializationError(ChartBridgeError):
    """Fatal construction-time failure; the bridge must not serve queries."""


class QueryDecodeError(ChartBridgeError):
    """Request parameters could not be decoded; the request is dropped."""


class QueryValidationError(ChartBridgeError):
    """Request decoded but carries an empty startDate or endDate."""


class DataError(ChartBridgeError):
    """Engine result or inserted data problem."""


# =============================================================================
# ERROR FACTORY FUNCTIONS
# =============================================================================

def storage_not_writable(path: str, reason: Optional[str] = None) -> InitializationError:
    """Create a fatal error for an unusable storage location."""
    details = {"storage_location": path}
    if reason:
        details["reason"] = reason

    return InitializationError(
        code=ErrorCode.ERR_STORAGE_NOT_WRITABLE,
        message=f"No write access to storage location: {path}",
        status_code=500,
        details=details,
    )


def cache_config_invalid(reason: str, details: Optional[Dict[str, Any]] = None) -> InitializationError:
    """Create a fatal error for a structurally invalid cache configuration."""
    return InitializationError(
        code=ErrorCode.ERR_CACHE_CONFIG_INVALID,
        message=f"Invalid cache configuration: {reason}",
        status_code=500,
        details=details or {},
    )


def schema_invalid(reason: str, details: Optional[Dict[str, Any]] = None) -> InitializationError:
    """Create a fatal error for a structurally invalid data schema."""
    return InitializationError(
        code=ErrorCode.ERR_SCHEMA_INVALID,
        message=f"Invalid data schema: {reason}",
        status_code=500,
        details=details or {},
    )


def engine_init_failed(engine: str, reason: str) -> InitializationError:
    """Create a fatal error for an engine that refused to initialize."""
    return InitializationError(
        code=ErrorCode.ERR_ENGINE_INIT_FAILED,
        message=f"Cannot initialize data engine '{engine}': {reason}",
        status_code=500,
        details={"engine": engine},
    )


def config_file_invalid(path: str, reason: str) -> InitializationError:
    """Create a fatal error for an unreadable bridge configuration file."""
    return InitializationError(
        code=ErrorCode.ERR_CONFIG_FILE_INVALID,
        message=f"Cannot load bridge configuration from {path}: {reason}",
        status_code=500,
        details={"path": path},
    )


def dates_missing() -> QueryValidationError:
    """Create the validation error for an empty startDate/endDate."""
    return QueryValidationError(
        code=ErrorCode.ERR_QUERY_DATES_MISSING,
        message=MSG_DATES_MISSING,
    )


def query_malformed(reason: str, raw: Optional[str] = None) -> QueryDecodeError:
    """Create a decode error for input that is not a usable request object."""
    details = {}
    if raw is not None:
        details["raw"] = raw[:200]

    return QueryDecodeError(
        code=ErrorCode.ERR_QUERY_MALFORMED,
        message=f"Malformed query parameters: {reason}",
        details=details,
    )


def query_field_invalid(fields: List[str], reason: str) -> QueryDecodeError:
    """Create a decode error for missing or mistyped fields."""
    return QueryDecodeError(
        code=ErrorCode.ERR_QUERY_FIELD_INVALID,
        message=f"Invalid query field(s) {', '.join(fields)}: {reason}",
        details={"fields": fields},
    )


def unsupported_parameter(name: str) -> QueryDecodeError:
    """Create the (non-fatal) report for an unrecognized URL parameter."""
    return QueryDecodeError(
        code=ErrorCode.ERR_UNSUPPORTED_PARAMETER,
        message=f"Unsupported parameter: {name}",
        details={"parameter": name},
    )


def no_data_in_range(start_date: str, end_date: str) -> DataError:
    """Create the empty-result error."""
    return DataError(
        code=ErrorCode.ERR_NO_DATA_IN_RANGE,
        message=MSG_NO_DATA_IN_RANGE,
        status_code=404,
        details={"startDate": start_date, "endDate": end_date},
    )


def engine_query_failed(engine: str, reason: str) -> DataError:
    """Create the error for an engine query that raised."""
    return DataError(
        code=ErrorCode.ERR_ENGINE_QUERY_FAILED,
        message=MSG_ENGINE_QUERY_FAILED,
        status_code=502,
        details={"engine": engine, "reason": reason},
    )


def data_invalid(reason: str, details: Optional[Dict[str, Any]] = None) -> DataError:
    """Create the error for inserted data that does not match the schema."""
    return DataError(
        code=ErrorCode.ERR_DATA_INVALID,
        message=f"Invalid data values: {reason}",
        status_code=422,
        details=details or {},
    )


# =============================================================================
# EXCEPTION HANDLERS
# =============================================================================

async def chartbridge_error_handler(request: Request, exc: ChartBridgeError) -> JSONResponse:
    """Handle ChartBridgeError and return structured response."""
    exc.log(level="warning")
    return exc.to_response()


def install_error_handlers(app: FastAPI):
    """Install error handlers on FastAPI app."""
    app.add_exception_handler(ChartBridgeError, chartbridge_error_handler)
    logger.info("Structured error handlers installed")
