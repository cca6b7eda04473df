"""
Query Protocol Codec for ChartBridge

Turns raw requests from the rendering surface into a canonical QueryParams.

TRANSPORTS:
-----------
A. Embedded-resource URL (synchronous path)

    https://localhost/tsdv?startDate=2020-01-01&endDate=2020-01-31&numOfPoints=40&metrics=steps,calories

   Everything up to and including the marker token and its separator is
   stripped; the remainder is split on '&' into percent-decoded key=value
   pairs. Unknown keys are reported and skipped, never fatal.

B. Explicit call (asynchronous path)

    {"startDate": "2020-01-01", "endDate": "2020-01-31", "numOfPoints": 40}

   A JSON string or an already-structured mapping.

FAILURE CLASSES:
----------------
- QueryDecodeError: malformed input, missing field, non-integer numOfPoints.
  The request is abandoned.
- QueryValidationError: startDate or endDate is empty. Raised separately by
  validate_date_range() so each dispatch path can apply its own policy.
"""

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union
from urllib.parse import unquote_plus, urlencode, urlsplit

from pydantic import BaseModel, ConfigDict, StrictInt, ValidationError

from chartbridge.errors import (
    dates_missing,
    query_field_invalid,
    query_malformed,
)

logger = logging.getLogger(__name__)

DEFAULT_MARKER = "tsdv"

# Separators that may follow the marker before the first parameter
_MARKER_SEPARATORS = "?/&"


# =============================================================================
# REQUEST MODEL
# =============================================================================

class QueryParams(BaseModel):
    """
    Canonical, immutable query request.

    metrics=None means "all columns".
    """
    model_config = ConfigDict(frozen=True, extra="ignore")

    startDate: str
    endDate: str
    numOfPoints: StrictInt
    metrics: Optional[Tuple[str, ...]] = None

    @property
    def has_date_range(self) -> bool:
        return bool(self.startDate) and bool(self.endDate)

    def to_engine_params(self) -> Dict[str, Any]:
        """Query JSON shape handed to the data engine port."""
        params: Dict[str, Any] = {
            "startDate": self.startDate,
            "endDate": self.endDate,
            "numOfPoints": self.numOfPoints,
        }
        if self.metrics is not None:
            params["metrics"] = list(self.metrics)
        return params


@dataclass(frozen=True)
class DecodedQuery:
    """Result of decoding a resource URL: the request plus skipped keys."""
    params: QueryParams
    unsupported: List[str] = field(default_factory=list)


# =============================================================================
# TRANSPORT A - EMBEDDED RESOURCE URL
# =============================================================================

def is_query_url(url: str, marker: str = DEFAULT_MARKER) -> bool:
    """True when the path of an intercepted URL carries the marker."""
    return marker in urlsplit(url).path


def extract_query_string(url: str, marker: str = DEFAULT_MARKER) -> str:
    """
    Parameter text of a query URL.

    Everything in the path up to and including the marker and its separator
    is stripped; the path remainder and the URL's query string are joined.
    Host and query string never count as a marker match.
    """
    parts = urlsplit(url)
    index = parts.path.find(marker)
    if index < 0:
        raise query_malformed(f"marker '{marker}' not found in URL path", raw=url)

    remainder = parts.path[index + len(marker):]
    if remainder and remainder[0] in _MARKER_SEPARATORS:
        remainder = remainder[1:]
    return "&".join(piece for piece in (remainder, parts.query) if piece)


def decode_resource_url(url: str, marker: str = DEFAULT_MARKER) -> DecodedQuery:
    """
    Parse a resource-fetch URL into a QueryParams.

    Args:
        url: Full intercepted URL
        marker: Token identifying bridge query URLs

    Returns:
        DecodedQuery with the params and any unsupported keys that were skipped

    Raises:
        QueryDecodeError: If a required field is missing or numOfPoints is not an integer
    """
    options: Dict[str, Any] = {}
    unsupported: List[str] = []

    for pair in extract_query_string(url, marker).split("&"):
        if not pair:
            continue

        name, sep, raw_value = pair.partition("=")
        if not sep:
            unsupported.append(name)
            continue

        value = unquote_plus(raw_value)

        if name in ("startDate", "endDate"):
            options[name] = value
        elif name == "metrics":
            options[name] = value.split(",")
        elif name == "numOfPoints":
            try:
                options[name] = int(value)
            except ValueError:
                raise query_field_invalid(["numOfPoints"], f"'{value}' is not an integer")
        else:
            unsupported.append(name)

    return DecodedQuery(params=_build_params(options), unsupported=unsupported)


def build_resource_url(
    params: QueryParams,
    base_url: str = "https://localhost/",
    marker: str = DEFAULT_MARKER,
) -> str:
    """
    Encode a QueryParams as a resource URL understood by decode_resource_url().

    Raises:
        QueryDecodeError: If a metric name contains a comma (the URL list separator)
    """
    query: List[Tuple[str, str]] = [
        ("startDate", params.startDate),
        ("endDate", params.endDate),
        ("numOfPoints", str(params.numOfPoints)),
    ]
    if params.metrics is not None:
        if any("," in metric for metric in params.metrics):
            raise query_field_invalid(["metrics"], "metric names cannot contain ',' in a resource URL")
        query.append(("metrics", ",".join(params.metrics)))

    return f"{base_url}{marker}?{urlencode(query)}"


# =============================================================================
# TRANSPORT B - EXPLICIT CALL
# =============================================================================

def decode_call_params(raw: Union[str, bytes, Mapping[str, Any]]) -> QueryParams:
    """
    Parse an explicit-call request (JSON text or mapping) into a QueryParams.

    Raises:
        QueryDecodeError: If the input is not a JSON object or fields are missing/mistyped
    """
    if isinstance(raw, (str, bytes)):
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError as e:
            text = raw.decode("utf-8", "replace") if isinstance(raw, bytes) else raw
            raise query_malformed(str(e), raw=text)

    if not isinstance(raw, Mapping):
        raise query_malformed(f"expected a JSON object, got {type(raw).__name__}")

    return _build_params(raw)


# =============================================================================
# VALIDATION
# =============================================================================

def validate_date_range(params: QueryParams) -> QueryParams:
    """
    Raises:
        QueryValidationError: If startDate or endDate is empty
    """
    if not params.has_date_range:
        raise dates_missing()
    return params


def _build_params(options: Mapping[str, Any]) -> QueryParams:
    try:
        return QueryParams.model_validate(dict(options))
    except ValidationError as e:
        fields = sorted({str(err["loc"][0]) for err in e.errors() if err["loc"]})
        missing = all(err["type"] == "missing" for err in e.errors())
        raise query_field_invalid(fields, "missing" if missing else "wrong type")
