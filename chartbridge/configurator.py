"""
Cache/Schema Configurator for ChartBridge

Validates and freezes the caching/downsampling configuration and the data
schema, then initializes the data engine port exactly once.

CACHE CONFIGURATION (wire shape):
---------------------------------
{
    "useCache": true,
    "cacheRawData": true,
    "downsamplingFilter": "TIME_WEIGHTED_POINTS",
    "fetchAhead": 1,
    "fetchBehind": 2,
    "downsamplingLevels": [
        {"duration": 86400, "numOfPoints": 100},
        {"duration": 31536000, "numOfPoints": 100}
    ]
}

DATA SCHEMA (wire shape):
-------------------------
{
    "table": "data",
    "date_key_column": "date",
    "columns": {"date": "TEXT", "calories": "REAL", "steps": "INT"}
}

INVARIANTS:
-----------
- downsamplingLevels is non-empty and strictly ascending by duration; an
  out-of-order sequence is rejected, never reordered
- the date key column exists in columns and is TEXT
- the storage location is writable before the engine is touched

Any violation raises InitializationError, which is fatal for the bridge.
"""

import os
import json
import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Tuple, Union

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from chartbridge.adapters.base import DataEnginePort, DataResponse, EngineError
from chartbridge.errors import (
    InitializationError,
    cache_config_invalid,
    config_file_invalid,
    engine_init_failed,
    schema_invalid,
    storage_not_writable,
)
from chartbridge.protocol import QueryParams

logger = logging.getLogger(__name__)

MEMORY_LOCATION = ":memory:"


# =============================================================================
# CONFIGURATION MODELS
# =============================================================================

class DownsamplingFilter(str, Enum):
    """Downsampling strategy the engine applies."""
    POINTS = "POINTS"
    TIME_WEIGHTED_POINTS = "TIME_WEIGHTED_POINTS"


class ColumnType(str, Enum):
    """Column storage types understood by the engine."""
    TEXT = "TEXT"
    REAL = "REAL"
    INT = "INT"


class DownsamplingLevel(BaseModel):
    """Point budget for requests spanning at most durationSeconds."""
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="allow")

    durationSeconds: int = Field(alias="duration", gt=0)
    numOfPoints: int = Field(gt=0)


class CacheConfig(BaseModel):
    """
    Caching/downsampling configuration, immutable once built.

    cacheRawData defaults to False and downsamplingFilter to
    TIME_WEIGHTED_POINTS when absent from the wire shape. Keys the bridge
    does not know are kept for the engine; to_wire() returns only what was
    supplied, so the engine sees the blob as given.
    """
    model_config = ConfigDict(frozen=True, extra="allow")

    useCache: bool
    cacheRawData: bool = False
    downsamplingFilter: DownsamplingFilter = DownsamplingFilter.TIME_WEIGHTED_POINTS
    downsamplingLevels: Tuple[DownsamplingLevel, ...]
    fetchAhead: int = Field(default=0, ge=0)
    fetchBehind: int = Field(default=0, ge=0)

    @field_validator("downsamplingLevels")
    @classmethod
    def _levels_sorted(cls, levels: Tuple[DownsamplingLevel, ...]) -> Tuple[DownsamplingLevel, ...]:
        if not levels:
            raise ValueError("downsamplingLevels must not be empty")
        durations = [level.durationSeconds for level in levels]
        if any(a >= b for a, b in zip(durations, durations[1:])):
            raise ValueError(
                f"downsamplingLevels must be sorted ascending by duration, got {durations}"
            )
        return levels

    def level_for_span(self, span_seconds: float) -> Optional[DownsamplingLevel]:
        """Smallest tier whose duration covers the span, or None if the span exceeds every tier."""
        for level in self.downsamplingLevels:
            if span_seconds <= level.durationSeconds:
                return level
        return None

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_unset=True)


class DataSchema(BaseModel):
    """Table layout; column insertion order is display order."""
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="allow")

    table: str = Field(min_length=1)
    dateKeyColumn: str = Field(alias="date_key_column", min_length=1)
    columns: Dict[str, ColumnType]

    @model_validator(mode="after")
    def _date_key_is_text_column(self) -> "DataSchema":
        if not self.columns:
            raise ValueError("columns must not be empty")
        key_type = self.columns.get(self.dateKeyColumn)
        if key_type is None:
            raise ValueError(f"date_key_column '{self.dateKeyColumn}' is not in columns")
        if key_type != ColumnType.TEXT:
            raise ValueError(f"date_key_column '{self.dateKeyColumn}' must be TEXT, got {key_type.value}")
        return self

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_unset=True)


# =============================================================================
# PARSING
# =============================================================================

CacheConfigInput = Union[CacheConfig, Mapping[str, Any], str]
DataSchemaInput = Union[DataSchema, Mapping[str, Any], str]


def _load_blob(raw: Union[Mapping[str, Any], str], name: str) -> Mapping[str, Any]:
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError as e:
            raise ValueError(f"{name} is not valid JSON: {e}")
    if not isinstance(raw, Mapping):
        raise ValueError(f"{name} must be a JSON object, got {type(raw).__name__}")
    return raw


def _errors_detail(error: ValidationError) -> Dict[str, Any]:
    return {
        "errors": [
            {"loc": ".".join(str(p) for p in err["loc"]), "msg": err["msg"]}
            for err in error.errors()
        ]
    }


def parse_cache_config(raw: CacheConfigInput) -> CacheConfig:
    """
    Raises:
        InitializationError: If the configuration is malformed or levels are unsorted/empty
    """
    if isinstance(raw, CacheConfig):
        return raw
    try:
        return CacheConfig.model_validate(dict(_load_blob(raw, "cache configuration")))
    except ValueError as e:
        if isinstance(e, ValidationError):
            detail = _errors_detail(e)
            raise cache_config_invalid(detail["errors"][0]["msg"], detail)
        raise cache_config_invalid(str(e))


def parse_data_schema(raw: DataSchemaInput) -> DataSchema:
    """
    Raises:
        InitializationError: If the schema is malformed or the date key column is unusable
    """
    if isinstance(raw, DataSchema):
        return raw
    try:
        return DataSchema.model_validate(dict(_load_blob(raw, "data schema")))
    except ValueError as e:
        if isinstance(e, ValidationError):
            detail = _errors_detail(e)
            raise schema_invalid(detail["errors"][0]["msg"], detail)
        raise schema_invalid(str(e))


@dataclass(frozen=True)
class BridgeConfig:
    """Both configuration blobs, as loaded from a config file."""
    cache: CacheConfig
    schema: DataSchema


def load_bridge_config(path: Union[str, Path]) -> BridgeConfig:
    """
    Load a YAML (or JSON) file with "cache" and "schema" sections.

    Raises:
        InitializationError: If the file is unreadable or either section is invalid
    """
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        raise config_file_invalid(str(path), str(e))

    if not isinstance(data, dict) or "cache" not in data or "schema" not in data:
        raise config_file_invalid(str(path), "expected top-level 'cache' and 'schema' sections")

    return BridgeConfig(
        cache=parse_cache_config(data["cache"]),
        schema=parse_data_schema(data["schema"]),
    )


# =============================================================================
# ENGINE HANDLE
# =============================================================================

@dataclass(frozen=True)
class EngineHandle:
    """An initialized engine together with the frozen configuration it was given."""
    engine: DataEnginePort
    cache_config: CacheConfig
    data_schema: DataSchema
    storage_location: str

    @property
    def engine_name(self) -> str:
        return self.engine.ENGINE

    def query(self, params: QueryParams) -> Optional[DataResponse]:
        return self.engine.query(params.to_engine_params())

    def insert(self, data_values: Dict[str, Any]) -> None:
        self.engine.insert(data_values)


def ensure_writable(storage_location: str) -> Path:
    """
    Make sure the directory that will hold the engine store is writable.

    Raises:
        InitializationError: If the directory cannot be created or written
    """
    path = Path(storage_location)
    directory = path if path.is_dir() else path.parent

    try:
        directory.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise storage_not_writable(str(directory), str(e))

    if not os.access(directory, os.W_OK):
        raise storage_not_writable(str(directory))

    logger.debug(f"Storage directory {directory} is writable")
    return directory


def configure(
    cache_config: CacheConfigInput,
    data_schema: DataSchemaInput,
    storage_location: str,
    reset_existing: bool,
    engine: DataEnginePort,
) -> EngineHandle:
    """
    Validate configuration, check storage access and initialize the engine.

    Args:
        cache_config: CacheConfig, mapping, or JSON text
        data_schema: DataSchema, mapping, or JSON text
        storage_location: Path of the engine store, or ":memory:"
        reset_existing: Delete all existing data in the store
        engine: Engine port to initialize

    Returns:
        EngineHandle ready for queries

    Raises:
        InitializationError: On any invalid input or engine failure (fatal)
    """
    cache = parse_cache_config(cache_config)
    schema = parse_data_schema(data_schema)

    if storage_location != MEMORY_LOCATION:
        ensure_writable(storage_location)

    try:
        engine.init(cache.to_wire(), schema.to_wire(), storage_location, reset_existing)
    except EngineError as e:
        error = engine_init_failed(engine.ENGINE, str(e))
        error.log()
        raise error from e

    logger.info(
        f"Engine '{engine.ENGINE}' initialized: table={schema.table}, "
        f"levels={len(cache.downsamplingLevels)}, useCache={cache.useCache}"
    )
    return EngineHandle(
        engine=engine,
        cache_config=cache,
        data_schema=schema,
        storage_location=storage_location,
    )


__all__ = [
    "BridgeConfig",
    "CacheConfig",
    "ColumnType",
    "DataSchema",
    "DownsamplingFilter",
    "DownsamplingLevel",
    "EngineHandle",
    "InitializationError",
    "configure",
    "ensure_writable",
    "load_bridge_config",
    "parse_cache_config",
    "parse_data_schema",
]
