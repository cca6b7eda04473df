"""
Tests for cache/schema configuration and engine initialization.
"""

import json

import pytest
import yaml

from chartbridge.adapters import EngineInitError, InMemoryEngine
from chartbridge.configurator import (
    CacheConfig,
    ColumnType,
    DownsamplingFilter,
    configure,
    load_bridge_config,
    parse_cache_config,
    parse_data_schema,
)
from chartbridge.errors import ErrorCode, InitializationError


class RefusingEngine(InMemoryEngine):
    ENGINE = "refusing"

    def init(self, cache_setup, data_schema, storage_location, reset):
        raise EngineInitError("store is locked", engine=self.ENGINE)


class TestCacheConfig:
    """Tests for cache configuration parsing."""

    def test_parse_wire_shape(self, cache_config):
        config = parse_cache_config(cache_config)
        assert config.useCache is True
        assert [level.durationSeconds for level in config.downsamplingLevels] == [86400, 2592000, 31536000]
        assert config.fetchBehind == 2

    def test_parse_json_text(self, cache_config):
        assert parse_cache_config(json.dumps(cache_config)) == parse_cache_config(cache_config)

    def test_defaults(self):
        config = parse_cache_config({
            "useCache": False,
            "downsamplingLevels": [{"duration": 60, "numOfPoints": 10}],
        })
        assert config.cacheRawData is False
        assert config.downsamplingFilter == DownsamplingFilter.TIME_WEIGHTED_POINTS
        assert config.fetchAhead == 0

    def test_to_wire_uses_duration_key(self, cache_config):
        wire = parse_cache_config(cache_config).to_wire()
        assert wire["downsamplingLevels"][0] == {"duration": 86400, "numOfPoints": 100}
        assert wire["downsamplingFilter"] == "TIME_WEIGHTED_POINTS"

    def test_unsorted_levels_rejected(self, cache_config):
        """Test that levels are never reordered, only rejected."""
        cache_config["downsamplingLevels"].reverse()
        with pytest.raises(InitializationError) as exc_info:
            parse_cache_config(cache_config)
        assert exc_info.value.code == ErrorCode.ERR_CACHE_CONFIG_INVALID
        assert "ascending" in exc_info.value.message

    def test_duplicate_durations_rejected(self, cache_config):
        cache_config["downsamplingLevels"][1]["duration"] = 86400
        with pytest.raises(InitializationError):
            parse_cache_config(cache_config)

    def test_empty_levels_rejected(self, cache_config):
        cache_config["downsamplingLevels"] = []
        with pytest.raises(InitializationError) as exc_info:
            parse_cache_config(cache_config)
        assert "empty" in exc_info.value.message

    def test_non_positive_points_rejected(self, cache_config):
        cache_config["downsamplingLevels"][0]["numOfPoints"] = 0
        with pytest.raises(InitializationError):
            parse_cache_config(cache_config)

    def test_engine_specific_keys_pass_through(self, cache_config, data_schema):
        """Test that keys the bridge does not model still reach the engine."""
        cache_config["prefetch"] = True
        data_schema["partitioning"] = "monthly"
        assert parse_cache_config(cache_config).to_wire()["prefetch"] is True

        engine = InMemoryEngine()
        configure(cache_config, data_schema, ":memory:", False, engine)
        assert engine.cache_setup["prefetch"] is True
        assert engine.data_schema["partitioning"] == "monthly"

    def test_to_wire_returns_supplied_keys_only(self):
        """Test that defaults are not injected into the engine blob."""
        supplied = {"useCache": False, "downsamplingLevels": [{"duration": 60, "numOfPoints": 10}]}
        assert parse_cache_config(supplied).to_wire() == supplied

    def test_extra_keys_do_not_bypass_level_checks(self, cache_config):
        cache_config["prefetch"] = True
        cache_config["downsamplingLevels"].reverse()
        with pytest.raises(InitializationError):
            parse_cache_config(cache_config)

    def test_not_json(self):
        with pytest.raises(InitializationError) as exc_info:
            parse_cache_config("useCache: true")
        assert exc_info.value.code == ErrorCode.ERR_CACHE_CONFIG_INVALID

    def test_level_for_span(self, cache_config):
        config = CacheConfig.model_validate(cache_config)
        assert config.level_for_span(3600).durationSeconds == 86400
        assert config.level_for_span(86400).durationSeconds == 86400
        assert config.level_for_span(86401).durationSeconds == 2592000
        assert config.level_for_span(10 ** 9) is None


class TestDataSchema:
    """Tests for data schema parsing."""

    def test_parse_wire_shape(self, data_schema):
        schema = parse_data_schema(data_schema)
        assert schema.dateKeyColumn == "date"
        assert list(schema.columns) == ["date", "steps", "calories"]
        assert schema.columns["steps"] == ColumnType.INT
        assert schema.to_wire() == data_schema

    def test_date_key_must_be_a_column(self, data_schema):
        data_schema["date_key_column"] = "timestamp"
        with pytest.raises(InitializationError) as exc_info:
            parse_data_schema(data_schema)
        assert exc_info.value.code == ErrorCode.ERR_SCHEMA_INVALID

    def test_date_key_must_be_text(self, data_schema):
        data_schema["columns"]["date"] = "INT"
        with pytest.raises(InitializationError) as exc_info:
            parse_data_schema(data_schema)
        assert "TEXT" in exc_info.value.message

    def test_unknown_column_type(self, data_schema):
        data_schema["columns"]["steps"] = "BLOB"
        with pytest.raises(InitializationError):
            parse_data_schema(data_schema)

    def test_empty_columns(self, data_schema):
        data_schema["columns"] = {}
        with pytest.raises(InitializationError):
            parse_data_schema(data_schema)


class TestConfigure:
    """Tests for one-time engine initialization."""

    def test_memory_location(self, cache_config, data_schema):
        engine = InMemoryEngine()
        handle = configure(cache_config, data_schema, ":memory:", False, engine)

        assert engine.is_initialized()
        assert handle.engine_name == "memory"
        assert engine.cache_setup["downsamplingLevels"][0]["duration"] == 86400
        assert engine.data_schema["date_key_column"] == "date"

    def test_creates_storage_directory(self, cache_config, data_schema, tmp_path):
        location = tmp_path / "nested" / "series.db"
        handle = configure(cache_config, data_schema, str(location), True, InMemoryEngine())

        assert location.parent.is_dir()
        assert handle.storage_location == str(location)

    def test_unwritable_storage_is_fatal(self, cache_config, data_schema, tmp_path):
        """Test that the engine is never touched when storage cannot be written."""
        blocker = tmp_path / "blocker"
        blocker.write_text("not a directory")
        engine = InMemoryEngine()

        with pytest.raises(InitializationError) as exc_info:
            configure(cache_config, data_schema, str(blocker / "series.db"), False, engine)

        assert exc_info.value.code == ErrorCode.ERR_STORAGE_NOT_WRITABLE
        assert not engine.is_initialized()

    def test_invalid_config_is_fatal_before_engine(self, cache_config, data_schema):
        cache_config["downsamplingLevels"].reverse()
        engine = InMemoryEngine()

        with pytest.raises(InitializationError):
            configure(cache_config, data_schema, ":memory:", False, engine)
        assert not engine.is_initialized()

    def test_engine_init_failure(self, cache_config, data_schema):
        with pytest.raises(InitializationError) as exc_info:
            configure(cache_config, data_schema, ":memory:", False, RefusingEngine())

        assert exc_info.value.code == ErrorCode.ERR_ENGINE_INIT_FAILED
        assert "store is locked" in exc_info.value.message

    def test_reset_clears_existing_points(self, cache_config, data_schema, sample_points):
        engine = InMemoryEngine()
        configure(cache_config, data_schema, ":memory:", False, engine)
        engine.insert({"points": sample_points})

        configure(cache_config, data_schema, ":memory:", True, engine)
        assert len(engine) == 0


class TestBridgeConfigFile:
    """Tests for loading cache and schema from YAML."""

    def test_load_yaml(self, cache_config, data_schema, tmp_path):
        path = tmp_path / "bridge.yaml"
        path.write_text(yaml.safe_dump({"cache": cache_config, "schema": data_schema}))

        config = load_bridge_config(path)
        assert config.cache == parse_cache_config(cache_config)
        assert config.schema.table == "data"

    def test_missing_section(self, cache_config, tmp_path):
        path = tmp_path / "bridge.yaml"
        path.write_text(yaml.safe_dump({"cache": cache_config}))

        with pytest.raises(InitializationError) as exc_info:
            load_bridge_config(path)
        assert exc_info.value.code == ErrorCode.ERR_CONFIG_FILE_INVALID

    def test_missing_file(self, tmp_path):
        with pytest.raises(InitializationError) as exc_info:
            load_bridge_config(tmp_path / "absent.yaml")
        assert exc_info.value.code == ErrorCode.ERR_CONFIG_FILE_INVALID

    def test_invalid_section_reports_section_error(self, cache_config, data_schema, tmp_path):
        data_schema["columns"]["date"] = "REAL"
        path = tmp_path / "bridge.yaml"
        path.write_text(yaml.safe_dump({"cache": cache_config, "schema": data_schema}))

        with pytest.raises(InitializationError) as exc_info:
            load_bridge_config(path)
        assert exc_info.value.code == ErrorCode.ERR_SCHEMA_INVALID
