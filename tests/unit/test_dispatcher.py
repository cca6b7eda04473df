"""
Tests for the sync/async dispatch paths.
"""

import csv
import json

import pytest

from chartbridge.adapters import EngineQueryError, InMemoryEngine
from chartbridge.bridge import ChartBridge
from chartbridge.callbacks import CallbackKind
from chartbridge.errors import DataError, ErrorCode
from chartbridge.recorder import LOGGING_ENABLED


class FailingEngine(InMemoryEngine):
    ENGINE = "failing"

    def query(self, params):
        raise EngineQueryError("disk I/O error", engine=self.ENGINE)


def _success_payload(script, callback, args):
    prefix, suffix = f"{callback}('", f"','{args}')"
    assert script.startswith(prefix) and script.endswith(suffix)
    return json.loads(script[len(prefix):-len(suffix)])


class TestAsyncPath:
    """Tests for load_data()."""

    def test_success_wraps_engine_json(self, bridge, sink, january_query):
        """Test a January query against a populated store."""
        future = bridge.load_data(json.dumps(january_query), "newDataReceived", "left", "errorCB")
        invocation = future.result(timeout=5)

        assert invocation.kind == CallbackKind.SUCCESS
        assert sink.scripts == [invocation.script]

        payload = _success_payload(invocation.script, "newDataReceived", "left")
        assert payload["startDate"] == "2020-01-01"
        assert len(payload["points"]) == 10

    def test_empty_dates_use_error_callback(self, bridge, sink, january_query):
        """Test that empty dates are answered without calling the engine."""
        january_query["startDate"] = ""
        invocation = bridge.load_data(january_query, "newDataReceived", "left", "errorCB").result(timeout=5)

        assert invocation.kind == CallbackKind.ERROR
        assert sink.scripts == ["errorCB('No startDate or endDate provided')"]
        assert bridge.handle.engine.query_calls == 0

    def test_empty_result_uses_error_callback(self, empty_bridge, sink, january_query):
        invocation = empty_bridge.load_data(january_query, "cb", "", "errorCB").result(timeout=5)

        assert invocation.kind == CallbackKind.ERROR
        assert sink.scripts == ["errorCB('Failed to find any data in that range')"]

    def test_undecodable_request_is_dropped(self, bridge, sink):
        """Test that a decode failure delivers nothing and is recorded."""
        assert bridge.load_data("not json", "cb", "", "errorCB").result(timeout=5) is None

        assert sink.scripts == []
        assert bridge.diagnostics.recent(ErrorCode.ERR_QUERY_MALFORMED)

    def test_missing_error_callback(self, empty_bridge, sink, january_query):
        assert empty_bridge.load_data(january_query, "cb").result(timeout=5) is None
        assert sink.scripts == []

    def test_engine_failure_uses_error_callback(self, cache_config, data_schema, settings, sink, january_query):
        with ChartBridge(FailingEngine(), cache_config, data_schema, ":memory:", sink=sink, settings=settings) as failing:
            invocation = failing.load_data(january_query, "cb", "", "errorCB").result(timeout=5)
            assert failing.diagnostics.recent(ErrorCode.ERR_ENGINE_QUERY_FAILED)

        assert invocation.script == "errorCB('Data engine query failed')"

    def test_exactly_one_callback_per_request(self, bridge, sink, january_query):
        """Test that concurrent requests each complete exactly once."""
        empty_dates = dict(january_query, endDate="")
        futures = [
            bridge.load_data(january_query if i % 2 else empty_dates, "cb", str(i), "errorCB")
            for i in range(20)
        ]
        invocations = [future.result(timeout=5) for future in futures]

        assert len(sink.scripts) == 20
        assert sorted(sink.scripts) == sorted(inv.script for inv in invocations)
        assert sum(inv.kind == CallbackKind.SUCCESS for inv in invocations) == 10

    def test_query_is_recorded_when_logging(self, bridge, january_query):
        bridge.set_logging_option(LOGGING_ENABLED, True)
        bridge.load_data(january_query, "cb", "", "errorCB").result(timeout=5)

        with open(bridge.recorder.active_log_path, newline="") as f:
            rows = list(csv.reader(f))
        assert rows[1][2:] == ["10", "loadData()"]


class TestSyncPath:
    """Tests for sync_get_data() and resource interception."""

    def test_returns_engine_json(self, bridge, january_query):
        result = json.loads(bridge.sync_get_data(json.dumps(january_query)))
        assert [p["date"] for p in result["points"]][:2] == ["2020-01-01", "2020-01-02"]

    def test_metrics_filter(self, bridge, january_query):
        january_query["metrics"] = ["steps"]
        result = json.loads(bridge.sync_get_data(january_query))
        assert set(result["points"][0]) == {"date", "steps"}

    def test_empty_dates_return_empty_object(self, bridge, january_query):
        """Test that the sync path answers "{}" for empty dates without calling the engine."""
        january_query["endDate"] = ""
        assert bridge.sync_get_data(january_query) == "{}"
        assert bridge.handle.engine.query_calls == 0

    @pytest.mark.parametrize("request_text", ["", "{", '{"startDate": "a"}'])
    def test_undecodable_returns_empty_object(self, bridge, request_text):
        assert bridge.sync_get_data(request_text) == "{}"

    def test_empty_result(self, empty_bridge, january_query):
        assert empty_bridge.sync_get_data(january_query) == "{}"

    def test_engine_failure(self, cache_config, data_schema, settings, january_query):
        with ChartBridge(FailingEngine(), cache_config, data_schema, ":memory:", settings=settings) as failing:
            assert failing.sync_get_data(january_query) == "{}"

    def test_intercept_query_url(self, bridge):
        response = bridge.intercept_request(
            "https://localhost/tsdv?startDate=2020-01-03&endDate=2020-01-04&numOfPoints=40"
        )

        assert response.content_type == "application/json; charset=UTF-8"
        assert len(json.loads(response.text())["points"]) == 2

    def test_intercept_passes_other_urls_through(self, bridge):
        assert bridge.intercept_request("https://localhost/app.js") is None

    def test_intercept_ignores_marker_outside_path(self, bridge):
        """Test that the marker in the host or query string does not mark a query."""
        assert bridge.intercept_request("https://localhost/static/app.js?v=tsdv") is None
        assert bridge.intercept_request("https://tsdv.example.com/index.html") is None

    def test_intercept_reports_unsupported_keys(self, bridge):
        response = bridge.intercept_request(
            "https://localhost/tsdv?startDate=2020-01-03&zoom=4&endDate=2020-01-04&numOfPoints=40"
        )

        assert json.loads(response.text())["points"]
        records = bridge.diagnostics.recent(ErrorCode.ERR_UNSUPPORTED_PARAMETER)
        assert [r.message for r in records] == ["Unsupported parameter: zoom"]

    def test_intercept_bad_num_of_points(self, bridge):
        response = bridge.intercept_request(
            "https://localhost/tsdv?startDate=2020-01-03&endDate=2020-01-04&numOfPoints=x"
        )
        assert response.text() == "{}"


class TestAddData:
    """Tests for host-side inserts."""

    def test_points_must_be_a_list(self, empty_bridge):
        with pytest.raises(DataError):
            empty_bridge.add_data({"points": "2020-01-01"})

    def test_point_needs_date_key(self, empty_bridge):
        with pytest.raises(DataError) as exc_info:
            empty_bridge.add_data({"points": [{"steps": 1}]})
        assert exc_info.value.code == ErrorCode.ERR_DATA_INVALID

    def test_unknown_columns_rejected(self, empty_bridge):
        with pytest.raises(DataError) as exc_info:
            empty_bridge.add_data({"points": [{"date": "2020-01-01", "heartRate": 60}]})
        assert exc_info.value.details["columns"] == ["heartRate"]
        assert len(empty_bridge.handle.engine) == 0
