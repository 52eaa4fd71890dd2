from __future__ import annotations

import pytest

from adapters.metrics.noop import NoOpMetrics
from inspector.contracts import OPERATIONS, parse_request
from inspector.engine import InspectorEngine, start_engine
from inspector.errors.exceptions import EngineNotRunning, Unsupported, ValidationError


@pytest.fixture
def running(settings):
    with InspectorEngine(settings=settings) as eng:
        yield eng


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------


def test_lifecycle(settings):
    eng = InspectorEngine(settings=settings, metrics=NoOpMetrics())
    assert not eng.running
    with pytest.raises(EngineNotRunning):
        _ = eng.introspector

    assert eng.start() is eng
    assert eng.running
    first = eng.introspector
    eng.start()
    assert eng.introspector is first

    eng.stop()
    assert not eng.running
    with pytest.raises(EngineNotRunning):
        eng.call("list_data_sources", {})
    eng.stop()


def test_start_engine(settings):
    eng = start_engine(settings)
    try:
        assert eng.running
    finally:
        eng.stop()


def test_context_manager_stops(settings):
    with InspectorEngine(settings=settings) as eng:
        assert eng.running
    assert not eng.running


# ---------------------------------------------------------------------------
# call() contract
# ---------------------------------------------------------------------------


def test_list_data_sources(running):
    res = running.call("list_data_sources")
    assert res["ok"] is True
    assert [s["name"] for s in res["data"]] == ["room.db", "shop.db"]


def test_get_schema_accepts_database_alias(running):
    res = running.call("get_schema", {"database": "room.db"})
    assert res["ok"]
    assert res["data"]["orm_managed"] is True
    assert [t["name"] for t in res["data"]["tables"]] == ["notes"]


def test_build_erd(running):
    res = running.call("build_erd", {"source": "shop.db"})
    assert res["ok"]
    assert len(res["data"]["relationships"]) == 3


def test_list_rows_camel_case_page_size(running):
    res = running.call("list_rows", {"database": "shop.db", "table": "users", "pageSize": 2})
    assert res["ok"]
    data = res["data"]
    assert data["page_size"] == 2
    assert data["total_pages"] == 2
    assert data["rows"][0][1] == {"kind": "text", "value": "Alice"}


def test_run_query(running):
    res = running.call("run_query", {"source": "shop.db", "query": "SELECT COUNT(*) AS n FROM users"})
    assert res["ok"]
    assert res["data"]["rows"] == [[{"kind": "integer", "value": 3}]]


def test_run_query_policy_violation(running):
    res = running.call("run_query", {"source": "shop.db", "query": "DROP TABLE users"})
    assert res["ok"] is False
    assert res["error"]["code"] == "POLICY_VIOLATION"
    assert res["error"]["retryable"] is False


def test_mutations_round_trip(running):
    res = running.call(
        "insert_row", {"source": "shop.db", "table": "users", "values": {"id": 7, "name": "Eve"}}
    )
    assert res == {
        "ok": True,
        "data": {"status": "success", "message": "Row inserted successfully", "affected_rows": 1},
    }

    res = running.call(
        "update_row",
        {"source": "shop.db", "table": "users", "primaryKey": {"id": 7}, "values": {"name": "Eva"}},
    )
    assert res["ok"]

    res = running.call("delete_row", {"source": "shop.db", "table": "users", "primaryKey": {"id": 7}})
    assert res["ok"]

    res = running.call("delete_row", {"source": "shop.db", "table": "users", "primaryKey": {"id": 7}})
    assert res["ok"] is False
    assert res["error"]["code"] == "NOT_FOUND"


def test_preference_operations(running):
    assert running.call("create_preference_namespace", {"name": "app"})["ok"]
    res = running.call(
        "upsert_preference", {"name": "app", "key": "flag", "value": "TRUE", "type": "Boolean"}
    )
    assert res["ok"]

    listed = running.call("list_preferences")["data"]
    assert listed["total"] == 1
    assert listed["preferences"][0]["entries"] == [
        {"key": "flag", "type": "Boolean", "value": "true"}
    ]

    assert running.call("remove_preference_entry", {"namespace": "app", "key": "flag"})["ok"]
    assert running.call("remove_preference_namespace", {"namespace": "app"})["ok"]
    res = running.call("remove_preference_namespace", {"namespace": "app"})
    assert res["error"]["code"] == "NOT_FOUND"


def test_upsert_unknown_type(running):
    res = running.call(
        "upsert_preference", {"namespace": "app", "key": "k", "value": 1, "type": "Double"}
    )
    assert res["error"]["code"] == "UNSUPPORTED"


@pytest.mark.parametrize("value", ["\ud800", "a\x01b"])
def test_upsert_unstorable_text_is_an_error_response(running, value):
    assert running.call("create_preference_namespace", {"name": "app"})["ok"]

    res = running.call(
        "upsert_preference", {"namespace": "app", "key": "k", "value": value, "type": "String"}
    )

    assert res["ok"] is False
    assert res["error"]["code"] == "VALIDATION_ERROR"
    listed = running.call("list_preferences")["data"]
    assert listed["preferences"][0]["entries"] == []


def test_missing_field(running):
    res = running.call("list_rows", {"source": "shop.db"})
    assert res["ok"] is False
    assert res["error"]["code"] == "VALIDATION_ERROR"
    assert res["error"]["message"] == "Missing required field: table"


def test_missing_aliased_field_reports_field_name(running):
    res = running.call("get_schema", {})
    assert res["error"]["message"] == "Missing required field: source"


def test_unknown_operation(running):
    res = running.call("format_disk", {})
    assert res["error"]["code"] == "UNSUPPORTED"


def test_unknown_source(running):
    res = running.call("get_schema", {"source": "missing.db"})
    assert res["error"]["code"] == "NOT_FOUND"


def test_metrics_text(running):
    running.call("list_data_sources")
    text = running.metrics_text()
    assert "inspector_operation_calls_total" in text
    assert 'operation="list_data_sources"' in text
    assert "inspector_policy_blocks_total" in text


# ---------------------------------------------------------------------------
# Contracts
# ---------------------------------------------------------------------------


def test_every_operation_has_a_handler(running):
    for op in OPERATIONS:
        assert op in running._handlers


def test_parse_request_rejects_non_mapping():
    with pytest.raises(ValidationError):
        parse_request("get_schema", ["shop.db"])  # type: ignore[arg-type]


def test_parse_request_unknown_operation():
    with pytest.raises(Unsupported):
        parse_request("nope", {})


def test_parse_request_empty_string_is_missing():
    with pytest.raises(ValidationError) as ei:
        parse_request("run_query", {"source": "shop.db", "query": ""})
    assert ei.value.message == "Missing required field: query"


def test_parse_request_ignores_extra_fields():
    req = parse_request("list_rows", {"source": "a.db", "table": "t", "page": "2", "junk": 1})
    assert req.page == 2
