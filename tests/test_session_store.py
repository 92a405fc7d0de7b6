from __future__ import annotations

import threading
from datetime import datetime, timezone

import pytest

from autodiagram.errors import (
    ChartNotFoundError,
    ConcurrentUpdateError,
    InvalidRequestError,
    ResultNotFoundError,
    SessionNotFoundError,
    StorageError,
    VersionOutOfRangeError,
)
from autodiagram.models.contracts import FixAttempt
from autodiagram.models.plan import Plan
from autodiagram.models.session import ChartSource, ChartStatus, ChartVersionData
from autodiagram.store import InMemoryKeyValueStore, SessionStore
from autodiagram.store.session_store import session_key


def _version(chart="flowchart TD\n A --> B", source=ChartSource.GENERATION, error=None):
    status = ChartStatus.COMPLETED if error is None else ChartStatus.RENDER_FAILED
    return ChartVersionData(chart=chart, rationale="r", source=source, error=error, status=status)


@pytest.fixture()
def store():
    return SessionStore(InMemoryKeyValueStore())


@pytest.fixture()
def chart_ids(store):
    session_id = store.create_session("Show me how user authentication works")
    result = store.append_result(session_id, "Show me how user authentication works")
    chart = store.add_chart(session_id, result.id, Plan(type="flowchart", description="Login checks"), _version())
    return session_id, result.id, chart.id


def test_create_and_load_session(store):
    session_id = store.create_session("Explain TLS")
    session = store.get_session(session_id)
    assert session.id == session_id
    assert session.prompt == "Explain TLS"
    assert session.results == []
    assert store.load_session("missing") is None


def test_missing_records_raise_not_found(store, chart_ids):
    session_id, result_id, chart_id = chart_ids
    with pytest.raises(SessionNotFoundError):
        store.get_session("missing")
    with pytest.raises(SessionNotFoundError):
        store.append_result("missing", "prompt")
    with pytest.raises(ResultNotFoundError):
        store.get_chart(session_id, "missing", chart_id)
    with pytest.raises(ChartNotFoundError):
        store.add_chart_version(session_id, result_id, "missing", _version())


def test_versions_are_monotonic_and_do_not_move_pointer(store, chart_ids):
    session_id, result_id, chart_id = chart_ids
    v2 = store.add_chart_version(session_id, result_id, chart_id, _version(source=ChartSource.FIX, error="Parse error on line 2"))
    v3 = store.add_chart_version(session_id, result_id, chart_id, _version(source=ChartSource.FIX))
    chart = store.get_chart(session_id, result_id, chart_id)
    assert [v.version for v in chart.versions] == [1, 2, 3]
    assert (v2.version, v3.version) == (2, 3)
    assert chart.current_version == 0
    assert chart.versions[1].error == "Parse error on line 2"
    assert chart.versions[1].source == ChartSource.FIX


def test_add_version_with_advance_moves_pointer(store, chart_ids):
    session_id, result_id, chart_id = chart_ids
    store.add_chart_version(session_id, result_id, chart_id, _version(source=ChartSource.FIX), advance=True)
    assert store.get_chart(session_id, result_id, chart_id).current_version == 1


def test_set_current_version_bounds(store, chart_ids):
    session_id, result_id, chart_id = chart_ids
    store.add_chart_version(session_id, result_id, chart_id, _version(source=ChartSource.FIX))
    chart = store.set_current_version(session_id, result_id, chart_id, 1)
    assert chart.current_version == 1
    assert chart.current.version == 2

    for index in (-1, 2):
        with pytest.raises(VersionOutOfRangeError):
            store.set_current_version(session_id, result_id, chart_id, index)
    assert store.get_chart(session_id, result_id, chart_id).current_version == 1


def test_fix_attempts_accumulate(store, chart_ids):
    session_id, result_id, chart_id = chart_ids
    store.add_fix_attempt(session_id, result_id, chart_id, FixAttempt(chart="a", error="e1"))
    chart = store.add_fix_attempt(session_id, result_id, chart_id, FixAttempt(chart="b", error="e2", explanation="x"))
    assert [a.chart for a in chart.fix_attempts] == ["a", "b"]
    assert chart.fix_attempts[1].explanation == "x"


def test_revision_increments_on_every_mutation(store, chart_ids):
    session_id, result_id, chart_id = chart_ids
    before = store.get_session(session_id).revision
    store.add_chart_version(session_id, result_id, chart_id, _version())
    assert store.get_session(session_id).revision == before + 1


def test_sync_last_writer_wins(store, chart_ids):
    session_id, _, _ = chart_ids
    store.sync_session(session_id, {"prompt": "first"})
    session = store.sync_session(session_id, {"prompt": "second"})
    assert session.prompt == "second"
    assert len(session.results) == 1


def test_sync_replaces_results_from_camel_case_documents(store, chart_ids):
    session_id, _, _ = chart_ids
    document = store.get_session(session_id).model_dump(mode="json", by_alias=True)
    document["results"][0]["charts"][0]["plan"]["description"] = "Edited elsewhere"
    session = store.sync_session(session_id, {"results": document["results"]})
    assert session.results[0].charts[0].plan.description == "Edited elsewhere"


def test_sync_with_stale_revision_conflicts(store, chart_ids):
    session_id, result_id, chart_id = chart_ids
    seen = store.get_session(session_id).revision
    store.add_chart_version(session_id, result_id, chart_id, _version())
    with pytest.raises(ConcurrentUpdateError):
        store.sync_session(session_id, {"prompt": "mine"}, expected_revision=seen)
    assert store.get_session(session_id).prompt != "mine"


def test_sync_rejects_unknown_fields_and_broken_invariants(store, chart_ids):
    session_id, _, _ = chart_ids
    with pytest.raises(InvalidRequestError):
        store.sync_session(session_id, {"revision": 99})

    document = store.get_session(session_id).model_dump(mode="json", by_alias=True)
    document["results"][0]["charts"][0]["currentVersion"] = 5
    with pytest.raises(InvalidRequestError):
        store.sync_session(session_id, {"results": document["results"]})


def test_corrupt_session_is_storage_error_and_skipped_in_listing(store):
    good = store.create_session("fine")
    store.kv.set(session_key("broken"), "{not json")
    with pytest.raises(StorageError):
        store.get_session("broken")
    assert [s.id for s in store.list_sessions()] == [good]


def test_list_sessions_newest_first_and_discard(store):
    first = store.create_session("one")
    older = store.get_session(first)
    older.created_at = datetime(2024, 1, 1, tzinfo=timezone.utc)
    store.kv.set(session_key(first), older.model_dump_json(by_alias=True))
    second = store.create_session("two")
    assert [s.id for s in store.list_sessions()] == [second, first]
    store.discard_session(second)
    assert [s.id for s in store.list_sessions()] == [first]


def test_concurrent_appends_are_not_lost(store):
    session_id = store.create_session("parallel")

    def append(n):
        store.append_result(session_id, f"prompt {n}")

    threads = [threading.Thread(target=append, args=(n,)) for n in range(20)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()
    session = store.get_session(session_id)
    assert len(session.results) == 20
    assert session.revision == 20
