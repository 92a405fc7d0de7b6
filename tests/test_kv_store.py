from __future__ import annotations

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from autodiagram.db import Base
from autodiagram.errors import StorageError
from autodiagram.store import InMemoryKeyValueStore, SqlKeyValueStore


def _sql_store(quota_bytes=None):
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    return SqlKeyValueStore(sessionmaker(bind=engine, autocommit=False, autoflush=False), quota_bytes=quota_bytes)


@pytest.fixture(params=["memory", "sql"])
def make_store(request):
    if request.param == "memory":
        return lambda quota_bytes=None: InMemoryKeyValueStore(quota_bytes=quota_bytes)
    return _sql_store


def test_set_get_and_overwrite(make_store):
    store = make_store()
    assert store.get("session-a") is None
    store.set("session-a", "{}")
    store.set("session-a", '{"prompt": "x"}')
    assert store.get("session-a") == '{"prompt": "x"}'


def test_keys_filters_by_prefix(make_store):
    store = make_store()
    store.set("session-b", "1")
    store.set("session-a", "2")
    store.set("chart-history", "[]")
    assert store.keys("session-") == ["session-a", "session-b"]
    assert store.keys() == ["chart-history", "session-a", "session-b"]


def test_delete_notifies_only_existing_keys(make_store):
    store = make_store()
    seen = []
    store.subscribe(seen.append)
    store.delete("missing")
    store.set("recent-sessions", "[]")
    store.delete("recent-sessions")
    assert store.get("recent-sessions") is None
    assert seen == ["recent-sessions", "recent-sessions"]


def test_quota_rejects_oversized_value_without_writing(make_store):
    store = make_store(quota_bytes=16)
    seen = []
    store.subscribe(seen.append)
    with pytest.raises(StorageError):
        store.set("chart-history", "x" * 17)
    assert store.get("chart-history") is None
    assert seen == []


def test_unsubscribe_and_failing_listener(make_store):
    store = make_store()
    seen = []

    def broken(key):
        raise RuntimeError("listener bug")

    store.subscribe(broken)
    unsubscribe = store.subscribe(seen.append)
    store.set("a", "1")
    unsubscribe()
    store.set("b", "2")
    assert seen == ["a"]
    assert store.get("b") == "2"
