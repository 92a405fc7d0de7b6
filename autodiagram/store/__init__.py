from autodiagram.store.events import HistoryChanged, HistoryEvents
from autodiagram.store.history import CHART_HISTORY_KEY, RECENT_SESSIONS_KEY, HistoryStore
from autodiagram.store.kv import InMemoryKeyValueStore, KeyValueStore, SqlKeyValueStore
from autodiagram.store.session_store import SessionStore, session_key

__all__ = [
    "CHART_HISTORY_KEY",
    "RECENT_SESSIONS_KEY",
    "HistoryChanged",
    "HistoryEvents",
    "HistoryStore",
    "InMemoryKeyValueStore",
    "KeyValueStore",
    "SessionStore",
    "SqlKeyValueStore",
    "session_key",
]
