"""Completed-session history and the recent-sessions index."""
from __future__ import annotations

import json
import logging
import threading
from typing import List, Optional

from pydantic import TypeAdapter, ValidationError

from autodiagram.errors import StorageError
from autodiagram.models.history import HistorySession
from autodiagram.store.events import HistoryChanged, HistoryEvents
from autodiagram.store.kv import KeyValueStore
from autodiagram.utils.config import settings


logger = logging.getLogger(__name__)

CHART_HISTORY_KEY = "chart-history"
RECENT_SESSIONS_KEY = "recent-sessions"

_HISTORY_ADAPTER = TypeAdapter(List[HistorySession])


class HistoryStore:
    def __init__(
        self,
        kv: KeyValueStore,
        events: Optional[HistoryEvents] = None,
        *,
        recent_limit: Optional[int] = None,
    ):
        self.kv = kv
        self.events = events or HistoryEvents()
        self.recent_limit = recent_limit if recent_limit is not None else settings.recent_sessions_limit
        self._lock = threading.Lock()
        self._local = threading.local()
        self._unsubscribe = kv.subscribe(self._on_key_changed)

    def close(self) -> None:
        self._unsubscribe()

    def _on_key_changed(self, key: str) -> None:
        # Writes made through this instance publish their own, richer event.
        if key != CHART_HISTORY_KEY or getattr(self._local, "writing", False):
            return
        self.events.publish(HistoryChanged(session_id=None, reason="external"))

    def _write_history(self, entries: List[HistorySession]) -> None:
        payload = _HISTORY_ADAPTER.dump_json(entries, by_alias=True).decode("utf-8")
        self._local.writing = True
        try:
            self.kv.set(CHART_HISTORY_KEY, payload)
        finally:
            self._local.writing = False

    def _load_history(self) -> List[HistorySession]:
        raw = self.kv.get(CHART_HISTORY_KEY)
        if not raw:
            return []
        try:
            return _HISTORY_ADAPTER.validate_json(raw)
        except ValidationError as exc:
            raise StorageError(f"Stored '{CHART_HISTORY_KEY}' is corrupt") from exc

    def list_history(self) -> List[HistorySession]:
        raw = self.kv.get(CHART_HISTORY_KEY)
        if not raw:
            return []
        try:
            return _HISTORY_ADAPTER.validate_json(raw)
        except ValidationError:
            logger.warning("Discarding unreadable chart history", extra={"key": CHART_HISTORY_KEY})
            return []

    def get(self, session_id: str) -> Optional[HistorySession]:
        return next((entry for entry in self.list_history() if entry.id == session_id), None)

    def record(self, entry: HistorySession) -> None:
        """Store a completed session, replacing any earlier entry with the same id.

        Raises `StorageError` rather than overwrite history that does not parse.
        """
        with self._lock:
            entries = [existing for existing in self._load_history() if existing.id != entry.id]
            entries.insert(0, entry)
            self._write_history(entries)
            self._remember(entry.id)
        logger.info("Recorded session history", extra={"session_id": entry.id, "charts": len(entry.charts)})
        self.events.publish(HistoryChanged(session_id=entry.id, reason="recorded"))

    def recent_session_ids(self) -> List[str]:
        raw = self.kv.get(RECENT_SESSIONS_KEY)
        if not raw:
            return []
        try:
            ids = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Discarding unreadable recent-sessions index")
            return []
        if not isinstance(ids, list):
            return []
        return [str(item) for item in ids][: self.recent_limit]

    def remember_recent(self, session_id: str) -> None:
        with self._lock:
            self._remember(session_id)

    def _remember(self, session_id: str) -> None:
        ids = [existing for existing in self.recent_session_ids() if existing != session_id]
        ids.insert(0, session_id)
        self.kv.set(RECENT_SESSIONS_KEY, json.dumps(ids[: self.recent_limit]))

    def clear(self) -> None:
        with self._lock:
            self._local.writing = True
            try:
                self.kv.delete(CHART_HISTORY_KEY)
            finally:
                self._local.writing = False
            self.kv.delete(RECENT_SESSIONS_KEY)
        self.events.publish(HistoryChanged(session_id=None, reason="cleared"))
