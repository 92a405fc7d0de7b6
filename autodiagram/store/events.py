"""Publish/subscribe hub for "history changed" notifications."""
from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Callable, List, Optional


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class HistoryChanged:
    session_id: Optional[str]
    reason: str


HistoryListener = Callable[[HistoryChanged], None]


class HistoryEvents:
    def __init__(self) -> None:
        self._listeners: List[HistoryListener] = []
        self._lock = threading.Lock()

    def subscribe(self, listener: HistoryListener) -> Callable[[], None]:
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def publish(self, event: HistoryChanged) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(event)
            except Exception:
                logger.exception("History listener failed", extra={"session_id": event.session_id})
