"""Key/value storage capability behind the session and history repositories.

Values are strings, as in browser storage; repositories own serialization.
Every successful `set` or `delete` notifies subscribers with the changed key.
"""
from __future__ import annotations

import logging
import threading
from typing import Callable, Dict, List, Optional, Protocol

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session as DbSession, sessionmaker

from autodiagram.db_models import KeyValueEntry
from autodiagram.errors import StorageError


logger = logging.getLogger(__name__)

KeyListener = Callable[[str], None]


class KeyValueStore(Protocol):
    def get(self, key: str) -> Optional[str]:
        ...

    def set(self, key: str, value: str) -> None:
        ...

    def delete(self, key: str) -> None:
        ...

    def keys(self, prefix: str = "") -> List[str]:
        ...

    def subscribe(self, listener: KeyListener) -> Callable[[], None]:
        ...


class _Subscribers:
    def __init__(self) -> None:
        self._listeners: List[KeyListener] = []
        self._lock = threading.Lock()

    def add(self, listener: KeyListener) -> Callable[[], None]:
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def notify(self, key: str) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(key)
            except Exception:
                # One broken observer must not fail the write that already happened.
                logger.exception("Storage listener failed", extra={"key": key})


def _check_quota(key: str, value: str, quota_bytes: Optional[int]) -> None:
    if quota_bytes is None:
        return
    size = len(value.encode("utf-8"))
    if size > quota_bytes:
        raise StorageError(f"Value for '{key}' is {size} bytes, over the {quota_bytes} byte quota")


class InMemoryKeyValueStore:
    def __init__(self, quota_bytes: Optional[int] = None):
        self.quota_bytes = quota_bytes
        self._data: Dict[str, str] = {}
        self._lock = threading.Lock()
        self._subscribers = _Subscribers()

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        _check_quota(key, value, self.quota_bytes)
        with self._lock:
            self._data[key] = value
        self._subscribers.notify(key)

    def delete(self, key: str) -> None:
        with self._lock:
            existed = self._data.pop(key, None) is not None
        if existed:
            self._subscribers.notify(key)

    def keys(self, prefix: str = "") -> List[str]:
        with self._lock:
            return sorted(k for k in self._data if k.startswith(prefix))

    def subscribe(self, listener: KeyListener) -> Callable[[], None]:
        return self._subscribers.add(listener)


class SqlKeyValueStore:
    """Key/value store persisted in the `kv_entries` table."""

    def __init__(self, session_factory: sessionmaker[DbSession], quota_bytes: Optional[int] = None):
        self.session_factory = session_factory
        self.quota_bytes = quota_bytes
        self._subscribers = _Subscribers()

    def get(self, key: str) -> Optional[str]:
        try:
            with self.session_factory() as db:
                row = db.get(KeyValueEntry, key)
                return row.value if row is not None else None
        except SQLAlchemyError as exc:
            logger.exception("Storage read failed", extra={"key": key})
            raise StorageError(f"Could not read '{key}'") from exc

    def set(self, key: str, value: str) -> None:
        _check_quota(key, value, self.quota_bytes)
        try:
            with self.session_factory() as db:
                row = db.get(KeyValueEntry, key)
                if row is None:
                    db.add(KeyValueEntry(key=key, value=value))
                else:
                    row.value = value
                db.commit()
        except SQLAlchemyError as exc:
            logger.exception("Storage write failed", extra={"key": key})
            raise StorageError(f"Could not write '{key}'") from exc
        self._subscribers.notify(key)

    def delete(self, key: str) -> None:
        try:
            with self.session_factory() as db:
                row = db.get(KeyValueEntry, key)
                if row is None:
                    return
                db.delete(row)
                db.commit()
        except SQLAlchemyError as exc:
            logger.exception("Storage delete failed", extra={"key": key})
            raise StorageError(f"Could not delete '{key}'") from exc
        self._subscribers.notify(key)

    def keys(self, prefix: str = "") -> List[str]:
        stmt = select(KeyValueEntry.key).order_by(KeyValueEntry.key)
        if prefix:
            stmt = stmt.where(KeyValueEntry.key.startswith(prefix, autoescape=True))
        try:
            with self.session_factory() as db:
                return list(db.scalars(stmt))
        except SQLAlchemyError as exc:
            logger.exception("Storage key listing failed")
            raise StorageError("Could not list stored keys") from exc

    def subscribe(self, listener: KeyListener) -> Callable[[], None]:
        return self._subscribers.add(listener)
