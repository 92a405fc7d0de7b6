"""Session repository over the key/value store.

Each session is one JSON document under `session-<id>`. Every mutation is a
read-modify-write under a per-session lock, re-validated against the model
invariants before it is written, and bumps the session `revision`.
"""
from __future__ import annotations

import logging
import threading
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple

from pydantic import ValidationError

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
from autodiagram.models.session import (
    Chart,
    ChartVersion,
    ChartVersionData,
    Result,
    Session,
    new_id,
    utcnow,
)
from autodiagram.store.kv import KeyValueStore


logger = logging.getLogger(__name__)

SESSION_KEY_PREFIX = "session-"

# Fields a coarse-grained sync may replace.
_SYNCABLE_FIELDS = {"prompt": "prompt", "results": "results"}


def session_key(session_id: str) -> str:
    return f"{SESSION_KEY_PREFIX}{session_id}"


class SessionStore:
    def __init__(self, kv: KeyValueStore):
        self.kv = kv
        self._locks: Dict[str, threading.RLock] = {}
        self._locks_guard = threading.Lock()

    def _lock_for(self, session_id: str) -> threading.RLock:
        with self._locks_guard:
            return self._locks.setdefault(session_id, threading.RLock())

    def _save(self, session: Session) -> None:
        self.kv.set(session_key(session.id), session.model_dump_json(by_alias=True))

    def _mutate(self, session_id: str, change: Callable[[Session], Any]) -> Tuple[Session, Any]:
        with self._lock_for(session_id):
            session = self.load_session(session_id)
            if session is None:
                raise SessionNotFoundError(session_id)
            outcome = change(session)
            session.revision += 1
            session.updated_at = utcnow()
            try:
                checked = Session.model_validate(session.model_dump())
            except ValidationError as exc:
                raise InvalidRequestError(f"Update would break session invariants: {exc}") from exc
            self._save(checked)
            return checked, outcome

    def create_session(self, initial_prompt: str = "", *, session_id: Optional[str] = None) -> str:
        """Allocate and persist an empty session; no network I/O."""
        session = Session(id=session_id or new_id(), prompt=initial_prompt)
        with self._lock_for(session.id):
            self._save(session)
        logger.info("Created session", extra={"session_id": session.id})
        return session.id

    def load_session(self, session_id: str) -> Optional[Session]:
        raw = self.kv.get(session_key(session_id))
        if raw is None:
            return None
        try:
            return Session.model_validate_json(raw)
        except ValidationError as exc:
            logger.error("Stored session is unreadable", extra={"session_id": session_id})
            raise StorageError(f"Stored session {session_id} is corrupt") from exc

    def get_session(self, session_id: str) -> Session:
        session = self.load_session(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        return session

    def get_chart(self, session_id: str, result_id: str, chart_id: str) -> Chart:
        return _find_chart(_find_result(self.get_session(session_id), result_id), chart_id)

    def list_sessions(self) -> List[Session]:
        sessions: List[Session] = []
        for key in self.kv.keys(SESSION_KEY_PREFIX):
            session_id = key[len(SESSION_KEY_PREFIX):]
            try:
                session = self.load_session(session_id)
            except StorageError:
                logger.warning("Skipping unreadable session", extra={"session_id": session_id})
                continue
            if session is not None:
                sessions.append(session)
        sessions.sort(key=lambda s: s.created_at, reverse=True)
        return sessions

    def discard_session(self, session_id: str) -> None:
        with self._lock_for(session_id):
            self.kv.delete(session_key(session_id))
        with self._locks_guard:
            self._locks.pop(session_id, None)

    def append_result(
        self,
        session_id: str,
        prompt: str,
        plans: Sequence[Plan] = (),
        *,
        result_id: Optional[str] = None,
    ) -> Result:
        result = Result(id=result_id or new_id(), prompt=prompt, plans=list(plans))

        def change(session: Session) -> None:
            session.results.append(result)

        self._mutate(session_id, change)
        return result

    def set_result_plans(self, session_id: str, result_id: str, plans: Sequence[Plan]) -> None:
        def change(session: Session) -> None:
            result = _find_result(session, result_id)
            result.plans = list(plans)
            result.updated_at = utcnow()

        self._mutate(session_id, change)

    def add_chart(
        self,
        session_id: str,
        result_id: str,
        plan: Plan,
        first_version: ChartVersionData,
        *,
        chart_id: Optional[str] = None,
        fix_attempts: Sequence[FixAttempt] = (),
    ) -> Chart:
        """Create a chart together with its first version."""

        def change(session: Session) -> str:
            result = _find_result(session, result_id)
            chart = Chart(
                id=chart_id or new_id(),
                plan=plan,
                versions=[ChartVersion(version=1, **_version_fields(first_version))],
                fix_attempts=list(fix_attempts),
            )
            result.charts.append(chart)
            result.updated_at = utcnow()
            return chart.id

        session, new_chart_id = self._mutate(session_id, change)
        return _find_chart(_find_result(session, result_id), new_chart_id)

    def add_chart_version(
        self,
        session_id: str,
        result_id: str,
        chart_id: str,
        data: ChartVersionData,
        *,
        advance: bool = False,
    ) -> ChartVersion:
        """Append a version; `current_version` moves only when `advance` is set."""

        def change(session: Session) -> ChartVersion:
            result = _find_result(session, result_id)
            chart = _find_chart(result, chart_id)
            version = ChartVersion(version=chart.latest.version + 1, **_version_fields(data))
            chart.versions.append(version)
            if advance:
                chart.current_version = len(chart.versions) - 1
            result.updated_at = utcnow()
            return version

        _, version = self._mutate(session_id, change)
        logger.debug(
            "Added chart version",
            extra={"session_id": session_id, "chart_id": chart_id, "version": version.version, "advance": advance},
        )
        return version

    def add_fix_attempt(self, session_id: str, result_id: str, chart_id: str, attempt: FixAttempt) -> Chart:
        def change(session: Session) -> None:
            result = _find_result(session, result_id)
            _find_chart(result, chart_id).fix_attempts.append(attempt)
            result.updated_at = utcnow()

        session, _ = self._mutate(session_id, change)
        return _find_chart(_find_result(session, result_id), chart_id)

    def set_current_version(self, session_id: str, result_id: str, chart_id: str, version_index: int) -> Chart:
        def change(session: Session) -> None:
            result = _find_result(session, result_id)
            chart = _find_chart(result, chart_id)
            if not 0 <= version_index < len(chart.versions):
                raise VersionOutOfRangeError(version_index, len(chart.versions))
            chart.current_version = version_index
            result.updated_at = utcnow()

        session, _ = self._mutate(session_id, change)
        return _find_chart(_find_result(session, result_id), chart_id)

    def sync_session(
        self,
        session_id: str,
        updates: Mapping[str, Any],
        *,
        expected_revision: Optional[int] = None,
    ) -> Session:
        """Merge a partial update (`prompt` and/or `results`) into the stored session.

        Without `expected_revision` the last writer wins. With it, the write is
        rejected with `ConcurrentUpdateError` if the session changed since that
        revision was read.
        """
        unknown = [key for key in updates if key not in _SYNCABLE_FIELDS]
        if unknown:
            raise InvalidRequestError(f"Fields cannot be synced: {', '.join(sorted(unknown))}")

        def change(session: Session) -> None:
            if expected_revision is not None and session.revision != expected_revision:
                raise ConcurrentUpdateError(session_id, expected_revision, session.revision)
            merged = session.model_dump()
            for key, value in updates.items():
                merged[_SYNCABLE_FIELDS[key]] = value
            try:
                replacement = Session.model_validate(merged)
            except ValidationError as exc:
                raise InvalidRequestError(f"Invalid session update: {exc}") from exc
            session.prompt = replacement.prompt
            session.results = replacement.results

        session, _ = self._mutate(session_id, change)
        return session


def _find_result(session: Session, result_id: str) -> Result:
    result = session.find_result(result_id)
    if result is None:
        raise ResultNotFoundError(result_id)
    return result


def _find_chart(result: Result, chart_id: str) -> Chart:
    chart = result.find_chart(chart_id)
    if chart is None:
        raise ChartNotFoundError(chart_id)
    return chart


def _version_fields(data: ChartVersionData) -> Dict[str, Any]:
    return data.model_dump(include=set(ChartVersionData.model_fields))
