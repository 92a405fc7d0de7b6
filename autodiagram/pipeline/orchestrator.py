"""Plan -> generate -> render probe -> repair pipeline.

One `ResultRun` tracks a submitted prompt. Generation for each planned chart
runs concurrently; each chart writes only its own versions. A run is stale
once a newer prompt replaces it in its session or the session is abandoned,
and stale work is dropped before it reaches the store. Store calls run in
worker threads, off the event loop.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Coroutine, Dict, List, Mapping, Optional, Sequence, Set, Tuple, TypeVar

from autodiagram.agents.generation_agent import GenerationAgent
from autodiagram.agents.planner_agent import PlannerAgent
from autodiagram.agents.repair_agent import RepairAgent
from autodiagram.errors import (
    AutoDiagramError,
    InvalidRequestError,
    RenderFailedError,
    RetryExhaustedError,
    SessionNotFoundError,
    StorageError,
)
from autodiagram.models.contracts import FixAttempt, GenerationRequest, GenerationResult, RepairRequest
from autodiagram.models.history import HistoryChart, HistorySession
from autodiagram.models.session import Chart, ChartSource, ChartStatus, ChartVersionData, new_id
from autodiagram.pipeline.state import ChartRun, ResultRun
from autodiagram.render.probe import RenderOutcome, RenderProbe
from autodiagram.store.history import HistoryStore
from autodiagram.store.session_store import SessionStore
from autodiagram.utils.config import settings


logger = logging.getLogger(__name__)

T = TypeVar("T")

PLANNING_FAILURE_MESSAGE = "Error planning charts. Please try again."

CompletionListener = Callable[[ResultRun], None]

_STALE = object()


class DiagramPipeline:
    def __init__(
        self,
        planner: PlannerAgent,
        generator: GenerationAgent,
        repairer: RepairAgent,
        probe: RenderProbe,
        sessions: SessionStore,
        history: HistoryStore,
        *,
        max_retries: Optional[int] = None,
        advance_on_fix: Optional[bool] = None,
    ):
        self.planner = planner
        self.generator = generator
        self.repairer = repairer
        self.probe = probe
        self.sessions = sessions
        self.history = history
        self.max_retries = max_retries if max_retries is not None else settings.max_fix_retries
        self.advance_on_fix = advance_on_fix if advance_on_fix is not None else settings.advance_on_fix
        # Latest run per session; sessions are independent of each other.
        self._runs: Dict[str, ResultRun] = {}
        self._listeners: List[CompletionListener] = []
        self._tasks: Set[asyncio.Task] = set()

    # -- session tracking -------------------------------------------------

    def abandon(self, session_id: str) -> Optional[ResultRun]:
        """Drop the session's run; its in-flight work is discarded as it resolves."""
        run = self._runs.pop(session_id, None)
        if run is not None and not run.completed:
            logger.info("Abandoned in-flight run", extra={"session_id": session_id, "result_id": run.result_id})
        return run

    def _is_current(self, run: ResultRun) -> bool:
        return self._runs.get(run.session_id) is run

    def status(self, session_id: str) -> Optional[ResultRun]:
        return self._runs.get(session_id)

    def is_processing(self, session_id: str) -> bool:
        run = self._runs.get(session_id)
        return bool(run and run.processing)

    def on_complete(self, listener: CompletionListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    # -- submission ---------------------------------------------------------

    def prepare(
        self,
        prompt: str,
        *,
        session_id: Optional[str] = None,
        sources: Sequence[Mapping[str, Any]] = (),
    ) -> ResultRun:
        """Allocate ids and the stored session/result synchronously, before any model call.

        A run already in flight for the same session becomes stale. This does
        blocking store I/O; async callers run it in a worker thread.
        """
        prompt = (prompt or "").strip()
        if not prompt:
            raise InvalidRequestError("Prompt must not be empty")

        if session_id is not None:
            self.sessions.get_session(session_id)
            run = ResultRun(session_id=session_id, prompt=prompt, sources=tuple(sources))
        else:
            run = ResultRun(session_id="", prompt=prompt, sources=tuple(sources))
            try:
                run.session_id = self.sessions.create_session(prompt)
            except StorageError as exc:
                run.session_id = new_id()
                self._storage_failed(run, exc, "create session")

        replaced = self._runs.get(run.session_id)
        if replaced is not None and not replaced.completed:
            logger.info(
                "Newer prompt replaces in-flight run",
                extra={"session_id": run.session_id, "result_id": replaced.result_id},
            )
        self._runs[run.session_id] = run
        self._attempt_write(run, lambda: self.sessions.append_result(run.session_id, prompt, result_id=run.result_id))
        try:
            self.history.remember_recent(run.session_id)
        except StorageError as exc:
            self._storage_failed(run, exc, "update recent sessions")
        return run

    def submit(self, prompt: str, **kwargs: Any) -> Tuple[str, Coroutine[Any, Any, ResultRun]]:
        run = self.prepare(prompt, **kwargs)
        return run.session_id, self.execute(run)

    async def start(self, prompt: str, **kwargs: Any) -> str:
        """Schedule the pipeline on the running loop and return the session id once prepared."""
        run = await asyncio.to_thread(self.prepare, prompt, **kwargs)
        task = asyncio.get_running_loop().create_task(self.execute(run))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return run.session_id

    async def run(self, prompt: str, **kwargs: Any) -> ResultRun:
        run = await asyncio.to_thread(self.prepare, prompt, **kwargs)
        return await self.execute(run)

    # -- execution --------------------------------------------------------

    async def execute(self, run: ResultRun) -> ResultRun:
        run.status = ChartStatus.GENERATING
        try:
            plans = await self._call(run, self.planner.plan(run.prompt, sources=run.sources))
        except AutoDiagramError as exc:
            logger.warning(
                "Planning failed: %s",
                exc,
                extra={"session_id": run.session_id, "code": exc.code},
            )
            run.planning_error = PLANNING_FAILURE_MESSAGE
            run.status = ChartStatus.ERRORED
            if self._is_current(run):
                await self._complete(run, record_history=False)
            return run

        if not self._is_current(run):
            logger.info("Discarding plans for stale run", extra={"session_id": run.session_id})
            return run

        run.charts = [ChartRun(plan=plan, status=ChartStatus.GENERATING) for plan in plans]
        run.planned = True
        await self._write(run, lambda: self.sessions.set_result_plans(run.session_id, run.result_id, plans))

        if run.charts:
            await asyncio.gather(*(self._process_chart(run, chart) for chart in run.charts))
        await self.finalize(run)
        return run

    async def _call(self, run: ResultRun, awaitable: Awaitable[T]) -> T:
        run.outstanding += 1
        try:
            return await awaitable
        finally:
            run.outstanding -= 1

    async def _process_chart(self, run: ResultRun, chart: ChartRun) -> None:
        request = GenerationRequest(
            chart_type=chart.plan.type,
            original_user_message=run.prompt,
            plan_description=chart.plan.description,
        )
        try:
            generated: GenerationResult = await self._call(run, self.generator.generate(request))
        except AutoDiagramError as exc:
            logger.warning(
                "Chart generation failed: %s",
                exc,
                extra={"session_id": run.session_id, "chart_id": chart.chart_id, "code": exc.code},
            )
            chart.status = ChartStatus.ERRORED
            chart.error = exc.public_message
            chart.error_code = exc.code
            await self.finalize(run)
            return

        chart.markup = generated.chart
        chart.description = generated.description
        chart.status = ChartStatus.RENDERED
        outcome = await self.probe.probe(generated.chart)
        if await self._store_version(
            run,
            chart,
            ChartVersionData(
                chart=generated.chart,
                rationale=generated.description,
                source=ChartSource.GENERATION,
                error=outcome.error,
                status=ChartStatus.COMPLETED if outcome.ok else ChartStatus.RENDER_FAILED,
            ),
        ) is _STALE:
            return

        if outcome.ok:
            chart.status = ChartStatus.COMPLETED
        else:
            chart.status = ChartStatus.RENDER_FAILED
            chart.error = outcome.error
            chart.error_code = RenderFailedError.code
            await self._repair_loop(run, chart, outcome)
        await self.finalize(run)

    async def _repair_loop(self, run: ResultRun, chart: ChartRun, outcome: RenderOutcome) -> None:
        markup = chart.markup or ""
        error = outcome.error or "Render failed"
        for attempt_number in range(1, self.max_retries + 1):
            if not self._is_current(run):
                return
            chart.status = ChartStatus.FIXING
            request = RepairRequest(
                chart_type=chart.plan.type,
                chart=markup,
                error=error,
                description=chart.description or None,
                plan_description=chart.plan.description,
                original_user_message=run.prompt,
                previous_attempts=list(chart.fix_attempts),
            )
            logger.info(
                "Repair attempt %d/%d",
                attempt_number,
                self.max_retries,
                extra={"session_id": run.session_id, "chart_id": chart.chart_id},
            )
            try:
                repaired = await self._call(run, self.repairer.repair(request))
            except AutoDiagramError as exc:
                logger.warning(
                    "Repair call failed: %s",
                    exc,
                    extra={"session_id": run.session_id, "chart_id": chart.chart_id, "code": exc.code},
                )
                if await self._record_attempt(run, chart, FixAttempt(chart=markup, error=error)) is _STALE:
                    return
                chart.status = ChartStatus.RENDER_FAILED
                continue

            if await self._record_attempt(
                run, chart, FixAttempt(chart=markup, error=error, explanation=repaired.explanation)
            ) is _STALE:
                return
            result = await self.probe.probe(repaired.chart)
            chart.markup = repaired.chart
            chart.explanation = repaired.explanation
            if await self._store_version(
                run,
                chart,
                ChartVersionData(
                    chart=repaired.chart,
                    rationale=repaired.explanation,
                    source=ChartSource.FIX,
                    error=result.error,
                    status=ChartStatus.COMPLETED if result.ok else ChartStatus.RENDER_FAILED,
                ),
                advance=self.advance_on_fix and result.ok,
            ) is _STALE:
                return
            if result.ok:
                chart.status = ChartStatus.COMPLETED
                chart.error = None
                chart.error_code = None
                return
            markup = repaired.chart
            error = result.error or "Render failed"
            chart.status = ChartStatus.RENDER_FAILED
            chart.error = error

        chart.status = ChartStatus.ERRORED
        chart.error = error
        chart.error_code = RetryExhaustedError.code
        logger.warning(
            "Repair budget exhausted",
            extra={"session_id": run.session_id, "chart_id": chart.chart_id, "attempts": len(chart.fix_attempts)},
        )

    # -- store writes -----------------------------------------------------

    def _storage_failed(self, run: ResultRun, exc: AutoDiagramError, action: str) -> None:
        logger.error("Could not %s: %s", action, exc, extra={"session_id": run.session_id})
        message = exc.public_message
        if message not in run.storage_errors:
            run.storage_errors.append(message)

    def _attempt_write(self, run: ResultRun, action: Callable[[], T]) -> Optional[T]:
        try:
            return action()
        except (StorageError, SessionNotFoundError) as exc:
            self._storage_failed(run, exc, "write session")
            return None

    async def _write(self, run: ResultRun, action: Callable[[], T]) -> Any:
        if not self._is_current(run):
            logger.info("Discarding write for stale run", extra={"session_id": run.session_id})
            return _STALE
        return await asyncio.to_thread(self._attempt_write, run, action)

    async def _store_version(
        self, run: ResultRun, chart: ChartRun, data: ChartVersionData, *, advance: bool = False
    ) -> Any:
        if chart.stored:
            return await self._write(
                run,
                lambda: self.sessions.add_chart_version(
                    run.session_id, run.result_id, chart.chart_id, data, advance=advance
                ),
            )
        stored = await self._write(
            run,
            lambda: self.sessions.add_chart(
                run.session_id,
                run.result_id,
                chart.plan,
                data,
                chart_id=chart.chart_id,
                fix_attempts=chart.fix_attempts,
            ),
        )
        if isinstance(stored, Chart):
            chart.stored = True
        return stored

    async def _record_attempt(self, run: ResultRun, chart: ChartRun, attempt: FixAttempt) -> Any:
        if not self._is_current(run):
            return _STALE
        chart.fix_attempts.append(attempt)
        if chart.stored:
            return await self._write(
                run, lambda: self.sessions.add_fix_attempt(run.session_id, run.result_id, chart.chart_id, attempt)
            )
        return None

    # -- completion ---------------------------------------------------------

    async def finalize(self, run: ResultRun) -> bool:
        """Fire the completion latch once every chart is terminal.

        Returns True only for the call that completed the run; later calls are
        no-ops, so history is written and listeners are notified exactly once.
        """
        if run.completed or not run.all_terminal:
            return False
        if not self._is_current(run):
            return False
        all_ok = all(chart.status == ChartStatus.COMPLETED for chart in run.charts)
        run.status = ChartStatus.COMPLETED if all_ok else ChartStatus.ERRORED
        await self._complete(run, record_history=True)
        return True

    async def _complete(self, run: ResultRun, *, record_history: bool) -> None:
        # Latched before the first await.
        run.completed = True
        if record_history:
            try:
                await asyncio.to_thread(self.history.record, self._history_entry(run))
            except StorageError as exc:
                self._storage_failed(run, exc, "record history")
        logger.info(
            "Result completed",
            extra={"session_id": run.session_id, "result_id": run.result_id, "charts": len(run.charts)},
        )
        for listener in list(self._listeners):
            listener(run)

    def _history_entry(self, run: ResultRun) -> HistorySession:
        charts = []
        for chart in run.charts:
            mermaid = None
            if chart.markup:
                mermaid = GenerationResult(type=chart.plan.type, description=chart.description, chart=chart.markup)
            charts.append(
                HistoryChart(
                    plan=chart.plan,
                    mermaid=mermaid,
                    fix_attempts=list(chart.fix_attempts),
                    final_error=chart.error if chart.status == ChartStatus.ERRORED else None,
                )
            )
        return HistorySession(id=run.session_id, prompt=run.prompt, charts=charts)

    # -- manual repair ----------------------------------------------------

    async def repair_chart(self, session_id: str, result_id: str, chart_id: str, *, advance: bool = False) -> Chart:
        """Run one repair cycle on a stored chart's current version."""
        stored = await asyncio.to_thread(self.sessions.get_chart, session_id, result_id, chart_id)
        session = await asyncio.to_thread(self.sessions.get_session, session_id)
        result_prompt = session.find_result(result_id).prompt
        current = stored.current
        outcome = await self.probe.probe(current.chart)
        error = outcome.error or current.error or "Chart failed to render"
        request = RepairRequest(
            chart_type=stored.plan.type,
            chart=current.chart,
            error=error,
            description=current.rationale or None,
            plan_description=stored.plan.description,
            original_user_message=result_prompt or None,
            previous_attempts=list(stored.fix_attempts),
        )
        try:
            repaired = await self.repairer.repair(request)
        except AutoDiagramError:
            await asyncio.to_thread(
                self.sessions.add_fix_attempt,
                session_id,
                result_id,
                chart_id,
                FixAttempt(chart=current.chart, error=error),
            )
            raise

        await asyncio.to_thread(
            self.sessions.add_fix_attempt,
            session_id,
            result_id,
            chart_id,
            FixAttempt(chart=current.chart, error=error, explanation=repaired.explanation),
        )
        result = await self.probe.probe(repaired.chart)
        data = ChartVersionData(
            chart=repaired.chart,
            rationale=repaired.explanation,
            source=ChartSource.FIX,
            error=result.error,
            status=ChartStatus.COMPLETED if result.ok else ChartStatus.RENDER_FAILED,
        )
        await asyncio.to_thread(self.sessions.add_chart_version, session_id, result_id, chart_id, data, advance=advance)
        return await asyncio.to_thread(self.sessions.get_chart, session_id, result_id, chart_id)
