"""REST API server."""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from functools import lru_cache
from typing import Any, Dict, List, Optional

from fastapi import BackgroundTasks, Depends, FastAPI, Query, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from autodiagram.agents import GenerationAgent, PlannerAgent, RepairAgent
from autodiagram.chart_types import CHART_COMMANDS, suggest_commands
from autodiagram.db import SessionLocal, create_schema
from autodiagram.errors import (
    AutoDiagramError,
    ChartNotFoundError,
    ConcurrentUpdateError,
    InvalidRequestError,
    ResultNotFoundError,
    SessionNotFoundError,
    StorageError,
    UpstreamModelError,
    UpstreamTimeoutError,
    VersionOutOfRangeError,
)
from autodiagram.llm import create_model
from autodiagram.models.contracts import GenerationRequest, GenerationResult, RepairRequest, RepairResult
from autodiagram.models.history import HistorySession
from autodiagram.models.session import Chart, ChartStatus, Session
from autodiagram.pipeline import DiagramPipeline
from autodiagram.render import create_render_probe
from autodiagram.schemas import (
    BatchGenerationRequest,
    BatchGenerationResponse,
    ChartCommandResponse,
    ChartFixRequest,
    CurrentVersionUpdate,
    PlannerRequest,
    RunStatusResponse,
    SessionCreateRequest,
    SessionCreateResponse,
    SessionSyncRequest,
)
from autodiagram.store import HistoryEvents, HistoryStore, InMemoryKeyValueStore, KeyValueStore, SessionStore, SqlKeyValueStore
from autodiagram.utils.config import settings


logger = logging.getLogger(__name__)

# Most specific classes first.
_ERROR_STATUS = (
    (VersionOutOfRangeError, 400),
    (InvalidRequestError, 400),
    (SessionNotFoundError, 404),
    (ResultNotFoundError, 404),
    (ChartNotFoundError, 404),
    (ConcurrentUpdateError, 409),
    (UpstreamTimeoutError, 504),
    (UpstreamModelError, 502),
    (StorageError, 500),
)


def status_for(exc: AutoDiagramError) -> int:
    for error_type, status in _ERROR_STATUS:
        if isinstance(exc, error_type):
            return status
    return 500


@asynccontextmanager
async def lifespan(app: FastAPI):
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    if not settings.skip_env_validation:
        settings.ensure_credentials()
    if settings.storage_backend == "sql":
        create_schema()
    logger.info("API started", extra={"provider": settings.ai_provider, "storage": settings.storage_backend})
    yield


app = FastAPI(title="Auto Diagram API", lifespan=lifespan)


@app.exception_handler(AutoDiagramError)
async def handle_app_error(request: Request, exc: AutoDiagramError) -> JSONResponse:
    status = status_for(exc)
    if status >= 500:
        logger.error("%s failed: %s", request.url.path, exc, extra={"code": exc.code})
    return JSONResponse(status_code=status, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def handle_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    issues = []
    code = "invalid_request"
    for error in exc.errors():
        loc = [part for part in error.get("loc", ()) if part != "body"]
        field = str(loc[-1]) if loc else ""
        if error.get("type") == "enum" and field in {"chartType", "chart_type", "type"}:
            code = "unsupported_chart_type"
        issues.append({"loc": loc, "message": error.get("msg", "invalid value")})
    summary = "; ".join(
        f"{'.'.join(str(p) for p in issue['loc']) or 'body'}: {issue['message']}" for issue in issues
    )
    return JSONResponse(
        status_code=400,
        content={"error": code, "message": f"Invalid request: {summary}", "issues": issues},
    )


# -- dependencies ------------------------------------------------------------


@lru_cache(maxsize=1)
def get_kv_store() -> KeyValueStore:
    if settings.storage_backend == "sql":
        return SqlKeyValueStore(SessionLocal, quota_bytes=settings.storage_quota_bytes)
    return InMemoryKeyValueStore(quota_bytes=settings.storage_quota_bytes)


@lru_cache(maxsize=1)
def get_history_events() -> HistoryEvents:
    return HistoryEvents()


@lru_cache(maxsize=1)
def get_session_store() -> SessionStore:
    return SessionStore(get_kv_store())


@lru_cache(maxsize=1)
def get_history_store() -> HistoryStore:
    return HistoryStore(get_kv_store(), get_history_events())


@lru_cache(maxsize=1)
def get_planner() -> PlannerAgent:
    return PlannerAgent(create_model("reasoning"))


@lru_cache(maxsize=1)
def get_generator() -> GenerationAgent:
    return GenerationAgent(create_model("fast"))


@lru_cache(maxsize=1)
def get_repairer() -> RepairAgent:
    return RepairAgent(create_model("fast"))


@lru_cache(maxsize=1)
def get_pipeline() -> DiagramPipeline:
    return DiagramPipeline(
        get_planner(),
        get_generator(),
        get_repairer(),
        create_render_probe(),
        get_session_store(),
        get_history_store(),
    )


# -- endpoints -------------------------------------------------------------


@app.get("/health")
async def health():
    return {"status": "ok"}


@app.post("/api/planner")
async def planner_api(payload: PlannerRequest, planner: PlannerAgent = Depends(get_planner)) -> List[Dict[str, Any]]:
    sources = [source.model_dump(by_alias=True, exclude_none=True) for source in payload.sources]
    plans = await planner.plan(payload.messages, sources=sources)
    return [plan.model_dump(mode="json") for plan in plans]


@app.post("/api/mermaid", response_model=GenerationResult)
async def mermaid_api(payload: GenerationRequest, generator: GenerationAgent = Depends(get_generator)):
    return await generator.generate(payload)


@app.post("/api/mermaid/batch", response_model=BatchGenerationResponse)
async def mermaid_batch_api(payload: BatchGenerationRequest, generator: GenerationAgent = Depends(get_generator)):
    results = await generator.generate_batch(payload.charts)
    return BatchGenerationResponse(results=results)


@app.post("/api/mermaid/fix", response_model=RepairResult)
async def mermaid_fix_api(payload: RepairRequest, repairer: RepairAgent = Depends(get_repairer)):
    return await repairer.repair(payload)


@app.post("/api/sessions", response_model=SessionCreateResponse)
async def create_session_api(
    payload: SessionCreateRequest,
    background_tasks: BackgroundTasks,
    pipeline: DiagramPipeline = Depends(get_pipeline),
):
    run = await run_in_threadpool(
        pipeline.prepare,
        payload.prompt,
        session_id=payload.session_id,
        sources=[source.model_dump(by_alias=True, exclude_none=True) for source in payload.sources],
    )
    background_tasks.add_task(pipeline.execute, run)
    return SessionCreateResponse(session_id=run.session_id, result_id=run.result_id)


@app.get("/api/sessions", response_model=List[Session])
def list_sessions_api(store: SessionStore = Depends(get_session_store)):
    return store.list_sessions()


@app.get("/api/sessions/{session_id}", response_model=Session)
def get_session_api(session_id: str, store: SessionStore = Depends(get_session_store)):
    return store.get_session(session_id)


@app.patch("/api/sessions/{session_id}", response_model=Session)
def sync_session_api(session_id: str, payload: SessionSyncRequest, store: SessionStore = Depends(get_session_store)):
    return store.sync_session(session_id, payload.updates(), expected_revision=payload.expected_revision)


@app.get("/api/sessions/{session_id}/status", response_model=RunStatusResponse)
def session_status_api(
    session_id: str,
    pipeline: DiagramPipeline = Depends(get_pipeline),
    store: SessionStore = Depends(get_session_store),
):
    run = pipeline.status(session_id)
    if run is not None:
        return RunStatusResponse.from_run(run)
    # Not tracked by this process: whatever is stored is final.
    session = store.get_session(session_id)
    latest = session.results[-1] if session.results else None
    return RunStatusResponse(
        session_id=session.id,
        result_id=latest.id if latest else None,
        status=ChartStatus.COMPLETED,
        completed=True,
    )


@app.delete("/api/sessions/{session_id}/run", status_code=204)
def abandon_run_api(session_id: str, pipeline: DiagramPipeline = Depends(get_pipeline)):
    pipeline.abandon(session_id)


@app.put("/api/sessions/{session_id}/results/{result_id}/charts/{chart_id}/current-version", response_model=Chart)
def set_current_version_api(
    session_id: str,
    result_id: str,
    chart_id: str,
    payload: CurrentVersionUpdate,
    store: SessionStore = Depends(get_session_store),
):
    return store.set_current_version(session_id, result_id, chart_id, payload.version_index)


@app.post("/api/sessions/{session_id}/results/{result_id}/charts/{chart_id}/fix", response_model=Chart)
async def fix_chart_api(
    session_id: str,
    result_id: str,
    chart_id: str,
    payload: Optional[ChartFixRequest] = None,
    pipeline: DiagramPipeline = Depends(get_pipeline),
):
    advance = payload.advance if payload else False
    return await pipeline.repair_chart(session_id, result_id, chart_id, advance=advance)


@app.get("/api/history", response_model=List[HistorySession])
def history_api(history: HistoryStore = Depends(get_history_store)):
    return history.list_history()


@app.get("/api/chart-commands", response_model=List[ChartCommandResponse])
def chart_commands_api(prefix: str = Query("/")):
    commands = suggest_commands(prefix) if prefix else list(CHART_COMMANDS)
    return [
        ChartCommandResponse(
            command=cmd.command,
            type=cmd.type.value if cmd.type else None,
            description=cmd.description,
        )
        for cmd in commands
    ]
