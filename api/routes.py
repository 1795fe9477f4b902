from threading import Lock
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, HTTPException

from api.schemas import (
    ArchiveResponse,
    ClearCacheRequest,
    ClearCacheResponse,
    DataSourceListResponse,
    ExplainRequest,
    ExplainResponse,
    RunChecksRequest,
    RunChecksResponse,
    RunQueryRequest,
    RunQueryResponse,
    SchemaResponse,
    SendFailingResponse,
)
from checks.events import summarize_events
from datasources.config import UnknownDataSource
from query.audit import AuditDisabled, archive_stale_queries, record_audit
from query.statement import InvalidVariablePosition, MissingVariables, Statement
from utils.runtime import Runtime, build_runtime

router = APIRouter()

_runtime: Optional[Runtime] = None
_runtime_lock = Lock()


def get_runtime() -> Runtime:
    global _runtime
    with _runtime_lock:
        if _runtime is None:
            _runtime = build_runtime()
        return _runtime


@router.get("/health")
def health() -> dict:
    return {"status": "ok"}


@router.get("/data_sources", response_model=DataSourceListResponse)
def list_data_sources() -> DataSourceListResponse:
    runtime = get_runtime()
    return DataSourceListResponse(data_sources=runtime.data_sources.describe())


@router.get("/data_sources/{data_source_id}/schema", response_model=SchemaResponse)
def data_source_schema(data_source_id: str) -> SchemaResponse:
    runtime = get_runtime()
    try:
        data_source = runtime.data_sources[data_source_id]
    except UnknownDataSource as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    tables = []
    for table in data_source.schema():
        payload = table.to_dict()
        payload["schema_name"] = payload.pop("schema")
        tables.append(payload)
    return SchemaResponse(data_source_id=data_source_id, tables=tables)


@router.post("/data_sources/{data_source_id}/explain", response_model=ExplainResponse)
def explain_statement(data_source_id: str, request: ExplainRequest) -> ExplainResponse:
    runtime = get_runtime()
    try:
        data_source = runtime.data_sources[data_source_id]
    except UnknownDataSource as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    try:
        plan = data_source.explain(request.statement)
    except Exception as exc:
        raise HTTPException(status_code=400, detail=data_source.adapter.error_message(exc)) from exc
    return ExplainResponse(data_source_id=data_source_id, plan=plan)


@router.post("/queries/run", response_model=RunQueryResponse)
def run_query(request: RunQueryRequest) -> RunQueryResponse:
    runtime = get_runtime()
    statement = Statement.build(request.statement, request.data_source_id, request.variables)
    try:
        outcome = runtime.controller.run(statement, refresh_cache=request.refresh_cache)
    except UnknownDataSource as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except (InvalidVariablePosition, MissingVariables) as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    record_audit(runtime.repository, runtime.settings, outcome.bound, query_id=request.query_id, user_id=request.user_id)
    payload = outcome.result.to_dict()
    return RunQueryResponse(**payload, attempts=outcome.attempts, row_count=outcome.result.row_count)


@router.post("/checks/run", response_model=RunChecksResponse)
def run_checks(request: RunChecksRequest, background_tasks: BackgroundTasks) -> RunChecksResponse:
    runtime = get_runtime()
    if runtime.settings.async_checks:
        background_tasks.add_task(runtime.engine.run_checks, request.schedule)
        return RunChecksResponse(status="queued", schedule=request.schedule)
    events = runtime.engine.run_checks(schedule=request.schedule)
    return RunChecksResponse(status="completed", schedule=request.schedule, report=summarize_events(events))


@router.post("/checks/send_failing", response_model=SendFailingResponse)
def send_failing_checks() -> SendFailingResponse:
    runtime = get_runtime()
    return SendFailingResponse(**runtime.engine.send_failing_checks())


@router.post("/queries/clear_cache", response_model=ClearCacheResponse)
def clear_cache(request: ClearCacheRequest) -> ClearCacheResponse:
    runtime = get_runtime()
    if request.statement is None:
        runtime.controller.clear_cache()
        return ClearCacheResponse()
    if not request.data_source_id:
        raise HTTPException(status_code=400, detail="data_source_id is required with a statement")
    statement = Statement.build(request.statement, request.data_source_id, request.variables)
    try:
        fingerprint = runtime.controller.clear_cache(statement)
    except UnknownDataSource as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except (InvalidVariablePosition, MissingVariables) as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return ClearCacheResponse(fingerprint=fingerprint)


@router.post("/queries/archive", response_model=ArchiveResponse)
def archive_queries() -> ArchiveResponse:
    runtime = get_runtime()
    try:
        archived = archive_stale_queries(runtime.repository, runtime.settings)
    except AuditDisabled as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    return ArchiveResponse(archived=[q.id for q in archived])
