from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class DataSourceSummary(BaseModel):
    id: str
    adapter: str


class DataSourceListResponse(BaseModel):
    data_sources: List[DataSourceSummary]


class ColumnResponse(BaseModel):
    name: str
    data_type: Optional[str] = None


class TableResponse(BaseModel):
    schema_name: Optional[str] = None
    table: str
    columns: List[ColumnResponse]


class SchemaResponse(BaseModel):
    data_source_id: str
    tables: List[TableResponse]


class ExplainRequest(BaseModel):
    statement: str = Field(..., min_length=1)


class ExplainResponse(BaseModel):
    data_source_id: str
    plan: str


class RunQueryRequest(BaseModel):
    statement: str = Field(..., min_length=1)
    data_source_id: str
    variables: Dict[str, Any] = Field(default_factory=dict)
    refresh_cache: bool = Field(default=False, description="Bypass a fresh cached result")
    query_id: Optional[str] = Field(default=None, description="Saved query id, recorded in the audit log")
    user_id: Optional[str] = None


class RunQueryResponse(BaseModel):
    columns: List[str]
    rows: List[List[Any]]
    error: Optional[str]
    error_kind: Optional[str]
    timed_out: bool
    cached_at: Optional[str]
    runtime: float
    attempts: int
    row_count: Optional[int]


class RunChecksRequest(BaseModel):
    schedule: Optional[str] = Field(default=None, description="Schedule bucket, e.g. '5 minutes'")


class RunChecksResponse(BaseModel):
    status: str
    schedule: Optional[str]
    report: Optional[Dict[str, Any]] = None


class SendFailingResponse(BaseModel):
    checks: int
    emails: int
    chats: int
    failed: int


class ArchiveResponse(BaseModel):
    archived: List[str]


class ClearCacheRequest(BaseModel):
    statement: Optional[str] = Field(default=None, description="Clear only this statement's cached result")
    data_source_id: Optional[str] = None
    variables: Dict[str, Any] = Field(default_factory=dict)


class ClearCacheResponse(BaseModel):
    fingerprint: Optional[str] = Field(default=None, description="Fingerprint cleared, or null when everything was")
