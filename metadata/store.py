from __future__ import annotations

import json
from dataclasses import asdict, dataclass, field, replace
from datetime import datetime, timezone
from pathlib import Path
from threading import Lock
from typing import Any, Dict, List, Optional, Protocol

from checks.models import Check


class CheckNotFound(LookupError):
    pass


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class Query:
    id: str
    name: str
    statement: str
    data_source_id: str
    status: str = "active"

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "Query":
        return cls(
            id=str(raw["id"]),
            name=raw.get("name") or str(raw["id"]),
            statement=raw["statement"],
            data_source_id=str(raw["data_source_id"]),
            status=raw.get("status") or "active",
        )


@dataclass(frozen=True)
class Audit:
    query_id: Optional[str]
    user_id: Optional[str]
    statement: str
    data_source_id: str
    created_at: datetime = field(default_factory=_now)

    def to_dict(self) -> Dict[str, Any]:
        payload = asdict(self)
        payload["created_at"] = self.created_at.isoformat()
        return payload

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "Audit":
        return cls(
            query_id=raw.get("query_id"),
            user_id=raw.get("user_id"),
            statement=raw["statement"],
            data_source_id=raw["data_source_id"],
            created_at=datetime.fromisoformat(raw["created_at"]),
        )


class Repository(Protocol):
    def get_query(self, query_id: str) -> Optional[Query]: ...

    def list_queries(self, status: Optional[str] = None) -> List[Query]: ...

    def save_query(self, query: Query) -> Query: ...

    def list_checks(self, schedule: Optional[str] = None) -> List[Check]: ...

    def get_check(self, check_id: str) -> Check: ...

    def save_check(self, check: Check) -> Check: ...

    def delete_check(self, check_id: str) -> None: ...

    def append_audit(self, audit: Audit) -> None: ...

    def list_audits(self, since: Optional[datetime] = None) -> List[Audit]: ...


class InMemoryRepository:
    def __init__(self, queries: Optional[List[Query]] = None, checks: Optional[List[Check]] = None):
        self._queries: Dict[str, Query] = {q.id: q for q in queries or []}
        self._checks: Dict[str, Check] = {c.id: c for c in checks or []}
        self._audits: List[Audit] = []
        self._lock = Lock()

    def get_query(self, query_id: str) -> Optional[Query]:
        with self._lock:
            return self._queries.get(query_id)

    def list_queries(self, status: Optional[str] = None) -> List[Query]:
        with self._lock:
            return [q for q in self._queries.values() if status is None or q.status == status]

    def save_query(self, query: Query) -> Query:
        with self._lock:
            self._queries[query.id] = query
        return query

    def list_checks(self, schedule: Optional[str] = None) -> List[Check]:
        with self._lock:
            return [c for c in self._checks.values() if schedule is None or c.schedule == schedule]

    def get_check(self, check_id: str) -> Check:
        with self._lock:
            try:
                return self._checks[check_id]
            except KeyError:
                raise CheckNotFound(check_id) from None

    def add_check(self, check: Check) -> Check:
        with self._lock:
            self._checks[check.id] = check
        return check

    def save_check(self, check: Check) -> Check:
        with self._lock:
            if check.id not in self._checks:
                raise CheckNotFound(check.id)
            self._checks[check.id] = check
        return check

    def delete_check(self, check_id: str) -> None:
        with self._lock:
            self._checks.pop(check_id, None)

    def append_audit(self, audit: Audit) -> None:
        with self._lock:
            self._audits.append(audit)

    def list_audits(self, since: Optional[datetime] = None) -> List[Audit]:
        with self._lock:
            return [a for a in self._audits if since is None or a.created_at >= since]


# ----------------------------
# File backend
# ----------------------------
class JsonFileRepository(InMemoryRepository):
    """In-memory repository mirrored to ``queries.json``, ``checks.json`` and an ``audits.jsonl`` log."""

    def __init__(self, base_dir: str = "metadata/store"):
        self.base_dir = Path(base_dir)
        self.queries_file = self.base_dir / "queries.json"
        self.checks_file = self.base_dir / "checks.json"
        self.audits_file = self.base_dir / "audits.jsonl"
        self._ensure_files()
        queries = [Query.from_dict(q) for q in json.loads(self.queries_file.read_text(encoding="utf-8"))]
        checks = [Check.from_dict(c) for c in json.loads(self.checks_file.read_text(encoding="utf-8"))]
        super().__init__(queries=queries, checks=checks)
        self._file_lock = Lock()

    def _ensure_files(self) -> None:
        self.base_dir.mkdir(parents=True, exist_ok=True)
        for path, empty in ((self.queries_file, "[]"), (self.checks_file, "[]"), (self.audits_file, "")):
            if not path.exists():
                path.write_text(empty, encoding="utf-8")

    def _flush(self) -> None:
        with self._file_lock:
            queries = [asdict(q) for q in super().list_queries()]
            checks = [c.to_dict() for c in super().list_checks()]
            self.queries_file.write_text(json.dumps(queries, indent=2), encoding="utf-8")
            self.checks_file.write_text(json.dumps(checks, indent=2), encoding="utf-8")

    def save_query(self, query: Query) -> Query:
        saved = super().save_query(query)
        self._flush()
        return saved

    def add_check(self, check: Check) -> Check:
        saved = super().add_check(check)
        self._flush()
        return saved

    def save_check(self, check: Check) -> Check:
        saved = super().save_check(check)
        self._flush()
        return saved

    def delete_check(self, check_id: str) -> None:
        super().delete_check(check_id)
        self._flush()

    def append_audit(self, audit: Audit) -> None:
        super().append_audit(audit)
        with self._file_lock:
            with self.audits_file.open("a", encoding="utf-8") as f:
                f.write(json.dumps(audit.to_dict()) + "\n")

    def list_audits(self, since: Optional[datetime] = None) -> List[Audit]:
        lines = self.audits_file.read_text(encoding="utf-8").splitlines()
        audits = [Audit.from_dict(json.loads(line)) for line in lines if line.strip()]
        return [a for a in audits if since is None or a.created_at >= since]


def archive_query(repository: Repository, query: Query) -> Query:
    return repository.save_query(replace(query, status="archived"))
