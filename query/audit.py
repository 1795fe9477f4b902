from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import List, Optional

from metadata.store import Audit, Query, Repository, archive_query
from query.statement import BoundStatement
from utils.log import get_logger
from utils.settings import Settings

logger = get_logger(__name__)

ARCHIVE_AFTER_DAYS = 90


class AuditDisabled(RuntimeError):
    pass


def record_audit(
    repository: Repository,
    settings: Settings,
    bound: BoundStatement,
    query_id: Optional[str] = None,
    user_id: Optional[str] = None,
) -> Optional[Audit]:
    if not settings.audit:
        return None
    audit = Audit(query_id=query_id, user_id=user_id, statement=bound.text, data_source_id=bound.data_source_id)
    repository.append_audit(audit)
    return audit


def archive_stale_queries(
    repository: Repository,
    settings: Settings,
    now: Optional[datetime] = None,
    days: int = ARCHIVE_AFTER_DAYS,
) -> List[Query]:
    """Archive active queries nobody has run in the last ``days`` days (needs audits)."""
    if not settings.audit:
        raise AuditDisabled("Audits must be enabled to archive")
    cutoff = (now or datetime.now(timezone.utc)) - timedelta(days=days)
    viewed = {a.query_id for a in repository.list_audits(since=cutoff) if a.query_id is not None}
    archived = [archive_query(repository, q) for q in repository.list_queries(status="active") if q.id not in viewed]
    logger.info("archived stale queries", extra={"count": len(archived), "days": days})
    return archived
