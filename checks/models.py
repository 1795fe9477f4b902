from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional


class CheckState(str, Enum):
    NEW = "new"
    PASSING = "passing"
    FAILING = "failing"
    ERROR = "error"
    TIMED_OUT = "timed out"
    DISABLED = "disabled"


NOTIFIABLE_STATES = frozenset({CheckState.FAILING, CheckState.ERROR, CheckState.TIMED_OUT})
DIGEST_STATES = NOTIFIABLE_STATES | {CheckState.DISABLED}


class CheckType(str, Enum):
    BAD_DATA = "bad_data"
    MISSING_DATA = "missing_data"
    THRESHOLD = "threshold"
    ANOMALY = "anomaly"
    FORECAST = "forecast"


_RECIPIENT_SPLIT = re.compile(r"[\s,;]+")


def _split_recipients(raw: Optional[str]) -> List[str]:
    seen: List[str] = []
    for token in _RECIPIENT_SPLIT.split((raw or "").lower()):
        if token and token not in seen:
            seen.append(token)
    return seen


def _parse_dt(raw: Any) -> Optional[datetime]:
    if raw is None or isinstance(raw, datetime):
        return raw
    return datetime.fromisoformat(str(raw))


@dataclass(frozen=True)
class Check:
    id: str
    query_id: str
    schedule: str = "1 day"
    state: CheckState = CheckState.NEW
    check_type: CheckType = CheckType.BAD_DATA
    emails: str = ""
    slack_channels: str = ""
    options: Dict[str, Any] = field(default_factory=dict)
    last_run_at: Optional[datetime] = None
    message: Optional[str] = None

    @property
    def disabled(self) -> bool:
        return self.state == CheckState.DISABLED

    def split_emails(self) -> List[str]:
        return _split_recipients(self.emails)

    def split_slack_channels(self) -> List[str]:
        return _split_recipients(self.slack_channels)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "query_id": self.query_id,
            "schedule": self.schedule,
            "state": self.state.value,
            "check_type": self.check_type.value,
            "emails": self.emails,
            "slack_channels": self.slack_channels,
            "options": dict(self.options),
            "last_run_at": self.last_run_at.isoformat() if self.last_run_at else None,
            "message": self.message,
        }

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "Check":
        return cls(
            id=str(raw["id"]),
            query_id=str(raw["query_id"]),
            schedule=raw.get("schedule") or "1 day",
            state=CheckState(raw.get("state") or CheckState.NEW.value),
            check_type=CheckType(raw.get("check_type") or CheckType.BAD_DATA.value),
            emails=raw.get("emails") or "",
            slack_channels=raw.get("slack_channels") or "",
            options=dict(raw.get("options") or {}),
            last_run_at=_parse_dt(raw.get("last_run_at")),
            message=raw.get("message"),
        )
