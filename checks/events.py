from __future__ import annotations

from collections import Counter
from dataclasses import asdict, dataclass
from typing import Any, Dict, List, Optional, Protocol

from utils.log import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class CheckRunEvent:
    check_id: str
    query_id: str
    prior_state: str
    new_state: str
    row_count: Optional[int]
    error: Optional[str]
    attempts: int
    duration_ms: int

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class EventSink(Protocol):
    def emit(self, event: CheckRunEvent) -> None:
        ...


class LoggingEventSink:
    def emit(self, event: CheckRunEvent) -> None:
        logger.info(
            "check run",
            extra={
                "check": event.check_id,
                "query": event.query_id,
                "state": event.new_state,
                "prior": event.prior_state,
                "rows": event.row_count,
                "error": event.error,
                "attempts": event.attempts,
                "duration_ms": event.duration_ms,
            },
        )


def summarize_events(events: List[CheckRunEvent]) -> Dict[str, Any]:
    states: Counter[str] = Counter(e.new_state for e in events)
    transitions = [e for e in events if e.prior_state != e.new_state]
    retried = [e for e in events if e.attempts > 1]
    durations = [e.duration_ms for e in events]

    return {
        "summary": {
            "total_checks": len(events),
            "transitions": len(transitions),
            "retried": len(retried),
            "max_duration_ms": max(durations) if durations else 0,
        },
        "states": dict(states.most_common()),
        "events": [e.to_dict() for e in events],
    }
