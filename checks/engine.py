from __future__ import annotations

import argparse
import json
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import replace
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional, Tuple

from checks.evaluators import evaluate_check
from checks.events import CheckRunEvent, EventSink, LoggingEventSink, summarize_events
from checks.models import Check, CheckState
from checks.notifications import NotificationRouter
from datasources.config import UnknownDataSource
from metadata.store import CheckNotFound, Repository
from mining.registry import AlgorithmRegistry
from query.result import Result
from query.runner import RunController
from query.statement import InvalidVariablePosition, MissingVariables, Statement
from utils.log import get_logger
from utils.settings import Settings

logger = get_logger(__name__)

Execution = Tuple[CheckState, str, Optional[Result], int]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _run_message(result: Result, attempts: int, detail: Optional[str]) -> str:
    if result.error:
        text = detail or result.error
    else:
        rows = result.row_count or 0
        text = f"{rows} row" if rows == 1 else f"{rows} rows"
        if detail:
            text = f"{text}; {detail}"
    return f"{text} (attempts: {attempts})"


class CheckEngine:
    """Runs checks through the run controller and advances their state.

    A check run never raises for configuration problems (missing query,
    unknown data source, bad variable placement); those land the check in
    ``error``. Disabled checks are read but never run or written.
    """

    def __init__(
        self,
        repository: Repository,
        controller: RunController,
        algorithms: AlgorithmRegistry,
        router: NotificationRouter,
        settings: Settings,
        events: Optional[EventSink] = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.repository = repository
        self.controller = controller
        self.algorithms = algorithms
        self.router = router
        self.settings = settings
        self.events: EventSink = events or LoggingEventSink()
        self._clock = clock

    def _execute(self, check: Check) -> Execution:
        query = self.repository.get_query(check.query_id)
        if query is None:
            return CheckState.ERROR, f"Query not found: {check.query_id}", None, 0
        try:
            statement = Statement.build(query.statement, query.data_source_id, check.options.get("variables"))
            outcome = self.controller.run(statement, refresh_cache=True, retry=True, label=query.name)
        except (UnknownDataSource, InvalidVariablePosition, MissingVariables) as exc:
            return CheckState.ERROR, str(exc), None, 0

        state, detail = evaluate_check(check, outcome.result, self.algorithms, self.settings)
        return state, _run_message(outcome.result, outcome.attempts, detail), outcome.result, outcome.attempts

    def run_check(self, check: Check) -> Optional[CheckRunEvent]:
        if check.disabled:
            logger.debug("skipping disabled check", extra={"check": check.id})
            return None

        started = time.monotonic()
        state, message, result, attempts = self._execute(check)

        # the check may have been edited or deleted while the statement ran
        try:
            current = self.repository.get_check(check.id)
            if current.disabled:
                logger.info("check disabled during run", extra={"check": check.id})
                return None
            prior = current.state
            updated = replace(current, state=state, last_run_at=self._clock(), message=message)
            self.repository.save_check(updated)
        except CheckNotFound:
            logger.info("check vanished during run", extra={"check": check.id})
            return None

        self.router.notify_state_change(updated, prior, result)

        event = CheckRunEvent(
            check_id=check.id,
            query_id=check.query_id,
            prior_state=prior.value,
            new_state=state.value,
            row_count=result.row_count if result is not None else None,
            error=result.error if result is not None else message,
            attempts=attempts,
            duration_ms=int((time.monotonic() - started) * 1000),
        )
        self.events.emit(event)
        return event

    def run_checks(self, schedule: Optional[str] = None) -> List[CheckRunEvent]:
        checks = [c for c in self.repository.list_checks(schedule=schedule) if not c.disabled]
        if not checks:
            return []

        events: List[CheckRunEvent] = []
        workers = max(1, min(self.settings.max_workers, len(checks)))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="check") as pool:
            futures = {pool.submit(self.run_check, check): check for check in checks}
            for future in as_completed(futures):
                check = futures[future]
                try:
                    event = future.result()
                except Exception:
                    logger.exception("check run failed", extra={"check": check.id})
                    continue
                if event is not None:
                    events.append(event)

        events.sort(key=lambda e: e.check_id)
        logger.info("check pass finished", extra={"schedule": schedule or "all", "checks": len(events)})
        return events

    def send_failing_checks(self) -> Dict[str, int]:
        return self.router.send_failing_checks(self.repository.list_checks())


def main() -> None:
    from utils.runtime import build_runtime
    from utils.settings import load_settings

    parser = argparse.ArgumentParser(description="Run scheduled checks.")
    parser.add_argument("--schedule", default=None, help="Only run checks in this schedule bucket.")
    parser.add_argument("--send-failing", action="store_true", help="Send the failing checks digest instead.")
    parser.add_argument("--config", default=None)
    parser.add_argument("--pretty", action="store_true")
    args = parser.parse_args()

    runtime = build_runtime(load_settings(args.config))
    try:
        if args.send_failing:
            report = runtime.engine.send_failing_checks()
        else:
            report = summarize_events(runtime.engine.run_checks(schedule=args.schedule))
    finally:
        runtime.close()

    if args.pretty:
        print(json.dumps(report, indent=2, default=str))
    else:
        print(json.dumps(report, default=str))


if __name__ == "__main__":
    main()
