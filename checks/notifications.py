from __future__ import annotations

from collections import defaultdict
from typing import Any, Callable, Dict, Iterable, List, Optional, Protocol, Tuple

from checks.models import DIGEST_STATES, Check, CheckState
from query.result import Result
from utils.log import get_logger

logger = get_logger(__name__)


class Delivery(Protocol):
    def send_failing_checks_email(self, recipient: str, checks: List[Check]) -> None:
        ...

    def send_failing_checks_chat(self, channel: str, checks: List[Check]) -> None:
        ...

    def send_state_change_email(
        self, recipients: List[str], check: Check, prior_state: CheckState, result: Optional[Result]
    ) -> None:
        ...

    def send_state_change_chat(
        self, channels: List[str], check: Check, prior_state: CheckState, result: Optional[Result]
    ) -> None:
        ...


class LoggingDelivery:
    """Delivery that only writes log lines; used when no mailer or chat client is wired in."""

    def send_failing_checks_email(self, recipient: str, checks: List[Check]) -> None:
        logger.info("failing checks email", extra={"to": recipient, "checks": len(checks)})

    def send_failing_checks_chat(self, channel: str, checks: List[Check]) -> None:
        logger.info("failing checks chat", extra={"channel": channel, "checks": len(checks)})

    def send_state_change_email(
        self, recipients: List[str], check: Check, prior_state: CheckState, result: Optional[Result]
    ) -> None:
        logger.info(
            "check state change email",
            extra={"to": ",".join(recipients), "check": check.id, "from": prior_state.value, "state": check.state.value},
        )

    def send_state_change_chat(
        self, channels: List[str], check: Check, prior_state: CheckState, result: Optional[Result]
    ) -> None:
        logger.info(
            "check state change chat",
            extra={"channel": ",".join(channels), "check": check.id, "from": prior_state.value, "state": check.state.value},
        )


def should_notify(prior_state: CheckState, new_state: CheckState) -> bool:
    """Notify on every state change, except a new check coming up passing."""
    if new_state == prior_state:
        return False
    return not (prior_state == CheckState.NEW and new_state == CheckState.PASSING)


def group_by_recipient(checks: Iterable[Check]) -> Tuple[Dict[str, List[Check]], Dict[str, List[Check]]]:
    by_email: Dict[str, List[Check]] = defaultdict(list)
    by_channel: Dict[str, List[Check]] = defaultdict(list)
    for check in checks:
        for email in check.split_emails():
            if check not in by_email[email]:
                by_email[email].append(check)
        for channel in check.split_slack_channels():
            if check not in by_channel[channel]:
                by_channel[channel].append(check)
    return dict(by_email), dict(by_channel)


class NotificationRouter:
    def __init__(self, delivery: Optional[Delivery] = None):
        self.delivery: Delivery = delivery or LoggingDelivery()

    def _safely(self, label: str, target: str, send: Callable[..., Any], *args: Any) -> bool:
        try:
            send(*args)
            return True
        except Exception:
            logger.exception("notification failed", extra={"kind": label, "target": target})
            return False

    def notify_state_change(self, check: Check, prior_state: CheckState, result: Optional[Result] = None) -> bool:
        if not should_notify(prior_state, check.state):
            return False
        emails = check.split_emails()
        channels = check.split_slack_channels()
        if emails:
            self._safely("state_change_email", ",".join(emails), self.delivery.send_state_change_email,
                         emails, check, prior_state, result)
        if channels:
            self._safely("state_change_chat", ",".join(channels), self.delivery.send_state_change_chat,
                         channels, check, prior_state, result)
        return bool(emails or channels)

    def send_failing_checks(self, checks: Iterable[Check]) -> Dict[str, int]:
        """Send one digest per email address and chat channel over checks in a bad or disabled state."""
        bad = sorted((c for c in checks if c.state in DIGEST_STATES), key=lambda c: (c.state.value, c.id))
        by_email, by_channel = group_by_recipient(bad)

        summary = {"checks": len(bad), "emails": 0, "chats": 0, "failed": 0}
        for email, grouped in sorted(by_email.items()):
            if self._safely("failing_email", email, self.delivery.send_failing_checks_email, email, grouped):
                summary["emails"] += 1
            else:
                summary["failed"] += 1
        for channel, grouped in sorted(by_channel.items()):
            if self._safely("failing_chat", channel, self.delivery.send_failing_checks_chat, channel, grouped):
                summary["chats"] += 1
            else:
                summary["failed"] += 1
        return summary
