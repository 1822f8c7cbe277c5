"""Reminder policy for notification mode.

Decides whether a workload in notification mode should be notified again:
either because versions newer than the last notified one appeared, or
because the last notification is old enough to warrant a reminder.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from .version import compare_versions, parse_version

if TYPE_CHECKING:
    from .version import ParsedVersion

DEFAULT_REMINDER_DELAY_DAYS = 7

SECONDS_PER_DAY = 24 * 60 * 60


@dataclass(frozen=True)
class ReminderDecision:
    """Result of the reminder policy."""

    new_versions: list[ParsedVersion] = field(default_factory=list)
    should_remind: bool = False

    @property
    def should_notify(self) -> bool:
        return bool(self.new_versions) or self.should_remind


def evaluate_reminder(
    last_notified_at: datetime | None,
    last_notified_version: str | None,
    candidates: list[ParsedVersion],
    reminder_delay_days: float = DEFAULT_REMINDER_DELAY_DAYS,
    now: datetime | None = None,
) -> ReminderDecision:
    """Evaluate whether a notification is due.

    Args:
        last_notified_at: When the workload was last notified.
        last_notified_version: Version announced by the last notification.
        candidates: Candidate versions currently offered for upgrade.
        reminder_delay_days: Days after which a reminder is sent.
        now: Current time, defaults to the current UTC time.

    Returns:
        ReminderDecision with the versions never notified before and the
        reminder flag.
    """
    if now is None:
        now = datetime.now(tz=UTC)

    should_remind = False
    if last_notified_at is not None:
        elapsed = now - _as_aware(last_notified_at)
        should_remind = elapsed.total_seconds() / SECONDS_PER_DAY >= reminder_delay_days

    if last_notified_at is None or not last_notified_version:
        return ReminderDecision(new_versions=list(candidates), should_remind=should_remind)

    last_version = parse_version(last_notified_version)
    if last_version is None:
        return ReminderDecision(new_versions=list(candidates), should_remind=should_remind)

    return ReminderDecision(
        new_versions=[v for v in candidates if compare_versions(v, last_version) > 0],
        should_remind=should_remind,
    )


def _as_aware(value: datetime) -> datetime:
    # Naive timestamps are read as UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value
