"""Tests for the reminder policy."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

from watcher.reminder import evaluate_reminder
from watcher.version import parse_version

NOW = datetime(2025, 6, 1, 12, 0, tzinfo=UTC)


def versions(*tags: str):
    return [parse_version(t) for t in tags]


class TestEvaluateReminder:
    """Tests for evaluate_reminder function."""

    def test_never_notified(self) -> None:
        """Every candidate is new and no reminder is due."""
        decision = evaluate_reminder(None, None, versions("1.1.0"), now=NOW)

        assert [v.original for v in decision.new_versions] == ["1.1.0"]
        assert decision.should_remind is False
        assert decision.should_notify

    def test_only_newer_than_last_notified(self) -> None:
        """Versions already announced are not new."""
        decision = evaluate_reminder(
            NOW - timedelta(days=1),
            "1.1.0",
            versions("1.2.0", "1.1.0", "1.0.1"),
            now=NOW,
        )

        assert [v.original for v in decision.new_versions] == ["1.2.0"]
        assert decision.should_remind is False

    def test_nothing_new_and_recent(self) -> None:
        """No new version and a recent notification means silence."""
        decision = evaluate_reminder(
            NOW - timedelta(days=2), "1.1.0", versions("1.1.0"), now=NOW
        )

        assert decision.new_versions == []
        assert not decision.should_notify

    def test_remind_at_delay(self) -> None:
        """A reminder is due once the delay has fully elapsed."""
        last = NOW - timedelta(days=7)
        assert evaluate_reminder(last, "1.1.0", versions("1.1.0"), now=NOW).should_remind

        just_before = NOW - timedelta(days=7) + timedelta(seconds=1)
        assert not evaluate_reminder(
            just_before, "1.1.0", versions("1.1.0"), now=NOW
        ).should_remind

    def test_custom_delay(self) -> None:
        """The delay is configurable in days."""
        last = NOW - timedelta(hours=12)
        decision = evaluate_reminder(
            last, "1.1.0", versions("1.1.0"), reminder_delay_days=0.5, now=NOW
        )
        assert decision.should_remind

    def test_naive_timestamp_is_utc(self) -> None:
        """Naive timestamps are read as UTC."""
        last = datetime(2025, 5, 20, 12, 0)
        assert evaluate_reminder(last, "1.1.0", [], now=NOW).should_remind

    def test_unparseable_last_version(self) -> None:
        """A last version that is not a version makes every candidate new."""
        decision = evaluate_reminder(NOW, "latest", versions("1.0.1"), now=NOW)
        assert [v.original for v in decision.new_versions] == ["1.0.1"]
