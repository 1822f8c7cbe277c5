"""Tests for the cron scheduler."""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime
from unittest.mock import AsyncMock

import pytest

from watcher.schedule import CycleScheduler, next_run, validate_cron


class TestCron:
    """Tests for the cron helpers."""

    def test_validate_cron(self) -> None:
        """Five-field expressions are accepted, garbage is not."""
        assert validate_cron("0 12 * * *")
        assert validate_cron("*/5 * * * *")
        assert not validate_cron("every day")
        assert not validate_cron("61 * * * *")

    def test_next_run(self) -> None:
        """The next run is the first matching time after now."""
        now = datetime(2025, 3, 10, 13, 0, tzinfo=UTC)
        assert next_run("0 12 * * *", now) == datetime(2025, 3, 11, 12, 0, tzinfo=UTC)

    def test_invalid_expression_rejected(self) -> None:
        """The scheduler refuses invalid expressions."""
        with pytest.raises(ValueError, match="Invalid cron expression"):
            CycleScheduler(AsyncMock(), "not a cron")


class TestCycleScheduler:
    """Tests for CycleScheduler class."""

    @pytest.mark.asyncio
    async def test_run_now(self) -> None:
        """A cycle runs when none is running."""
        cycle = AsyncMock()
        scheduler = CycleScheduler(cycle, timezone="Europe/Paris")

        assert await scheduler.run_now() is True
        cycle.assert_awaited_once()
        assert not scheduler.running

    @pytest.mark.asyncio
    async def test_overlapping_run_is_skipped(self) -> None:
        """A tick while a cycle runs is skipped."""
        started = asyncio.Event()
        release = asyncio.Event()
        calls = 0

        async def cycle() -> None:
            nonlocal calls
            calls += 1
            started.set()
            await release.wait()

        scheduler = CycleScheduler(cycle)
        first = asyncio.create_task(scheduler.run_now())
        await started.wait()

        assert scheduler.running
        assert await scheduler.run_now() is False

        release.set()
        assert await first is True
        assert calls == 1

    @pytest.mark.asyncio
    async def test_cycle_errors_are_contained(self) -> None:
        """A failing cycle does not stop the scheduler."""
        cycle = AsyncMock(side_effect=RuntimeError("boom"))
        scheduler = CycleScheduler(cycle)

        assert await scheduler.run_now() is True
        assert not scheduler.running
        assert await scheduler.run_now() is True
        assert cycle.await_count == 2

    @pytest.mark.asyncio
    async def test_trigger_runs_in_background(self) -> None:
        """Triggered cycles run as background tasks."""
        done = asyncio.Event()

        async def cycle() -> None:
            done.set()

        scheduler = CycleScheduler(cycle)
        scheduler.trigger()

        await asyncio.wait_for(done.wait(), timeout=1)

    @pytest.mark.asyncio
    async def test_run_forever_is_cancellable(self) -> None:
        """Cancelling the loop stops the scheduler."""
        scheduler = CycleScheduler(AsyncMock(), "0 0 1 1 *")
        task = asyncio.create_task(scheduler.run_forever())
        await asyncio.sleep(0)

        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
