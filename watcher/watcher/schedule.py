"""Cron-driven execution of decision cycles."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from datetime import datetime
from typing import Any

import structlog
from croniter import croniter

from .annotations import get_zone

logger = structlog.get_logger(__name__)

DEFAULT_CRON = "0 12 * * *"


def validate_cron(expression: str) -> bool:
    """Return True if a cron expression is valid."""
    return bool(croniter.is_valid(expression))


def next_run(expression: str, now: datetime) -> datetime:
    """Return the first time after ``now`` matching a cron expression."""
    return croniter(expression, now).get_next(datetime)  # type: ignore[no-any-return]


class CycleScheduler:
    """Runs a cycle on a cron schedule, never two at once.

    A tick that fires while a cycle is still running is skipped.
    """

    def __init__(
        self,
        cycle: Callable[[], Awaitable[Any]],
        expression: str = DEFAULT_CRON,
        timezone: str | None = None,
    ) -> None:
        """Initialize the scheduler.

        Args:
            cycle: Coroutine function running one cycle.
            expression: Cron expression.
            timezone: Time zone the expression is evaluated in.

        Raises:
            ValueError: If the cron expression is invalid.
        """
        if not validate_cron(expression):
            raise ValueError(f"Invalid cron expression: {expression}")

        self.cycle = cycle
        self.expression = expression
        self.zone = get_zone(timezone)
        self._lock = asyncio.Lock()
        self._tasks: set[asyncio.Task[None]] = set()

    @property
    def running(self) -> bool:
        return self._lock.locked()

    async def run_now(self) -> bool:
        """Run one cycle unless one is already running.

        Returns:
            True if the cycle ran.
        """
        if self._lock.locked():
            logger.warning("cycle_skipped", reason="previous cycle still running")
            return False

        async with self._lock:
            try:
                await self.cycle()
            except Exception:
                logger.exception("cycle_failed")
        return True

    def trigger(self) -> None:
        """Start a cycle in the background."""
        task = asyncio.create_task(self._run_detached())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _run_detached(self) -> None:
        await self.run_now()

    async def run_forever(self) -> None:
        """Trigger cycles on schedule until cancelled."""
        logger.info("scheduler_started", cron=self.expression, timezone=str(self.zone))
        base = datetime.now(tz=self.zone)
        try:
            while True:
                upcoming = next_run(self.expression, base)
                delay = max(0.0, (upcoming - datetime.now(tz=self.zone)).total_seconds())
                logger.debug("next_cycle_scheduled", at=upcoming.isoformat(), in_seconds=delay)

                await asyncio.sleep(delay)
                self.trigger()
                # Next tick is computed from this one so an early wake-up cannot fire twice
                base = upcoming
        finally:
            for task in self._tasks:
                task.cancel()
            logger.info("scheduler_stopped")
