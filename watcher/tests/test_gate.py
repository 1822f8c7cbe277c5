"""Tests for the upgrade confirmation gate."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from watcher.annotations import parse_workload_config
from watcher.config import WatcherSettings
from watcher.gate import (
    ConfirmationGate,
    ConfirmationStatus,
    LockSet,
    RateLimiter,
)
from watcher.images import parse_image
from watcher.models import Workload

ANNOTATIONS = {
    "image-watcher/mode": "NOTIFICATION",
    "image-watcher/current-version": "1.0.0",
    "image-watcher/last-notified-version": "1.1.0",
    "image-watcher/token-update": "secret",
}


class FakeClock:
    def __init__(self) -> None:
        self.now = 100.0

    def __call__(self) -> float:
        return self.now


def make_engine(annotations: dict[str, str] | None = None) -> MagicMock:
    workload = Workload(
        name="web",
        namespace="apps",
        image="org/web:1.0.0",
        image_ref=parse_image("org/web:1.0.0"),
        annotations=ANNOTATIONS if annotations is None else annotations,
    )
    engine = MagicMock()
    engine.settings = WatcherSettings()
    engine.find_workload = AsyncMock(
        return_value=(workload, parse_workload_config(workload.annotations))
    )
    engine.upgrade = AsyncMock(return_value=True)
    return engine


def permissive_gate(engine: MagicMock) -> ConfirmationGate:
    return ConfirmationGate(engine, rate_limiter=RateLimiter(max_requests=100))


class TestRateLimiter:
    """Tests for RateLimiter class."""

    def test_one_request_per_window(self) -> None:
        """A key is refused until its window expires."""
        clock = FakeClock()
        limiter = RateLimiter(window_seconds=5, clock=clock)

        assert limiter.allow("a") is True
        assert limiter.allow("a") is False
        assert limiter.allow("b") is True

        clock.now += 5
        assert limiter.allow("a") is True

    def test_max_requests(self) -> None:
        """Several requests fit in a window when allowed."""
        limiter = RateLimiter(max_requests=2, clock=FakeClock())
        assert [limiter.allow("a") for _ in range(3)] == [True, True, False]


class TestLockSet:
    """Tests for LockSet class."""

    def test_acquire_release(self) -> None:
        """A held key cannot be acquired twice."""
        locks = LockSet()
        assert locks.try_acquire("k") is True
        assert locks.try_acquire("k") is False
        assert locks.is_held("k")
        locks.release("k")
        assert len(locks) == 0
        assert locks.try_acquire("k") is True


class TestConfirmUpgrade:
    """Tests for ConfirmationGate.confirm_upgrade."""

    @pytest.mark.asyncio
    async def test_success(self) -> None:
        """A valid confirmation upgrades to the notified version."""
        engine = make_engine()
        gate = permissive_gate(engine)

        result = await gate.confirm_upgrade("apps", "web", "secret", "1.1.0")

        assert result.status == ConfirmationStatus.SUCCESS
        assert result.success
        assert result.message == "Upgrade applied"
        workload = engine.find_workload.return_value[0]
        engine.upgrade.assert_awaited_once_with(workload, "1.1.0", "1.0.0")
        assert len(gate.locks) == 0

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("namespace", "name", "token", "version"),
        [
            (None, "web", "secret", "1.1.0"),
            ("apps", "", "secret", "1.1.0"),
            ("apps", "web", None, "1.1.0"),
            ("apps", "web", "secret", None),
        ],
    )
    async def test_missing_parameters(
        self,
        namespace: str | None,
        name: str | None,
        token: str | None,
        version: str | None,
    ) -> None:
        """Every parameter is required."""
        engine = make_engine()

        result = await permissive_gate(engine).confirm_upgrade(namespace, name, token, version)

        assert result.status == ConfirmationStatus.MISSING_PARAMETERS
        engine.find_workload.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_not_found(self) -> None:
        """Unknown workloads are reported."""
        engine = make_engine()
        engine.find_workload.return_value = None

        result = await permissive_gate(engine).confirm_upgrade("apps", "web", "secret", "1.1.0")

        assert result.status == ConfirmationStatus.NOT_FOUND

    @pytest.mark.asyncio
    async def test_wrong_token(self) -> None:
        """A token other than the stored one is refused without upgrading."""
        engine = make_engine()

        result = await permissive_gate(engine).confirm_upgrade("apps", "web", "guess", "1.1.0")

        assert result.status == ConfirmationStatus.UNAUTHORIZED
        assert result.message == "Invalid token"
        engine.upgrade.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_no_pending_token(self) -> None:
        """Without a pending confirmation every token is refused."""
        annotations = {k: v for k, v in ANNOTATIONS.items() if k != "image-watcher/token-update"}
        engine = make_engine(annotations)

        result = await permissive_gate(engine).confirm_upgrade("apps", "web", "secret", "1.1.0")

        assert result.status == ConfirmationStatus.UNAUTHORIZED

    @pytest.mark.asyncio
    async def test_version_mismatch(self) -> None:
        """Only the notified version can be confirmed."""
        engine = make_engine()

        result = await permissive_gate(engine).confirm_upgrade("apps", "web", "secret", "2.0.0")

        assert result.status == ConfirmationStatus.VERSION_MISMATCH
        engine.upgrade.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_upgrade_failed(self) -> None:
        """A rejected upgrade is reported."""
        engine = make_engine()
        engine.upgrade.return_value = False

        result = await permissive_gate(engine).confirm_upgrade("apps", "web", "secret", "1.1.0")

        assert result.status == ConfirmationStatus.UPGRADE_FAILED

    @pytest.mark.asyncio
    async def test_exception_releases_lock(self) -> None:
        """Unexpected errors are reported and the lock is released."""
        engine = make_engine()
        engine.upgrade.side_effect = RuntimeError("boom")
        gate = permissive_gate(engine)

        result = await gate.confirm_upgrade("apps", "web", "secret", "1.1.0")

        assert result.status == ConfirmationStatus.ERROR
        assert not gate.locks.is_held(gate.lock_key("apps", "web", "secret"))

    @pytest.mark.asyncio
    async def test_rate_limited(self) -> None:
        """A second click inside the window is refused."""
        clock = FakeClock()
        engine = make_engine()
        gate = ConfirmationGate(engine, rate_limiter=RateLimiter(window_seconds=5, clock=clock))

        first = await gate.confirm_upgrade("apps", "web", "secret", "1.1.0")
        second = await gate.confirm_upgrade("apps", "web", "secret", "1.1.0")

        assert first.status == ConfirmationStatus.SUCCESS
        assert second.status == ConfirmationStatus.RATE_LIMITED
        engine.upgrade.assert_awaited_once()

    def test_default_window_from_settings(self) -> None:
        """The default limiter uses the configured window."""
        engine = make_engine()
        engine.settings = WatcherSettings(rate_limit_window_seconds=12)
        assert ConfirmationGate(engine).rate_limiter.window_seconds == 12

    @pytest.mark.asyncio
    async def test_concurrent_confirmations(self) -> None:
        """While an upgrade runs the same link is refused."""
        engine = make_engine()
        started = asyncio.Event()
        release = asyncio.Event()

        async def slow_upgrade(*args: object) -> bool:
            started.set()
            await release.wait()
            return True

        engine.upgrade.side_effect = slow_upgrade
        gate = permissive_gate(engine)

        first = asyncio.create_task(gate.confirm_upgrade("apps", "web", "secret", "1.1.0"))
        await started.wait()
        second = await gate.confirm_upgrade("apps", "web", "secret", "1.1.0")
        release.set()

        assert second.status == ConfirmationStatus.IN_PROGRESS
        assert (await first).status == ConfirmationStatus.SUCCESS
        engine.upgrade.assert_awaited_once()
        assert len(gate.locks) == 0
