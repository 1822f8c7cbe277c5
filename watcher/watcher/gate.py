"""Upgrade confirmation gate.

A notification carries a one-shot link that lets a human confirm a
proposed upgrade. The gate validates such a confirmation and protects the
upgrade against duplicate and concurrent clicks on the same link.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

import structlog

if TYPE_CHECKING:
    from .engine import UpdateEngine

logger = structlog.get_logger(__name__)

DEFAULT_RATE_LIMIT_WINDOW = 5.0


class ConfirmationStatus(str, Enum):
    """Outcome of a confirmation request."""

    SUCCESS = "success"
    MISSING_PARAMETERS = "missing_parameters"
    RATE_LIMITED = "rate_limited"
    IN_PROGRESS = "in_progress"
    NOT_FOUND = "not_found"
    UNAUTHORIZED = "unauthorized"
    VERSION_MISMATCH = "version_mismatch"
    UPGRADE_FAILED = "upgrade_failed"
    ERROR = "error"


MESSAGES: dict[ConfirmationStatus, str] = {
    ConfirmationStatus.SUCCESS: "Upgrade applied",
    ConfirmationStatus.MISSING_PARAMETERS: "Missing parameters",
    ConfirmationStatus.RATE_LIMITED: "Please wait before retrying",
    ConfirmationStatus.IN_PROGRESS: "Upgrade already in progress",
    ConfirmationStatus.NOT_FOUND: "Workload not found",
    ConfirmationStatus.UNAUTHORIZED: "Invalid token",
    ConfirmationStatus.VERSION_MISMATCH: "Invalid version",
    ConfirmationStatus.UPGRADE_FAILED: "Upgrade failed",
    ConfirmationStatus.ERROR: "Internal error",
}


@dataclass(frozen=True)
class ConfirmationResult:
    """Result of a confirmation request."""

    status: ConfirmationStatus

    @property
    def success(self) -> bool:
        return self.status == ConfirmationStatus.SUCCESS

    @property
    def message(self) -> str:
        return MESSAGES[self.status]


class RateLimiter:
    """Fixed-window rate limiter keyed by string.

    Each key may be used ``max_requests`` times per window; the window
    starts with the key's first request.
    """

    def __init__(
        self,
        window_seconds: float = DEFAULT_RATE_LIMIT_WINDOW,
        max_requests: int = 1,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.window_seconds = window_seconds
        self.max_requests = max_requests
        self._clock = clock
        self._windows: dict[str, tuple[float, int]] = {}

    def allow(self, key: str) -> bool:
        """Count a request for a key and return whether it is allowed."""
        now = self._clock()
        self._prune(now)

        started, count = self._windows.get(key, (now, 0))
        if count >= self.max_requests:
            return False

        self._windows[key] = (started, count + 1)
        return True

    def _prune(self, now: float) -> None:
        expired = [
            key
            for key, (started, _) in self._windows.items()
            if now - started >= self.window_seconds
        ]
        for key in expired:
            del self._windows[key]


class LockSet:
    """Set of keys locked by in-flight operations."""

    def __init__(self) -> None:
        self._held: set[str] = set()

    def try_acquire(self, key: str) -> bool:
        """Lock a key, returning False if it is already held."""
        if key in self._held:
            return False
        self._held.add(key)
        return True

    def release(self, key: str) -> None:
        self._held.discard(key)

    def is_held(self, key: str) -> bool:
        return key in self._held

    def __len__(self) -> int:
        return len(self._held)


class ConfirmationGate:
    """Validates human confirmations of pending upgrades.

    One gate is shared by the whole process; its lock set and rate
    limiter are not shared across processes.
    """

    def __init__(
        self,
        engine: UpdateEngine,
        rate_limiter: RateLimiter | None = None,
        locks: LockSet | None = None,
    ) -> None:
        """Initialize the gate.

        Args:
            engine: Engine used to look up and upgrade workloads.
            rate_limiter: Limiter applied per confirmation link. Defaults to
                one request per window from the engine settings.
            locks: Lock set of in-flight upgrades.
        """
        self.engine = engine
        self.rate_limiter = rate_limiter or RateLimiter(
            window_seconds=engine.settings.rate_limit_window_seconds
        )
        self.locks = locks or LockSet()

    @staticmethod
    def lock_key(namespace: str | None, name: str | None, token: str | None) -> str:
        return f"{namespace}:{name}:{token}"

    async def confirm_upgrade(
        self,
        namespace: str | None,
        name: str | None,
        token: str | None,
        version: str | None,
    ) -> ConfirmationResult:
        """Confirm a pending upgrade.

        Steps run in order: rate limit, parameter check, in-flight check,
        then, under the lock, existence, token and version validation and
        the upgrade itself. The lock is always released once acquired.

        Args:
            namespace: Namespace of the workload.
            name: Name of the workload.
            token: Token from the confirmation link.
            version: Version from the confirmation link.

        Returns:
            ConfirmationResult describing the outcome.
        """
        key = self.lock_key(namespace, name, token)
        log = logger.bind(namespace=namespace, workload=name, version=version)

        if not self.rate_limiter.allow(key):
            log.warning("confirmation_rate_limited")
            return ConfirmationResult(ConfirmationStatus.RATE_LIMITED)

        if not (namespace and name and token and version):
            log.warning("confirmation_missing_parameters")
            return ConfirmationResult(ConfirmationStatus.MISSING_PARAMETERS)

        if not self.locks.try_acquire(key):
            log.warning("confirmation_in_progress")
            return ConfirmationResult(ConfirmationStatus.IN_PROGRESS)

        try:
            status = await self._confirm(namespace, name, token, version)
        except Exception:
            log.exception("confirmation_failed")
            status = ConfirmationStatus.ERROR
        finally:
            self.locks.release(key)

        log.info("confirmation_handled", status=status.value)
        return ConfirmationResult(status)

    async def _confirm(
        self, namespace: str, name: str, token: str, version: str
    ) -> ConfirmationStatus:
        found = await self.engine.find_workload(namespace, name)
        if found is None:
            return ConfirmationStatus.NOT_FOUND

        workload, config = found
        if config.pending_upgrade_token != token:
            return ConfirmationStatus.UNAUTHORIZED
        if config.last_notified_version != version:
            return ConfirmationStatus.VERSION_MISMATCH

        upgraded = await self.engine.upgrade(workload, version, config.current_version)
        return ConfirmationStatus.SUCCESS if upgraded else ConfirmationStatus.UPGRADE_FAILED
