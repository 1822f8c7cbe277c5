"""HTTP API of image-watcher.

Serves the upgrade confirmation endpoint linked from notifications and a
health probe.
"""

from __future__ import annotations

import time
from typing import TYPE_CHECKING

import structlog
from aiohttp import web

from . import __version__
from .gate import ConfirmationGate, ConfirmationStatus

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

logger = structlog.get_logger(__name__)

GATE_KEY = web.AppKey("gate", ConfirmationGate)

STATUS_CODES: dict[ConfirmationStatus, int] = {
    ConfirmationStatus.SUCCESS: 200,
    ConfirmationStatus.MISSING_PARAMETERS: 400,
    ConfirmationStatus.VERSION_MISMATCH: 400,
    ConfirmationStatus.UNAUTHORIZED: 401,
    ConfirmationStatus.NOT_FOUND: 404,
    ConfirmationStatus.RATE_LIMITED: 429,
    ConfirmationStatus.IN_PROGRESS: 429,
    ConfirmationStatus.UPGRADE_FAILED: 500,
    ConfirmationStatus.ERROR: 500,
}


@web.middleware
async def request_logging_middleware(
    request: web.Request,
    handler: Callable[[web.Request], Awaitable[web.StreamResponse]],
) -> web.StreamResponse:
    """Log method, path, status and duration of every request."""
    start = time.perf_counter()
    status = 500
    try:
        response = await handler(request)
        status = response.status
        return response
    except web.HTTPException as e:
        status = e.status
        raise
    finally:
        logger.info(
            "http_request",
            method=request.method,
            path=request.path,
            status=status,
            duration_ms=round((time.perf_counter() - start) * 1000, 1),
            remote=request.remote,
        )


async def handle_upgrade(request: web.Request) -> web.Response:
    """Confirm a pending upgrade.

    ``GET /api/upgrade/{namespace}/{name}?token=...&version=...``
    """
    gate = request.app[GATE_KEY]
    result = await gate.confirm_upgrade(
        request.match_info.get("namespace"),
        request.match_info.get("name"),
        request.query.get("token"),
        request.query.get("version"),
    )

    if result.success:
        return web.json_response({"success": True})
    return web.json_response({"error": result.message}, status=STATUS_CODES[result.status])


async def handle_health(request: web.Request) -> web.Response:
    return web.json_response({"status": "ok", "version": __version__})


def create_app(gate: ConfirmationGate) -> web.Application:
    """Create the aiohttp application.

    Args:
        gate: Confirmation gate shared by every request.

    Returns:
        Configured application.
    """
    app = web.Application(middlewares=[request_logging_middleware])
    app[GATE_KEY] = gate
    app.router.add_get("/api/upgrade/{namespace}/{name}", handle_upgrade)
    app.router.add_get("/api/health", handle_health)
    return app
