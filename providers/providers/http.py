"""Shared HTTP plumbing for providers.

Every provider talks to its backend through :class:`HttpProvider`, which
wraps aiohttp errors and error statuses into ``UnavailableError``.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

import aiohttp
import structlog

from watcher.interfaces import UnavailableError

logger = structlog.get_logger(__name__)

DEFAULT_TIMEOUT = aiohttp.ClientTimeout(total=30)


class HttpProvider:
    """Mixin issuing HTTP requests on behalf of a provider.

    A session may be injected and shared; otherwise a short-lived session
    is opened per request.
    """

    name: str
    timeout: aiohttp.ClientTimeout = DEFAULT_TIMEOUT

    def __init__(self, session: aiohttp.ClientSession | None = None) -> None:
        self._session = session

    def connector(self) -> aiohttp.BaseConnector | None:
        """Return the connector of per-request sessions."""
        return None

    @asynccontextmanager
    async def _client(self) -> AsyncIterator[aiohttp.ClientSession]:
        if self._session is not None:
            yield self._session
            return
        async with aiohttp.ClientSession(connector=self.connector()) as session:
            yield session

    async def request(
        self,
        method: str,
        url: str,
        *,
        headers: dict[str, str] | None = None,
        params: dict[str, str] | None = None,
        json: Any = None,
        data: str | bytes | None = None,
        as_text: bool = False,
    ) -> Any:
        """Send a request and return the decoded body.

        Args:
            method: HTTP method.
            url: Target URL.
            headers: Request headers.
            params: Query string parameters.
            json: JSON body.
            data: Raw body.
            as_text: Return the body as text instead of decoded JSON.

        Returns:
            Decoded JSON, text, or None for an empty body.

        Raises:
            UnavailableError: On connection errors, timeouts or error statuses.
                ``details["status"]`` holds the HTTP status when there is one.
        """
        try:
            async with (
                self._client() as session,
                session.request(
                    method,
                    url,
                    headers=headers,
                    params=params,
                    json=json,
                    data=data,
                    timeout=self.timeout,
                ) as response,
            ):
                if response.status >= 400:
                    body = await response.text()
                    raise UnavailableError(
                        f"{method} {url} failed with status {response.status}",
                        provider=self.name,
                        details={"url": url, "status": response.status, "body": body[:500]},
                    )
                if as_text:
                    return await response.text()
                text = await response.text()
                if not text.strip():
                    return None
                return await response.json(content_type=None)
        except aiohttp.ClientError as e:
            logger.debug("http_request_failed", provider=self.name, url=url, error=str(e))
            raise UnavailableError(str(e), provider=self.name, details={"url": url}) from e
        except TimeoutError as e:
            raise UnavailableError(
                f"{method} {url} timed out", provider=self.name, details={"url": url}
            ) from e


def is_status(error: UnavailableError, status: int) -> bool:
    """Return True if an error was caused by a given HTTP status."""
    return error.details.get("status") == status
