"""Container registry providers.

Both registries are public APIs that need no configuration; GHCR uses a
GitHub token when one is set and an anonymous pull token otherwise.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from typing import Any

import aiohttp
import structlog

from watcher.interfaces import RegistryProvider, UnavailableError
from watcher.models import Tag

from .http import HttpProvider

logger = structlog.get_logger(__name__)

DOCKER_HUB_API = "https://registry.hub.docker.com/v2/repositories"
GITHUB_API = "https://api.github.com"
GHCR_TOKEN_URL = "https://ghcr.io/token"

# Lifetime of an anonymous GHCR token
GHCR_TOKEN_TTL_SECONDS = 10 * 60


class DockerHubRegistry(RegistryProvider, HttpProvider):
    """Docker Hub, the default registry."""

    name = "docker-hub"

    HOSTS = frozenset(
        {"docker.io", "index.docker.io", "registry-1.docker.io", "registry.hub.docker.com"}
    )

    def __init__(self, session: aiohttp.ClientSession | None = None) -> None:
        super().__init__(session=session)

    def is_configured(self) -> bool:
        return True

    def handles(self, registry: str) -> bool:
        return registry in self.HOSTS

    async def list_tags(self, repository: str, limit: int = 100) -> list[Tag]:
        """List tags, most recently pushed first.

        Official images such as ``nginx`` live under ``library/``.
        """
        if "/" not in repository:
            repository = f"library/{repository}"

        data = await self.request(
            "GET",
            f"{DOCKER_HUB_API}/{repository}/tags",
            params={"page_size": str(limit)},
        )
        results: list[dict[str, Any]] = (data or {}).get("results", [])
        return [
            Tag(name=r["name"], digest=_strip_algorithm(r.get("digest")))
            for r in results
            if r.get("name")
        ]


def _strip_algorithm(digest: str | None) -> str | None:
    if not digest:
        return None
    return digest.split("sha256:", 1)[1] if "sha256:" in digest else digest


class GhcrRegistry(RegistryProvider, HttpProvider):
    """GitHub Container Registry, listing tags through the GitHub API."""

    name = "ghcr"

    def __init__(
        self,
        token: str | None = None,
        session: aiohttp.ClientSession | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        super().__init__(session=session)
        self.token = token
        self._clock = clock
        self._anonymous_tokens: dict[str, tuple[str, float]] = {}

    def is_configured(self) -> bool:
        return True

    def handles(self, registry: str) -> bool:
        return registry == "ghcr.io"

    async def is_available(self) -> bool:
        """Check that the GitHub API answers and has quota left."""
        headers = {"Authorization": f"Bearer {self.token}"} if self.token else {}
        try:
            data = await self.request("GET", f"{GITHUB_API}/rate_limit", headers=headers)
        except UnavailableError as e:
            logger.warning("ghcr_unavailable", error=str(e))
            return False
        return int(data.get("rate", {}).get("remaining", 0)) > 0

    async def _anonymous_token(self, repository: str) -> str:
        now = self._clock()
        cached = self._anonymous_tokens.get(repository)
        if cached and cached[1] > now:
            return cached[0]

        data = await self.request(
            "GET",
            GHCR_TOKEN_URL,
            params={"service": "ghcr.io", "scope": f"repository:{repository}:pull"},
        )
        token = str((data or {}).get("token", ""))
        self._anonymous_tokens[repository] = (token, now + GHCR_TOKEN_TTL_SECONDS)
        return token

    async def list_tags(self, repository: str, limit: int = 100) -> list[Tag]:
        """List git tags of the repository; the digest is the commit sha."""
        token = self.token or await self._anonymous_token(repository)
        data = await self.request(
            "GET",
            f"{GITHUB_API}/repos/{repository}/tags",
            headers={"Authorization": f"Bearer {token}"},
            params={"per_page": "100", "page": "1"},
        )
        tags = [
            Tag(name=t["name"], digest=(t.get("commit") or {}).get("sha"))
            for t in (data or [])
            if t.get("name")
        ]
        return tags[:limit]
