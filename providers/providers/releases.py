"""Release notes providers."""

from __future__ import annotations

import re
from datetime import UTC, datetime

import aiohttp

from watcher.interfaces import ReleaseProvider, UnavailableError
from watcher.models import ReleaseInfo

from .http import HttpProvider, is_status

GITHUB_API_PATTERN = re.compile(r"^https://((api|www)\.)?github\.com/repos/.*")
HTTP_PATTERN = re.compile(r"^https?://", re.IGNORECASE)


def _parse_datetime(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


class GitHubReleaseProvider(ReleaseProvider, HttpProvider):
    """Reads releases from the GitHub REST API."""

    name = "github"

    def __init__(
        self, token: str | None = None, session: aiohttp.ClientSession | None = None
    ) -> None:
        super().__init__(session=session)
        self.token = token

    def is_configured(self) -> bool:
        return True

    def matches(self, url: str | None) -> bool:
        return bool(url and GITHUB_API_PATTERN.match(url))

    async def get_release(
        self,
        repository: str,
        tag: str,
        url: str | None = None,
        context: dict[str, str] | None = None,
    ) -> ReleaseInfo | None:
        """Fetch ``repos/{repository}/releases/tags/{tag}``.

        Returns None when the tag has no release.
        """
        target = url or f"https://api.github.com/repos/{repository}/releases/tags/{tag}"
        headers = {"Accept": "application/vnd.github+json", "User-Agent": "image-watcher"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"

        try:
            data = await self.request("GET", target, headers=headers)
        except UnavailableError as e:
            if is_status(e, 404):
                return None
            raise

        data = data or {}
        return ReleaseInfo(
            provider=self.name,
            name=repository,
            version=tag,
            url=data.get("html_url") or target,
            author=(data.get("author") or {}).get("login") or "unknown",
            published_at=_parse_datetime(data.get("published_at")),
            changelog=data.get("body") or "",
        )


class UrlReleaseProvider(ReleaseProvider, HttpProvider):
    """Uses the raw content of any release URL as the changelog."""

    name = "url"

    def __init__(self, session: aiohttp.ClientSession | None = None) -> None:
        super().__init__(session=session)

    def is_configured(self) -> bool:
        return True

    def matches(self, url: str | None) -> bool:
        return bool(url and HTTP_PATTERN.match(url))

    async def get_release(
        self,
        repository: str,
        tag: str,
        url: str | None = None,
        context: dict[str, str] | None = None,
    ) -> ReleaseInfo | None:
        if not url:
            return None

        text = await self.request("GET", url, as_text=True)
        return ReleaseInfo(
            provider=self.name,
            name=repository,
            version=tag,
            url=url,
            published_at=datetime.now(tz=UTC),
            changelog=text or "",
        )
