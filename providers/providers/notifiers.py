"""Notification channels."""

from __future__ import annotations

import aiohttp
import structlog

from watcher.chunker import UNBOUNDED
from watcher.interfaces import NotificationProvider, UnavailableError

from .http import HttpProvider

logger = structlog.get_logger(__name__)

DISCORD_MAX_LENGTH = 2000
TELEGRAM_API = "https://api.telegram.org"


class DiscordNotifier(NotificationProvider, HttpProvider):
    """Posts messages to a Discord webhook."""

    name = "discord"

    def __init__(
        self, webhook_url: str | None = None, session: aiohttp.ClientSession | None = None
    ) -> None:
        super().__init__(session=session)
        self.webhook_url = webhook_url

    @property
    def max_length(self) -> int:
        return DISCORD_MAX_LENGTH

    def is_configured(self) -> bool:
        return bool(self.webhook_url)

    async def send(self, message: str, username: str | None = None) -> None:
        payload: dict[str, str] = {"content": message}
        if username:
            payload["username"] = username
        await self.request("POST", str(self.webhook_url), json=payload)


class TelegramNotifier(NotificationProvider, HttpProvider):
    """Sends messages through the Telegram Bot API.

    Telegram has no username per message; it is ignored.
    """

    name = "telegram"

    def __init__(
        self,
        bot_token: str | None = None,
        chat_id: str | None = None,
        session: aiohttp.ClientSession | None = None,
    ) -> None:
        super().__init__(session=session)
        self.bot_token = bot_token
        self.chat_id = chat_id

    @property
    def max_length(self) -> int:
        return UNBOUNDED

    def is_configured(self) -> bool:
        return bool(self.bot_token and self.chat_id)

    def _url(self, method: str) -> str:
        return f"{TELEGRAM_API}/bot{self.bot_token}/{method}"

    async def is_available(self) -> bool:
        if not self.is_configured():
            return False
        try:
            data = await self.request("GET", self._url("getMe"))
        except UnavailableError as e:
            logger.warning("telegram_unavailable", error=str(e))
            return False
        return bool((data or {}).get("ok"))

    async def send(self, message: str, username: str | None = None) -> None:
        await self.request(
            "POST",
            self._url("sendMessage"),
            json={"chat_id": self.chat_id, "text": message, "parse_mode": "Markdown"},
        )
