"""OpenAI-compatible chat completion summarizer."""

from __future__ import annotations

import aiohttp
import structlog

from watcher.interfaces import SummarizerProvider, UnavailableError
from watcher.models import ChatMessage, ModelInfo

from .http import HttpProvider

logger = structlog.get_logger(__name__)

DEFAULT_MAX_TOKENS = 8128

# Summaries of long changelogs take a while
SUMMARY_TIMEOUT = aiohttp.ClientTimeout(total=120)


class OpenAISummarizer(SummarizerProvider, HttpProvider):
    """Summarizes changelogs with any OpenAI-compatible API.

    Local servers exposing the same API work with a base URL and no key.
    """

    name = "openai"
    timeout = SUMMARY_TIMEOUT

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str = "https://api.openai.com/v1",
        model: str | None = None,
        session: aiohttp.ClientSession | None = None,
    ) -> None:
        super().__init__(session=session)
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.model = model

    def is_configured(self) -> bool:
        return bool((self.api_key or self.base_url) and self.model)

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    async def chat(
        self,
        messages: list[ChatMessage],
        model: str | None = None,
        temperature: float = 0.3,
        max_tokens: int | None = None,
    ) -> str:
        """Run a chat completion.

        Args:
            messages: Conversation, system prompt first.
            model: Model overriding the configured one.
            temperature: Sampling temperature.
            max_tokens: Completion length limit.

        Returns:
            The stripped answer text.

        Raises:
            UnavailableError: If the API fails or answers without choices.
        """
        payload = {
            "model": model or self.model,
            "messages": [m.model_dump(mode="json") for m in messages],
            "temperature": temperature,
            "max_tokens": max_tokens or DEFAULT_MAX_TOKENS,
        }
        data = await self.request(
            "POST", f"{self.base_url}/chat/completions", headers=self._headers(), json=payload
        )

        choices = (data or {}).get("choices") or []
        if not choices:
            raise UnavailableError("Completion returned no choices", provider=self.name)

        content = (choices[0].get("message") or {}).get("content") or ""
        logger.debug("completion_received", model=payload["model"], length=len(content))
        return str(content).strip()

    async def list_models(self) -> list[ModelInfo]:
        data = await self.request("GET", f"{self.base_url}/models", headers=self._headers())
        return [
            ModelInfo(id=m["id"], owned_by=m.get("owned_by"), created=m.get("created"))
            for m in (data or {}).get("data", [])
            if m.get("id")
        ]
