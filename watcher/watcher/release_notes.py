"""Release notes assembled for notifications.

Release notes of each candidate version are fetched, reduced to plain
text, optionally summarized by a chat model and formatted as markdown
blocks ready to be broadcast.
"""

from __future__ import annotations

import asyncio
import re
from typing import TYPE_CHECKING

import structlog

if TYPE_CHECKING:
    from .models import ReleaseInfo
    from .services import ReleaseService, SummarizerService

logger = structlog.get_logger(__name__)

RELEASE_NOTES_PROMPT = """
You are an AI expert in technical communication.
Your role is to analyze a changelog or release notes and produce a **clear,
precise and structured summary**, without extrapolating.

Goal:
- Rephrase only the information that is present.
- Remove everything not directly related to the application (thanks, authors,
  links, metadata, etc.).
- Highlight what actually changed in the product.

Interpretation rules:
1. **No invention or extrapolation**:
   If a category (features, fixes, etc.) is not mentioned in the notes, do not
   create it. If the text has few details, keep a minimal factual summary.
2. If the release looks like a **minor or patch update** (fixes, maintenance),
   keep a sober and short tone.
3. If the release contains **major changes**, structure the summary in this order:
   - **Security / CVE** (vulnerability fixes, critical dependency updates)
   - **New features / Improvements**
   - **Notable changes** (interface, API, compatibility, performance)
   - **Bug fixes**
   - **Other technical details / maintenance**

Output format:
- Fluent readable text, with no introduction or conclusion.
- Bullets or bold subtitles may be used when needed.
- No more than **2000 characters**.
- No date, no version number.
- Natural, neutral, professional and concise language.

Forbidden:
- Do not invent content.
- Do not interpret beyond the provided text.
- Do not include links, authors, thanks or raw quotes.

Expected example:
New update available:
- **Bug fixes**: list rendering fixed, improved stability.
- **Minor improvements**: faster loading, better mobile compatibility.

Your answer must contain **only** the final summary text, with no introduction
or explanation.
"""

HTML_TAG = re.compile(r"<[^>]+>")
MARKDOWN_LINK = re.compile(r"\[([^\]]+)\]\([^)]+\)")
MARKDOWN_CHARS = re.compile(r"[*_~`#>-]")
NEWLINES = re.compile(r"(\r?\n)+")
SPACES = re.compile(r" +")


def markdown_to_text(markdown: str) -> str:
    """Reduce markdown to plain text.

    Examples:
        >>> markdown_to_text("## Fixes\\n\\n* [bug](http://x) **fixed**")
        'Fixes\\n bug fixed'
    """
    text = HTML_TAG.sub("", markdown)
    text = MARKDOWN_LINK.sub(r"\1", text)
    text = MARKDOWN_CHARS.sub("", text)
    text = NEWLINES.sub("\n", text)
    text = SPACES.sub(" ", text)
    return text.strip()


def format_release_block(release: ReleaseInfo, body: str) -> str:
    """Format the markdown block announcing one version."""
    published = release.published_at.strftime("%Y-%m-%d") if release.published_at else ""
    return f"## **[Version {release.version}]({release.url})**\n{body}\n*Published {published}*"


def format_deploy_link(version: str, url: str) -> str:
    """Format the confirmation link line appended to a notification."""
    return f"\n\n**[Deploy version {version}]({url})**"


class ReleaseNotesBuilder:
    """Builds the release note blocks of a list of versions."""

    def __init__(self, releases: ReleaseService, summarizer: SummarizerService) -> None:
        self.releases = releases
        self.summarizer = summarizer

    async def _block(
        self,
        repository: str,
        tag: str,
        url_template: str | None,
        context: dict[str, str],
    ) -> str | None:
        release = await self.releases.get_release(
            repository, tag, url_template=url_template, context=context
        )
        if release is None:
            return None

        text = markdown_to_text(release.changelog)
        summary = await self.summarizer.ask(text, RELEASE_NOTES_PROMPT) if text else ""
        return format_release_block(release, summary or text)

    async def build(
        self,
        repository: str,
        tags: list[str],
        url_template: str | None = None,
        context: dict[str, str] | None = None,
    ) -> list[str]:
        """Build one block per version that has release notes.

        Args:
            repository: Repository path of the image.
            tags: Versions to describe, in display order.
            url_template: Release URL template of the workload.
            context: Extra placeholder values for the template.

        Returns:
            Markdown blocks; versions without release notes are skipped.
        """
        blocks = await asyncio.gather(
            *(self._block(repository, tag, url_template, context or {}) for tag in tags)
        )
        result = [block for block in blocks if block is not None]
        logger.debug(
            "release_notes_built", repository=repository, requested=len(tags), built=len(result)
        )
        return result
