"""Splitting of long messages for size-limited notification channels."""

from __future__ import annotations

import re

import structlog

logger = structlog.get_logger(__name__)

# Max length sentinel for channels without a payload limit
UNBOUNDED = -1

# Boundaries tried in priority order; a match start is a cut position
BOUNDARIES: tuple[re.Pattern[str], ...] = (
    re.compile(r"\n{2,}"),  # paragraphs
    re.compile(r"(?m)^#{1,3}\s"),  # markdown headings
    re.compile(r"\n"),  # lines
    re.compile(r"(?<=[.!?])\s+"),  # sentences
    re.compile(r"\s+"),  # words
)


def _find_cut(text: str, max_length: int) -> int:
    """Return the last usable boundary at or before ``max_length``."""
    for pattern in BOUNDARIES:
        positions = [m.start() for m in pattern.finditer(text, 0, max_length + 1)]
        # A cut at 0 would produce an empty chunk and never progress
        usable = [p for p in positions if 0 < p <= max_length]
        if usable:
            return usable[-1]
    return max_length


def split_message(message: str | list[str], max_length: int) -> list[str]:
    """Split a message into chunks no longer than ``max_length``.

    Cuts happen at the last paragraph break, heading, line break, sentence
    end or whitespace that fits, in that order of preference, and fall back
    to a hard cut. Whitespace at the cut points is dropped.

    Args:
        message: Text, or lines joined with line breaks.
        max_length: Maximum chunk length, or UNBOUNDED.

    Returns:
        Ordered list of chunks.
    """
    text = "\n".join(message) if isinstance(message, list) else message
    text = text.strip()

    if max_length <= 0 or len(text) <= max_length:
        return [text]

    chunks: list[str] = []
    remaining = text

    while remaining:
        if len(remaining) <= max_length:
            chunks.append(remaining)
            break

        cut = _find_cut(remaining, max_length)
        chunk = remaining[:cut].strip()
        if chunk:
            chunks.append(chunk)
        remaining = remaining[cut:].strip()

    logger.debug("message_split", chunks=len(chunks), length=len(text), max_length=max_length)
    return chunks
