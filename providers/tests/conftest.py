"""Shared fixtures for provider tests."""

from __future__ import annotations

import json
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest


def make_response(status: int = 200, body: Any = None, text: str | None = None) -> MagicMock:
    """Create a mock aiohttp response."""
    response = MagicMock()
    response.status = status
    if text is None:
        text = "" if body is None else json.dumps(body)
    response.text = AsyncMock(return_value=text)
    response.json = AsyncMock(return_value=body)
    return response


def make_session(*responses: MagicMock) -> MagicMock:
    """Create a mock session answering requests with the given responses in order."""
    contexts = []
    for response in responses:
        cm = MagicMock()
        cm.__aenter__ = AsyncMock(return_value=response)
        cm.__aexit__ = AsyncMock(return_value=None)
        contexts.append(cm)

    session = MagicMock()
    session.request = MagicMock(side_effect=contexts)
    return session


@pytest.fixture
def response_factory():
    """Factory for mock responses."""
    return make_response


@pytest.fixture
def session_factory():
    """Factory for mock sessions."""
    return make_session
