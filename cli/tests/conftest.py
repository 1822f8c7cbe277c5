"""Shared test fixtures for CLI tests."""

from __future__ import annotations

from typing import TYPE_CHECKING
from unittest.mock import patch

import pytest

from watcher.config import ENV_OVERRIDES

if TYPE_CHECKING:
    from collections.abc import Generator
    from pathlib import Path


@pytest.fixture(autouse=True)
def isolated_config_dir(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> Generator[Path, None, None]:
    """Isolate tests from the real user configuration and environment.

    Sets XDG_CONFIG_HOME to a temporary directory and removes every
    environment override, so that settings always start from defaults.
    A wide terminal keeps rich tables from wrapping.

    This fixture is applied automatically to all tests in this module.
    """
    config_home = tmp_path / "xdg_config"
    config_home.mkdir(parents=True, exist_ok=True)

    monkeypatch.setenv("XDG_CONFIG_HOME", str(config_home))
    monkeypatch.setenv("COLUMNS", "400")
    for env_name in ENV_OVERRIDES.values():
        monkeypatch.delenv(env_name, raising=False)

    yield config_home


@pytest.fixture(autouse=True)
def quiet_logging() -> Generator[None, None, None]:
    """Keep commands from reconfiguring logging."""
    with patch("watcher.logging.configure_logging"):
        yield
