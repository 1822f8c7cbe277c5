"""Configuration management for image-watcher.

This module provides YAML-based settings loading following the XDG Base
Directory Specification, with environment variables taking precedence
over the file.
"""

from __future__ import annotations

import os
from enum import Enum
from pathlib import Path
from typing import Any

import structlog
import yaml
from pydantic import BaseModel, Field, ValidationError

logger = structlog.get_logger(__name__)

APP_NAME = "image-watcher"


class LogLevel(str, Enum):
    """Log level of the watcher."""

    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class WatcherSettings(BaseModel):
    """Process-wide settings of the watcher."""

    log_level: LogLevel = Field(default=LogLevel.INFO, description="Global log level")
    log_json: bool = Field(default=False, description="Render logs as JSON lines")
    timezone: str = Field(default="UTC", description="Time zone of written timestamps")

    host: str = Field(default="0.0.0.0", description="HTTP bind address")  # noqa: S104
    port: int = Field(default=3000, description="HTTP port")
    base_url: str | None = Field(
        default=None, description="Public URL used in confirmation links"
    )

    cron: str = Field(default="0 12 * * *", description="Cron expression of the cycle")
    run_on_boot: bool = Field(default=False, description="Run a cycle when the server starts")

    default_watch: str | None = Field(default=None, description="Default of the watch key")
    default_mode: str | None = Field(default=None, description="Default update mode")
    default_strategy: str | None = Field(default=None, description="Default update strategy")
    override_annotations: bool = Field(
        default=False, description="Environment defaults win over annotations"
    )
    watch_all: bool = Field(
        default=False, description="Process workloads without any watcher annotation"
    )

    reminder_delay_days: float = Field(default=7, description="Days between reminders")
    tag_limit: int = Field(default=100, description="Maximum tags fetched per image")
    rate_limit_window_seconds: float = Field(
        default=5.0, description="Window of the confirmation rate limiter"
    )

    discord_url: str | None = Field(default=None, description="Discord webhook URL")
    telegram_bot_token: str | None = Field(default=None, description="Telegram bot token")
    telegram_chat_id: str | None = Field(default=None, description="Telegram chat id")

    openai_api_key: str | None = Field(default=None, description="OpenAI API key")
    openai_base_url: str = Field(
        default="https://api.openai.com/v1", description="OpenAI-compatible API URL"
    )
    openai_model: str | None = Field(default=None, description="Summarization model")

    github_token: str | None = Field(default=None, description="GitHub API token")

    kube_api_url: str | None = Field(default=None, description="Kubernetes API URL")
    kube_token: str | None = Field(default=None, description="Kubernetes bearer token")
    kube_ca_file: Path | None = Field(default=None, description="Kubernetes CA bundle")
    kube_verify_ssl: bool = Field(default=True, description="Verify the API certificate")

    @property
    def public_url(self) -> str:
        """Base URL of the confirmation endpoint, without trailing slash."""
        return (self.base_url or f"http://localhost:{self.port}").rstrip("/")


# Environment variable for each settings field
ENV_OVERRIDES: dict[str, str] = {
    "log_level": "LOG_LEVEL",
    "log_json": "LOG_JSON",
    "timezone": "TZ",
    "host": "HOST",
    "port": "PORT",
    "base_url": "BASE_URL",
    "cron": "CRON_JOB",
    "run_on_boot": "RUN_ON_BOOT",
    "default_watch": "IMAGE_WATCHER_WATCH",
    "default_mode": "IMAGE_WATCHER_MODE",
    "default_strategy": "IMAGE_WATCHER_STRATEGY",
    "override_annotations": "IMAGE_WATCHER_OVERRIDE",
    "watch_all": "IMAGE_WATCHER_WATCH_ALL",
    "reminder_delay_days": "REMINDER_DELAY_DAYS",
    "tag_limit": "TAG_LIMIT",
    "discord_url": "DISCORD_URL",
    "telegram_bot_token": "TELEGRAM_BOT_TOKEN",
    "telegram_chat_id": "TELEGRAM_CHAT_ID",
    "openai_api_key": "OPENAI_API_KEY",
    "openai_base_url": "OPENAI_BASE_URL",
    "openai_model": "OPENAI_MODEL",
    "github_token": "GITHUB_TOKEN",
    "kube_api_url": "KUBE_API_URL",
    "kube_token": "KUBE_TOKEN",
    "kube_ca_file": "KUBE_CA_FILE",
    "kube_verify_ssl": "KUBE_VERIFY_SSL",
}


class SettingsError(Exception):
    """Settings could not be loaded or validated."""


def get_config_dir() -> Path:
    """Get the configuration directory following XDG spec.

    Returns:
        Path to the configuration directory.
    """
    xdg_config_home = os.environ.get("XDG_CONFIG_HOME")
    base = Path(xdg_config_home) if xdg_config_home else Path.home() / ".config"
    return base / APP_NAME


def get_default_config_path() -> Path:
    """Get the default configuration file path."""
    return get_config_dir() / "config.yaml"


class ConfigManager:
    """Loads watcher settings.

    Values come from the optional YAML file first, then from environment
    variables, which win over the file.
    """

    def __init__(
        self,
        config_path: Path | None = None,
        environ: dict[str, str] | None = None,
    ) -> None:
        """Initialize the configuration manager.

        Args:
            config_path: Optional path to the configuration file.
                        Uses the default path if not provided.
            environ: Environment to read overrides from. Defaults to
                     ``os.environ``.
        """
        self.config_path = config_path or get_default_config_path()
        self._environ = environ if environ is not None else dict(os.environ)
        self._settings: WatcherSettings | None = None

    def load(self) -> WatcherSettings:
        """Load settings from file and environment.

        Returns:
            Validated WatcherSettings.

        Raises:
            SettingsError: If the file is not valid YAML or a value is invalid.
        """
        data = self._load_file()
        data.update(self._load_environment())

        try:
            self._settings = WatcherSettings(**data)
        except ValidationError as e:
            raise SettingsError(f"Invalid settings: {e}") from e

        logger.debug("settings_loaded", path=str(self.config_path), keys=sorted(data))
        return self._settings

    def get_settings(self) -> WatcherSettings:
        """Get the current settings, loading them if needed."""
        if self._settings is None:
            return self.load()
        return self._settings

    def _load_file(self) -> dict[str, Any]:
        if not self.config_path.exists():
            logger.debug("config_file_not_found", path=str(self.config_path))
            return {}

        try:
            data = yaml.safe_load(self.config_path.read_text())
        except yaml.YAMLError as e:
            raise SettingsError(f"Invalid YAML in {self.config_path}: {e}") from e

        if data is None:
            return {}
        if not isinstance(data, dict):
            raise SettingsError(f"Expected a mapping in {self.config_path}")
        return data

    def _load_environment(self) -> dict[str, Any]:
        overrides: dict[str, Any] = {}
        for field_name, env_name in ENV_OVERRIDES.items():
            value = self._environ.get(env_name)
            # Empty variables are treated as unset
            if value is None or value == "":
                continue
            overrides[field_name] = value.lower() if field_name == "log_level" else value
        return overrides
