"""Tests for the configuration module."""

from __future__ import annotations

from pathlib import Path

import pytest

from watcher.config import (
    ConfigManager,
    LogLevel,
    SettingsError,
    WatcherSettings,
    get_config_dir,
)


class TestWatcherSettings:
    """Tests for WatcherSettings model."""

    def test_defaults(self) -> None:
        """Test default settings."""
        settings = WatcherSettings()
        assert settings.log_level == LogLevel.INFO
        assert settings.port == 3000
        assert settings.cron == "0 12 * * *"
        assert settings.reminder_delay_days == 7
        assert settings.public_url == "http://localhost:3000"

    def test_public_url_strips_trailing_slash(self) -> None:
        """The configured base URL is used without trailing slash."""
        settings = WatcherSettings(base_url="https://watcher.example.com/")
        assert settings.public_url == "https://watcher.example.com"


class TestGetConfigDir:
    """Tests for get_config_dir function."""

    def test_xdg_config_home(self, monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
        """Test XDG_CONFIG_HOME is respected."""
        monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path))
        assert get_config_dir() == tmp_path / "image-watcher"

    def test_default_location(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test the fallback to ~/.config."""
        monkeypatch.delenv("XDG_CONFIG_HOME", raising=False)
        assert get_config_dir() == Path.home() / ".config" / "image-watcher"


class TestConfigManager:
    """Tests for ConfigManager class."""

    def test_missing_file_gives_defaults(self, tmp_path: Path) -> None:
        """Test loading without a file."""
        manager = ConfigManager(tmp_path / "missing.yaml", environ={})
        assert manager.load() == WatcherSettings()

    def test_load_file(self, tmp_path: Path) -> None:
        """Test loading settings from YAML."""
        config_file = tmp_path / "config.yaml"
        config_file.write_text("""
log_level: debug
port: 8080
discord_url: https://discord.example.com/hook
reminder_delay_days: 3
""")

        settings = ConfigManager(config_file, environ={}).load()

        assert settings.log_level == LogLevel.DEBUG
        assert settings.port == 8080
        assert settings.discord_url == "https://discord.example.com/hook"
        assert settings.reminder_delay_days == 3

    def test_environment_wins(self, tmp_path: Path) -> None:
        """Environment variables override the file."""
        config_file = tmp_path / "config.yaml"
        config_file.write_text("port: 8080\ncron: '0 1 * * *'\n")
        environ = {"PORT": "9090", "LOG_LEVEL": "WARNING", "RUN_ON_BOOT": "true", "CRON_JOB": ""}

        settings = ConfigManager(config_file, environ=environ).load()

        assert settings.port == 9090
        assert settings.log_level == LogLevel.WARNING
        assert settings.run_on_boot is True
        assert settings.cron == "0 1 * * *"

    def test_invalid_yaml(self, tmp_path: Path) -> None:
        """Test that invalid YAML raises SettingsError."""
        config_file = tmp_path / "config.yaml"
        config_file.write_text("port: [unclosed\n")

        with pytest.raises(SettingsError, match="Invalid YAML"):
            ConfigManager(config_file, environ={}).load()

    def test_invalid_value(self, tmp_path: Path) -> None:
        """Test that invalid values raise SettingsError."""
        with pytest.raises(SettingsError, match="Invalid settings"):
            ConfigManager(tmp_path / "missing.yaml", environ={"PORT": "eighty"}).load()

    def test_get_settings_caches(self, tmp_path: Path) -> None:
        """Test that settings are loaded once."""
        manager = ConfigManager(tmp_path / "missing.yaml", environ={})
        assert manager.get_settings() is manager.get_settings()
