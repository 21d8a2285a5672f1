"""Settings loader - config.toml first, environment variables on top."""

from __future__ import annotations

import os
import tomllib
from dataclasses import dataclass, field
from pathlib import Path

from .errors import ConfigError

DEFAULT_DAEMON_URL = "http://localhost:4444"
DEFAULT_TIMEOUT = 10.0
DEFAULT_POLL_INTERVAL = 0.01
DEFAULT_STREAM_BUFFER = 100
ERROR_BODY_LIMIT = 512


def default_config_path() -> Path:
    """~/.config/hecate-tui/config.toml (honours XDG_CONFIG_HOME)."""
    base = os.getenv("XDG_CONFIG_HOME") or str(Path.home() / ".config")
    return Path(base) / "hecate-tui" / "config.toml"


def default_log_path() -> Path:
    base = os.getenv("XDG_CACHE_HOME") or str(Path.home() / ".cache")
    return Path(base) / "hecate-tui" / "hecate-tui.log"


@dataclass
class Settings:
    """Runtime settings for the TUI and the daemon client."""

    daemon_url: str = DEFAULT_DAEMON_URL
    model: str = ""
    system_prompt: str = ""
    timeout: float = DEFAULT_TIMEOUT
    poll_interval: float = DEFAULT_POLL_INTERVAL
    stream_buffer: int = DEFAULT_STREAM_BUFFER
    log_file: Path = field(default_factory=default_log_path)
    log_level: str = "INFO"


def load_settings(config_path: Path | None = None) -> Settings:
    """Build Settings from defaults, the TOML config file and the environment.

    Args:
        config_path: Explicit config file. Defaults to $HECATE_CONFIG or
            ~/.config/hecate-tui/config.toml.

    Returns:
        Settings with environment variables taking precedence over the file.

    Raises:
        ConfigError: If the config file exists but is not valid TOML or
            holds values of the wrong type.
    """
    if config_path is None:
        env_path = os.getenv("HECATE_CONFIG")
        config_path = Path(env_path) if env_path else default_config_path()

    settings = Settings()
    if config_path.exists():
        _apply_file(settings, config_path)
    _apply_env(settings)
    settings.daemon_url = settings.daemon_url.rstrip("/")
    return settings


def _apply_file(settings: Settings, path: Path) -> None:
    try:
        with open(path, "rb") as f:
            raw = tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"Invalid config file {path}: {e}") from e

    connection = raw.get("connection", {})
    chat = raw.get("chat", {})
    if not isinstance(connection, dict) or not isinstance(chat, dict):
        raise ConfigError(f"[connection] and [chat] must be tables in {path}")

    try:
        if "model" in raw:
            settings.model = str(raw["model"])
        if "system_prompt" in raw:
            settings.system_prompt = str(raw["system_prompt"])
        if "daemon_url" in connection:
            settings.daemon_url = str(connection["daemon_url"])
        if "timeout" in connection:
            settings.timeout = float(connection["timeout"])
        if "poll_interval" in chat:
            settings.poll_interval = float(chat["poll_interval"])
        if "stream_buffer" in chat:
            settings.stream_buffer = int(chat["stream_buffer"])
    except (TypeError, ValueError) as e:
        raise ConfigError(f"Invalid value in {path}: {e}") from e


def _apply_env(settings: Settings) -> None:
    url = os.getenv("HECATE_URL", "")
    if url:
        settings.daemon_url = url

    model = os.getenv("HECATE_MODEL", "")
    if model:
        settings.model = model

    prompt = os.getenv("HECATE_SYSTEM_PROMPT")
    if prompt is not None:
        settings.system_prompt = prompt

    timeout = os.getenv("HECATE_TIMEOUT", "")
    if timeout:
        try:
            settings.timeout = float(timeout)
        except ValueError as e:
            raise ConfigError(f"HECATE_TIMEOUT must be a number, got {timeout!r}") from e

    log_file = os.getenv("HECATE_LOG_FILE", "")
    if log_file:
        settings.log_file = Path(log_file)

    level = os.getenv("HECATE_LOG_LEVEL", "")
    if level:
        settings.log_level = level.upper()
