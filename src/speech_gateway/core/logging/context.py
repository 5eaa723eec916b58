"""
Request context and shared logging state.

The request id lives in a ContextVar so it follows a request across awaits
and worker threads started with asyncio.to_thread (which copies the
context). Level and configuration are process-wide module state.

Environment Variables:
    - SPEECH_GW_SETTINGS: Settings file to read the logging section from
    - SPEECH_GW_LOG_LEVEL: Override log level (1-4 or name)
    - SPEECH_GW_LOG_DIR: Directory for the JSONL log file
    - SPEECH_GW_JSONL_FILE: JSONL filename
    - SPEECH_GW_LOG_ROTATE_BYTES: Max file size before rotation
    - SPEECH_GW_LOG_ROTATE_BACKUP: Number of rotated files to keep
"""
from __future__ import annotations

import os
from contextvars import ContextVar
from typing import Any, Dict

import yaml

from .levels import LEVEL_NAMES, LogLevel

# "-" marks log lines emitted outside any request
_request_id: ContextVar[str] = ContextVar("request_id", default="-")

_configured: bool = False
_log_config: Dict[str, Any] = {}
_current_level: LogLevel = LogLevel.NORMAL


def get_request_id() -> str:
    """Request id of the current context, or "-"."""
    return _request_id.get()


def set_request_id(rid: str) -> None:
    """Bind a request id to the current context for log correlation."""
    _request_id.set(rid)


def get_level() -> LogLevel:
    return _current_level


def set_level(level: LogLevel) -> None:
    global _current_level
    _current_level = level


def get_level_name() -> str:
    return LEVEL_NAMES.get(_current_level, "NORMAL")


def is_configured() -> bool:
    return _configured


def set_configured(value: bool) -> None:
    global _configured
    _configured = value


def get_log_config() -> Dict[str, Any]:
    return _log_config


def set_log_config(config: Dict[str, Any]) -> None:
    global _log_config
    _log_config = config


def _env_int(name: str) -> int | None:
    value = os.getenv(name)
    if not value:
        return None
    try:
        return int(value)
    except ValueError:
        return None


def read_logging_config() -> Dict[str, Any]:
    """
    Resolve logging configuration from the settings file and environment.

    Priority (highest first): environment variables, the settings file
    ``logging`` section, then built-in defaults.
    """
    cfg: Dict[str, Any] = {}

    settings_path = os.getenv("SPEECH_GW_SETTINGS", "config/settings.yaml")
    try:
        from speech_gateway.core.config import load_settings
        settings = load_settings(settings_path, missing_ok=True)
        cfg.update(settings.raw.get("logging", {}) or {})
    except (OSError, ValueError, yaml.YAMLError) as e:
        # Unreadable or malformed settings: keep defaults, logging must still start
        cfg["settings_error"] = str(e)

    if os.getenv("SPEECH_GW_LOG_LEVEL"):
        cfg["level"] = os.environ["SPEECH_GW_LOG_LEVEL"]
    if os.getenv("SPEECH_GW_LOG_DIR"):
        cfg["log_dir"] = os.environ["SPEECH_GW_LOG_DIR"]
    if os.getenv("SPEECH_GW_JSONL_FILE"):
        cfg["jsonl_file"] = os.environ["SPEECH_GW_JSONL_FILE"]

    rotate_bytes = _env_int("SPEECH_GW_LOG_ROTATE_BYTES")
    if rotate_bytes is not None:
        cfg["rotate_max_bytes"] = rotate_bytes
    rotate_backup = _env_int("SPEECH_GW_LOG_ROTATE_BACKUP")
    if rotate_backup is not None:
        cfg["rotate_backup_count"] = rotate_backup

    return cfg
