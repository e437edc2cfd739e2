"""
Logging context and module-level logging state.

The current speak-task id lives in a ContextVar so every log line emitted
while the scheduler works on a task carries the same correlation id, even
though synthesis and playback run as separate awaits on the event loop.

Environment Variables:
    - LOG_NARRATOR_LOG_LEVEL: level override (1-4 or a level name)
    - LOG_NARRATOR_LOG_DIR: directory for the JSONL log file
    - LOG_NARRATOR_JSONL_FILE: JSONL file name
    - LOG_NARRATOR_LOG_ROTATE_BYTES: rotate after this many bytes
    - LOG_NARRATOR_LOG_ROTATE_BACKUP: rotated files to keep
"""
from __future__ import annotations

import os
from contextvars import ContextVar
from typing import Any, Dict

from .levels import LEVEL_NAMES, LogLevel

_task_id: ContextVar[str] = ContextVar("task_id", default="-")

_configured: bool = False
_log_config: Dict[str, Any] = {}
_current_level: LogLevel = LogLevel.NORMAL


def get_task_id() -> str:
    """Correlation id of the task being processed, or "-" outside a task."""
    return _task_id.get()


def set_task_id(task_id: str) -> None:
    """Set the correlation id for the current context."""
    _task_id.set(task_id)


def get_level() -> LogLevel:
    return _current_level


def set_level(level: LogLevel) -> None:
    global _current_level
    _current_level = level


def get_level_name() -> str:
    return LEVEL_NAMES.get(int(_current_level), "NORMAL")


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


def _int_env(name: str) -> int | None:
    raw = os.getenv(name)
    if not raw:
        return None
    try:
        return int(raw)
    except ValueError:
        return None


def read_logging_config() -> Dict[str, Any]:
    """
    Resolve logging options from the settings file and the environment.

    Priority (highest first): environment variables, the ``logging`` section
    of the settings file, built-in defaults.

    Returns:
        Dictionary with any of ``level``, ``log_dir``, ``jsonl_file``,
        ``rotate_max_bytes`` and ``rotate_backup_count``.
    """
    cfg: Dict[str, Any] = {}

    try:
        from log_narrator.core.config import load_settings
        cfg.update(load_settings().raw.get("logging", {}) or {})
    except Exception:
        # Logging must come up even when the settings file is broken;
        # load_settings() failures are reported again by the caller.
        pass

    if os.getenv("LOG_NARRATOR_LOG_LEVEL"):
        cfg["level"] = os.environ["LOG_NARRATOR_LOG_LEVEL"]
    if os.getenv("LOG_NARRATOR_LOG_DIR"):
        cfg["log_dir"] = os.environ["LOG_NARRATOR_LOG_DIR"]
    if os.getenv("LOG_NARRATOR_JSONL_FILE"):
        cfg["jsonl_file"] = os.environ["LOG_NARRATOR_JSONL_FILE"]

    rotate_bytes = _int_env("LOG_NARRATOR_LOG_ROTATE_BYTES")
    if rotate_bytes is not None:
        cfg["rotate_max_bytes"] = rotate_bytes
    rotate_backup = _int_env("LOG_NARRATOR_LOG_ROTATE_BACKUP")
    if rotate_backup is not None:
        cfg["rotate_backup_count"] = rotate_backup

    return cfg
