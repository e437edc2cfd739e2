"""
Log formatters for the JSONL file and the console.

JSONL (file):
    {"ts":"2026-10-19T14:30:05+09:00","level":2,"tag":"INFO","message":"task_settled",
     "task_id":"task-3","extra":{"outcome":"preempted","discarded":2}}

Console:
    14:30:05 [ INFO  ] (task-3) task_settled outcome=preempted discarded=2

Field coloring on the console:
    - seconds: green < 0.5s, yellow < 3s, red otherwise (synthesis latency)
    - queue_depth: cyan when empty, yellow up to 3, red beyond
    - speed: magenta when an override is active
"""
from __future__ import annotations

import json
import logging
from datetime import datetime
from typing import Any, Dict

from . import colors
from .colors import Colors, get_tag_color


def _paint(text: str, color: str) -> str:
    # Read the flag at call time so tests and configure_logging() can flip it.
    if not colors.USE_COLORS:
        return text
    return f"{color}{text}{Colors.RESET}"


class JsonlFormatter(logging.Formatter):
    """One JSON object per line, for jq and log shippers."""

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created).astimezone().isoformat(),
            "level": getattr(record, "numeric_level", 2),
            "tag": getattr(record, "tag", record.levelname),
            "message": record.getMessage(),
            "task_id": getattr(record, "task_id", "-"),
        }

        event = getattr(record, "event", None)
        if event:
            payload["event"] = event

        seconds = getattr(record, "seconds", None)
        if seconds is not None:
            payload["seconds"] = seconds

        extra_data = getattr(record, "extra_data", None)
        if extra_data:
            payload["extra"] = extra_data

        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)

        return json.dumps(payload, ensure_ascii=False, default=str)


class ColoredConsoleFormatter(logging.Formatter):
    """
    Human-readable console lines.

    Format:
        HH:MM:SS [ TAG   ] (task-id) message key=value 0.123s
    """

    def format(self, record: logging.LogRecord) -> str:
        ts = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")
        tag = getattr(record, "tag", record.levelname)
        task_id = getattr(record, "task_id", "-")

        parts = [
            _paint(ts, Colors.DIM),
            _paint(f"[{tag:^7}]", get_tag_color(tag)),
        ]
        if task_id != "-":
            parts.append(_paint(f"({task_id})", Colors.DIM + Colors.CYAN))
        parts.append(record.getMessage())

        event = getattr(record, "event", None)
        if event:
            parts.append(_paint(f"event={event}", Colors.BLUE))

        seconds = getattr(record, "seconds", None)
        if seconds is not None:
            parts.append(_paint(f"{seconds:.3f}s", self._latency_color(seconds)))

        extra_data = getattr(record, "extra_data", None)
        if extra_data:
            for key, value in extra_data.items():
                parts.append(_paint(f"{key}={value}", self._field_color(key, value)))

        line = " ".join(parts)
        if record.exc_info:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return line

    @staticmethod
    def _latency_color(seconds: float) -> str:
        if seconds < 0.5:
            return Colors.GREEN
        if seconds < 3.0:
            return Colors.YELLOW
        return Colors.RED

    @staticmethod
    def _field_color(key: str, value: Any) -> str:
        if key == "queue_depth" and isinstance(value, int):
            if value == 0:
                return Colors.CYAN
            return Colors.YELLOW if value <= 3 else Colors.RED
        if key == "speed" and value is not None:
            return Colors.MAGENTA
        if key in ("error", "status"):
            return Colors.RED
        return Colors.DIM
