"""
Event logging for the drum tuner.

Every record carries a component tag (Engine, Audio, Progress, ...) and any
structured fields given to ``log_event``. The formatter renders them as::

    [INFO][Engine] Locked | drum=snare head=batter point=3

Fields stay on the record as ``record.fields`` so tests and other handlers
can inspect them without parsing the message.
"""
from __future__ import annotations

import logging
from typing import Any

LOGGER_NAME = "drum_tuner"

_LEVEL_ALIASES = {"WARN": "WARNING", "FATAL": "CRITICAL"}

logger = logging.getLogger(LOGGER_NAME)


class EventFormatter(logging.Formatter):
    """Formats ``[LEVEL][Tag] message | key=value ...``."""

    def format(self, record: logging.LogRecord) -> str:
        tag = getattr(record, "tag", "Tuner")
        text = f"[{record.levelname}][{tag}] {record.getMessage()}"
        fields = getattr(record, "fields", None)
        if fields:
            text += " | " + " ".join(f"{key}={value}" for key, value in fields.items())
        if record.exc_info:
            text += "\n" + self.formatException(record.exc_info)
        return text


def _level_number(level: str | None) -> int:
    name = (level or "INFO").upper()
    name = _LEVEL_ALIASES.get(name, name)
    value = logging.getLevelName(name)
    return value if isinstance(value, int) else logging.INFO


if not logger.handlers:
    _handler = logging.StreamHandler()
    _handler.setFormatter(EventFormatter())
    logger.addHandler(_handler)
    logger.setLevel(logging.INFO)


def log_event(level: str, tag: str, message: str, exc_info: bool = False, **fields: Any) -> None:
    """Log ``message`` under ``tag`` with optional structured fields."""
    logger.log(_level_number(level), message, exc_info=exc_info,
               extra={"tag": tag, "fields": fields})


def set_log_level(level: str) -> None:
    logger.setLevel(_level_number(level))


def get_log_level() -> str:
    return logging.getLevelName(logger.level)
