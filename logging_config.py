from __future__ import annotations

import logging
import time
from logging.config import dictConfig
from typing import Iterable, Sequence

from settings import get_settings

LOG_FORMAT = "%(asctime)sZ | %(levelname)s | %(name)s | %(message)s"
LOG_DATEFMT = "%Y-%m-%dT%H:%M:%S"

CONTEXT_KEYS = (
    "device_id",
    "message_type",
    "msn",
    "index",
    "reason",
    "point_count",
    "message_count",
    "error_count",
    "processing_ms",
)

# Billing deliveries log every request at INFO; keep them out of normal output.
_CHATTY_LOGGERS = ("httpx", "httpcore")

_configured = False


class ContextualFormatter(logging.Formatter):
    """Appends meter context as ``key=value`` pairs after the message.

    Timestamps are rendered in UTC. Values containing spaces, such as
    rejection reasons, are quoted so each line stays machine splittable.
    """

    converter = time.gmtime

    def __init__(
        self,
        fmt: str | None = None,
        datefmt: str | None = None,
        style: str = "%",
        context_keys: Iterable[str] | None = None,
    ) -> None:
        super().__init__(fmt=fmt or LOG_FORMAT, datefmt=datefmt or LOG_DATEFMT, style=style)
        self._context_keys: Sequence[str] = tuple(context_keys or CONTEXT_KEYS)

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        context = " ".join(
            f"{key}={_render_value(getattr(record, key))}"
            for key in self._context_keys
            if getattr(record, key, None) is not None
        )
        return f"{message} | {context}" if context else message


def _render_value(value: object) -> str:
    text = str(value)
    if not text or any(char.isspace() for char in text) or '"' in text:
        escaped = text.replace("\\", "\\\\").replace('"', '\\"')
        return f'"{escaped}"'
    return text


def configure_logging(level: str | int | None = None) -> None:
    """Install the contextual handler on the root logger once per process."""
    global _configured
    if _configured:
        return

    log_level = level if level is not None else get_settings().log_level
    library_level = "DEBUG" if str(log_level).upper() == "DEBUG" else "WARNING"

    dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "meter": {
                    "()": "logging_config.ContextualFormatter",
                    "context_keys": list(CONTEXT_KEYS),
                }
            },
            "handlers": {
                "stderr": {
                    "class": "logging.StreamHandler",
                    "level": log_level,
                    "formatter": "meter",
                }
            },
            "loggers": {name: {"level": library_level} for name in _CHATTY_LOGGERS},
            "root": {"handlers": ["stderr"], "level": log_level},
        }
    )

    _configured = True


def log_context(**fields: object) -> dict[str, object]:
    """Build an ``extra`` mapping for the contextual formatter, dropping unset keys."""
    return {key: value for key, value in fields.items() if value is not None}
