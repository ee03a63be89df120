from __future__ import annotations

import logging
import time
from contextlib import contextmanager
from logging.config import dictConfig
from typing import Any, Iterable, Iterator, Sequence

from settings import get_settings

_DEFAULT_EXTRA_KEYS = (
    "station",
    "data_type",
    "cache_key",
    "artifact_id",
    "index",
    "reason",
    "status",
    "elapsed_ms",
    "point_count",
)

_configured = False


class ContextualFormatter(logging.Formatter):
    """Formatter that appends whitelisted ``extra`` fields as ``key=value`` pairs."""

    # Timestamps are rendered with a trailing "Z", so format them in UTC.
    converter = time.gmtime

    def __init__(
        self,
        fmt: str | None = None,
        datefmt: str | None = None,
        style: str = "%",
        extra_keys: Iterable[str] | None = None,
    ) -> None:
        super().__init__(fmt=fmt, datefmt=datefmt, style=style)
        self._extra_keys: Sequence[str] = tuple(extra_keys or _DEFAULT_EXTRA_KEYS)

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        context_parts = [
            f"{key}={getattr(record, key)}"
            for key in self._extra_keys
            if getattr(record, key, None) is not None
        ]
        if context_parts:
            return f"{message} | {' '.join(context_parts)}"
        return message


@contextmanager
def log_elapsed(
    logger: logging.Logger,
    message: str,
    level: int = logging.DEBUG,
    **extra: Any,
) -> Iterator[dict[str, Any]]:
    """Log ``message`` with ``elapsed_ms`` once the wrapped block succeeds.

    The yielded dict can be updated inside the block to attach more context.
    Nothing is logged when the block raises; callers log their own failures.
    """
    context: dict[str, Any] = dict(extra)
    start = time.perf_counter()
    yield context
    context["elapsed_ms"] = int((time.perf_counter() - start) * 1000)
    logger.log(level, message, extra=context)


def configure_logging(level: str | int | None = None) -> None:
    """Configure application-wide logging with contextual formatting."""
    global _configured
    if _configured:
        return

    settings = get_settings()
    log_level = level if level is not None else settings.log_level

    dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "contextual": {
                    "()": "logging_config.ContextualFormatter",
                    "fmt": "%(asctime)sZ | %(levelname)s | %(name)s | %(message)s",
                    "datefmt": "%Y-%m-%dT%H:%M:%S",
                    "style": "%",
                    "extra_keys": list(_DEFAULT_EXTRA_KEYS),
                }
            },
            "handlers": {
                "default": {
                    "class": "logging.StreamHandler",
                    "level": log_level,
                    "formatter": "contextual",
                }
            },
            "loggers": {
                # Request lines from the HTTP client are noise next to our own fetch logs.
                "httpx": {"level": "WARNING"},
            },
            "root": {"handlers": ["default"], "level": log_level},
        }
    )

    _configured = True
