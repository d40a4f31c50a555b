"""Logging setup for the `modrules` logger hierarchy.

Driven by the `logging` config section (level + json|text format). Library
modules only call `logging.getLogger(__name__)`; handlers are attached here
by the entry points (CLI, API).
"""
from __future__ import annotations

import json
import logging
from typing import Any

from modrules.config.schemas.observability import LoggingConfig

ROOT_LOGGER = "modrules"
TEXT_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"

_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "error": logging.ERROR,
}


class JsonFormatter(logging.Formatter):
    """One JSON object per record."""

    def format(self, record: logging.LogRecord) -> str:  # noqa: D401
        payload: dict[str, Any] = {
            "ts": record.created,
            "level": record.levelname.lower(),
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            payload["exc"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False)


def configure_logging(cfg: LoggingConfig | None = None) -> logging.Logger:
    """Attach a single stream handler to the package logger (idempotent)."""
    cfg = cfg or LoggingConfig()
    reset_logging()
    logger = logging.getLogger(ROOT_LOGGER)
    logger.setLevel(_LEVELS[cfg.level])
    handler = logging.StreamHandler()
    if cfg.format == "json":
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(logging.Formatter(TEXT_FORMAT))
    handler._modrules_handler = True  # type: ignore[attr-defined]
    logger.addHandler(handler)
    return logger


def reset_logging() -> None:
    """Detach handlers added by configure_logging (tests, re-entry)."""
    logger = logging.getLogger(ROOT_LOGGER)
    for h in list(logger.handlers):
        if getattr(h, "_modrules_handler", False):
            logger.removeHandler(h)
    logger.setLevel(logging.NOTSET)


__all__ = ["configure_logging", "reset_logging", "JsonFormatter", "ROOT_LOGGER"]
