"""Logging setup shared by the HTTP app and the socket handlers."""

import logging
import os

_DEFAULT_FORMAT = "%(asctime)s [%(name)s] %(levelname)s: %(message)s"
_TRUTHY_VALUES = {"1", "true", "yes", "on"}


def _resolve_level() -> int:
    configured = os.getenv("LOG_LEVEL", "").strip().upper()
    if configured:
        level = logging.getLevelName(configured)
        return level if isinstance(level, int) else logging.INFO
    if os.getenv("DEBUG", "").strip().lower() in _TRUTHY_VALUES:
        return logging.DEBUG
    return logging.INFO


def configure_logging(name: str = "tunesync") -> logging.Logger:
    level = _resolve_level()
    logging.basicConfig(level=level, format=_DEFAULT_FORMAT)
    logger = logging.getLogger(name)
    logger.setLevel(level)
    return logger
