# src/archm/logging.py
from __future__ import annotations

import logging
import logging.config
import sys
from typing import Any, Optional, TextIO

_LEVELS = {
    "critical": logging.CRITICAL,
    "error": logging.ERROR,
    "warning": logging.WARNING,
    "warn": logging.WARNING,
    "info": logging.INFO,
    "debug": logging.DEBUG,
    # decompressor output lines are logged at DEBUG
    "trace": logging.DEBUG,
}


def configure_logging(log_level: str = "info", stream: Optional[TextIO] = None) -> None:
    """
    Installs one stdout handler on the root logger.

    Notes:
    - Records carry the thread name; tasks log from the archm-worker thread,
      controls from request threads.
    - Safe to call again (tests reload the app); handlers are replaced.
    - uvicorn access lines are held at WARNING so pipeline transitions stay readable.
    """
    level = parse_level(log_level)
    logging.config.dictConfig(_logging_dict(level, stream if stream is not None else sys.stdout))


def _logging_dict(level: int, stream: TextIO) -> dict[str, Any]:
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "archm": {
                "format": "%(asctime)s %(levelname)s %(name)s [%(threadName)s] - %(message)s",
                "datefmt": "%Y-%m-%dT%H:%M:%S%z",
            },
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "formatter": "archm",
                "level": level,
                "stream": stream,
            },
        },
        "root": {"level": level, "handlers": ["console"]},
        "loggers": {
            "uvicorn.error": {"level": level},
            "uvicorn.access": {"level": max(level, logging.WARNING)},
        },
    }


def get_logger(name: Optional[str] = None) -> logging.Logger:
    return logging.getLogger(name or "archm")


def parse_level(log_level: str) -> int:
    """Unknown names fall back to INFO."""
    return _LEVELS.get(log_level.strip().lower(), logging.INFO)
