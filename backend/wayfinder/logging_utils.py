from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

from pythonjsonlogger import jsonlogger

from .settings import settings

LOG_FILE_NAME = "wayfinder.log.jsonl"


def _parse_level(name: str) -> int:
    level = logging.getLevelName(name.upper())
    return level if isinstance(level, int) else logging.INFO


def configure_logger(logger: logging.Logger, *, out_dir: str | Path | None, level: str) -> logging.Logger:
    """Send JSON lines to stderr and, when ``out_dir`` is writable, to ``<out_dir>/logs``."""
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.setLevel(_parse_level(level))
    logger.propagate = False

    formatter = jsonlogger.JsonFormatter()
    stream = logging.StreamHandler()
    stream.setFormatter(formatter)
    logger.addHandler(stream)

    if out_dir is None:
        return logger
    log_path = Path(out_dir) / "logs" / LOG_FILE_NAME
    try:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path, encoding="utf-8")
    except OSError as e:
        logger.warning(
            "log_file_unavailable",
            extra={"event": "log_file_unavailable", "path": str(log_path), "error": str(e)},
        )
        return logger
    file_handler.setFormatter(formatter)
    logger.addHandler(file_handler)
    return logger


def get_logger() -> logging.Logger:
    logger = logging.getLogger("wayfinder")

    # Reloaders import twice; configure once.
    if getattr(logger, "_configured", False):
        return logger

    configure_logger(logger, out_dir=settings.out_dir, level=settings.log_level)
    logger._configured = True  # type: ignore[attr-defined]
    return logger


LOGGER: logging.Logger | None = None


def log_event(event: str, *, level: int = logging.INFO, **fields: Any) -> None:
    global LOGGER
    if LOGGER is None:
        LOGGER = get_logger()
    # Structured: event is message + a top-level key
    LOGGER.log(level, event, extra={"event": event, **fields})
