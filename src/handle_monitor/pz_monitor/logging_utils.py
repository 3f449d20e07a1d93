"""Logging helpers for the PZ monitor."""

from __future__ import annotations

import logging
from pathlib import Path

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def configure_logging(level: int = logging.INFO, log_paths: list[str] | None = None) -> bool:
    """Send monitor logs to stderr plus each configured file.

    Leaves an already configured root logger alone and returns False.
    """
    root = logging.getLogger()
    if root.handlers:
        return False
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    handlers.extend(_file_handler(entry) for entry in log_paths or [])
    logging.basicConfig(level=level, format=LOG_FORMAT, datefmt=LOG_DATE_FORMAT, handlers=handlers)
    return True


def parse_level(value: str | int | None, default: int = logging.INFO) -> int:
    if isinstance(value, int):
        return value
    text = str(value or "").strip().upper()
    if not text:
        return default
    level = logging.getLevelName(text)
    return level if isinstance(level, int) else default


def _file_handler(entry: str) -> logging.FileHandler:
    path = Path(entry)
    path.parent.mkdir(parents=True, exist_ok=True)
    return logging.FileHandler(path, encoding="utf-8")
