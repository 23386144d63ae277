from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Mapping, Optional

ROOT_LOGGER = "embroidery"


class JsonLinesFormatter(logging.Formatter):
    """One JSON object per record: ts, level, logger, msg, plus location/data when given."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "ts": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        location = getattr(record, "location", None)
        if location:
            entry["location"] = location
        data = getattr(record, "data", None)
        if data is not None:
            entry["data"] = data
        if record.exc_info and record.exc_info[1]:
            entry["error"] = str(record.exc_info[1])
        return json.dumps(entry, ensure_ascii=False, default=str)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(f"{ROOT_LOGGER}.{name}")


def setup_logging(log_path: Optional[Path] = None, level: int = logging.INFO) -> logging.Logger:
    """
    Configure the `embroidery` logger tree.

    Writes JSON lines to `log_path` when given, stderr otherwise. Safe to call on every
    Streamlit rerun: handlers are installed once.
    """
    logger = logging.getLogger(ROOT_LOGGER)
    logger.setLevel(level)
    if logger.handlers:
        return logger

    fmt = JsonLinesFormatter()
    if log_path is not None:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handler: logging.Handler = logging.FileHandler(log_path, encoding="utf-8")
    else:
        handler = logging.StreamHandler()
    handler.setFormatter(fmt)
    logger.addHandler(handler)
    logger.propagate = False
    return logger


def log_event(
    logger: logging.Logger,
    message: str,
    *,
    location: str,
    data: Optional[Mapping[str, Any]] = None,
    level: int = logging.DEBUG,
    exc_info: Any = None,
) -> None:
    logger.log(level, message, extra={"location": location, "data": dict(data or {})}, exc_info=exc_info)
