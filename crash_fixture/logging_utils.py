import json
import logging
import os
import sys
import time
import traceback
from typing import Any, Dict


class _BelowLevelFilter(logging.Filter):
    """Let through only records strictly below `level`."""

    def __init__(self, level: int) -> None:
        super().__init__()
        self.level = level

    def filter(self, record: logging.LogRecord) -> bool:
        return record.levelno < self.level


def _resolve_level(name: str | None) -> int:
    level = logging.getLevelName((name or "INFO").upper())
    return level if isinstance(level, int) else logging.INFO


def get_json_logger(service_name: str) -> logging.Logger:
    """
    JSON-per-line logger. INFO and DEBUG go to stdout (the supervisor reads
    readiness and crash lines there); WARNING and above go to stderr.
    """
    logger = logging.getLogger(service_name)
    if logger.handlers:
        return logger
    formatter = logging.Formatter("%(message)s")

    out = logging.StreamHandler(sys.stdout)
    out.addFilter(_BelowLevelFilter(logging.WARNING))
    out.setFormatter(formatter)

    err = logging.StreamHandler(sys.stderr)
    err.setLevel(logging.WARNING)
    err.setFormatter(formatter)

    logger.addHandler(out)
    logger.addHandler(err)
    logger.setLevel(_resolve_level(os.getenv("LOG_LEVEL")))
    logger.propagate = False
    return logger


def _payload(event: str, fields: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "ts": time.strftime("%Y-%m-%dT%H:%M:%S", time.gmtime()),
        "event": event,
        **fields,
    }


def log_event(logger: logging.Logger, event: str, **fields: Any) -> None:
    logger.info(json.dumps(_payload(event, fields), ensure_ascii=False, default=str))


def log_error_event(logger: logging.Logger, event: str, exc: BaseException | None = None, **fields: Any) -> None:
    """Log error event at ERROR level with optional traceback."""
    payload = _payload(event, {"level": "error", **fields})
    if exc is not None:
        payload["error"] = str(exc)
        payload["error_type"] = type(exc).__name__
        tb = traceback.format_exception(type(exc), exc, exc.__traceback__)
        payload["traceback"] = "".join(tb).replace("\n", "\\n")
    logger.error(json.dumps(payload, ensure_ascii=False, default=str))
