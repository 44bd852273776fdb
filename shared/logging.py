"""JSON log output for the worker, the jobs and the API."""
import json
import logging
import sys
from datetime import datetime, timezone
from typing import Optional, Union

# Libraries that log every request or statement at INFO/DEBUG
NOISY_LOGGERS = ("httpx", "httpcore", "aiosqlite", "uvicorn.access")

_RESERVED = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", None, None))
) | {"message", "asctime", "taskName"}


class StructuredFormatter(logging.Formatter):
    """One JSON object per record.

    Anything passed through ``extra=`` (tip_id, creator_id, job, ...) becomes a
    top-level key; values JSON cannot encode are stringified.
    """

    def __init__(self, service: Optional[str] = None):
        super().__init__()
        self.service = service

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if self.service:
            entry["service"] = self.service
        entry.update(
            (key, value)
            for key, value in record.__dict__.items()
            if key not in _RESERVED and not key.startswith("_")
        )
        if record.exc_info:
            entry["error_type"] = record.exc_info[0].__name__
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def setup_logging(service_name: str, level: Union[int, str] = logging.INFO) -> logging.Logger:
    """Route all loggers through one JSON handler on stdout.

    ``level`` takes a number or a name such as ``"DEBUG"`` (LOG_LEVEL).
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    root = logging.getLogger()
    root.setLevel(level)
    root.handlers = []
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(StructuredFormatter(service=service_name))
    root.addHandler(handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))
    return logging.getLogger(service_name)
