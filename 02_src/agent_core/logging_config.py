"""JSON logging for the agent runtime.

Every record is one JSON object per line. Records logged with
``extra={"context": metadata.to_dict()}`` carry the agent, session and
execution ids of the episode that produced them.
"""

import json
import logging
import logging.config
import os
from datetime import datetime, timezone
from pathlib import Path

from .config import DEFAULT_LOG_PATH

# Third-party loggers that are chatty at INFO
QUIET_LOGGERS = ("anthropic", "httpx", "httpcore", "aiosqlite", "uvicorn.access")

_LOG_FILE_BYTES = 10 * 1024 * 1024
_LOG_FILE_BACKUPS = 5


class JSONFormatter(logging.Formatter):
    """Render a record as a single-line JSON object."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "where": f"{record.module}.{record.funcName}:{record.lineno}",
        }

        context = getattr(record, "context", None)
        if context:
            entry["context"] = context
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(entry, default=str, ensure_ascii=False)


def setup_logging(log_level: str | None = None, log_file: str | None = None) -> None:
    """
    Configure the root logger with a rotating file and stdout.

    Args:
        log_level: Level name. Falls back to LOG_LEVEL, then INFO.
        log_file: Log file path. Defaults to 04_logs/app.log.
    """
    level = (log_level or os.getenv("LOG_LEVEL") or "INFO").upper()
    path = Path(log_file) if log_file else DEFAULT_LOG_PATH
    path.parent.mkdir(parents=True, exist_ok=True)

    logging.config.dictConfig({
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {"json": {"()": JSONFormatter}},
        "handlers": {
            "file": {
                "class": "logging.handlers.RotatingFileHandler",
                "filename": str(path),
                "maxBytes": _LOG_FILE_BYTES,
                "backupCount": _LOG_FILE_BACKUPS,
                "encoding": "utf-8",
                "formatter": "json",
            },
            "stdout": {
                "class": "logging.StreamHandler",
                "stream": "ext://sys.stdout",
                "formatter": "json",
            },
        },
        "loggers": {name: {"level": "WARNING"} for name in QUIET_LOGGERS},
        "root": {"level": level, "handlers": ["file", "stdout"]},
    })


def get_logger(name: str) -> logging.Logger:
    """Return the module logger for ``name``."""
    return logging.getLogger(name)
