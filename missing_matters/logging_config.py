"""Structured JSON logs for the Missing Matters API.

Every record is one JSON line on stdout. Per-request fields go under
``context``; the sender's identity is lifted to the top level so a whole
conversation can be pulled out of the log stream with one filter.
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Optional

LOGGER_PREFIX = "missing_matters"
SERVICE_NAME = "missing-matters-api"

# Per-request chatter from HTTP clients and the ASGI server
QUIET_LOGGERS = ("httpx", "httpcore", "uvicorn.access", "multipart")


class JSONFormatter(logging.Formatter):
    """Render a record as a single JSON object."""

    def __init__(self, service: str = SERVICE_NAME):
        super().__init__()
        self.service = service

    def format(self, record: logging.LogRecord) -> str:
        log_data: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "service": self.service,
            "logger": record.name,
            "message": record.getMessage(),
        }

        context = getattr(record, "context", None)
        if context:
            context = dict(context)
            user_identity = context.pop("user_identity", None)
            if user_identity:
                log_data["user_identity"] = user_identity
            if context:
                log_data["context"] = context

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, ensure_ascii=False, default=str)


def setup_logging(level: str = "INFO", debug: bool = False) -> None:
    """Route all logging through one stdout handler with JSON output."""
    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG if debug else getattr(logging, level.upper(), logging.INFO))

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JSONFormatter())
    root_logger.addHandler(handler)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(f"{LOGGER_PREFIX}.{name}")


class SessionLoggerAdapter(logging.LoggerAdapter):
    """Attach the session identity to every record logged for one request.

    Calls may pass ``context={...}``; it is merged over the adapter's fields.
    """

    def __init__(self, logger: logging.Logger, extra: Optional[dict[str, Any]] = None):
        super().__init__(logger, extra or {})

    def process(self, msg: str, kwargs: dict[str, Any]) -> tuple[str, dict[str, Any]]:
        context = {**self.extra, **(kwargs.pop("context", None) or {})}
        if context:
            kwargs["extra"] = {**kwargs.get("extra", {}), "context": context}
        return msg, kwargs
