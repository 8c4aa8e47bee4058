"""
Structured JSON logging configuration.

Every log line is a single JSON object carrying:
- timestamp, level, message, logger
- request correlation id, path, method, status code, latency
- domain context: user_id, family_code, notification/merge ids

Output goes to stdout for collection by the hosting platform.
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional

# LogRecord attributes that are not user supplied context
_RESERVED_ATTRS = frozenset({
    "name", "msg", "args", "created", "filename", "funcName",
    "levelname", "levelno", "lineno", "module", "msecs",
    "message", "pathname", "process", "processName", "relativeCreated",
    "thread", "threadName", "exc_info", "exc_text", "stack_info",
    "taskName",
})

# Extra keys whose values never reach the log output
REDACTED_KEYS = frozenset({"password", "otp", "token", "access_token", "secret_key", "authorization"})

CONTEXT_FIELDS = (
    "request_id",
    "path",
    "method",
    "status_code",
    "latency_ms",
    "user_id",
    "family_code",
)


class JSONFormatter(logging.Formatter):
    """
    Format log records as single-line JSON objects.

    Known context fields are emitted first when set. Any other ``extra``
    key is appended, with credentials (passwords, OTPs, tokens) masked.

    Example output:
        {"timestamp": "2025-11-24T10:30:00.123456+00:00", "level": "INFO",
         "message": "Tree saved", "logger": "app.services.family",
         "user_id": 12, "family_code": "FAM001"}
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "message": record.getMessage(),
            "logger": record.name,
        }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)
        if record.stack_info:
            log_data["stack_info"] = self.formatStack(record.stack_info)

        for field in CONTEXT_FIELDS:
            value = getattr(record, field, None)
            if value is not None:
                log_data[field] = value

        for key, value in record.__dict__.items():
            if key in _RESERVED_ATTRS or key in log_data:
                continue
            log_data[key] = "[REDACTED]" if key.lower() in REDACTED_KEYS else value

        return json.dumps(log_data, default=str)


def setup_logging(
    level: str = "INFO",
    json_format: bool = True
) -> None:
    """
    Configure the root logger.

    Replaces existing handlers with a single stdout handler using either the
    JSON formatter or a plain developer format, and quiets noisy libraries.

    Args:
        level: Logging level name
        json_format: Use JSONFormatter when True
    """
    root_logger = logging.getLogger()
    log_level = getattr(logging, level.upper(), logging.INFO)
    root_logger.setLevel(log_level)

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(log_level)

    if json_format:
        formatter: logging.Formatter = JSONFormatter()
    else:
        formatter = logging.Formatter(
            fmt="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S"
        )
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    for noisy in ("httpx", "httpcore", "asyncio", "sqlalchemy.engine", "botocore", "boto3"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """Return a module logger (thin alias kept for call-site symmetry)."""
    return logging.getLogger(name)


def log_with_context(
    logger: logging.Logger,
    level: str,
    message: str,
    request_id: Optional[str] = None,
    user_id: Optional[int] = None,
    family_code: Optional[str] = None,
    path: Optional[str] = None,
    method: Optional[str] = None,
    status_code: Optional[int] = None,
    latency_ms: Optional[float] = None,
    **extra_fields: Any
) -> None:
    """
    Log a message with structured context fields, skipping unset ones.

    Example:
        log_with_context(
            logger, "info", "Merge executed",
            user_id=4, family_code="FAM001", merge_request_id=9,
        )
    """
    extra: Dict[str, Any] = {}
    context = {
        "request_id": request_id,
        "user_id": user_id,
        "family_code": family_code,
        "path": path,
        "method": method,
        "status_code": status_code,
        "latency_ms": latency_ms,
    }
    for key, value in context.items():
        if value is not None:
            extra[key] = value
    extra.update(extra_fields)

    getattr(logger, level.lower())(message, extra=extra)
