"""AdSync - Structured JSON Logging."""

import logging
import json
import re
import sys
from datetime import datetime, timezone
from adsync.config import settings

# Credentials must never reach a log sink, including httpx's own request logs.
_SECRET_PATTERNS = [
    (re.compile(r"(access_token=)[^&\s\"']+"), r"\1[REDACTED]"),
    (re.compile(r"(input_token=)[^&\s\"']+"), r"\1[REDACTED]"),
    (re.compile(r"(Bearer\s+)[A-Za-z0-9._\-]+"), r"\1[REDACTED]"),
]

EXTRA_FIELDS = (
    "endpoint",
    "account_id",
    "entity_id",
    "attempt",
    "duration_ms",
    "status_code",
)


def redact(text: str) -> str:
    """Mask access tokens in a log message."""
    for pattern, replacement in _SECRET_PATTERNS:
        text = pattern.sub(replacement, text)
    return text


class JSONFormatter(logging.Formatter):
    """Produces structured JSON log lines for production observability."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": redact(record.getMessage()),
        }
        if record.exc_info and record.exc_info[0] is not None:
            log_entry["exception"] = redact(self.formatException(record.exc_info))
        # Attach extra fields if present
        for key in EXTRA_FIELDS:
            if hasattr(record, key):
                value = getattr(record, key)
                log_entry[key] = redact(value) if isinstance(value, str) else value
        return json.dumps(log_entry, default=str)


def get_logger(name: str) -> logging.Logger:
    """Return a named logger with structured JSON handler."""
    logger = logging.getLogger(f"adsync.{name}")
    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(JSONFormatter())
        logger.addHandler(handler)
    logger.setLevel(getattr(logging, settings.log_level.upper(), logging.INFO))
    return logger


def install_redaction(logger_names: tuple[str, ...] = ("httpx", "httpcore")) -> None:
    """Route third-party loggers that may print request URLs through the JSON formatter."""
    for name in logger_names:
        lib_logger = logging.getLogger(name)
        if not any(isinstance(h.formatter, JSONFormatter) for h in lib_logger.handlers):
            handler = logging.StreamHandler(sys.stdout)
            handler.setFormatter(JSONFormatter())
            lib_logger.addHandler(handler)
            lib_logger.propagate = False
