"""Logging configuration with per-attempt context tracking."""

from __future__ import annotations

import json
import logging
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from smoke_runner.config import HarnessSettings


# Label of the attempt currently running ("2/4"), never the raw node ID
attempt_var: ContextVar[Optional[str]] = ContextVar("attempt", default=None)

RED = "\033[0;31m"
GREEN = "\033[0;32m"
YELLOW = "\033[1;33m"
NC = "\033[0m"


def _status_of(record: logging.LogRecord) -> str:
    extra_fields = getattr(record, "extra_fields", None) or {}
    status = extra_fields.get("status")
    if status:
        return str(status)
    if record.levelno >= logging.ERROR:
        return "error"
    if record.levelno >= logging.WARNING:
        return "warning"
    return "info"


class StructuredFormatter(logging.Formatter):
    """JSON structured log formatter."""

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        attempt = attempt_var.get()
        if attempt:
            log_data["attempt"] = attempt

        if hasattr(record, "extra_fields"):
            log_data.update(record.extra_fields)

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


class TextFormatter(logging.Formatter):
    """Human-readable formatter with [INFO]/[SUCCESS]/[ERROR] status tags."""

    TAGS = {
        "info": ("INFO", YELLOW),
        "success": ("SUCCESS", GREEN),
        "warning": ("WARN", YELLOW),
        "error": ("ERROR", RED),
    }

    def __init__(self, use_color: bool = False):
        super().__init__()
        self.use_color = use_color

    def format(self, record: logging.LogRecord) -> str:
        label, color = self.TAGS.get(_status_of(record), self.TAGS["info"])
        tag = f"{color}[{label}]{NC}" if self.use_color else f"[{label}]"
        attempt = attempt_var.get()
        prefix = f"(attempt {attempt}) " if attempt else ""
        base = f"{tag} {prefix}{record.getMessage()}"

        if record.exc_info:
            base += "\n" + self.formatException(record.exc_info)

        return base


class CandidateRedactionFilter(logging.Filter):
    """Mask node IDs in log messages; they are stored as CI secrets."""

    def __init__(self, secrets: Iterable[str] = ()):
        super().__init__()
        self.secrets: set[str] = set()
        self.add(secrets)

    def add(self, secrets: Iterable[str]) -> None:
        self.secrets.update(s for s in secrets if s)

    def filter(self, record: logging.LogRecord) -> bool:
        if not self.secrets:
            return True
        message = record.getMessage()
        redacted = message
        # Longest first so a short ID never masks part of a longer one
        for secret in sorted(self.secrets, key=len, reverse=True):
            redacted = redacted.replace(secret, "***")
        if redacted != message:
            record.msg = redacted
            record.args = None
        return True


_redaction_filter = CandidateRedactionFilter()


def register_secrets(secrets: Iterable[str]) -> None:
    """Add values that must never appear in log output."""
    _redaction_filter.add(secrets)


def setup_logging(settings: "HarnessSettings") -> None:
    """Configure harness logging."""
    root_logger = logging.getLogger("smoke_runner")
    root_logger.setLevel(getattr(logging, settings.log_level))
    root_logger.propagate = False

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    # stderr keeps harness messages apart from the echoed worker output
    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(getattr(logging, settings.log_level))

    if settings.log_format == "json":
        handler.setFormatter(StructuredFormatter())
    else:
        handler.setFormatter(TextFormatter(use_color=sys.stderr.isatty()))

    if settings.redact_candidates:
        handler.addFilter(_redaction_filter)

    root_logger.addHandler(handler)


def get_logger(name: str) -> logging.Logger:
    """Get a logger with the smoke_runner prefix."""
    return logging.getLogger(f"smoke_runner.{name}")


def success(logger: logging.Logger, msg: str, *args: Any) -> None:
    """Log an INFO record rendered with the [SUCCESS] tag."""
    logger.info(msg, *args, extra={"extra_fields": {"status": "success"}})
