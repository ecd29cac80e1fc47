"""
tokenvest - Structured Logging

Every registry operation logs through ``StructuredLogger``:
- keyword fields travel as ``extra_fields`` on the record
- secrets are redacted and addresses shortened before they are logged
- a correlation ID (``LogContext``) ties together the records of one command
- JSON and plain-text files rotate daily when a log directory is configured

Without a log directory nothing is written by this module itself; records
propagate to the standard ``logging`` hierarchy and whatever handlers the
host application (or pytest) installed.
"""

from __future__ import annotations

import json
import logging
import os
import time
import uuid
from contextvars import ContextVar
from datetime import datetime, timezone
from logging.handlers import TimedRotatingFileHandler
from typing import Any, Dict, Optional

correlation_id: ContextVar[Optional[str]] = ContextVar("tokenvest_correlation_id", default=None)

LEVELS = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARN": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}

REDACTED_KEYS = frozenset({"private_key", "password", "secret", "api_key", "signature", "seed"})
TEXT_FORMAT = "%(asctime)sZ %(levelname)-8s %(name)s [%(correlation_id)s] %(message)s"


def short_address(address: Optional[str]) -> str:
    """``0x1234...cdef`` form used in event logs."""
    if not address:
        return "UNKNOWN"
    if len(address) < 10:
        return address
    return f"{address[:6]}...{address[-4:]}"


def redact(fields: Dict[str, Any]) -> Dict[str, Any]:
    """Copy of ``fields`` with secret-looking keys replaced, recursing into dicts."""
    clean: Dict[str, Any] = {}
    for key, value in fields.items():
        lowered = key.lower()
        if any(marker in lowered for marker in REDACTED_KEYS):
            clean[key] = "REDACTED"
        elif isinstance(value, dict):
            clean[key] = redact(value)
        else:
            clean[key] = value
    return clean


class JSONFormatter(logging.Formatter):
    """One JSON document per record, with structured fields merged at top level."""

    def format(self, record: logging.LogRecord) -> str:
        created = datetime.fromtimestamp(record.created, tz=timezone.utc)
        entry: Dict[str, Any] = {
            "ts": created.isoformat(timespec="milliseconds").replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "source": f"{record.module}.{record.funcName}:{record.lineno}",
        }

        current = correlation_id.get()
        if current:
            entry["correlation_id"] = current

        if record.exc_info and record.exc_info[0] is not None:
            exc_type, exc_value, _ = record.exc_info
            entry["error"] = {
                "type": exc_type.__name__,
                "detail": str(exc_value),
                "stack": self.formatException(record.exc_info),
            }

        entry.update(getattr(record, "extra_fields", {}))
        return json.dumps(entry, default=str)


class CorrelationIDFilter(logging.Filter):
    """Expose the active correlation ID to ``%``-style text formats."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.correlation_id = correlation_id.get() or "-"
        return True


def _rotating_handler(path: str, formatter: logging.Formatter, backup_count: int) -> logging.Handler:
    handler = TimedRotatingFileHandler(
        path, when="midnight", backupCount=backup_count, encoding="utf-8", utc=True
    )
    handler.setFormatter(formatter)
    handler.addFilter(CorrelationIDFilter())
    return handler


class StructuredLogger:
    """
    Logger facade used by the registry, the CLI and the event sinks.

    Args:
        name: Name of the underlying ``logging`` logger
        log_dir: Directory for rotated ``<name>.json.log`` / ``<name>.log`` files
        log_level: DEBUG, INFO, WARN (or WARNING), ERROR or CRITICAL
        backup_count: Rotated files kept per stream of output
    """

    def __init__(
        self,
        name: str = "tokenvest",
        log_dir: Optional[str] = None,
        log_level: str = "INFO",
        backup_count: int = 30,
    ):
        level = log_level.upper().replace("WARNING", "WARN")
        if level not in LEVELS:
            raise ValueError(f"Unknown log level: {log_level}")

        self.name = name
        self.logger = logging.getLogger(name)
        self.logger.setLevel(LEVELS[level])
        self.log_counts = dict.fromkeys(LEVELS, 0)

        # Loggers are process-wide; only the first instance for a name attaches files
        if log_dir and not self.logger.handlers:
            os.makedirs(log_dir, exist_ok=True)
            base = os.path.join(log_dir, name.lower())

            text_formatter = logging.Formatter(TEXT_FORMAT, datefmt="%Y-%m-%dT%H:%M:%S")
            text_formatter.converter = time.gmtime

            self.logger.addHandler(_rotating_handler(f"{base}.json.log", JSONFormatter(), backup_count))
            self.logger.addHandler(_rotating_handler(f"{base}.log", text_formatter, backup_count))

    def _log(self, level: str, message: str, **fields: Any) -> None:
        self.log_counts[level] += 1
        extra = {"extra_fields": redact(fields)} if fields else None
        self.logger.log(LEVELS[level], message, extra=extra)

    def debug(self, message: str, **fields: Any) -> None:
        self._log("DEBUG", message, **fields)

    def info(self, message: str, **fields: Any) -> None:
        self._log("INFO", message, **fields)

    def warn(self, message: str, **fields: Any) -> None:
        self._log("WARN", message, **fields)

    # stdlib spelling
    warning = warn

    def error(self, message: str, **fields: Any) -> None:
        self._log("ERROR", message, **fields)

    def critical(self, message: str, **fields: Any) -> None:
        self._log("CRITICAL", message, **fields)

    def stream_event(self, event_type: str, stream_id: str, beneficiary: str, **fields: Any) -> None:
        """Lifecycle fact for one stream (created, claimed, completed)."""
        self.info(
            f"Stream: {event_type}",
            event=f"stream.{event_type}",
            stream_id=short_address(stream_id),
            beneficiary=short_address(beneficiary),
            **fields,
        )

    def admin_event(self, event_type: str, caller: str, **fields: Any) -> None:
        """Admin handover or role assignment."""
        self.info(
            f"Admin: {event_type}",
            event=f"admin.{event_type}",
            caller=short_address(caller),
            **fields,
        )

    def security_event(self, event_type: str, severity: str = "WARN", **fields: Any) -> None:
        """Rejected privileged call or other security-relevant fact."""
        emit = self.warn if severity == "WARN" else self.error
        emit(
            f"SECURITY: {event_type}",
            event=f"security.{event_type}",
            security_event=True,
            **fields,
        )

    def get_stats(self) -> Dict[str, Any]:
        return {"log_counts": dict(self.log_counts), "total_logs": sum(self.log_counts.values())}


class LogContext:
    """
    Bind a correlation ID for the duration of a ``with`` block.

    Usage:
        with LogContext():
            registry.claim_tokens(caller, stream_id)
    """

    def __init__(self, custom_id: Optional[str] = None):
        self.correlation_id = custom_id or uuid.uuid4().hex[:16]
        self._token = None

    def __enter__(self) -> "LogContext":
        self._token = correlation_id.set(self.correlation_id)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        correlation_id.reset(self._token)


_structured_loggers: Dict[str, StructuredLogger] = {}


def get_structured_logger(
    name: str = "tokenvest",
    log_dir: Optional[str] = None,
    log_level: str = "INFO",
) -> StructuredLogger:
    """
    Shared logger per name.

    The first call for a name fixes its log directory and level.
    """
    if name not in _structured_loggers:
        _structured_loggers[name] = StructuredLogger(name, log_dir=log_dir, log_level=log_level)
    return _structured_loggers[name]
