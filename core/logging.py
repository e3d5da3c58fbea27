"""
Structured JSON logging for CertSeal.

One JSON object per line, with the correlation fields of the issuing or
verification call (operation ID, certificate ID, status, duration) ahead of
any free-form extras. Certificates carry personal data, so the formatter
drops recipient and course fields and shortens full hashes; log lines
identify certificates by ID and hash prefix only.

Example usage:
    >>> from core.logging import get_logger, setup_logging
    >>> setup_logging(level="INFO")
    >>> logger = get_logger(__name__)
    >>> logger.info("Certificate issued", extra={"certificate_id": "CERT-..."})
"""

import json
import logging
import sys
import time
import uuid
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, Optional, TextIO

# Emitted first, in this order
CONTEXT_FIELDS = ('operation_id', 'operation', 'certificate_id', 'status', 'duration_ms')

# Never written to a log line
PERSONAL_FIELDS = frozenset({'student_name', 'course_name', 'user', 'exam', 'canonical_json'})

HASH_FIELDS = frozenset({'hash', 'certificate_hash', 'computed_hash', 'extracted_hash'})
HASH_PREFIX_LENGTH = 16

_RECORD_ATTRS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {'message', 'asctime'}


def hash_prefix(value: Any) -> Any:
    """First HASH_PREFIX_LENGTH characters of a hex digest, for log lines."""
    if isinstance(value, str) and len(value) > HASH_PREFIX_LENGTH:
        return value[:HASH_PREFIX_LENGTH] + "..."
    return value


class JSONFormatter(logging.Formatter):
    """
    Formats records as single-line JSON.

    Fields: time (UTC ISO 8601), level, logger, msg, the CONTEXT_FIELDS that
    are set, remaining extras, and the formatted exception if any.
    """

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "time": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }

        for field in CONTEXT_FIELDS:
            if hasattr(record, field):
                entry[field] = getattr(record, field)

        for key, value in record.__dict__.items():
            if key in _RECORD_ATTRS or key in CONTEXT_FIELDS or key in PERSONAL_FIELDS:
                continue
            entry[key] = hash_prefix(value) if key in HASH_FIELDS else value

        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(entry, ensure_ascii=False, default=str)


def setup_logging(
    level: str = "INFO",
    format_type: str = "json",
    logger_name: Optional[str] = None,
    stream: Optional[TextIO] = None
) -> None:
    """
    Configure a logger (the root logger by default) with one stream handler.

    Args:
        level: DEBUG, INFO, WARNING, ERROR or CRITICAL; unknown names mean INFO
        format_type: "json" or "text"
        logger_name: Logger to configure, None for root
        stream: Output stream, stdout by default (the CLI passes stderr)
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)

    if format_type.lower() == "json":
        formatter: logging.Formatter = JSONFormatter()
    else:
        formatter = logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s')

    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setFormatter(formatter)
    handler.setLevel(numeric_level)

    logger = logging.getLogger(logger_name)
    # Replace rather than stack handlers on repeated setup
    logger.handlers.clear()
    logger.addHandler(handler)
    logger.setLevel(numeric_level)
    logger.propagate = False


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


def new_operation_id() -> str:
    """Short correlation ID for one generation or verification call."""
    return uuid.uuid4().hex[:8]


def log_with_context(
    logger: logging.Logger,
    level: str,
    message: str,
    context: Optional[Dict[str, Any]] = None,
    **kwargs
) -> None:
    """
    Log with an operation context dict merged into the extras.

    Example:
        >>> log_with_context(logger, "warning", "Slow render", {"operation_id": "ab12cd34"}, size=1024)
    """
    extra_fields = {**(context or {}), **kwargs}
    getattr(logger, level.lower(), logger.info)(message, extra=extra_fields)


@contextmanager
def operation_logging(
    logger: logging.Logger,
    operation: str,
    operation_id: Optional[str] = None,
    **context
) -> Iterator[Dict[str, Any]]:
    """
    Log start, completion and failure of one issuing or verification call.

    The yielded dict is live: fields added while the block runs (the
    certificate ID once known, the verification status) appear on the
    completion line. Exceptions are logged with ``status="failed"`` and
    re-raised.

    Example:
        >>> with operation_logging(logger, "verify_pdf") as ctx:
        ...     ctx["certificate_id"] = "CERT-..."
        ...     ctx["status"] = "VERIFIED"
    """
    ctx: Dict[str, Any] = {
        "operation": operation,
        "operation_id": operation_id or new_operation_id(),
        **context,
    }

    started = time.perf_counter()
    logger.info(f"Operation started: {operation}", extra=dict(ctx))

    try:
        yield ctx
    except Exception as e:
        logger.error(
            f"Operation failed: {operation}",
            extra={**ctx, "status": "failed", "duration_ms": _elapsed_ms(started), "error": str(e)},
            exc_info=True
        )
        raise

    logger.info(
        f"Operation completed: {operation}",
        extra={**ctx, "status": ctx.get("status", "completed"), "duration_ms": _elapsed_ms(started)}
    )


def _elapsed_ms(started: float) -> int:
    return int((time.perf_counter() - started) * 1000)
