"""
Structured logging utility for the booking client.

Provides JSON-formatted logging with phone masking, credential redaction
for outbound request diagnostics, and operation timing.
"""

import json
import logging
import time
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, Mapping, Optional
from functools import wraps

REDACTED = "[REDACTED]"
REDACTED_SENSITIVE = "[REDACTED - SENSITIVE]"

# Headers whose values must never reach a log sink
_SECRET_HEADERS = {"authorization", "cookie", "set-cookie", "proxy-authorization"}


def mask_phone(phone: Optional[str]) -> str:
    """
    Mask phone number to preserve privacy in logs.

    Keeps the leading three characters and the last four digits.

    Example:
        >>> mask_phone("+919999999992")
        "+91****9992"
        >>> mask_phone("9876543210")
        "987****3210"
    """
    if not phone:
        return "unknown"

    clean_phone = "".join(c for c in str(phone) if c.isdigit() or c == "+")

    if len(clean_phone) < 8:
        return "invalid"

    return f"{clean_phone[:3]}****{clean_phone[-4:]}"


def redact_headers(headers: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
    """Return a copy of ``headers`` with credential-bearing values replaced."""
    if not headers:
        return {}
    return {
        key: (REDACTED if key.lower() in _SECRET_HEADERS else value)
        for key, value in headers.items()
    }


def is_sensitive_path(path: str, sensitive_prefixes: Iterable[str]) -> bool:
    """True when ``path`` contains any of the sensitive endpoint fragments."""
    return any(fragment in (path or "") for fragment in sensitive_prefixes)


def summarize_payload(payload: Any) -> str:
    """
    Describe a payload without exposing its values.

    Lists become an item count, objects become their key list.
    """
    if payload is None:
        return "[empty]"
    if isinstance(payload, list):
        return f"[Array of {len(payload)} items]"
    if isinstance(payload, dict):
        return "{" + ", ".join(str(k) for k in payload.keys()) + "}"
    return f"[{type(payload).__name__}]"


def _attach_console_handler(target: logging.Logger) -> None:
    """Give ``target`` one stderr handler emitting the bare JSON line."""
    if target.handlers:
        return
    handler = logging.StreamHandler()
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(logging.Formatter("%(message)s"))
    target.addHandler(handler)


class StructuredLogger:
    """
    Logger whose records are single-line JSON documents.

    Every entry carries ``timestamp``, ``level`` and ``message``; ``operation``,
    ``context``, ``duration_ms`` and ``error`` are added only when given.
    """

    def __init__(self, name: str):
        self.logger = logging.getLogger(name)
        self.logger.setLevel(logging.DEBUG)
        _attach_console_handler(self.logger)

    def _format_log(
        self,
        level: str,
        message: str,
        operation: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        duration_ms: Optional[float] = None,
        error: Optional[str] = None,
    ) -> str:
        """Serialize one entry. Values that are not JSON types are stringified."""
        timestamp = datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")
        entry: Dict[str, Any] = {"timestamp": timestamp, "level": level, "message": message}
        optional = (
            ("operation", operation),
            ("context", context),
            ("duration_ms", None if duration_ms is None else round(duration_ms, 2)),
            ("error", error),
        )
        entry.update((key, value) for key, value in optional if value not in (None, "", {}))
        return json.dumps(entry, ensure_ascii=False, default=str)

    def _emit(self, level: int, message: str, **fields: Any) -> None:
        if self.logger.isEnabledFor(level):
            self.logger.log(level, self._format_log(logging.getLevelName(level), message, **fields))

    def debug(self, message: str, operation: Optional[str] = None, context: Optional[Dict[str, Any]] = None):
        self._emit(logging.DEBUG, message, operation=operation, context=context)

    def info(
        self,
        message: str,
        operation: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        duration_ms: Optional[float] = None,
    ):
        self._emit(logging.INFO, message, operation=operation, context=context, duration_ms=duration_ms)

    def warning(
        self,
        message: str,
        operation: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        error: Optional[str] = None,
    ):
        self._emit(logging.WARNING, message, operation=operation, context=context, error=error)

    def error(
        self,
        message: str,
        operation: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        error: Optional[str] = None,
        duration_ms: Optional[float] = None,
    ):
        self._emit(
            logging.ERROR,
            message,
            operation=operation,
            context=context,
            duration_ms=duration_ms,
            error=error,
        )


def log_operation(operation_name: str):
    """
    Decorator to log operation start, duration, and completion.

    Usage:
        @log_operation("book_selected_seats")
        def book_selected_seats(self, form_data):
            ...
    """

    def decorator(func):
        @wraps(func)
        def wrapper(*args, **kwargs):
            logger = StructuredLogger(func.__module__)

            context: Dict[str, Any] = {"function": func.__name__}
            if "phone" in kwargs:
                context["phone_masked"] = mask_phone(kwargs["phone"])

            logger.debug(f"Starting {operation_name}", operation=operation_name, context=context)

            start_time = time.time()
            try:
                result = func(*args, **kwargs)
            except Exception as e:
                logger.error(
                    f"Failed {operation_name}",
                    operation=operation_name,
                    context=context,
                    error=str(e),
                    duration_ms=(time.time() - start_time) * 1000,
                )
                raise

            logger.info(
                f"Completed {operation_name}",
                operation=operation_name,
                context=context,
                duration_ms=(time.time() - start_time) * 1000,
            )
            return result

        return wrapper

    return decorator


def get_logger(name: str) -> StructuredLogger:
    """Structured logger for a module; pass ``__name__``."""
    return StructuredLogger(name)
