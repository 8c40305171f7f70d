"""
Structured logging for the ordering backend.

Loggers accept keyword context (``logger.info("Order paid", order_id=7)``).
Production renders one JSON object per line; development renders a short
coloured line. Tenant and table ids are lifted to the top level of the JSON
record so a single restaurant's traffic can be filtered out of the stream.
"""

import hashlib
import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any

from shared.config.settings import settings

# Context keys promoted out of "data" in JSON output
_SCOPE_KEYS = ("restaurant_id", "table_id")


def _record_context(record: logging.LogRecord) -> dict[str, Any]:
    return dict(getattr(record, "context", None) or {})


def _record_request_id(record: logging.LogRecord) -> str | None:
    request_id = getattr(record, "request_id", None)
    return request_id if request_id and request_id != "-" else None


class JsonFormatter(logging.Formatter):
    """One JSON document per record."""

    def format(self, record: logging.LogRecord) -> str:
        context = _record_context(record)
        document: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        for key in _SCOPE_KEYS:
            if context.get(key) is not None:
                document[key] = context.pop(key)

        request_id = _record_request_id(record)
        if request_id:
            document["request_id"] = request_id
        if context:
            document["data"] = context
        if record.exc_info:
            document["exception"] = self.formatException(record.exc_info)
        if settings.debug:
            document["at"] = f"{record.pathname}:{record.lineno}"

        return json.dumps(document, default=str)


class ConsoleFormatter(logging.Formatter):
    """Readable single-line output for local runs."""

    LEVEL_COLORS = {
        logging.DEBUG: "\033[36m",
        logging.INFO: "\033[32m",
        logging.WARNING: "\033[33m",
        logging.ERROR: "\033[31m",
        logging.CRITICAL: "\033[35m",
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.LEVEL_COLORS.get(record.levelno, "")
        stamp = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")
        request_id = _record_request_id(record)
        prefix = f"[{request_id[:8]}] " if request_id else ""

        line = f"{color}{stamp} {record.levelname:<8}{self.RESET} {prefix}{record.name}: {record.getMessage()}"
        context = _record_context(record)
        if context:
            line += " " + " ".join(f"{key}={value}" for key, value in context.items())
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


class StructuredLogger(logging.Logger):
    """
    Logger whose level methods take keyword context.

    ``exc_info``, ``stack_info`` and ``stacklevel`` keep their stdlib
    meaning; every other keyword lands in ``record.context``.
    """

    _RESERVED = ("exc_info", "stack_info", "stacklevel", "extra")

    def _emit(self, level: int, msg: str, args: tuple, kwargs: dict[str, Any]) -> None:
        if not self.isEnabledFor(level):
            return
        options = {key: kwargs.pop(key) for key in self._RESERVED if key in kwargs}
        extra = dict(options.pop("extra", None) or {})
        extra["context"] = kwargs
        options["stacklevel"] = options.get("stacklevel", 1) + 2
        self._log(level, msg, args, extra=extra, **options)

    def debug(self, msg: str, *args: Any, **kwargs: Any) -> None:
        self._emit(logging.DEBUG, msg, args, kwargs)

    def info(self, msg: str, *args: Any, **kwargs: Any) -> None:
        self._emit(logging.INFO, msg, args, kwargs)

    def warning(self, msg: str, *args: Any, **kwargs: Any) -> None:
        self._emit(logging.WARNING, msg, args, kwargs)

    def error(self, msg: str, *args: Any, **kwargs: Any) -> None:
        self._emit(logging.ERROR, msg, args, kwargs)

    def critical(self, msg: str, *args: Any, **kwargs: Any) -> None:
        self._emit(logging.CRITICAL, msg, args, kwargs)

    def log_at(self, level: int, msg: str, **kwargs: Any) -> None:
        """Log with context at a level chosen at runtime."""
        self._emit(level, msg, (), kwargs)


logging.setLoggerClass(StructuredLogger)


def setup_logging() -> None:
    """Install the stdout handler on the root logger. Call once at startup."""
    # Deferred: correlation imports this module
    from shared.infrastructure.correlation import CorrelationIdFilter

    level = logging.DEBUG if settings.debug else logging.INFO
    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.addFilter(CorrelationIdFilter())
    handler.setFormatter(JsonFormatter() if settings.environment == "production" else ConsoleFormatter())

    root = logging.getLogger()
    root.setLevel(level)
    root.handlers.clear()
    root.addHandler(handler)

    for noisy, noisy_level in (
        ("uvicorn.access", logging.WARNING),
        ("httpx", logging.WARNING),
        ("httpcore", logging.WARNING),
        ("redis", logging.WARNING),
    ):
        logging.getLogger(noisy).setLevel(noisy_level)


def get_logger(name: str) -> StructuredLogger:
    """
    Usage:
        logger = get_logger(__name__)
        logger.info("Order placed", order_id=123, table_id=4)
    """
    return logging.getLogger(name)  # type: ignore


def mask_email(email: str | None) -> str:
    """"manager@trattoria.com" -> "ma***@trattoria.com"."""
    if not email or "@" not in email:
        return "<no-email>"
    local, domain = email.split("@", 1)
    return f"{local[:2] or '?'}***@{domain}"


def mask_token(token: str | None) -> str:
    """
    Fingerprint a bearer token for logging.

    Table tokens are credentials, so only the first 8 hex characters of
    their SHA-256 digest are ever written to the logs.
    """
    if not token:
        return "<no-token>"
    return hashlib.sha256(token.encode("utf-8")).hexdigest()[:8]


rest_api_logger = get_logger("rest_api")
customer_logger = get_logger("rest_api.customer")
kitchen_logger = get_logger("rest_api.kitchen")
floor_logger = get_logger("rest_api.floor")
security_audit_logger = get_logger("security.audit")


# =============================================================================
# Security audit trail
# =============================================================================


def audit_auth_event(
    event_type: str,
    user_id: int | str | None = None,
    email: str | None = None,
    success: bool = True,
    reason: str | None = None,
    ip_address: str | None = None,
    **extra: Any,
) -> None:
    """
    Record a staff authentication event (LOGIN, TOKEN_REJECTED, ...).

    Failures are logged at WARNING; the email is masked.
    """
    security_audit_logger.log_at(
        logging.INFO if success else logging.WARNING,
        f"AUTH_AUDIT: {event_type}",
        event_type=event_type,
        user_id=user_id,
        email=mask_email(email) if email else None,
        success=success,
        reason=reason,
        ip_address=ip_address,
        **extra,
    )


def audit_token_event(
    event_type: str,
    restaurant_id: int | None = None,
    table_id: int | None = None,
    token_hash: str | None = None,
    **extra: Any,
) -> None:
    """
    Record a table-token lifecycle event (ISSUED, REVOKED, REJECTED).

    ``token_hash`` must come from mask_token(), never the raw token.
    """
    security_audit_logger.log_at(
        logging.WARNING if event_type == "REJECTED" else logging.INFO,
        f"TOKEN_AUDIT: {event_type}",
        event_type=event_type,
        restaurant_id=restaurant_id,
        table_id=table_id,
        token_hash=token_hash,
        **extra,
    )
