"""
Structured logging for the SSO gateway.

Provides:
- JSON structured logging for production environments
- Human-readable colored logging for development
- Flow context (request_id, store_id, provider_id) propagation
- Redaction of secrets, tokens, passwords and SAML payloads
- A timing context manager for IdP round trips
"""

import json
import logging
import os
import re
import sys
import time
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Dict, Optional

# Context variables for flow tracking
request_id_var: ContextVar[Optional[str]] = ContextVar("request_id", default=None)
store_id_var: ContextVar[Optional[str]] = ContextVar("store_id", default=None)
provider_id_var: ContextVar[Optional[str]] = ContextVar("provider_id", default=None)

# Patterns for sensitive data that should be redacted
SENSITIVE_PATTERNS: list[re.Pattern] = [
    re.compile(r'client[_-]?secret["\']?\s*[:=]\s*["\']?[^\s,}"\']+', re.IGNORECASE),
    re.compile(r'clientSecret["\']?\s*[:=]\s*["\']?[^\s,}"\']+', re.IGNORECASE),
    re.compile(r'password["\']?\s*[:=]\s*["\']?[^\s,}]+', re.IGNORECASE),
    re.compile(r'pepper["\']?\s*[:=]\s*["\']?[^\s,}]+', re.IGNORECASE),
    re.compile(r'secret["\']?\s*[:=]\s*["\']?[\w-]+', re.IGNORECASE),
    re.compile(r'(?:access|refresh|id)[_-]?token["\']?\s*[:=]\s*["\']?[\w.-]+', re.IGNORECASE),
    re.compile(r'code[_-]?verifier["\']?\s*[:=]\s*["\']?[\w.-]+', re.IGNORECASE),
    re.compile(r'SAMLResponse["\']?\s*[:=]\s*["\']?[\w+/=]+', re.IGNORECASE),
    re.compile(r'private[_-]?key["\']?\s*[:=]\s*["\']?[^,}]+', re.IGNORECASE),
    re.compile(r'bearer\s+[\w.-]+', re.IGNORECASE),
    re.compile(r'authorization["\']?\s*[:=]\s*["\']?[^\s,}]+', re.IGNORECASE),
    re.compile(r'eyJ[\w-]+\.eyJ[\w-]+\.[\w-]+', re.IGNORECASE),  # JWTs
    re.compile(r'-----BEGIN [A-Z ]*PRIVATE KEY-----[\s\S]*?-----END [A-Z ]*PRIVATE KEY-----'),
]

REDACTED = "[REDACTED]"

# Fields to exclude from extra data in JSON logs
EXCLUDED_RECORD_ATTRS = frozenset({
    "name", "msg", "args", "created", "filename", "funcName",
    "levelname", "levelno", "lineno", "module", "msecs",
    "pathname", "process", "processName", "relativeCreated",
    "stack_info", "exc_info", "exc_text", "thread", "threadName",
    "request_id", "store_id", "provider_id", "message", "taskName",
})

# Keys in structured extras whose values are never emitted
SENSITIVE_EXTRA_KEYS = frozenset({
    "client_secret", "clientSecret", "password", "pepper", "access_token",
    "refresh_token", "id_token", "code_verifier", "codeVerifier",
    "private_key", "privateKey", "saml_response", "SAMLResponse",
})


def redact_sensitive_data(message: str) -> str:
    """
    Redact sensitive data from log messages.

    Args:
        message: The log message to sanitize

    Returns:
        Message with sensitive data replaced with [REDACTED]
    """
    if not message:
        return message

    result = message
    for pattern in SENSITIVE_PATTERNS:
        result = pattern.sub(REDACTED, result)
    return result


class FlowContextFilter(logging.Filter):
    """Add SSO flow context to all log records."""

    def filter(self, record: logging.LogRecord) -> bool:
        """Add flow context attributes to the log record."""
        record.request_id = request_id_var.get() or "-"
        record.store_id = store_id_var.get() or "-"
        record.provider_id = provider_id_var.get() or "-"
        return True


class SensitiveDataFilter(logging.Filter):
    """Filter sensitive data from log messages and structured extras."""

    def filter(self, record: logging.LogRecord) -> bool:
        """Redact sensitive data from the log record."""
        if record.msg:
            record.msg = redact_sensitive_data(str(record.msg))
        if record.args:
            record.args = tuple(
                redact_sensitive_data(arg) if isinstance(arg, str) else arg
                for arg in record.args
            )
        for key in SENSITIVE_EXTRA_KEYS:
            if key in record.__dict__:
                setattr(record, key, REDACTED)
        return True


def _extra_fields(record: logging.LogRecord) -> Dict[str, Any]:
    return {
        k: v for k, v in record.__dict__.items()
        if k not in EXCLUDED_RECORD_ATTRS and not k.startswith("_")
    }


class JSONFormatter(logging.Formatter):
    """
    JSON formatter for structured logging in production.

    Outputs logs as single-line JSON objects:
    {
        "timestamp": "2024-01-15T10:30:00.123456Z",
        "level": "INFO",
        "logger": "sso_gateway.auth.sso.oidc.base",
        "message": "OIDC authorization URL built",
        "service": "sso-gateway",
        "request_id": "abc-123",
        "store_id": "store-456",
        "provider_id": "prov-789",
        "extra": {...}
    }
    """

    def __init__(self, service_name: str = "sso-gateway"):
        super().__init__()
        self.service_name = service_name

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON string."""
        log_data: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "service": self.service_name,
            "request_id": getattr(record, "request_id", "-"),
            "store_id": getattr(record, "store_id", "-"),
            "provider_id": getattr(record, "provider_id", "-"),
        }

        if record.levelno >= logging.ERROR:
            log_data["source"] = {
                "file": record.pathname,
                "line": record.lineno,
                "function": record.funcName,
            }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        extra_fields = _extra_fields(record)
        if extra_fields:
            log_data["extra"] = extra_fields

        return json.dumps(log_data, default=str, ensure_ascii=False)


class DevelopmentFormatter(logging.Formatter):
    """
    Human-readable formatter with colors for development.

    Format: [timestamp] LEVEL    [store] [provider] logger - message
    """

    COLORS: Dict[str, str] = {
        "DEBUG": "\033[36m",     # Cyan
        "INFO": "\033[32m",      # Green
        "WARNING": "\033[33m",   # Yellow
        "ERROR": "\033[31m",     # Red
        "CRITICAL": "\033[35m",  # Magenta
    }
    RESET = "\033[0m"
    BOLD = "\033[1m"
    DIM = "\033[2m"

    def format(self, record: logging.LogRecord) -> str:
        """Format log record with colors and context."""
        color = self.COLORS.get(record.levelname, "")
        reset = self.RESET if color else ""

        store_id = getattr(record, "store_id", "-")
        provider_id = getattr(record, "provider_id", "-")
        store_display = store_id[:8] if store_id != "-" else "-"
        provider_display = provider_id[:8] if provider_id != "-" else "-"

        timestamp = datetime.now().strftime("%Y-%m-%d %H:%M:%S.%f")[:-3]

        formatted = (
            f"{self.DIM}[{timestamp}]{self.RESET} "
            f"{color}{self.BOLD}{record.levelname:8}{reset} "
            f"{self.DIM}[{store_display:>8}] [{provider_display:>8}]{self.RESET} "
            f"{record.name} - {record.getMessage()}"
        )

        extra_fields = _extra_fields(record)
        if extra_fields:
            formatted += f" {self.DIM}{extra_fields}{self.RESET}"

        if record.exc_info:
            formatted += f"\n{self.formatException(record.exc_info)}"

        return formatted


def get_log_level() -> int:
    """Get log level from the LOG_LEVEL environment variable."""
    level_name = os.environ.get("LOG_LEVEL", "INFO").upper()
    level = getattr(logging, level_name, None)
    if not isinstance(level, int):
        return logging.INFO
    return level


def should_use_json_format() -> bool:
    """Use JSON in production or when LOG_FORMAT_JSON is set."""
    force_json = os.environ.get("LOG_FORMAT_JSON", "").lower() in ("true", "1", "yes")
    if force_json:
        return True
    return os.environ.get("ENVIRONMENT", "development").lower() in ("production", "prod")


def setup_logging(
    service_name: str = "sso-gateway",
    log_level: Optional[int] = None,
    force_json: bool = False,
) -> logging.Logger:
    """
    Configure structured logging for the application.

    Call once at application startup.

    Args:
        service_name: Name of the service for log identification
        log_level: Override log level (defaults to LOG_LEVEL env var)
        force_json: Force JSON output even in development

    Returns:
        Configured root logger
    """
    level = log_level if log_level is not None else get_log_level()
    use_json = force_json or should_use_json_format()

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.addFilter(FlowContextFilter())
    handler.addFilter(SensitiveDataFilter())

    if use_json:
        handler.setFormatter(JSONFormatter(service_name))
    else:
        handler.setFormatter(DevelopmentFormatter())

    root_logger.addHandler(handler)

    # Reduce noise from third-party libraries
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("asyncio").setLevel(logging.WARNING)

    root_logger.info(
        "Logging configured",
        extra={
            "log_level": logging.getLevelName(level),
            "format": "json" if use_json else "development",
            "service": service_name,
        },
    )

    return root_logger


def set_flow_context(
    request_id: Optional[str] = None,
    store_id: Optional[str] = None,
    provider_id: Optional[str] = None,
) -> None:
    """
    Set SSO flow context for the current async context.

    Included in every log record emitted within the current task.
    """
    if request_id is not None:
        request_id_var.set(request_id)
    if store_id is not None:
        store_id_var.set(store_id)
    if provider_id is not None:
        provider_id_var.set(provider_id)


def clear_flow_context() -> None:
    """Clear flow context after request completion."""
    request_id_var.set(None)
    store_id_var.set(None)
    provider_id_var.set(None)


class Timer:
    """
    Context manager for timing operations.

    Usage:
        with Timer("oidc_token_exchange", logger):
            tokens = await client.fetch_token(...)
    """

    def __init__(
        self,
        name: str,
        logger: Optional[logging.Logger] = None,
        log_level: int = logging.DEBUG,
    ):
        self.name = name
        self.logger = logger
        self.log_level = log_level
        self.start_time: Optional[float] = None
        self.elapsed_ms: float = 0

    def __enter__(self) -> "Timer":
        self.start_time = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        if self.start_time is not None:
            self.elapsed_ms = (time.perf_counter() - self.start_time) * 1000

        if self.logger:
            self.logger.log(
                self.log_level,
                f"{self.name} completed in {self.elapsed_ms:.2f}ms",
                extra={
                    "operation": self.name,
                    "duration_ms": round(self.elapsed_ms, 2),
                    "success": exc_type is None,
                },
            )
