"""
Knowledge Service - Logging Configuration
=========================================

Structured JSON or human-readable logging with request/tenant context carried
in context variables, so every log line emitted while serving a tenant is
tagged with that tenant without threading ids through call signatures.

Usage:
    from knowledge.observability import setup_logging, get_logger, OperationContext

    setup_logging(level="INFO", json_format=True)
    logger = get_logger(__name__)

    with OperationContext(tenant_id="t1", auto_generate_correlation=True):
        logger.info("Indexing started")
"""

import contextvars
import json
import logging
import sys
import traceback as tb
from datetime import datetime, timezone
from typing import Any
from uuid import uuid4

_correlation_id: contextvars.ContextVar[str | None] = contextvars.ContextVar("correlation_id", default=None)
_operation_id: contextvars.ContextVar[str | None] = contextvars.ContextVar("operation_id", default=None)
_tenant_id: contextvars.ContextVar[str | None] = contextvars.ContextVar("tenant_id", default=None)
_extra_context: contextvars.ContextVar[dict[str, Any] | None] = contextvars.ContextVar("extra_context", default=None)


def get_correlation_id() -> str | None:
    return _correlation_id.get()


def set_correlation_id(correlation_id: str | None) -> contextvars.Token:
    return _correlation_id.set(correlation_id)


def get_operation_id() -> str | None:
    return _operation_id.get()


def set_operation_id(operation_id: str | None) -> contextvars.Token:
    return _operation_id.set(operation_id)


def get_tenant_id() -> str | None:
    return _tenant_id.get()


def set_tenant_id(tenant_id: str | None) -> contextvars.Token:
    return _tenant_id.set(tenant_id)


def generate_correlation_id() -> str:
    return f"corr-{uuid4().hex[:12]}"


def generate_operation_id() -> str:
    return f"op-{uuid4().hex[:12]}"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class OperationContext:
    """Context manager binding correlation/operation/tenant ids for the enclosed block."""

    def __init__(
        self,
        correlation_id: str | None = None,
        operation_id: str | None = None,
        tenant_id: str | None = None,
        auto_generate_correlation: bool = False,
        auto_generate_operation: bool = False,
        **extra_context,
    ):
        self.correlation_id = correlation_id
        self.operation_id = operation_id
        self.tenant_id = tenant_id
        self.auto_generate_correlation = auto_generate_correlation
        self.auto_generate_operation = auto_generate_operation
        self.extra_context = extra_context
        self._tokens: list[contextvars.Token] = []

    def __enter__(self):
        if self.correlation_id:
            self._tokens.append(set_correlation_id(self.correlation_id))
        elif self.auto_generate_correlation and not get_correlation_id():
            self._tokens.append(set_correlation_id(generate_correlation_id()))
        if self.operation_id:
            self._tokens.append(set_operation_id(self.operation_id))
        elif self.auto_generate_operation:
            self._tokens.append(set_operation_id(generate_operation_id()))
        if self.tenant_id:
            self._tokens.append(set_tenant_id(self.tenant_id))
        if self.extra_context:
            current = dict(_extra_context.get() or {})
            current.update(self.extra_context)
            self._tokens.append(_extra_context.set(current))
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        for token in reversed(self._tokens):
            token.var.reset(token)
        self._tokens.clear()
        return False


class StructuredFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    def __init__(
        self,
        include_timestamp: bool = True,
        include_location: bool = True,
        include_context: bool = True,
        extra_fields: dict[str, Any] | None = None,
    ):
        super().__init__()
        self.include_timestamp = include_timestamp
        self.include_location = include_location
        self.include_context = include_context
        self.extra_fields = extra_fields or {}

    def format(self, record: logging.LogRecord) -> str:
        log_obj = {"level": record.levelname, "message": record.getMessage(), "logger": record.name}
        if self.include_timestamp:
            log_obj["timestamp"] = _utcnow().isoformat().replace("+00:00", "Z")
        if self.include_location:
            log_obj["location"] = {"file": record.filename, "line": record.lineno, "function": record.funcName}
        if self.include_context:
            if corr_id := get_correlation_id():
                log_obj["correlation_id"] = corr_id
            if op_id := get_operation_id():
                log_obj["operation_id"] = op_id
            if tenant_id := get_tenant_id():
                log_obj["tenant_id"] = tenant_id
            if extra := _extra_context.get():
                log_obj["context"] = extra
        if record.exc_info:
            log_obj["exception"] = {
                "type": record.exc_info[0].__name__ if record.exc_info[0] else None,
                "message": str(record.exc_info[1]) if record.exc_info[1] else None,
                "traceback": tb.format_exception(*record.exc_info) if record.exc_info[0] else None,
            }
        if hasattr(record, "extra_data"):
            log_obj["data"] = record.extra_data
        log_obj.update(self.extra_fields)
        return json.dumps(log_obj, default=str)


class ContextFormatter(logging.Formatter):
    """Human-readable formatter with context ids."""

    DEFAULT_FORMAT = "%(asctime)s %(levelname)-8s %(context)s%(name)s - %(message)s"

    def __init__(self, fmt: str | None = None, datefmt: str | None = None):
        super().__init__(fmt=fmt or self.DEFAULT_FORMAT, datefmt=datefmt or "%Y-%m-%d %H:%M:%S")

    def format(self, record: logging.LogRecord) -> str:
        parts = []
        if corr_id := get_correlation_id():
            parts.append(f"[{corr_id}]")
        if op_id := get_operation_id():
            parts.append(f"[{op_id}]")
        if tenant_id := get_tenant_id():
            parts.append(f"[tenant={tenant_id}]")
        record.context = " ".join(parts) + " " if parts else ""
        return super().format(record)


def setup_logging(
    level: str = "INFO",
    json_format: bool = False,
    include_location: bool = True,
    extra_fields: dict[str, Any] | None = None,
) -> None:
    """Configure the root logger with a single stdout handler."""
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    root_logger.handlers.clear()

    if json_format:
        formatter = StructuredFormatter(include_location=include_location, extra_fields=extra_fields)
    else:
        formatter = ContextFormatter()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    # SDK clients are chatty at INFO
    for noisy in ("httpx", "httpcore", "openai", "anthropic", "google_genai", "asyncpg"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


class OperationLogger:
    """Context manager that logs start, success and failure of an operation."""

    def __init__(self, logger: logging.Logger, operation_name: str, tenant_id: str | None = None, **context_data):
        self.logger = logger
        self.operation_name = operation_name
        self.tenant_id = tenant_id
        self.correlation_id = get_correlation_id() or generate_correlation_id()
        self.operation_id = generate_operation_id()
        self.context_data = context_data
        self.start_time: datetime | None = None
        self._context: OperationContext | None = None

    def __enter__(self):
        self.start_time = _utcnow()
        self._context = OperationContext(
            correlation_id=self.correlation_id,
            operation_id=self.operation_id,
            tenant_id=self.tenant_id,
            **self.context_data,
        )
        self._context.__enter__()
        self.logger.info(
            f"Starting operation: {self.operation_name}",
            extra={"extra_data": {"event": "operation_start", "operation": self.operation_name}},
        )
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        duration_ms = self.duration_ms
        if exc_type is None:
            self.logger.info(
                f"Completed operation: {self.operation_name} (duration: {duration_ms}ms)",
                extra={"extra_data": {"event": "operation_success", "operation": self.operation_name, "duration_ms": duration_ms}},
            )
        else:
            self.logger.error(
                f"Failed operation: {self.operation_name} (duration: {duration_ms}ms) - {exc_val}",
                exc_info=(exc_type, exc_val, exc_tb),
                extra={"extra_data": {"event": "operation_failed", "operation": self.operation_name, "duration_ms": duration_ms}},
            )
        if self._context:
            self._context.__exit__(exc_type, exc_val, exc_tb)
        return False

    @property
    def duration_ms(self) -> int:
        if not self.start_time:
            return 0
        return int((_utcnow() - self.start_time).total_seconds() * 1000)


def log_exception(logger: logging.Logger, message: str, exception: Exception | None = None, **kwargs) -> None:
    """Log an exception with optional structured data."""
    extra = {"extra_data": kwargs} if kwargs else {}
    if exception:
        logger.error(message, exc_info=(type(exception), exception, exception.__traceback__), extra=extra)
    else:
        logger.error(message, exc_info=True, extra=extra)
