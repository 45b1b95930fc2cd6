"""
Observability Module
====================

Structured logging with tenant and correlation context.
"""

from .logging_config import (
    ContextFormatter,
    OperationContext,
    OperationLogger,
    StructuredFormatter,
    generate_correlation_id,
    generate_operation_id,
    get_correlation_id,
    get_logger,
    get_operation_id,
    get_tenant_id,
    log_exception,
    set_correlation_id,
    set_operation_id,
    set_tenant_id,
    setup_logging,
)

__all__ = [
    "ContextFormatter",
    "OperationContext",
    "OperationLogger",
    "StructuredFormatter",
    "generate_correlation_id",
    "generate_operation_id",
    "get_correlation_id",
    "get_logger",
    "get_operation_id",
    "get_tenant_id",
    "log_exception",
    "set_correlation_id",
    "set_operation_id",
    "set_tenant_id",
    "setup_logging",
]
