"""Tenant Isolation - every read and write is scoped to exactly one tenant."""

from contextlib import contextmanager

from knowledge.observability.logging_config import set_tenant_id


class TenantScopeError(ValueError):
    """Raised when an operation is attempted without a usable tenant id."""


def require_tenant(tenant_id: str | None) -> str:
    """Validate and return a tenant id; blank ids never reach a query."""
    if tenant_id is None or not str(tenant_id).strip():
        raise TenantScopeError("tenant_id is required for knowledge operations")
    return str(tenant_id)


@contextmanager
def tenant_scope(tenant_id: str):
    """Bind the tenant id to the logging context for the enclosed block."""
    token = set_tenant_id(require_tenant(tenant_id))
    try:
        yield
    finally:
        token.var.reset(token)


def ensure_tenant_access(tenant_id: str, resource_tenant_id: str) -> bool:
    """True when a resource belongs to the requesting tenant."""
    return str(tenant_id) == str(resource_tenant_id)
