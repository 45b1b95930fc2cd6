from .redaction import DEFAULT_RULES, RedactionRule, Redactor, ScanResult, redact, scan_content
from .tenant_isolation import (
    TenantScopeError,
    ensure_tenant_access,
    require_tenant,
    tenant_scope,
)

__all__ = [
    "DEFAULT_RULES",
    "RedactionRule",
    "Redactor",
    "ScanResult",
    "TenantScopeError",
    "ensure_tenant_access",
    "redact",
    "require_tenant",
    "scan_content",
    "tenant_scope",
]
