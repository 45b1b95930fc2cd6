"""Tests for tenant scoping helpers."""
import pytest

from knowledge.observability.logging_config import get_tenant_id
from knowledge.security.tenant_isolation import (
    TenantScopeError,
    ensure_tenant_access,
    require_tenant,
    tenant_scope,
)


class TestRequireTenant:
    """Tests for tenant id validation."""

    def test_valid_tenant(self):
        assert require_tenant("tenant-a") == "tenant-a"

    @pytest.mark.parametrize("value", [None, "", "   "])
    def test_blank_tenant_rejected(self, value):
        with pytest.raises(TenantScopeError):
            require_tenant(value)

    def test_scope_error_is_value_error(self):
        assert issubclass(TenantScopeError, ValueError)


class TestTenantScope:
    """Tests for binding the tenant to the logging context."""

    def test_scope_binds_and_restores(self):
        assert get_tenant_id() is None
        with tenant_scope("tenant-a"):
            assert get_tenant_id() == "tenant-a"
            with tenant_scope("tenant-b"):
                assert get_tenant_id() == "tenant-b"
            assert get_tenant_id() == "tenant-a"
        assert get_tenant_id() is None

    def test_scope_restored_after_error(self):
        with pytest.raises(RuntimeError):
            with tenant_scope("tenant-a"):
                raise RuntimeError("boom")
        assert get_tenant_id() is None


class TestEnsureTenantAccess:
    def test_same_tenant(self):
        assert ensure_tenant_access("tenant-a", "tenant-a") is True

    def test_other_tenant(self):
        assert ensure_tenant_access("tenant-a", "tenant-b") is False

