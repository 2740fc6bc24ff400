"""Shared fixtures for the audit test suite."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from wafaudit.audit.base import ResourceSet
from wafaudit.audit.models import (
    BackendPool,
    LoadBalancer,
    ManagementGroup,
    Scope,
    VirtualMachine,
)
from wafaudit.core.config import Settings

TENANT_ID = "11111111-1111-1111-1111-111111111111"


def vm_id(sub: str, name: str) -> str:
    return (
        f"/subscriptions/{sub}/resourceGroups/rg-app/providers/"
        f"Microsoft.Compute/virtualMachines/{name}"
    )


@pytest.fixture
def test_settings():
    """Settings with no service principal and no .env influence."""
    return Settings(
        _env_file=None,
        azure_tenant_id=None,
        azure_client_id=None,
        azure_client_secret=None,
    )


@pytest.fixture
def sp_settings():
    """Settings with a complete service principal."""
    return Settings(
        _env_file=None,
        azure_tenant_id=TENANT_ID,
        azure_client_id="client-id-123",
        azure_client_secret="client-secret-value",
    )


@pytest.fixture
def tenant_scope():
    return Scope.for_tenant(TENANT_ID)


@pytest.fixture
def subscription_scope():
    return Scope.for_subscription(TENANT_ID, "sub-1", "Production")


@pytest.fixture
def make_resources():
    """Build a ResourceSet for a scope from keyword collections."""

    def _make(scope, failed=None, resolvers=None, **collections):
        return ResourceSet(
            scope=scope,
            collections=collections,
            failed=failed,
            resolvers=resolvers,
        )

    return _make


@pytest.fixture
def make_vm():
    def _make(name="vm-1", zones=None, availability_set_id=None, sub="sub-1"):
        return VirtualMachine(
            id=vm_id(sub, name),
            name=name,
            resource_group="rg-app",
            location="westeurope",
            zones=zones or [],
            availability_set_id=availability_set_id,
        )

    return _make


@pytest.fixture
def make_load_balancer():
    def _make(name="lb-1", pool_sizes=(1,), sku="Standard"):
        return LoadBalancer(
            id=(
                "/subscriptions/sub-1/resourceGroups/rg-net/providers/"
                f"Microsoft.Network/loadBalancers/{name}"
            ),
            name=name,
            resource_group="rg-net",
            location="westeurope",
            sku=sku,
            backend_pools=[
                BackendPool(name=f"pool-{i}", ip_configuration_count=size)
                for i, size in enumerate(pool_sizes)
            ],
        )

    return _make


@pytest.fixture
def management_groups():
    """A tenant root group plus a typical landing zone hierarchy."""

    def _group(name, display_name):
        return ManagementGroup(
            id=f"/providers/Microsoft.Management/managementGroups/{name}",
            name=name,
            display_name=display_name,
        )

    return [
        _group(TENANT_ID, "Tenant Root Group"),
        _group("mg-platform", "Platform"),
        _group("mg-landingzones", "Landing Zones"),
        _group("mg-connectivity", "Connectivity"),
        _group("mg-identity", "Identity"),
        _group("mg-management", "Management"),
    ]


@pytest.fixture
def mock_client_manager(test_settings):
    """AzureClientManager stand-in with async listing methods."""
    manager = MagicMock()
    manager.settings = test_settings
    manager.uses_service_principal = False
    manager.check_session = AsyncMock(return_value=None)
    manager.list_tenants = AsyncMock(return_value=[TENANT_ID])
    manager.list_subscriptions = AsyncMock(return_value=[])
    manager.query_resource_graph = AsyncMock(return_value=[])
    return manager
