"""Collectors fetching the resource collections each category needs.

Each collector maps SDK objects into the resource models from
`wafaudit.audit.models` at the boundary. An item that does not validate is
skipped with a warning; the rest of the collection is kept.
"""

import asyncio
import logging
from collections.abc import Callable, Iterable
from typing import Any, TypeVar

from pydantic import BaseModel, ValidationError

from wafaudit.audit.base import BaseCollector, Fetcher, Resolver
from wafaudit.audit.models import (
    AuthenticationMethodState,
    BackendPool,
    LoadBalancer,
    ManagementGroup,
    ScaleSet,
    Scope,
    ScopeLevel,
    SecureScore,
    SqlDatabase,
    VirtualMachine,
)
from wafaudit.core.retry import ARM_FETCH_POLICY, RESOURCE_GRAPH_POLICY, retry_with_backoff
from wafaudit.services.azure_client import AzureClientManager, parse_resource_group
from wafaudit.services.graph_client import DirectoryClient

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)

# Resource Graph query listing the Azure VMs protected by Site Recovery
ASR_PROTECTED_ITEMS_QUERY = """
recoveryservicesresources
| where type =~ 'microsoft.recoveryservices/vaults/replicationfabrics/replicationprotectioncontainers/replicationprotecteditems'
| extend fabricObjectId = tolower(tostring(properties.providerSpecificDetails.fabricObjectId))
| where isnotempty(fabricObjectId)
| project fabricObjectId
"""


def _build_models(
    items: Iterable[Any], builder: Callable[[Any], M], kind: str
) -> list[M]:
    """Convert SDK objects to resource models, skipping invalid ones."""
    models: list[M] = []
    for item in items:
        try:
            models.append(builder(item))
        except (ValidationError, AttributeError, TypeError) as e:
            logger.warning(
                f"Skipping {kind} {getattr(item, 'id', None) or item!r}: invalid shape ({e})"
            )
    return models


def _require_subscription(scope: Scope) -> str:
    if not scope.subscription_id:
        raise ValueError(f"Subscription scope required, got {scope.key}")
    return scope.subscription_id


# =============================================================================
# SDK object mappers
# =============================================================================


def vm_from_sdk(vm: Any) -> VirtualMachine:
    availability_set = getattr(vm, "availability_set", None)
    return VirtualMachine(
        id=vm.id,
        name=vm.name,
        resource_group=parse_resource_group(vm.id),
        location=vm.location,
        zones=list(vm.zones or []),
        availability_set_id=getattr(availability_set, "id", None),
    )


def scale_set_from_sdk(vmss: Any) -> ScaleSet:
    policy = getattr(vmss, "automatic_repairs_policy", None)
    return ScaleSet(
        id=vmss.id,
        name=vmss.name,
        resource_group=parse_resource_group(vmss.id),
        location=vmss.location,
        zones=list(vmss.zones or []),
        automatic_repairs_enabled=getattr(policy, "enabled", None),
    )


def _backend_pool_from_sdk(pool: Any) -> BackendPool:
    ip_configurations = list(getattr(pool, "backend_ip_configurations", None) or [])
    # IP-based backends have an address but no NIC ip configuration
    ip_addresses = [
        address
        for address in (getattr(pool, "load_balancer_backend_addresses", None) or [])
        if getattr(address, "ip_address", None)
        and not getattr(address, "network_interface_ip_configuration", None)
    ]
    return BackendPool(
        name=pool.name,
        ip_configuration_count=len(ip_configurations) + len(ip_addresses),
    )


def load_balancer_from_sdk(lb: Any) -> LoadBalancer:
    sku = getattr(lb, "sku", None)
    return LoadBalancer(
        id=lb.id,
        name=lb.name,
        resource_group=parse_resource_group(lb.id),
        location=lb.location,
        sku=getattr(sku, "name", None),
        backend_pools=[_backend_pool_from_sdk(p) for p in (lb.backend_address_pools or [])],
    )


def sql_database_from_sdk(db: Any, server_name: str) -> SqlDatabase:
    sku = getattr(db, "sku", None)
    return SqlDatabase(
        id=db.id,
        name=db.name,
        resource_group=parse_resource_group(db.id),
        location=db.location,
        server_name=server_name,
        zone_redundant=getattr(db, "zone_redundant", None),
        sku=getattr(sku, "name", None),
    )


def management_group_from_sdk(group: Any) -> ManagementGroup:
    return ManagementGroup(
        id=group.id,
        name=group.name,
        display_name=group.display_name or group.name,
    )


# =============================================================================
# Subscription-level collectors
# =============================================================================


class ComputeCollector(BaseCollector):
    """Virtual machines and scale sets in a subscription."""

    level = ScopeLevel.SUBSCRIPTION

    def __init__(self, client_manager: AzureClientManager):
        self._client_manager = client_manager

    def _fetchers(self) -> dict[str, Fetcher]:
        return {
            "virtual_machines": self.fetch_virtual_machines,
            "scale_sets": self.fetch_scale_sets,
        }

    @retry_with_backoff(ARM_FETCH_POLICY)
    async def fetch_virtual_machines(self, scope: Scope) -> list[VirtualMachine]:
        client = self._client_manager.get_compute_client(_require_subscription(scope))
        items = await asyncio.to_thread(lambda: list(client.virtual_machines.list_all()))
        return _build_models(items, vm_from_sdk, "virtual machine")

    @retry_with_backoff(ARM_FETCH_POLICY)
    async def fetch_scale_sets(self, scope: Scope) -> list[ScaleSet]:
        client = self._client_manager.get_compute_client(_require_subscription(scope))
        items = await asyncio.to_thread(
            lambda: list(client.virtual_machine_scale_sets.list_all())
        )
        return _build_models(items, scale_set_from_sdk, "scale set")


class NetworkCollector(BaseCollector):
    """Load balancers in a subscription."""

    level = ScopeLevel.SUBSCRIPTION

    def __init__(self, client_manager: AzureClientManager):
        self._client_manager = client_manager

    def _fetchers(self) -> dict[str, Fetcher]:
        return {"load_balancers": self.fetch_load_balancers}

    @retry_with_backoff(ARM_FETCH_POLICY)
    async def fetch_load_balancers(self, scope: Scope) -> list[LoadBalancer]:
        client = self._client_manager.get_network_client(_require_subscription(scope))
        items = await asyncio.to_thread(lambda: list(client.load_balancers.list_all()))
        return _build_models(items, load_balancer_from_sdk, "load balancer")


class DatabaseCollector(BaseCollector):
    """Azure SQL databases, with replication links resolved on demand."""

    level = ScopeLevel.SUBSCRIPTION

    def __init__(self, client_manager: AzureClientManager):
        self._client_manager = client_manager

    def _fetchers(self) -> dict[str, Fetcher]:
        return {"sql_databases": self.fetch_sql_databases}

    def _resolvers(self) -> dict[str, Resolver]:
        return {"sql_replication_links": self.resolve_replication_links}

    @retry_with_backoff(ARM_FETCH_POLICY)
    async def fetch_sql_databases(self, scope: Scope) -> list[SqlDatabase]:
        client = self._client_manager.get_sql_client(_require_subscription(scope))

        def _list() -> list[SqlDatabase]:
            databases: list[SqlDatabase] = []
            for server in client.servers.list():
                resource_group = parse_resource_group(server.id)
                for db in client.databases.list_by_server(resource_group, server.name):
                    # The master database cannot be geo-replicated
                    if db.name.lower() == "master":
                        continue
                    databases.extend(
                        _build_models(
                            [db],
                            lambda item, name=server.name: sql_database_from_sdk(item, name),
                            "SQL database",
                        )
                    )
            return databases

        return await asyncio.to_thread(_list)

    async def resolve_replication_links(
        self, scope: Scope, database: SqlDatabase
    ) -> list[dict[str, Any]]:
        """Replication links of one database."""
        client = self._client_manager.get_sql_client(_require_subscription(scope))

        def _list() -> list[dict[str, Any]]:
            links = client.replication_links.list_by_database(
                database.resource_group, database.server_name, database.name
            )
            return [
                {
                    "partner_server": getattr(link, "partner_server", None),
                    "partner_database": getattr(link, "partner_database", None),
                    "partner_location": getattr(link, "partner_location", None),
                    "role": str(getattr(link, "role", None)),
                }
                for link in links
            ]

        return await asyncio.to_thread(_list)


class SiteRecoveryCollector(BaseCollector):
    """Virtual machines and the VM IDs protected by Azure Site Recovery."""

    level = ScopeLevel.SUBSCRIPTION

    def __init__(self, client_manager: AzureClientManager):
        self._client_manager = client_manager
        self._compute = ComputeCollector(client_manager)

    def _fetchers(self) -> dict[str, Fetcher]:
        return {
            "virtual_machines": self._compute.fetch_virtual_machines,
            "asr_protected_ids": self.fetch_protected_vm_ids,
        }

    @retry_with_backoff(RESOURCE_GRAPH_POLICY)
    async def fetch_protected_vm_ids(self, scope: Scope) -> list[str]:
        rows = await self._client_manager.query_resource_graph(
            ASR_PROTECTED_ITEMS_QUERY, [_require_subscription(scope)]
        )
        return sorted({row["fabricObjectId"] for row in rows if row.get("fabricObjectId")})


# =============================================================================
# Tenant-level collectors
# =============================================================================


class IdentityCollector(BaseCollector):
    """Authentication-method policy and secure score from the directory."""

    level = ScopeLevel.TENANT

    def __init__(self, directory_client: DirectoryClient):
        self._directory = directory_client

    def _fetchers(self) -> dict[str, Fetcher]:
        return {
            "authentication_methods": self.fetch_authentication_methods,
            "secure_scores": self.fetch_secure_scores,
        }

    async def fetch_authentication_methods(self, scope: Scope) -> list[AuthenticationMethodState]:
        return await self._directory.list_authentication_methods()

    async def fetch_secure_scores(self, scope: Scope) -> list[SecureScore]:
        return [await self._directory.get_posture_score()]


class GovernanceCollector(BaseCollector):
    """Management groups visible in the tenant."""

    level = ScopeLevel.TENANT

    def __init__(self, client_manager: AzureClientManager):
        self._client_manager = client_manager

    def _fetchers(self) -> dict[str, Fetcher]:
        return {"management_groups": self.fetch_management_groups}

    @retry_with_backoff(ARM_FETCH_POLICY)
    async def fetch_management_groups(self, scope: Scope) -> list[ManagementGroup]:
        client = self._client_manager.get_management_groups_client()
        items = await asyncio.to_thread(lambda: list(client.management_groups.list()))
        return _build_models(items, management_group_from_sdk, "management group")
