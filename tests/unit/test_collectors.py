"""Tests for resource collectors and SDK object mapping."""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from wafaudit.audit.base import CollectorError
from wafaudit.audit.collectors import (
    ComputeCollector,
    DatabaseCollector,
    GovernanceCollector,
    IdentityCollector,
    NetworkCollector,
    SiteRecoveryCollector,
    load_balancer_from_sdk,
    scale_set_from_sdk,
    vm_from_sdk,
)
from wafaudit.audit.models import AuthenticationMethodState, ScopeLevel, SecureScore

VM_ID = "/subscriptions/sub-1/resourceGroups/RG-App/providers/Microsoft.Compute/virtualMachines/vm-1"
LB_ID = "/subscriptions/sub-1/resourceGroups/rg-net/providers/Microsoft.Network/loadBalancers/lb-1"


def _sdk_vm(vm_id=VM_ID, name="vm-1", zones=None, availability_set=None):
    return SimpleNamespace(
        id=vm_id,
        name=name,
        location="westeurope",
        zones=zones,
        availability_set=availability_set,
    )


class TestSdkMappers:
    """Tests for SDK object to resource model conversion."""

    def test_vm_from_sdk(self):
        vm = vm_from_sdk(_sdk_vm(zones=["1"], availability_set=SimpleNamespace(id="/avset")))
        assert vm.resource_group == "RG-App"
        assert vm.zones == ["1"]
        assert vm.availability_set_id == "/avset"

    def test_vm_without_zones(self):
        assert vm_from_sdk(_sdk_vm(zones=None)).zones == []

    def test_scale_set_from_sdk(self):
        vmss = scale_set_from_sdk(
            SimpleNamespace(
                id="/subscriptions/sub-1/resourceGroups/rg/providers/x/vmss-1",
                name="vmss-1",
                location="westeurope",
                zones=["1", "2"],
                automatic_repairs_policy=SimpleNamespace(enabled=True),
            )
        )
        assert vmss.automatic_repairs_enabled is True
        assert vmss.zones == ["1", "2"]

    def test_load_balancer_counts_nic_and_ip_backends(self):
        lb = load_balancer_from_sdk(
            SimpleNamespace(
                id=LB_ID,
                name="lb-1",
                location="westeurope",
                sku=SimpleNamespace(name="Standard"),
                backend_address_pools=[
                    SimpleNamespace(
                        name="nic-pool",
                        backend_ip_configurations=[SimpleNamespace(id="ipc-1")],
                        load_balancer_backend_addresses=[
                            # NIC-backed address is already counted above
                            SimpleNamespace(
                                ip_address="10.0.0.4",
                                network_interface_ip_configuration=SimpleNamespace(id="ipc-1"),
                            )
                        ],
                    ),
                    SimpleNamespace(
                        name="ip-pool",
                        backend_ip_configurations=None,
                        load_balancer_backend_addresses=[
                            SimpleNamespace(
                                ip_address="10.0.1.4", network_interface_ip_configuration=None
                            )
                        ],
                    ),
                ],
            )
        )
        assert lb.sku == "Standard"
        assert [p.ip_configuration_count for p in lb.backend_pools] == [1, 1]
        assert lb.backend_instance_count == 2


class TestComputeCollector:
    """Tests for the compute collector."""

    @pytest.mark.asyncio
    async def test_collects_vms_and_scale_sets(self, mock_client_manager, subscription_scope):
        compute = MagicMock()
        compute.virtual_machines.list_all.return_value = [_sdk_vm(zones=["1"])]
        compute.virtual_machine_scale_sets.list_all.return_value = []
        mock_client_manager.get_compute_client.return_value = compute

        resources = await ComputeCollector(mock_client_manager).collect(subscription_scope)

        mock_client_manager.get_compute_client.assert_called_with("sub-1")
        assert [vm.name for vm in resources.get("virtual_machines")] == ["vm-1"]
        assert resources.get("scale_sets") == []
        assert resources.failed == {}

    @pytest.mark.asyncio
    async def test_invalid_item_is_skipped(self, mock_client_manager, subscription_scope):
        compute = MagicMock()
        compute.virtual_machines.list_all.return_value = [
            _sdk_vm(),
            SimpleNamespace(id="/broken", name=None, location=None, zones=None),
        ]
        compute.virtual_machine_scale_sets.list_all.return_value = []
        mock_client_manager.get_compute_client.return_value = compute

        resources = await ComputeCollector(mock_client_manager).collect(subscription_scope)

        assert len(resources.get("virtual_machines")) == 1

    @pytest.mark.asyncio
    async def test_failed_fetch_is_isolated(self, mock_client_manager, subscription_scope):
        compute = MagicMock()
        compute.virtual_machines.list_all.side_effect = RuntimeError("vm listing failed")
        compute.virtual_machine_scale_sets.list_all.return_value = []
        mock_client_manager.get_compute_client.return_value = compute

        resources = await ComputeCollector(mock_client_manager).collect(subscription_scope)

        assert resources.is_failed("virtual_machines")
        assert resources.get("virtual_machines") == []
        assert not resources.is_failed("scale_sets")

    @pytest.mark.asyncio
    async def test_every_fetch_failing_raises(self, mock_client_manager, subscription_scope):
        mock_client_manager.get_compute_client.side_effect = RuntimeError("subscription not found")

        with pytest.raises(CollectorError):
            await ComputeCollector(mock_client_manager).collect(subscription_scope)


class TestNetworkCollector:
    @pytest.mark.asyncio
    async def test_collects_load_balancers(self, mock_client_manager, subscription_scope):
        network = MagicMock()
        network.load_balancers.list_all.return_value = [
            SimpleNamespace(
                id=LB_ID, name="lb-1", location="westeurope", sku=None, backend_address_pools=None
            )
        ]
        mock_client_manager.get_network_client.return_value = network

        resources = await NetworkCollector(mock_client_manager).collect(subscription_scope)

        [lb] = resources.get("load_balancers")
        assert lb.resource_group == "rg-net"
        assert lb.backend_instance_count == 0


class TestDatabaseCollector:
    """Tests for SQL database collection and replication lookups."""

    @pytest.fixture
    def sql_client(self, mock_client_manager):
        client = MagicMock()
        client.servers.list.return_value = [
            SimpleNamespace(
                id="/subscriptions/sub-1/resourceGroups/rg-data/providers/Microsoft.Sql/servers/sql-1",
                name="sql-1",
            )
        ]
        client.databases.list_by_server.return_value = [
            SimpleNamespace(
                id=f"/subscriptions/sub-1/resourceGroups/rg-data/providers/Microsoft.Sql/servers/sql-1/databases/{name}",
                name=name,
                location="westeurope",
                zone_redundant=False,
                sku=SimpleNamespace(name="GP_Gen5"),
            )
            for name in ("master", "orders")
        ]
        mock_client_manager.get_sql_client.return_value = client
        return client

    @pytest.mark.asyncio
    async def test_skips_master_database(self, mock_client_manager, sql_client, subscription_scope):
        resources = await DatabaseCollector(mock_client_manager).collect(subscription_scope)

        [db] = resources.get("sql_databases")
        assert db.name == "orders"
        assert db.server_name == "sql-1"
        assert db.sku == "GP_Gen5"
        sql_client.databases.list_by_server.assert_called_once_with("rg-data", "sql-1")

    @pytest.mark.asyncio
    async def test_replication_links_resolver(
        self, mock_client_manager, sql_client, subscription_scope
    ):
        sql_client.replication_links.list_by_database.return_value = [
            SimpleNamespace(
                partner_server="sql-2",
                partner_database="orders",
                partner_location="northeurope",
                role="Primary",
            )
        ]
        resources = await DatabaseCollector(mock_client_manager).collect(subscription_scope)
        [db] = resources.get("sql_databases")

        links = await resources.resolve("sql_replication_links", db)

        assert links[0]["partner_server"] == "sql-2"
        sql_client.replication_links.list_by_database.assert_called_once_with(
            "rg-data", "sql-1", "orders"
        )


class TestSiteRecoveryCollector:
    @pytest.mark.asyncio
    async def test_collects_vms_and_protected_ids(self, mock_client_manager, subscription_scope):
        compute = MagicMock()
        compute.virtual_machines.list_all.return_value = [_sdk_vm()]
        mock_client_manager.get_compute_client.return_value = compute
        mock_client_manager.query_resource_graph.return_value = [
            {"fabricObjectId": VM_ID.lower()},
            {"fabricObjectId": VM_ID.lower()},
            {"fabricObjectId": ""},
        ]

        resources = await SiteRecoveryCollector(mock_client_manager).collect(subscription_scope)

        assert resources.get("asr_protected_ids") == [VM_ID.lower()]
        assert len(resources.get("virtual_machines")) == 1
        query, subscriptions = mock_client_manager.query_resource_graph.call_args.args
        assert "replicationprotecteditems" in query
        assert subscriptions == ["sub-1"]


class TestTenantCollectors:
    """Tests for identity and governance collectors."""

    @pytest.mark.asyncio
    async def test_identity_collector(self, tenant_scope):
        directory = MagicMock()
        directory.list_authentication_methods = AsyncMock(
            return_value=[AuthenticationMethodState(method="Fido2", enabled=True)]
        )
        directory.get_posture_score = AsyncMock(return_value=SecureScore(current=50, max=100))

        collector = IdentityCollector(directory)
        resources = await collector.collect(tenant_scope)

        assert collector.level == ScopeLevel.TENANT
        assert resources.get("authentication_methods")[0].method == "Fido2"
        assert resources.get("secure_scores") == [SecureScore(current=50, max=100)]

    @pytest.mark.asyncio
    async def test_identity_collector_partial_failure(self, tenant_scope):
        directory = MagicMock()
        directory.list_authentication_methods = AsyncMock(return_value=[])
        directory.get_posture_score = AsyncMock(side_effect=RuntimeError("403 Forbidden"))

        resources = await IdentityCollector(directory).collect(tenant_scope)

        assert resources.is_failed("secure_scores")
        assert not resources.is_failed("authentication_methods")

    @pytest.mark.asyncio
    async def test_governance_collector(self, mock_client_manager, tenant_scope):
        client = MagicMock()
        client.management_groups.list.return_value = [
            SimpleNamespace(
                id="/providers/Microsoft.Management/managementGroups/mg-platform",
                name="mg-platform",
                display_name=None,
            )
        ]
        mock_client_manager.get_management_groups_client.return_value = client

        resources = await GovernanceCollector(mock_client_manager).collect(tenant_scope)

        [group] = resources.get("management_groups")
        assert group.display_name == "mg-platform"
