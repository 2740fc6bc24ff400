"""Tests for the Azure client manager."""

from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest
from azure.core.exceptions import ClientAuthenticationError

from wafaudit.services.azure_client import (
    AzureClientError,
    AzureClientManager,
    parse_resource_group,
)


class TestParseResourceGroup:
    def test_parses_resource_group(self):
        resource_id = (
            "/subscriptions/sub-1/resourceGroups/rg-app/providers/"
            "Microsoft.Compute/virtualMachines/vm-1"
        )
        assert parse_resource_group(resource_id) == "rg-app"

    def test_case_insensitive_segment(self):
        assert parse_resource_group("/subscriptions/s/resourcegroups/RG/providers/x") == "RG"

    def test_missing_resource_group(self):
        assert parse_resource_group("/providers/Microsoft.Management/managementGroups/mg") is None
        assert parse_resource_group(None) is None


class TestCredentialSelection:
    """Tests for service principal vs ambient credential."""

    def test_service_principal(self, sp_settings):
        with patch("wafaudit.services.azure_client.ClientSecretCredential") as credential_cls:
            manager = AzureClientManager(sp_settings)
            credential = manager.get_credential()

        assert manager.uses_service_principal
        assert credential is credential_cls.return_value
        credential_cls.assert_called_once_with(
            tenant_id=sp_settings.azure_tenant_id,
            client_id="client-id-123",
            client_secret="client-secret-value",
        )

    def test_ambient_session(self, test_settings):
        with patch("wafaudit.services.azure_client.DefaultAzureCredential") as credential_cls:
            manager = AzureClientManager(test_settings)
            first = manager.get_credential()
            second = manager.get_credential()

        assert not manager.uses_service_principal
        assert first is second
        credential_cls.assert_called_once_with()


class TestSessionAndListing:
    """Tests for session checks and subscription enumeration."""

    @pytest.fixture
    def manager(self, test_settings):
        manager = AzureClientManager(test_settings)
        manager._credential = MagicMock()
        return manager

    @pytest.mark.asyncio
    async def test_check_session_acquires_arm_token(self, manager):
        await manager.check_session()
        manager._credential.get_token.assert_called_once_with(
            "https://management.azure.com/.default"
        )

    @pytest.mark.asyncio
    async def test_check_session_failure(self, manager):
        manager._credential.get_token.side_effect = ClientAuthenticationError(message="no login")
        with pytest.raises(AzureClientError, match="Authentication failed"):
            await manager.check_session()

    @pytest.mark.asyncio
    async def test_list_subscriptions(self, manager):
        client = MagicMock()
        client.subscriptions.list.return_value = [
            SimpleNamespace(
                subscription_id="sub-1",
                display_name="Production",
                state=SimpleNamespace(value="Enabled"),
                tenant_id="tenant-1",
            ),
            SimpleNamespace(
                subscription_id="sub-2", display_name="Old", state="Disabled", tenant_id=None
            ),
        ]
        manager._subscription_client = client

        subscriptions = await manager.list_subscriptions()

        assert subscriptions == [
            {
                "subscription_id": "sub-1",
                "display_name": "Production",
                "state": "Enabled",
                "tenant_id": "tenant-1",
            },
            {
                "subscription_id": "sub-2",
                "display_name": "Old",
                "state": "Disabled",
                "tenant_id": None,
            },
        ]

    @pytest.mark.asyncio
    async def test_query_resource_graph_follows_skip_token(self, manager):
        client = MagicMock()
        client.resources.side_effect = [
            SimpleNamespace(data=[{"fabricObjectId": "a"}], skip_token="page-2"),
            SimpleNamespace(data=[{"fabricObjectId": "b"}], skip_token=None),
        ]
        with patch.object(manager, "get_resource_graph_client", return_value=client):
            rows = await manager.query_resource_graph("resources | limit 1", ["sub-1"])

        assert rows == [{"fabricObjectId": "a"}, {"fabricObjectId": "b"}]
        second_request = client.resources.call_args_list[1].args[0]
        assert second_request.options.skip_token == "page-2"
        assert second_request.subscriptions == ["sub-1"]
