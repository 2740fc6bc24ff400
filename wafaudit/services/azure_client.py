"""Azure SDK client wrapper for the audit.

Supports two credential modes:
1. Service principal: used when settings.azure_tenant_id, azure_client_id and
   azure_client_secret are all configured
2. Ambient session: DefaultAzureCredential (Azure CLI login, managed
   identity, environment variables)

Every client is built from the single credential resolved at construction
and the subscription passed in explicitly; nothing depends on an ambient
"active subscription".
"""

import asyncio
import logging
from typing import Any

from azure.core.exceptions import ClientAuthenticationError
from azure.identity import ClientSecretCredential, DefaultAzureCredential
from azure.mgmt.compute import ComputeManagementClient
from azure.mgmt.managementgroups import ManagementGroupsAPI
from azure.mgmt.network import NetworkManagementClient
from azure.mgmt.resource.subscriptions import SubscriptionClient
from azure.mgmt.resourcegraph import ResourceGraphClient
from azure.mgmt.resourcegraph.models import QueryRequest, QueryRequestOptions
from azure.mgmt.sql import SqlManagementClient

from wafaudit.core.config import Settings, get_settings

logger = logging.getLogger(__name__)


class AzureClientError(Exception):
    """Raised when the Azure session or a client cannot be used."""


def parse_resource_group(resource_id: str | None) -> str | None:
    """Extract the resource group from an ARM resource ID.

    Format: /subscriptions/{sub}/resourceGroups/{rg}/providers/{provider}/{type}/{name}
    """
    if not resource_id:
        return None
    id_parts = resource_id.split("/")
    for i, part in enumerate(id_parts):
        if part.lower() == "resourcegroups" and i + 1 < len(id_parts):
            return id_parts[i + 1]
    return None


class AzureClientManager:
    """Builds Azure management clients from one resolved credential."""

    def __init__(self, settings: Settings | None = None) -> None:
        self._settings = settings or get_settings()
        self._credential: Any = None
        self._subscription_client: SubscriptionClient | None = None

    @property
    def settings(self) -> Settings:
        return self._settings

    @property
    def uses_service_principal(self) -> bool:
        return self._settings.has_service_principal

    def get_credential(self) -> Any:
        """Get or create the credential for this run."""
        if self._credential is None:
            if self.uses_service_principal:
                logger.debug(
                    f"Using service principal {str(self._settings.azure_client_id)[:8]}... "
                    f"for tenant {self._settings.azure_tenant_id}"
                )
                self._credential = ClientSecretCredential(
                    tenant_id=str(self._settings.azure_tenant_id),
                    client_id=str(self._settings.azure_client_id),
                    client_secret=str(self._settings.azure_client_secret),
                )
            else:
                logger.debug("Using DefaultAzureCredential for ambient session")
                self._credential = DefaultAzureCredential()
        return self._credential

    async def check_session(self) -> None:
        """Verify an authenticated session exists by acquiring an ARM token.

        Raises:
            AzureClientError: If no token can be acquired
        """
        credential = self.get_credential()
        try:
            await asyncio.to_thread(credential.get_token, self._settings.arm_scope)
        except ClientAuthenticationError as e:
            raise AzureClientError(f"Authentication failed: {e.message}") from e
        except Exception as e:
            raise AzureClientError(f"Could not acquire an Azure token: {e}") from e

    def get_subscription_client(self) -> SubscriptionClient:
        if self._subscription_client is None:
            self._subscription_client = SubscriptionClient(self.get_credential())
        return self._subscription_client

    def get_compute_client(self, subscription_id: str) -> ComputeManagementClient:
        return ComputeManagementClient(self.get_credential(), subscription_id)

    def get_network_client(self, subscription_id: str) -> NetworkManagementClient:
        return NetworkManagementClient(self.get_credential(), subscription_id)

    def get_sql_client(self, subscription_id: str) -> SqlManagementClient:
        return SqlManagementClient(self.get_credential(), subscription_id)

    def get_resource_graph_client(self) -> ResourceGraphClient:
        return ResourceGraphClient(self.get_credential())

    def get_management_groups_client(self) -> ManagementGroupsAPI:
        return ManagementGroupsAPI(self.get_credential())

    async def list_tenants(self) -> list[str]:
        """List tenant IDs visible to the credential."""

        def _list() -> list[str]:
            client = self.get_subscription_client()
            return [t.tenant_id for t in client.tenants.list() if t.tenant_id]

        return await asyncio.to_thread(_list)

    async def list_subscriptions(self) -> list[dict[str, str]]:
        """List all subscriptions visible to the credential."""

        def _list() -> list[dict[str, str]]:
            client = self.get_subscription_client()
            subscriptions = []
            for sub in client.subscriptions.list():
                state = sub.state
                subscriptions.append({
                    "subscription_id": sub.subscription_id,
                    "display_name": sub.display_name,
                    "state": getattr(state, "value", state) or "Unknown",
                    "tenant_id": getattr(sub, "tenant_id", None),
                })
            return subscriptions

        return await asyncio.to_thread(_list)

    async def query_resource_graph(
        self, query: str, subscription_ids: list[str]
    ) -> list[dict[str, Any]]:
        """Run an Azure Resource Graph query, following skip tokens."""

        def _query() -> list[dict[str, Any]]:
            client = self.get_resource_graph_client()
            rows: list[dict[str, Any]] = []
            skip_token = None
            while True:
                request = QueryRequest(
                    subscriptions=subscription_ids,
                    query=query,
                    options=QueryRequestOptions(
                        result_format="objectArray", skip_token=skip_token
                    ),
                )
                response = client.resources(request)
                rows.extend(response.data or [])
                skip_token = response.skip_token
                if not skip_token:
                    return rows

        return await asyncio.to_thread(_query)
