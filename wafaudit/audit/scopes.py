"""Resolution of the active tenant and its subscriptions."""

import logging

from wafaudit.audit.models import Scope
from wafaudit.services.azure_client import AzureClientError, AzureClientManager

logger = logging.getLogger(__name__)

ENABLED_STATE = "Enabled"

SESSION_HELP = (
    "Sign in with `az login`, or set AZURE_TENANT_ID, AZURE_CLIENT_ID and "
    "AZURE_CLIENT_SECRET for a service principal, then run the audit again."
)


class NoActiveSessionError(Exception):
    """Raised when no authenticated Azure session is available."""


class ScopeResolver:
    """Turns the authentication context into tenant and subscription scopes."""

    def __init__(
        self,
        client_manager: AzureClientManager,
        subscription_filter: list[str] | None = None,
    ):
        self._client_manager = client_manager
        self._subscription_filter = {s.lower() for s in subscription_filter or []}

    async def resolve_tenant(self) -> Scope:
        """Verify the session and return the tenant scope.

        Raises:
            NoActiveSessionError: If no authenticated session exists or no
                tenant is visible to it
        """
        try:
            await self._client_manager.check_session()
        except AzureClientError as e:
            raise NoActiveSessionError(f"No active Azure session: {e}. {SESSION_HELP}") from e

        tenant_id = self._client_manager.settings.azure_tenant_id
        if not tenant_id:
            try:
                tenants = await self._client_manager.list_tenants()
            except Exception as e:
                raise NoActiveSessionError(
                    f"Could not determine the active tenant: {e}. {SESSION_HELP}"
                ) from e
            if not tenants:
                raise NoActiveSessionError(f"No tenant visible to the current session. {SESSION_HELP}")
            tenant_id = tenants[0]
            if len(tenants) > 1:
                logger.info(
                    f"{len(tenants)} tenants visible, auditing {tenant_id}; "
                    f"set AZURE_TENANT_ID to choose another"
                )

        logger.info(f"Active tenant: {tenant_id}")
        return Scope.for_tenant(tenant_id)

    async def list_subscription_scopes(self, tenant: Scope) -> list[Scope]:
        """Enabled subscriptions of the active tenant, in enumeration order.

        Disabled, expired or foreign-tenant subscriptions are dropped
        without being reported.
        """
        scopes: list[Scope] = []
        for sub in await self._client_manager.list_subscriptions():
            sub_id = sub["subscription_id"]
            if sub["state"] != ENABLED_STATE:
                logger.debug(f"Skipping subscription {sub_id} (state: {sub['state']})")
                continue
            sub_tenant = sub.get("tenant_id")
            if sub_tenant and sub_tenant.lower() != tenant.tenant_id.lower():
                logger.debug(f"Skipping subscription {sub_id} from tenant {sub_tenant}")
                continue
            if self._subscription_filter and sub_id.lower() not in self._subscription_filter:
                logger.debug(f"Skipping subscription {sub_id} (not selected)")
                continue
            scopes.append(Scope.for_subscription(tenant.tenant_id, sub_id, sub["display_name"]))

        logger.info(f"Found {len(scopes)} enabled subscriptions in tenant {tenant.tenant_id}")
        return scopes
