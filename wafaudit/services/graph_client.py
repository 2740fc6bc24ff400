"""Microsoft Graph directory client for identity posture rules.

Two interchangeable transports serve the same operations:

- SdkDirectoryTransport: msgraph-sdk GraphServiceClient, available when an
  app registration (service principal) is configured
- RestDirectoryTransport: raw authenticated REST calls with httpx, using a
  bearer token from the ambient credential

The transport is chosen once when the DirectoryClient is built; callers
never branch on which one is in use.
"""

import logging
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any

import httpx

from wafaudit.audit.models import AuthenticationMethodState, SecureScore
from wafaudit.core.config import Settings
from wafaudit.core.retry import GRAPH_API_POLICY, retry_with_backoff
from wafaudit.services.azure_client import AzureClientManager

logger = logging.getLogger(__name__)


class DirectoryClientError(Exception):
    """Raised when a directory operation returns unusable data."""


class DirectoryOperation(str, Enum):
    """Operations every directory transport supports."""

    AUTHENTICATION_METHODS = "authentication_methods"
    SECURE_SCORE = "secure_score"


def _state_enabled(state: Any) -> bool:
    value = getattr(state, "value", state)
    return str(value or "").lower() == "enabled"


def _latest_secure_score_request() -> Any:
    """Request configuration asking Graph for the newest secure score only."""
    from kiota_abstractions.base_request_configuration import RequestConfiguration
    from msgraph.generated.security.secure_scores.secure_scores_request_builder import (
        SecureScoresRequestBuilder,
    )

    query_parameters = SecureScoresRequestBuilder.SecureScoresRequestBuilderGetQueryParameters(
        top=1
    )
    return RequestConfiguration(query_parameters=query_parameters)


class DirectoryTransport(ABC):
    """One way of reaching the directory.

    `invoke` returns plain dictionaries:
    - authentication_methods: {"methods": [{"method": str, "enabled": bool}]}
    - secure_score: {"current": float, "max": float}
    """

    name: str = "abstract"

    @abstractmethod
    def has_capability(self) -> bool:
        """Whether this transport can be used in the current environment."""

    @abstractmethod
    async def invoke(self, operation: DirectoryOperation) -> dict[str, Any]:
        """Run one directory operation."""


class SdkDirectoryTransport(DirectoryTransport):
    """Directory access through the msgraph-sdk GraphServiceClient."""

    name = "sdk"

    def __init__(self, client_manager: AzureClientManager):
        self._client_manager = client_manager
        self._client: Any = None

    def has_capability(self) -> bool:
        return self._client_manager.uses_service_principal

    def _get_client(self) -> Any:
        if self._client is None:
            # Lazy import, the SDK is large and only needed on this path
            from msgraph import GraphServiceClient

            self._client = GraphServiceClient(
                credentials=self._client_manager.get_credential(),
                scopes=[self._client_manager.settings.graph_scope],
            )
        return self._client

    @retry_with_backoff(GRAPH_API_POLICY)
    async def invoke(self, operation: DirectoryOperation) -> dict[str, Any]:
        client = self._get_client()

        if operation == DirectoryOperation.AUTHENTICATION_METHODS:
            policy = await client.policies.authentication_methods_policy.get()
            configurations = getattr(policy, "authentication_method_configurations", None) or []
            return {
                "methods": [
                    {"method": config.id, "enabled": _state_enabled(config.state)}
                    for config in configurations
                    if config.id
                ]
            }

        if operation == DirectoryOperation.SECURE_SCORE:
            response = await client.security.secure_scores.get(
                request_configuration=_latest_secure_score_request()
            )
            scores = getattr(response, "value", None) or []
            if not scores:
                raise DirectoryClientError("No secure score returned by the directory")
            latest = scores[0]
            return {"current": latest.current_score, "max": latest.max_score}

        raise DirectoryClientError(f"Unsupported directory operation: {operation}")


class RestDirectoryTransport(DirectoryTransport):
    """Directory access through authenticated Graph REST calls."""

    name = "rest"

    def __init__(self, client_manager: AzureClientManager, timeout: float = 30.0):
        self._client_manager = client_manager
        self._settings: Settings = client_manager.settings
        self._timeout = timeout

    def has_capability(self) -> bool:
        return True

    def _get_token(self) -> str:
        credential = self._client_manager.get_credential()
        return credential.get_token(self._settings.graph_scope).token

    async def _request(
        self, endpoint: str, params: dict[str, Any] | None = None
    ) -> dict[str, Any]:
        """Make authenticated GET request to Graph API."""
        headers = {
            "Authorization": f"Bearer {self._get_token()}",
            "Content-Type": "application/json",
        }
        async with httpx.AsyncClient() as client:
            response = await client.get(
                f"{self._settings.graph_api_base}{endpoint}",
                headers=headers,
                params=params,
                timeout=self._timeout,
            )
            response.raise_for_status()
            return response.json()

    @retry_with_backoff(GRAPH_API_POLICY)
    async def invoke(self, operation: DirectoryOperation) -> dict[str, Any]:
        if operation == DirectoryOperation.AUTHENTICATION_METHODS:
            data = await self._request("/policies/authenticationMethodsPolicy")
            configurations = data.get("authenticationMethodConfigurations", [])
            return {
                "methods": [
                    {"method": config["id"], "enabled": _state_enabled(config.get("state"))}
                    for config in configurations
                    if config.get("id")
                ]
            }

        if operation == DirectoryOperation.SECURE_SCORE:
            data = await self._request("/security/secureScores", params={"$top": 1})
            scores = data.get("value", [])
            if not scores:
                raise DirectoryClientError("No secure score returned by the directory")
            latest = scores[0]
            return {"current": latest.get("currentScore"), "max": latest.get("maxScore")}

        raise DirectoryClientError(f"Unsupported directory operation: {operation}")


class DirectoryClient:
    """Tenant-wide directory queries behind one transport."""

    def __init__(self, transport: DirectoryTransport):
        self.transport = transport

    @classmethod
    def build(
        cls, client_manager: AzureClientManager, mode: str | None = None
    ) -> "DirectoryClient":
        """Select a transport once.

        Args:
            client_manager: Source of the credential
            mode: "sdk", "rest" or "auto" (settings.graph_transport when None)
        """
        mode = mode or client_manager.settings.graph_transport
        sdk = SdkDirectoryTransport(client_manager)
        rest = RestDirectoryTransport(client_manager)

        if mode == "sdk":
            transport: DirectoryTransport = sdk
        elif mode == "rest":
            transport = rest
        else:
            transport = sdk if sdk.has_capability() else rest

        logger.info(f"Directory client using {transport.name} transport")
        return cls(transport)

    async def list_authentication_methods(self) -> list[AuthenticationMethodState]:
        data = await self.transport.invoke(DirectoryOperation.AUTHENTICATION_METHODS)
        return [AuthenticationMethodState(**item) for item in data.get("methods", [])]

    async def is_method_enabled(self, method_name: str) -> bool:
        """Whether a method is enabled in the authentication-method policy."""
        for state in await self.list_authentication_methods():
            if state.method.lower() == method_name.lower():
                return state.enabled
        return False

    async def get_posture_score(self) -> SecureScore:
        data = await self.transport.invoke(DirectoryOperation.SECURE_SCORE)
        if data.get("current") is None or data.get("max") is None:
            raise DirectoryClientError(f"Incomplete secure score payload: {data}")
        return SecureScore(current=data["current"], max=data["max"])
