"""Core configuration settings.

Centralized configuration using Pydantic Settings for environment
variable management with sensible defaults.
"""

import logging
from functools import lru_cache
from typing import Annotated, Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # Application
    app_name: str = "WAF Audit"
    app_version: str = "0.1.0"
    log_level: str = "INFO"

    # =========================================================================
    # Azure Authentication
    # =========================================================================

    # Service principal; when unset the ambient DefaultAzureCredential is used
    azure_tenant_id: str | None = None
    azure_client_id: str | None = None
    azure_client_secret: str | None = None

    arm_scope: str = "https://management.azure.com/.default"
    graph_scope: str = "https://graph.microsoft.com/.default"
    graph_api_base: str = "https://graph.microsoft.com/v1.0"

    # Directory transport selection: sdk (msgraph-sdk), rest (httpx) or auto
    graph_transport: Literal["auto", "sdk", "rest"] = Field(
        default="auto", alias="GRAPH_TRANSPORT"
    )

    # =========================================================================
    # Audit Execution
    # =========================================================================

    audit_parallel: bool = Field(default=True, alias="AUDIT_PARALLEL")
    audit_concurrency: int = Field(default=5, alias="AUDIT_CONCURRENCY")
    scope_timeout_seconds: float = Field(default=600.0, alias="SCOPE_TIMEOUT_SECONDS")

    # Restrict the audit to these subscriptions (comma-separated accepted)
    subscription_ids: Annotated[list[str], NoDecode] = Field(default_factory=list, alias="SUBSCRIPTION_IDS")

    # JSON file with per-rule parameters
    rule_parameters_path: str | None = Field(default=None, alias="RULE_PARAMETERS_PATH")

    # =========================================================================
    # Validators
    # =========================================================================

    @field_validator("audit_concurrency")
    @classmethod
    def validate_concurrency(cls, v: int) -> int:
        """Keep the concurrency width bounded to avoid API throttling."""
        if v < 1 or v > 50:
            raise ValueError("AUDIT_CONCURRENCY must be between 1 and 50")
        return v

    @field_validator("scope_timeout_seconds")
    @classmethod
    def validate_timeout(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("SCOPE_TIMEOUT_SECONDS must be positive")
        return v

    @field_validator("subscription_ids", mode="before")
    @classmethod
    def parse_subscription_ids(cls, v: str | list[str] | None) -> list[str]:
        """Parse subscription IDs from string or list."""
        if v is None:
            return []
        if isinstance(v, str):
            return [sub.strip() for sub in v.split(",") if sub.strip()]
        return v

    @field_validator("log_level")
    @classmethod
    def normalize_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in logging.getLevelNamesMapping():
            logger.warning(f"Unknown log level '{v}', falling back to INFO")
            return "INFO"
        return level

    # =========================================================================
    # Properties
    # =========================================================================

    @property
    def has_service_principal(self) -> bool:
        """Check if a complete service principal is configured."""
        return all([
            self.azure_tenant_id,
            self.azure_client_id,
            self.azure_client_secret,
        ])


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
