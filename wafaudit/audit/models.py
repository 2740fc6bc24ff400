"""Pydantic models for audit results, scopes and collected resources."""

import json
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

# Expected/actual results are booleans, strings, numbers or structured descriptions
ResultValue = bool | int | float | str | dict[str, Any] | list[Any] | None


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ResultStatus(str, Enum):
    """Outcome of a single rule evaluation."""

    PASS = "Pass"
    FAIL = "Fail"


class Category(str, Enum):
    """Audit categories, each with its own collector and rule set."""

    VIRTUAL_MACHINES = "virtual_machines"
    LOAD_BALANCERS = "load_balancers"
    DATABASES = "databases"
    SITE_RECOVERY = "site_recovery"
    IDENTITY = "identity"
    GOVERNANCE = "governance"


class ScopeLevel(str, Enum):
    """Evaluation boundary a rule or collector is declared for."""

    TENANT = "tenant"
    SUBSCRIPTION = "subscription"


class Severity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class WafPillar(str, Enum):
    """Well-Architected Framework pillar a rule maps to."""

    RELIABILITY = "Reliability"
    SECURITY = "Security"
    OPERATIONAL_EXCELLENCE = "Operational Excellence"
    COST_OPTIMIZATION = "Cost Optimization"
    PERFORMANCE_EFFICIENCY = "Performance Efficiency"


class ScopeStatus(str, Enum):
    """How a scope's unit of work ended."""

    COMPLETED = "completed"
    FAILED = "failed"
    TIMED_OUT = "timed_out"


@dataclass(frozen=True)
class Scope:
    """A subscription or the tenant itself.

    Passed explicitly to collectors and rules; there is no ambient
    "current subscription" anywhere in the audit.
    """

    level: ScopeLevel
    tenant_id: str
    subscription_id: str | None = None
    display_name: str | None = None

    @classmethod
    def for_tenant(cls, tenant_id: str, display_name: str | None = None) -> "Scope":
        return cls(
            level=ScopeLevel.TENANT,
            tenant_id=tenant_id,
            display_name=display_name or tenant_id,
        )

    @classmethod
    def for_subscription(
        cls, tenant_id: str, subscription_id: str, display_name: str | None = None
    ) -> "Scope":
        return cls(
            level=ScopeLevel.SUBSCRIPTION,
            tenant_id=tenant_id,
            subscription_id=subscription_id,
            display_name=display_name or subscription_id,
        )

    @property
    def is_tenant(self) -> bool:
        return self.level == ScopeLevel.TENANT

    @property
    def key(self) -> str:
        """Short identifier used in log lines."""
        if self.subscription_id:
            return f"subscription:{self.subscription_id}"
        return f"tenant:{self.tenant_id}"


class TestResult(BaseModel):
    """Immutable record of one rule's verdict on one resource."""

    __test__ = False  # not a pytest test class

    resource_id: str = Field(..., description="Fully qualified resource identifier")
    resource_name: str = Field(..., description="Display name of the resource")
    resource_group_name: str | None = Field(
        None, description="Resource group, None for tenant-scope resources"
    )
    subscription_id: str | None = Field(
        None, description="Subscription, None for tenant-scope resources"
    )
    category: Category = Field(..., description="Category this rule belongs to")
    sub_category: str = Field(..., description="Finer grouping inside the category")
    test_name: str = Field(..., description="Unique name of the rule")
    test_description: str = Field(..., description="What the rule verifies")
    expected_result: ResultValue = Field(..., description="Value a compliant resource shows")
    actual_result: ResultValue = Field(..., description="Value observed on the resource")
    raw_result: str | None = Field(
        None, description="Serialized diagnostic payload for the audit trail"
    )
    result_status: ResultStatus = Field(..., description="Pass or Fail")
    timestamp: datetime = Field(
        default_factory=utcnow, description="When the result was created"
    )

    model_config = {"frozen": True}

    def is_pass(self) -> bool:
        return self.result_status == ResultStatus.PASS

    def is_fail(self) -> bool:
        return self.result_status == ResultStatus.FAIL

    def identity_key(self) -> tuple:
        """Everything except the timestamp, for order-insensitive comparisons."""
        data = self.model_dump(mode="json", exclude={"timestamp"})
        return tuple(
            (name, json.dumps(value, sort_keys=True)) for name, value in sorted(data.items())
        )


# =============================================================================
# Resource variants built at the collector boundary
# =============================================================================


class AzureResource(BaseModel):
    """Fields shared by every ARM resource a rule inspects."""

    id: str
    name: str
    resource_group: str | None = None
    location: str | None = None

    model_config = {"frozen": True}


class VirtualMachine(AzureResource):
    zones: list[str] = Field(default_factory=list)
    availability_set_id: str | None = None


class ScaleSet(AzureResource):
    zones: list[str] = Field(default_factory=list)
    automatic_repairs_enabled: bool | None = None


class BackendPool(BaseModel):
    name: str
    ip_configuration_count: int = 0

    model_config = {"frozen": True}


class LoadBalancer(AzureResource):
    sku: str | None = None
    backend_pools: list[BackendPool] = Field(default_factory=list)

    @property
    def backend_instance_count(self) -> int:
        return sum(pool.ip_configuration_count for pool in self.backend_pools)


class SqlDatabase(AzureResource):
    server_name: str
    zone_redundant: bool | None = None
    sku: str | None = None


class ManagementGroup(BaseModel):
    id: str
    name: str
    display_name: str

    model_config = {"frozen": True}


class AuthenticationMethodState(BaseModel):
    """State of one method in the tenant authentication-method policy."""

    method: str
    enabled: bool

    model_config = {"frozen": True}


class SecureScore(BaseModel):
    current: float
    max: float

    model_config = {"frozen": True}

    @property
    def percentage(self) -> float:
        if self.max <= 0:
            return 0.0
        return self.current * 100 / self.max


# =============================================================================
# Run bookkeeping
# =============================================================================


class ScopeOutcome(BaseModel):
    """How one category's unit of work ended for one scope.

    A failed or timed out scope is reported here so that "no data" is never
    mistaken for "fully compliant".
    """

    category: Category
    scope_level: ScopeLevel
    tenant_id: str
    subscription_id: str | None = None
    display_name: str | None = None
    status: ScopeStatus
    result_count: int = 0
    error: str | None = None
    fetch_failures: dict[str, str] = Field(default_factory=dict)

    @classmethod
    def for_scope(cls, category: Category, scope: Scope, **kwargs: Any) -> "ScopeOutcome":
        return cls(
            category=category,
            scope_level=scope.level,
            tenant_id=scope.tenant_id,
            subscription_id=scope.subscription_id,
            display_name=scope.display_name,
            **kwargs,
        )

    @property
    def is_failed(self) -> bool:
        return self.status != ScopeStatus.COMPLETED


class AuditReport(BaseModel):
    """Complete result of one audit run."""

    id: str = Field(..., description="Unique identifier for this run")
    started_at: datetime = Field(default_factory=utcnow)
    completed_at: datetime | None = None
    tenant_id: str | None = None
    categories_requested: list[Category] = Field(default_factory=list)
    parallel: bool = True
    concurrency: int = 5
    results: list[TestResult] = Field(default_factory=list)
    scope_outcomes: list[ScopeOutcome] = Field(default_factory=list)
    aborted_reason: str | None = Field(
        None, description="Set when the run could not start at all"
    )

    @property
    def passed_count(self) -> int:
        return sum(1 for r in self.results if r.result_status == ResultStatus.PASS)

    @property
    def failed_count(self) -> int:
        return sum(1 for r in self.results if r.result_status == ResultStatus.FAIL)

    @property
    def is_aborted(self) -> bool:
        return self.aborted_reason is not None

    @property
    def is_success(self) -> bool:
        """True when nothing failed and every scope produced data."""
        return (
            not self.is_aborted
            and self.failed_count == 0
            and not self.get_failed_scopes()
        )

    def get_results_by_category(self, category: Category) -> list[TestResult]:
        return [r for r in self.results if r.category == category]

    def get_failed_results(self) -> list[TestResult]:
        return [r for r in self.results if r.result_status == ResultStatus.FAIL]

    def get_failed_scopes(self) -> list[ScopeOutcome]:
        return [o for o in self.scope_outcomes if o.is_failed]

    def get_partial_scopes(self) -> list[ScopeOutcome]:
        """Completed scopes where some collections could not be fetched."""
        return [o for o in self.scope_outcomes if not o.is_failed and o.fetch_failures]

    def get_summary(self) -> dict[str, Any]:
        """Get a summary of the report."""
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "categories": [c.value for c in self.categories_requested],
            "mode": "parallel" if self.parallel else "sequential",
            "passed": self.passed_count,
            "failed": self.failed_count,
            "total": len(self.results),
            "failed_scopes": len(self.get_failed_scopes()),
            "partial_scopes": len(self.get_partial_scopes()),
            "is_success": self.is_success,
            "aborted_reason": self.aborted_reason,
        }
