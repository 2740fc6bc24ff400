"""Load balancer redundancy rules."""

from typing import Any

from wafaudit.audit.base import BaseRule, ResourceSet, RuleConfigurationError
from wafaudit.audit.models import Category, LoadBalancer, Severity, TestResult, WafPillar

DEFAULT_MIN_BACKEND_INSTANCES = 2


class LoadBalancerBackendRedundancyRule(BaseRule):
    """Backend pools together must hold enough instances to survive one loss."""

    def __init__(self, min_backend_instances: int = DEFAULT_MIN_BACKEND_INSTANCES):
        super().__init__(
            test_name="lb_backend_redundancy",
            category=Category.LOAD_BALANCERS,
            sub_category="Redundancy",
            description="",
            expected_result="",
            requires=["load_balancers"],
            severity=Severity.HIGH,
            waf_pillar=WafPillar.RELIABILITY,
        )
        self._set_threshold(min_backend_instances)

    def _set_threshold(self, minimum: int) -> None:
        self.min_backend_instances = minimum
        self.description = (
            f"Load balancer backend pools contain at least {minimum} "
            f"instances in total (>= {minimum})"
        )
        self.expected_result = f">= {minimum} backend instances"

    @property
    def uses_parameters(self) -> bool:
        return True

    def configure(self, parameters: dict[str, Any]) -> None:
        minimum = parameters.get("min_backend_instances", DEFAULT_MIN_BACKEND_INSTANCES)
        if not isinstance(minimum, int) or isinstance(minimum, bool) or minimum < 1:
            raise RuleConfigurationError(
                f"min_backend_instances must be a positive integer, got {minimum!r}"
            )
        self._set_threshold(minimum)

    async def _check_resource(self, resource: LoadBalancer, resources: ResourceSet) -> TestResult:
        count = resource.backend_instance_count
        return self._result(
            scope=resources.scope,
            resource_id=resource.id,
            resource_name=resource.name,
            resource_group_name=resource.resource_group,
            actual_result=f"{count} backend instances",
            passed=count >= self.min_backend_instances,
            raw={
                "backend_pools": [pool.model_dump() for pool in resource.backend_pools],
                "total": count,
            },
        )


class LoadBalancerStandardSkuRule(BaseRule):
    """Basic SKU load balancers carry no SLA and no zone redundancy."""

    ACCEPTED_SKUS = ("Standard", "Gateway")

    def __init__(self):
        super().__init__(
            test_name="lb_standard_sku",
            category=Category.LOAD_BALANCERS,
            sub_category="SKU",
            description="Load balancer uses the Standard or Gateway SKU",
            expected_result=list(self.ACCEPTED_SKUS),
            requires=["load_balancers"],
            severity=Severity.MEDIUM,
            waf_pillar=WafPillar.RELIABILITY,
        )

    async def _check_resource(self, resource: LoadBalancer, resources: ResourceSet) -> TestResult:
        return self._result(
            scope=resources.scope,
            resource_id=resource.id,
            resource_name=resource.name,
            resource_group_name=resource.resource_group,
            actual_result=resource.sku,
            passed=resource.sku in self.ACCEPTED_SKUS,
        )
