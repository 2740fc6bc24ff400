"""Virtual machine and scale set availability rules."""

from wafaudit.audit.base import BaseRule, ResourceSet
from wafaudit.audit.models import (
    Category,
    ScaleSet,
    Severity,
    TestResult,
    VirtualMachine,
    WafPillar,
)


class VmAvailabilityZonesRule(BaseRule):
    """VMs should be pinned to an availability zone."""

    def __init__(self):
        super().__init__(
            test_name="vm_availability_zones",
            category=Category.VIRTUAL_MACHINES,
            sub_category="Availability",
            description="Virtual machine is deployed to at least one availability zone",
            expected_result=True,
            requires=["virtual_machines"],
            severity=Severity.HIGH,
            waf_pillar=WafPillar.RELIABILITY,
        )

    async def _check_resource(self, resource: VirtualMachine, resources: ResourceSet) -> TestResult:
        zoned = len(resource.zones) > 0
        return self._result(
            scope=resources.scope,
            resource_id=resource.id,
            resource_name=resource.name,
            resource_group_name=resource.resource_group,
            actual_result=zoned,
            passed=zoned is True,
            raw={"zones": resource.zones},
        )


class VmAvailabilitySetOrZoneRule(BaseRule):
    """VMs need some form of fault isolation: a zone or an availability set."""

    def __init__(self):
        super().__init__(
            test_name="vm_availability_set_or_zone",
            category=Category.VIRTUAL_MACHINES,
            sub_category="Availability",
            description="Virtual machine is in an availability zone or an availability set",
            expected_result=True,
            requires=["virtual_machines"],
            severity=Severity.MEDIUM,
            waf_pillar=WafPillar.RELIABILITY,
        )

    async def _check_resource(self, resource: VirtualMachine, resources: ResourceSet) -> TestResult:
        isolated = bool(resource.zones) or bool(resource.availability_set_id)
        return self._result(
            scope=resources.scope,
            resource_id=resource.id,
            resource_name=resource.name,
            resource_group_name=resource.resource_group,
            actual_result=isolated,
            passed=isolated is True,
            raw={
                "zones": resource.zones,
                "availability_set_id": resource.availability_set_id,
            },
        )


class ScaleSetAutomaticRepairsRule(BaseRule):
    def __init__(self):
        super().__init__(
            test_name="vmss_automatic_repairs",
            category=Category.VIRTUAL_MACHINES,
            sub_category="Scale Sets",
            description="Virtual machine scale set has the automatic repairs policy enabled",
            expected_result=True,
            requires=["scale_sets"],
            severity=Severity.MEDIUM,
            waf_pillar=WafPillar.RELIABILITY,
        )

    async def _check_resource(self, resource: ScaleSet, resources: ResourceSet) -> TestResult:
        enabled = resource.automatic_repairs_enabled is True
        return self._result(
            scope=resources.scope,
            resource_id=resource.id,
            resource_name=resource.name,
            resource_group_name=resource.resource_group,
            actual_result=enabled,
            passed=enabled,
            raw={"automatic_repairs_enabled": resource.automatic_repairs_enabled},
        )


class ScaleSetZoneRedundancyRule(BaseRule):
    MIN_ZONES = 2

    def __init__(self):
        super().__init__(
            test_name="vmss_zone_redundancy",
            category=Category.VIRTUAL_MACHINES,
            sub_category="Scale Sets",
            description=(
                f"Virtual machine scale set spans at least {self.MIN_ZONES} "
                f"availability zones (>= {self.MIN_ZONES})"
            ),
            expected_result=f">= {self.MIN_ZONES} zones",
            requires=["scale_sets"],
            severity=Severity.HIGH,
            waf_pillar=WafPillar.RELIABILITY,
        )

    async def _check_resource(self, resource: ScaleSet, resources: ResourceSet) -> TestResult:
        zone_count = len(resource.zones)
        return self._result(
            scope=resources.scope,
            resource_id=resource.id,
            resource_name=resource.name,
            resource_group_name=resource.resource_group,
            actual_result=f"{zone_count} zones",
            passed=zone_count >= self.MIN_ZONES,
            raw={"zones": resource.zones},
        )
