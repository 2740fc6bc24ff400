"""Azure Site Recovery protection rules."""

from wafaudit.audit.base import BaseRule, ResourceSet
from wafaudit.audit.models import Category, Severity, TestResult, VirtualMachine, WafPillar


class VmAsrProtectionRule(BaseRule):
    def __init__(self):
        super().__init__(
            test_name="vm_asr_protection",
            category=Category.SITE_RECOVERY,
            sub_category="Disaster Recovery",
            description="Virtual machine is replicated by Azure Site Recovery",
            expected_result=True,
            requires=["virtual_machines", "asr_protected_ids"],
            severity=Severity.HIGH,
            waf_pillar=WafPillar.RELIABILITY,
        )

    async def _check_resource(self, resource: VirtualMachine, resources: ResourceSet) -> TestResult:
        protected_ids = {vm_id.lower() for vm_id in resources.get("asr_protected_ids")}
        protected = resource.id.lower() in protected_ids
        return self._result(
            scope=resources.scope,
            resource_id=resource.id,
            resource_name=resource.name,
            resource_group_name=resource.resource_group,
            actual_result=protected,
            passed=protected is True,
        )
