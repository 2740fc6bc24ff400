"""Management group governance rules.

Both rules are driven by configurable regular expressions rather than
hard-coded names. Matching is case-insensitive and a single management
group may satisfy more than one structural role.
"""

import re
from typing import Any

from wafaudit.audit.base import BaseRule, ResourceSet, RuleConfigurationError
from wafaudit.audit.models import (
    Category,
    ManagementGroup,
    Scope,
    ScopeLevel,
    Severity,
    TestResult,
    WafPillar,
)

# Structural role -> regex alternatives matched against name and display name
DEFAULT_STRUCTURE_PATTERNS: dict[str, list[str]] = {
    "platform": [r"platform"],
    "landing_zones": [r"landing[\s_-]*zones?", r"\bcorp\b", r"\bonline\b"],
    "connectivity": [r"connectivity", r"connect"],
    "identity": [r"identity"],
    "management": [r"management", r"\bmgmt\b"],
}

DEFAULT_NAMING_PATTERN = r"^[a-z0-9][a-z0-9-]*$"

MANAGEMENT_GROUP_PATH = "/providers/Microsoft.Management/managementGroups"


def _compile(pattern: Any, context: str) -> re.Pattern:
    if not isinstance(pattern, str) or not pattern:
        raise RuleConfigurationError(f"{context}: pattern must be a non-empty string")
    try:
        return re.compile(pattern, re.IGNORECASE)
    except re.error as e:
        raise RuleConfigurationError(f"{context}: invalid pattern {pattern!r} ({e})") from e


def _is_root_group(group: ManagementGroup, tenant_id: str) -> bool:
    return group.name.lower() == tenant_id.lower()


class ManagementGroupStructureRule(BaseRule):
    """Every configured structural role is represented by a management group."""

    def __init__(self, patterns: dict[str, list[str]] | None = None):
        super().__init__(
            test_name="mg_structure",
            category=Category.GOVERNANCE,
            sub_category="Management Group Structure",
            description="Management group hierarchy contains a group for the structural role",
            expected_result=True,
            requires=["management_groups"],
            level=ScopeLevel.TENANT,
            severity=Severity.MEDIUM,
            waf_pillar=WafPillar.OPERATIONAL_EXCELLENCE,
        )
        self._set_patterns(patterns or DEFAULT_STRUCTURE_PATTERNS)

    def _set_patterns(self, patterns: Any) -> None:
        if not isinstance(patterns, dict) or not patterns:
            raise RuleConfigurationError("patterns must map each role to a list of regexes")
        compiled: dict[str, list[re.Pattern]] = {}
        for role, alternatives in patterns.items():
            if isinstance(alternatives, str):
                alternatives = [alternatives]
            if not isinstance(alternatives, list) or not alternatives:
                raise RuleConfigurationError(f"patterns.{role}: expected a list of regexes")
            compiled[role] = [_compile(p, f"patterns.{role}") for p in alternatives]
        self.patterns = compiled

    @property
    def uses_parameters(self) -> bool:
        return True

    def configure(self, parameters: dict[str, Any]) -> None:
        if "patterns" in parameters:
            self._set_patterns(parameters["patterns"])

    def _resources(self, resources: ResourceSet) -> list[str]:
        # No visible groups means no visibility, not a missing hierarchy
        if not resources.get("management_groups"):
            return []
        return list(self.patterns)

    def _resource_identity(self, resource: str, scope: Scope) -> tuple[str, str]:
        return f"{MANAGEMENT_GROUP_PATH}/{scope.tenant_id}#{resource}", resource

    def _matches(self, role: str, group: ManagementGroup) -> bool:
        return any(
            pattern.search(group.display_name) or pattern.search(group.name)
            for pattern in self.patterns[role]
        )

    async def _check_resource(self, resource: str, resources: ResourceSet) -> TestResult:
        groups: list[ManagementGroup] = [
            g
            for g in resources.get("management_groups")
            if not _is_root_group(g, resources.scope.tenant_id)
        ]
        matched = [g.display_name for g in groups if self._matches(resource, g)]
        found = len(matched) > 0
        resource_id, resource_name = self._resource_identity(resource, resources.scope)
        return self._result(
            scope=resources.scope,
            resource_id=resource_id,
            resource_name=resource_name,
            actual_result=found,
            passed=found is True,
            raw={
                "role": resource,
                "patterns": [p.pattern for p in self.patterns[resource]],
                "matched_groups": matched,
            },
        )


class ManagementGroupNamingRule(BaseRule):
    """Management group display names follow the naming convention."""

    def __init__(self, pattern: str = DEFAULT_NAMING_PATTERN):
        super().__init__(
            test_name="mg_naming_convention",
            category=Category.GOVERNANCE,
            sub_category="Naming Convention",
            description="",
            expected_result="",
            requires=["management_groups"],
            level=ScopeLevel.TENANT,
            severity=Severity.LOW,
            waf_pillar=WafPillar.OPERATIONAL_EXCELLENCE,
        )
        self._set_pattern(pattern)

    def _set_pattern(self, pattern: Any) -> None:
        self.pattern = _compile(pattern, "pattern")
        self.description = (
            f"Management group display name matches the naming convention {self.pattern.pattern}"
        )
        self.expected_result = self.pattern.pattern

    @property
    def uses_parameters(self) -> bool:
        return True

    def configure(self, parameters: dict[str, Any]) -> None:
        if "pattern" in parameters:
            self._set_pattern(parameters["pattern"])

    def _resources(self, resources: ResourceSet) -> list[ManagementGroup]:
        return [
            g
            for g in resources.get("management_groups")
            if not _is_root_group(g, resources.scope.tenant_id)
        ]

    async def _check_resource(self, resource: ManagementGroup, resources: ResourceSet) -> TestResult:
        compliant = self.pattern.search(resource.display_name) is not None
        return self._result(
            scope=resources.scope,
            resource_id=resource.id,
            resource_name=resource.display_name,
            actual_result=resource.display_name,
            passed=compliant,
        )
