"""Tenant-wide identity and security posture rules."""

from typing import Any

from wafaudit.audit.base import BaseRule, ResourceSet, RuleConfigurationError
from wafaudit.audit.models import (
    AuthenticationMethodState,
    Category,
    Scope,
    ScopeLevel,
    SecureScore,
    Severity,
    TestResult,
    WafPillar,
)

DEFAULT_REQUIRED_METHODS = ["MicrosoftAuthenticator", "Fido2"]
DEFAULT_MIN_SECURE_SCORE_PERCENT = 70.0

AUTH_METHOD_CONFIGURATION_PATH = "/policies/authenticationMethodsPolicy/authenticationMethodConfigurations"
SECURE_SCORE_PATH = "/security/secureScores"


def format_percentage(value: float) -> str:
    """Render a percentage without trailing zeros, e.g. 69.0 -> '69%'."""
    return f"{round(value, 2):g}%"


class AuthenticationMethodEnabledRule(BaseRule):
    """One result per required method of the authentication-method policy."""

    def __init__(self, methods: list[str] | None = None):
        super().__init__(
            test_name="auth_method_enabled",
            category=Category.IDENTITY,
            sub_category="Authentication Methods",
            description="Required authentication method is enabled in the tenant policy",
            expected_result=True,
            requires=["authentication_methods"],
            level=ScopeLevel.TENANT,
            severity=Severity.HIGH,
            waf_pillar=WafPillar.SECURITY,
        )
        self.methods = list(methods or DEFAULT_REQUIRED_METHODS)

    @property
    def uses_parameters(self) -> bool:
        return True

    def configure(self, parameters: dict[str, Any]) -> None:
        methods = parameters.get("methods", self.methods)
        if not isinstance(methods, list) or not all(isinstance(m, str) and m for m in methods):
            raise RuleConfigurationError(f"methods must be a list of method names, got {methods!r}")
        self.methods = methods

    def _resources(self, resources: ResourceSet) -> list[str]:
        return list(self.methods)

    def _resource_identity(self, resource: str, scope: Scope) -> tuple[str, str]:
        return f"{AUTH_METHOD_CONFIGURATION_PATH}/{resource}", resource

    async def _check_resource(self, resource: str, resources: ResourceSet) -> TestResult:
        states: list[AuthenticationMethodState] = resources.get("authentication_methods")
        state = next((s for s in states if s.method.lower() == resource.lower()), None)
        enabled = state is not None and state.enabled
        resource_id, resource_name = self._resource_identity(resource, resources.scope)
        return self._result(
            scope=resources.scope,
            resource_id=resource_id,
            resource_name=resource_name,
            actual_result=enabled,
            passed=enabled is True,
            raw={"method": resource, "present_in_policy": state is not None},
        )


class SecureScoreThresholdRule(BaseRule):
    """Secure score as a percentage of the maximum, compared inclusively."""

    def __init__(self, min_percent: float = DEFAULT_MIN_SECURE_SCORE_PERCENT):
        super().__init__(
            test_name="secure_score_threshold",
            category=Category.IDENTITY,
            sub_category="Security Posture",
            description="",
            expected_result="",
            requires=["secure_scores"],
            level=ScopeLevel.TENANT,
            severity=Severity.HIGH,
            waf_pillar=WafPillar.SECURITY,
        )
        self._set_threshold(min_percent)

    def _set_threshold(self, min_percent: float) -> None:
        self.min_percent = float(min_percent)
        threshold = format_percentage(self.min_percent)
        self.description = (
            f"Secure score is at least {threshold} of the maximum score (>= {threshold})"
        )
        self.expected_result = f">= {threshold}"

    @property
    def uses_parameters(self) -> bool:
        return True

    def configure(self, parameters: dict[str, Any]) -> None:
        value = parameters.get("min_secure_score_percent", DEFAULT_MIN_SECURE_SCORE_PERCENT)
        if isinstance(value, bool) or not isinstance(value, int | float) or not 0 <= value <= 100:
            raise RuleConfigurationError(
                f"min_secure_score_percent must be a number between 0 and 100, got {value!r}"
            )
        self._set_threshold(value)

    def _resource_identity(self, resource: SecureScore, scope: Scope) -> tuple[str, str]:
        return SECURE_SCORE_PATH, "Secure Score"

    async def _check_resource(self, resource: SecureScore, resources: ResourceSet) -> TestResult:
        # Compared at the precision it is displayed with
        percentage = round(resource.percentage, 2)
        return self._result(
            scope=resources.scope,
            resource_id=SECURE_SCORE_PATH,
            resource_name="Secure Score",
            actual_result=format_percentage(percentage),
            passed=percentage >= self.min_percent,
            raw=resource.model_dump() | {"percentage": percentage},
        )
