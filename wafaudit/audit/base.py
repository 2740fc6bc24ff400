"""Abstract base classes for audit rules and collectors.

A collector fetches the resource collections a category needs, once per
scope. Rules are pure predicates over that output and never fetch the
collections themselves.
"""

import json
import logging
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable, Iterable
from typing import Any

from wafaudit.audit.models import (
    Category,
    ResultStatus,
    ResultValue,
    Scope,
    ScopeLevel,
    Severity,
    TestResult,
    WafPillar,
)

logger = logging.getLogger(__name__)

Fetcher = Callable[[Scope], Awaitable[list[Any]]]
Resolver = Callable[..., Awaitable[Any]]

# Common patterns that might carry secrets in SDK error messages
SENSITIVE_PATTERNS = [
    "password",
    "secret",
    "token",
    "key",
    "credential",
    "connectionstring",
]


class RuleConfigurationError(Exception):
    """Raised when a rule cannot be configured from its parameters."""


class CollectorError(Exception):
    """Raised when a collector cannot produce output for a scope at all."""


def sanitize_error(error: BaseException) -> dict[str, str]:
    """Reduce an exception to a type/message pair with secrets redacted."""
    error_msg = str(error)
    for pattern in SENSITIVE_PATTERNS:
        if pattern in error_msg.lower():
            error_msg = f"[Redacted {pattern} found in error message]"
            break
    return {"error_type": type(error).__name__, "message": error_msg}


class ResourceSet:
    """Output of one collector run for one scope.

    Holds named resource collections, the names of collections whose fetch
    failed, and named resolvers for secondary lookups of sub-resources not
    present in the collections.
    """

    def __init__(
        self,
        scope: Scope,
        collections: dict[str, list[Any]] | None = None,
        failed: dict[str, str] | None = None,
        resolvers: dict[str, Resolver] | None = None,
    ):
        self.scope = scope
        self.collections: dict[str, list[Any]] = collections or {}
        self.failed: dict[str, str] = failed or {}
        self._resolvers: dict[str, Resolver] = resolvers or {}

    def __repr__(self) -> str:
        sizes = {name: len(items) for name, items in self.collections.items()}
        return f"<ResourceSet({self.scope.key}, {sizes}, failed={list(self.failed)})>"

    def get(self, name: str) -> list[Any]:
        """Return a collection, empty when it was never fetched or failed."""
        return self.collections.get(name, [])

    def is_failed(self, name: str) -> bool:
        return name in self.failed

    async def resolve(self, name: str, *args: Any) -> Any:
        """Run a secondary lookup, treating absence or failure as None."""
        resolver = self._resolvers.get(name)
        if resolver is None:
            logger.debug(f"No resolver '{name}' registered for {self.scope.key}")
            return None
        try:
            return await resolver(self.scope, *args)
        except Exception as e:
            logger.debug(f"Resolver '{name}' failed for {self.scope.key}: {e}")
            return None


class BaseCollector(ABC):
    """Fetches the resource collections one category needs for one scope."""

    level: ScopeLevel = ScopeLevel.SUBSCRIPTION

    @abstractmethod
    def _fetchers(self) -> dict[str, Fetcher]:
        """Map collection name to the coroutine function that fetches it."""

    def _resolvers(self) -> dict[str, Resolver]:
        """Secondary lookups made available to rules. None by default."""
        return {}

    async def collect(self, scope: Scope) -> ResourceSet:
        """Fetch every collection for the scope.

        Each fetch is isolated: a failure is logged, recorded on the result
        and degrades to an empty collection without affecting the others.

        Raises:
            CollectorError: If every fetch failed, so the scope has no data
        """
        collections: dict[str, list[Any]] = {}
        failed: dict[str, str] = {}

        for name, fetch in self._fetchers().items():
            try:
                items = await fetch(scope)
                collections[name] = list(items)
                logger.debug(f"Fetched {len(collections[name])} {name} for {scope.key}")
            except Exception as e:
                logger.warning(f"Failed to fetch {name} for {scope.key}: {e}")
                collections[name] = []
                failed[name] = sanitize_error(e)["message"]

        if failed and len(failed) == len(collections):
            raise CollectorError(
                f"Every fetch failed for {scope.key}: "
                + "; ".join(f"{name}: {error}" for name, error in failed.items())
            )

        return ResourceSet(
            scope=scope,
            collections=collections,
            failed=failed,
            resolvers=self._resolvers(),
        )


class BaseRule(ABC):
    """Abstract base class for all audit rules.

    Subclasses declare their metadata in `__init__` and implement
    `_check_resource` for one resource. `evaluate` applies it to every
    resource the rule inspects, so one bad resource never hides its siblings.
    """

    def __init__(
        self,
        test_name: str,
        category: Category,
        sub_category: str,
        description: str,
        expected_result: ResultValue,
        requires: Iterable[str],
        level: ScopeLevel = ScopeLevel.SUBSCRIPTION,
        severity: Severity = Severity.MEDIUM,
        waf_pillar: WafPillar = WafPillar.RELIABILITY,
    ):
        """Initialize a rule.

        Args:
            test_name: Unique identifier for this rule
            category: Category this rule belongs to
            sub_category: Finer grouping shown in reports
            description: What the rule verifies, thresholds stated verbatim
            expected_result: Value a compliant resource shows
            requires: Names of the collections this rule reads
            level: Whether the rule runs per subscription or once per tenant
            severity: Impact of a failure
            waf_pillar: Well-Architected pillar the rule maps to
        """
        self.test_name = test_name
        self.category = category
        self.sub_category = sub_category
        self.description = description
        self.expected_result = expected_result
        self.requires = tuple(requires)
        self.level = level
        self.severity = severity
        self.waf_pillar = waf_pillar

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}({self.test_name}, {self.level.value})>"

    def configure(self, parameters: dict[str, Any]) -> None:
        """Apply run-wide parameters. Called once before any scope work.

        Raises:
            RuleConfigurationError: If the parameters are unusable
        """

    @property
    def uses_parameters(self) -> bool:
        """Whether this rule reads the rule-parameter store."""
        return False

    def _resources(self, resources: ResourceSet) -> list[Any]:
        """Resources this rule evaluates; the first required collection by default."""
        return resources.get(self.requires[0]) if self.requires else []

    def _resource_identity(self, resource: Any, scope: Scope) -> tuple[str, str]:
        """Resource id and display name reported for a resource."""
        label = _resource_label(resource)
        return (
            getattr(resource, "id", None) or label,
            getattr(resource, "name", None) or label,
        )

    @abstractmethod
    async def _check_resource(self, resource: Any, resources: ResourceSet) -> TestResult:
        """Evaluate one resource.

        Args:
            resource: One item from the rule's collection
            resources: The full collector output, for cross-collection checks

        Returns:
            TestResult for the resource
        """

    async def evaluate(self, resources: ResourceSet, scope: Scope) -> list[TestResult]:
        """Evaluate every applicable resource in the scope."""
        missing = [name for name in self.requires if resources.is_failed(name)]
        if missing:
            logger.warning(
                f"Skipping {self.test_name} for {scope.key}: "
                f"could not fetch {', '.join(missing)}"
            )
            return []

        results: list[TestResult] = []
        for resource in self._resources(resources):
            try:
                results.append(await self._check_resource(resource, resources))
            except Exception as e:
                logger.warning(
                    f"Rule {self.test_name} failed on {_resource_label(resource)}: {e}"
                )
                results.append(self._error_result(resource, scope, e))
        return results

    def _result(
        self,
        scope: Scope,
        resource_id: str,
        resource_name: str,
        actual_result: ResultValue,
        passed: bool,
        resource_group_name: str | None = None,
        expected_result: ResultValue = None,
        raw: Any = None,
    ) -> TestResult:
        """Build a TestResult carrying this rule's metadata."""
        return TestResult(
            resource_id=resource_id,
            resource_name=resource_name,
            resource_group_name=resource_group_name,
            subscription_id=scope.subscription_id,
            category=self.category,
            sub_category=self.sub_category,
            test_name=self.test_name,
            test_description=self.description,
            expected_result=self.expected_result if expected_result is None else expected_result,
            actual_result=actual_result,
            raw_result=_serialize(raw) if raw is not None else None,
            result_status=ResultStatus.PASS if passed else ResultStatus.FAIL,
        )

    def _error_result(self, resource: Any, scope: Scope, error: Exception) -> TestResult:
        """Fail result carrying the evaluation error as its raw payload."""
        resource_id, resource_name = self._resource_identity(resource, scope)
        return self._result(
            scope=scope,
            resource_id=resource_id,
            resource_name=resource_name,
            resource_group_name=getattr(resource, "resource_group", None),
            actual_result=None,
            passed=False,
            raw={"evaluation_error": sanitize_error(error)},
        )


def _resource_label(resource: Any) -> str:
    if isinstance(resource, str):
        return resource
    for attr in ("id", "name", "method"):
        value = getattr(resource, attr, None)
        if value:
            return str(value)
    return repr(resource)


def _serialize(raw: Any) -> str:
    if hasattr(raw, "model_dump"):
        raw = raw.model_dump(mode="json")
    return json.dumps(raw, default=str, sort_keys=True)
