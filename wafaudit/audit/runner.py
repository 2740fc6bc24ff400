"""Audit runner - drives collectors and rules across scopes.

For each category the runner collects resources once per scope, runs every
applicable rule against that output and merges the results. Subscription
scopes run one after another or concurrently with a bounded width; tenant
rules run once. Categories never interleave.
"""

import asyncio
import logging
import uuid

from wafaudit.audit.base import BaseCollector, BaseRule, RuleConfigurationError, sanitize_error
from wafaudit.audit.models import (
    AuditReport,
    Category,
    Scope,
    ScopeLevel,
    ScopeOutcome,
    ScopeStatus,
    TestResult,
    utcnow,
)
from wafaudit.audit.parameters import RuleParameterStore
from wafaudit.audit.registry import RuleRegistry
from wafaudit.audit.scopes import NoActiveSessionError, ScopeResolver

logger = logging.getLogger(__name__)

DEFAULT_CONCURRENCY = 5
DEFAULT_SCOPE_TIMEOUT_SECONDS = 600.0

ScopeWork = tuple[list[TestResult], ScopeOutcome]


class AuditRunner:
    """Orchestrates audit categories with sequential or concurrent execution."""

    def __init__(
        self,
        registry: RuleRegistry,
        scope_resolver: ScopeResolver,
        parameters: RuleParameterStore | None = None,
        parallel: bool = True,
        concurrency: int = DEFAULT_CONCURRENCY,
        scope_timeout_seconds: float = DEFAULT_SCOPE_TIMEOUT_SECONDS,
    ):
        """Initialize the audit runner.

        Args:
            registry: Categories with their collectors and rules
            scope_resolver: Source of the tenant and subscription scopes
            parameters: Rule parameters; built-in defaults when None
            parallel: Run subscription scopes concurrently
            concurrency: Maximum number of scopes processed at once
            scope_timeout_seconds: Budget for one scope's unit of work
        """
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")

        self.registry = registry
        self.scope_resolver = scope_resolver
        self.parameters = parameters or RuleParameterStore()
        self.parallel = parallel
        self.concurrency = concurrency
        self.scope_timeout_seconds = scope_timeout_seconds
        self._is_running = False

    @property
    def is_running(self) -> bool:
        return self._is_running

    async def run(self, categories: list[Category] | None = None) -> AuditReport:
        """Run the requested categories (all registered ones when None).

        Never raises: a missing session yields an empty report with
        `aborted_reason` set. Any other failure is logged and recorded as a
        FAILED scope outcome so the report cannot read as a clean pass.
        """
        requested = categories or self.registry.categories
        report = AuditReport(
            id=str(uuid.uuid4()),
            categories_requested=requested,
            parallel=self.parallel,
            concurrency=self.concurrency,
        )
        self._is_running = True

        try:
            try:
                tenant = await self.scope_resolver.resolve_tenant()
            except NoActiveSessionError as e:
                logger.error(str(e))
                report.aborted_reason = str(e)
                return report

            report.tenant_id = tenant.tenant_id
            subscriptions, enumeration_error = await self._list_subscriptions(tenant, requested)

            for category in requested:
                logger.info(f"Running category {category.value}")
                try:
                    results, outcomes = await self.run_category(
                        category, tenant, subscriptions, enumeration_error=enumeration_error
                    )
                except Exception as e:
                    logger.exception(f"Category {category.value} failed: {e}")
                    report.scope_outcomes.append(
                        _failed_outcome(category, tenant, sanitize_error(e)["message"])
                    )
                    continue
                report.results.extend(results)
                report.scope_outcomes.extend(outcomes)

        finally:
            report.completed_at = utcnow()
            self._is_running = False

        logger.info(
            f"Audit completed: {report.passed_count} passed, {report.failed_count} failed, "
            f"{len(report.get_failed_scopes())} scopes without data"
        )
        return report

    async def _list_subscriptions(
        self, tenant: Scope, categories: list[Category]
    ) -> tuple[list[Scope], str | None]:
        """Enumerate subscriptions once per run, only when a category needs them.

        Returns the scopes and, when enumeration failed, the sanitized error.
        """
        needs_subscriptions = any(
            self.registry.get_collector(c, ScopeLevel.SUBSCRIPTION) is not None
            for c in categories
            if c in self.registry.categories
        )
        if not needs_subscriptions:
            return [], None
        try:
            return await self.scope_resolver.list_subscription_scopes(tenant), None
        except Exception as e:
            logger.error(f"Could not enumerate subscriptions for tenant {tenant.tenant_id}: {e}")
            return [], sanitize_error(e)["message"]

    async def run_category(
        self,
        category: Category,
        tenant: Scope,
        subscriptions: list[Scope],
        enumeration_error: str | None = None,
    ) -> tuple[list[TestResult], list[ScopeOutcome]]:
        """Run one category to completion and return its merged results.

        Rules that cannot run at all (no collector for their level, or no
        subscription list because enumeration failed) leave a FAILED outcome
        on the tenant scope.
        """
        rules = self._prepare_rules(category)
        tenant_rules = [r for r in rules if r.level == ScopeLevel.TENANT]
        subscription_rules = [r for r in rules if r.level == ScopeLevel.SUBSCRIPTION]

        results: list[TestResult] = []
        outcomes: list[ScopeOutcome] = []

        if tenant_rules:
            collector = self.registry.get_collector(category, ScopeLevel.TENANT)
            if collector is None:
                logger.warning(f"No tenant collector registered for {category.value}")
                outcomes.append(
                    _failed_outcome(category, tenant, "No tenant collector registered")
                )
            else:
                scope_results, outcome = await self._run_scope_guarded(
                    category, collector, tenant_rules, tenant
                )
                results.extend(scope_results)
                outcomes.append(outcome)

        if subscription_rules:
            collector = self.registry.get_collector(category, ScopeLevel.SUBSCRIPTION)
            if collector is None:
                logger.warning(f"No subscription collector registered for {category.value}")
                outcomes.append(
                    _failed_outcome(category, tenant, "No subscription collector registered")
                )
            elif enumeration_error is not None:
                outcomes.append(
                    _failed_outcome(
                        category,
                        tenant,
                        f"Could not enumerate subscriptions: {enumeration_error}",
                    )
                )
            elif not subscriptions:
                logger.info(f"No subscriptions to audit for {category.value}")
            elif self.parallel:
                await self._run_concurrent(
                    category, collector, subscription_rules, subscriptions, results, outcomes
                )
            else:
                await self._run_sequential(
                    category, collector, subscription_rules, subscriptions, results, outcomes
                )

        logger.info(
            f"Category {category.value}: {len(results)} results from {len(outcomes)} scopes"
        )
        return results, outcomes

    def _prepare_rules(self, category: Category) -> list[BaseRule]:
        """Instantiate and configure the category's rules.

        A rule whose configuration fails is dropped for every scope of this
        run and logged once here.
        """
        prepared: list[BaseRule] = []
        for rule in self.registry.get_rules(category):
            try:
                parameters = (
                    self.parameters.for_rule(rule.test_name) if rule.uses_parameters else {}
                )
                rule.configure(parameters)
            except RuleConfigurationError as e:
                logger.warning(f"Rule {rule.test_name} disabled for this run: {e}")
                continue
            prepared.append(rule)
        return prepared

    async def _run_sequential(
        self,
        category: Category,
        collector: BaseCollector,
        rules: list[BaseRule],
        scopes: list[Scope],
        results: list[TestResult],
        outcomes: list[ScopeOutcome],
    ) -> None:
        for scope in scopes:
            scope_results, outcome = await self._run_scope_guarded(category, collector, rules, scope)
            results.extend(scope_results)
            outcomes.append(outcome)

    async def _run_concurrent(
        self,
        category: Category,
        collector: BaseCollector,
        rules: list[BaseRule],
        scopes: list[Scope],
        results: list[TestResult],
        outcomes: list[ScopeOutcome],
    ) -> None:
        """Fan out over scopes with bounded width, merge as they complete.

        Workers only return their results; merging happens here, on the
        single consumer side of `as_completed`.
        """
        semaphore = asyncio.Semaphore(self.concurrency)

        async def _bounded(scope: Scope) -> ScopeWork:
            async with semaphore:
                return await self._run_scope_guarded(category, collector, rules, scope)

        tasks = [asyncio.create_task(_bounded(scope)) for scope in scopes]
        try:
            for finished in asyncio.as_completed(tasks):
                scope_results, outcome = await finished
                results.extend(scope_results)
                outcomes.append(outcome)
        finally:
            pending = [task for task in tasks if not task.done()]
            for task in pending:
                task.cancel()
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)

    async def _run_scope_guarded(
        self,
        category: Category,
        collector: BaseCollector,
        rules: list[BaseRule],
        scope: Scope,
    ) -> ScopeWork:
        """Run one scope with a timeout; failures become an outcome marker."""
        try:
            return await asyncio.wait_for(
                self._run_scope(category, collector, rules, scope),
                timeout=self.scope_timeout_seconds,
            )
        except TimeoutError:
            logger.warning(
                f"{category.value} for {scope.key} timed out after {self.scope_timeout_seconds}s"
            )
            return [], ScopeOutcome.for_scope(
                category,
                scope,
                status=ScopeStatus.TIMED_OUT,
                error=f"Timed out after {self.scope_timeout_seconds} seconds",
            )
        except Exception as e:
            logger.warning(f"{category.value} for {scope.key} failed: {e}")
            return [], ScopeOutcome.for_scope(
                category,
                scope,
                status=ScopeStatus.FAILED,
                error=sanitize_error(e)["message"],
            )

    async def _run_scope(
        self,
        category: Category,
        collector: BaseCollector,
        rules: list[BaseRule],
        scope: Scope,
    ) -> ScopeWork:
        """Collect once, then evaluate every rule against the same output."""
        resources = await collector.collect(scope)

        results: list[TestResult] = []
        for rule in rules:
            try:
                results.extend(await rule.evaluate(resources, scope))
            except Exception as e:
                logger.warning(f"Rule {rule.test_name} aborted for {scope.key}: {e}")

        logger.debug(f"{category.value} for {scope.key}: {len(results)} results")
        return results, ScopeOutcome.for_scope(
            category,
            scope,
            status=ScopeStatus.COMPLETED,
            result_count=len(results),
            fetch_failures=dict(resources.failed),
        )


def _failed_outcome(category: Category, scope: Scope, error: str) -> ScopeOutcome:
    return ScopeOutcome.for_scope(category, scope, status=ScopeStatus.FAILED, error=error)
