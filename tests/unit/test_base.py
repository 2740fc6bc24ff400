"""Tests for the rule and collector base classes."""

import json

import pytest

from wafaudit.audit.base import (
    BaseCollector,
    BaseRule,
    CollectorError,
    ResourceSet,
    sanitize_error,
)
from wafaudit.audit.models import Category, ResultStatus, ScopeLevel


class StaticCollector(BaseCollector):
    """Collector returning fixed collections, raising for failing names."""

    def __init__(self, collections, failing=()):
        self.collections = collections
        self.failing = set(failing)
        self.calls = 0

    def _fetchers(self):
        def _fetcher(name):
            async def _fetch(scope):
                self.calls += 1
                if name in self.failing:
                    raise RuntimeError(f"{name} unavailable")
                return self.collections[name]

            return _fetch

        return {name: _fetcher(name) for name in self.collections}


class NameLengthRule(BaseRule):
    """Passes when the item name is longer than three characters."""

    def __init__(self, requires=("items",)):
        super().__init__(
            test_name="name_length",
            category=Category.VIRTUAL_MACHINES,
            sub_category="Test",
            description="Name is longer than three characters",
            expected_result=True,
            requires=requires,
        )

    async def _check_resource(self, resource, resources):
        if resource == "boom":
            raise KeyError("missing property")
        ok = len(resource) > 3
        return self._result(
            scope=resources.scope,
            resource_id=f"/items/{resource}",
            resource_name=resource,
            actual_result=ok,
            passed=ok,
        )


class TestSanitizeError:
    """Tests for error sanitization."""

    def test_plain_message_is_kept(self):
        assert sanitize_error(RuntimeError("not found")) == {
            "error_type": "RuntimeError",
            "message": "not found",
        }

    def test_sensitive_message_is_redacted(self):
        result = sanitize_error(ValueError("client_secret=abc is invalid"))
        assert "abc" not in result["message"]
        assert result["message"].startswith("[Redacted")


class TestResourceSet:
    """Tests for collector output access."""

    def test_missing_collection_is_empty(self, subscription_scope):
        resources = ResourceSet(subscription_scope)
        assert resources.get("virtual_machines") == []
        assert not resources.is_failed("virtual_machines")

    @pytest.mark.asyncio
    async def test_resolve_calls_resolver_with_scope(self, subscription_scope):
        async def _links(scope, name):
            return [f"{scope.subscription_id}/{name}"]

        resources = ResourceSet(subscription_scope, resolvers={"links": _links})
        assert await resources.resolve("links", "db-1") == ["sub-1/db-1"]

    @pytest.mark.asyncio
    async def test_resolve_tolerates_absence_and_failure(self, subscription_scope):
        async def _broken(scope, name):
            raise RuntimeError("lookup failed")

        resources = ResourceSet(subscription_scope, resolvers={"broken": _broken})
        assert await resources.resolve("unknown", "db-1") is None
        assert await resources.resolve("broken", "db-1") is None


class TestBaseCollector:
    """Tests for per-fetch isolation."""

    @pytest.mark.asyncio
    async def test_collects_every_collection(self, subscription_scope):
        collector = StaticCollector({"a": [1, 2], "b": [3]})
        resources = await collector.collect(subscription_scope)
        assert resources.get("a") == [1, 2]
        assert resources.get("b") == [3]
        assert resources.failed == {}
        assert resources.scope == subscription_scope

    @pytest.mark.asyncio
    async def test_one_failed_fetch_degrades_to_empty(self, subscription_scope):
        collector = StaticCollector({"a": [1, 2], "b": [3]}, failing=["a"])
        resources = await collector.collect(subscription_scope)
        assert resources.get("a") == []
        assert resources.get("b") == [3]
        assert resources.is_failed("a")
        assert "unavailable" in resources.failed["a"]

    @pytest.mark.asyncio
    async def test_every_fetch_failing_raises(self, subscription_scope):
        collector = StaticCollector({"a": [1], "b": [2]}, failing=["a", "b"])
        with pytest.raises(CollectorError):
            await collector.collect(subscription_scope)

    def test_default_level_is_subscription(self):
        assert StaticCollector({}).level == ScopeLevel.SUBSCRIPTION


class TestBaseRule:
    """Tests for rule evaluation over a resource set."""

    @pytest.mark.asyncio
    async def test_one_result_per_resource(self, subscription_scope, make_resources):
        resources = make_resources(subscription_scope, items=["alpha", "abc"])
        results = await NameLengthRule().evaluate(resources, subscription_scope)

        assert [r.result_status for r in results] == [ResultStatus.PASS, ResultStatus.FAIL]
        assert all(r.subscription_id == "sub-1" for r in results)
        assert all(r.test_name == "name_length" for r in results)

    @pytest.mark.asyncio
    async def test_no_resources_yields_no_results(self, subscription_scope, make_resources):
        resources = make_resources(subscription_scope, items=[])
        assert await NameLengthRule().evaluate(resources, subscription_scope) == []

    @pytest.mark.asyncio
    async def test_resource_error_does_not_hide_siblings(
        self, subscription_scope, make_resources
    ):
        resources = make_resources(subscription_scope, items=["alpha", "boom", "bravo"])
        results = await NameLengthRule().evaluate(resources, subscription_scope)

        assert len(results) == 3
        error_result = results[1]
        assert error_result.is_fail()
        assert error_result.actual_result is None
        raw = json.loads(error_result.raw_result)
        assert raw["evaluation_error"]["error_type"] == "KeyError"
        assert results[0].is_pass() and results[2].is_pass()

    @pytest.mark.asyncio
    async def test_error_row_for_plain_string_resource(self, subscription_scope, make_resources):
        resources = make_resources(subscription_scope, items=["boom"])
        [result] = await NameLengthRule().evaluate(resources, subscription_scope)

        assert result.resource_id == "boom"
        assert result.resource_name == "boom"

    @pytest.mark.asyncio
    async def test_failed_required_collection_skips_rule(
        self, subscription_scope, make_resources
    ):
        resources = make_resources(
            subscription_scope, failed={"items": "throttled"}, items=[]
        )
        assert await NameLengthRule().evaluate(resources, subscription_scope) == []

    @pytest.mark.asyncio
    async def test_unrelated_failed_collection_is_ignored(
        self, subscription_scope, make_resources
    ):
        resources = make_resources(
            subscription_scope, failed={"other": "throttled"}, items=["alpha"], other=[]
        )
        results = await NameLengthRule().evaluate(resources, subscription_scope)
        assert len(results) == 1

    def test_rule_metadata(self):
        rule = NameLengthRule()
        assert rule.level == ScopeLevel.SUBSCRIPTION
        assert rule.requires == ("items",)
        assert not rule.uses_parameters
        rule.configure({"ignored": True})
