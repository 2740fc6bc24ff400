"""Static registry of categories, their collectors and their rules."""

import logging
from collections.abc import Callable
from dataclasses import dataclass, field

from wafaudit.audit.base import BaseCollector, BaseRule
from wafaudit.audit.collectors import (
    ComputeCollector,
    DatabaseCollector,
    GovernanceCollector,
    IdentityCollector,
    NetworkCollector,
    SiteRecoveryCollector,
)
from wafaudit.audit.models import Category, ScopeLevel
from wafaudit.audit.rules import (
    AuthenticationMethodEnabledRule,
    LoadBalancerBackendRedundancyRule,
    LoadBalancerStandardSkuRule,
    ManagementGroupNamingRule,
    ManagementGroupStructureRule,
    ScaleSetAutomaticRepairsRule,
    ScaleSetZoneRedundancyRule,
    SecureScoreThresholdRule,
    SqlGeoReplicationRule,
    SqlZoneRedundancyRule,
    VmAsrProtectionRule,
    VmAvailabilitySetOrZoneRule,
    VmAvailabilityZonesRule,
)
from wafaudit.services.azure_client import AzureClientManager
from wafaudit.services.graph_client import DirectoryClient

logger = logging.getLogger(__name__)

RuleFactory = Callable[[], BaseRule]


@dataclass
class CategoryDefinition:
    """Collectors by scope level and the ordered rules of one category."""

    category: Category
    collectors: dict[ScopeLevel, BaseCollector] = field(default_factory=dict)
    rule_factories: list[RuleFactory] = field(default_factory=list)

    def create_rules(self) -> list[BaseRule]:
        """Fresh rule instances, so per-run configuration never leaks."""
        return [factory() for factory in self.rule_factories]


class RuleRegistry:
    """Category -> CategoryDefinition, resolved once at start time."""

    def __init__(self, definitions: list[CategoryDefinition] | None = None):
        self._definitions: dict[Category, CategoryDefinition] = {}
        for definition in definitions or []:
            self.register(definition)

    def register(self, definition: CategoryDefinition) -> None:
        self._definitions[definition.category] = definition

    @property
    def categories(self) -> list[Category]:
        return list(self._definitions)

    def get_definition(self, category: Category) -> CategoryDefinition:
        try:
            return self._definitions[category]
        except KeyError:
            raise KeyError(f"No rules registered for category {category.value}") from None

    def get_rules(self, category: Category) -> list[BaseRule]:
        return self.get_definition(category).create_rules()

    def get_collector(self, category: Category, level: ScopeLevel) -> BaseCollector | None:
        return self.get_definition(category).collectors.get(level)


def build_registry(
    client_manager: AzureClientManager, directory_client: DirectoryClient
) -> RuleRegistry:
    """Wire the built-in catalogue to live Azure clients."""
    compute = ComputeCollector(client_manager)

    return RuleRegistry([
        CategoryDefinition(
            category=Category.VIRTUAL_MACHINES,
            collectors={ScopeLevel.SUBSCRIPTION: compute},
            rule_factories=[
                VmAvailabilityZonesRule,
                VmAvailabilitySetOrZoneRule,
                ScaleSetAutomaticRepairsRule,
                ScaleSetZoneRedundancyRule,
            ],
        ),
        CategoryDefinition(
            category=Category.LOAD_BALANCERS,
            collectors={ScopeLevel.SUBSCRIPTION: NetworkCollector(client_manager)},
            rule_factories=[
                LoadBalancerBackendRedundancyRule,
                LoadBalancerStandardSkuRule,
            ],
        ),
        CategoryDefinition(
            category=Category.DATABASES,
            collectors={ScopeLevel.SUBSCRIPTION: DatabaseCollector(client_manager)},
            rule_factories=[
                SqlGeoReplicationRule,
                SqlZoneRedundancyRule,
            ],
        ),
        CategoryDefinition(
            category=Category.SITE_RECOVERY,
            collectors={ScopeLevel.SUBSCRIPTION: SiteRecoveryCollector(client_manager)},
            rule_factories=[VmAsrProtectionRule],
        ),
        CategoryDefinition(
            category=Category.IDENTITY,
            collectors={ScopeLevel.TENANT: IdentityCollector(directory_client)},
            rule_factories=[
                AuthenticationMethodEnabledRule,
                SecureScoreThresholdRule,
            ],
        ),
        CategoryDefinition(
            category=Category.GOVERNANCE,
            collectors={ScopeLevel.TENANT: GovernanceCollector(client_manager)},
            rule_factories=[
                ManagementGroupStructureRule,
                ManagementGroupNamingRule,
            ],
        ),
    ])
