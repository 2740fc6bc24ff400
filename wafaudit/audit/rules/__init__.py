"""Rule catalogue, one module per resource area."""

from wafaudit.audit.rules.compute import (
    ScaleSetAutomaticRepairsRule,
    ScaleSetZoneRedundancyRule,
    VmAvailabilitySetOrZoneRule,
    VmAvailabilityZonesRule,
)
from wafaudit.audit.rules.databases import SqlGeoReplicationRule, SqlZoneRedundancyRule
from wafaudit.audit.rules.governance import (
    ManagementGroupNamingRule,
    ManagementGroupStructureRule,
)
from wafaudit.audit.rules.identity import (
    AuthenticationMethodEnabledRule,
    SecureScoreThresholdRule,
)
from wafaudit.audit.rules.network import (
    LoadBalancerBackendRedundancyRule,
    LoadBalancerStandardSkuRule,
)
from wafaudit.audit.rules.site_recovery import VmAsrProtectionRule

__all__ = [
    # Virtual machines
    "VmAvailabilityZonesRule",
    "VmAvailabilitySetOrZoneRule",
    "ScaleSetAutomaticRepairsRule",
    "ScaleSetZoneRedundancyRule",
    # Load balancers
    "LoadBalancerBackendRedundancyRule",
    "LoadBalancerStandardSkuRule",
    # Databases
    "SqlGeoReplicationRule",
    "SqlZoneRedundancyRule",
    # Site recovery
    "VmAsrProtectionRule",
    # Identity
    "AuthenticationMethodEnabledRule",
    "SecureScoreThresholdRule",
    # Governance
    "ManagementGroupStructureRule",
    "ManagementGroupNamingRule",
]
