"""Azure SQL database resiliency rules."""

from wafaudit.audit.base import BaseRule, ResourceSet
from wafaudit.audit.models import Category, Severity, SqlDatabase, TestResult, WafPillar


class SqlGeoReplicationRule(BaseRule):
    """A database needs a geo-secondary to survive a regional outage.

    Replication links are not part of the collected database list, so each
    database's links are resolved individually. A failed lookup counts as
    "no replication configured".
    """

    def __init__(self):
        super().__init__(
            test_name="sql_geo_replication",
            category=Category.DATABASES,
            sub_category="Geo-Replication",
            description="Azure SQL database has at least one geo-replication link (>= 1)",
            expected_result=True,
            requires=["sql_databases"],
            severity=Severity.HIGH,
            waf_pillar=WafPillar.RELIABILITY,
        )

    async def _check_resource(self, resource: SqlDatabase, resources: ResourceSet) -> TestResult:
        links = await resources.resolve("sql_replication_links", resource) or []
        replicated = len(links) >= 1
        return self._result(
            scope=resources.scope,
            resource_id=resource.id,
            resource_name=resource.name,
            resource_group_name=resource.resource_group,
            actual_result=replicated,
            passed=replicated is True,
            raw={"server": resource.server_name, "replication_links": links},
        )


class SqlZoneRedundancyRule(BaseRule):
    def __init__(self):
        super().__init__(
            test_name="sql_zone_redundancy",
            category=Category.DATABASES,
            sub_category="Zone Redundancy",
            description="Azure SQL database is zone redundant",
            expected_result=True,
            requires=["sql_databases"],
            severity=Severity.MEDIUM,
            waf_pillar=WafPillar.RELIABILITY,
        )

    async def _check_resource(self, resource: SqlDatabase, resources: ResourceSet) -> TestResult:
        redundant = resource.zone_redundant is True
        return self._result(
            scope=resources.scope,
            resource_id=resource.id,
            resource_name=resource.name,
            resource_group_name=resource.resource_group,
            actual_result=redundant,
            passed=redundant,
            raw={"zone_redundant": resource.zone_redundant, "sku": resource.sku},
        )
