"""Report generation for audit runs.

Provides JSON and markdown output formats with summary statistics,
scopes that produced no data or partial data, and failed rules.
"""

import json
import logging
from typing import Any

from wafaudit.audit.models import AuditReport, Category, ScopeOutcome, TestResult

logger = logging.getLogger(__name__)

STATUS_MARKERS = {"Pass": "✅", "Fail": "❌"}


class ReportGenerator:
    """Generate reports from audit results."""

    def __init__(self, report: AuditReport):
        """Initialize the report generator.

        Args:
            report: The audit report to render
        """
        self.report = report

    def to_dict(self) -> dict[str, Any]:
        return {
            "summary": self.report.get_summary(),
            "concurrency": self.report.concurrency,
            "failed_scopes": [
                outcome.model_dump(mode="json") for outcome in self.report.get_failed_scopes()
            ],
            "partial_scopes": [
                outcome.model_dump(mode="json") for outcome in self.report.get_partial_scopes()
            ],
            "results": [r.model_dump(mode="json") for r in self.report.results],
        }

    def to_json(self, pretty: bool = True) -> str:
        """Generate JSON report.

        Args:
            pretty: Whether to pretty-print the JSON

        Returns:
            JSON string representation of the report
        """
        if pretty:
            return json.dumps(self.to_dict(), indent=2)
        return json.dumps(self.to_dict())

    def to_markdown(self) -> str:
        """Generate Markdown report.

        Returns:
            Markdown string representation of the report
        """
        summary = self.report.get_summary()
        lines = [
            "# WAF Audit Report",
            "",
            f"**Report ID:** `{self.report.id}`",
            f"**Tenant:** `{self.report.tenant_id or 'unknown'}`",
            f"**Started:** {self.report.started_at.strftime('%Y-%m-%d %H:%M:%S')} UTC",
        ]
        if self.report.completed_at:
            lines.append(
                f"**Completed:** {self.report.completed_at.strftime('%Y-%m-%d %H:%M:%S')} UTC"
            )
        lines.append(f"**Mode:** {summary['mode']}")

        if self.report.is_aborted:
            lines.extend(["", "## Run aborted", "", self.report.aborted_reason or ""])
            return "\n".join(lines) + "\n"

        lines.extend([
            "",
            "## Summary",
            "",
            f"- ✅ **Passed:** {summary['passed']}",
            f"- ❌ **Failed:** {summary['failed']}",
            f"- 📊 **Total:** {summary['total']}",
            f"- ⚠️ **Scopes without data:** {summary['failed_scopes']}",
            f"- 🧩 **Scopes with partial data:** {summary['partial_scopes']}",
            "",
        ])

        failed_scopes = self.report.get_failed_scopes()
        if failed_scopes:
            lines.extend([
                "## Scopes Without Data",
                "",
                "These scopes were not evaluated; their absence of failures is not compliance.",
                "",
                "| Category | Scope | Status | Error |",
                "|----------|-------|--------|-------|",
            ])
            for outcome in failed_scopes:
                lines.append(
                    f"| {outcome.category.value} | {_scope_label(outcome)} | "
                    f"{outcome.status.value} | {_escape(outcome.error or '')} |"
                )
            lines.append("")

        partial_scopes = self.report.get_partial_scopes()
        if partial_scopes:
            lines.extend([
                "## Partial Data",
                "",
                "Rules reading these collections were skipped for the scope.",
                "",
                "| Category | Scope | Collection | Error |",
                "|----------|-------|------------|-------|",
            ])
            for outcome in partial_scopes:
                for collection, error in outcome.fetch_failures.items():
                    lines.append(
                        f"| {outcome.category.value} | {_scope_label(outcome)} | "
                        f"{collection} | {_escape(error)} |"
                    )
            lines.append("")

        for category in self.report.categories_requested:
            results = self.report.get_results_by_category(category)
            if results:
                lines.extend(self._category_section(category, results))

        return "\n".join(lines) + "\n"

    def _category_section(self, category: Category, results: list[TestResult]) -> list[str]:
        passed = sum(1 for r in results if r.is_pass())
        lines = [
            f"## {category.value} ({passed}/{len(results)} passed)",
            "",
            "| Status | Test | Resource | Subscription | Expected | Actual |",
            "|--------|------|----------|--------------|----------|--------|",
        ]
        for r in results:
            lines.append(
                f"| {STATUS_MARKERS[r.result_status.value]} | {r.test_name} | "
                f"{_escape(r.resource_name)} | {r.subscription_id or '-'} | "
                f"{_escape(_display(r.expected_result))} | {_escape(_display(r.actual_result))} |"
            )
        lines.append("")
        return lines


def _scope_label(outcome: ScopeOutcome) -> str:
    return outcome.display_name or outcome.subscription_id or outcome.tenant_id


def _display(value: Any) -> str:
    if isinstance(value, str):
        return value
    return json.dumps(value, default=str)


def _escape(text: str) -> str:
    return text.replace("|", "\\|").replace("\n", " ")
