"""Command line entry point for the WAF audit.

Usage:
    waf-audit [options]

Exit Codes:
    0   All rules passed and every scope produced data
    1   One or more rules failed, or a scope could not be evaluated
    2   Invalid arguments, internal error, or no authenticated session

Examples:
    # Audit everything, concurrently, and print JSON
    waf-audit --json

    # Only virtual machines and load balancers, one subscription at a time
    waf-audit --category virtual_machines --category load_balancers --sequential

    # Limit to one subscription and write a markdown report
    waf-audit --subscription 00000000-0000-0000-0000-000000000000 --markdown --output report.md
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

from wafaudit.audit.models import AuditReport, Category
from wafaudit.audit.parameters import RuleParameterStore
from wafaudit.audit.registry import build_registry
from wafaudit.audit.reports import ReportGenerator
from wafaudit.audit.runner import AuditRunner
from wafaudit.audit.scopes import ScopeResolver
from wafaudit.core.config import Settings, get_settings
from wafaudit.services.azure_client import AzureClientManager
from wafaudit.services.graph_client import DirectoryClient

logger = logging.getLogger(__name__)

ALL_CATEGORIES = "all"


class UsageError(Exception):
    """Raised for invalid command line input."""


def parse_categories(category_args: list[str] | None) -> list[Category] | None:
    """Parse category arguments into Category enums; None means all."""
    if not category_args or ALL_CATEGORIES in (c.lower() for c in category_args):
        return None

    categories = []
    for cat_str in category_args:
        try:
            category = Category(cat_str.lower())
        except ValueError:
            valid = [c.value for c in Category] + [ALL_CATEGORIES]
            raise UsageError(f"Invalid category '{cat_str}'. Valid categories: {valid}") from None
        if category not in categories:
            categories.append(category)
    return categories


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="waf-audit",
        description="Audit Azure configuration against Well-Architected Framework rules",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument(
        "--category",
        action="append",
        dest="categories",
        help="Category to audit (repeatable, default: all)",
    )
    parser.add_argument(
        "--sequential",
        action="store_true",
        help="Process subscriptions one at a time",
    )
    parser.add_argument(
        "--concurrency",
        type=int,
        default=None,
        help="Subscriptions processed at once in parallel mode",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=None,
        help="Timeout in seconds for one subscription's work",
    )
    parser.add_argument(
        "--subscription",
        action="append",
        dest="subscriptions",
        help="Only audit this subscription (repeatable)",
    )
    parser.add_argument(
        "--rule-parameters",
        dest="rule_parameters",
        help="JSON file with per-rule parameters",
    )
    output = parser.add_mutually_exclusive_group()
    output.add_argument("--json", action="store_true", help="Output results in JSON format")
    output.add_argument("--markdown", action="store_true", help="Output results in Markdown format")
    parser.add_argument("--output", help="Write the report to this file instead of stdout")
    parser.add_argument("--verbose", action="store_true", help="Enable verbose logging")
    return parser


def configure_logging(settings: Settings, verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else settings.log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stderr,
    )
    if not verbose:
        # Azure SDK HTTP logging is very chatty at INFO
        logging.getLogger("azure").setLevel(logging.WARNING)


def build_runner(args: argparse.Namespace, settings: Settings) -> AuditRunner:
    """Wire clients, registry and scope resolution from settings and arguments."""
    client_manager = AzureClientManager(settings)
    directory_client = DirectoryClient.build(client_manager)
    registry = build_registry(client_manager, directory_client)
    scope_resolver = ScopeResolver(
        client_manager,
        subscription_filter=args.subscriptions or settings.subscription_ids,
    )
    parameters = RuleParameterStore.load(args.rule_parameters or settings.rule_parameters_path)

    return AuditRunner(
        registry=registry,
        scope_resolver=scope_resolver,
        parameters=parameters,
        parallel=settings.audit_parallel and not args.sequential,
        concurrency=args.concurrency or settings.audit_concurrency,
        scope_timeout_seconds=args.timeout or settings.scope_timeout_seconds,
    )


def render_report(report: AuditReport, args: argparse.Namespace) -> str:
    generator = ReportGenerator(report)
    if args.json:
        return generator.to_json()
    if args.markdown:
        return generator.to_markdown()

    summary = report.get_summary()
    lines = ["", "=" * 60, "WAF AUDIT RESULTS", "=" * 60]
    if report.is_aborted:
        lines.append(f"Run aborted: {report.aborted_reason}")
        return "\n".join(lines)

    lines.extend([
        f"Report ID: {summary['id']}",
        f"Tenant: {summary['tenant_id']}",
        f"Mode: {summary['mode']}",
        "",
        f"✅ Passed: {summary['passed']}",
        f"❌ Failed: {summary['failed']}",
        f"⚠️  Scopes without data: {summary['failed_scopes']}",
        f"🧩 Scopes with partial data: {summary['partial_scopes']}",
        f"📊 Total: {summary['total']}",
    ])
    failed = report.get_failed_results()
    if failed:
        lines.extend(["", "Failed rules:"])
        for result in failed:
            lines.append(
                f"  - [{result.category.value}] {result.test_name}: {result.resource_name} "
                f"(expected {result.expected_result}, got {result.actual_result})"
            )
    for outcome in report.get_failed_scopes():
        lines.append(
            f"  ! {outcome.category.value} {outcome.display_name or outcome.tenant_id}: "
            f"{outcome.status.value} ({outcome.error})"
        )
    for outcome in report.get_partial_scopes():
        for collection, error in outcome.fetch_failures.items():
            lines.append(
                f"  ~ {outcome.category.value} {outcome.display_name or outcome.tenant_id}: "
                f"partial data, {collection} not fetched ({error})"
            )
    lines.extend(["", "-" * 60, json.dumps(summary, indent=2)])
    return "\n".join(lines)


def exit_code(report: AuditReport) -> int:
    if report.is_aborted:
        return 2
    return 0 if report.is_success else 1


async def async_main(argv: list[str] | None = None) -> int:
    """Async main entry point."""
    args = build_parser().parse_args(argv)

    try:
        categories = parse_categories(args.categories)
        if args.concurrency is not None and args.concurrency < 1:
            raise UsageError("--concurrency must be at least 1")
        if args.timeout is not None and args.timeout <= 0:
            raise UsageError("--timeout must be positive")
    except UsageError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2

    settings = get_settings()
    configure_logging(settings, args.verbose)

    try:
        runner = build_runner(args, settings)
        report = await runner.run(categories)
        output = render_report(report, args)

        if args.output:
            Path(args.output).write_text(output, encoding="utf-8")
            logger.info(f"Report written to {args.output}")
        else:
            print(output)

        return exit_code(report)

    except KeyboardInterrupt:
        print("\nAudit interrupted by user", file=sys.stderr)
        return 2

    except Exception as e:
        logger.debug("Audit failed", exc_info=True)
        print(f"Error running audit: {e}", file=sys.stderr)
        return 2


def main() -> int:
    """Main entry point."""
    return asyncio.run(async_main())


if __name__ == "__main__":
    sys.exit(main())
