"""Audit orchestration for Well-Architected Framework rules.

Rules are registered per category in `wafaudit.audit.registry` and run by
`wafaudit.audit.runner.AuditRunner`:

   >>> from wafaudit.audit.runner import AuditRunner
   >>> report = await runner.run([Category.VIRTUAL_MACHINES])
   >>> failed = report.get_failed_results()
"""

from wafaudit.audit.models import (
    AuditReport,
    Category,
    ResultStatus,
    Scope,
    ScopeLevel,
    ScopeOutcome,
    ScopeStatus,
    TestResult,
)

__all__ = [
    "AuditReport",
    "Category",
    "ResultStatus",
    "Scope",
    "ScopeLevel",
    "ScopeOutcome",
    "ScopeStatus",
    "TestResult",
]
