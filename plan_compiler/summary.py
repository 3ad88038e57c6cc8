"""
Human-facing summaries of validation results.
"""

from __future__ import annotations

from typing import Dict, List, Sequence

from plan_compiler.compiler.validate_plan import (
    EMPTY_BRANCH_CASE,
    FORBIDDEN_HOST,
    MULTIPLE_TRIGGERS,
    MUST_START_WITH_TRIGGER,
    NO_STEPS,
    SCHEMA_VALIDATION_FAILED,
    UNKNOWN_ACTION_SLUG,
)
from plan_compiler.schema.models import ValidationIssue, ValidationResult

CRITICAL_CODES = frozenset({SCHEMA_VALIDATION_FAILED, MUST_START_WITH_TRIGGER, NO_STEPS, EMPTY_BRANCH_CASE})
WARNING_CODES = frozenset({UNKNOWN_ACTION_SLUG, FORBIDDEN_HOST, MULTIPLE_TRIGGERS})

# codes that block everything else, used by the summary line
_BLOCKING_CODES = frozenset({SCHEMA_VALIDATION_FAILED, MUST_START_WITH_TRIGGER})


def _plural(count: int, word: str) -> str:
    return f"{count} {word}{'s' if count != 1 else ''}"


def get_validation_summary(result: ValidationResult) -> str:
    if result.valid:
        return "Plan is valid and ready to use."

    total = len(result.issues)
    blocking = sum(1 for issue in result.issues if issue.code in _BLOCKING_CODES)
    if blocking:
        return (
            f"Plan has {_plural(total, 'issue')} including {_plural(blocking, 'critical error')}. "
            "Fix critical errors first."
        )
    return f"Plan has {_plural(total, 'issue')} that should be addressed before deployment."


def categorize_issues(issues: Sequence[ValidationIssue]) -> Dict[str, List[ValidationIssue]]:
    categories: Dict[str, List[ValidationIssue]] = {"critical": [], "warning": [], "info": []}
    for issue in issues:
        if issue.code in CRITICAL_CODES:
            categories["critical"].append(issue)
        elif issue.code in WARNING_CODES:
            categories["warning"].append(issue)
        else:
            categories["info"].append(issue)
    return categories
