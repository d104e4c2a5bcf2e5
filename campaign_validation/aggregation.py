"""Issue aggregation.

Pure reductions over a list of issues. Callers are frequently loosely typed
(JSON handlers, scripts), so both functions accept wire-shaped dicts as well
as ``Issue`` objects and never raise on malformed input.
"""

from __future__ import annotations

from collections import Counter
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from campaign_validation.base import Issue, Severity
from campaign_validation.logging import get_logger


logger = get_logger(__name__)


@dataclass(frozen=True, slots=True)
class ValidationSummary:
    """Issue counts by severity, and the issues grouped by field.

    Attributes:
        total: Number of issues.
        critical: Number of critical issues.
        warning: Number of warnings.
        suggestion: Number of suggestions.
        by_field: Issues per field, in input order.
        unique_rows: Number of distinct rows with at least one issue.
    """

    total: int = 0
    critical: int = 0
    warning: int = 0
    suggestion: int = 0
    by_field: dict[str, list[Issue]] = field(default_factory=dict)
    unique_rows: int = 0

    @property
    def can_import(self) -> bool:
        return self.critical == 0

    @property
    def field_counts(self) -> dict[str, int]:
        return {name: len(group) for name, group in self.by_field.items()}

    def to_dict(self) -> dict[str, Any]:
        return {
            "total": self.total,
            "critical": self.critical,
            "warning": self.warning,
            "suggestion": self.suggestion,
            "byField": {
                name: [issue.to_dict() for issue in group]
                for name, group in self.by_field.items()
            },
            "uniqueRows": self.unique_rows,
            "canImport": self.can_import,
        }


def _coerce(entry: Any) -> Issue | None:
    if isinstance(entry, Issue):
        return entry
    if isinstance(entry, Mapping):
        try:
            return Issue.from_dict(entry)
        except (KeyError, TypeError, ValueError):
            return None
    return None


def _issues_of(issues: Any, operation: str) -> list[Issue] | None:
    if not isinstance(issues, list | tuple):
        logger.warning(
            "Expected a list of issues",
            operation=operation,
            actual=type(issues).__name__,
        )
        return None
    coerced = []
    skipped = 0
    for entry in issues:
        issue = _coerce(entry)
        if issue is None:
            skipped += 1
        else:
            coerced.append(issue)
    if skipped:
        logger.warning("Skipped malformed issue entries", operation=operation, skipped=skipped)
    return coerced


def summarize(issues: Any) -> ValidationSummary:
    """Summarize issues; anything that is not a list counts as no issues.

    Example:
        >>> summarize([]).to_dict()["canImport"]
        True
    """
    coerced = _issues_of(issues, "summarize")
    if not coerced:
        return ValidationSummary()

    severities = Counter(issue.severity for issue in coerced)
    by_field: dict[str, list[Issue]] = {}
    for issue in coerced:
        by_field.setdefault(issue.field, []).append(issue)
    return ValidationSummary(
        total=len(coerced),
        critical=severities[Severity.CRITICAL],
        warning=severities[Severity.WARNING],
        suggestion=severities[Severity.SUGGESTION],
        by_field=by_field,
        unique_rows=len({issue.row_index for issue in coerced}),
    )


def can_import(issues: Any) -> bool:
    """True iff no issue is critical.

    Input that is not a list of issues cannot be vouched for and blocks the
    import.
    """
    coerced = _issues_of(issues, "can_import")
    if coerced is None:
        return False
    return not any(issue.is_critical for issue in coerced)
