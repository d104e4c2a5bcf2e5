"""Core types for campaign record validation.

Key Components:
    - Enums: Severity, RuleKind
    - Results: Issue, PredicateOutcome
    - Introspection: RuleDescriptor
    - Protocols: Predicate

Design Principles:
    1. Immutable: issues and descriptors are frozen dataclasses
    2. Wire-compatible: ``Issue.to_dict`` emits the camelCase shape the
       import API returns to the browser

Example:
    >>> from campaign_validation.base import Issue, Severity
    >>> issue = Issue(
    ...     row_index=3,
    ...     field="Range",
    ...     severity=Severity.CRITICAL,
    ...     message="Range 'Acne' does not belong to Category 'Lip'",
    ...     current_value="Acne",
    ... )
    >>> issue.is_critical
    True
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any, Protocol, Self, runtime_checkable


if TYPE_CHECKING:
    from collections.abc import Sequence

    from campaign_validation.reference import ReferenceSnapshot


Record = Mapping[str, Any]


# =============================================================================
# Enums
# =============================================================================


class Severity(Enum):
    """Severity of a validation issue.

    Attributes:
        CRITICAL: Blocks the import.
        WARNING: Surfaced to the user, does not block.
        SUGGESTION: Informational hint.
    """

    CRITICAL = "critical"
    WARNING = "warning"
    SUGGESTION = "suggestion"

    @property
    def weight(self) -> int:
        """Return numeric weight for comparison (higher = more severe)."""
        weights = {
            Severity.CRITICAL: 3,
            Severity.WARNING: 2,
            Severity.SUGGESTION: 1,
        }
        return weights[self]

    @property
    def blocks_import(self) -> bool:
        return self is Severity.CRITICAL

    @classmethod
    def from_string(cls, value: str) -> Severity:
        """Parse a severity name case-insensitively.

        Raises:
            ValueError: If ``value`` is not a string naming a severity.
        """
        if not isinstance(value, str):
            raise ValueError(f"Unknown severity: {value!r}")
        try:
            return cls(value.strip().lower())
        except ValueError:
            raise ValueError(f"Unknown severity: {value!r}") from None

    def __lt__(self, other: Severity) -> bool:
        if not isinstance(other, Severity):
            return NotImplemented
        return self.weight < other.weight

    def __le__(self, other: Severity) -> bool:
        if not isinstance(other, Severity):
            return NotImplemented
        return self.weight <= other.weight

    def __gt__(self, other: Severity) -> bool:
        if not isinstance(other, Severity):
            return NotImplemented
        return self.weight > other.weight

    def __ge__(self, other: Severity) -> bool:
        if not isinstance(other, Severity):
            return NotImplemented
        return self.weight >= other.weight


class RuleKind(Enum):
    """What a rule checks.

    Attributes:
        REQUIRED: Field must be present and non-blank.
        FORMAT: Field must parse (date, number, year, enumerated value).
        RELATIONSHIP: Field must exist in, or relate to, the reference hierarchy.
        CONSISTENCY: Several fields of one record must agree.
        UNIQUENESS: Record must not repeat another record of the batch.
        RANGE: Numeric value must fall inside bounds.
    """

    REQUIRED = "required"
    FORMAT = "format"
    RELATIONSHIP = "relationship"
    CONSISTENCY = "consistency"
    UNIQUENESS = "uniqueness"
    RANGE = "range"


# =============================================================================
# Results
# =============================================================================


@dataclass(frozen=True, slots=True)
class Issue:
    """A data-quality finding for one field of one record.

    Attributes:
        row_index: Position of the record in its batch (plus any row offset).
        field: Record field the finding concerns.
        severity: Severity of the finding.
        message: Human-readable description.
        current_value: The offending value as found in the record.
        rule_name: Name of the rule that produced the finding, if any.
    """

    row_index: int
    field: str
    severity: Severity
    message: str
    current_value: Any = None
    rule_name: str | None = None

    @property
    def is_critical(self) -> bool:
        return self.severity is Severity.CRITICAL

    def to_dict(self) -> dict[str, Any]:
        """Convert to the wire shape used by the import API."""
        result: dict[str, Any] = {
            "rowIndex": self.row_index,
            "columnName": self.field,
            "severity": self.severity.value,
            "message": self.message,
            "currentValue": self.current_value,
        }
        if self.rule_name:
            result["ruleName"] = self.rule_name
        return result

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Self:
        """Create an Issue from its wire shape (or snake_case keys).

        Raises:
            KeyError: If the row index, field or severity is missing.
            ValueError: If the severity is unknown or not a string.
        """
        row_index = data["rowIndex"] if "rowIndex" in data else data["row_index"]
        field_name = data["columnName"] if "columnName" in data else data["field"]
        severity = data["severity"]
        return cls(
            row_index=int(row_index),
            field=str(field_name),
            severity=severity if isinstance(severity, Severity) else Severity.from_string(severity),
            message=str(data.get("message", "")),
            current_value=data.get("currentValue", data.get("current_value")),
            rule_name=data.get("ruleName", data.get("rule_name")),
        )


@dataclass(frozen=True, slots=True)
class PredicateOutcome:
    """Rich predicate result.

    A predicate may return a plain ``bool``; returning an outcome lets it
    replace the rule's default message with a value-specific one.

    Example:
        >>> PredicateOutcome(False, "Total Budget (1,000) does not match sum (800)")
    """

    is_valid: bool
    message: str | None = None


@dataclass(frozen=True, slots=True)
class RuleDescriptor:
    """Read-only view of a registered rule, for tooling and tests."""

    name: str
    field: str
    kind: RuleKind
    severity: Severity
    message: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "field": self.field,
            "kind": self.kind.value,
            "severity": self.severity.value,
            "message": self.message,
        }


# =============================================================================
# Protocols
# =============================================================================


@runtime_checkable
class Predicate(Protocol):
    """Synchronous, side-effect free rule check.

    Receives the field value, the whole record, the whole batch and the
    reference snapshot. Returns ``True`` (no issue), ``False`` (issue with
    the rule's message) or a ``PredicateOutcome``.
    """

    def __call__(
        self,
        value: Any,
        record: Record,
        batch: Sequence[Record],
        refs: ReferenceSnapshot,
    ) -> bool | PredicateOutcome: ...
