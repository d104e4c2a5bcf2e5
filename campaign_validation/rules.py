"""Rule registry and the canonical campaign-record rule set.

A rule binds one record field to a synchronous predicate
``(value, record, batch, refs) -> bool | PredicateOutcome`` and declares the
kind of check, its severity and a default message. ``initialize_rules``
builds the canonical set in a fixed order so that issues for a record always
come out in the same sequence:

    1. required fields (critical) and blank optional budgets (warning)
    2. format checks, including the media-dependent reach/TRP requirements
    3. flat membership against the reference snapshot
    4. Category-Range consistency and campaign placement
    5. budget total vs. monthly distribution
    6. date order
    7. year and ABP-cycle consistency
    8. duplicate rows

Key Components:
    - Rule: immutable rule definition
    - RuleRegistry: ordered, name-unique collection with introspection
    - RejectedPairing / REJECTED_CATEGORY_RANGE_PAIRS: explicit exception
      table for Category/Range pairings rejected regardless of membership
    - initialize_rules: builder for the canonical rule set

Example:
    >>> registry = initialize_rules(abp_cycle="ABP 2025")
    >>> [d.name for d in registry.list_rules()][:2]
    ['required:Category', 'required:Range']
"""

from __future__ import annotations

import inspect
from collections.abc import Callable, Iterator, Mapping, Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from campaign_validation.base import (
    PredicateOutcome,
    Record,
    RuleDescriptor,
    RuleKind,
    Severity,
)
from campaign_validation.exceptions import RuleRegistrationError
from campaign_validation.logging import get_logger
from campaign_validation.parsing import (
    as_text,
    extract_year,
    is_blank,
    normalize,
    parse_date,
    parse_number,
)
from campaign_validation.reference import EntityKind, Relation


if TYPE_CHECKING:
    from campaign_validation.reference import ReferenceSnapshot


logger = get_logger(__name__)

PredicateResult = bool | PredicateOutcome
PredicateFn = Callable[[Any, Record, Sequence[Record], "ReferenceSnapshot"], PredicateResult]


# =============================================================================
# Field Layout
# =============================================================================

REQUIRED_FIELDS: tuple[str, ...] = (
    "Category",
    "Range",
    "Campaign",
    "Campaign Archetype",
    "Media",
    "Media Subtype",
    "Initial Date",
    "End Date",
    "Total Budget",
    "Burst",
    "Playbook ID",
    "Total Weeks",
    "Total WOA",
    "Total WOFF",
)

MONTH_FIELDS: tuple[str, ...] = (
    "Jan", "Feb", "Mar", "Apr", "May", "Jun",
    "Jul", "Aug", "Sep", "Oct", "Nov", "Dec",
)

_MONTH_NAMES: dict[str, str] = {
    "Jan": "January", "Feb": "February", "Mar": "March", "Apr": "April",
    "May": "May", "Jun": "June", "Jul": "July", "Aug": "August",
    "Sep": "September", "Oct": "October", "Nov": "November", "Dec": "December",
}

QUARTER_FIELDS: tuple[str, ...] = ("Q1 Budget", "Q2 Budget", "Q3 Budget", "Q4 Budget")

# Canonical field -> accepted column names, canonical first.
FIELD_ALIASES: dict[str, tuple[str, ...]] = {
    "Media": ("Media", "Media Type"),
    "Media Subtype": ("Media Subtype", "Media Sub Type"),
    "Initial Date": ("Initial Date", "Start Date"),
    "Total Budget": ("Total Budget", "Budget"),
    "Total R1+ (%)": ("Total R1+ (%)", "Total R1+", "R1+"),
    "Total R3+ (%)": ("Total R3+ (%)", "Total R3+", "R3+"),
    **{
        month: (month, f"{month} Budget", _MONTH_NAMES[month])
        for month in MONTH_FIELDS
    },
}

# Columns every uploaded file must carry, checked on its first row.
EXPECTED_COLUMNS: tuple[str, ...] = (
    "Category", "Range", "Campaign", "Playbook ID", "Campaign Archetype", "Burst",
    "Media", "Media Subtype", "Initial Date", "End Date", "Total Weeks", "Total Budget",
    *MONTH_FIELDS,
    "Total WOA", "Total WOFF", "Total R1+ (%)", "Total R3+ (%)",
)

UNIQUENESS_FIELDS: tuple[str, ...] = (
    "Campaign", "Country", "Category", "Range", "Media", "Media Subtype",
    "PM Type", "Business Unit", "Initial Date", "End Date",
)

CAMPAIGN_ARCHETYPES: tuple[str, ...] = (
    "Innovation",
    "Base Business (Maintenance)",
    "Range Extension",
)

DEFAULT_MEDIA_TYPES: tuple[str, ...] = ("Digital", "Traditional")

TV_SUBTYPE_MARKERS: tuple[str, ...] = ("tv", "television")
R1_SUBTYPE_MARKERS: tuple[str, ...] = (
    "pm & ff",
    "influencer amplification",
    "influencers amplification",
    "other digital",
    "open tv",
    "paid tv",
)
R3_SUBTYPE_MARKERS: tuple[str, ...] = ("open tv", "paid tv")

_PERFORMANCE_PM_TYPES = ("GR Only", "PM Advanced", "Full Funnel Basic", "Full Funnel Advanced", "PM & FF")
_ALL_PM_TYPES = (*_PERFORMANCE_PM_TYPES, "Non PM")
_BROADCAST_PM_TYPES = ("Non PM", "GR Only")

# Media subtype marker -> allowed PM Types. Markers are matched as substrings
# of the lower-cased subtype, in this order.
PM_TYPE_COMBINATIONS: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("pm & ff", _PERFORMANCE_PM_TYPES),
    ("influencers amplification", _PERFORMANCE_PM_TYPES),
    ("influencers amp.", _PERFORMANCE_PM_TYPES),
    ("influencers organic", ("Non PM",)),
    ("influencers org.", ("Non PM",)),
    ("influencers", _ALL_PM_TYPES),
    ("other digital", _ALL_PM_TYPES),
    ("search", _PERFORMANCE_PM_TYPES),
    ("paid search", _PERFORMANCE_PM_TYPES),
    ("open tv", _BROADCAST_PM_TYPES),
    ("paid tv", _BROADCAST_PM_TYPES),
    ("ooh", _BROADCAST_PM_TYPES),
    ("out of home", _BROADCAST_PM_TYPES),
    ("outdoor", _BROADCAST_PM_TYPES),
    ("radio", _BROADCAST_PM_TYPES),
    ("others", _BROADCAST_PM_TYPES),
)

# Names of rules other components refer to.
CAMPAIGN_EXISTS = "relationship:campaign_exists"
RANGE_EXISTS = "relationship:range_exists"
CATEGORY_RANGE_CONSISTENCY = "consistency:category_range"
CAMPAIGN_PLACEMENT = "consistency:campaign_range"
BUDGET_CONSISTENCY = "consistency:budget_distribution"
DATE_ORDER = "consistency:date_order"
DUPLICATE_ROW = "uniqueness:row"


def column_names(field: str) -> tuple[str, ...]:
    """Column names accepted for ``field``, canonical first."""
    return FIELD_ALIASES.get(field, (field,))


def field_present(record: Record, field: str) -> bool:
    """Whether the record carries ``field`` under any accepted column name."""
    return any(name in record for name in column_names(field))


def get_field(record: Record, field: str) -> Any:
    """Value of ``field`` from its first present column, else ``None``."""
    for name in column_names(field):
        if name in record:
            return record[name]
    return None


# =============================================================================
# Rule Definition
# =============================================================================


@dataclass(frozen=True, slots=True)
class Rule:
    """A single validation rule.

    Attributes:
        field: Canonical record field the rule is bound to.
        kind: What the rule checks.
        severity: Severity of the issue produced when the predicate fails.
        message: Default issue message.
        predicate: Synchronous check; see ``campaign_validation.base.Predicate``.
        name: Unique name within a registry. Defaults to ``"{kind}:{field}"``.
    """

    field: str
    kind: RuleKind
    severity: Severity
    message: str
    predicate: PredicateFn
    name: str = ""

    def __post_init__(self) -> None:
        if not self.name:
            object.__setattr__(self, "name", f"{self.kind.value}:{self.field}")

    @property
    def reports_missing_column(self) -> bool:
        """Critical required rules report an absent column instead of skipping."""
        return self.kind is RuleKind.REQUIRED and self.severity is Severity.CRITICAL

    def descriptor(self) -> RuleDescriptor:
        return RuleDescriptor(
            name=self.name,
            field=self.field,
            kind=self.kind,
            severity=self.severity,
            message=self.message,
        )


@dataclass(frozen=True, slots=True)
class RejectedPairing:
    """A Category/Range pairing that is rejected even if master data lists it.

    Attributes:
        category: Category name (compared case-insensitively).
        range: Range name (compared case-insensitively).
        reason: Why the pairing is rejected; shown in the issue message.
    """

    category: str
    range: str
    reason: str

    def matches(self, category: Any, range_name: Any) -> bool:
        return normalize(category) == normalize(self.category) and normalize(
            range_name
        ) == normalize(self.range)


REJECTED_CATEGORY_RANGE_PAIRS: tuple[RejectedPairing, ...] = (
    RejectedPairing(
        category="Lip",
        range="Acne",
        reason="the Acne range belongs to the Derma hierarchy and is not sold under Lip",
    ),
)


# =============================================================================
# Registry
# =============================================================================


class RuleRegistry:
    """Ordered collection of rules with unique names.

    Predicates must be synchronous: coroutine functions are refused at
    registration.

    Example:
        >>> registry = RuleRegistry()
        >>> registry.register(Rule("Burst", RuleKind.FORMAT, Severity.CRITICAL,
        ...                        "Burst must be a positive integer", is_positive_int))
        >>> len(registry)
        1
    """

    def __init__(self, rules: Sequence[Rule] = ()) -> None:
        self._rules: dict[str, Rule] = {}
        for rule in rules:
            self.register(rule)

    def register(self, rule: Rule) -> None:
        """Append a rule.

        Raises:
            RuleRegistrationError: If the name is taken or the predicate is a
                coroutine function.
        """
        if rule.name in self._rules:
            raise RuleRegistrationError(
                f"Rule '{rule.name}' is already registered", rule_name=rule.name
            )
        if inspect.iscoroutinefunction(rule.predicate) or inspect.iscoroutinefunction(
            getattr(rule.predicate, "__call__", None)
        ):
            raise RuleRegistrationError(
                f"Rule '{rule.name}' has an async predicate; predicates must be synchronous",
                rule_name=rule.name,
            )
        self._rules[rule.name] = rule

    def unregister(self, name: str) -> Rule | None:
        return self._rules.pop(name, None)

    def remove_where(self, condition: Callable[[Rule], bool]) -> int:
        """Remove every rule matching ``condition``; returns how many."""
        doomed = [name for name, rule in self._rules.items() if condition(rule)]
        for name in doomed:
            del self._rules[name]
        return len(doomed)

    def get(self, name: str) -> Rule | None:
        return self._rules.get(name)

    def rules(self) -> tuple[Rule, ...]:
        return tuple(self._rules.values())

    def for_field(self, field: str) -> list[Rule]:
        return [rule for rule in self._rules.values() if rule.field == field]

    def list_rules(self) -> list[RuleDescriptor]:
        """Descriptors of all rules, in evaluation order."""
        return [rule.descriptor() for rule in self._rules.values()]

    def copy(self) -> RuleRegistry:
        return RuleRegistry(self.rules())

    def clear(self) -> None:
        self._rules.clear()

    def __len__(self) -> int:
        return len(self._rules)

    def __iter__(self) -> Iterator[Rule]:
        return iter(tuple(self._rules.values()))

    def __contains__(self, name: object) -> bool:
        return name in self._rules


# =============================================================================
# Predicate Helpers
# =============================================================================


def _matches_any(subtype: Any, markers: tuple[str, ...]) -> bool:
    text = normalize(subtype)
    return any(marker in text for marker in markers)


def _fmt_amount(value: float) -> str:
    return f"{value:,.2f}"


def _required(value: Any, record: Record, batch: Sequence[Record], refs: ReferenceSnapshot) -> bool:
    return not is_blank(value)


def _not_blank(value: Any, record: Record, batch: Sequence[Record], refs: ReferenceSnapshot) -> bool:
    return not is_blank(value)


def _valid_date(value: Any, record: Record, batch: Sequence[Record], refs: ReferenceSnapshot) -> bool:
    return is_blank(value) or parse_date(value) is not None


def _positive_budget(value: Any, record: Record, batch: Sequence[Record], refs: ReferenceSnapshot) -> bool:
    if is_blank(value):
        return True
    number = parse_number(value)
    return number is not None and number > 0


def is_positive_int(value: Any, record: Record, batch: Sequence[Record], refs: ReferenceSnapshot) -> bool:
    if is_blank(value):
        return True
    number = parse_number(value)
    return number is not None and number.is_integer() and number > 0


def _valid_archetype(value: Any, record: Record, batch: Sequence[Record], refs: ReferenceSnapshot) -> PredicateResult:
    if is_blank(value):
        return True
    if normalize(value) in {normalize(a) for a in CAMPAIGN_ARCHETYPES}:
        return True
    return PredicateOutcome(
        False,
        f"Campaign Archetype '{as_text(value)}' is not valid. "
        f"Allowed values: {', '.join(CAMPAIGN_ARCHETYPES)}",
    )


def _valid_year(value: Any, record: Record, batch: Sequence[Record], refs: ReferenceSnapshot) -> bool:
    if is_blank(value):
        return any(
            parse_date(get_field(record, f)) is not None
            for f in ("Initial Date", "End Date")
        )
    year = extract_year(value)
    return year is not None and 2000 <= year <= 2100


def _woff_formula(value: Any, record: Record, batch: Sequence[Record], refs: ReferenceSnapshot) -> PredicateResult:
    raw = [get_field(record, f) for f in ("Total Weeks", "Total WOA")]
    if is_blank(value) or any(is_blank(v) for v in raw):
        return True
    weeks, woa, woff = (parse_number(v) for v in (*raw, value))
    if weeks is None or woa is None or woff is None:
        return PredicateOutcome(False, "Total Weeks, Total WOA and Total WOFF must be numbers")
    expected = weeks - woa
    if abs(woff - expected) < 0.01:
        return True
    return PredicateOutcome(
        False,
        f"Total WOFF ({woff:g}) must equal Total Weeks ({weeks:g}) minus Total WOA ({woa:g})",
    )


def _trps_for_tv(value: Any, record: Record, batch: Sequence[Record], refs: ReferenceSnapshot) -> PredicateResult:
    subtype = as_text(get_field(record, "Media Subtype"))
    number = parse_number(value)
    if _matches_any(subtype, TV_SUBTYPE_MARKERS):
        if is_blank(value):
            return PredicateOutcome(
                False,
                f"Total TRPs is required for TV campaign with Media Subtype '{subtype}'",
            )
        if number is None or number < 0:
            return PredicateOutcome(
                False,
                f"Total TRPs must be a non-negative number for TV campaigns. Current value: '{as_text(value)}'",
            )
        return True
    if is_blank(value) or number == 0:
        return True
    return PredicateOutcome(
        False,
        f"Total TRPs should only be used for TV campaigns. "
        f"Media Subtype '{subtype}' should not have TRP values.",
    )


def _reach_percentage(field: str, markers: tuple[str, ...]) -> PredicateFn:
    def check(value: Any, record: Record, batch: Sequence[Record], refs: ReferenceSnapshot) -> PredicateResult:
        subtype = as_text(get_field(record, "Media Subtype"))
        if is_blank(value):
            if _matches_any(subtype, markers):
                return PredicateOutcome(
                    False,
                    f"{field} is required for Media Subtype '{subtype}' and cannot be empty",
                )
            return True
        number = parse_number(value)
        if number is None or not 0 <= number <= 100:
            return PredicateOutcome(
                False,
                f"{field} must be a valid percentage (0-100%). Current value: '{as_text(value)}'",
            )
        return True

    return check


def _membership(kind: EntityKind, label: str, *, fail_closed: bool) -> PredicateFn:
    """Flat existence check; an absent section passes unless ``fail_closed``."""

    def check(value: Any, record: Record, batch: Sequence[Record], refs: ReferenceSnapshot) -> PredicateResult:
        if is_blank(value):
            return True
        if refs.exists(kind, value):
            return True
        if not refs.names(kind) and not fail_closed:
            return True
        return PredicateOutcome(False, f"{label} '{as_text(value)}' not found in master data")

    return check


def _valid_media(value: Any, record: Record, batch: Sequence[Record], refs: ReferenceSnapshot) -> PredicateResult:
    if is_blank(value):
        return True
    known = refs.names(EntityKind.MEDIA) or DEFAULT_MEDIA_TYPES
    if normalize(value) in {normalize(m) for m in known}:
        return True
    return PredicateOutcome(
        False,
        f"Media '{as_text(value)}' is not valid. Allowed values: {', '.join(known)}",
    )


def _valid_subtype(value: Any, record: Record, batch: Sequence[Record], refs: ReferenceSnapshot) -> PredicateResult:
    media = get_field(record, "Media")
    if is_blank(value):
        return True
    if not is_blank(media):
        allowed = refs.related_of(EntityKind.MEDIA, media, Relation.SUBTYPES)
        if not allowed:
            return True
        if normalize(value) in {normalize(s) for s in allowed}:
            return True
        return PredicateOutcome(
            False,
            f"Media Subtype '{as_text(value)}' is not valid for Media '{as_text(media)}'. "
            f"Allowed values: {', '.join(allowed)}",
        )
    if not refs.names(EntityKind.MEDIA_SUBTYPE) or refs.exists(EntityKind.MEDIA_SUBTYPE, value):
        return True
    return PredicateOutcome(False, f"Media Subtype '{as_text(value)}' not found in master data")


def _pm_type_combination(value: Any, record: Record, batch: Sequence[Record], refs: ReferenceSnapshot) -> PredicateResult:
    subtype = get_field(record, "Media Subtype")
    if is_blank(value) or is_blank(subtype):
        return True
    text = normalize(subtype)
    for marker, allowed in PM_TYPE_COMBINATIONS:
        if marker in text:
            if normalize(value) in {normalize(p) for p in allowed}:
                return True
            return PredicateOutcome(
                False,
                f"PM Type '{as_text(value)}' is not valid for Media Subtype '{as_text(subtype)}'. "
                f"Allowed PM Types: {', '.join(allowed)}",
            )
    return True


def _sub_region_matches(value: Any, record: Record, batch: Sequence[Record], refs: ReferenceSnapshot) -> PredicateResult:
    country = record.get("Country")
    if is_blank(value) or is_blank(country):
        return True
    expected = refs.related_of(EntityKind.COUNTRY, country, Relation.SUB_REGION)
    if not expected or normalize(expected[0]) == normalize(value):
        return True
    return PredicateOutcome(
        False,
        f"Country '{as_text(country)}' belongs to Sub Region '{expected[0]}', not '{as_text(value)}'",
    )


def _selected_country(selected: str) -> PredicateFn:
    def check(value: Any, record: Record, batch: Sequence[Record], refs: ReferenceSnapshot) -> PredicateResult:
        if is_blank(value) or normalize(value) == normalize(selected):
            return True
        return PredicateOutcome(
            False,
            f"Country '{as_text(value)}' does not match the selected country '{selected}'",
        )

    return check


def _category_range(rejected: tuple[RejectedPairing, ...]) -> PredicateFn:
    def check(value: Any, record: Record, batch: Sequence[Record], refs: ReferenceSnapshot) -> PredicateResult:
        category = record.get("Category")
        if is_blank(value) or is_blank(category):
            return True

        for pairing in rejected:
            if pairing.matches(category, value):
                return PredicateOutcome(
                    False,
                    f"Range '{as_text(value)}' is not valid for Category '{as_text(category)}': "
                    f"{pairing.reason}",
                )

        valid_ranges = refs.related_of(EntityKind.CATEGORY, category, Relation.RANGES)
        if not valid_ranges:
            # Category unknown to the map: the existence rules report it.
            return True
        if normalize(value) in {normalize(r) for r in valid_ranges}:
            return True
        shown = ", ".join(valid_ranges[:5]) + ("..." if len(valid_ranges) > 5 else "")
        return PredicateOutcome(
            False,
            f"Range '{as_text(value)}' is not valid for Category '{as_text(category)}'. "
            f"Valid ranges: {shown}",
        )

    return check


def accepted_ranges(refs: ReferenceSnapshot, campaign: Any) -> list[str]:
    """Primary range of a campaign followed by its compatibility ranges."""
    primary = refs.primary_range(campaign)
    ranges = [primary] if primary else []
    ranges.extend(refs.compatible_ranges(campaign))
    return ranges


def _campaign_in_range(value: Any, record: Record, batch: Sequence[Record], refs: ReferenceSnapshot) -> PredicateResult:
    range_name = record.get("Range")
    if is_blank(value) or is_blank(range_name):
        return True
    if refs.primary_range(value) is None:
        # Compatibility ranges only widen a known primary placement.
        return True
    ranges = accepted_ranges(refs, value)
    if normalize(range_name) in {normalize(r) for r in ranges}:
        return True
    return PredicateOutcome(
        False,
        f"Campaign '{as_text(value)}' does not belong to range '{as_text(range_name)}'. "
        f"It belongs to range '{ranges[0]}'",
    )


def sub_budget_values(record: Record) -> list[tuple[str, Any]]:
    """(field, raw value) pairs of the record's budget distribution.

    Monthly columns are used when any is present, quarterly columns
    otherwise.
    """
    monthly = [(m, get_field(record, m)) for m in MONTH_FIELDS if field_present(record, m)]
    if monthly:
        return monthly
    return [(q, record[q]) for q in QUARTER_FIELDS if q in record]


def check_budget_distribution(
    total_value: Any,
    record: Record,
    tolerance: float = 0.01,
) -> PredicateResult:
    """Check a total budget against its monthly (or quarterly) distribution.

    - a blank total with any sub-budget present is invalid
    - a total of zero or less is invalid
    - a total with every sub-budget blank is invalid
    - otherwise valid iff the sub-budgets sum to the total within ``tolerance``

    A single sub-budget carrying the whole total is therefore valid.
    """
    present = [(name, raw) for name, raw in sub_budget_values(record) if not is_blank(raw)]

    if is_blank(total_value):
        if present:
            return PredicateOutcome(
                False, "Total Budget is required when monthly budgets are provided"
            )
        return True

    total = parse_number(total_value)
    if total is None:
        # Reported by the Total Budget format rule.
        return True
    if total <= 0:
        return PredicateOutcome(False, "Total Budget must be greater than 0")
    if not present:
        return PredicateOutcome(
            False,
            f"Total Budget ({_fmt_amount(total)}) has no monthly distribution; "
            "at least one monthly budget is required",
        )

    sub_sum = 0.0
    for name, raw in present:
        amount = parse_number(raw)
        if amount is None:
            return PredicateOutcome(False, f"{name} budget '{as_text(raw)}' is not a number")
        sub_sum += amount
    if abs(total - sub_sum) < tolerance:
        return True
    return PredicateOutcome(
        False,
        f"Total Budget ({_fmt_amount(total)}) does not match the sum of monthly "
        f"budgets ({_fmt_amount(sub_sum)})",
    )


def _budget_consistency(tolerance: float) -> PredicateFn:
    def check(value: Any, record: Record, batch: Sequence[Record], refs: ReferenceSnapshot) -> PredicateResult:
        return check_budget_distribution(value, record, tolerance)

    return check


def _date_order(value: Any, record: Record, batch: Sequence[Record], refs: ReferenceSnapshot) -> PredicateResult:
    start = parse_date(get_field(record, "Initial Date"))
    end = parse_date(value)
    if start is None or end is None or end >= start:
        return True
    return PredicateOutcome(
        False,
        f"End Date ({end.isoformat()}) must be on or after Initial Date ({start.isoformat()})",
    )


def _year_matches_dates(value: Any, record: Record, batch: Sequence[Record], refs: ReferenceSnapshot) -> PredicateResult:
    year = extract_year(value)
    if year is None:
        return True
    for field in ("Initial Date", "End Date"):
        parsed = parse_date(get_field(record, field))
        if parsed is not None and parsed.year != year:
            return PredicateOutcome(
                False,
                f"Year {year} does not match {field} year {parsed.year}",
            )
    return True


def _date_in_cycle_year(field: str, cycle: str, target_year: int) -> PredicateFn:
    def check(value: Any, record: Record, batch: Sequence[Record], refs: ReferenceSnapshot) -> PredicateResult:
        parsed = parse_date(value)
        if parsed is None or parsed.year == target_year:
            return True
        return PredicateOutcome(
            False,
            f"{field} year ({parsed.year}) does not match {cycle} year ({target_year})",
        )

    return check


def _row_key(record: Record) -> tuple[str, ...]:
    return tuple(normalize(get_field(record, field)) for field in UNIQUENESS_FIELDS)


def _unique_row(value: Any, record: Record, batch: Sequence[Record], refs: ReferenceSnapshot) -> PredicateResult:
    if is_blank(value) or not batch:
        return True
    key = _row_key(record)
    matches = sum(1 for other in batch if isinstance(other, Mapping) and _row_key(other) == key)
    if matches <= 1:
        return True
    return PredicateOutcome(
        False,
        f"Duplicate row: {matches} rows share the same Campaign, Country, Category, Range, "
        "Media, Media Subtype, PM Type, Business Unit and dates",
    )


# =============================================================================
# Rule Set Builder
# =============================================================================


def initialize_rules(
    *,
    abp_cycle: str | None = None,
    selected_country: str | None = None,
    budget_tolerance: float = 0.01,
    rejected_pairs: tuple[RejectedPairing, ...] = REJECTED_CATEGORY_RANGE_PAIRS,
) -> RuleRegistry:
    """Build the canonical rule set, in evaluation order.

    Args:
        abp_cycle: Financial cycle identifier. When it embeds a year, both
            date fields must fall in that year.
        selected_country: When given, every record's Country must match it.
        budget_tolerance: Allowed gap between total and distributed budget.
        rejected_pairs: Category/Range pairings rejected regardless of
            master data.

    Returns:
        A new RuleRegistry.
    """
    C, W = Severity.CRITICAL, Severity.WARNING
    registry = RuleRegistry()
    add = registry.register

    for field in REQUIRED_FIELDS:
        add(Rule(field, RuleKind.REQUIRED, C, f"{field} is required", _required))
    for field in (*MONTH_FIELDS, *QUARTER_FIELDS):
        add(Rule(field, RuleKind.REQUIRED, W, f"{field} is blank", _not_blank, name=f"blank:{field}"))

    add(Rule("Total TRPs", RuleKind.CONSISTENCY, C,
             "Total TRPs is required for TV campaigns and must be a valid number",
             _trps_for_tv, name="consistency:tv_trps"))
    add(Rule("Total R1+ (%)", RuleKind.CONSISTENCY, C,
             "Total R1+ (%) is required for certain media types and must be a valid percentage",
             _reach_percentage("Total R1+ (%)", R1_SUBTYPE_MARKERS), name="consistency:r1_reach"))
    add(Rule("Total R3+ (%)", RuleKind.CONSISTENCY, C,
             "Total R3+ (%) is required for TV campaigns and must be a valid percentage",
             _reach_percentage("Total R3+ (%)", R3_SUBTYPE_MARKERS), name="consistency:r3_reach"))

    add(Rule("Year", RuleKind.FORMAT, W,
             "Year must be a 4-digit year between 2000 and 2100", _valid_year))
    for field in ("Initial Date", "End Date"):
        add(Rule(field, RuleKind.FORMAT, C,
                 f"{field} must be a valid date (e.g. 2025-01-31 or 31-Jan-25)", _valid_date))
    add(Rule("Total Budget", RuleKind.FORMAT, C,
             "Total Budget must be a number greater than 0", _positive_budget))
    add(Rule("Burst", RuleKind.FORMAT, C, "Burst must be a positive integer", is_positive_int))
    add(Rule("Total WOFF", RuleKind.CONSISTENCY, C,
             "Total WOFF must equal Total Weeks minus Total WOA", _woff_formula,
             name="consistency:woff_formula"))
    add(Rule("Campaign Archetype", RuleKind.FORMAT, C,
             "Campaign Archetype is not valid", _valid_archetype))

    add(Rule("Country", RuleKind.RELATIONSHIP, C, "Country not found in master data",
             _membership(EntityKind.COUNTRY, "Country", fail_closed=False),
             name="relationship:country_exists"))
    if selected_country:
        add(Rule("Country", RuleKind.CONSISTENCY, C,
                 "Country must match the selected country", _selected_country(selected_country),
                 name="consistency:selected_country"))
    add(Rule("Sub Region", RuleKind.RELATIONSHIP, W,
             "Sub Region does not match the Country", _sub_region_matches,
             name="relationship:sub_region"))
    add(Rule("Category", RuleKind.RELATIONSHIP, C, "Category not found in master data",
             _membership(EntityKind.CATEGORY, "Category", fail_closed=False),
             name="relationship:category_exists"))
    add(Rule("Range", RuleKind.RELATIONSHIP, C, "Range not found in master data",
             _membership(EntityKind.RANGE, "Range", fail_closed=True),
             name=RANGE_EXISTS))
    add(Rule("Campaign", RuleKind.RELATIONSHIP, C, "Campaign not found in master data",
             _membership(EntityKind.CAMPAIGN, "Campaign", fail_closed=True),
             name=CAMPAIGN_EXISTS))
    add(Rule("Media", RuleKind.RELATIONSHIP, C, "Media is not valid", _valid_media,
             name="relationship:media_exists"))
    add(Rule("Media Subtype", RuleKind.RELATIONSHIP, C,
             "Media Subtype is not valid for the selected Media", _valid_subtype,
             name="relationship:media_subtype"))
    add(Rule("PM Type", RuleKind.RELATIONSHIP, W, "PM Type must be a valid type from master data",
             _membership(EntityKind.PM_TYPE, "PM Type", fail_closed=False),
             name="relationship:pm_type_exists"))
    add(Rule("PM Type", RuleKind.CONSISTENCY, C,
             "Invalid PM Type for the selected Media Subtype", _pm_type_combination,
             name="consistency:pm_type_subtype"))

    add(Rule("Range", RuleKind.CONSISTENCY, C,
             "Range does not belong to the specified Category", _category_range(rejected_pairs),
             name=CATEGORY_RANGE_CONSISTENCY))
    add(Rule("Campaign", RuleKind.CONSISTENCY, C,
             "Campaign does not belong to the specified Range", _campaign_in_range,
             name=CAMPAIGN_PLACEMENT))

    add(Rule("Total Budget", RuleKind.CONSISTENCY, C,
             "Total Budget must equal the sum of monthly budgets",
             _budget_consistency(budget_tolerance), name=BUDGET_CONSISTENCY))

    add(Rule("End Date", RuleKind.CONSISTENCY, W,
             "End Date must be on or after Initial Date", _date_order, name=DATE_ORDER))

    add(Rule("Year", RuleKind.CONSISTENCY, C,
             "Year must match the years of Initial Date and End Date", _year_matches_dates,
             name="consistency:year_dates"))
    target_year = extract_year(abp_cycle) if abp_cycle else None
    if abp_cycle and target_year is not None:
        for field in ("Initial Date", "End Date"):
            add(Rule(field, RuleKind.CONSISTENCY, C,
                     f"{field} must fall in the ABP cycle year",
                     _date_in_cycle_year(field, abp_cycle.strip(), target_year),
                     name=f"consistency:abp_year:{field}"))
    elif abp_cycle:
        logger.warning("ABP cycle has no year; cycle rules skipped", abp_cycle=abp_cycle)

    add(Rule("Campaign", RuleKind.UNIQUENESS, C,
             "Duplicate row", _unique_row, name=DUPLICATE_ROW))

    logger.debug("Rules initialized", count=len(registry))
    return registry
