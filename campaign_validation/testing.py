"""Testing utilities for campaign validation.

Sample master data, records and assertion helpers shared by the test suite
and by callers writing their own rules.

The sample hierarchy has two business units:

    Nivea  -> Lip (Lip: Disney, Lip Butter), Deo (Deo: Black & White)
    Derma  -> Acne (Acne: Acne Fighting Gel, Triple Effect),
              Anti Age (Anti Age, Hyaluron: Cellular Filler)

"Cellular Filler" has primary range Hyaluron and is also accepted under
Anti Age through the compatibility map.

Example:
    >>> from campaign_validation.testing import create_sample_record, create_sample_snapshot
    >>> validator = RecordValidator(create_sample_snapshot())
    >>> validator.validate_record(create_sample_record(), 0)
    []
"""

from __future__ import annotations

import copy
from collections.abc import Mapping, Sequence
from typing import TYPE_CHECKING, Any

from campaign_validation.base import Issue, Severity
from campaign_validation.reference import ReferenceSnapshot
from campaign_validation.repository import InMemoryEntityRepository
from campaign_validation.rules import MONTH_FIELDS


if TYPE_CHECKING:
    import polars as pl


# =============================================================================
# Sample Data
# =============================================================================

_SAMPLE_MASTER_DATA: dict[str, Any] = {
    "businessUnits": ["Nivea", "Derma"],
    "countries": ["Singapore", {"name": "Thailand"}],
    "subRegions": ["South East Asia"],
    "countryToSubRegionMap": {"Singapore": "South East Asia", "Thailand": "South East Asia"},
    "categories": ["Lip", "Deo", "Acne", "Anti Age"],
    "ranges": ["Lip", "Deo", "Acne", "Anti Age", {"name": "Hyaluron"}],
    "campaigns": [
        "Disney",
        "Lip Butter",
        "Black & White",
        "Acne Fighting Gel",
        "Triple Effect",
        "Cellular Filler",
    ],
    "categoryToRanges": {
        "Lip": ["Lip"],
        "Deo": ["Deo"],
        "Acne": ["Acne"],
        "Anti Age": ["Anti Age", "Hyaluron"],
    },
    "campaignToRangeMap": {
        "Disney": "Lip",
        "Lip Butter": "Lip",
        "Black & White": "Deo",
        "Acne Fighting Gel": "Acne",
        "Triple Effect": {"name": "Acne"},
        "Cellular Filler": "Hyaluron",
    },
    "rangeToBusinessUnit": {
        "Lip": "Nivea",
        "Deo": "Nivea",
        "Acne": "Derma",
        "Anti Age": "Derma",
        "Hyaluron": "Derma",
    },
    "categoryToBusinessUnit": {
        "Lip": "Nivea",
        "Deo": "Nivea",
        "Acne": "Derma",
        "Anti Age": "Derma",
    },
    "campaignCompatibilityMap": {"Cellular Filler": ["Anti Age"]},
    "mediaTypes": ["Digital", "Traditional"],
    "mediaToSubtypes": {
        "Digital": ["PM & FF", "Search", "Influencers Organic", "Other Digital"],
        "Traditional": ["Open TV", "Paid TV", "OOH", "Radio"],
    },
    "pmTypes": [
        "Non PM",
        "GR Only",
        "PM Advanced",
        "Full Funnel Basic",
        "Full Funnel Advanced",
        "PM & FF",
    ],
}


def create_sample_master_data() -> dict[str, Any]:
    """Return a fresh copy of the sample master-data bundle."""
    return copy.deepcopy(_SAMPLE_MASTER_DATA)


def create_sample_snapshot(**overrides: Any) -> ReferenceSnapshot:
    """Create a snapshot of the sample master data.

    Args:
        **overrides: Sections to replace (or add) in the bundle.

    Example:
        >>> refs = create_sample_snapshot(campaignCompatibilityMap={})
    """
    data = create_sample_master_data()
    data.update(overrides)
    return ReferenceSnapshot.from_dict(data)


def create_sample_record(overrides: Mapping[str, Any] | None = None) -> dict[str, Any]:
    """Create a record that passes every default rule.

    A Disney / Lip / Nivea digital line in Singapore, January to March 2025,
    with a budget of 1,000 spread over three months.

    Args:
        overrides: Field values to replace. A value of ``...`` removes the
            field.
    """
    record: dict[str, Any] = {
        "Year": 2025,
        "Country": "Singapore",
        "Sub Region": "South East Asia",
        "Business Unit": "Nivea",
        "Category": "Lip",
        "Range": "Lip",
        "Campaign": "Disney",
        "Playbook ID": "PB-001",
        "Campaign Archetype": "Innovation",
        "Burst": 1,
        "Media": "Digital",
        "Media Subtype": "PM & FF",
        "PM Type": "PM & FF",
        "Initial Date": "2025-01-06",
        "End Date": "2025-03-30",
        "Total Weeks": 12,
        "Total WOA": 10,
        "Total WOFF": 2,
        "Total Budget": 1000,
        **{month: 0 for month in MONTH_FIELDS},
        "Total TRPs": "",
        "Total R1+ (%)": "45%",
        "Total R3+ (%)": "",
    }
    record.update({"Jan": 500, "Feb": 300, "Mar": 200})
    for key, value in (overrides or {}).items():
        if value is ...:
            record.pop(key, None)
        else:
            record[key] = value
    return record


def create_sample_frame(records: Sequence[Mapping[str, Any]] | None = None) -> pl.DataFrame:
    """Create a polars DataFrame of records, every value as text.

    Spreadsheet imports arrive as text; stringifying also keeps columns of
    mixed numbers and blanks in one dtype.
    """
    import polars as pl

    rows = records if records is not None else [create_sample_record()]
    return pl.DataFrame(
        [
            {key: None if value is None else str(value) for key, value in row.items()}
            for row in rows
        ]
    )


def create_sample_repository(*campaigns: str, ranges: Sequence[str] = ()) -> InMemoryEntityRepository:
    """Create an in-memory store seeded with campaigns and ranges."""
    repository = InMemoryEntityRepository()
    for name in campaigns:
        repository.seed("campaign", name)
    for name in ranges:
        repository.seed("range", name)
    return repository


# =============================================================================
# Assertion Helpers
# =============================================================================


def issues_for(
    issues: Sequence[Issue],
    *,
    field: str | None = None,
    severity: Severity | None = None,
    rule_name: str | None = None,
) -> list[Issue]:
    """Filter issues by field, severity and rule name."""
    return [
        issue
        for issue in issues
        if (field is None or issue.field == field)
        and (severity is None or issue.severity is severity)
        and (rule_name is None or issue.rule_name == rule_name)
    ]


def assert_issues(
    issues: Sequence[Issue],
    *,
    field: str | None = None,
    severity: Severity | None = None,
    count: int | None = None,
    min_count: int | None = None,
    message_contains: str | None = None,
) -> list[Issue]:
    """Assert the issues matching ``field``/``severity`` meet expectations.

    Returns:
        The matching issues.

    Raises:
        AssertionError: If expectations not met.

    Example:
        >>> assert_issues(issues, field="Campaign", severity=Severity.CRITICAL, min_count=1)
    """
    matching = issues_for(issues, field=field, severity=severity)
    described = [f"{i.field}/{i.severity.value}: {i.message}" for i in issues]

    if count is not None:
        assert len(matching) == count, (
            f"Expected {count} issue(s) for field={field} severity={severity}, "
            f"got {len(matching)}: {described}"
        )

    if min_count is not None:
        assert len(matching) >= min_count, (
            f"Expected at least {min_count} issue(s) for field={field} severity={severity}, "
            f"got {len(matching)}: {described}"
        )

    if message_contains is not None:
        assert any(message_contains in issue.message for issue in matching), (
            f"No matching issue mentions {message_contains!r}: {described}"
        )

    return matching
