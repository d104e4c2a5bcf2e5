"""Reference snapshot of the campaign hierarchy.

The snapshot is built once per validation run from the "master data" bundle
the API layer loads (JSON document or database export) and is read-only
afterwards, so it can be shared freely between rules, validators and
threads.

Master data is loosely typed: list entries and map values are sometimes bare
strings and sometimes ``{"name": ...}`` objects, map values are sometimes a
single name and sometimes a list. All of that is resolved here, at the
loading boundary. Rules only ever see plain display names and only ever look
names up through case-insensitive, whitespace-trimmed keys.

Key Components:
    - EntityKind: the leaf sets (countries, categories, ranges, ...)
    - Relation: the directional maps between them
    - ReferenceSnapshot: normalized, indexed, immutable lookups

Example:
    >>> refs = ReferenceSnapshot.from_dict({
    ...     "ranges": ["Lip", {"name": "Acne"}],
    ...     "campaignToRangeMap": {"Disney": "Lip"},
    ...     "rangeToBusinessUnit": {"Lip": "Nivea", "Acne": "Derma"},
    ... })
    >>> refs.exists(EntityKind.RANGE, "  lip ")
    True
    >>> refs.related_of(EntityKind.CAMPAIGN, "DISNEY", Relation.BUSINESS_UNIT)
    ['Nivea']
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from enum import Enum
from pathlib import Path
from typing import Any, Self

from campaign_validation.exceptions import ConfigurationError, ReferenceDataError
from campaign_validation.logging import get_logger
from campaign_validation.parsing import normalize


logger = get_logger(__name__)


# =============================================================================
# Enums
# =============================================================================


class EntityKind(Enum):
    """Leaf sets held by the snapshot."""

    COUNTRY = "country"
    SUB_REGION = "sub_region"
    BUSINESS_UNIT = "business_unit"
    CATEGORY = "category"
    RANGE = "range"
    CAMPAIGN = "campaign"
    MEDIA = "media"
    MEDIA_SUBTYPE = "media_subtype"
    PM_TYPE = "pm_type"


class Relation(Enum):
    """Directional relations answered by ``ReferenceSnapshot.related_of``."""

    RANGES = "ranges"
    CATEGORIES = "categories"
    CAMPAIGNS = "campaigns"
    RANGE = "range"
    BUSINESS_UNIT = "business_unit"
    SUBTYPES = "subtypes"
    SUB_REGION = "sub_region"
    COUNTRIES = "countries"
    COMPATIBLE_RANGES = "compatible_ranges"
    COMPATIBLE_CAMPAIGNS = "compatible_campaigns"


# =============================================================================
# Section Layout
# =============================================================================

# Accepted master-data keys for each leaf set, first match wins.
LIST_SECTIONS: dict[EntityKind, tuple[str, ...]] = {
    EntityKind.COUNTRY: ("countries",),
    EntityKind.SUB_REGION: ("subRegions",),
    EntityKind.BUSINESS_UNIT: ("businessUnits",),
    EntityKind.CATEGORY: ("categories",),
    EntityKind.RANGE: ("ranges",),
    EntityKind.CAMPAIGN: ("campaigns",),
    EntityKind.MEDIA: ("mediaTypes", "media"),
    EntityKind.MEDIA_SUBTYPE: ("mediaSubtypes", "mediaSubTypes"),
    EntityKind.PM_TYPE: ("pmTypes",),
}

# Canonical map name -> accepted master-data keys.
MAP_SECTIONS: dict[str, tuple[str, ...]] = {
    "categoryToRanges": ("categoryToRanges",),
    "rangeToCategories": ("rangeToCategories",),
    "rangeToCampaigns": ("rangeToCampaigns",),
    "campaignToRange": ("campaignToRangeMap", "campaignToRange"),
    "rangeToBusinessUnit": ("rangeToBusinessUnit",),
    "categoryToBusinessUnit": ("categoryToBusinessUnit",),
    "mediaToSubtypes": ("mediaToSubtypes",),
    "campaignCompatibility": ("campaignCompatibilityMap", "campaignCompatibility"),
    "rangeCompatibility": ("rangeCompatibilityMap", "rangeCompatibility"),
    "countryToSubRegion": ("countryToSubRegionMap", "countryToSubRegion"),
    "subRegionToCountries": ("subRegionToCountriesMap", "subRegionToCountries"),
}

# Maps whose value is a single name.
SINGLE_VALUED_MAPS = frozenset({
    "campaignToRange",
    "rangeToBusinessUnit",
    "categoryToBusinessUnit",
    "countryToSubRegion",
})

RELATIONS: dict[tuple[EntityKind, Relation], str] = {
    (EntityKind.CATEGORY, Relation.RANGES): "categoryToRanges",
    (EntityKind.RANGE, Relation.CATEGORIES): "rangeToCategories",
    (EntityKind.RANGE, Relation.CAMPAIGNS): "rangeToCampaigns",
    (EntityKind.CAMPAIGN, Relation.RANGE): "campaignToRange",
    (EntityKind.RANGE, Relation.BUSINESS_UNIT): "rangeToBusinessUnit",
    (EntityKind.CATEGORY, Relation.BUSINESS_UNIT): "categoryToBusinessUnit",
    (EntityKind.CAMPAIGN, Relation.BUSINESS_UNIT): "campaignToBusinessUnit",
    (EntityKind.MEDIA, Relation.SUBTYPES): "mediaToSubtypes",
    (EntityKind.CAMPAIGN, Relation.COMPATIBLE_RANGES): "campaignCompatibility",
    (EntityKind.RANGE, Relation.COMPATIBLE_CAMPAIGNS): "rangeCompatibility",
    (EntityKind.COUNTRY, Relation.SUB_REGION): "countryToSubRegion",
    (EntityKind.SUB_REGION, Relation.COUNTRIES): "subRegionToCountries",
}

# Map keys that also count as members of a leaf set.
IMPLIED_MEMBERS: dict[EntityKind, tuple[str, ...]] = {
    EntityKind.CATEGORY: ("categoryToRanges",),
    EntityKind.RANGE: ("rangeToCategories", "rangeToCampaigns"),
    EntityKind.CAMPAIGN: ("campaignToRange",),
    EntityKind.MEDIA: ("mediaToSubtypes",),
    EntityKind.COUNTRY: ("countryToSubRegion",),
    EntityKind.SUB_REGION: ("subRegionToCountries",),
}


# =============================================================================
# Normalization
# =============================================================================


def _names_from(raw: Any) -> list[str]:
    """Flatten a string, ``{name}`` object or list of either into names."""
    if isinstance(raw, str):
        name = raw.strip()
        return [name] if name else []
    if isinstance(raw, Mapping):
        return _names_from(raw.get("name"))
    if isinstance(raw, list | tuple | set | frozenset):
        names: list[str] = []
        for item in raw:
            if isinstance(item, list | tuple | set | frozenset):
                logger.debug("Dropping nested list entry", entry=repr(item))
                continue
            names.extend(_names_from(item))
        return names
    if raw is not None:
        logger.debug("Dropping malformed entry", entry=repr(raw))
    return []


def _first_section(data: Mapping[str, Any], keys: tuple[str, ...]) -> tuple[str, Any] | None:
    for key in keys:
        if key in data and data[key] is not None:
            return key, data[key]
    return None


class _NameIndex:
    """Case-insensitive set of names that remembers display casing."""

    __slots__ = ("_names",)

    def __init__(self, names: Iterable[str] = ()) -> None:
        self._names: dict[str, str] = {}
        for name in names:
            self.add(name)

    def add(self, name: str) -> None:
        key = normalize(name)
        if key and key not in self._names:
            self._names[key] = name.strip()

    def __contains__(self, name: object) -> bool:
        return normalize(name) in self._names

    def __len__(self) -> int:
        return len(self._names)

    def display(self) -> tuple[str, ...]:
        return tuple(self._names.values())


class _RelationMap:
    """Case-insensitive multimap from a name to ordered, de-duplicated names."""

    __slots__ = ("_entries",)

    def __init__(self) -> None:
        self._entries: dict[str, tuple[str, list[str]]] = {}

    def add(self, key: str, values: Iterable[str]) -> None:
        norm = normalize(key)
        if not norm:
            return
        display, existing = self._entries.setdefault(norm, (key.strip(), []))
        seen = {normalize(v) for v in existing}
        for value in values:
            if normalize(value) not in seen:
                existing.append(value)
                seen.add(normalize(value))

    def get(self, key: Any) -> list[str]:
        entry = self._entries.get(normalize(key))
        return list(entry[1]) if entry else []

    def keys(self) -> tuple[str, ...]:
        return tuple(display for display, _ in self._entries.values())

    def items(self) -> Iterable[tuple[str, list[str]]]:
        for display, values in self._entries.values():
            yield display, list(values)

    def __contains__(self, key: object) -> bool:
        return normalize(key) in self._entries

    def __len__(self) -> int:
        return len(self._entries)


# =============================================================================
# Reference Snapshot
# =============================================================================


class ReferenceSnapshot:
    """Immutable, normalized view of the master data for one validation run.

    Lookups never raise on unknown names or missing sections: they return
    ``False``/``[]``/``None`` and leave the pass/fail decision to the rule.
    ``has_section`` tells a rule whether "unknown" means "not in the
    hierarchy" or "this part of the hierarchy was never supplied".

    Args:
        master_data: The raw bundle. Sections that are missing or of the
            wrong shape are treated as absent.
    """

    def __init__(self, master_data: Mapping[str, Any] | None = None) -> None:
        data: Mapping[str, Any] = master_data or {}
        self._lists: dict[EntityKind, _NameIndex] = {}
        self._listed: dict[EntityKind, _NameIndex] = {}
        self._maps: dict[str, _RelationMap] = {}
        self._sections: set[str] = set()

        for kind, keys in LIST_SECTIONS.items():
            found = _first_section(data, keys)
            index = _NameIndex()
            if found is not None:
                key, raw = found
                if isinstance(raw, list | tuple):
                    for name in _names_from(list(raw)):
                        index.add(name)
                    self._sections.add(kind.value)
                else:
                    logger.warning(
                        "Ignoring malformed master data section",
                        section=key,
                        expected="list",
                        actual=type(raw).__name__,
                    )
            self._listed[kind] = index

        for canonical, keys in MAP_SECTIONS.items():
            found = _first_section(data, keys)
            relation_map = _RelationMap()
            if found is not None:
                key, raw = found
                if isinstance(raw, Mapping):
                    for map_key, map_value in raw.items():
                        if not isinstance(map_key, str):
                            continue
                        names = _names_from(map_value)
                        if canonical in SINGLE_VALUED_MAPS:
                            names = names[:1]
                        if names:
                            relation_map.add(map_key, names)
                    self._sections.add(canonical)
                else:
                    logger.warning(
                        "Ignoring malformed master data section",
                        section=key,
                        expected="mapping",
                        actual=type(raw).__name__,
                    )
            self._maps[canonical] = relation_map

        self._derive_inverse("categoryToRanges", "rangeToCategories")
        self._derive_inverse("rangeToCategories", "categoryToRanges")
        self._derive_inverse("campaignToRange", "rangeToCampaigns")
        self._derive_inverse("campaignCompatibility", "rangeCompatibility")
        self._derive_inverse("countryToSubRegion", "subRegionToCountries")
        self._derive_inverse("subRegionToCountries", "countryToSubRegion", single=True)
        self._derive_campaign_business_units()

        for kind, listed in self._listed.items():
            index = _NameIndex(listed.display())
            for canonical in IMPLIED_MEMBERS.get(kind, ()):
                for name in self._maps[canonical].keys():
                    index.add(name)
            self._lists[kind] = index
        for canonical in ("rangeToBusinessUnit", "categoryToBusinessUnit"):
            for _, units in self._maps[canonical].items():
                for unit in units:
                    self._lists[EntityKind.BUSINESS_UNIT].add(unit)

        logger.debug(
            "Reference snapshot loaded",
            sections=sorted(self._sections),
            campaigns=len(self._lists[EntityKind.CAMPAIGN]),
            ranges=len(self._lists[EntityKind.RANGE]),
        )

    def _derive_inverse(self, source: str, target: str, *, single: bool = False) -> None:
        if target in self._sections or source not in self._sections:
            return
        inverse = self._maps[target]
        for key, values in self._maps[source].items():
            for value in values:
                if single and value in inverse:
                    continue
                inverse.add(value, [key])
        self._sections.add(target)

    def _derive_campaign_business_units(self) -> None:
        derived = _RelationMap()
        for campaign, ranges in self._maps["campaignToRange"].items():
            units = self._maps["rangeToBusinessUnit"].get(ranges[0])
            if units:
                derived.add(campaign, units[:1])
        self._maps["campaignToBusinessUnit"] = derived
        if "campaignToRange" in self._sections and "rangeToBusinessUnit" in self._sections:
            self._sections.add("campaignToBusinessUnit")

    # -------------------------------------------------------------------------
    # Construction
    # -------------------------------------------------------------------------

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Self:
        """Build a snapshot from a master-data bundle.

        Raises:
            ReferenceDataError: If ``data`` is not a mapping.
        """
        if not isinstance(data, Mapping):
            raise ReferenceDataError(
                "Master data must be a mapping",
                details={"actual": type(data).__name__},
            )
        return cls(data)

    @classmethod
    def from_file(cls, path: Path | str) -> Self:
        """Load a master-data bundle from a JSON or YAML file.

        Raises:
            ReferenceDataError: If the file cannot be read or parsed, or does
                not hold a mapping.
        """
        from campaign_validation.config import load_document

        try:
            data = load_document(path)
        except ConfigurationError as e:
            raise ReferenceDataError(
                f"Cannot load master data: {e.message}",
                source=str(path),
                cause=e,
            ) from e
        if not isinstance(data, Mapping):
            raise ReferenceDataError(
                "Master data file does not contain a mapping",
                source=str(path),
            )
        logger.info("Master data loaded", source=str(path))
        return cls(data)

    # -------------------------------------------------------------------------
    # Lookups
    # -------------------------------------------------------------------------

    def exists(self, kind: EntityKind, name: Any) -> bool:
        """Whether ``name`` is a known member of ``kind``.

        Membership includes the explicit list and the keys of the maps that
        own the kind (a campaign key of ``campaignToRange`` exists even when
        the ``campaigns`` list omits it).
        """
        return name in self._lists[kind]

    def listed(self, kind: EntityKind, name: Any) -> bool:
        """Whether ``name`` appears in the explicit list section of ``kind``."""
        return name in self._listed[kind]

    def related_of(self, kind: EntityKind, name: Any, relation: Relation) -> list[str]:
        """Names related to ``name`` through ``relation``.

        Raises:
            ValueError: If the snapshot has no such relation for ``kind``.
        """
        try:
            canonical = RELATIONS[(kind, relation)]
        except KeyError:
            raise ValueError(
                f"No relation {relation.value!r} for {kind.value!r}"
            ) from None
        return self._maps[canonical].get(name)

    def compatible_ranges(self, campaign: Any) -> list[str]:
        """Ranges a campaign is also valid under, beyond its primary range."""
        return self._maps["campaignCompatibility"].get(campaign)

    def primary_range(self, campaign: Any) -> str | None:
        ranges = self._maps["campaignToRange"].get(campaign)
        return ranges[0] if ranges else None

    def business_unit_of_range(self, range_name: Any) -> str | None:
        units = self._maps["rangeToBusinessUnit"].get(range_name)
        return units[0] if units else None

    def business_unit_of_campaign(self, campaign: Any) -> str | None:
        units = self._maps["campaignToBusinessUnit"].get(campaign)
        return units[0] if units else None

    def business_unit_of_category(self, category: Any) -> str | None:
        """Business unit owning a category.

        Falls back to the business unit of the category's ranges when
        ``categoryToBusinessUnit`` has no entry and all ranges agree.
        """
        units = self._maps["categoryToBusinessUnit"].get(category)
        if units:
            return units[0]
        range_units = {
            normalize(unit): unit
            for range_name in self._maps["categoryToRanges"].get(category)
            if (unit := self.business_unit_of_range(range_name))
        }
        if len(range_units) == 1:
            return next(iter(range_units.values()))
        return None

    def has_section(self, name: str) -> bool:
        """Whether a section was supplied (or derived) in this snapshot.

        Accepts a canonical map name (``"categoryToRanges"``) or an
        ``EntityKind`` value (``"campaign"``).
        """
        return name in self._sections

    def names(self, kind: EntityKind) -> tuple[str, ...]:
        """Display names of ``kind``, in load order."""
        return self._lists[kind].display()

    def to_dict(self) -> dict[str, Any]:
        """Emit the normalized bundle using canonical section names."""
        result: dict[str, Any] = {}
        for kind, keys in LIST_SECTIONS.items():
            if kind.value in self._sections:
                result[keys[0]] = list(self._listed[kind].display())
        for canonical in MAP_SECTIONS:
            if canonical in self._sections:
                result[canonical] = {
                    key: values[0] if canonical in SINGLE_VALUED_MAPS else values
                    for key, values in self._maps[canonical].items()
                }
        return result

    def __repr__(self) -> str:
        return f"ReferenceSnapshot(sections={sorted(self._sections)!r})"
