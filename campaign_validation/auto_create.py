"""Auto-create mode.

In auto-create mode an unknown Campaign is no longer a blocking error: it is
reported as a warning and provisionally created with status
``pending_review`` when the import runs. Every other entity kind stays
closed-world; in particular Ranges are never created and an unknown Range
remains critical.

What does not change is placement. A campaign that *is* known but is
declared under the wrong Range, or under a Category of a different Business
Unit, is reported as critical and is never "fixed" by creating a new
campaign. Per campaign, the three outcomes are:

    unknown to campaignToRange      -> warning, will be auto-created
    known, range and BU agree       -> no issue
    known, range or BU disagree     -> critical, names the actual placement

A declared range listed in the campaign's compatibility map counts as
agreeing.

Key Components:
    - AutoCreateValidator: RecordValidator with the auto-create rule policy
      and the session-deduplicated creation workflow
    - AutoCreateSession: run-scoped record of what was created
    - CreationResult / RangeLookupResult: outcomes of the store operations

Example:
    >>> with AutoCreateValidator(snapshot, repository) as validator:
    ...     issues = await validator.validate_all(rows)
    ...     if validator.can_import(issues):
    ...         for row in rows:
    ...             validator.validate_or_create_campaign(row["Campaign"], source="plan.csv")
    ...     summary = validator.get_auto_created_summary()
"""

from __future__ import annotations

import threading
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any, Self

from campaign_validation.base import PredicateOutcome, Record, RuleKind, Severity
from campaign_validation.exceptions import EntityCreationError, RangeNotFoundError, wrap_exception
from campaign_validation.logging import get_logger
from campaign_validation.parsing import as_text, is_blank, normalize
from campaign_validation.reference import EntityKind
from campaign_validation.repository import (
    STATUS_PENDING_REVIEW,
    EntityRepository,
    InMemoryEntityRepository,
)
from campaign_validation.rules import (
    CAMPAIGN_EXISTS,
    PredicateResult,
    Rule,
    RuleRegistry,
    accepted_ranges,
    get_field,
)
from campaign_validation.validator import RecordValidator


if TYPE_CHECKING:
    from campaign_validation.config import ValidatorConfig
    from campaign_validation.reference import ReferenceSnapshot


logger = get_logger(__name__)

STRICT_RANGE_EXISTS = "auto_create:range_exists"
CAMPAIGN_AUTO_CREATE = "auto_create:campaign_known"
CAMPAIGN_BUSINESS_UNIT_PLACEMENT = "auto_create:campaign_placement"


# =============================================================================
# Results and Session
# =============================================================================


@dataclass(frozen=True, slots=True)
class CreationResult:
    """Outcome of ``validate_or_create_campaign``."""

    kind: str
    id: str
    name: str
    created: bool

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "name": self.name, "created": self.created}


@dataclass(frozen=True, slots=True)
class RangeLookupResult:
    """Outcome of ``validate_range``."""

    id: str
    name: str
    exists: bool = True

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "name": self.name, "exists": self.exists}


class AutoCreateSession:
    """Entities created during one import run.

    Keys are ``"{kind}:{normalized name}"``. The session only grows until
    ``reset``. Callers sharing it across threads must hold ``lock`` around
    check-then-create sequences.
    """

    def __init__(self) -> None:
        self.lock = threading.RLock()
        self._created: dict[str, CreationResult] = {}

    @staticmethod
    def key(kind: str, name: str) -> str:
        return f"{kind}:{normalize(name)}"

    def get(self, kind: str, name: str) -> CreationResult | None:
        return self._created.get(self.key(kind, name))

    def add(self, result: CreationResult) -> None:
        self._created.setdefault(self.key(result.kind, result.name), result)

    def created(self, kind: str | None = None) -> list[CreationResult]:
        """Creations in order, optionally of one kind."""
        return [r for r in self._created.values() if kind is None or r.kind == kind]

    def reset(self) -> None:
        with self.lock:
            self._created.clear()

    def __len__(self) -> int:
        return len(self._created)


# =============================================================================
# Auto-create Rules
# =============================================================================


def _range_must_exist(value: Any, record: Record, batch: Sequence[Record], refs: ReferenceSnapshot) -> PredicateResult:
    if is_blank(value) or refs.exists(EntityKind.RANGE, value):
        return True
    return PredicateOutcome(
        False,
        f"Range '{as_text(value)}' not found in master data. "
        "Ranges are not auto-created and must be created manually",
    )


def _campaign_known(value: Any, record: Record, batch: Sequence[Record], refs: ReferenceSnapshot) -> PredicateResult:
    if is_blank(value):
        return True
    if not refs.exists(EntityKind.CAMPAIGN, value):
        return PredicateOutcome(
            False,
            f"Campaign '{as_text(value)}' not found and will be auto-created for review",
        )
    if refs.primary_range(value) is None:
        return PredicateOutcome(
            False,
            f"Campaign '{as_text(value)}' has no range mapping and will be reviewed after import",
        )
    return True


def _with_unit(label: str, name: str, unit: str | None) -> str:
    if unit:
        return f"{label} '{name}' (Business Unit '{unit}')"
    return f"{label} '{name}'"


def _campaign_placement(value: Any, record: Record, batch: Sequence[Record], refs: ReferenceSnapshot) -> PredicateResult:
    if is_blank(value):
        return True
    primary = refs.primary_range(value)
    if primary is None:
        # Unknown campaigns are reported by the auto-create warning rule.
        return True

    campaign = as_text(value)
    declared_range = as_text(record.get("Range"))
    category = as_text(record.get("Category"))
    actual_unit = refs.business_unit_of_range(primary)

    if declared_range and normalize(declared_range) not in {
        normalize(r) for r in accepted_ranges(refs, value)
    }:
        declared_unit = refs.business_unit_of_range(declared_range) or (
            refs.business_unit_of_category(category) if category else None
        )
        return PredicateOutcome(
            False,
            f"Campaign '{campaign}' belongs to {_with_unit('range', primary, actual_unit)}, "
            f"not {_with_unit('range', declared_range, declared_unit)}",
        )

    placed_range = declared_range or primary
    range_unit = refs.business_unit_of_range(placed_range)
    if not range_unit:
        return True
    placed = _with_unit("range", placed_range, range_unit)

    category_unit = refs.business_unit_of_category(category) if category else None
    if category_unit and normalize(category_unit) != normalize(range_unit):
        return PredicateOutcome(
            False,
            f"Campaign '{campaign}' belongs to {placed}, "
            f"but Category '{category}' belongs to Business Unit '{category_unit}'",
        )

    declared_unit = as_text(get_field(record, "Business Unit"))
    if declared_unit and normalize(declared_unit) != normalize(range_unit):
        return PredicateOutcome(
            False,
            f"Campaign '{campaign}' belongs to {placed}, not Business Unit '{declared_unit}'",
        )
    return True


def apply_auto_create_policy(registry: RuleRegistry) -> RuleRegistry:
    """Return a copy of ``registry`` with the auto-create rule policy applied.

    - the flat Campaign existence rule is removed
    - Range relationship rules are replaced by a strict critical existence
      rule
    - a warning rule announces campaigns that will be auto-created
    - a critical rule checks campaign placement against range and Business
      Unit

    Category-Range consistency and campaign placement rules are kept.
    """
    policy = registry.copy()
    policy.unregister(CAMPAIGN_EXISTS)
    removed = policy.remove_where(
        lambda rule: rule.field == "Range" and rule.kind is RuleKind.RELATIONSHIP
    )
    policy.register(
        Rule("Range", RuleKind.RELATIONSHIP, Severity.CRITICAL,
             "Range must exist and is never auto-created", _range_must_exist,
             name=STRICT_RANGE_EXISTS)
    )
    policy.register(
        Rule("Campaign", RuleKind.RELATIONSHIP, Severity.WARNING,
             "Campaign will be auto-created for review", _campaign_known,
             name=CAMPAIGN_AUTO_CREATE)
    )
    policy.register(
        Rule("Campaign", RuleKind.CONSISTENCY, Severity.CRITICAL,
             "Campaign does not belong to the declared Range and Business Unit",
             _campaign_placement, name=CAMPAIGN_BUSINESS_UNIT_PLACEMENT)
    )
    logger.debug("Auto-create policy applied", replaced_range_rules=removed, rules=len(policy))
    return policy


# =============================================================================
# Validator
# =============================================================================


class AutoCreateValidator(RecordValidator):
    """Record validator for auto-create imports.

    Args:
        snapshot: Reference hierarchy (or raw master data).
        repository: Entity store used by ``validate_or_create_campaign`` and
            ``validate_range``. Defaults to an empty in-memory store.
        config: Run settings.
        rules: Base rule registry; the auto-create policy is applied to a
            copy of it.
    """

    def __init__(
        self,
        snapshot: ReferenceSnapshot | Mapping[str, Any],
        repository: EntityRepository | None = None,
        *,
        config: ValidatorConfig | None = None,
        rules: RuleRegistry | None = None,
    ) -> None:
        super().__init__(snapshot, rules=rules, config=config)
        self._rules = apply_auto_create_policy(self._rules)
        self._repository: EntityRepository = (
            repository if repository is not None else InMemoryEntityRepository()
        )
        self._session = AutoCreateSession()
        self._disconnected = False

    @property
    def session(self) -> AutoCreateSession:
        return self._session

    @property
    def repository(self) -> EntityRepository:
        return self._repository

    def validate_or_create_campaign(self, name: str, source: str | None = None) -> CreationResult:
        """Return the campaign called ``name``, creating it if needed.

        Lookup order: the store (non-archived, case-insensitive), then this
        session's creations. A new campaign is created with status
        ``pending_review`` and a provenance note. Repeated calls with the
        same name converge on one entity, reported as created only once.

        Args:
            name: Campaign name; surrounding whitespace is ignored.
            source: Import source (e.g. a file name) recorded in the note.

        Raises:
            ValueError: If ``name`` is blank.
            EntityCreationError: If the store fails.
        """
        if not isinstance(name, str) or not name.strip():
            raise ValueError("Campaign name must be a non-empty string")
        clean = name.strip()

        with self._session.lock:
            existing = self._call_store("find", clean, self._repository.find_by_name_ci, "campaign", clean)
            if existing is not None:
                return CreationResult("campaign", existing.id, existing.name, created=False)

            cached = self._session.get("campaign", clean)
            if cached is not None:
                return CreationResult(cached.kind, cached.id, cached.name, created=False)

            origin = f" from {source}" if source else ""
            entity = self._call_store(
                "create",
                clean,
                self._repository.create,
                "campaign",
                name=clean,
                status=STATUS_PENDING_REVIEW,
                created_by=self._config.created_by,
                original_name=clean,
                notes=f"Auto-created during import{origin} on {datetime.now(UTC).isoformat()}",
            )
            result = CreationResult("campaign", entity.id, entity.name, created=True)
            self._session.add(result)

        logger.info("Campaign auto-created", campaign=clean, id=entity.id, source=source)
        return result

    def _call_store(self, action: str, label: str, method: Any, /, *args: Any, **kwargs: Any) -> Any:
        try:
            return method(*args, **kwargs)
        except Exception as e:
            raise wrap_exception(
                e,
                EntityCreationError,
                f"Campaign {action} failed for '{label}': {e}",
                entity_kind="campaign",
                entity_name=label,
            ) from e

    def validate_range(self, name: str) -> RangeLookupResult:
        """Look up a range in the store; ranges are never created.

        Raises:
            RangeNotFoundError: If no non-archived range matches.
        """
        clean = as_text(name)
        entity = self._repository.find_by_name_ci("range", clean) if clean else None
        if entity is None:
            raise RangeNotFoundError(clean)
        return RangeLookupResult(id=entity.id, name=entity.name, exists=True)

    def get_auto_created_summary(self) -> dict[str, Any]:
        campaigns = [r.to_dict() for r in self._session.created("campaign")]
        return {"campaigns": campaigns, "totalCreated": len(campaigns)}

    def reset_session(self) -> None:
        self._session.reset()

    def disconnect(self) -> None:
        """Close the store. Safe to call more than once."""
        if self._disconnected:
            return
        self._disconnected = True
        self._repository.close()

    def __enter__(self) -> Self:
        return self

    def __exit__(self, *args: Any) -> None:
        self.disconnect()


def create_validator(
    snapshot: ReferenceSnapshot | Mapping[str, Any],
    *,
    config: ValidatorConfig | None = None,
    repository: EntityRepository | None = None,
) -> RecordValidator:
    """Create the validator matching ``config.auto_create``.

    Example:
        >>> config = ValidatorConfig.load(search_config=True)
        >>> validator = create_validator(master_data, config=config)
    """
    if config is not None and config.auto_create:
        return AutoCreateValidator(snapshot, repository, config=config)
    return RecordValidator(snapshot, config=config)
