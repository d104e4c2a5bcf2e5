"""Tests for campaign_validation.auto_create module."""

from __future__ import annotations

import threading

import pytest

from campaign_validation.auto_create import (
    CAMPAIGN_AUTO_CREATE,
    CAMPAIGN_BUSINESS_UNIT_PLACEMENT,
    STRICT_RANGE_EXISTS,
    AutoCreateSession,
    AutoCreateValidator,
    CreationResult,
    apply_auto_create_policy,
    create_validator,
)
from campaign_validation.base import Severity
from campaign_validation.config import ValidatorConfig
from campaign_validation.exceptions import EntityCreationError, RangeNotFoundError
from campaign_validation.repository import (
    STATUS_PENDING_REVIEW,
    InMemoryEntityRepository,
    StoredEntity,
)
from campaign_validation.rules import (
    CAMPAIGN_EXISTS,
    CAMPAIGN_PLACEMENT,
    CATEGORY_RANGE_CONSISTENCY,
    RANGE_EXISTS,
    initialize_rules,
)
from campaign_validation.testing import (
    assert_issues,
    create_sample_record,
    create_sample_repository,
    create_sample_snapshot,
    issues_for,
)
from campaign_validation.validator import RecordValidator


@pytest.fixture
def repository():
    return InMemoryEntityRepository()


@pytest.fixture
def validator(snapshot, repository):
    return AutoCreateValidator(snapshot, repository)


class _ForgetfulRepository(InMemoryEntityRepository):
    """Store whose lookups never find anything."""

    def find_by_name_ci(self, kind, name):
        return None


class _BrokenLookupRepository(InMemoryEntityRepository):
    """Store whose lookups fail."""

    def find_by_name_ci(self, kind, name):
        raise ConnectionError("lookup down")


class TestPolicy:
    """Tests for apply_auto_create_policy."""

    def test_rules_replaced(self):
        """Test existence rules are swapped for the auto-create rules."""
        base = initialize_rules()
        policy = apply_auto_create_policy(base)
        assert CAMPAIGN_EXISTS not in policy
        assert RANGE_EXISTS not in policy
        assert STRICT_RANGE_EXISTS in policy
        assert CAMPAIGN_AUTO_CREATE in policy
        assert CAMPAIGN_BUSINESS_UNIT_PLACEMENT in policy

    def test_consistency_rules_kept(self):
        """Test Category-Range and placement rules survive."""
        policy = apply_auto_create_policy(initialize_rules())
        assert CATEGORY_RANGE_CONSISTENCY in policy
        assert CAMPAIGN_PLACEMENT in policy

    def test_original_untouched(self):
        """Test the policy is applied to a copy."""
        base = initialize_rules()
        apply_auto_create_policy(base)
        assert CAMPAIGN_EXISTS in base
        assert STRICT_RANGE_EXISTS not in base

    def test_severities(self):
        """Test the unknown-campaign rule warns and the others block."""
        policy = apply_auto_create_policy(initialize_rules())
        assert policy.get(CAMPAIGN_AUTO_CREATE).severity is Severity.WARNING
        assert policy.get(STRICT_RANGE_EXISTS).severity is Severity.CRITICAL
        assert policy.get(CAMPAIGN_BUSINESS_UNIT_PLACEMENT).severity is Severity.CRITICAL


class TestAutoCreateRules:
    """Tests for record validation in auto-create mode."""

    def test_valid_record(self, validator):
        """Test the sample record stays valid."""
        assert validator.validate_record(create_sample_record(), 0) == []

    def test_unknown_campaign_warns_once(self, validator):
        """Test an unknown campaign produces a single warning."""
        issues = validator.validate_record(create_sample_record({"Campaign": "Brand New"}), 0)
        assert_issues(issues, field="Campaign", severity=Severity.CRITICAL, count=0)
        matching = assert_issues(issues, field="Campaign", severity=Severity.WARNING, count=1)
        assert matching[0].message == "Campaign 'Brand New' not found and will be auto-created for review"
        assert validator.can_import(issues)

    def test_known_campaign_without_range(self):
        """Test a listed campaign with no range mapping is flagged for review."""
        snapshot = create_sample_snapshot(campaigns=["Disney", "Orphan"])
        validator = AutoCreateValidator(snapshot)
        issues = validator.validate_record(create_sample_record({"Campaign": "Orphan"}), 0)
        matching = issues_for(issues, rule_name=CAMPAIGN_AUTO_CREATE)
        assert len(matching) == 1
        assert "has no range mapping" in matching[0].message
        assert validator.can_import(issues)

    def test_campaign_under_other_business_unit(self, validator):
        """Test a Nivea campaign declared under a Derma range is critical."""
        record = create_sample_record({
            "Business Unit": "Derma",
            "Category": "Acne",
            "Range": "Acne",
        })
        issues = validator.validate_record(record, 0)
        matching = issues_for(issues, rule_name=CAMPAIGN_BUSINESS_UNIT_PLACEMENT)
        assert len(matching) == 1
        assert matching[0].message == (
            "Campaign 'Disney' belongs to range 'Lip' (Business Unit 'Nivea'), "
            "not range 'Acne' (Business Unit 'Derma')"
        )
        assert not validator.can_import(issues)

    def test_derma_campaign_under_nivea(self, validator):
        """Test the reverse direction is critical as well."""
        record = create_sample_record({"Campaign": "Acne Fighting Gel"})
        issues = validator.validate_record(record, 0)
        matching = issues_for(issues, rule_name=CAMPAIGN_BUSINESS_UNIT_PLACEMENT)
        assert len(matching) == 1
        assert matching[0].message == (
            "Campaign 'Acne Fighting Gel' belongs to range 'Acne' (Business Unit 'Derma'), "
            "not range 'Lip' (Business Unit 'Nivea')"
        )

    def test_declared_business_unit_mismatch(self, validator):
        """Test a wrong Business Unit column alone is critical."""
        issues = validator.validate_record(create_sample_record({"Business Unit": "Derma"}), 0)
        matching = assert_issues(issues, field="Campaign", severity=Severity.CRITICAL, count=1)
        assert matching[0].message == (
            "Campaign 'Disney' belongs to range 'Lip' (Business Unit 'Nivea'), "
            "not Business Unit 'Derma'"
        )

    def test_category_business_unit_mismatch(self, validator):
        """Test a category of another business unit is reported."""
        issues = validator.validate_record(create_sample_record({"Category": "Acne"}), 0)
        matching = issues_for(issues, rule_name=CAMPAIGN_BUSINESS_UNIT_PLACEMENT)
        assert len(matching) == 1
        assert matching[0].message.endswith("but Category 'Acne' belongs to Business Unit 'Derma'")

    def test_compatibility_range_accepted(self, validator):
        """Test a compatibility range counts as the campaign's range."""
        record = create_sample_record({
            "Business Unit": "Derma",
            "Category": "Anti Age",
            "Range": "Anti Age",
            "Campaign": "Cellular Filler",
        })
        assert validator.validate_record(record, 0) == []

    def test_compatibility_only_campaign_warns(self):
        """Test a campaign with compatibility ranges but no primary range only warns."""
        snapshot = create_sample_snapshot(campaignCompatibilityMap={"Promo X": ["Acne"]})
        validator = AutoCreateValidator(snapshot)
        issues = validator.validate_record(create_sample_record({"Campaign": "Promo X"}), 0)
        assert_issues(issues, field="Campaign", severity=Severity.CRITICAL, count=0)
        matching = assert_issues(issues, field="Campaign", severity=Severity.WARNING, count=1)
        assert matching[0].rule_name == CAMPAIGN_AUTO_CREATE
        assert issues_for(issues, rule_name=CAMPAIGN_PLACEMENT) == []
        assert validator.can_import(issues)

    def test_unknown_range_strict(self, validator):
        """Test unknown ranges stay critical and are never auto-created."""
        issues = validator.validate_record(create_sample_record({"Range": "Body"}), 0)
        matching = issues_for(issues, rule_name=STRICT_RANGE_EXISTS)
        assert len(matching) == 1
        assert matching[0].severity is Severity.CRITICAL
        assert matching[0].message == (
            "Range 'Body' not found in master data. "
            "Ranges are not auto-created and must be created manually"
        )
        assert issues_for(issues, rule_name=RANGE_EXISTS) == []

    @pytest.mark.asyncio
    async def test_batch_with_new_campaigns(self, validator):
        """Test a batch of new campaigns can be imported."""
        rows = [
            create_sample_record({"Campaign": "Summer Glow"}),
            create_sample_record({"Campaign": "Winter Care"}),
        ]
        issues = await validator.validate_all(rows)
        assert len(issues) == 2
        assert all(issue.severity is Severity.WARNING for issue in issues)
        assert validator.can_import(issues)


class TestValidateOrCreateCampaign:
    """Tests for the creation workflow."""

    def test_creates_pending_review(self, validator, repository):
        """Test a new campaign is created for review with provenance."""
        result = validator.validate_or_create_campaign("  Summer Glow ", source="plan.csv")
        assert result == CreationResult("campaign", "campaign-1", "Summer Glow", created=True)

        stored = repository.find_by_name_ci("campaign", "summer glow")
        assert stored.status == STATUS_PENDING_REVIEW
        assert stored.created_by == "import_auto"
        assert stored.original_name == "Summer Glow"
        assert stored.notes.startswith("Auto-created during import from plan.csv on ")

    def test_creator_from_config(self, snapshot, repository):
        """Test the creator tag comes from the config."""
        validator = AutoCreateValidator(
            snapshot, repository, config=ValidatorConfig(created_by="planner")
        )
        validator.validate_or_create_campaign("Summer Glow")
        assert repository.find_by_name_ci("campaign", "Summer Glow").created_by == "planner"

    def test_idempotent(self, validator, repository):
        """Test repeated calls converge on one entity."""
        first = validator.validate_or_create_campaign("Summer Glow")
        second = validator.validate_or_create_campaign("SUMMER GLOW")
        assert first.created
        assert not second.created
        assert second.id == first.id
        assert repository.create_calls == 1

    def test_existing_campaign(self, snapshot):
        """Test a campaign already in the store is returned."""
        repository = create_sample_repository("Disney")
        validator = AutoCreateValidator(snapshot, repository)
        result = validator.validate_or_create_campaign("disney")
        assert result.created is False
        assert result.name == "Disney"
        assert repository.create_calls == 0
        assert validator.get_auto_created_summary()["totalCreated"] == 0

    def test_archived_campaign_recreated(self, snapshot, repository):
        """Test archived campaigns are invisible and a new one is created."""
        repository.seed("campaign", "Retired", archived=True)
        validator = AutoCreateValidator(snapshot, repository)
        assert validator.validate_or_create_campaign("Retired").created

    def test_session_cache(self, snapshot):
        """Test the session prevents duplicates when the store lags behind."""
        repository = _ForgetfulRepository()
        validator = AutoCreateValidator(snapshot, repository)
        first = validator.validate_or_create_campaign("Summer Glow")
        second = validator.validate_or_create_campaign("Summer Glow")
        assert first.created and not second.created
        assert repository.create_calls == 1

    @pytest.mark.parametrize("name", ["", "   ", None])
    def test_blank_name(self, validator, name):
        """Test blank names are refused."""
        with pytest.raises(ValueError):
            validator.validate_or_create_campaign(name)

    def test_store_failure(self, snapshot):
        """Test store errors are wrapped with the original as cause."""
        failure = ConnectionError("db down")
        validator = AutoCreateValidator(snapshot, InMemoryEntityRepository(fail_with=failure))
        with pytest.raises(EntityCreationError) as exc_info:
            validator.validate_or_create_campaign("Summer Glow")
        assert exc_info.value.cause is failure
        assert exc_info.value.entity_name == "Summer Glow"
        assert "create failed" in exc_info.value.message
        assert len(validator.session) == 0

    def test_lookup_failure(self, snapshot):
        """Test lookup errors are wrapped and nothing is created."""
        repository = _BrokenLookupRepository()
        validator = AutoCreateValidator(snapshot, repository)
        with pytest.raises(EntityCreationError) as exc_info:
            validator.validate_or_create_campaign(" Summer Glow ")
        assert isinstance(exc_info.value.cause, ConnectionError)
        assert exc_info.value.entity_name == "Summer Glow"
        assert exc_info.value.message == "Campaign find failed for 'Summer Glow': lookup down"
        assert repository.create_calls == 0

    def test_create_then_reuse(self, validator, repository):
        """Test a new name is created once and then returned with the same id."""
        first = validator.validate_or_create_campaign("Disney Brand New")
        second = validator.validate_or_create_campaign("Disney Brand New")
        assert (first.created, second.created) == (True, False)
        assert first.id == second.id
        assert repository.find_by_name_ci("campaign", "disney brand new").id == first.id

    def test_concurrent_calls_create_once(self, validator, repository):
        """Test concurrent callers converge on a single creation."""
        results = []
        barrier = threading.Barrier(8)

        def worker():
            barrier.wait()
            results.append(validator.validate_or_create_campaign("Summer Glow"))

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert repository.create_calls == 1
        assert sum(1 for r in results if r.created) == 1
        assert len({r.id for r in results}) == 1


class TestRangesAndSession:
    """Tests for range lookup, summary and lifecycle."""

    def test_validate_range(self, snapshot):
        """Test an existing range is found case-insensitively."""
        validator = AutoCreateValidator(snapshot, create_sample_repository(ranges=["Lip"]))
        result = validator.validate_range(" lip ")
        assert result.name == "Lip"
        assert result.to_dict() == {"id": result.id, "name": "Lip", "exists": True}

    @pytest.mark.parametrize("name", ["Body", ""])
    def test_validate_range_missing(self, validator, name):
        """Test missing ranges raise and are never created."""
        with pytest.raises(RangeNotFoundError):
            validator.validate_range(name)
        assert validator.repository.all("range") == []

    def test_validate_range_archived(self, snapshot, repository):
        """Test archived ranges are not found."""
        repository.seed("range", "Lip")
        repository.archive("range", "Lip")
        validator = AutoCreateValidator(snapshot, repository)
        with pytest.raises(RangeNotFoundError, match="must be created manually"):
            validator.validate_range("Lip")

    def test_summary(self, validator):
        """Test the summary lists what this session created."""
        validator.validate_or_create_campaign("Summer Glow")
        validator.validate_or_create_campaign("Summer Glow")
        validator.validate_or_create_campaign("Winter Care")
        assert validator.get_auto_created_summary() == {
            "campaigns": [
                {"id": "campaign-1", "name": "Summer Glow", "created": True},
                {"id": "campaign-2", "name": "Winter Care", "created": True},
            ],
            "totalCreated": 2,
        }

    def test_reset_session(self, validator):
        """Test reset clears the session but not the store."""
        validator.validate_or_create_campaign("Summer Glow")
        validator.reset_session()
        assert validator.get_auto_created_summary()["totalCreated"] == 0
        assert validator.validate_or_create_campaign("Summer Glow").created is False

    def test_disconnect_idempotent(self, validator, repository):
        """Test disconnect closes the store and may be repeated."""
        validator.disconnect()
        validator.disconnect()
        assert repository.closed

    def test_context_manager(self, snapshot, repository):
        """Test leaving the context closes the store."""
        with AutoCreateValidator(snapshot, repository) as validator:
            validator.validate_or_create_campaign("Summer Glow")
        assert repository.closed


class TestAutoCreateSession:
    """Tests for AutoCreateSession."""

    def test_first_result_kept(self):
        """Test a second add for the same name is ignored."""
        session = AutoCreateSession()
        session.add(CreationResult("campaign", "c-1", "Summer Glow", True))
        session.add(CreationResult("campaign", "c-2", "summer glow", True))
        assert len(session) == 1
        assert session.get("campaign", " SUMMER GLOW ").id == "c-1"

    def test_created_by_kind(self):
        """Test creations can be filtered by kind."""
        session = AutoCreateSession()
        session.add(CreationResult("campaign", "c-1", "A", True))
        session.add(CreationResult("playbook", "p-1", "A", True))
        assert [r.id for r in session.created("campaign")] == ["c-1"]
        assert len(session.created()) == 2


class TestCreateValidator:
    """Tests for create_validator."""

    def test_default_validator(self, snapshot):
        """Test the plain validator is returned by default."""
        assert type(create_validator(snapshot)) is RecordValidator

    def test_auto_create_validator(self, snapshot, repository):
        """Test auto_create selects the auto-create validator."""
        validator = create_validator(
            snapshot, config=ValidatorConfig(auto_create=True), repository=repository
        )
        assert isinstance(validator, AutoCreateValidator)
        assert validator.repository is repository

    def test_stored_entity_shape(self, repository):
        """Test stored entities serialize with camelCase keys."""
        entity = repository.seed("range", "Lip")
        assert isinstance(entity, StoredEntity)
        assert entity.to_dict()["createdBy"] is None
