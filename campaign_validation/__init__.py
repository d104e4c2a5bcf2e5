"""Campaign Validation.

Validates media-plan records (one campaign, media and country planning line
per record) against a reference hierarchy of Business Units, Categories,
Ranges and Campaigns before they are imported.

Quick Start:
    >>> from campaign_validation import RecordValidator, ReferenceSnapshot
    >>> snapshot = ReferenceSnapshot.from_file("master_data.json")
    >>> validator = RecordValidator(snapshot)
    >>> issues = await validator.validate_all(rows)
    >>> validator.can_import(issues)
    True

Auto-create Mode:
    >>> from campaign_validation import AutoCreateValidator
    >>> with AutoCreateValidator(snapshot, repository) as validator:
    ...     issues = await validator.validate_all(rows)
    ...     result = validator.validate_or_create_campaign("New Campaign", source="plan.csv")

Configuration:
    >>> from campaign_validation import ValidatorConfig, create_validator
    >>> config = ValidatorConfig.load(search_config=True)
    >>> validator = create_validator(snapshot, config=config)

Logging:
    >>> from campaign_validation import configure_logging
    >>> configure_logging(level="DEBUG", format="json")

Components:
    - Types: Severity, RuleKind, Issue, PredicateOutcome, RuleDescriptor
    - Reference data: ReferenceSnapshot, EntityKind, Relation
    - Rules: Rule, RuleRegistry, initialize_rules, RejectedPairing
    - Validators: RecordValidator, AutoCreateValidator
    - Aggregation: ValidationSummary, summarize, can_import
    - Store: EntityRepository, InMemoryEntityRepository
    - Configuration: ValidatorConfig
    - Exceptions: CampaignValidationError and subclasses
"""

__version__ = "0.1.0"

from campaign_validation.aggregation import ValidationSummary, can_import, summarize
from campaign_validation.auto_create import (
    AutoCreateSession,
    AutoCreateValidator,
    CreationResult,
    RangeLookupResult,
    apply_auto_create_policy,
    create_validator,
)
from campaign_validation.base import (
    Issue,
    Predicate,
    PredicateOutcome,
    Record,
    RuleDescriptor,
    RuleKind,
    Severity,
)
from campaign_validation.config import (
    ValidatorConfig,
    require_valid_config,
    validate_config,
)
from campaign_validation.exceptions import (
    CampaignValidationError,
    ConfigurationError,
    EntityCreationError,
    EntityError,
    InvalidConfigValueError,
    MissingConfigError,
    RangeNotFoundError,
    ReferenceDataError,
    RuleError,
    RuleExecutionError,
    RuleRegistrationError,
)
from campaign_validation.logging import (
    LogContext,
    LogLevel,
    configure_logging,
    get_logger,
    reset_logging,
)
from campaign_validation.reference import EntityKind, ReferenceSnapshot, Relation
from campaign_validation.repository import (
    EntityRepository,
    InMemoryEntityRepository,
    StoredEntity,
)
from campaign_validation.rules import (
    REJECTED_CATEGORY_RANGE_PAIRS,
    RejectedPairing,
    Rule,
    RuleRegistry,
    check_budget_distribution,
    initialize_rules,
)
from campaign_validation.validator import RecordValidator


__all__ = [
    # Version
    "__version__",
    # Types
    "Issue",
    "Predicate",
    "PredicateOutcome",
    "Record",
    "RuleDescriptor",
    "RuleKind",
    "Severity",
    # Reference Data
    "EntityKind",
    "ReferenceSnapshot",
    "Relation",
    # Rules
    "REJECTED_CATEGORY_RANGE_PAIRS",
    "RejectedPairing",
    "Rule",
    "RuleRegistry",
    "check_budget_distribution",
    "initialize_rules",
    # Validators
    "AutoCreateSession",
    "AutoCreateValidator",
    "CreationResult",
    "RangeLookupResult",
    "RecordValidator",
    "apply_auto_create_policy",
    "create_validator",
    # Aggregation
    "ValidationSummary",
    "can_import",
    "summarize",
    # Store
    "EntityRepository",
    "InMemoryEntityRepository",
    "StoredEntity",
    # Configuration
    "ValidatorConfig",
    "require_valid_config",
    "validate_config",
    # Logging
    "LogContext",
    "LogLevel",
    "configure_logging",
    "get_logger",
    "reset_logging",
    # Exceptions
    "CampaignValidationError",
    "ConfigurationError",
    "EntityCreationError",
    "EntityError",
    "InvalidConfigValueError",
    "MissingConfigError",
    "RangeNotFoundError",
    "ReferenceDataError",
    "RuleError",
    "RuleExecutionError",
    "RuleRegistrationError",
]
