"""Exception hierarchy for campaign record validation.

Validation findings are never raised: they are collected as ``Issue`` objects.
The exceptions below cover faults around the engine instead: bad configuration,
unusable reference data, broken rule definitions and entity store failures.
All of them inherit from CampaignValidationError so callers can catch any
library error at a single point.

Exception Hierarchy:
    CampaignValidationError (base)
    ├── ConfigurationError
    │   ├── InvalidConfigValueError
    │   └── MissingConfigError
    ├── ReferenceDataError
    ├── RuleError
    │   ├── RuleRegistrationError
    │   └── RuleExecutionError
    └── EntityError
        ├── RangeNotFoundError
        └── EntityCreationError

Example:
    >>> try:
    ...     validator.validate_range("Brand New Range")
    ... except RangeNotFoundError as e:
    ...     logger.warning(f"Range must be created manually: {e}")
    ... except CampaignValidationError as e:
    ...     logger.error(f"Validation error: {e}")
"""

from __future__ import annotations

from typing import Any


class CampaignValidationError(Exception):
    """Base exception for all campaign validation errors.

    Attributes:
        message: Human-readable error description.
        details: Optional dictionary with additional error context.
        cause: Optional original exception that caused this error.

    Example:
        >>> try:
        ...     raise CampaignValidationError("Something went wrong", details={"key": "value"})
        ... except CampaignValidationError as e:
        ...     print(f"Error: {e.message}, Details: {e.details}")
    """

    def __init__(
        self,
        message: str,
        *,
        details: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        """Initialize the exception.

        Args:
            message: Human-readable error description.
            details: Optional dictionary with additional error context.
            cause: Optional original exception that caused this error.
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.cause = cause

    def __str__(self) -> str:
        """Return string representation with details if present."""
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message

    def __repr__(self) -> str:
        """Return detailed representation for debugging."""
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"details={self.details!r}, "
            f"cause={self.cause!r})"
        )

    def with_context(self, **kwargs: Any) -> CampaignValidationError:
        """Create a copy of this error with extra context merged into details.

        Example:
            >>> e = CampaignValidationError("Error", details={"key": "value"})
            >>> e.with_context(row_index=3).details
            {'key': 'value', 'row_index': 3}
        """
        merged_details = {**self.details, **kwargs}
        return CampaignValidationError(
            self.message, details=merged_details, cause=self.cause
        )


# =============================================================================
# Configuration Errors
# =============================================================================


class ConfigurationError(CampaignValidationError):
    """Raised for invalid, missing or unreadable configuration.

    Attributes:
        config_key: Optional key that caused the configuration error.
    """

    def __init__(
        self,
        message: str,
        *,
        config_key: str | None = None,
        details: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        details = details or {}
        if config_key:
            details["config_key"] = config_key
        super().__init__(message, details=details, cause=cause)
        self.config_key = config_key


class InvalidConfigValueError(ConfigurationError):
    """Raised when a configuration value has the wrong type or is out of bounds.

    Attributes:
        config_key: The configuration key with invalid value.
        value: The invalid value that was provided.
        expected: Description of what was expected.
    """

    def __init__(
        self,
        message: str,
        *,
        config_key: str,
        value: Any = None,
        expected: str | None = None,
        details: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        details = details or {}
        details["value"] = value
        if expected:
            details["expected"] = expected
        super().__init__(message, config_key=config_key, details=details, cause=cause)
        self.value = value
        self.expected = expected


class MissingConfigError(ConfigurationError):
    """Raised when a required configuration key is not provided."""

    def __init__(
        self,
        config_key: str,
        *,
        details: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        message = f"Required configuration key '{config_key}' is missing"
        super().__init__(message, config_key=config_key, details=details, cause=cause)


# =============================================================================
# Reference Data Errors
# =============================================================================


class ReferenceDataError(CampaignValidationError):
    """Raised when a master-data bundle cannot be loaded at all.

    Malformed sections inside a readable bundle are not errors; they degrade
    to "cannot validate" at lookup time. This error is reserved for bundles
    that are not a mapping or cannot be read from disk.

    Attributes:
        source: Description of the bundle source (usually a file path).
    """

    def __init__(
        self,
        message: str,
        *,
        source: str | None = None,
        details: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        details = details or {}
        if source:
            details["source"] = source
        super().__init__(message, details=details, cause=cause)
        self.source = source


# =============================================================================
# Rule Errors
# =============================================================================


class RuleError(CampaignValidationError):
    """Base class for rule definition and execution faults.

    Attributes:
        rule_name: Optional name of the rule involved.
    """

    def __init__(
        self,
        message: str,
        *,
        rule_name: str | None = None,
        details: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        details = details or {}
        if rule_name:
            details["rule_name"] = rule_name
        super().__init__(message, details=details, cause=cause)
        self.rule_name = rule_name


class RuleRegistrationError(RuleError):
    """Raised when a rule cannot be added to a registry.

    Covers duplicate rule names and coroutine predicates, which the
    synchronous engine refuses at registration time.
    """


class RuleExecutionError(RuleError):
    """Raised when a rule predicate fails while evaluating a record.

    The record validator never lets this escape a batch: it converts the
    fault into a critical issue. The type exists so that the conversion
    carries the rule name and field into the log.

    Attributes:
        rule_name: Name of the rule that failed.
        field: Record field the rule is bound to.
    """

    def __init__(
        self,
        message: str,
        *,
        rule_name: str,
        field: str | None = None,
        details: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        details = details or {}
        if field:
            details["field"] = field
        super().__init__(message, rule_name=rule_name, details=details, cause=cause)
        self.field = field


# =============================================================================
# Entity Errors
# =============================================================================


class EntityError(CampaignValidationError):
    """Base class for entity lookup and creation faults.

    Attributes:
        entity_kind: Kind of entity involved (e.g. 'campaign', 'range').
        entity_name: Name of the entity involved.
    """

    def __init__(
        self,
        message: str,
        *,
        entity_kind: str | None = None,
        entity_name: str | None = None,
        details: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        details = details or {}
        if entity_kind:
            details["entity_kind"] = entity_kind
        if entity_name:
            details["entity_name"] = entity_name
        super().__init__(message, details=details, cause=cause)
        self.entity_kind = entity_kind
        self.entity_name = entity_name


class RangeNotFoundError(EntityError):
    """Raised when a range is absent from the store.

    Ranges are never created automatically; they must be created manually
    before the import is retried.
    """

    def __init__(
        self,
        range_name: str,
        *,
        details: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        message = (
            f"Range '{range_name}' does not exist and must be created manually"
        )
        super().__init__(
            message,
            entity_kind="range",
            entity_name=range_name,
            details=details,
            cause=cause,
        )


class EntityCreationError(EntityError):
    """Raised when the entity store fails during lookup or insert."""


# =============================================================================
# Utility Functions
# =============================================================================


def wrap_exception(
    exception: Exception,
    wrapper_class: type[CampaignValidationError] = CampaignValidationError,
    message: str | None = None,
    **kwargs: Any,
) -> CampaignValidationError:
    """Wrap an arbitrary exception in the library hierarchy.

    Args:
        exception: The original exception to wrap.
        wrapper_class: The exception class to wrap with.
        message: Optional custom message. Defaults to original exception message.
        **kwargs: Additional arguments to pass to the wrapper class.

    Returns:
        A new exception instance with the original kept as ``cause``.

    Example:
        >>> try:
        ...     repository.create("campaign", name="X", ...)
        ... except OSError as e:
        ...     raise wrap_exception(e, EntityCreationError, entity_kind="campaign")
    """
    msg = message if message is not None else str(exception)
    return wrapper_class(msg, cause=exception, **kwargs)
