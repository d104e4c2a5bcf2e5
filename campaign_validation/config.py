"""Configuration management for campaign validation.

Supports:
- Environment variable loading with prefix support
- File-based configuration (JSON/YAML)
- Configuration merging with proper precedence

Configuration Precedence (highest to lowest):
    1. Explicit overrides (``with_overrides``)
    2. Environment variables
    3. Configuration file
    4. Default values

Example:
    >>> from campaign_validation.config import ValidatorConfig
    >>> config = ValidatorConfig.load("validation.yaml")
    >>> config.abp_cycle
    'ABP 2025'
"""

from __future__ import annotations

import dataclasses
import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Self

from campaign_validation.exceptions import (
    ConfigurationError,
    InvalidConfigValueError,
    MissingConfigError,
)
from campaign_validation.parsing import extract_year


# =============================================================================
# Constants
# =============================================================================

DEFAULT_ENV_PREFIX = "CAMPAIGN_VALIDATION"
CONFIG_FILE_NAMES = (
    "campaign_validation.yaml",
    "campaign_validation.yml",
    "campaign_validation.json",
)
VALID_LOG_LEVELS = frozenset({"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"})
VALID_LOG_FORMATS = frozenset({"text", "json"})


# =============================================================================
# Environment Variable Utilities
# =============================================================================


class EnvReader:
    """Reads prefixed environment variables with typed accessors.

    Example:
        >>> reader = EnvReader(prefix="CAMPAIGN_VALIDATION")
        >>> reader.get_bool("AUTO_CREATE", default=False)
        False
    """

    def __init__(self, prefix: str = DEFAULT_ENV_PREFIX) -> None:
        self.prefix = prefix

    def _make_key(self, name: str) -> str:
        if self.prefix:
            return f"{self.prefix}_{name}"
        return name

    def get(self, name: str, default: str | None = None) -> str | None:
        return os.environ.get(self._make_key(name), default)

    def get_required(self, name: str) -> str:
        """Get a required string variable.

        Raises:
            MissingConfigError: If variable is not set.
        """
        key = self._make_key(name)
        value = os.environ.get(key)
        if value is None:
            raise MissingConfigError(key)
        return value

    def get_int(self, name: str, default: int | None = None) -> int | None:
        """Get an integer variable.

        Raises:
            InvalidConfigValueError: If value cannot be parsed as int.
        """
        value = self.get(name)
        if value is None:
            return default
        try:
            return int(value)
        except ValueError as e:
            raise InvalidConfigValueError(
                f"Invalid integer value for {self._make_key(name)}",
                config_key=self._make_key(name),
                value=value,
                expected="integer",
                cause=e,
            ) from e

    def get_float(self, name: str, default: float | None = None) -> float | None:
        """Get a float variable.

        Raises:
            InvalidConfigValueError: If value cannot be parsed as float.
        """
        value = self.get(name)
        if value is None:
            return default
        try:
            return float(value)
        except ValueError as e:
            raise InvalidConfigValueError(
                f"Invalid float value for {self._make_key(name)}",
                config_key=self._make_key(name),
                value=value,
                expected="float",
                cause=e,
            ) from e

    def get_bool(self, name: str, default: bool | None = None) -> bool | None:
        """Get a boolean variable.

        Truthy values: "1", "true", "yes", "on" (case-insensitive)
        Falsy values: "0", "false", "no", "off" (case-insensitive)

        Raises:
            InvalidConfigValueError: If value cannot be parsed as bool.
        """
        value = self.get(name)
        if value is None:
            return default
        lower_value = value.strip().lower()
        if lower_value in ("1", "true", "yes", "on"):
            return True
        if lower_value in ("0", "false", "no", "off"):
            return False
        raise InvalidConfigValueError(
            f"Invalid boolean value for {self._make_key(name)}",
            config_key=self._make_key(name),
            value=value,
            expected="boolean (1/0, true/false, yes/no, on/off)",
        )

    def get_list(
        self,
        name: str,
        separator: str = ",",
        default: list[str] | None = None,
    ) -> list[str] | None:
        value = self.get(name)
        if value is None:
            return default
        if not value.strip():
            return []
        return [item.strip() for item in value.split(separator)]


# =============================================================================
# File Utilities
# =============================================================================


def _load_yaml(path: Path) -> Any:
    try:
        import yaml
    except ImportError as e:
        raise ConfigurationError(
            "PyYAML is required for YAML files. Install with: pip install pyyaml",
            cause=e,
        ) from e

    try:
        with path.open(encoding="utf-8") as f:
            return yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigurationError(
            f"Failed to parse YAML file: {path}",
            details={"path": str(path)},
            cause=e,
        ) from e


def _load_json(path: Path) -> Any:
    try:
        with path.open(encoding="utf-8") as f:
            return json.load(f)
    except json.JSONDecodeError as e:
        raise ConfigurationError(
            f"Failed to parse JSON file: {path}",
            details={"path": str(path)},
            cause=e,
        ) from e


def load_document(path: Path | str) -> Any:
    """Load a JSON or YAML document, chosen by file suffix.

    Shared by configuration files and master-data bundles.

    Raises:
        ConfigurationError: If the file is missing, has an unsupported
            suffix or cannot be parsed.
    """
    path = Path(path)
    if not path.is_file():
        raise ConfigurationError(
            f"File not found: {path}",
            details={"path": str(path)},
        )

    suffix = path.suffix.lower()
    if suffix in (".yaml", ".yml"):
        return _load_yaml(path)
    if suffix == ".json":
        return _load_json(path)
    raise ConfigurationError(
        f"Unsupported file format: {suffix}",
        details={"path": str(path), "suffix": suffix},
    )


def load_config_file(path: Path | str) -> dict[str, Any]:
    """Load a configuration file; a non-mapping document yields ``{}``."""
    data = load_document(path)
    return data if isinstance(data, dict) else {}


def find_config_file(
    start_dir: Path | None = None,
    max_depth: int = 5,
) -> Path | None:
    """Search upwards from ``start_dir`` (default: cwd) for a config file."""
    current = start_dir or Path.cwd()
    for _ in range(max_depth):
        for name in CONFIG_FILE_NAMES:
            config_path = current / name
            if config_path.is_file():
                return config_path
        parent = current.parent
        if parent == current:
            break
        current = parent
    return None


# =============================================================================
# Validator Configuration
# =============================================================================


@dataclass(frozen=True, slots=True)
class ValidatorConfig:
    """Settings of a validation run.

    Attributes:
        auto_create: Admit unknown campaigns as pending-review entities.
        abp_cycle: Financial cycle identifier (e.g. "ABP 2025"). When set,
            date fields must fall in the cycle's year.
        selected_country: Country the import was started for. When set,
            every record's Country must match it.
        check_columns: Report missing expected columns on the first row.
        batch_yield_size: Rows validated between event-loop yields in
            ``validate_all``.
        budget_tolerance: Allowed difference between the total budget and
            the sum of its sub-budgets.
        created_by: Creator tag written on auto-created entities.
        log_level: Level passed to ``configure_logging``.
        log_format: 'text' or 'json'.
        extra: Additional configuration.
    """

    auto_create: bool = False
    abp_cycle: str | None = None
    selected_country: str | None = None
    check_columns: bool = True
    batch_yield_size: int = 250
    budget_tolerance: float = 0.01
    created_by: str = "import_auto"
    log_level: str = "INFO"
    log_format: str = "text"
    extra: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "auto_create": self.auto_create,
            "abp_cycle": self.abp_cycle,
            "selected_country": self.selected_country,
            "check_columns": self.check_columns,
            "batch_yield_size": self.batch_yield_size,
            "budget_tolerance": self.budget_tolerance,
            "created_by": self.created_by,
            "log_level": self.log_level,
            "log_format": self.log_format,
            "extra": dict(self.extra),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Self:
        """Create a config from a dictionary; unknown keys go to ``extra``."""
        known = {f.name for f in dataclasses.fields(cls)}
        kwargs = {k: v for k, v in data.items() if k in known and k != "extra"}
        extra = dict(data.get("extra") or {})
        extra.update({k: v for k, v in data.items() if k not in known})
        return cls(**kwargs, extra=extra)

    @classmethod
    def from_env(cls, prefix: str = DEFAULT_ENV_PREFIX) -> Self:
        """Create configuration from environment variables.

        Environment Variables:
            {PREFIX}_AUTO_CREATE: Enable auto-create mode (bool)
            {PREFIX}_ABP_CYCLE: Financial cycle identifier (string)
            {PREFIX}_SELECTED_COUNTRY: Country of the import (string)
            {PREFIX}_CHECK_COLUMNS: Report missing columns (bool)
            {PREFIX}_BATCH_YIELD_SIZE: Rows between yields (int)
            {PREFIX}_BUDGET_TOLERANCE: Budget sum tolerance (float)
            {PREFIX}_CREATED_BY: Creator tag for auto-created entities
            {PREFIX}_LOG_LEVEL: Logging level (string)
            {PREFIX}_LOG_FORMAT: 'text' or 'json'
        """
        return cls.from_dict(_read_env(prefix))

    @classmethod
    def from_file(cls, path: Path | str) -> Self:
        return cls.from_dict(load_config_file(path))

    @classmethod
    def load(
        cls,
        config_file: Path | str | None = None,
        env_prefix: str = DEFAULT_ENV_PREFIX,
        search_config: bool = False,
    ) -> Self:
        """Load configuration from defaults, a file and the environment.

        Args:
            config_file: Explicit config file path.
            env_prefix: Environment variable prefix.
            search_config: Whether to look for a config file upwards from
                the working directory when ``config_file`` is not given.

        Returns:
            Merged ValidatorConfig instance.
        """
        file_path: Path | None = None
        if config_file:
            file_path = Path(config_file)
        elif search_config:
            file_path = find_config_file()

        data: dict[str, Any] = {}
        if file_path is not None:
            data.update(load_config_file(file_path))
        data.update(_read_env(env_prefix))
        return cls.from_dict(data)

    def with_overrides(self, **kwargs: Any) -> ValidatorConfig:
        """Return a copy with the given fields replaced."""
        return dataclasses.replace(self, **kwargs)

    def apply_logging(self) -> None:
        """Configure library logging with ``log_level`` and ``log_format``."""
        from campaign_validation.logging import configure_logging

        configure_logging(level=self.log_level, format=self.log_format)


def _read_env(prefix: str) -> dict[str, Any]:
    """Collect only the variables that are actually set."""
    env = EnvReader(prefix)
    readers: dict[str, Any] = {
        "auto_create": env.get_bool("AUTO_CREATE"),
        "abp_cycle": env.get("ABP_CYCLE"),
        "selected_country": env.get("SELECTED_COUNTRY"),
        "check_columns": env.get_bool("CHECK_COLUMNS"),
        "batch_yield_size": env.get_int("BATCH_YIELD_SIZE"),
        "budget_tolerance": env.get_float("BUDGET_TOLERANCE"),
        "created_by": env.get("CREATED_BY"),
        "log_level": env.get("LOG_LEVEL"),
        "log_format": env.get("LOG_FORMAT"),
    }
    return {key: value for key, value in readers.items() if value is not None}


# =============================================================================
# Validation Utilities
# =============================================================================


def validate_config(config: ValidatorConfig) -> list[str]:
    """Validate configuration and return a list of problems (empty if valid)."""
    issues: list[str] = []

    if config.log_level.upper() not in VALID_LOG_LEVELS:
        issues.append(
            f"Invalid log_level: {config.log_level}. "
            f"Must be one of: {', '.join(sorted(VALID_LOG_LEVELS))}"
        )

    if config.log_format not in VALID_LOG_FORMATS:
        issues.append(
            f"Invalid log_format: {config.log_format}. Must be 'text' or 'json'."
        )

    if config.batch_yield_size <= 0:
        issues.append(
            f"Invalid batch_yield_size: {config.batch_yield_size}. Must be positive."
        )

    if config.budget_tolerance < 0:
        issues.append(
            f"Invalid budget_tolerance: {config.budget_tolerance}. "
            "Must be non-negative."
        )

    if not config.created_by.strip():
        issues.append("Invalid created_by: must not be blank.")

    if config.abp_cycle is not None and extract_year(config.abp_cycle) is None:
        issues.append(
            f"Invalid abp_cycle: {config.abp_cycle!r} does not contain a year."
        )

    return issues


def require_valid_config(config: ValidatorConfig) -> None:
    """Validate configuration and raise if invalid.

    Raises:
        ConfigurationError: If configuration is invalid.
    """
    issues = validate_config(config)
    if issues:
        raise ConfigurationError(
            "Invalid configuration",
            details={"issues": issues},
        )
