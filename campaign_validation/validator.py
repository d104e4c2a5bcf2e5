"""Record validator.

Evaluates a rule registry against campaign records. Validation never raises
on bad data or on faulty rules: every finding, including a predicate that
blew up, comes back as an ``Issue``.

Evaluation of one record:
    1. records whose every value is blank are skipped
    2. on the first row of a batch, missing expected columns are reported
    3. each rule whose field is present in the record is evaluated in
       registry order; critical required rules whose field is absent report
       the missing column instead

Predicates are synchronous. A predicate that nevertheless hands back an
awaitable is logged and skipped; it never fails the record. Registering a
coroutine function is refused up front by ``RuleRegistry.register``.

Example:
    >>> validator = RecordValidator(snapshot, config=ValidatorConfig(abp_cycle="ABP 2025"))
    >>> issues = await validator.validate_all(rows)
    >>> validator.can_import(issues)
    False
"""

from __future__ import annotations

import asyncio
import inspect
import uuid
from collections.abc import Iterable, Mapping, Sequence
from typing import TYPE_CHECKING, Any

from campaign_validation.aggregation import ValidationSummary, can_import, summarize
from campaign_validation.base import Issue, PredicateOutcome, Record, RuleDescriptor, Severity
from campaign_validation.config import ValidatorConfig
from campaign_validation.exceptions import RuleExecutionError
from campaign_validation.logging import LogContext, get_logger, get_performance_logger
from campaign_validation.parsing import is_blank
from campaign_validation.reference import ReferenceSnapshot
from campaign_validation.rules import (
    EXPECTED_COLUMNS,
    Rule,
    RuleRegistry,
    field_present,
    get_field,
    initialize_rules,
)


if TYPE_CHECKING:
    import polars as pl


logger = get_logger(__name__)
perf_logger = get_performance_logger(__name__)


class RecordValidator:
    """Validates campaign records against a reference snapshot.

    Args:
        snapshot: Reference hierarchy. A raw master-data mapping is accepted
            and loaded with ``ReferenceSnapshot.from_dict``.
        rules: Rule registry to evaluate. Built with ``initialize_rules``
            from ``config`` when omitted.
        config: Run settings. Defaults to ``ValidatorConfig()``.
    """

    def __init__(
        self,
        snapshot: ReferenceSnapshot | Mapping[str, Any],
        *,
        rules: RuleRegistry | None = None,
        config: ValidatorConfig | None = None,
    ) -> None:
        if not isinstance(snapshot, ReferenceSnapshot):
            snapshot = ReferenceSnapshot.from_dict(snapshot)
        self._snapshot = snapshot
        self._config = config or ValidatorConfig()
        if rules is None:
            rules = initialize_rules(
                abp_cycle=self._config.abp_cycle,
                selected_country=self._config.selected_country,
                budget_tolerance=self._config.budget_tolerance,
            )
        self._rules = rules

    @property
    def snapshot(self) -> ReferenceSnapshot:
        return self._snapshot

    @property
    def config(self) -> ValidatorConfig:
        return self._config

    @property
    def rules(self) -> RuleRegistry:
        return self._rules

    def list_rules(self) -> list[RuleDescriptor]:
        """Descriptors of the rules this validator evaluates, in order."""
        return self._rules.list_rules()

    # -------------------------------------------------------------------------
    # Per-record evaluation
    # -------------------------------------------------------------------------

    def validate_record(
        self,
        record: Record,
        row_index: int,
        batch: Sequence[Record] | None = None,
    ) -> list[Issue]:
        """Validate one record.

        Args:
            record: Field name to value mapping.
            row_index: Position reported on every issue. Expected columns are
                checked when it is 0.
            batch: The whole batch, for cross-row rules. Defaults to the
                record alone.

        Returns:
            Issues in rule order.
        """
        if not isinstance(record, Mapping):
            return [
                Issue(
                    row_index=row_index,
                    field="",
                    severity=Severity.CRITICAL,
                    message=f"Row is not a record (got {type(record).__name__})",
                )
            ]
        if all(is_blank(value) for value in record.values()):
            return []

        rows: Sequence[Record] = batch if batch is not None else (record,)
        issues: list[Issue] = []
        reported_columns: set[str] = set()

        if self._config.check_columns and row_index == 0:
            for column in EXPECTED_COLUMNS:
                if not field_present(record, column):
                    reported_columns.add(column)
                    issues.append(
                        Issue(
                            row_index=row_index,
                            field=column,
                            severity=Severity.CRITICAL,
                            message=f"Missing required column '{column}' in CSV file",
                        )
                    )

        for rule in self._rules:
            if not field_present(record, rule.field):
                if rule.reports_missing_column and rule.field not in reported_columns:
                    reported_columns.add(rule.field)
                    issues.append(
                        Issue(
                            row_index=row_index,
                            field=rule.field,
                            severity=Severity.CRITICAL,
                            message=f"Missing required column '{rule.field}'",
                            rule_name=rule.name,
                        )
                    )
                continue

            issue = self._evaluate(rule, record, row_index, rows)
            if issue is not None:
                issues.append(issue)

        return issues

    def _evaluate(
        self,
        rule: Rule,
        record: Record,
        row_index: int,
        rows: Sequence[Record],
    ) -> Issue | None:
        value = get_field(record, rule.field)
        try:
            result = rule.predicate(value, record, rows, self._snapshot)
        except Exception as e:
            error = RuleExecutionError(
                f"Rule '{rule.name}' raised {type(e).__name__}: {e}",
                rule_name=rule.name,
                field=rule.field,
                cause=e,
            )
            logger.error(error.message, exc_info=e, row_index=row_index, **error.details)
            return Issue(
                row_index=row_index,
                field=rule.field,
                severity=Severity.CRITICAL,
                message=f"Validation error: {e}",
                current_value=value,
                rule_name=rule.name,
            )

        if inspect.isawaitable(result):
            close = getattr(result, "close", None)
            if callable(close):
                close()
            logger.warning(
                "Skipping rule with asynchronous result",
                rule_name=rule.name,
                field=rule.field,
                row_index=row_index,
            )
            return None

        if isinstance(result, PredicateOutcome):
            if result.is_valid:
                return None
            message = result.message or rule.message
        elif result:
            return None
        else:
            message = rule.message

        return Issue(
            row_index=row_index,
            field=rule.field,
            severity=rule.severity,
            message=message,
            current_value=value,
            rule_name=rule.name,
        )

    # -------------------------------------------------------------------------
    # Batch evaluation
    # -------------------------------------------------------------------------

    async def validate_all(
        self,
        batch: Iterable[Record],
        *,
        row_offset: int = 0,
    ) -> list[Issue]:
        """Validate every record of a batch, in order.

        Control returns to the event loop every ``config.batch_yield_size``
        rows; callers cancel by cancelling the awaiting task.

        Args:
            batch: Records to validate.
            row_offset: Added to every reported row index.

        Returns:
            All issues, ordered by row then rule.
        """
        rows = list(batch)
        issues: list[Issue] = []
        yield_every = max(1, self._config.batch_yield_size)

        with LogContext(operation="validate_all", run_id=uuid.uuid4().hex[:12]):
            with perf_logger.timed("validate_all", rows=len(rows)):
                for position, record in enumerate(rows):
                    if position and position % yield_every == 0:
                        await asyncio.sleep(0)
                    issues.extend(self.validate_record(record, row_offset + position, rows))

            critical = sum(1 for issue in issues if issue.is_critical)
            logger.info(
                "Batch validated",
                rows=len(rows),
                issues=len(issues),
                critical=critical,
            )
        return issues

    def validate_frame(self, frame: pl.DataFrame | Sequence[Record]) -> list[Issue]:
        """Validate the rows of a polars DataFrame (or a list of records).

        Synchronous counterpart of ``validate_all`` for scripts and
        notebooks.
        """
        rows = frame.to_dicts() if hasattr(frame, "to_dicts") else list(frame)
        issues: list[Issue] = []
        with LogContext(operation="validate_frame"):
            for position, record in enumerate(rows):
                issues.extend(self.validate_record(record, position, rows))
        return issues

    # -------------------------------------------------------------------------
    # Aggregation
    # -------------------------------------------------------------------------

    def get_validation_summary(self, issues: Any) -> ValidationSummary:
        return summarize(issues)

    def can_import(self, issues: Any) -> bool:
        return can_import(issues)
