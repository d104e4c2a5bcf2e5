"""Structured logging for campaign validation.

Every module in the package obtains its logger through ``get_logger(__name__)``
and logs with keyword fields instead of formatted strings, so that a batch run
can be filtered by row, rule or field after the fact.

Key Components:
    - LogLevel: numeric levels, equal to the stdlib ``logging`` values
    - LogContext: contextvars-backed scope that stamps every record in a run
    - TextFormatter / JSONFormatter: human and machine output
    - StreamHandler / BufferingHandler: where records go
    - ValidationLogger: the logger itself
    - PerformanceLogger: timing of batch operations

Example:
    >>> from campaign_validation.logging import get_logger, LogContext
    >>> logger = get_logger(__name__)
    >>> with LogContext(operation="validate_all", run_id="import-42"):
    ...     logger.info("Batch started", rows=120)
"""

from __future__ import annotations

import json
import re
import sys
import threading
import time
from contextvars import ContextVar
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import (
    TYPE_CHECKING,
    Any,
    Protocol,
    Self,
    runtime_checkable,
)


if TYPE_CHECKING:
    from collections.abc import Callable, Mapping


class LogLevel(Enum):
    """Log severity levels, numerically identical to the stdlib levels."""

    DEBUG = 10
    INFO = 20
    WARNING = 30
    ERROR = 40
    CRITICAL = 50

    @classmethod
    def from_string(cls, level: str) -> LogLevel:
        """Create from string representation, defaulting to INFO."""
        try:
            return cls[level.strip().upper()]
        except KeyError:
            return cls.INFO


# Master data and store handles sometimes carry database URLs.
DEFAULT_SENSITIVE_PATTERNS: tuple[tuple[str, str], ...] = (
    (r"(password=)[^&\s;]+", r"\1***MASKED***"),
    (r"(token=)[^&\s;]+", r"\1***MASKED***"),
    (r"(://[^:/@\s]+:)[^@\s]+(@)", r"\1***MASKED***\2"),
)

DEFAULT_SENSITIVE_KEYS: frozenset[str] = frozenset({
    "password",
    "secret",
    "token",
    "api_key",
    "database_url",
    "connection_string",
})


# =============================================================================
# Context Management
# =============================================================================


@dataclass(frozen=True, slots=True)
class LogContextData:
    """Immutable container for log context data.

    Attributes:
        operation: Current operation name.
        run_id: Identifier of the import run being validated.
        extra: Additional context fields.
    """

    operation: str | None = None
    run_id: str | None = None
    extra: Mapping[str, Any] = field(default_factory=dict)

    def merge(self, other: LogContextData) -> LogContextData:
        """Return a new context where ``other`` takes precedence."""
        return LogContextData(
            operation=other.operation or self.operation,
            run_id=other.run_id or self.run_id,
            extra={**self.extra, **other.extra},
        )

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {}
        if self.operation:
            result["operation"] = self.operation
        if self.run_id:
            result["run_id"] = self.run_id
        result.update(self.extra)
        return result


_log_context: ContextVar[LogContextData] = ContextVar("log_context")
_log_context.set(LogContextData())


class LogContext:
    """Context manager that adds fields to every record logged in its scope.

    Nested contexts merge, inner values winning.

    Example:
        >>> with LogContext(operation="validate_all", run_id="r1"):
        ...     with LogContext(row_index=7):
        ...         logger.info("Row validated")  # operation, run_id, row_index
    """

    def __init__(
        self,
        *,
        operation: str | None = None,
        run_id: str | None = None,
        **extra: Any,
    ) -> None:
        self._new_context = LogContextData(
            operation=operation,
            run_id=run_id,
            extra=extra,
        )
        self._token: Any = None

    def __enter__(self) -> Self:
        current = get_current_context()
        self._token = _log_context.set(current.merge(self._new_context))
        return self

    def __exit__(self, *args: Any) -> None:
        if self._token is not None:
            _log_context.reset(self._token)


def get_current_context() -> LogContextData:
    """Get the current log context (empty when none was set)."""
    return _log_context.get(LogContextData())


# =============================================================================
# Log Record
# =============================================================================


@dataclass(slots=True)
class LogRecord:
    """Structured log record.

    Attributes:
        level: Log severity level.
        message: Log message.
        logger_name: Name of the logger.
        timestamp: When the log was created.
        context: Associated context data.
        extra: Additional structured fields.
        exc_info: Exception information if any.
    """

    level: LogLevel
    message: str
    logger_name: str
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))
    context: LogContextData = field(default_factory=LogContextData)
    extra: dict[str, Any] = field(default_factory=dict)
    exc_info: BaseException | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        result = {
            "level": self.level.name,
            "message": self.message,
            "logger": self.logger_name,
            "timestamp": self.timestamp.isoformat(),
            **self.context.to_dict(),
            **self.extra,
        }
        if self.exc_info:
            result["exception"] = str(self.exc_info)
            result["exception_type"] = type(self.exc_info).__name__
        return result


# =============================================================================
# Protocols
# =============================================================================


@runtime_checkable
class LogHandler(Protocol):
    """Protocol for log handlers."""

    def handle(self, record: LogRecord) -> None: ...

    def flush(self) -> None: ...

    def close(self) -> None: ...


@runtime_checkable
class LogFormatter(Protocol):
    """Protocol for log formatters."""

    def format(self, record: LogRecord) -> str: ...


# =============================================================================
# Sensitive Data Masking
# =============================================================================


class SensitiveDataMasker:
    """Masks credentials in log messages and structured fields."""

    def __init__(
        self,
        patterns: tuple[tuple[str, str], ...] = DEFAULT_SENSITIVE_PATTERNS,
        sensitive_keys: frozenset[str] = DEFAULT_SENSITIVE_KEYS,
        mask: str = "***MASKED***",
    ) -> None:
        self._patterns = [(re.compile(p, re.IGNORECASE), r) for p, r in patterns]
        self._sensitive_keys = {key.lower() for key in sensitive_keys}
        self._mask = mask

    def mask_string(self, value: str) -> str:
        for pattern, replacement in self._patterns:
            value = pattern.sub(replacement, value)
        return value

    def mask_value(self, value: Any) -> Any:
        if isinstance(value, str):
            return self.mask_string(value)
        if isinstance(value, dict):
            return self.mask_dict(value)
        if isinstance(value, list | tuple):
            return type(value)(self.mask_value(v) for v in value)
        return value

    def mask_dict(self, data: dict[str, Any]) -> dict[str, Any]:
        result: dict[str, Any] = {}
        for key, value in data.items():
            if key.lower() in self._sensitive_keys:
                result[key] = self._mask
            else:
                result[key] = self.mask_value(value)
        return result


_default_masker = SensitiveDataMasker()


# =============================================================================
# Formatters
# =============================================================================


class TextFormatter:
    """Plain text log formatter.

    Example output:
        2025-01-15T10:30:45.123456+00:00 [INFO] campaign_validation.validator: Batch validated | rows=120
    """

    def __init__(
        self,
        include_context: bool = True,
        include_extra: bool = True,
    ) -> None:
        self.include_context = include_context
        self.include_extra = include_extra

    def format(self, record: LogRecord) -> str:
        parts = [
            record.timestamp.isoformat(),
            f"[{record.level.name}]",
            f"{record.logger_name}:",
            record.message,
        ]

        if self.include_context:
            context_dict = record.context.to_dict()
            if context_dict:
                parts.append("| " + " ".join(f"{k}={v}" for k, v in context_dict.items()))

        if self.include_extra and record.extra:
            parts.append("| " + " ".join(f"{k}={v}" for k, v in record.extra.items()))

        if record.exc_info:
            parts.append(f"| exception={record.exc_info!r}")

        return " ".join(parts)


class JSONFormatter:
    """JSON log formatter, one object per line."""

    def __init__(
        self,
        masker: SensitiveDataMasker | None = None,
        indent: int | None = None,
    ) -> None:
        self._masker = masker or _default_masker
        self._indent = indent

    def format(self, record: LogRecord) -> str:
        data = self._masker.mask_dict(record.to_dict())
        return json.dumps(data, indent=self._indent, default=str)


# =============================================================================
# Handlers
# =============================================================================


class StreamHandler:
    """Handler that writes formatted records to a stream (stderr by default)."""

    def __init__(
        self,
        stream: Any = None,
        formatter: LogFormatter | None = None,
        level: LogLevel = LogLevel.DEBUG,
    ) -> None:
        self._stream = stream or sys.stderr
        self._formatter = formatter or TextFormatter()
        self._level = level
        self._lock = threading.Lock()
        self._closed = False

    def handle(self, record: LogRecord) -> None:
        if self._closed or record.level.value < self._level.value:
            return
        message = self._formatter.format(record)
        with self._lock:
            try:
                self._stream.write(message + "\n")
            except (OSError, ValueError):
                # Closed or broken stream; logging must not break validation.
                pass

    def flush(self) -> None:
        if not self._closed and hasattr(self._stream, "flush"):
            try:
                self._stream.flush()
            except (OSError, ValueError):
                pass

    def close(self) -> None:
        self.flush()
        self._closed = True


class BufferingHandler:
    """Handler that keeps records in memory.

    Used by tests to capture what a run logged, and by callers that forward
    records in batches through ``flush_callback``.
    """

    def __init__(
        self,
        capacity: int = 10_000,
        flush_callback: Callable[[list[LogRecord]], None] | None = None,
    ) -> None:
        self._capacity = capacity
        self._flush_callback = flush_callback
        self._buffer: list[LogRecord] = []
        self._closed = False

    @property
    def records(self) -> list[LogRecord]:
        """Records buffered since the last flush."""
        return list(self._buffer)

    def handle(self, record: LogRecord) -> None:
        if self._closed:
            return
        self._buffer.append(record)
        if len(self._buffer) >= self._capacity:
            self.flush()

    def flush(self) -> None:
        if self._buffer and self._flush_callback:
            self._flush_callback(list(self._buffer))
            self._buffer.clear()

    def close(self) -> None:
        self.flush()
        self._buffer.clear()
        self._closed = True


# =============================================================================
# Logger Implementation
# =============================================================================


class ValidationLogger:
    """Logger with structured fields, context propagation and masking.

    Example:
        >>> logger = ValidationLogger("campaign_validation.rules")
        >>> logger.info("Rules initialized", count=42)
    """

    def __init__(
        self,
        name: str,
        level: LogLevel = LogLevel.INFO,
        handlers: list[LogHandler] | None = None,
        masker: SensitiveDataMasker | None = None,
    ) -> None:
        self.name = name
        self.level = level
        self._handlers: list[LogHandler] = handlers or []
        self._masker = masker or _default_masker
        self._disabled = False

    @property
    def handlers(self) -> list[LogHandler]:
        return list(self._handlers)

    def add_handler(self, handler: LogHandler) -> None:
        if handler not in self._handlers:
            self._handlers.append(handler)

    def remove_handler(self, handler: LogHandler) -> None:
        if handler in self._handlers:
            self._handlers.remove(handler)

    def is_enabled_for(self, level: LogLevel) -> bool:
        return not self._disabled and level.value >= self.level.value

    def _log(
        self,
        level: LogLevel,
        message: str,
        exc_info: BaseException | None = None,
        **kwargs: Any,
    ) -> None:
        if not self.is_enabled_for(level):
            return

        record = LogRecord(
            level=level,
            message=self._masker.mask_string(message),
            logger_name=self.name,
            context=get_current_context(),
            extra=self._masker.mask_dict(kwargs),
            exc_info=exc_info,
        )

        for handler in self._handlers:
            handler.handle(record)

    def debug(self, message: str, **kwargs: Any) -> None:
        self._log(LogLevel.DEBUG, message, **kwargs)

    def info(self, message: str, **kwargs: Any) -> None:
        self._log(LogLevel.INFO, message, **kwargs)

    def warning(self, message: str, **kwargs: Any) -> None:
        self._log(LogLevel.WARNING, message, **kwargs)

    def error(self, message: str, exc_info: BaseException | None = None, **kwargs: Any) -> None:
        self._log(LogLevel.ERROR, message, exc_info=exc_info, **kwargs)

    def critical(self, message: str, exc_info: BaseException | None = None, **kwargs: Any) -> None:
        self._log(LogLevel.CRITICAL, message, exc_info=exc_info, **kwargs)

    def exception(self, message: str, **kwargs: Any) -> None:
        """Log the exception currently being handled at ERROR level."""
        self._log(LogLevel.ERROR, message, exc_info=sys.exc_info()[1], **kwargs)

    def log(self, level: LogLevel, message: str, **kwargs: Any) -> None:
        self._log(level, message, **kwargs)


# =============================================================================
# Logger Registry
# =============================================================================


class LoggerRegistry:
    """Registry handing out one ValidationLogger per name.

    Loggers created before ``configure`` start without handlers, so the
    library is silent until the host application configures it.
    """

    def __init__(self) -> None:
        self._loggers: dict[str, ValidationLogger] = {}
        self._root_handlers: list[LogHandler] = []
        self._root_level: LogLevel = LogLevel.INFO
        self._lock = threading.Lock()

    def get_logger(self, name: str, level: LogLevel | None = None) -> ValidationLogger:
        with self._lock:
            logger = self._loggers.get(name)
            if logger is None:
                logger = ValidationLogger(
                    name=name,
                    level=level or self._root_level,
                    handlers=list(self._root_handlers),
                )
                self._loggers[name] = logger
            return logger

    def configure(
        self,
        level: LogLevel = LogLevel.INFO,
        handlers: list[LogHandler] | None = None,
        format: str = "text",
    ) -> None:
        """Set the level and handlers of every current and future logger.

        Args:
            level: Default log level.
            handlers: Handlers to install. When omitted a stderr StreamHandler
                with the requested format is installed.
            format: Format type ('text' or 'json').
        """
        if handlers is None:
            formatter: LogFormatter = JSONFormatter() if format == "json" else TextFormatter()
            handlers = [StreamHandler(formatter=formatter, level=level)]

        with self._lock:
            self._root_level = level
            self._root_handlers = list(handlers)
            for logger in self._loggers.values():
                logger.level = level
                logger._handlers = list(handlers)

    def reset(self) -> None:
        """Detach all handlers and restore the INFO default."""
        with self._lock:
            self._root_level = LogLevel.INFO
            self._root_handlers = []
            for logger in self._loggers.values():
                logger.level = LogLevel.INFO
                logger._handlers = []


_registry = LoggerRegistry()


def get_logger(name: str, level: LogLevel | None = None) -> ValidationLogger:
    """Get a logger by name (typically ``__name__``).

    Example:
        >>> logger = get_logger(__name__)
        >>> logger.info("Snapshot loaded", campaigns=310)
    """
    return _registry.get_logger(name, level)


def configure_logging(
    level: LogLevel | str = LogLevel.INFO,
    handlers: list[LogHandler] | None = None,
    format: str = "text",
) -> None:
    """Configure global logging settings.

    Example:
        >>> configure_logging(level="DEBUG", format="json")
    """
    if isinstance(level, str):
        level = LogLevel.from_string(level)
    _registry.configure(level=level, handlers=handlers, format=format)


def reset_logging() -> None:
    """Detach every handler installed by ``configure_logging``."""
    _registry.reset()


# =============================================================================
# Performance Logging
# =============================================================================


@dataclass(slots=True)
class TimingResult:
    """Result of a timed operation."""

    operation: str
    duration_ms: float
    success: bool = True
    metadata: dict[str, Any] = field(default_factory=dict)


class PerformanceLogger:
    """Times operations and logs the duration.

    Slow operations are promoted to WARNING, failed ones to ERROR.

    Example:
        >>> perf = get_performance_logger(__name__)
        >>> with perf.timed("validate_all", rows=500):
        ...     issues = await validator.validate_all(rows)
    """

    def __init__(
        self,
        logger: ValidationLogger,
        log_level: LogLevel = LogLevel.DEBUG,
        slow_threshold_ms: float = 5000.0,
    ) -> None:
        self._logger = logger
        self._log_level = log_level
        self._slow_threshold_ms = slow_threshold_ms

    class _TimedContext:
        def __init__(
            self,
            perf_logger: PerformanceLogger,
            operation: str,
            **metadata: Any,
        ) -> None:
            self._perf_logger = perf_logger
            self._operation = operation
            self._metadata = metadata
            self._start_time: float = 0.0
            self._result: TimingResult | None = None

        def __enter__(self) -> PerformanceLogger._TimedContext:
            self._start_time = time.perf_counter()
            return self

        def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
            self._result = TimingResult(
                operation=self._operation,
                duration_ms=(time.perf_counter() - self._start_time) * 1000,
                success=exc_type is None,
                metadata=self._metadata,
            )
            self._perf_logger._log_timing(self._result)

        @property
        def result(self) -> TimingResult | None:
            return self._result

    def timed(self, operation: str, **metadata: Any) -> _TimedContext:
        """Create a timing context manager for ``operation``."""
        return self._TimedContext(self, operation, **metadata)

    def _log_timing(self, result: TimingResult) -> None:
        level = self._log_level
        message = f"{result.operation} completed in {result.duration_ms:.2f}ms"

        if result.duration_ms > self._slow_threshold_ms:
            level = LogLevel.WARNING
            message = (
                f"{result.operation} SLOW: {result.duration_ms:.2f}ms "
                f"(threshold: {self._slow_threshold_ms}ms)"
            )

        if not result.success:
            level = LogLevel.ERROR
            message = f"{result.operation} FAILED after {result.duration_ms:.2f}ms"

        self._logger.log(
            level,
            message,
            duration_ms=result.duration_ms,
            success=result.success,
            **result.metadata,
        )


def get_performance_logger(
    name: str,
    slow_threshold_ms: float = 5000.0,
) -> PerformanceLogger:
    """Get a performance logger backed by ``get_logger(name)``."""
    return PerformanceLogger(get_logger(name), slow_threshold_ms=slow_threshold_ms)
