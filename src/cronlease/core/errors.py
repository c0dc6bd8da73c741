"""
Structured error types for cronlease.

Every failure the scheduler can surface carries a category, an explicit
retry flag, optional structured context and an optional chained cause.
Callers catch the narrow subclasses; log pipelines serialize with
``to_dict()``.

Manifesto:
    - **Typed hierarchy:** Registration, store and scheduling failures are
      distinguishable without string matching
    - **Explicit retry semantics:** Each error knows if it's retryable
    - **Rich context:** Errors carry job name, execution id and free-form
      metadata for logging
    - **Error chaining:** The original driver exception is kept as ``cause``

Architecture:
    ::

        ┌─────────────────────────────────────────────────────────────────┐
        │                        CronLeaseError                            │
        │  (category, retryable, retry_after, context, cause)             │
        ├─────────────────────────────────────────────────────────────────┤
        │                                                                  │
        │  ValidationError        ConfigError          DatabaseError       │
        │  (VALIDATION)           (CONFIG)             (DATABASE)          │
        │       │                                           │              │
        │  CronExpressionError                      StoreUnavailableError  │
        │                                           (retryable)            │
        │                                                                  │
        │  ScheduleError (ORCHESTRATION)                                   │
        │       │                                                          │
        │  NoMatchingTimeError   JobNotFoundError   DuplicateJobError      │
        └─────────────────────────────────────────────────────────────────┘

Guardrails:
    ❌ DON'T: Raise bare Exception from scheduler code
    ✅ DO: Use the narrowest CronLeaseError subclass

    ❌ DON'T: Swallow the original driver exception
    ✅ DO: Pass it as cause= for error chaining

Tags:
    error-handling, exception-hierarchy, cronlease
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """Standard error categories for classification and routing."""

    DATABASE = "DATABASE"
    VALIDATION = "VALIDATION"
    CONFIG = "CONFIG"
    ORCHESTRATION = "ORCHESTRATION"
    INTERNAL = "INTERNAL"


@dataclass
class ErrorContext:
    """Structured metadata attached to an error.

    Only the fields that are set end up in ``to_dict()``; anything that
    does not have a typed slot goes into ``metadata``.
    """

    job_name: str | None = None
    execution_id: str | None = None
    expression: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        result = {}
        for key in ["job_name", "execution_id", "expression"]:
            value = getattr(self, key)
            if value is not None:
                result[key] = value
        if self.metadata:
            result.update(self.metadata)
        return result


class CronLeaseError(Exception):
    """
    Base exception for all cronlease errors.

    Subclasses set ``default_category`` and ``default_retryable`` so that
    callers rarely need to pass them explicitly.

    Examples:
        >>> err = CronLeaseError("boom").with_context(job_name="nightly")
        >>> err.context.job_name
        'nightly'
        >>> err.to_dict()["category"]
        'INTERNAL'
    """

    default_category: ErrorCategory = ErrorCategory.INTERNAL
    default_retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        retryable: bool | None = None,
        retry_after: int | None = None,
        context: ErrorContext | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.retryable = retryable if retryable is not None else self.default_retryable
        self.retry_after = retry_after
        self.context = context or ErrorContext()
        self.cause = cause

        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> CronLeaseError:
        """
        Add context to this error (fluent API).

        Usage:
            raise ScheduleError("stuck").with_context(job_name="nightly")
        """
        for key, value in kwargs.items():
            if hasattr(self.context, key) and key != "metadata":
                setattr(self.context, key, value)
            else:
                self.context.metadata[key] = value
        return self

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        result = {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "category": self.category.value,
            "retryable": self.retryable,
        }
        if self.retry_after is not None:
            result["retry_after"] = self.retry_after
        context_dict = self.context.to_dict()
        if context_dict:
            result["context"] = context_dict
        if self.cause is not None:
            result["cause"] = str(self.cause)
        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, category={self.category.value})"


# =============================================================================
# VALIDATION ERRORS
# =============================================================================


class ValidationError(CronLeaseError):
    """
    Invalid user input.

    Never retryable - the input must be fixed.
    """

    default_category = ErrorCategory.VALIDATION
    default_retryable = False

    def __init__(
        self,
        message: str,
        *,
        field: str | None = None,
        value: Any = None,
        **kwargs: Any,
    ):
        super().__init__(message, **kwargs)
        self.field = field
        self.value = value

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        if self.field:
            result["field"] = self.field
        if self.value is not None:
            result["value"] = repr(self.value)
        return result


class CronExpressionError(ValidationError):
    """Malformed cron expression (wrong field count or unknown token)."""

    pass


# =============================================================================
# CONFIGURATION ERRORS
# =============================================================================


class ConfigError(CronLeaseError):
    """Invalid job or store configuration. Never retryable."""

    default_category = ErrorCategory.CONFIG
    default_retryable = False


# =============================================================================
# STORE ERRORS
# =============================================================================


class DatabaseError(CronLeaseError):
    """Database query or transaction error."""

    default_category = ErrorCategory.DATABASE
    default_retryable = False


class StoreUnavailableError(DatabaseError):
    """The configured store could not be reached."""

    default_retryable = True


# =============================================================================
# SCHEDULING ERRORS
# =============================================================================


class ScheduleError(CronLeaseError):
    """Schedule configuration or execution error."""

    default_category = ErrorCategory.ORCHESTRATION
    default_retryable = False


class NoMatchingTimeError(ScheduleError):
    """No instant satisfies the expression within the search bound."""

    def __init__(self, message: str, *, max_minutes: int | None = None, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.max_minutes = max_minutes


class JobNotFoundError(ScheduleError):
    """Job name is not registered."""

    def __init__(self, name: str):
        super().__init__(f"Cron job not found: {name}")
        self.context.job_name = name


class DuplicateJobError(ScheduleError):
    """A job with the same name is already registered."""

    def __init__(self, name: str):
        super().__init__(f"Cron job already registered: {name}")
        self.context.job_name = name


__all__ = [
    "ErrorCategory",
    "ErrorContext",
    "CronLeaseError",
    "ValidationError",
    "CronExpressionError",
    "ConfigError",
    "DatabaseError",
    "StoreUnavailableError",
    "ScheduleError",
    "NoMatchingTimeError",
    "JobNotFoundError",
    "DuplicateJobError",
]
