"""
Structured error types for schemashift.

Provides a typed hierarchy of errors with metadata for retry decisions,
failure reporting and root cause analysis through error chaining.

Every failure the scheduler can observe maps onto exactly one ``ErrorKind``.
The kind travels with the error into ``WorkResult`` and ``ApplyAttempt``
values, so reporting never depends on catching a particular exception class.

Manifesto:
    - **Typed Error Hierarchy:** One class per failure mode of the scheduler
    - **Explicit Retry Semantics:** Only DependencyUnresolved is retryable
    - **Rich Context:** Errors carry object identity, unit target and pass
    - **Error Chaining:** The provider's original exception is kept as cause

Architecture:
    ::

        ┌─────────────────────────────────────────────────────────────────┐
        │                       MigrationError                            │
        │  (kind, category, retryable, context, cause)                    │
        ├─────────────────────────────────────────────────────────────────┤
        │                                                                 │
        │  ObjectLookupFailure      ScriptGenerationFailure               │
        │  (CATALOG)                (PROVIDER)                            │
        │                                │                                │
        │                           MissingVariableError                  │
        │                                                                 │
        │  DependencyUnresolved     ConstraintViolation                   │
        │  (retryable=True)         (VALIDATION)                          │
        │                                                                 │
        │  SetupFailure             TargetCollisionError                  │
        │  (PROVIDER)               (INTERNAL, never user input)          │
        │       │                                                         │
        │  ProviderConnectionError                                        │
        │                                                                 │
        │  ConfigError                                                    │
        │    ├── InvalidConfigError                                       │
        │    └── DeltaConfigurationError                                  │
        └─────────────────────────────────────────────────────────────────┘

Examples:
    >>> error = DependencyUnresolved("Invalid object name 'dbo.fn_Total'")
    >>> error.retryable
    True
    >>> error.kind
    <ErrorKind.DEPENDENCY_UNRESOLVED: 'DependencyUnresolved'>

    >>> error = ScriptGenerationFailure("provider rejected options")
    >>> error.with_context(object_type="View", target="13_Programmability/05_Views/dbo.v.sql")
    ScriptGenerationFailure('provider rejected options', kind=ScriptGenerationFailure)

Guardrails:
    ❌ DON'T: Raise per-item failures across the dispatcher boundary
    ✅ DO: Convert them with ``error_kind_of()`` into WorkResult values

    ❌ DON'T: Treat TargetCollisionError as a user error
    ✅ DO: Let it abort the run, it signals a planner bug

Tags:
    error-handling, exception-hierarchy, retry-logic, schemashift
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorKind(str, Enum):
    """Failure taxonomy shared by generation and replay."""

    OBJECT_LOOKUP = "ObjectLookupFailure"
    SCRIPT_GENERATION = "ScriptGenerationFailure"
    DEPENDENCY_UNRESOLVED = "DependencyUnresolved"
    CONSTRAINT_VIOLATION = "ConstraintViolation"
    SETUP = "SetupFailure"
    TARGET_COLLISION = "TargetCollision"
    CONFIG = "ConfigError"


class ErrorCategory(str, Enum):
    """Coarse routing categories for logging and alerting."""

    CATALOG = "CATALOG"  # Object enumeration and lookup
    PROVIDER = "PROVIDER"  # Scripting provider / target store
    VALIDATION = "VALIDATION"  # Post-load constraint validation
    CONFIG = "CONFIG"  # Missing or invalid settings
    INTERNAL = "INTERNAL"  # Contract violations, bugs


@dataclass
class ErrorContext:
    """
    Structured metadata attached to an error.

    Only fields that are set show up in ``to_dict()``, so log lines stay
    short for errors raised far away from any particular object.
    """

    object_type: str | None = None
    schema: str | None = None
    name: str | None = None
    target: str | None = None
    work_item_id: str | None = None
    worker_id: str | None = None
    pass_number: int | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        result: dict[str, Any] = {}
        for key in (
            "object_type",
            "schema",
            "name",
            "target",
            "work_item_id",
            "worker_id",
            "pass_number",
        ):
            value = getattr(self, key)
            if value is not None:
                result[key] = value
        if self.metadata:
            result.update(self.metadata)
        return result


class MigrationError(Exception):
    """
    Base exception for all schemashift errors.

    Subclasses set ``default_kind``, ``default_category`` and
    ``default_retryable``. Instances carry an ``ErrorContext`` that can be
    extended fluently with ``with_context()``.
    """

    default_kind: ErrorKind = ErrorKind.SCRIPT_GENERATION
    default_category: ErrorCategory = ErrorCategory.INTERNAL
    default_retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        retryable: bool | None = None,
        context: ErrorContext | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.kind = self.default_kind
        self.category = category or self.default_category
        self.retryable = retryable if retryable is not None else self.default_retryable
        self.context = context or ErrorContext()
        self.cause = cause

        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> MigrationError:
        """
        Add context to this error (fluent API).

        Usage:
            raise ObjectLookupFailure("gone").with_context(
                object_type="Table", schema="dbo", name="Orders"
            )
        """
        for key, value in kwargs.items():
            if key != "metadata" and hasattr(self.context, key):
                setattr(self.context, key, value)
            else:
                self.context.metadata[key] = value
        return self

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        result: dict[str, Any] = {
            "error_type": self.__class__.__name__,
            "kind": self.kind.value,
            "message": self.message,
            "category": self.category.value,
            "retryable": self.retryable,
        }
        context_dict = self.context.to_dict()
        if context_dict:
            result["context"] = context_dict
        if self.cause is not None:
            result["cause"] = str(self.cause)
        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, kind={self.kind.value})"


# =============================================================================
# GENERATION / REPLAY FAILURES
# =============================================================================


class ObjectLookupFailure(MigrationError):
    """A work item's object could not be resolved at execution time."""

    default_kind = ErrorKind.OBJECT_LOOKUP
    default_category = ErrorCategory.CATALOG


class ScriptGenerationFailure(MigrationError):
    """The provider rejected generation or apply for the given inputs."""

    default_kind = ErrorKind.SCRIPT_GENERATION
    default_category = ErrorCategory.PROVIDER


class MissingVariableError(ScriptGenerationFailure):
    """A replay script references a ``$(NAME)`` variable with no value."""

    def __init__(self, variables: list[str], message: str | None = None):
        self.variables = sorted(set(variables))
        super().__init__(
            message or f"Undefined script variables: {', '.join(self.variables)}"
        )


class DependencyUnresolved(MigrationError):
    """
    An apply attempt referenced an object that does not exist yet.

    Expected during replay of reference-prone buckets and drives the
    multi-pass retry loop. It only becomes terminal when a pass makes no
    progress.
    """

    default_kind = ErrorKind.DEPENDENCY_UNRESOLVED
    default_category = ErrorCategory.PROVIDER
    default_retryable = True


class ConstraintViolation(MigrationError):
    """Post-load validation found rows that break a constraint."""

    default_kind = ErrorKind.CONSTRAINT_VIOLATION
    default_category = ErrorCategory.VALIDATION

    def __init__(self, constraint: str, message: str | None = None):
        self.constraint = constraint
        super().__init__(message or f"Constraint violated after load: {constraint}")


class SetupFailure(MigrationError):
    """A worker could not establish its own provider session."""

    default_kind = ErrorKind.SETUP
    default_category = ErrorCategory.PROVIDER


class ProviderConnectionError(SetupFailure):
    """The provider refused or dropped a connection."""

    pass


class TargetCollisionError(MigrationError):
    """Two units were assigned the same output target."""

    default_kind = ErrorKind.TARGET_COLLISION
    default_category = ErrorCategory.INTERNAL

    def __init__(self, target: str, first: str, second: str):
        self.target = target
        self.first = first
        self.second = second
        super().__init__(
            f"Output target {target!r} assigned to both {first} and {second}"
        )


# =============================================================================
# CONFIGURATION
# =============================================================================


class ConfigError(MigrationError):
    """Configuration-related error."""

    default_kind = ErrorKind.CONFIG
    default_category = ErrorCategory.CONFIG


class InvalidConfigError(ConfigError):
    """Configuration value is invalid."""

    def __init__(self, key: str, value: Any, message: str | None = None):
        self.key = key
        self.value = value
        super().__init__(message or f"Invalid value for {key}: {value!r}")


class DeltaConfigurationError(InvalidConfigError):
    """Delta generation was requested with a grouping coarser than per-object."""

    def __init__(self, offending: dict[str, str]):
        self.offending = dict(sorted(offending.items()))
        detail = ", ".join(f"{t}={m}" for t, m in self.offending.items())
        super().__init__(
            "grouping",
            self.offending,
            f"Delta generation requires per-object grouping; got {detail}",
        )


# =============================================================================
# UTILITY FUNCTIONS
# =============================================================================


def error_kind_of(error: BaseException) -> ErrorKind:
    """Map any exception onto the failure taxonomy."""
    if isinstance(error, MigrationError):
        return error.kind
    if isinstance(error, (ConnectionError, TimeoutError)):
        return ErrorKind.SETUP
    if isinstance(error, LookupError):
        return ErrorKind.OBJECT_LOOKUP
    return ErrorKind.SCRIPT_GENERATION


def is_retryable(error: BaseException) -> bool:
    """Check if an error may succeed on a later apply pass."""
    if isinstance(error, MigrationError):
        return error.retryable
    return False


__all__ = [
    "ErrorKind",
    "ErrorCategory",
    "ErrorContext",
    "MigrationError",
    "ObjectLookupFailure",
    "ScriptGenerationFailure",
    "MissingVariableError",
    "DependencyUnresolved",
    "ConstraintViolation",
    "SetupFailure",
    "ProviderConnectionError",
    "TargetCollisionError",
    "ConfigError",
    "InvalidConfigError",
    "DeltaConfigurationError",
    "error_kind_of",
    "is_retryable",
]
