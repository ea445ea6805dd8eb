"""
Result envelope for provider calls that are expected to fail.

Replay deliberately executes scripts whose references may not exist yet.
Those failures are part of the normal flow of the retry loop, so the
provider reports them as values (``Err``) instead of raising. The apply
engine pattern-matches on the envelope and never infers success from the
absence of an exception.

Architecture:
    ::

        Result[T] = Ok[T] | Err[T]

        Ok(value)            Err(error: MigrationError)
        • is_ok() → True     • is_ok() → False
        • unwrap() → value   • unwrap() → raises error
        • map(f)             • map(f) → self

Examples:
    >>> def execute(sql: str) -> Result[int]:
    ...     if "missing" in sql:
    ...         return Err(DependencyUnresolved("no such table: missing"))
    ...     return Ok(1)
    >>> match execute("CREATE VIEW v AS SELECT 1"):
    ...     case Ok(rows):
    ...         print(rows)
    ...     case Err(error):
    ...         print(error.kind)
    1

Tags:
    result-pattern, explicit-errors, schemashift
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import Generic, TypeVar, Union

T = TypeVar("T")
U = TypeVar("U")


@dataclass(frozen=True, slots=True)
class Ok(Generic[T]):
    """Successful result containing a value."""

    value: T

    def is_ok(self) -> bool:
        return True

    def is_err(self) -> bool:
        return False

    def unwrap(self) -> T:
        return self.value

    def unwrap_or(self, default: T) -> T:
        return self.value

    def map(self, f: Callable[[T], U]) -> Result[U]:
        return Ok(f(self.value))

    def __repr__(self) -> str:
        return f"Ok({self.value!r})"


@dataclass(frozen=True, slots=True)
class Err(Generic[T]):
    """Failed result carrying the error that describes the failure."""

    error: Exception

    def is_ok(self) -> bool:
        return False

    def is_err(self) -> bool:
        return True

    def unwrap(self) -> T:
        """Raise the carried error; callers that reach this skipped a check."""
        raise self.error

    def unwrap_or(self, default: T) -> T:
        return default

    def map(self, f: Callable[[T], U]) -> Err[T]:
        return self

    def __repr__(self) -> str:
        return f"Err({self.error!r})"


Result = Union[Ok[T], Err[T]]


__all__ = ["Ok", "Err", "Result"]
