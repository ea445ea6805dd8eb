"""
Scheduler models - core dataclasses shared by generation and replay.

These are pure data structures with no dependencies on a provider,
the filesystem or execution.

Design Principles:
- Immutable (frozen dataclasses); planners return new values
- Identity is (type, schema, name); timestamps never take part in equality
- No business logic (that lives in planner/dispatcher/apply engine)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any

from schemashift.core.errors import ErrorKind


class GroupingMode(str, Enum):
    """How many catalog objects share one output artifact."""

    PER_OBJECT = "per-object"
    PER_SCHEMA = "per-schema"
    PER_TYPE = "per-type"


class DeltaClass(str, Enum):
    """Classification of an object against the prior run's snapshot."""

    NEW = "new"
    MODIFIED = "modified"
    UNCHANGED = "unchanged"
    DELETED = "deleted"


class ApplyState(str, Enum):
    """Per-unit replay state."""

    PENDING = "pending"
    APPLYING = "applying"
    APPLIED = "applied"
    FAILED_THIS_PASS = "failed_this_pass"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass(frozen=True, order=True)
class ObjectIdentity:
    """(type, schema, name) - the only thing that identifies an object."""

    type: str
    schema: str
    name: str

    @property
    def qualified_name(self) -> str:
        return f"{self.schema}.{self.name}" if self.schema else self.name

    def __str__(self) -> str:
        return f"{self.type}:{self.qualified_name}"


@dataclass(frozen=True)
class CatalogObject:
    """
    One object reported by the catalog provider.

    Attributes:
        type: Object type name from the bucket table (e.g. "Table", "View")
        schema: Owning schema, "" for schema-less objects
        name: Object name; child objects embed their parent ("Orders.IX_Date")
        modified_at: Last modification instant, when the provider exposes one
        is_system: True for provider-internal objects, None when unknown
    """

    type: str
    schema: str
    name: str
    modified_at: datetime | None = field(default=None, compare=False)
    is_system: bool | None = field(default=None, compare=False)

    @property
    def identity(self) -> ObjectIdentity:
        return ObjectIdentity(self.type, self.schema, self.name)

    @property
    def qualified_name(self) -> str:
        return self.identity.qualified_name


@dataclass(frozen=True, order=True)
class Bucket:
    """
    An ordinal stage in the fixed dependency order.

    Ordering compares ordinals first, so sorting buckets (or units keyed by
    their bucket) recovers the deployment order.
    """

    ordinal: int
    label: str
    priority: int = 0

    @property
    def prefix(self) -> str:
        """On-disk directory name; lexicographic order equals bucket order."""
        return f"{self.ordinal:02d}_{self.label}"


@dataclass(frozen=True)
class Unit:
    """
    A planned group of catalog objects destined for one output artifact.

    ``target`` is empty until the work queue builder assigns it.
    ``options`` maps each member type to its scripting options.
    """

    bucket: Bucket
    mode: GroupingMode
    members: tuple[CatalogObject, ...]
    options: dict[str, dict[str, Any]] = field(default_factory=dict, compare=False)
    handler: str | None = None
    target: str = ""

    @property
    def types(self) -> tuple[str, ...]:
        seen: dict[str, None] = {}
        for member in self.members:
            seen.setdefault(member.type, None)
        return tuple(seen)

    @property
    def schemas(self) -> tuple[str, ...]:
        return tuple(sorted({m.schema for m in self.members}))

    def describe(self) -> str:
        if self.mode is GroupingMode.PER_OBJECT:
            return str(self.members[0].identity)
        if self.mode is GroupingMode.PER_SCHEMA:
            return f"{self.bucket.prefix}[schema={self.members[0].schema}]"
        return f"{self.bucket.prefix}[type={self.members[0].type}]"


@dataclass(frozen=True)
class WorkItem:
    """A dispatch-ready unit; consumed exactly once by one worker."""

    id: str
    unit: Unit
    copy_from: Path | None = None

    @property
    def target(self) -> str:
        return self.unit.target


@dataclass(frozen=True)
class WorkResult:
    """Outcome of one work item, or of one worker's failed setup."""

    item_id: str | None
    success: bool
    object_count: int = 0
    error_kind: ErrorKind | None = None
    error: str | None = None
    target: str | None = None
    worker_id: str | None = None
    copied: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "item_id": self.item_id,
            "success": self.success,
            "object_count": self.object_count,
            "error_kind": self.error_kind.value if self.error_kind else None,
            "error": self.error,
            "target": self.target,
            "worker_id": self.worker_id,
            "copied": self.copied,
        }


@dataclass(frozen=True)
class DeltaRecord:
    """Delta classification of one object."""

    identity: ObjectIdentity
    classification: DeltaClass
    prior_modified_at: datetime | None = None
    current_modified_at: datetime | None = None


@dataclass(frozen=True, order=True)
class ApplyUnit:
    """One artifact file discovered under an export root at replay time."""

    bucket_ordinal: int
    bucket_label: str
    path: str

    @property
    def bucket_prefix(self) -> str:
        return f"{self.bucket_ordinal:02d}_{self.bucket_label}"


@dataclass(frozen=True)
class ApplyAttempt:
    """The outcome of applying one unit in one pass."""

    unit: ApplyUnit
    pass_number: int
    outcome: ApplyState
    error_kind: ErrorKind | None = None
    error: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.outcome is ApplyState.APPLIED

    def to_dict(self) -> dict[str, Any]:
        return {
            "unit": self.unit.path,
            "pass": self.pass_number,
            "outcome": self.outcome.value,
            "error_kind": self.error_kind.value if self.error_kind else None,
            "error": self.error,
        }


__all__ = [
    "GroupingMode",
    "DeltaClass",
    "ApplyState",
    "ObjectIdentity",
    "CatalogObject",
    "Bucket",
    "Unit",
    "WorkItem",
    "WorkResult",
    "DeltaRecord",
    "ApplyUnit",
    "ApplyAttempt",
]
