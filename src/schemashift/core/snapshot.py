"""
Export snapshot - the per-run record written next to the artifacts.

The snapshot is the generation side's output contract and the delta
planner's input: for every exported object it records identity, output
path and modification instant, plus the grouping used for the run, the
objects whose replay needs externally supplied secrets, and the objects the
run's delta pass found deleted.

File Format (``_export_snapshot.json``)::

    {
      "format_version": 1,
      "created_at": "2026-01-20T08:09:04Z",
      "provider": "sqlite",
      "grouping_default": "per-object",
      "grouping": {"FileGroup": "per-type"},
      "objects": [
        {"type": "Table", "schema": "dbo", "name": "Customers",
         "output_path": "08_Tables_PrimaryKey/dbo.Customers.sql",
         "modified_at": "2026-01-19T04:16:46Z"}
      ],
      "secrets": [...],
      "deleted": [...]
    }
"""

from __future__ import annotations

from datetime import UTC, datetime
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from schemashift.core.errors import InvalidConfigError
from schemashift.core.models import GroupingMode, ObjectIdentity

SNAPSHOT_FILENAME = "_export_snapshot.json"
SNAPSHOT_FORMAT_VERSION = 1


def utcnow() -> datetime:
    """Return timezone-aware UTC datetime."""
    return datetime.now(UTC)


class SnapshotObject(BaseModel):
    """Identity of one object as stored in the snapshot."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    type: str
    schema_name: str = Field(alias="schema")
    name: str

    @property
    def identity(self) -> ObjectIdentity:
        return ObjectIdentity(self.type, self.schema_name, self.name)

    @classmethod
    def from_identity(cls, identity: ObjectIdentity) -> SnapshotObject:
        return cls(type=identity.type, schema=identity.schema, name=identity.name)


class SnapshotEntry(SnapshotObject):
    """An exported object: identity, artifact path and modify instant."""

    output_path: str
    modified_at: datetime | None = None


class SecretRequirement(SnapshotObject):
    """An exported object whose replay needs externally supplied secrets."""

    output_path: str


class ExportSnapshot(BaseModel):
    """Structured record of one export run."""

    format_version: int = SNAPSHOT_FORMAT_VERSION
    created_at: datetime = Field(default_factory=utcnow)
    provider: str = ""
    grouping_default: GroupingMode = GroupingMode.PER_OBJECT
    grouping: dict[str, GroupingMode] = Field(default_factory=dict)
    objects: list[SnapshotEntry] = Field(default_factory=list)
    secrets: list[SecretRequirement] = Field(default_factory=list)
    deleted: list[SnapshotObject] = Field(default_factory=list)

    def by_identity(self) -> dict[ObjectIdentity, SnapshotEntry]:
        return {entry.identity: entry for entry in self.objects}

    def grouping_for(self, object_type: str) -> GroupingMode:
        return self.grouping.get(object_type, self.grouping_default)

    def uses_only_per_object(self) -> bool:
        modes = {self.grouping_default, *self.grouping.values()}
        return modes == {GroupingMode.PER_OBJECT}

    def write(self, directory: Path) -> Path:
        path = Path(directory) / SNAPSHOT_FILENAME
        path.write_text(self.model_dump_json(indent=2, by_alias=True), encoding="utf-8")
        return path

    @classmethod
    def read(cls, directory: Path) -> ExportSnapshot:
        """Load the snapshot of a previous export directory."""
        path = Path(directory) / SNAPSHOT_FILENAME
        try:
            return cls.model_validate_json(path.read_text(encoding="utf-8"))
        except FileNotFoundError as e:
            raise InvalidConfigError(
                "delta_from", str(directory), f"No export snapshot found at {path}"
            ) from e
        except ValidationError as e:
            raise InvalidConfigError(
                "delta_from", str(directory), f"Unreadable export snapshot {path}: {e}"
            ) from e


__all__ = [
    "SNAPSHOT_FILENAME",
    "SNAPSHOT_FORMAT_VERSION",
    "SnapshotObject",
    "SnapshotEntry",
    "SecretRequirement",
    "ExportSnapshot",
]
