"""
Delta Planner - incremental regeneration against a prior export.

Classification of each object against the prior run's snapshot::

    type in always_modified_types        → MODIFIED
    absent from the prior snapshot       → NEW
    either timestamp missing             → MODIFIED
    current modified_at > recorded       → MODIFIED
    otherwise                            → UNCHANGED
    in the prior snapshot only           → DELETED

Unchanged objects whose prior artifact still exists are not regenerated;
their work items carry ``copy_from`` and the dispatcher copies the file.
A missing prior artifact forces regeneration.
When the prior export is the output directory itself, artifacts of
DELETED objects are removed so a later replay does not pick them up.

Delta only works when one object maps to one artifact. Any planned type
with a coarser grouping, or a prior export produced with one, is rejected
with DeltaConfigurationError before the catalog is touched.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from datetime import UTC, datetime
from pathlib import Path

from schemashift.core.config import MigrationSettings
from schemashift.core.errors import DeltaConfigurationError
from schemashift.core.logging import get_logger
from schemashift.core.models import (
    CatalogObject,
    DeltaClass,
    DeltaRecord,
    GroupingMode,
    ObjectIdentity,
    Unit,
)
from schemashift.core.snapshot import ExportSnapshot
from schemashift.orchestration.work_queue import output_target

logger = get_logger(__name__)


def _as_utc(value: datetime | None) -> datetime | None:
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=UTC)


class DeltaPlanner:
    """
    Classifies the current catalog against a prior export.

    Example:
        delta = DeltaPlanner.from_directory(settings, Path("exports/2026-01-19"))
        delta.validate(enumerator.planned_types())
        records = delta.classify(objects)
        copies = delta.copy_sources(units, records)
    """

    def __init__(
        self,
        settings: MigrationSettings,
        prior: ExportSnapshot,
        prior_dir: Path | None = None,
    ):
        self.settings = settings
        self.prior = prior
        self.prior_dir = Path(prior_dir) if prior_dir is not None else None
        self._prior_entries = prior.by_identity()

    @classmethod
    def from_directory(cls, settings: MigrationSettings, prior_dir: Path | str) -> DeltaPlanner:
        prior_dir = Path(prior_dir)
        return cls(settings, ExportSnapshot.read(prior_dir), prior_dir)

    def validate(self, planned_types: Iterable[str]) -> None:
        """
        Reject delta runs that cannot map objects to artifacts one to one.

        Raises:
            DeltaConfigurationError: a planned type, or the prior export,
                uses a grouping other than per-object
        """
        offending = {
            t: self.settings.grouping_for(t).value
            for t in planned_types
            if self.settings.grouping_for(t) is not GroupingMode.PER_OBJECT
        }
        if not self.prior.uses_only_per_object():
            offending["<prior export>"] = self.prior.grouping_default.value
            for t, mode in self.prior.grouping.items():
                if mode is not GroupingMode.PER_OBJECT:
                    offending[f"<prior export> {t}"] = mode.value
        if offending:
            logger.error("delta.invalid_grouping", offending=offending)
            raise DeltaConfigurationError(offending)

    def classify_one(self, obj: CatalogObject) -> DeltaRecord:
        entry = self._prior_entries.get(obj.identity)
        prior_at = _as_utc(entry.modified_at) if entry else None
        current_at = _as_utc(obj.modified_at)

        if obj.type in self.settings.always_modified_types:
            classification = DeltaClass.MODIFIED
        elif entry is None:
            classification = DeltaClass.NEW
        elif prior_at is None or current_at is None:
            classification = DeltaClass.MODIFIED
        elif current_at > prior_at:
            classification = DeltaClass.MODIFIED
        else:
            classification = DeltaClass.UNCHANGED

        return DeltaRecord(obj.identity, classification, prior_at, current_at)

    def classify(self, objects: Iterable[CatalogObject]) -> list[DeltaRecord]:
        """Classify current objects, then append prior-only objects as DELETED."""
        records: list[DeltaRecord] = []
        seen: set[ObjectIdentity] = set()
        for obj in objects:
            seen.add(obj.identity)
            records.append(self.classify_one(obj))

        for identity in sorted(set(self._prior_entries) - seen):
            entry = self._prior_entries[identity]
            records.append(
                DeltaRecord(identity, DeltaClass.DELETED, _as_utc(entry.modified_at), None)
            )

        counts = {c.value: 0 for c in DeltaClass}
        for record in records:
            counts[record.classification.value] += 1
        logger.info("delta.classified", **counts)
        return records

    def copy_sources(self, units: Sequence[Unit], records: Iterable[DeltaRecord]) -> dict[str, Path]:
        """
        Target → prior artifact for every unchanged unit that can be copied.

        Targets are computed the same way the work queue builder computes
        them; per-object targets depend only on identity.
        """
        if self.prior_dir is None:
            return {}

        unchanged = {r.identity for r in records if r.classification is DeltaClass.UNCHANGED}
        sources: dict[str, Path] = {}
        for unit in units:
            if unit.mode is not GroupingMode.PER_OBJECT:
                continue
            identity = unit.members[0].identity
            if identity not in unchanged:
                continue
            entry = self._prior_entries[identity]
            source = self.prior_dir / entry.output_path
            if not source.is_file():
                logger.warning(
                    "delta.prior_artifact_missing",
                    identity=str(identity),
                    path=str(source),
                )
                continue
            sources[output_target(unit)] = source
        return sources

    def remove_deleted(self, output_dir: Path, records: Iterable[DeltaRecord]) -> list[Path]:
        """
        Delete the prior artifacts of DELETED objects when exporting in place.

        A run into a fresh directory never copies them, so there is nothing
        to remove. Returns the paths that were removed.
        """
        if self.prior_dir is None or self.prior_dir.resolve() != Path(output_dir).resolve():
            return []

        removed: list[Path] = []
        for record in records:
            if record.classification is not DeltaClass.DELETED:
                continue
            path = self.prior_dir / self._prior_entries[record.identity].output_path
            if path.is_file():
                path.unlink()
                removed.append(path)
        if removed:
            logger.info("delta.stale_removed", count=len(removed))
        return removed


__all__ = ["DeltaPlanner"]
