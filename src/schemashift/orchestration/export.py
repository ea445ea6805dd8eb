"""
Export Runner - the generation side end to end.

Flow::

    validate delta configuration        (no catalog access, no disk writes)
        ↓
    CatalogEnumerator.enumerate         one coordinator session
        ↓
    OrderingPlanner.plan
        ↓
    DeltaPlanner.classify / copy_sources  (delta runs only)
        ↓
    WorkQueueBuilder.build              unique targets, wi-NNNNN ids
        ↓
    ParallelDispatcher.dispatch         ScriptWriter per item, one session per worker
        ↓
    _export_snapshot.json + _DEPLOYMENT_ORDER.txt

Only items that succeeded are recorded in the snapshot, so a later delta
run sees failed objects as new and regenerates them.
"""

from __future__ import annotations

import shutil
import uuid
from collections import Counter
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from schemashift.catalog.enumerator import CatalogEnumerator, InclusionRules
from schemashift.core.buckets import deployment_order, type_spec
from schemashift.core.config import MigrationSettings
from schemashift.core.logging import LogContext, get_logger, log_step
from schemashift.core.models import DeltaClass, DeltaRecord, WorkItem
from schemashift.core.snapshot import (
    ExportSnapshot,
    SecretRequirement,
    SnapshotEntry,
    SnapshotObject,
    utcnow,
)
from schemashift.execution.dispatcher import DispatchReport, ParallelDispatcher, ProgressCallback
from schemashift.orchestration.delta import DeltaPlanner
from schemashift.orchestration.planner import OrderingPlanner
from schemashift.orchestration.work_queue import WorkQueueBuilder
from schemashift.providers.protocol import CatalogProvider, ProviderSession, TypeRegistry

logger = get_logger(__name__)

DEPLOYMENT_ORDER_FILENAME = "_DEPLOYMENT_ORDER.txt"


class ScriptWriter:
    """
    Work item handler that writes one artifact.

    Members are resolved again through the worker's own session (an object
    may have been dropped since enumeration) and scripted type by type in
    priority order. Delta copy items copy the prior artifact instead.
    """

    def __init__(self, registry: TypeRegistry, output_dir: Path):
        self.registry = registry
        self.output_dir = Path(output_dir)

    def __call__(self, session: ProviderSession, item: WorkItem) -> int:
        path = self.output_dir / item.target
        path.parent.mkdir(parents=True, exist_ok=True)
        unit = item.unit

        if item.copy_from is not None:
            if Path(item.copy_from).resolve() != path.resolve():
                shutil.copyfile(item.copy_from, path)
            return len(unit.members)

        parts: list[str] = []
        for object_type in sorted(unit.types, key=lambda t: type_spec(t).priority):
            handler = self.registry.get(object_type)
            members = [
                handler.lookup(session, m.identity) for m in unit.members if m.type == object_type
            ]
            parts.append(handler.generate(session, members, unit.options.get(object_type, {})))

        path.write_text("".join(parts), encoding="utf-8")
        return len(unit.members)


@dataclass
class ExportReport:
    """Outcome of one export run."""

    output_dir: str
    dispatch: DispatchReport
    delta_records: list[DeltaRecord] = field(default_factory=list)
    snapshot_path: str | None = None
    order_path: str | None = None

    @property
    def success(self) -> bool:
        return self.dispatch.success

    @property
    def exit_code(self) -> int:
        return 0 if self.success else 1

    @property
    def written(self) -> int:
        return sum(1 for r in self.dispatch.item_results if r.success and not r.copied)

    @property
    def copied(self) -> int:
        return sum(1 for r in self.dispatch.item_results if r.success and r.copied)

    def delta_counts(self) -> dict[str, int]:
        counts = Counter(r.classification.value for r in self.delta_records)
        return {c.value: counts.get(c.value, 0) for c in DeltaClass}

    def to_dict(self) -> dict[str, Any]:
        return {
            "output_dir": self.output_dir,
            "success": self.success,
            "written": self.written,
            "copied": self.copied,
            "failed": len(self.dispatch.failures),
            "delta": self.delta_counts() if self.delta_records else None,
            "snapshot": self.snapshot_path,
        }


def write_deployment_order(output_dir: Path, items: list[WorkItem], results: DispatchReport) -> Path:
    """Human-readable listing of buckets in applied order with artifact counts."""
    succeeded = {r.item_id for r in results.item_results if r.success}
    per_bucket = Counter(i.unit.bucket.prefix for i in items if i.id in succeeded)

    lines = [
        "schemashift deployment order",
        f"Generated: {utcnow().isoformat()}",
        "",
        f"{'Bucket':<32} {'Artifacts':>9}  Types",
    ]
    for bucket, specs in deployment_order():
        types = ", ".join(s.name for s in specs)
        lines.append(f"{bucket.prefix:<32} {per_bucket.get(bucket.prefix, 0):>9}  {types}")
    lines.append("")
    lines.append(f"Total artifacts: {sum(per_bucket.values())}")

    path = Path(output_dir) / DEPLOYMENT_ORDER_FILENAME
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    return path


class ExportRunner:
    """
    Generates an export directory from a provider's catalog.

    Example:
        provider = SQLiteProvider("source.db", readonly=True)
        runner = ExportRunner(provider, load_settings("export.yml"))
        report = runner.run(Path("exports/2026-01-20"), delta_from=Path("exports/2026-01-19"))
    """

    def __init__(
        self,
        provider: CatalogProvider,
        settings: MigrationSettings,
        progress_callback: ProgressCallback | None = None,
    ):
        self.provider = provider
        self.settings = settings
        self.progress_callback = progress_callback

    def _snapshot(
        self,
        items: list[WorkItem],
        dispatch: DispatchReport,
        records: list[DeltaRecord],
    ) -> ExportSnapshot:
        succeeded = {r.item_id for r in dispatch.item_results if r.success}
        snapshot = ExportSnapshot(
            provider=self.provider.name,
            grouping_default=self.settings.grouping_default,
            grouping=dict(self.settings.grouping),
        )
        for item in items:
            if item.id not in succeeded:
                continue
            for obj in item.unit.members:
                snapshot.objects.append(
                    SnapshotEntry(
                        type=obj.type,
                        schema=obj.schema,
                        name=obj.name,
                        output_path=item.target,
                        modified_at=obj.modified_at,
                    )
                )
                if type_spec(obj.type).requires_secret:
                    snapshot.secrets.append(
                        SecretRequirement(
                            type=obj.type, schema=obj.schema, name=obj.name, output_path=item.target
                        )
                    )
        snapshot.deleted.extend(
            SnapshotObject.from_identity(r.identity)
            for r in records
            if r.classification is DeltaClass.DELETED
        )
        return snapshot

    def run(self, output_dir: Path | str, *, delta_from: Path | str | None = None) -> ExportReport:
        """
        Run a full or delta export into ``output_dir``.

        Raises:
            DeltaConfigurationError: delta requested with non per-object grouping
            InvalidConfigError: unknown or unsupported types, unreadable prior snapshot
            SetupFailure: the coordinator session could not be opened
        """
        output_dir = Path(output_dir)
        run_id = f"export-{uuid.uuid4().hex[:12]}"

        with LogContext(run_id=run_id):
            enumerator = CatalogEnumerator(
                self.provider.registry, InclusionRules.from_settings(self.settings)
            )
            planned_types = enumerator.planned_types()

            delta: DeltaPlanner | None = None
            if delta_from is not None:
                delta = DeltaPlanner.from_directory(self.settings, delta_from)
                delta.validate(planned_types)

            with log_step("export.enumerate", provider=self.provider.name) as step:
                session = self.provider.connect()
                try:
                    objects = list(enumerator.enumerate(session))
                finally:
                    session.close()
                step["objects"] = len(objects)

            units = OrderingPlanner(self.settings).plan(objects)

            records: list[DeltaRecord] = []
            copy_sources: dict[str, Path] = {}
            if delta is not None:
                records = delta.classify(objects)
                copy_sources = delta.copy_sources(units, records)

            items = WorkQueueBuilder().build(units, copy_sources)

            output_dir.mkdir(parents=True, exist_ok=True)
            if delta is not None:
                delta.remove_deleted(output_dir, records)
            dispatcher = ParallelDispatcher(
                self.provider.connect,
                ScriptWriter(self.provider.registry, output_dir),
                self.settings,
                progress_callback=self.progress_callback,
            )
            with log_step("export.dispatch", items=len(items)):
                dispatch = dispatcher.dispatch(items)

            snapshot_path = self._snapshot(items, dispatch, records).write(output_dir)
            order_path = write_deployment_order(output_dir, items, dispatch)

            report = ExportReport(
                output_dir=str(output_dir),
                dispatch=dispatch,
                delta_records=records,
                snapshot_path=str(snapshot_path),
                order_path=str(order_path),
            )
            logger.info("export.complete", **report.to_dict())
            return report


__all__ = ["ExportRunner", "ExportReport", "ScriptWriter", "write_deployment_order", "DEPLOYMENT_ORDER_FILENAME"]
