"""
Apply Engine - replays an export against a target store.

Manifesto:
    Replay needs no catalog and no bucket table: the export directory
    already encodes the order. Bucket directories are named ``NN_Label``
    and sort lexicographically into deployment order; the files beneath
    each sort by relative path. What replay cannot know up front is the
    order *inside* reference-prone buckets (views over functions over
    views...), so those buckets are retried pass after pass until a pass
    makes no progress.

Architecture:
    ::

        discover_units(export_dir)          → [ApplyUnit] in replay order

        ApplyEngine(session, settings)
          ├── .plan(export_dir) → ApplyPlan       dry run, no session calls
          └── .run(export_dir)  → ApplyReport
                for each bucket directory, in order:
                  excluded         → SKIPPED
                  retry bucket     → multi-pass group
                  data bucket      → ConstraintLifecycleManager.run(load)
                  otherwise        → sequential, one attempt per unit

        Per-unit state machine:
            PENDING → APPLYING → APPLIED
                               → FAILED_THIS_PASS → (next pass) APPLYING
                               → FAILED (terminal)

    Only DependencyUnresolved is requeued for another pass. A pass that
    applies nothing ends the group; what is left fails with its last
    DependencyUnresolved detail. Units resume at the batch that failed,
    so earlier batches of a partially applied unit never run twice.

Guardrails:
    ❌ DON'T: Infer success from the absence of an exception
    ✅ DO: Match on the Result returned by ``execute_batch``

    ❌ DON'T: Stop at the first failure by default
    ✅ DO: Record it, continue, and aggregate; ``continue_on_error=False``
           opts into stopping

Tags:
    schemashift, replay, retry, apply, dependency-order
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any

from schemashift.core.batches import find_variables, split_batches, substitute_variables
from schemashift.core.config import MigrationSettings
from schemashift.core.errors import ErrorKind, ScriptGenerationFailure
from schemashift.core.logging import LogContext, get_logger
from schemashift.core.models import ApplyAttempt, ApplyState, ApplyUnit
from schemashift.core.result import Err, Ok
from schemashift.execution.constraints import ConstraintLifecycleManager, ConstraintReport
from schemashift.providers.protocol import ProviderSession

logger = get_logger(__name__)

_BUCKET_DIR = re.compile(r"^(?P<ordinal>\d{2})_(?P<label>.+)$")
ARTIFACT_SUFFIX = ".sql"


def _is_metadata(name: str) -> bool:
    return name.startswith("_")


def read_artifact(path: Path) -> str:
    """Read one artifact as UTF-8; unreadable files are generation failures."""
    try:
        return path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise ScriptGenerationFailure(f"Cannot read artifact {path.name}: {e}", cause=e)


def discover_units(export_dir: Path | str) -> list[ApplyUnit]:
    """
    List artifact files under an export root in replay order.

    Bucket directories match ``NN_Label`` and sort lexicographically;
    files sort by relative POSIX path. Anything starting with ``_`` is
    metadata and skipped.
    """
    root = Path(export_dir)
    if not root.is_dir():
        raise FileNotFoundError(f"Export directory not found: {root}")

    units: list[ApplyUnit] = []
    for bucket_dir in sorted(root.iterdir(), key=lambda p: p.name):
        match = _BUCKET_DIR.match(bucket_dir.name)
        if not bucket_dir.is_dir() or match is None:
            continue
        paths = []
        for path in bucket_dir.rglob(f"*{ARTIFACT_SUFFIX}"):
            relative = path.relative_to(root)
            if not path.is_file() or any(_is_metadata(part) for part in relative.parts):
                continue
            paths.append(relative.as_posix())
        for relative_path in sorted(paths):
            units.append(
                ApplyUnit(int(match.group("ordinal")), match.group("label"), relative_path)
            )
    return units


def _group_by_bucket(units: list[ApplyUnit]) -> list[tuple[str, str, list[ApplyUnit]]]:
    groups: dict[str, tuple[str, list[ApplyUnit]]] = {}
    for unit in units:
        groups.setdefault(unit.bucket_prefix, (unit.bucket_label, []))[1].append(unit)
    return [(prefix, label, members) for prefix, (label, members) in groups.items()]


# =============================================================================
# DRY RUN
# =============================================================================


@dataclass
class PlannedBucket:
    """One bucket as the engine would execute it."""

    prefix: str
    label: str
    mode: str  # "sequential" | "retry" | "data" | "skipped"
    units: list[ApplyUnit] = field(default_factory=list)
    missing_variables: dict[str, list[str]] = field(default_factory=dict)
    unreadable: dict[str, str] = field(default_factory=dict)


@dataclass
class ApplyPlan:
    """Result of ``ApplyEngine.plan()``: what would run, in order."""

    export_dir: str
    buckets: list[PlannedBucket] = field(default_factory=list)

    @property
    def unit_count(self) -> int:
        return sum(len(b.units) for b in self.buckets if b.mode != "skipped")

    @property
    def missing_variables(self) -> dict[str, list[str]]:
        missing: dict[str, list[str]] = {}
        for bucket in self.buckets:
            missing.update(bucket.missing_variables)
        return missing

    @property
    def unreadable(self) -> dict[str, str]:
        unreadable: dict[str, str] = {}
        for bucket in self.buckets:
            unreadable.update(bucket.unreadable)
        return unreadable

    @property
    def is_valid(self) -> bool:
        return not self.missing_variables and not self.unreadable

    def summary(self) -> str:
        lines = [f"Apply plan for {self.export_dir}: {self.unit_count} units"]
        for bucket in self.buckets:
            lines.append(f"  {bucket.prefix:<32} {bucket.mode:<10} {len(bucket.units):>5} units")
        for path, names in self.missing_variables.items():
            lines.append(f"  ! {path}: undefined {', '.join(names)}")
        for path, reason in self.unreadable.items():
            lines.append(f"  ! {path}: {reason}")
        return "\n".join(lines)


def bucket_mode(settings: MigrationSettings, label: str) -> str:
    """How a bucket directory is replayed under the given settings."""
    if settings.is_excluded_bucket(label):
        return "skipped"
    if settings.is_data_bucket(label):
        return "data" if settings.include_data else "skipped"
    if settings.is_retry_bucket(label):
        return "retry"
    return "sequential"


def plan_apply(export_dir: Path | str, settings: MigrationSettings) -> ApplyPlan:
    """
    Dry run: what a replay would execute, in order, without touching a store.

    Also lists the undefined ``$(NAME)`` variables of every unit that
    would run, so a replay can be checked before it starts.
    """
    root = Path(export_dir)
    plan = ApplyPlan(export_dir=str(root))
    for prefix, label, units in _group_by_bucket(discover_units(root)):
        bucket = PlannedBucket(prefix=prefix, label=label, mode=bucket_mode(settings, label), units=units)
        if bucket.mode != "skipped":
            for unit in units:
                try:
                    script = read_artifact(root / unit.path)
                except ScriptGenerationFailure as e:
                    bucket.unreadable[unit.path] = e.message
                    continue
                missing = [v for v in find_variables(script) if v not in settings.variables]
                if missing:
                    bucket.missing_variables[unit.path] = missing
        plan.buckets.append(bucket)
    return plan


# =============================================================================
# REPORT
# =============================================================================


@dataclass
class ApplyReport:
    """Every attempt made during one replay, plus the final outcome per unit."""

    export_dir: str
    attempts: list[ApplyAttempt] = field(default_factory=list)
    final: dict[str, ApplyAttempt] = field(default_factory=dict)
    passes: dict[str, int] = field(default_factory=dict)
    constraint_report: ConstraintReport | None = None
    aborted: bool = False

    @property
    def failures(self) -> list[ApplyAttempt]:
        return [a for a in self.final.values() if a.outcome is ApplyState.FAILED]

    @property
    def applied(self) -> list[ApplyAttempt]:
        return [a for a in self.final.values() if a.outcome is ApplyState.APPLIED]

    @property
    def skipped(self) -> list[ApplyAttempt]:
        return [a for a in self.final.values() if a.outcome is ApplyState.SKIPPED]

    @property
    def constraint_violations(self) -> list[str]:
        if self.constraint_report is None:
            return []
        return self.constraint_report.violating_names

    @property
    def failure_count(self) -> int:
        return len(self.failures) + len(self.constraint_violations)

    @property
    def success(self) -> bool:
        return self.failure_count == 0 and not self.aborted

    @property
    def exit_code(self) -> int:
        return 0 if self.success else 1

    def to_dict(self) -> dict[str, Any]:
        return {
            "export_dir": self.export_dir,
            "success": self.success,
            "aborted": self.aborted,
            "applied": len(self.applied),
            "failed": len(self.failures),
            "skipped": len(self.skipped),
            "passes": dict(self.passes),
            "constraint_violations": self.constraint_violations,
            "failures": [a.to_dict() for a in self.failures],
        }


# =============================================================================
# ENGINE
# =============================================================================


class _UnitRun:
    """Mutable replay state of one unit; private to the engine."""

    def __init__(self, unit: ApplyUnit):
        self.unit = unit
        self.state = ApplyState.PENDING
        self.batches: list[str] | None = None
        self.next_batch = 0
        self.last: ApplyAttempt | None = None


class ApplyEngine:
    """
    Replays an export directory through one provider session.

    Example:
        session = SQLiteProvider("target.db").connect()
        engine = ApplyEngine(session, settings)
        print(engine.plan("exports/2026-01-19").summary())
        report = engine.run("exports/2026-01-19")
        raise SystemExit(report.exit_code)
    """

    def __init__(self, session: ProviderSession, settings: MigrationSettings):
        self.session = session
        self.settings = settings

    def _bucket_mode(self, label: str) -> str:
        return bucket_mode(self.settings, label)

    def plan(self, export_dir: Path | str) -> ApplyPlan:
        """Dry run; see :func:`plan_apply`."""
        return plan_apply(export_dir, self.settings)

    # ── Replay ───────────────────────────────────────────────────

    def run(self, export_dir: Path | str) -> ApplyReport:
        root = Path(export_dir)
        report = ApplyReport(export_dir=str(root))
        buckets = _group_by_bucket(discover_units(root))
        logger.info(
            "apply.start",
            export_dir=str(root),
            buckets=len(buckets),
            units=sum(len(u) for _, _, u in buckets),
        )

        for prefix, label, units in buckets:
            runs = [_UnitRun(u) for u in units]
            if report.aborted:
                self._skip(report, runs, "run aborted after an earlier failure")
                continue

            mode = self._bucket_mode(label)
            with LogContext(bucket=prefix):
                if mode == "skipped":
                    logger.info("apply.bucket_skipped", units=len(runs))
                    self._skip(report, runs, "bucket excluded")
                elif mode == "retry":
                    self._apply_retry_group(root, prefix, runs, report)
                elif mode == "data":
                    self._apply_data(root, runs, report)
                else:
                    self._apply_sequential(root, runs, report)

        logger.info(
            "apply.complete",
            applied=len(report.applied),
            failed=len(report.failures),
            skipped=len(report.skipped),
            constraint_violations=len(report.constraint_violations),
            aborted=report.aborted,
        )
        return report

    def _skip(self, report: ApplyReport, runs: list[_UnitRun], reason: str) -> None:
        for run in runs:
            run.state = ApplyState.SKIPPED
            report.final[run.unit.path] = ApplyAttempt(run.unit, 0, ApplyState.SKIPPED, error=reason)

    def _prepare(self, root: Path, run: _UnitRun) -> None:
        if run.batches is None:
            script = read_artifact(root / run.unit.path)
            run.batches = split_batches(substitute_variables(script, self.settings.variables))

    def _attempt(self, root: Path, run: _UnitRun, pass_number: int) -> ApplyAttempt:
        """Apply one unit from its next unexecuted batch."""
        run.state = ApplyState.APPLYING
        try:
            self._prepare(root, run)
        except ScriptGenerationFailure as e:
            # Missing variables and unreadable files fail without a retry
            run.state = ApplyState.FAILED
            return ApplyAttempt(run.unit, pass_number, ApplyState.FAILED, e.kind, str(e))

        assert run.batches is not None
        while run.next_batch < len(run.batches):
            match self.session.execute_batch(run.batches[run.next_batch]):
                case Ok():
                    run.next_batch += 1
                case Err(error=error):
                    kind = getattr(error, "kind", ErrorKind.SCRIPT_GENERATION)
                    run.state = ApplyState.FAILED_THIS_PASS
                    logger.debug(
                        "apply.unit_failed",
                        unit=run.unit.path,
                        batch=run.next_batch + 1,
                        pass_number=pass_number,
                        error_kind=kind.value,
                        error=str(error),
                    )
                    return ApplyAttempt(run.unit, pass_number, ApplyState.FAILED_THIS_PASS, kind, str(error))

        run.state = ApplyState.APPLIED
        return ApplyAttempt(run.unit, pass_number, ApplyState.APPLIED)

    def _finish(self, report: ApplyReport, run: _UnitRun, attempt: ApplyAttempt) -> None:
        """Record a unit's terminal outcome."""
        if attempt.outcome is not ApplyState.APPLIED:
            attempt = replace(attempt, outcome=ApplyState.FAILED)
            run.state = ApplyState.FAILED
            logger.error(
                "apply.unit_failed_terminal",
                unit=run.unit.path,
                error_kind=attempt.error_kind.value if attempt.error_kind else None,
                error=attempt.error,
            )
        report.final[run.unit.path] = attempt

    def _apply_sequential(self, root: Path, runs: list[_UnitRun], report: ApplyReport) -> None:
        for index, run in enumerate(runs):
            attempt = self._attempt(root, run, 1)
            report.attempts.append(attempt)
            self._finish(report, run, attempt)
            if not attempt.succeeded and not self.settings.continue_on_error:
                report.aborted = True
                self._skip(report, runs[index + 1 :], "run aborted after an earlier failure")
                return

    def _apply_retry_group(
        self, root: Path, prefix: str, runs: list[_UnitRun], report: ApplyReport
    ) -> None:
        pending = list(runs)
        pass_number = 0
        while pending and pass_number < self.settings.max_passes:
            pass_number += 1
            progressed = 0
            requeued: list[_UnitRun] = []
            for run in pending:
                attempt = self._attempt(root, run, pass_number)
                report.attempts.append(attempt)
                run.last = attempt
                if attempt.succeeded:
                    progressed += 1
                    self._finish(report, run, attempt)
                elif attempt.error_kind is ErrorKind.DEPENDENCY_UNRESOLVED:
                    requeued.append(run)
                else:
                    self._finish(report, run, attempt)
            pending = requeued
            logger.info(
                "apply.pass_complete",
                pass_number=pass_number,
                progressed=progressed,
                remaining=len(pending),
            )
            if progressed == 0:
                break

        for run in pending:
            assert run.last is not None
            self._finish(report, run, run.last)
        report.passes[prefix] = pass_number

        failed = any(report.final[r.unit.path].outcome is ApplyState.FAILED for r in runs)
        if failed and not self.settings.continue_on_error:
            report.aborted = True

    def _apply_data(self, root: Path, runs: list[_UnitRun], report: ApplyReport) -> None:
        manager = ConstraintLifecycleManager(self.session)
        constraint_report = manager.run(lambda: self._apply_sequential(root, runs, report))
        report.constraint_report = constraint_report
        if constraint_report.violations and not self.settings.continue_on_error:
            report.aborted = True


__all__ = [
    "ApplyEngine",
    "ApplyReport",
    "ApplyPlan",
    "PlannedBucket",
    "discover_units",
    "plan_apply",
    "bucket_mode",
    "read_artifact",
]
