"""Constraint Lifecycle Manager - referential integrity around bulk loads.

Data artifacts are written table by table, in an order that knows nothing
about foreign keys. Loading them with enforcement on would reject child
rows whose parents arrive later, so the load runs with enforcement
suspended:

1. suspend   provider returns the names of the affected constraints
2. load      caller-supplied callable runs every data unit
3. enable    always, even when the load raised
4. validate  the re-enabled constraints against the loaded rows
5. report    each violating constraint becomes a ConstraintViolation

Loaded data is never rolled back. Whether a violation stops the run is the
caller's policy.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Generic, TypeVar

from schemashift.core.errors import ConstraintViolation
from schemashift.core.logging import get_logger
from schemashift.providers.protocol import ProviderSession

logger = get_logger(__name__)

T = TypeVar("T")


@dataclass
class ConstraintReport(Generic[T]):
    """What happened to referential integrity around one load."""

    suspended: list[str] = field(default_factory=list)
    violations: list[ConstraintViolation] = field(default_factory=list)
    load_result: T | None = None

    @property
    def violating_names(self) -> list[str]:
        return [v.constraint for v in self.violations]

    @property
    def success(self) -> bool:
        return not self.violations

    def to_dict(self) -> dict:
        return {
            "suspended": list(self.suspended),
            "violations": self.violating_names,
        }


class ConstraintLifecycleManager:
    """
    Suspends, restores and validates constraints around a load.

    Example:
        manager = ConstraintLifecycleManager(session)
        report = manager.run(lambda: [engine.apply_unit(u) for u in data_units])
        for violation in report.violations:
            print(violation.constraint)
    """

    def __init__(self, session: ProviderSession):
        self.session = session

    def run(self, load: Callable[[], T]) -> ConstraintReport[T]:
        suspended = list(self.session.suspend_constraints())
        logger.info("constraints.suspended", count=len(suspended))

        try:
            result = load()
        finally:
            self.session.enable_constraints(suspended)
            logger.info("constraints.enabled", count=len(suspended))

        violating = self.session.validate_constraints(suspended)
        violations = [ConstraintViolation(name) for name in violating]
        for name in violating:
            logger.error("constraints.violation", constraint=name)
        logger.info(
            "constraints.validated",
            checked=len(suspended),
            violations=len(violations),
        )
        return ConstraintReport(suspended=suspended, violations=violations, load_result=result)


__all__ = ["ConstraintLifecycleManager", "ConstraintReport"]
