"""
Ordering Planner - assigns objects to buckets and partitions them into units.

This is the core of generation-side ordering:
1. Look up each object's bucket in the static table (unknown type → error)
2. Resolve the type's effective grouping mode
3. Partition: per-object → one unit per object,
   per-schema → one unit per (bucket, schema),
   per-type → one unit per (bucket, type)
4. Order members by (schema, name, type priority) and units by
   (bucket ordinal, lowest member priority, schema, name)

Design Principles:
- Pure functions of (objects, settings); no provider access, no I/O
- Grouping changes the shape of units, never the bucket an object lands in
- Deterministic: the same catalog always yields the same unit sequence
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable

from schemashift.core.buckets import type_spec
from schemashift.core.config import MigrationSettings
from schemashift.core.logging import get_logger
from schemashift.core.models import Bucket, CatalogObject, GroupingMode, Unit

logger = get_logger(__name__)


def _member_key(obj: CatalogObject) -> tuple[str, str, int]:
    return obj.schema, obj.name, type_spec(obj.type).priority


def _unit_key(unit: Unit) -> tuple[int, int, str, str, str]:
    first = unit.members[0]
    lowest = min(type_spec(m.type).priority for m in unit.members)
    return unit.bucket.ordinal, lowest, first.schema, first.name, unit.mode.value


class OrderingPlanner:
    """
    Turns a flat catalog listing into ordered units of work.

    Thread-safe: no mutable state, each ``plan()`` call is independent.

    Example:
        planner = OrderingPlanner(settings)
        units = planner.plan(enumerator.enumerate(session))
        # units[0].bucket.ordinal <= units[-1].bucket.ordinal
    """

    def __init__(self, settings: MigrationSettings):
        self.settings = settings

    def _options(self, types: Iterable[str]) -> dict[str, dict]:
        return {t: self.settings.options_for(t) for t in types}

    def _handler(self, types: Iterable[str]) -> str | None:
        handlers = {type_spec(t).handler for t in types} - {None}
        return handlers.pop() if len(handlers) == 1 else None

    def _unit(self, bucket: Bucket, mode: GroupingMode, members: list[CatalogObject]) -> Unit:
        members = sorted(members, key=_member_key)
        types = list(dict.fromkeys(m.type for m in members))
        return Unit(
            bucket=bucket,
            mode=mode,
            members=tuple(members),
            options=self._options(types),
            handler=self._handler(types),
        )

    def plan(self, objects: Iterable[CatalogObject]) -> list[Unit]:
        """
        Partition objects into units in deployment order.

        Raises:
            InvalidConfigError: an object has a type missing from the bucket table
        """
        units: list[Unit] = []
        per_schema: dict[tuple[Bucket, str], list[CatalogObject]] = defaultdict(list)
        per_type: dict[tuple[Bucket, str], list[CatalogObject]] = defaultdict(list)

        count = 0
        for obj in objects:
            count += 1
            bucket = type_spec(obj.type).bucket
            mode = self.settings.grouping_for(obj.type)
            if mode is GroupingMode.PER_OBJECT:
                units.append(self._unit(bucket, mode, [obj]))
            elif mode is GroupingMode.PER_SCHEMA:
                per_schema[(bucket, obj.schema)].append(obj)
            else:
                per_type[(bucket, obj.type)].append(obj)

        for (bucket, _schema), members in per_schema.items():
            units.append(self._unit(bucket, GroupingMode.PER_SCHEMA, members))
        for (bucket, _type), members in per_type.items():
            units.append(self._unit(bucket, GroupingMode.PER_TYPE, members))

        units.sort(key=_unit_key)
        logger.info("planner.planned", objects=count, units=len(units))
        return units


__all__ = ["OrderingPlanner"]
