"""
Work Queue Builder - assigns unique output targets and work item ids.

Targets are relative POSIX paths under the export root::

    per-object   {prefix}/[{subfolder}/]{schema}.{name}{suffix}.sql
                 08_Tables_PrimaryKey/dbo.Customers.sql
                 13_Programmability/05_Views/dbo.vActiveCustomers.sql
                 20_Data/dbo.Customers.data.sql
    per-schema   {prefix}/{n:03d}_{schema}.sql
                 13_Programmability/002_sales.sql
    per-type     {prefix}/{priority:03d}_{plural}.sql
                 00_FileGroups/001_FileGroups.sql

Name components go through :func:`escape_component`, which percent-encodes
``%``, path separators, characters that common filesystems reject, and
dots that would make the schema/name boundary ambiguous. Distinct
identities therefore never share a file name; a duplicate target can only
come from a planner bug and aborts the build with TargetCollisionError.
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable
from dataclasses import replace
from pathlib import Path

from schemashift.core.buckets import type_spec
from schemashift.core.errors import TargetCollisionError
from schemashift.core.logging import get_logger
from schemashift.core.models import GroupingMode, Unit, WorkItem

logger = get_logger(__name__)

_UNSAFE = set('%/\\:*?"<>|')


def escape_component(value: str, *, escape_dots: bool = False) -> str:
    """Percent-encode characters that are unsafe in one path component."""
    out: list[str] = []
    for ch in value:
        if ch in _UNSAFE or ord(ch) < 0x20 or ord(ch) == 0x7F or (escape_dots and ch == "."):
            out.extend(f"%{b:02X}" for b in ch.encode("utf-8"))
        else:
            out.append(ch)
    return "".join(out)


def object_file_name(schema: str, name: str, suffix: str = "") -> str:
    """File name of a per-object artifact."""
    if schema:
        stem = f"{escape_component(schema, escape_dots=True)}.{escape_component(name)}"
    else:
        stem = escape_component(name, escape_dots=True)
    return f"{stem}{suffix}.sql"


def output_target(unit: Unit, schema_ordinal: int | None = None) -> str:
    """
    Canonical target for a unit.

    ``schema_ordinal`` is the 1-based position of a per-schema unit among
    the per-schema units of its bucket; it is required for that mode.
    """
    prefix = unit.bucket.prefix

    if unit.mode is GroupingMode.PER_OBJECT:
        obj = unit.members[0]
        spec = type_spec(obj.type)
        parts = [prefix]
        if spec.subfolder:
            parts.append(spec.subfolder)
        parts.append(object_file_name(obj.schema, obj.name, spec.suffix))
        return "/".join(parts)

    if unit.mode is GroupingMode.PER_SCHEMA:
        if schema_ordinal is None:
            raise ValueError("per-schema units need a schema ordinal")
        schema = escape_component(unit.members[0].schema)
        return f"{prefix}/{schema_ordinal:03d}_{schema}.sql"

    spec = type_spec(unit.members[0].type)
    return f"{prefix}/{spec.priority:03d}_{spec.plural}.sql"


class WorkQueueBuilder:
    """
    Turns ordered units into dispatch-ready work items.

    Example:
        builder = WorkQueueBuilder()
        items = builder.build(planner.plan(objects))
        # items[0].id == "wi-00001"
    """

    def __init__(self, id_prefix: str = "wi"):
        self.id_prefix = id_prefix

    def build(
        self,
        units: Iterable[Unit],
        copy_sources: dict[str, Path] | None = None,
    ) -> list[WorkItem]:
        """
        Assign targets and ids in queue order.

        Args:
            units: Units in deployment order (as returned by the planner)
            copy_sources: target → prior artifact for units the delta
                planner short-circuits

        Raises:
            TargetCollisionError: two units produced the same target
        """
        copy_sources = copy_sources or {}
        schema_counters: dict[int, int] = defaultdict(int)
        owners: dict[str, str] = {}
        items: list[WorkItem] = []

        for seq, unit in enumerate(units, start=1):
            ordinal = None
            if unit.mode is GroupingMode.PER_SCHEMA:
                schema_counters[unit.bucket.ordinal] += 1
                ordinal = schema_counters[unit.bucket.ordinal]
            target = output_target(unit, ordinal)

            description = unit.describe()
            if target in owners:
                logger.error(
                    "work_queue.target_collision",
                    target=target,
                    first=owners[target],
                    second=description,
                )
                raise TargetCollisionError(target, owners[target], description)
            owners[target] = description

            placed = replace(unit, target=target)
            items.append(
                WorkItem(
                    id=f"{self.id_prefix}-{seq:05d}",
                    unit=placed,
                    copy_from=copy_sources.get(target),
                )
            )

        logger.info(
            "work_queue.built",
            items=len(items),
            copies=sum(1 for i in items if i.copy_from is not None),
        )
        return items


__all__ = ["WorkQueueBuilder", "output_target", "object_file_name", "escape_component"]
