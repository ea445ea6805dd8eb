"""Generation-side orchestration.

Quick start::

    from schemashift.orchestration import ExportRunner

    report = ExportRunner(provider, settings).run("exports/2026-01-20")

Architecture::

    planner.py      OrderingPlanner - buckets and units
    work_queue.py   WorkQueueBuilder - unique targets, work item ids
    delta.py        DeltaPlanner - incremental regeneration
    export.py       ExportRunner, ScriptWriter, deployment order listing
"""

from .delta import DeltaPlanner
from .export import ExportReport, ExportRunner, ScriptWriter
from .planner import OrderingPlanner
from .work_queue import WorkQueueBuilder, output_target

__all__ = [
    "OrderingPlanner",
    "WorkQueueBuilder",
    "output_target",
    "DeltaPlanner",
    "ExportRunner",
    "ExportReport",
    "ScriptWriter",
]
