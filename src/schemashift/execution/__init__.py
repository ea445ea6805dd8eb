"""Concurrent generation and sequential replay.

- ``dispatcher``: ParallelDispatcher, the only concurrent component
- ``apply``: ApplyEngine, bucket-ordered replay with multi-pass retry
- ``constraints``: ConstraintLifecycleManager around the data bucket
"""

from .apply import ApplyEngine, ApplyPlan, ApplyReport, discover_units, plan_apply
from .constraints import ConstraintLifecycleManager, ConstraintReport
from .dispatcher import DispatchReport, ParallelDispatcher

__all__ = [
    "ParallelDispatcher",
    "DispatchReport",
    "ApplyEngine",
    "ApplyPlan",
    "ApplyReport",
    "discover_units",
    "plan_apply",
    "ConstraintLifecycleManager",
    "ConstraintReport",
]
