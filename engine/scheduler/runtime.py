# engine/scheduler/runtime.py

"""
Run context for the execution engine.

Passed explicitly to the engine; there is no process-wide instance.
"""

from dataclasses import dataclass, field
from typing import Callable, List

from config.settings import Settings
from engine.interfaces import ProgressListener
from engine.scheduler.metrics import SchedulerMetrics
from engine.scheduler.privilege import is_elevated


@dataclass
class RunContext:
    dry_run: bool = False
    best_effort_privilege: bool = False
    max_parallel_tasks: int = 1
    privilege_check: Callable[[], bool] = is_elevated
    listeners: List[ProgressListener] = field(default_factory=list)
    metrics: SchedulerMetrics = field(default_factory=SchedulerMetrics)

    def __post_init__(self):
        if self.max_parallel_tasks < 1:
            raise ValueError("max_parallel_tasks must be >= 1")

    @classmethod
    def from_settings(cls, settings: Settings, **overrides) -> "RunContext":
        """
        Build a context from runtime settings; keyword overrides win.
        """

        values = {
            "dry_run": settings.DRY_RUN,
            "best_effort_privilege": settings.BEST_EFFORT_PRIVILEGE,
            "max_parallel_tasks": settings.MAX_PARALLEL_TASKS,
        }
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)
