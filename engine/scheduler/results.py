# engine/scheduler/results.py

"""
Per-task result schema.

An ExecutionResult is produced exactly once per task per run and is
never mutated afterwards. All results of one run share a correlation id.
"""

import itertools
import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional, Tuple
from uuid import uuid4

from .types import ErrorTag, TaskState


@dataclass(frozen=True)
class TaskOutcome:
    """
    Optional richer return value for task entry points.

    A plain return value is treated as `TaskOutcome(output=value)`.
    """

    output: Any = None
    mutated: Optional[bool] = None
    skipped_reason: Optional[str] = None
    warnings: Tuple[str, ...] = ()


@dataclass(frozen=True)
class ExecutionResult:
    task_name: str
    correlation_id: str
    sequence: int
    status: TaskState
    start_time: datetime
    end_time: datetime
    duration_seconds: float
    output: Any = None
    error_message: Optional[str] = None
    warnings: Tuple[str, ...] = ()
    error_tags: Tuple[ErrorTag, ...] = ()
    failed_dependencies: Tuple[str, ...] = ()

    @property
    def succeeded(self) -> bool:
        return self.status.is_successful

    def to_dict(self) -> Dict[str, Any]:
        return {
            "task_name": self.task_name,
            "correlation_id": self.correlation_id,
            "sequence": self.sequence,
            "status": self.status.value,
            "start_time": self.start_time.isoformat(),
            "end_time": self.end_time.isoformat(),
            "duration_seconds": round(self.duration_seconds, 3),
            "output": self.output,
            "error_message": self.error_message,
            "warnings": list(self.warnings),
            "error_tags": [tag.value for tag in self.error_tags],
            "failed_dependencies": list(self.failed_dependencies),
        }


@dataclass
class RunCorrelation:
    """
    Session-scoped correlation id plus a monotonic sequence counter.
    """

    correlation_id: str = field(default_factory=lambda: f"run-{uuid4().hex}")
    _counter: "itertools.count[int]" = field(default_factory=lambda: itertools.count(1), repr=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def next_sequence(self) -> int:
        with self._lock:
            return next(self._counter)
