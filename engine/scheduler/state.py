import time
from datetime import datetime, timezone
from typing import Any, Iterable, List, Optional

from .results import ExecutionResult
from .types import CLEAN_STATES, TRANSITIONS, ErrorTag, TaskState


class NonPersistent:
    """
    Marker mixin.
    Any subclass must NEVER be persisted or serialized.
    """
    __persistent__ = False


class TaskRuntimeState(NonPersistent):
    """
    Engine-owned runtime state of one task in one run.

    Represents HOW a task is progressing. Exists only in memory.
    Produces its ExecutionResult through exactly one terminal transition.
    """

    __slots__ = (
        "task_name",
        "correlation_id",
        "sequence",
        "state",
        "warnings",
        "_started_wall",
        "_started_mono",
        "_result",
    )

    def __init__(self, task_name: str, correlation_id: str, sequence: int):
        self.task_name: str = task_name
        self.correlation_id: str = correlation_id
        self.sequence: int = sequence
        self.state: TaskState = TaskState.PENDING
        self.warnings: List[str] = []
        self._started_wall: datetime = datetime.now(timezone.utc)
        self._started_mono: float = time.monotonic()
        self._result: Optional[ExecutionResult] = None

    @property
    def result(self) -> Optional[ExecutionResult]:
        return self._result

    def elapsed(self) -> float:
        return max(0.0, time.monotonic() - self._started_mono)

    def warn(self, message: str) -> None:
        self.warnings.append(message)

    def start(self) -> None:
        self._transition(TaskState.RUNNING)
        # Dispatch time; duration is measured from here
        self._started_wall = datetime.now(timezone.utc)
        self._started_mono = time.monotonic()

    def finish(
        self,
        status: TaskState,
        *,
        output: Any = None,
        error_message: Optional[str] = None,
        error_tags: Iterable[ErrorTag] = (),
        failed_dependencies: Iterable[str] = (),
        duration: Optional[float] = None,
    ) -> ExecutionResult:
        """
        Terminal transition. Builds and freezes the result.

        Raises:
            RuntimeError: the task already finished, or the transition
                is not allowed from the current state.
        """

        if not status.is_terminal:
            raise RuntimeError(f"{status.value} is not a terminal state")

        if status in CLEAN_STATES:
            error_message = None
        elif not error_message:
            error_message = status.value.replace("_", " ").lower()

        self._transition(status)

        elapsed = self.elapsed() if duration is None else max(0.0, duration)

        self._result = ExecutionResult(
            task_name=self.task_name,
            correlation_id=self.correlation_id,
            sequence=self.sequence,
            status=status,
            start_time=self._started_wall,
            end_time=datetime.now(timezone.utc),
            duration_seconds=elapsed,
            output=output,
            error_message=error_message,
            warnings=tuple(self.warnings),
            error_tags=tuple(error_tags),
            failed_dependencies=tuple(sorted(failed_dependencies)),
        )
        return self._result

    def _transition(self, target: TaskState) -> None:
        allowed = TRANSITIONS.get(self.state, frozenset())
        if target not in allowed:
            raise RuntimeError(
                f"Illegal transition for {self.task_name}: "
                f"{self.state.value} -> {target.value}"
            )
        self.state = target
