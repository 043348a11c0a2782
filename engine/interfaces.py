# engine/interfaces.py

"""
Collaborator contracts consumed by the orchestration core.
"""

from typing import Any, Mapping, Optional, Protocol, Sequence, runtime_checkable

from engine.scheduler.results import ExecutionResult


@runtime_checkable
class DiffListSink(Protocol):
    """Externalizes one task's actionable list; returns where it went."""

    def persist(self, task_name: str, data: Sequence[Any]) -> str:
        ...


@runtime_checkable
class ProgressListener(Protocol):
    """Receives one event per task reaching a terminal state."""

    def on_task_complete(self, result: ExecutionResult) -> None:
        ...


@runtime_checkable
class ResultSink(Protocol):
    """Receives the ordered result list and the diff lists at run completion."""

    def accept(
        self,
        results: Sequence[ExecutionResult],
        summary: Mapping[str, Any],
        diff: Optional[Mapping[str, Any]] = None,
    ) -> Any:
        ...
