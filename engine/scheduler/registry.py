from typing import Dict, Iterator, List, Optional

from engine.planner.exceptions import ConfigurationError

from .dag import TaskDescriptor
from .results import ExecutionResult


class TaskRegistry:
    """
    Registered task descriptors, keyed by name.

    Scoped to one engine; never process-wide.
    """

    __slots__ = ("_tasks",)

    def __init__(self):
        self._tasks: Dict[str, TaskDescriptor] = {}

    def add(self, descriptor: TaskDescriptor) -> None:
        if descriptor.name in self._tasks:
            raise ConfigurationError(f"Task already registered: {descriptor.name}")
        self._tasks[descriptor.name] = descriptor

    def get(self, name: str) -> Optional[TaskDescriptor]:
        return self._tasks.get(name)

    def __contains__(self, name: str) -> bool:
        return name in self._tasks

    def __len__(self) -> int:
        return len(self._tasks)

    def __iter__(self) -> Iterator[TaskDescriptor]:
        return iter(self._tasks.values())

    def names(self) -> List[str]:
        return list(self._tasks)


class ResultRegistry:
    """
    Results of one run.

    Each task name is written exactly once; insertion order is kept.
    """

    __slots__ = ("_results", "_ordered")

    def __init__(self):
        self._results: Dict[str, ExecutionResult] = {}
        self._ordered: List[ExecutionResult] = []

    def add(self, result: ExecutionResult) -> None:
        if result.task_name in self._results:
            raise RuntimeError(f"Result already recorded: {result.task_name}")
        self._results[result.task_name] = result
        self._ordered.append(result)

    def get(self, name: str) -> Optional[ExecutionResult]:
        return self._results.get(name)

    def __contains__(self, name: str) -> bool:
        return name in self._results

    def __len__(self) -> int:
        return len(self._results)

    def ordered(self) -> List[ExecutionResult]:
        return list(self._ordered)
