# engine/planner/exceptions.py

from typing import Iterable, List


class OrchestrationError(Exception):
    """Base class for orchestration errors"""


class ConfigurationError(OrchestrationError):
    """Malformed task descriptor or missing required field."""


class CircularDependencyError(OrchestrationError):
    """
    Raised (or returned) when the dependency graph contains a cycle.

    `cycle` starts and ends on the same node, e.g. [A, B, C, A].
    """

    def __init__(self, cycle: Iterable[str]):
        self.cycle: List[str] = list(cycle)
        super().__init__(
            "Circular dependency detected: " + " -> ".join(self.cycle)
        )


class DependencyFailureError(OrchestrationError):
    def __init__(self, task_name: str, failed: Iterable[str]):
        self.task_name = task_name
        self.failed = sorted(failed)
        super().__init__(
            f"Task {task_name} skipped: dependencies did not succeed: "
            + ", ".join(self.failed)
        )


class PrivilegeError(OrchestrationError):
    pass


class TaskTimeoutError(OrchestrationError):
    pass


class TaskRuntimeError(OrchestrationError):
    """Wraps an exception raised by a task's own logic."""
