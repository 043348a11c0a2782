from enum import Enum


class TaskState(str, Enum):
    """
    Finite-state machine for task execution.

    PENDING -> RUNNING -> {SUCCESS, FAILED, TIMEOUT, CANCELLED, SKIPPED,
                           DRY_RUN, PARTIAL_SUCCESS}
    PENDING -> {DEPENDENCY_FAILURE, CANCELLED, FAILED}
    """

    PENDING = "PENDING"
    RUNNING = "RUNNING"
    SUCCESS = "SUCCESS"
    PARTIAL_SUCCESS = "PARTIAL_SUCCESS"
    FAILED = "FAILED"
    SKIPPED = "SKIPPED"
    DRY_RUN = "DRY_RUN"
    TIMEOUT = "TIMEOUT"
    CANCELLED = "CANCELLED"
    DEPENDENCY_FAILURE = "DEPENDENCY_FAILURE"

    @property
    def is_terminal(self) -> bool:
        return self not in (TaskState.PENDING, TaskState.RUNNING)

    @property
    def is_successful(self) -> bool:
        """Dependents may run after these."""
        return self in SUCCESSFUL_STATES


SUCCESSFUL_STATES = frozenset(
    {TaskState.SUCCESS, TaskState.DRY_RUN, TaskState.PARTIAL_SUCCESS}
)

# error_message is absent exactly for these
CLEAN_STATES = frozenset({TaskState.SUCCESS, TaskState.DRY_RUN})

# Legal transitions out of each non-terminal state
TRANSITIONS = {
    TaskState.PENDING: frozenset(
        {
            TaskState.RUNNING,
            TaskState.DEPENDENCY_FAILURE,
            TaskState.CANCELLED,
            TaskState.FAILED,
        }
    ),
    TaskState.RUNNING: frozenset(
        {
            TaskState.SUCCESS,
            TaskState.PARTIAL_SUCCESS,
            TaskState.FAILED,
            TaskState.SKIPPED,
            TaskState.DRY_RUN,
            TaskState.TIMEOUT,
            TaskState.CANCELLED,
        }
    ),
}


class ErrorTag(str, Enum):
    """Coarse classification of task failures for reporting."""

    PRIVILEGE = "privilege"
    NOT_FOUND = "not-found"
    TIMEOUT = "timeout"
