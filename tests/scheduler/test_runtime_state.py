import pytest

from config.settings import Settings
from engine.scheduler.metrics import SchedulerMetrics
from engine.scheduler.results import RunCorrelation
from engine.scheduler.runtime import RunContext
from engine.scheduler.state import TaskRuntimeState
from engine.scheduler.types import TaskState


def test_runtime_state_is_not_persistent():
    state = TaskRuntimeState("t1", "run-1", 1)
    assert getattr(state, "__persistent__", True) is False


def test_finish_happens_exactly_once():
    state = TaskRuntimeState("t1", "run-1", 1)
    state.start()
    result = state.finish(TaskState.SUCCESS, output=42)

    assert result.output == 42
    assert state.result is result
    with pytest.raises(RuntimeError):
        state.finish(TaskState.FAILED, error_message="again")


def test_dependency_failure_skips_running():
    state = TaskRuntimeState("t1", "run-1", 3)
    result = state.finish(TaskState.DEPENDENCY_FAILURE, failed_dependencies=["b", "a"])

    assert result.failed_dependencies == ("a", "b")
    assert result.error_message


def test_success_from_pending_is_illegal():
    state = TaskRuntimeState("t1", "run-1", 1)
    with pytest.raises(RuntimeError):
        state.finish(TaskState.SUCCESS)


def test_error_message_present_iff_not_clean():
    ok = TaskRuntimeState("a", "run", 1)
    ok.start()
    assert ok.finish(TaskState.DRY_RUN, error_message="ignored").error_message is None

    bad = TaskRuntimeState("b", "run", 2)
    bad.start()
    assert bad.finish(TaskState.TIMEOUT).error_message == "timeout"


def test_result_serializes():
    state = TaskRuntimeState("t1", "run-1", 1)
    state.warn("careful")
    state.start()
    data = state.finish(TaskState.SUCCESS).to_dict()

    assert data["status"] == "SUCCESS"
    assert data["warnings"] == ["careful"]
    assert data["duration_seconds"] >= 0


def test_correlation_sequence_is_monotonic():
    correlation = RunCorrelation()
    assert [correlation.next_sequence() for _ in range(3)] == [1, 2, 3]
    assert correlation.correlation_id.startswith("run-")


def test_context_from_settings_with_overrides():
    settings = Settings(DRY_RUN=True, MAX_PARALLEL_TASKS=3)

    context = RunContext.from_settings(settings, best_effort_privilege=True, max_parallel_tasks=None)

    assert context.dry_run is True
    assert context.best_effort_privilege is True
    assert context.max_parallel_tasks == 3


def test_context_rejects_zero_parallelism():
    with pytest.raises(ValueError):
        RunContext(max_parallel_tasks=0)


def test_metrics_record_result_and_estimate():
    metrics = SchedulerMetrics()
    for seq, status in enumerate([TaskState.SUCCESS, TaskState.FAILED], start=1):
        state = TaskRuntimeState(f"t{seq}", "run", seq)
        state.start()
        metrics.record_result(state.finish(status, duration=2.0))

    snapshot = metrics.snapshot()

    assert snapshot["counters"] == {"tasks_success_total": 1, "tasks_failed_total": 1}
    assert snapshot["mean_task_duration_seconds"] == 2.0
    assert metrics.estimate_remaining(3) == 6.0
