# engine/scheduler/executor.py

"""
Execution engine.

Walks the leveled dependency graph and produces exactly one
ExecutionResult per selected task.

Owns:
- dependency-failure propagation
- privilege gating
- per-task timeouts
- run-level cancellation

Does NOT:
- compute diffs
- persist or render results

Timeouts bound the engine's wait only. A timed-out entry point keeps
running on its detached daemon thread; Python offers no safe way to
interrupt it.
"""

import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from engine.logger import get_logger
from engine.planner.dependency_graph import DependencyGraph, ExecutionLevel
from engine.planner.exceptions import (
    DependencyFailureError,
    PrivilegeError,
    TaskRuntimeError,
    TaskTimeoutError,
)

from .dag import TaskDescriptor
from .invocation import TaskInvocationAdapter
from .registry import ResultRegistry, TaskRegistry
from .results import ExecutionResult, RunCorrelation, TaskOutcome
from .runtime import RunContext
from .state import TaskRuntimeState
from .types import ErrorTag, TaskState

log = get_logger("engine")

_PRIVILEGE_MARKERS = ("access denied", "access is denied", "permission", "administrator", "elevat", "privilege")
_NOT_FOUND_MARKERS = ("not found", "cannot find", "no such file", "not recognized", "does not exist")
_TIMEOUT_MARKERS = ("timed out", "timeout")


def classify_error(exc: BaseException) -> Tuple[ErrorTag, ...]:
    """
    Coarse tags for a task failure, from exception type and message.
    """

    message = str(exc).lower()
    tags: List[ErrorTag] = []

    if isinstance(exc, (PermissionError, PrivilegeError)) or any(m in message for m in _PRIVILEGE_MARKERS):
        tags.append(ErrorTag.PRIVILEGE)

    if isinstance(exc, (FileNotFoundError, LookupError)) or any(m in message for m in _NOT_FOUND_MARKERS):
        tags.append(ErrorTag.NOT_FOUND)

    if isinstance(exc, (TimeoutError, TaskTimeoutError)) or any(m in message for m in _TIMEOUT_MARKERS):
        tags.append(ErrorTag.TIMEOUT)

    return tuple(tags)


@dataclass
class _Invocation:
    completed: bool
    value: Any = None
    error: Optional[BaseException] = None


@dataclass
class _RunState:
    """Mutable state of one execute() call."""

    correlation: RunCorrelation
    diff_results: Mapping[str, Any]
    results: ResultRegistry = field(default_factory=ResultRegistry)
    lock: threading.Lock = field(default_factory=threading.Lock)
    total: int = 0


class ExecutionEngine:
    """
    Single-host task execution engine.

    Tasks are registered once; execute() can be called repeatedly and
    each call is an independent run with its own correlation id.
    """

    def __init__(self, context: Optional[RunContext] = None):
        self.context = context or RunContext()
        self.registry = TaskRegistry()
        self._cancel_event = threading.Event()

    # -------------------------
    # REGISTRATION
    # -------------------------

    def register_task(self, descriptor: TaskDescriptor) -> None:
        """
        Add a task. Order is not computed until execute().

        Raises:
            ConfigurationError: duplicate task name.
        """
        self.registry.add(descriptor)
        log.debug(f"Registered task {descriptor.name} ({descriptor.category})")

    def register_tasks(self, descriptors: Iterable[TaskDescriptor]) -> None:
        for descriptor in descriptors:
            self.register_task(descriptor)

    def build_graph(self) -> DependencyGraph:
        return DependencyGraph.build(self.registry)

    # -------------------------
    # CANCELLATION
    # -------------------------

    def cancel(self) -> None:
        """Stop dispatching; in-flight tasks finish or time out."""
        if not self._cancel_event.is_set():
            log.warning("Run cancellation requested")
        self._cancel_event.set()

    @property
    def cancelled(self) -> bool:
        return self._cancel_event.is_set()

    # -------------------------
    # PUBLIC ENTRYPOINT
    # -------------------------

    def execute(
        self,
        selected: Optional[Iterable[str]] = None,
        diff_results: Optional[Mapping[str, Any]] = None,
    ) -> List[ExecutionResult]:
        """
        Run registered tasks in dependency order.

        Raises:
            CircularDependencyError: the graph has a cycle. Nothing runs.

        Every other failure is reported in the returned results.
        """

        self._cancel_event.clear()

        graph = self.build_graph()
        graph.ensure_acyclic()
        graph.validate_references(self.registry.names())

        levels = self._select_levels(graph.compute_levels(), selected)

        run = _RunState(
            correlation=RunCorrelation(),
            diff_results=diff_results or {},
            total=sum(len(level) for level in levels),
        )
        metrics = self.context.metrics
        metrics.mark_time(run.correlation.correlation_id)
        metrics.set_gauge("tasks_selected", run.total)

        log.info(
            f"Run {run.correlation.correlation_id}: {run.total} tasks in {len(levels)} levels"
            + (" (dry run)" if self.context.dry_run else "")
        )

        for index, level in enumerate(levels):
            log.info(f"Level {index} start: {', '.join(level)}")
            self._run_level(level, run)
            log.info(f"Level {index} drained")

        results = sorted(run.results.ordered(), key=lambda r: r.sequence)

        log.info(
            f"Run {run.correlation.correlation_id} finished in "
            f"{metrics.elapsed_since(run.correlation.correlation_id):.2f}s: "
            + ", ".join(f"{status}={count}" for status, count in _status_counts(results).items())
        )
        return results

    # -------------------------
    # ORDER SELECTION
    # -------------------------

    def _select_levels(
        self,
        levels: Sequence[ExecutionLevel],
        selected: Optional[Iterable[str]],
    ) -> List[ExecutionLevel]:
        wanted = None if selected is None else set(selected)

        if wanted is not None:
            unknown = sorted(name for name in wanted if name not in self.registry)
            if unknown:
                log.warning(f"Ignoring unknown selected tasks: {', '.join(unknown)}")

        filtered: List[ExecutionLevel] = []
        for level in levels:
            names = tuple(
                name
                for name in level
                if name in self.registry and (wanted is None or name in wanted)
            )
            if names:
                filtered.append(names)

        return filtered

    # -------------------------
    # LEVEL DISPATCH
    # -------------------------

    def _run_level(self, level: ExecutionLevel, run: _RunState) -> None:
        prepared: List[Tuple[TaskDescriptor, TaskRuntimeState, bool]] = []

        for name in level:
            item = self._prepare(name, run)
            if item is not None:
                prepared.append(item)

        workers = min(self.context.max_parallel_tasks, len(prepared))

        if workers <= 1:
            for descriptor, state, partial in prepared:
                self._dispatch(descriptor, state, partial, run)
            return

        # The whole level drains before the next one starts
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="level") as pool:
            futures = [
                pool.submit(self._dispatch, descriptor, state, partial, run)
                for descriptor, state, partial in prepared
            ]
            for future in as_completed(futures):
                future.result()

    def _prepare(
        self, name: str, run: _RunState
    ) -> Optional[Tuple[TaskDescriptor, TaskRuntimeState, bool]]:
        """
        Pre-dispatch checks on the driver thread.

        Returns None if the task already reached a terminal state here.
        """

        descriptor = self.registry.get(name)
        state = TaskRuntimeState(
            name, run.correlation.correlation_id, run.correlation.next_sequence()
        )

        if self.cancelled:
            self._record(run, state.finish(TaskState.CANCELLED, error_message="Run cancelled before dispatch"))
            return None

        failed = self._failed_dependencies(descriptor, run.results)
        if failed:
            error = DependencyFailureError(name, failed)
            log.warning(f"Skipping {name}: dependency failure ({', '.join(error.failed)})")
            self._record(
                run,
                state.finish(
                    TaskState.DEPENDENCY_FAILURE,
                    error_message=str(error),
                    failed_dependencies=failed,
                ),
            )
            return None

        partial = False
        if descriptor.requires_elevation and not self.context.privilege_check():
            message = f"Task {name} requires elevated privileges"
            if self.context.best_effort_privilege:
                log.warning(f"{message}; running unelevated (best effort)")
                state.warn(f"{message}; ran without elevation, side effects may be incomplete")
                partial = True
            else:
                error = PrivilegeError(message)
                log.error(str(error))
                self._record(
                    run,
                    state.finish(
                        TaskState.FAILED,
                        error_message=str(error),
                        error_tags=(ErrorTag.PRIVILEGE,),
                    ),
                )
                return None

        return descriptor, state, partial

    @staticmethod
    def _failed_dependencies(
        descriptor: TaskDescriptor, results: ResultRegistry
    ) -> List[str]:
        failed = []
        for dep in descriptor.depends_on:
            result = results.get(dep)
            # Never executed counts as failed
            if result is None or not result.succeeded:
                failed.append(dep)
        return sorted(failed)

    # -------------------------
    # TASK DISPATCH
    # -------------------------

    def _dispatch(
        self,
        descriptor: TaskDescriptor,
        state: TaskRuntimeState,
        partial: bool,
        run: _RunState,
    ) -> None:
        name = descriptor.name

        if self.cancelled:
            self._record(run, state.finish(TaskState.CANCELLED, error_message="Run cancelled before dispatch"))
            return

        state.start()
        log.info(f"Dispatching {name} (timeout {descriptor.timeout_seconds}s)")

        kwargs: Dict[str, Any] = dict(descriptor.parameters)
        kwargs["dry_run"] = self.context.dry_run
        kwargs["correlation_id"] = run.correlation.correlation_id
        kwargs["actionable_items"] = self._actionable_for(descriptor, run.diff_results)

        invocation = self._invoke_with_timeout(descriptor, kwargs)

        if not invocation.completed:
            elapsed = state.elapsed()
            error = TaskTimeoutError(
                f"Task {name} timed out after {descriptor.timeout_seconds}s"
            )
            log.warning(f"{error}; it may still be running detached")
            self._record(
                run,
                state.finish(
                    TaskState.TIMEOUT,
                    error_message=str(error),
                    error_tags=(ErrorTag.TIMEOUT,),
                    duration=elapsed,
                ),
            )
            return

        if invocation.error is not None:
            exc = invocation.error
            error = TaskRuntimeError(f"{type(exc).__name__}: {exc}")
            log.error(f"Task {name} failed: {error}")
            self._record(
                run,
                state.finish(
                    TaskState.FAILED,
                    error_message=str(error),
                    error_tags=classify_error(exc),
                ),
            )
            return

        self._record(run, self._finish_completed(state, invocation.value, partial))

    def _finish_completed(
        self, state: TaskRuntimeState, value: Any, partial: bool
    ) -> ExecutionResult:
        outcome = value if isinstance(value, TaskOutcome) else TaskOutcome(output=value)

        for warning in outcome.warnings:
            state.warn(warning)

        if outcome.skipped_reason:
            return state.finish(
                TaskState.SKIPPED,
                output=outcome.output,
                error_message=outcome.skipped_reason,
            )

        if self.context.dry_run:
            if outcome.mutated:
                state.warn("Task reported mutations during a dry run")
            else:
                return state.finish(TaskState.DRY_RUN, output=outcome.output)

        if partial:
            return state.finish(
                TaskState.PARTIAL_SUCCESS,
                output=outcome.output,
                error_message=f"Task {state.task_name} ran without required elevation",
                error_tags=(ErrorTag.PRIVILEGE,),
            )

        return state.finish(TaskState.SUCCESS, output=outcome.output)

    @staticmethod
    def _actionable_for(
        descriptor: TaskDescriptor, diff_results: Mapping[str, Any]
    ) -> Optional[List[Any]]:
        diff = diff_results.get(descriptor.name)
        if diff is None:
            diff = diff_results.get(descriptor.category)
        if diff is None and descriptor.audit_key:
            bound = [
                d for d in diff_results.values()
                if getattr(d, "audit_key", None) == descriptor.audit_key
            ]
            # Ambiguous when several rows read the same audit key
            if len(bound) == 1:
                diff = bound[0]
        if diff is None:
            return None
        return list(diff.actionable)

    def _invoke_with_timeout(
        self, descriptor: TaskDescriptor, kwargs: Dict[str, Any]
    ) -> _Invocation:
        adapter = TaskInvocationAdapter(descriptor.entry_point)
        box: Dict[str, Any] = {}
        done = threading.Event()

        def target() -> None:
            try:
                box["value"] = adapter.run(**kwargs)
            except Exception as exc:
                box["error"] = exc
            finally:
                done.set()

        worker = threading.Thread(
            target=target, name=f"task-{descriptor.name}", daemon=True
        )
        worker.start()

        if not done.wait(descriptor.timeout_seconds):
            return _Invocation(completed=False)

        if "error" in box:
            return _Invocation(completed=True, error=box["error"])

        if "value" not in box:
            return _Invocation(
                completed=True,
                error=RuntimeError("Task exited without returning"),
            )

        return _Invocation(completed=True, value=box["value"])

    # -------------------------
    # RESULT RECORDING
    # -------------------------

    def _record(self, run: _RunState, result: ExecutionResult) -> None:
        metrics = self.context.metrics

        with run.lock:
            run.results.add(result)
            metrics.record_result(result)
            done = len(run.results)

        log.info(
            f"Task {result.task_name} -> {result.status.value} "
            f"in {result.duration_seconds:.2f}s ({done}/{run.total})"
        )

        for listener in self.context.listeners:
            try:
                listener.on_task_complete(result)
            except Exception as exc:
                log.error(f"Progress listener failed for {result.task_name}: {exc}")


def _status_counts(results: Iterable[ExecutionResult]) -> Dict[str, int]:
    counts: Dict[str, int] = {}
    for result in results:
        counts[result.status.value] = counts.get(result.status.value, 0) + 1
    return counts
