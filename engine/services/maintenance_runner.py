# engine/services/maintenance_runner.py

"""
Maintenance run service.

The one place where the collaborators are wired to the core:
- resolve the diff plan from config
- compute diff lists from audit results
- execute tasks through the engine
- hand results to the result sink
"""

from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from engine.diff import DiffPlanEntry, DiffResult, build_plan, new_diff_list_set
from engine.interfaces import DiffListSink, ResultSink
from engine.logger import get_logger
from engine.reporting.json_writer import summarize_results
from engine.scheduler.dag import TaskDescriptor
from engine.scheduler.executor import ExecutionEngine
from engine.scheduler.results import ExecutionResult

log = get_logger("runner")


@dataclass(frozen=True)
class MaintenanceRun:
    results: List[ExecutionResult]
    diff: Dict[str, DiffResult]
    summary: Dict[str, Any]
    report: Any = None


class MaintenanceRunner:
    """
    Stateless service object around one engine.

    Safe to call run() more than once.
    """

    def __init__(
        self,
        engine: ExecutionEngine,
        config: Optional[Mapping[str, Any]] = None,
        diff_sink: Optional[DiffListSink] = None,
        result_sink: Optional[ResultSink] = None,
        plan_table: Optional[Sequence[DiffPlanEntry]] = None,
    ):
        if engine is None:
            raise ValueError("engine must not be None")

        self._engine = engine
        self._config = config or {}
        self._diff_sink = diff_sink
        self._result_sink = result_sink
        self._plan_table = plan_table

    @classmethod
    def from_descriptors(
        cls, descriptors: Iterable[TaskDescriptor], engine: Optional[ExecutionEngine] = None, **kwargs
    ) -> "MaintenanceRunner":
        engine = engine or ExecutionEngine()
        engine.register_tasks(descriptors)
        return cls(engine, **kwargs)

    @property
    def engine(self) -> ExecutionEngine:
        return self._engine

    # ------------------------------------------------------------------
    # PUBLIC API
    # ------------------------------------------------------------------

    def compute_diff(self, audit_results: Optional[Mapping[str, Any]]) -> Dict[str, DiffResult]:
        plan = build_plan(self._config, self._plan_table)
        return new_diff_list_set(plan, audit_results, self._config, self._diff_sink)

    def run(
        self,
        audit_results: Optional[Mapping[str, Any]] = None,
        selected: Optional[Iterable[str]] = None,
    ) -> MaintenanceRun:
        """
        Diff, execute, report.

        Raises:
            ConfigurationError, CircularDependencyError: before any task runs.
        """

        diff = self.compute_diff(audit_results)
        results = self._engine.execute(selected=selected, diff_results=diff)
        summary = summarize_results(results)

        report = None
        if self._result_sink is not None:
            report = self._result_sink.accept(results, summary, diff=diff)
            log.info(f"Results delivered: {report}")

        return MaintenanceRun(results=results, diff=diff, summary=summary, report=report)
