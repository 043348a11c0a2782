# engine/diff/diff_engine.py

"""
Diff engine: audit results + config -> actionable list per task.

The diff decides WHAT a task acts on, never WHETHER it runs.
"""

from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from config.maintenance import get_section
from engine.diff.extract import extract_detections
from engine.diff.plan import DiffPlanEntry
from engine.diff.strategies import apply_strategy
from engine.interfaces import DiffListSink
from engine.logger import get_logger

log = get_logger("diff")


@dataclass(frozen=True)
class DiffResult:
    task_name: str
    detected_count: int
    actionable: Tuple[Any, ...]
    reason: str
    location: Optional[str] = None
    audit_key: Optional[str] = None

    @property
    def actionable_count(self) -> int:
        return len(self.actionable)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "task_name": self.task_name,
            "detected_count": self.detected_count,
            "actionable_count": self.actionable_count,
            "actionable": list(self.actionable),
            "reason": self.reason,
            "location": self.location,
            "audit_key": self.audit_key,
        }


def new_diff_list_set(
    plan: Iterable[DiffPlanEntry],
    audit_results: Optional[Mapping[str, Any]],
    config: Optional[Mapping[str, Any]],
    sink: Optional[DiffListSink] = None,
) -> Dict[str, DiffResult]:
    """
    Compute one DiffResult per enabled plan row.

    Each actionable list is handed to `sink` (if given) under the task name.
    """

    results: Dict[str, DiffResult] = {}

    for entry in plan:
        if not entry.enabled:
            continue

        detections = extract_detections(
            audit_results,
            entry.audit_key,
            nested_field=entry.options.get("nested_field"),
        )
        section = get_section(config, entry.config_section)

        actionable = apply_strategy(entry.strategy, detections, section, entry.options)
        _ensure_subset(entry.task_name, actionable, detections)

        location = sink.persist(entry.task_name, actionable) if sink is not None else None

        reason = f"{len(detections)} detected, {len(actionable)} actionable"
        log.info(f"Diff {entry.task_name} [{entry.strategy.value}]: {reason}")

        results[entry.task_name] = DiffResult(
            task_name=entry.task_name,
            detected_count=len(detections),
            actionable=tuple(actionable),
            reason=reason,
            location=location,
            audit_key=entry.audit_key,
        )

    return results


def _ensure_subset(task_name: str, actionable: List[Any], detections: List[Any]) -> None:
    for item in actionable:
        if not any(item is d or item == d for d in detections):
            raise RuntimeError(
                f"Diff strategy for {task_name} produced an item not in its detections: {item!r}"
            )
