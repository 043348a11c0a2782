from .plan import DEFAULT_PLAN_TABLE, DiffPlanEntry, DiffStrategy, build_plan
from .extract import extract_detections
from .strategies import apply_strategy, glob_match
from .diff_engine import DiffResult, new_diff_list_set

__all__ = [
    "DEFAULT_PLAN_TABLE",
    "DiffPlanEntry",
    "DiffStrategy",
    "build_plan",
    "extract_detections",
    "apply_strategy",
    "glob_match",
    "DiffResult",
    "new_diff_list_set",
]
