# engine/diff/strategies.py

"""
Diff strategies.

Pure functions: (detections, config_section, options) -> actionable list.
They only remove or pass through detections, never create new ones.
"""

import re
from functools import lru_cache
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional

from engine.diff.plan import DiffStrategy

Strategy = Callable[[List[Any], Any, Mapping[str, Any]], List[Any]]

DEFAULT_MATCH_FIELD = "Name"


# -------------------------
# GLOB MATCHING
# -------------------------

@lru_cache(maxsize=512)
def _compile_glob(pattern: str) -> "re.Pattern[str]":
    parts = []
    for ch in pattern:
        if ch == "*":
            parts.append(".*")
        elif ch == "?":
            parts.append(".")
        else:
            parts.append(re.escape(ch))
    return re.compile("^" + "".join(parts) + "$", re.IGNORECASE | re.DOTALL)


def glob_match(name: str, pattern: str) -> bool:
    """Case-insensitive wildcard match: `*` any run, `?` one char."""
    return _compile_glob(pattern).match(name) is not None


def matches_any(name: str, patterns: Iterable[str]) -> bool:
    return any(glob_match(name, p) for p in patterns if p)


# -------------------------
# ITEM HELPERS
# -------------------------

def item_value(item: Any, field: str) -> Optional[Any]:
    """
    Read `field` from a detection. Key lookup falls back to a
    case-insensitive match.
    """

    if not isinstance(item, Mapping):
        return None

    if field in item:
        return item[field]

    lowered = field.lower()
    for key, value in item.items():
        if isinstance(key, str) and key.lower() == lowered:
            return value

    return None


def item_name(item: Any, field: str = DEFAULT_MATCH_FIELD) -> str:
    if isinstance(item, Mapping):
        value = item_value(item, field)
        return "" if value is None else str(value)
    return str(item)


def _section_list(section: Any, key: str) -> List[Any]:
    if isinstance(section, Mapping):
        value = section.get(key)
    else:
        value = None
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    return list(value)


# -------------------------
# STRATEGIES
# -------------------------

def detected_vs_config(
    detections: List[Any],
    section: Any,
    options: Mapping[str, Any],
) -> List[Any]:
    """
    Keep detections whose name appears in the reference config list.
    """

    field = options.get("match_field", DEFAULT_MATCH_FIELD)

    if isinstance(section, Mapping):
        reference = _section_list(section, options.get("reference_key", "items"))
    elif isinstance(section, (list, tuple, set)):
        reference = list(section)
    else:
        reference = []

    wanted = {item_name(entry, field).casefold() for entry in reference}
    wanted.discard("")

    return [d for d in detections if item_name(d, field).casefold() in wanted]


def policy_gate(
    detections: List[Any],
    section: Any,
    options: Mapping[str, Any],
) -> List[Any]:
    """
    All-or-nothing on the section's enabled flag, then per-type sub-flags.
    """

    section = section if isinstance(section, Mapping) else {}

    if not section.get(options.get("enabled_key", "enabled"), True):
        return []

    sub_flags: Mapping[str, str] = options.get("sub_flags") or {}
    if not sub_flags:
        return list(detections)

    type_field = options.get("type_field", "Type")
    flags_by_type = {k.casefold(): v for k, v in sub_flags.items()}

    actionable = []
    for item in detections:
        item_type = item_value(item, type_field)
        flag_key = flags_by_type.get(str(item_type).casefold()) if item_type is not None else None
        if flag_key is not None and not section.get(flag_key, True):
            continue
        actionable.append(item)

    return actionable


def pattern_exclude(
    detections: List[Any],
    section: Any,
    options: Mapping[str, Any],
) -> List[Any]:
    """
    Glob-based exclusion.

    never-touch beats safe. Items matching neither list pass only when
    the `default_pass` option is true.
    """

    if _master_switch_off(section, options):
        return []

    field = options.get("match_field", DEFAULT_MATCH_FIELD)
    default_pass = options.get("default_pass", True)

    never = (
        _section_list(section, "never_disable_patterns")
        + _section_list(section, "never_touch_patterns")
        + _section_list(section, "exclude_patterns")
    )
    safe = (
        _section_list(section, "safe_to_disable_patterns")
        + _section_list(section, "safe_patterns")
    )

    actionable = []
    for item in detections:
        name = item_name(item, field)

        if matches_any(name, never):
            continue

        if matches_any(name, safe) or default_pass:
            actionable.append(item)

    return actionable


def passthrough(
    detections: List[Any],
    section: Any,
    options: Mapping[str, Any],
) -> List[Any]:
    if _master_switch_off(section, options):
        return []
    return list(detections)


def _master_switch_off(section: Any, options: Mapping[str, Any]) -> bool:
    switch = options.get("master_switch")
    if not switch or not isinstance(section, Mapping):
        return False
    return not section.get(switch, True)


STRATEGIES: Dict[DiffStrategy, Strategy] = {
    DiffStrategy.DETECTED_VS_CONFIG: detected_vs_config,
    DiffStrategy.POLICY_GATE: policy_gate,
    DiffStrategy.PATTERN_EXCLUDE: pattern_exclude,
    DiffStrategy.PASSTHROUGH: passthrough,
}


def apply_strategy(
    strategy: DiffStrategy,
    detections: List[Any],
    section: Any,
    options: Optional[Mapping[str, Any]] = None,
) -> List[Any]:
    return STRATEGIES[strategy](list(detections), section, options or {})
