# engine/diff/plan.py

"""
Diff plan: which audit key and which strategy feed each task.

The plan is data. Strategies never read it; the diff engine walks it.
The config document can override or add rows through its `diff_plan`
section without touching strategy code.
"""

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Sequence

from config.maintenance import get_flag
from engine.logger import get_logger
from engine.planner.exceptions import ConfigurationError

log = get_logger("diff.plan")


class DiffStrategy(str, Enum):
    DETECTED_VS_CONFIG = "DetectedVsConfig"
    POLICY_GATE = "PolicyGate"
    PATTERN_EXCLUDE = "PatternExclude"
    PASSTHROUGH = "passthrough"

    @classmethod
    def parse(cls, value: Any) -> "DiffStrategy":
        if isinstance(value, cls):
            return value
        for member in cls:
            if str(value).lower() in (member.value.lower(), member.name.lower()):
                return member
        raise ConfigurationError(f"Unknown diff strategy: {value}")


@dataclass(frozen=True)
class DiffPlanEntry:
    task_name: str
    audit_key: str
    strategy: DiffStrategy
    config_section: Optional[str]
    skip_flag: Optional[str] = None
    enabled: bool = True
    options: Mapping[str, Any] = field(default_factory=dict, hash=False, compare=False)


# -------------------------
# DEFAULT PLAN TABLE
# -------------------------

DEFAULT_PLAN_TABLE: Sequence[DiffPlanEntry] = (
    DiffPlanEntry(
        task_name="BloatwareRemoval",
        audit_key="BloatwareDetection",
        strategy=DiffStrategy.DETECTED_VS_CONFIG,
        config_section="bloatware_list",
        skip_flag="modules.skip_bloatware_removal",
        options={"match_field": "Name"},
    ),
    DiffPlanEntry(
        task_name="EssentialApps",
        audit_key="EssentialApps",
        strategy=DiffStrategy.DETECTED_VS_CONFIG,
        config_section="essential_apps",
        skip_flag="modules.skip_essential_apps",
        options={"match_field": "Name"},
    ),
    DiffPlanEntry(
        task_name="SystemOptimization",
        audit_key="SystemOptimization",
        strategy=DiffStrategy.POLICY_GATE,
        config_section="system_optimization",
        skip_flag="modules.skip_system_optimization",
        options={
            "type_field": "Category",
            "sub_flags": {
                "Registry": "allow_registry",
                "PowerPlan": "allow_power_plan",
                "VisualEffects": "allow_visual_effects",
            },
        },
    ),
    DiffPlanEntry(
        task_name="TelemetryDisable",
        audit_key="Telemetry",
        strategy=DiffStrategy.POLICY_GATE,
        config_section="telemetry",
        skip_flag="modules.skip_telemetry_disable",
        options={
            "type_field": "Type",
            "sub_flags": {
                "Service": "allow_service",
                "Registry": "allow_registry",
                "ScheduledTask": "allow_scheduled_task",
            },
        },
    ),
    DiffPlanEntry(
        task_name="StartupOptimization",
        audit_key="StartupItems",
        strategy=DiffStrategy.PATTERN_EXCLUDE,
        config_section="startup",
        skip_flag="modules.skip_startup_optimization",
        options={"match_field": "Name", "default_pass": False},
    ),
    DiffPlanEntry(
        task_name="ServiceOptimization",
        audit_key="Services",
        strategy=DiffStrategy.PATTERN_EXCLUDE,
        config_section="services",
        skip_flag="modules.skip_service_optimization",
        options={"match_field": "Name", "default_pass": False},
    ),
    DiffPlanEntry(
        task_name="WindowsUpdates",
        audit_key="WindowsUpdates",
        strategy=DiffStrategy.PASSTHROUGH,
        config_section="updates",
        skip_flag="modules.skip_windows_updates",
        options={"master_switch": "enabled"},
    ),
    DiffPlanEntry(
        task_name="AppUpgrade",
        audit_key="AppUpgrade",
        strategy=DiffStrategy.PATTERN_EXCLUDE,
        config_section="app_upgrade",
        skip_flag="modules.skip_app_upgrade",
        options={"match_field": "Name", "default_pass": True, "master_switch": "enabled"},
    ),
    DiffPlanEntry(
        task_name="SecurityEnhancement",
        audit_key="SecurityAudit",
        strategy=DiffStrategy.POLICY_GATE,
        config_section="security",
        skip_flag="modules.skip_security_enhancement",
    ),
)


# -------------------------
# PUBLIC ENTRYPOINT
# -------------------------

def build_plan(
    config: Optional[Mapping[str, Any]],
    table: Optional[Sequence[DiffPlanEntry]] = None,
) -> List[DiffPlanEntry]:
    """
    Resolve the plan against config, returning enabled rows in table order.

    Raises:
        ConfigurationError: malformed `diff_plan` override.
    """

    rows = list(DEFAULT_PLAN_TABLE if table is None else table)
    rows = _apply_overrides(rows, (config or {}).get("diff_plan") or {})

    plan: List[DiffPlanEntry] = []

    for row in rows:
        enabled = not get_flag(config, row.skip_flag, default=False)
        resolved = replace(row, enabled=enabled)

        if not resolved.enabled:
            log.info(f"Diff plan: {row.task_name} disabled by {row.skip_flag}")
            continue

        plan.append(resolved)

    log.debug(f"Diff plan resolved: {[row.task_name for row in plan]}")
    return plan


def _apply_overrides(
    rows: List[DiffPlanEntry],
    overrides: Mapping[str, Any],
) -> List[DiffPlanEntry]:
    if not isinstance(overrides, Mapping):
        raise ConfigurationError("diff_plan must be an object keyed by task name")

    by_name: Dict[str, DiffPlanEntry] = {row.task_name: row for row in rows}
    order = [row.task_name for row in rows]

    for task_name, override in overrides.items():
        if not isinstance(override, Mapping):
            raise ConfigurationError(f"diff_plan.{task_name} must be an object")

        existing = by_name.get(task_name)

        if existing is None:
            missing = [k for k in ("audit_key", "strategy") if k not in override]
            if missing:
                raise ConfigurationError(
                    f"diff_plan.{task_name} is a new row and needs: {', '.join(missing)}"
                )
            existing = DiffPlanEntry(
                task_name=task_name,
                audit_key=override["audit_key"],
                strategy=DiffStrategy.parse(override["strategy"]),
                config_section=override.get("config_section"),
            )
            order.append(task_name)

        changes: Dict[str, Any] = {}
        if "audit_key" in override:
            changes["audit_key"] = override["audit_key"]
        if "strategy" in override:
            changes["strategy"] = DiffStrategy.parse(override["strategy"])
        if "config_section" in override:
            changes["config_section"] = override["config_section"]
        if "skip_flag" in override:
            changes["skip_flag"] = override["skip_flag"]
        if "options" in override:
            changes["options"] = {**existing.options, **override["options"]}

        by_name[task_name] = replace(existing, **changes)

    return [by_name[name] for name in order]
