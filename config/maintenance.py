# config/maintenance.py

"""
Maintenance configuration document.

A nested key-value document (JSON on disk) merged over DEFAULT_CONFIG.
Missing sections resolve to empty values, never errors: diff strategies
tolerate absent sections.
"""

import copy
import json
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

from engine.logger import get_logger
from engine.planner.exceptions import ConfigurationError

log = get_logger("config")

DEFAULT_CONFIG: Dict[str, Any] = {
    "modules": {
        "skip_bloatware_removal": False,
        "skip_essential_apps": False,
        "skip_system_optimization": False,
        "skip_telemetry_disable": False,
        "skip_startup_optimization": False,
        "skip_service_optimization": False,
        "skip_windows_updates": False,
        "skip_app_upgrade": False,
        "skip_security_enhancement": False,
    },
    "bloatware_list": [],
    "essential_apps": [],
    "system_optimization": {
        "enabled": True,
        "allow_registry": True,
        "allow_power_plan": True,
        "allow_visual_effects": True,
    },
    "telemetry": {
        "enabled": True,
        "allow_service": True,
        "allow_registry": True,
        "allow_scheduled_task": True,
    },
    "startup": {
        "never_disable_patterns": ["*security*", "*defender*", "*antivirus*"],
        "safe_to_disable_patterns": [],
        "exclude_patterns": [],
    },
    "services": {
        "never_disable_patterns": ["wuauserv", "WinDefend", "EventLog", "RpcSs"],
        "safe_to_disable_patterns": [],
        "exclude_patterns": [],
    },
    "updates": {
        "enabled": True,
    },
    "app_upgrade": {
        "enabled": True,
        "exclude_patterns": [],
    },
    "security": {
        "enabled": True,
    },
}


def deep_merge(base: Mapping[str, Any], override: Mapping[str, Any]) -> Dict[str, Any]:
    """
    Recursively merge `override` into a copy of `base`.

    Dicts merge key by key; every other value in `override` replaces.
    """

    merged = copy.deepcopy(dict(base))

    for key, value in override.items():
        if isinstance(value, Mapping) and isinstance(merged.get(key), Mapping):
            merged[key] = deep_merge(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)

    return merged


def load_config(path: Optional[str] = None) -> Dict[str, Any]:
    """
    Load a config document and merge defaults in.

    Raises:
        ConfigurationError: unreadable file or non-object document.
    """

    if path is None:
        return copy.deepcopy(DEFAULT_CONFIG)

    p = Path(path)

    try:
        with p.open("r", encoding="utf-8") as f:
            document = json.load(f)
    except FileNotFoundError as exc:
        raise ConfigurationError(f"Config file not found: {path}") from exc
    except json.JSONDecodeError as exc:
        raise ConfigurationError(f"Config file {path} is not valid JSON: {exc}") from exc

    if document is None:
        document = {}

    if not isinstance(document, dict):
        raise ConfigurationError(f"Config root in {path} must be an object")

    log.info(f"Loaded config from {p}")
    return deep_merge(DEFAULT_CONFIG, document)


def get_section(config: Optional[Mapping[str, Any]], name: Optional[str]) -> Any:
    """
    Config section by name. Missing or null sections resolve to {}.
    """

    if not config or not name:
        return {}

    value = config.get(name)
    if value is None:
        return {}
    return value


def get_flag(config: Optional[Mapping[str, Any]], dotted_key: Optional[str], default: bool = False) -> bool:
    """
    Boolean lookup by dotted path, e.g. "modules.skip_app_upgrade".
    """

    if not config or not dotted_key:
        return default

    node: Any = config
    for part in dotted_key.split("."):
        if not isinstance(node, Mapping) or part not in node:
            return default
        node = node[part]

    if node is None:
        return default
    return bool(node)
