# engine/discovery/manifest.py

"""
Task discovery from a JSON manifest.

Each entry names its entry point as "package.module:function". Entry
points are imported once here and stored on the descriptor; the engine
never looks callables up by name.
"""

import importlib
import json
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import pydantic

from engine.logger import get_logger
from engine.planner.exceptions import ConfigurationError
from engine.scheduler.dag import TaskDescriptor

log = get_logger("discovery")


class TaskManifestEntry(pydantic.BaseModel):
    """
    One task as declared in the manifest.

    `depends_on` is required; an empty list is valid.
    """

    name: str = pydantic.Field(min_length=1)
    category: str = "general"
    depends_on: List[str]
    entry_point: str
    requires_elevation: bool = False
    timeout_seconds: int = pydantic.Field(default=300, gt=0)
    parameters: Dict[str, Any] = {}
    audit_key: Optional[str] = None

    model_config = pydantic.ConfigDict(extra="forbid")

    @pydantic.field_validator("entry_point")
    @classmethod
    def _entry_point_format(cls, value: str) -> str:
        module, sep, attr = value.partition(":")
        if not sep or not module or not attr:
            raise ValueError("entry_point must look like 'package.module:function'")
        return value

    @pydantic.model_validator(mode="after")
    def _no_self_dependency(self) -> "TaskManifestEntry":
        if self.name in self.depends_on:
            raise ValueError(f"Task {self.name} depends on itself")
        return self


def resolve_entry_point(reference: str) -> Callable[..., Any]:
    """
    Import "package.module:attr[.attr]" and return the callable.

    Raises:
        ConfigurationError
    """

    module_path, _, attr_path = reference.partition(":")

    try:
        target: Any = importlib.import_module(module_path)
    except ImportError as exc:
        raise ConfigurationError(f"Cannot import task module {module_path}: {exc}") from exc

    for part in attr_path.split("."):
        try:
            target = getattr(target, part)
        except AttributeError as exc:
            raise ConfigurationError(f"Entry point not found: {reference}") from exc

    if not callable(target):
        raise ConfigurationError(f"Entry point is not callable: {reference}")

    return target


def descriptors_from_entries(raw_entries: List[Any]) -> List[TaskDescriptor]:
    """
    Validate raw manifest entries and build descriptors.

    Raises:
        ConfigurationError: the first invalid entry, or duplicate names.
    """

    descriptors: List[TaskDescriptor] = []
    seen = set()

    for index, raw in enumerate(raw_entries):
        try:
            entry = TaskManifestEntry.model_validate(raw)
        except pydantic.ValidationError as exc:
            label = raw.get("name", f"#{index}") if isinstance(raw, dict) else f"#{index}"
            raise ConfigurationError(f"Invalid task manifest entry {label}: {exc}") from exc

        if entry.name in seen:
            raise ConfigurationError(f"Duplicate task name in manifest: {entry.name}")
        seen.add(entry.name)

        descriptors.append(
            TaskDescriptor(
                name=entry.name,
                category=entry.category,
                depends_on=frozenset(entry.depends_on),
                entry_point=resolve_entry_point(entry.entry_point),
                timeout_seconds=entry.timeout_seconds,
                requires_elevation=entry.requires_elevation,
                parameters=entry.parameters,
                audit_key=entry.audit_key,
            )
        )

    log.info(f"Discovered {len(descriptors)} tasks")
    return descriptors


def load_task_manifest(path: str) -> List[TaskDescriptor]:
    """
    Load a manifest file: a JSON list of entries, or {"tasks": [...]}.
    """

    p = Path(path)

    try:
        with p.open("r", encoding="utf-8") as f:
            document = json.load(f)
    except FileNotFoundError as exc:
        raise ConfigurationError(f"Task manifest not found: {path}") from exc
    except json.JSONDecodeError as exc:
        raise ConfigurationError(f"Task manifest {path} is not valid JSON: {exc}") from exc

    if isinstance(document, dict):
        document = document.get("tasks")

    if not isinstance(document, list):
        raise ConfigurationError(f"Task manifest {path} must contain a list of tasks")

    return descriptors_from_entries(document)
