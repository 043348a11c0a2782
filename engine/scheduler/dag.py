from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Callable, FrozenSet, Mapping, Optional

from engine.planner.exceptions import ConfigurationError

# Keyword arguments the engine itself passes to entry points
RESERVED_KWARGS = frozenset({"actionable_items", "dry_run", "correlation_id"})


@dataclass(frozen=True, slots=True)
class TaskDescriptor:
    """
    Immutable task descriptor.

    Describes WHAT the task is.
    Does NOT describe HOW it runs.
    Built once at discovery time, never mutated.
    """

    name: str
    category: str
    depends_on: FrozenSet[str]
    entry_point: Callable[..., Any]
    timeout_seconds: int = 300
    requires_elevation: bool = False
    parameters: Mapping[str, Any] = field(default_factory=dict, hash=False, compare=False)
    audit_key: Optional[str] = None

    def __post_init__(self):
        if not self.name:
            raise ConfigurationError("Task descriptor is missing a name")

        if self.depends_on is None:
            raise ConfigurationError(f"Task {self.name}: depends_on is required")

        # Normalize to frozenset / read-only mapping
        object.__setattr__(self, "depends_on", frozenset(self.depends_on))
        object.__setattr__(
            self, "parameters", MappingProxyType(dict(self.parameters or {}))
        )

        clashes = RESERVED_KWARGS.intersection(self.parameters)
        if clashes:
            raise ConfigurationError(
                f"Task {self.name}: reserved parameter names: {', '.join(sorted(clashes))}"
            )

        if self.name in self.depends_on:
            raise ConfigurationError(f"Task {self.name} depends on itself")

        if isinstance(self.timeout_seconds, bool) or not isinstance(self.timeout_seconds, int):
            raise ConfigurationError(
                f"Task {self.name}: timeout_seconds must be an int"
            )

        if self.timeout_seconds <= 0:
            raise ConfigurationError(
                f"Task {self.name}: timeout_seconds must be > 0, got {self.timeout_seconds}"
            )

        if not callable(self.entry_point):
            raise ConfigurationError(f"Task {self.name}: entry_point is not callable")
