# engine/planner/dependency_graph.py

"""
Dependency graph for maintenance tasks.

Edges point in the depends-on direction: `edges["B"] == {"A"}` means
B runs after A. Built once per run, read-only after validation.
"""

from dataclasses import dataclass
from typing import (
    Dict,
    FrozenSet,
    Iterable,
    List,
    Mapping,
    Optional,
    Set,
    Tuple,
    Union,
)

from engine.logger import get_logger
from engine.planner.exceptions import CircularDependencyError, ConfigurationError
from engine.scheduler.dag import TaskDescriptor

log = get_logger("graph")

ExecutionLevel = Tuple[str, ...]

# DFS colors
_WHITE, _GRAY, _BLACK = 0, 1, 2


@dataclass(frozen=True)
class DependencyViolation:
    task_name: str
    dependency: str
    kind: str  # "self-dependency" | "missing"

    def __str__(self) -> str:
        if self.kind == "self-dependency":
            return f"{self.task_name} depends on itself"
        return f"{self.task_name} depends on unknown task {self.dependency}"


class DependencyGraph:
    """
    Validated task dependency graph.

    Owns:
    - node closure (declared + referenced names)
    - adjacency in both directions
    - cycle detection
    - level computation (Kahn, batch drained)
    """

    __slots__ = ("_edges", "_dependents", "_declared")

    def __init__(
        self,
        edges: Dict[str, FrozenSet[str]],
        declared: FrozenSet[str],
    ):
        self._edges = edges
        self._declared = declared
        self._dependents: Dict[str, Set[str]] = {name: set() for name in edges}
        for name, deps in edges.items():
            for dep in deps:
                self._dependents[dep].add(name)

    # -------------------------
    # CONSTRUCTION
    # -------------------------

    @classmethod
    def build(
        cls,
        descriptors: Union[
            Mapping[str, Optional[Iterable[str]]], Iterable[TaskDescriptor]
        ],
    ) -> "DependencyGraph":
        """
        Build the graph from name -> depends_on, or from descriptors.

        Raises:
            ConfigurationError: a task has no dependency list at all
                (None). An empty list is valid.
        """

        if isinstance(descriptors, Mapping):
            raw = dict(descriptors)
        else:
            raw = {}
            for d in descriptors:
                if d.name in raw:
                    raise ConfigurationError(f"Duplicate task name: {d.name}")
                raw[d.name] = d.depends_on

        edges: Dict[str, FrozenSet[str]] = {}

        for name, deps in raw.items():
            if deps is None:
                raise ConfigurationError(
                    f"Task {name} is missing its dependency list"
                )
            if isinstance(deps, str):
                deps = [deps]
            edges[name] = frozenset(deps)

        # Referenced-but-undeclared names become zero-dependency nodes
        for deps in list(edges.values()):
            for dep in deps:
                edges.setdefault(dep, frozenset())

        graph = cls(edges, frozenset(raw))

        implicit = len(edges) - len(raw)
        log.info(
            f"Dependency graph built: {len(edges)} nodes "
            f"({implicit} implicit), {graph.edge_count} edges"
        )
        return graph

    # -------------------------
    # READ-ONLY VIEW
    # -------------------------

    @property
    def nodes(self) -> FrozenSet[str]:
        return frozenset(self._edges)

    @property
    def declared(self) -> FrozenSet[str]:
        return self._declared

    @property
    def implicit(self) -> FrozenSet[str]:
        """Names only referenced as a dependency, never declared."""
        return self.nodes - self._declared

    @property
    def edges(self) -> Mapping[str, FrozenSet[str]]:
        return dict(self._edges)

    @property
    def edge_count(self) -> int:
        return sum(len(deps) for deps in self._edges.values())

    def in_degree(self, name: str) -> int:
        """Static in-degree: number of direct dependencies."""
        return len(self._edges[name])

    def __contains__(self, name: str) -> bool:
        return name in self._edges

    def __len__(self) -> int:
        return len(self._edges)

    # -------------------------
    # VALIDATION
    # -------------------------

    def validate_acyclic(self) -> Optional[CircularDependencyError]:
        """
        Three-color iterative DFS.

        Returns None if the graph is a DAG, otherwise the error carrying
        the cycle path (first node repeated at the end).
        """

        color: Dict[str, int] = {name: _WHITE for name in self._edges}

        for root in sorted(self._edges):
            if color[root] != _WHITE:
                continue

            path: List[str] = [root]
            stack = [(root, iter(sorted(self._edges[root])))]
            color[root] = _GRAY

            while stack:
                node, children = stack[-1]
                advanced = False

                for child in children:
                    if color[child] == _GRAY:
                        cycle = path[path.index(child):] + [child]
                        error = CircularDependencyError(cycle)
                        log.error(str(error))
                        return error

                    if color[child] == _WHITE:
                        color[child] = _GRAY
                        path.append(child)
                        stack.append((child, iter(sorted(self._edges[child]))))
                        advanced = True
                        break

                if not advanced:
                    color[node] = _BLACK
                    path.pop()
                    stack.pop()

        return None

    def ensure_acyclic(self) -> None:
        error = self.validate_acyclic()
        if error is not None:
            raise error

    def validate_references(
        self, available: Iterable[str]
    ) -> List[DependencyViolation]:
        """
        Check declared tasks against the set of tasks that can actually run.

        Collects every violation instead of stopping at the first one.
        """

        known = set(available)
        violations: List[DependencyViolation] = []

        for name in sorted(self._declared):
            for dep in sorted(self._edges[name]):
                if dep == name:
                    violations.append(
                        DependencyViolation(name, dep, "self-dependency")
                    )
                elif dep not in known:
                    violations.append(DependencyViolation(name, dep, "missing"))

        for violation in violations:
            log.warning(f"Dependency violation: {violation}")

        return violations

    # -------------------------
    # ORDERING
    # -------------------------

    def compute_levels(self) -> List[ExecutionLevel]:
        """
        Kahn's algorithm, draining the whole ready queue per level.

        Every task in a level has all dependencies in earlier levels.
        """

        in_degree = {name: len(deps) for name, deps in self._edges.items()}
        ready = [name for name, degree in in_degree.items() if degree == 0]
        levels: List[ExecutionLevel] = []

        while ready:
            level = tuple(sorted(ready))
            levels.append(level)
            ready = []

            for name in level:
                for dependent in self._dependents[name]:
                    in_degree[dependent] -= 1
                    if in_degree[dependent] == 0:
                        ready.append(dependent)

        placed = sum(len(level) for level in levels)
        if placed != len(self._edges):
            # Unreachable after validate_acyclic; re-check anyway
            stuck = sorted(n for n, d in in_degree.items() if d > 0)
            error = self.validate_acyclic()
            raise error or CircularDependencyError(stuck + stuck[:1])

        for index, level in enumerate(levels):
            log.debug(f"Level {index}: {', '.join(level)}")

        return levels

    def execution_order(self) -> List[str]:
        return [name for level in self.compute_levels() for name in level]

    # -------------------------
    # QUERIES
    # -------------------------

    def dependencies_of(self, name: str) -> FrozenSet[str]:
        if name not in self._edges:
            raise KeyError(f"Unknown task: {name}")
        return self._edges[name]

    def dependents_of(self, name: str) -> FrozenSet[str]:
        if name not in self._edges:
            raise KeyError(f"Unknown task: {name}")
        return frozenset(self._dependents[name])

    def transitive_dependencies(self, name: str) -> Set[str]:
        """All direct and indirect dependencies of `name` (unordered)."""

        if name not in self._edges:
            raise KeyError(f"Unknown task: {name}")

        visited: Set[str] = set()
        stack = list(self._edges[name])

        while stack:
            current = stack.pop()
            if current in visited:
                continue
            visited.add(current)
            stack.extend(self._edges.get(current, ()))

        visited.discard(name)
        return visited
