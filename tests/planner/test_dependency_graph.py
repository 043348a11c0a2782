import random

import pytest

from engine.planner.dependency_graph import DependencyGraph
from engine.planner.exceptions import CircularDependencyError, ConfigurationError


def _assert_topological(graph, levels):
    level_of = {name: i for i, level in enumerate(levels) for name in level}
    for name in graph.nodes:
        for dep in graph.dependencies_of(name):
            assert level_of[dep] < level_of[name]


def test_build_includes_referenced_but_undeclared_nodes():
    graph = DependencyGraph.build({"B": ["A"], "C": []})

    assert graph.nodes == {"A", "B", "C"}
    assert graph.implicit == {"A"}
    assert graph.in_degree("B") == 1
    assert graph.in_degree("A") == 0


def test_build_rejects_missing_dependency_list():
    with pytest.raises(ConfigurationError):
        DependencyGraph.build({"A": None})


def test_empty_dependency_list_is_valid():
    graph = DependencyGraph.build({"A": []})
    assert graph.compute_levels() == [("A",)]


def test_levels_drain_in_batches():
    graph = DependencyGraph.build(
        {"A": [], "B": ["A"], "C": ["A"], "D": ["B", "C"], "E": []}
    )

    levels = graph.compute_levels()

    assert levels == [("A", "E"), ("B", "C"), ("D",)]
    assert graph.execution_order() == ["A", "E", "B", "C", "D"]


def test_tasks_without_dependencies_are_level_zero():
    graph = DependencyGraph.build({"X": [], "Y": ["X"], "Z": []})
    assert {"X", "Z"} <= set(graph.compute_levels()[0])


def test_random_dags_produce_valid_topological_levels():
    rng = random.Random(7)

    for _ in range(50):
        names = [f"t{i}" for i in range(rng.randint(1, 25))]
        deps = {
            name: [other for other in names[:i] if rng.random() < 0.3]
            for i, name in enumerate(names)
        }
        graph = DependencyGraph.build(deps)

        assert graph.validate_acyclic() is None
        levels = graph.compute_levels()

        assert sum(len(level) for level in levels) == len(graph.nodes)
        _assert_topological(graph, levels)


def test_cycle_is_reported_with_closed_path():
    graph = DependencyGraph.build({"A": ["C"], "B": ["A"], "C": ["B"], "D": []})

    error = graph.validate_acyclic()

    assert isinstance(error, CircularDependencyError)
    assert error.cycle[0] == error.cycle[-1]
    assert set(error.cycle) == {"A", "B", "C"}
    assert "D" not in error.cycle


def test_cycle_path_excludes_nodes_leading_into_it():
    graph = DependencyGraph.build({"Entry": ["X"], "X": ["Y"], "Y": ["X"]})

    error = graph.validate_acyclic()

    assert error is not None
    assert set(error.cycle) == {"X", "Y"}
    assert len(error.cycle) == 3


def test_validate_does_not_mutate_graph():
    graph = DependencyGraph.build({"A": ["B"], "B": ["A"]})
    before = graph.edges

    graph.validate_acyclic()

    assert graph.edges == before


def test_ensure_acyclic_raises():
    graph = DependencyGraph.build({"A": ["B"], "B": ["A"]})
    with pytest.raises(CircularDependencyError):
        graph.ensure_acyclic()


def test_compute_levels_rechecks_cycles():
    graph = DependencyGraph.build({"A": ["B"], "B": ["A"], "C": []})
    with pytest.raises(CircularDependencyError):
        graph.compute_levels()


def test_transitive_dependencies():
    graph = DependencyGraph.build({"A": [], "B": ["A"], "C": ["B", "A"], "D": ["C"]})

    assert graph.transitive_dependencies("D") == {"A", "B", "C"}
    assert graph.transitive_dependencies("A") == set()
    assert graph.dependencies_of("C") == {"A", "B"}
    assert graph.dependents_of("A") == {"B", "C"}


def test_validate_references_reports_every_violation():
    graph = DependencyGraph.build({"A": ["A"], "B": ["Missing1", "Missing2"], "C": []})

    violations = graph.validate_references({"A", "B", "C"})

    kinds = sorted((v.task_name, v.dependency, v.kind) for v in violations)
    assert kinds == [
        ("A", "A", "self-dependency"),
        ("B", "Missing1", "missing"),
        ("B", "Missing2", "missing"),
    ]
