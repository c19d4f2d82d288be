"""Service dependency graph and cycle validation."""

from __future__ import annotations

from enum import IntEnum
from typing import TYPE_CHECKING, final

import rustworkx as rx

from devplane.exceptions import ConfigError, CycleError

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

    from devplane.config import RosterConfig, ServiceDefinition


class _Mark(IntEnum):
    WHITE = 0
    GRAY = 1
    BLACK = 2


@final
class DependencyGraph:
    """Directed graph of service ids and their dependencies.

    Nodes keep roster declaration order so traversal and error reporting
    are deterministic.
    """

    __slots__ = ("_edges",)

    def __init__(self, edges: Mapping[str, Iterable[str]]) -> None:
        """Initialize the graph.

        Args:
            edges: Mapping of service id to the ids it depends on.
        """
        self._edges: dict[str, tuple[str, ...]] = {
            node: tuple(dependencies) for node, dependencies in edges.items()
        }

    @classmethod
    def from_services(cls, services: Iterable[ServiceDefinition]) -> DependencyGraph:
        """Build a graph from service definitions."""
        return cls({service.id: service.dependencies for service in services})

    @classmethod
    def from_roster(cls, roster: RosterConfig) -> DependencyGraph:
        """Build a graph from every service in a roster."""
        return cls.from_services(roster.services.values())

    @property
    def nodes(self) -> list[str]:
        """Return the service ids in declaration order."""
        return list(self._edges)

    def dependencies(self, node: str) -> tuple[str, ...]:
        """Return the ids a service depends on."""
        return self._edges[node]

    def dependents(self, node: str) -> list[str]:
        """Return the ids that depend directly on a service."""
        return [other for other, deps in self._edges.items() if node in deps]

    def validate(self) -> None:
        """Check that every dependency is known and the graph is acyclic.

        Performs a depth-first traversal with white/gray/black marking.
        Reaching a gray node means the current path closes a cycle.

        Raises:
            ConfigError: If a service depends on an unknown id.
            CycleError: If the graph contains a cycle, including self-loops.
        """
        for node, dependencies in self._edges.items():
            for dependency in dependencies:
                if dependency not in self._edges:
                    msg = f"Service '{node}' depends on unknown service '{dependency}'"
                    raise ConfigError(msg, key=f"services.{node}.dependencies")

        marks = dict.fromkeys(self._edges, _Mark.WHITE)
        path: list[str] = []

        def visit(node: str) -> None:
            marks[node] = _Mark.GRAY
            path.append(node)
            for dependency in self._edges[node]:
                if marks[dependency] is _Mark.GRAY:
                    start = path.index(dependency)
                    cycle = (*path[start:], dependency)
                    msg = f"Circular dependency detected: {' -> '.join(cycle)}"
                    raise CycleError(msg, service_id=dependency, cycle=cycle)
                if marks[dependency] is _Mark.WHITE:
                    visit(dependency)
            _ = path.pop()
            marks[node] = _Mark.BLACK

        for node in self._edges:
            if marks[node] is _Mark.WHITE:
                visit(node)

    def topological_order(self) -> list[str]:
        """Return ids ordered so every service follows its dependencies.

        Ties are broken by declaration order.

        Raises:
            ConfigError: If the graph is invalid.
            CycleError: If the graph contains a cycle.
        """
        self.validate()
        graph: rx.PyDiGraph[str, None] = rx.PyDiGraph(check_cycle=False)
        indices = {node: graph.add_node(node) for node in self._edges}
        for node, dependencies in self._edges.items():
            for dependency in dependencies:
                _ = graph.add_edge(indices[dependency], indices[node], None)
        rank = {node: f"{index:06d}" for index, node in enumerate(self._edges)}
        return rx.lexicographical_topological_sort(graph, key=rank.__getitem__)


def validate_roster(roster: RosterConfig) -> DependencyGraph:
    """Build and validate the dependency graph of a roster.

    Runs once, before any process starts.

    Args:
        roster: The roster to validate.

    Returns:
        The validated graph.

    Raises:
        ConfigError: If a service depends on an unknown id.
        CycleError: If the roster contains a circular dependency.
    """
    graph = DependencyGraph.from_roster(roster)
    graph.validate()
    return graph
