"""Structural validation of a run graph.

Checks that the dependency relation is acyclic, with one exemption:
a container and its own members may list each other as dependencies.
"""

import logging
from collections.abc import Iterator, Mapping
from enum import Enum

from cannoli.graph.objects import CannoliObject

logger = logging.getLogger(__name__)

CYCLE_MESSAGE = (
    "Cycle detected in graph. Please make sure the graph is a DAG.\n"
    "(exception: edges between groups and their members)"
)


class DagCheckState(Enum):
    UNVISITED = 0
    VISITING = 1
    VISITED = 2


def _traversable_dependencies(
    obj: CannoliObject, graph: Mapping[str, CannoliObject]
) -> Iterator[str]:
    # Container -> member edges are containment, not ordering
    members = set(getattr(obj, "members", None) or ())
    for dep_id in obj.get_all_dependencies():
        if dep_id in graph and dep_id not in members:
            yield dep_id


def find_cycle(graph: Mapping[str, CannoliObject]) -> list[str] | None:
    """
    Return one dependency cycle as a list of ids (first id repeated at the
    end), or None if the graph is acyclic.

    Depth-first search with three colors; an explicit stack keeps deep
    chains clear of the recursion limit. The outer loop covers
    disconnected subgraphs.
    """
    states: dict[str, DagCheckState] = {}

    for root_id, root in graph.items():
        if states.get(root_id, DagCheckState.UNVISITED) is DagCheckState.VISITED:
            continue

        states[root_id] = DagCheckState.VISITING
        path = [root_id]
        stack = [(root_id, _traversable_dependencies(root, graph))]

        while stack:
            node_id, deps = stack[-1]
            for dep_id in deps:
                state = states.get(dep_id, DagCheckState.UNVISITED)
                if state is DagCheckState.VISITING:
                    return path[path.index(dep_id) :] + [dep_id]
                if state is DagCheckState.UNVISITED:
                    states[dep_id] = DagCheckState.VISITING
                    path.append(dep_id)
                    stack.append((dep_id, _traversable_dependencies(graph[dep_id], graph)))
                    break
            else:
                states[node_id] = DagCheckState.VISITED
                path.pop()
                stack.pop()

    return None


def is_dag(graph: Mapping[str, CannoliObject]) -> bool:
    cycle = find_cycle(graph)
    if cycle is not None:
        logger.debug(f"Cycle found: {' -> '.join(cycle)}")
        return False
    return True


def missing_dependencies(graph: Mapping[str, CannoliObject]) -> dict[str, list[str]]:
    """Map object id -> execution dependencies that are not in the graph."""
    missing: dict[str, list[str]] = {}
    for obj_id, obj in graph.items():
        absent = [d for d in obj.dependencies if d not in graph]
        if absent:
            missing[obj_id] = absent
    return missing
