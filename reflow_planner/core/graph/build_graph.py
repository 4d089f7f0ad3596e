from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable

from reflow_planner.core.errors import DanglingEdgeWarning
from reflow_planner.core.model import Dependency, Item

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GraphIndex:
    """Adjacency indices for one request-scoped snapshot, keyed by item id."""

    order: list[str]
    predecessors: dict[str, list[str]]
    successors: dict[str, list[str]]
    in_degree: dict[str, int]
    edges: list[Dependency]
    dangling: list[DanglingEdgeWarning]

    def roots(self) -> list[str]:
        return [nid for nid in self.order if self.in_degree[nid] == 0]


def build_graph(items: Iterable[Item], dependencies: Iterable[Dependency]) -> GraphIndex:
    """Index items and their dependencies.

    Edges whose endpoints are not both present in ``items`` are dropped and
    reported on ``GraphIndex.dangling``. Repeated edges are indexed once.
    """
    order: list[str] = []
    predecessors: dict[str, list[str]] = {}
    successors: dict[str, list[str]] = {}
    in_degree: dict[str, int] = {}

    for item in items:
        if item.id in in_degree:
            continue
        order.append(item.id)
        predecessors[item.id] = []
        successors[item.id] = []
        in_degree[item.id] = 0

    kept: list[Dependency] = []
    seen: set[tuple[str, str]] = set()
    dangling: list[DanglingEdgeWarning] = []

    for dep in dependencies:
        missing = next(
            (x for x in (dep.predecessor_id, dep.successor_id) if x not in in_degree), None
        )
        if missing is not None:
            dangling.append(
                DanglingEdgeWarning(
                    predecessor_id=dep.predecessor_id,
                    successor_id=dep.successor_id,
                    missing_id=missing,
                )
            )
            continue

        key = (dep.predecessor_id, dep.successor_id)
        if key in seen:
            continue
        seen.add(key)
        kept.append(dep)

        predecessors[dep.successor_id].append(dep.predecessor_id)
        successors[dep.predecessor_id].append(dep.successor_id)
        in_degree[dep.successor_id] += 1

    for w in dangling:
        logger.debug("dropping dangling edge: %s", w)

    return GraphIndex(
        order=order,
        predecessors=predecessors,
        successors=successors,
        in_degree=in_degree,
        edges=kept,
        dangling=dangling,
    )
