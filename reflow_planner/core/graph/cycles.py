from __future__ import annotations

import logging
from collections import defaultdict, deque
from typing import Iterable

from reflow_planner.core.errors import CycleError, SnapshotValidationError
from reflow_planner.core.model import Dependency, Item

logger = logging.getLogger(__name__)


def would_create_cycle(from_id: str, to_id: str, dependencies: Iterable[Dependency]) -> bool:
    """Return True when ``to_id`` is reachable from ``from_id`` along successor edges.

    To test a proposed edge ``p -> s`` call ``would_create_cycle(s, p, edges)``.
    Identity counts as reachable: a self-loop is a degenerate cycle.
    """
    if from_id == to_id:
        return True

    successors: dict[str, list[str]] = defaultdict(list)
    for dep in dependencies:
        successors[dep.predecessor_id].append(dep.successor_id)

    q: deque[str] = deque([from_id])
    seen: set[str] = {from_id}
    while q:
        cur = q.popleft()
        for nxt in successors.get(cur, []):
            if nxt == to_id:
                return True
            if nxt not in seen:
                seen.add(nxt)
                q.append(nxt)
    return False


def check_new_dependency(
    items: Iterable[Item],
    dependencies: list[Dependency],
    predecessor_id: str,
    successor_id: str,
) -> Dependency:
    """Validate a proposed edge against the current snapshot; raise before any mutation."""
    by_id = {i.id: i for i in items}
    path = f"{predecessor_id}->{successor_id}"

    if predecessor_id == successor_id:
        raise CycleError(
            code="E_CYCLE",
            message=f"an item cannot depend on itself: {predecessor_id}",
            path=path,
        )

    for nid in (predecessor_id, successor_id):
        if nid not in by_id:
            raise SnapshotValidationError(
                code="E_UNKNOWN_ITEM",
                message=f"dependency references unknown item: {nid}",
                path=path,
            )

    if by_id[predecessor_id].group_id != by_id[successor_id].group_id:
        raise SnapshotValidationError(
            code="E_CROSS_GROUP_DEPENDENCY",
            message="items must belong to the same group",
            path=path,
        )

    for dep in dependencies:
        if dep.predecessor_id == predecessor_id and dep.successor_id == successor_id:
            raise SnapshotValidationError(
                code="E_DUPLICATE_DEPENDENCY",
                message="dependency already exists",
                path=path,
            )

    if would_create_cycle(successor_id, predecessor_id, dependencies):
        raise CycleError(
            code="E_CYCLE",
            message="this would create a circular dependency",
            path=path,
        )

    return Dependency(predecessor_id=predecessor_id, successor_id=successor_id)


def add_dependency(
    items: Iterable[Item],
    dependencies: list[Dependency],
    predecessor_id: str,
    successor_id: str,
) -> list[Dependency]:
    """Return a new edge list with ``predecessor_id -> successor_id`` appended."""
    dep = check_new_dependency(items, dependencies, predecessor_id, successor_id)
    logger.debug("accepted dependency %s -> %s", predecessor_id, successor_id)
    return list(dependencies) + [dep]


def find_cycles(dependencies: Iterable[Dependency]) -> list[tuple[str, str]]:
    """Report existing cycles as ``(item_id, message)`` pairs, one per distinct cycle."""
    id_to_succs: dict[str, list[str]] = defaultdict(list)
    for dep in dependencies:
        id_to_succs[dep.predecessor_id].append(dep.successor_id)
        id_to_succs.setdefault(dep.successor_id, [])

    WHITE, GRAY, BLACK = 0, 1, 2
    state: dict[str, int] = {nid: WHITE for nid in id_to_succs}
    emitted: set[frozenset[str]] = set()
    out: list[tuple[str, str]] = []

    for root in list(state):
        if state[root] != WHITE:
            continue
        state[root] = GRAY
        stack: list[str] = [root]
        work = [(root, iter(id_to_succs[root]))]
        while work:
            u, succs = work[-1]
            v = next(succs, None)
            if v is None:
                work.pop()
                stack.pop()
                state[u] = BLACK
            elif state[v] == GRAY:
                cycle = stack[stack.index(v) :] + [v]
                key = frozenset(cycle)
                if key not in emitted:
                    emitted.add(key)
                    out.append((u, "dependency cycle detected: " + " -> ".join(cycle)))
            elif state[v] == WHITE:
                state[v] = GRAY
                stack.append(v)
                work.append((v, iter(id_to_succs[v])))

    return out
