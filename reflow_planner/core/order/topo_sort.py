from __future__ import annotations

import bisect
from datetime import date
from typing import Iterable

from reflow_planner.core.graph.build_graph import build_graph
from reflow_planner.core.model import Dependency, Item


def topological_order(items: list[Item], dependencies: Iterable[Dependency]) -> list[str]:
    """Stable display order: predecessors first, ties by (sort_order, start_date).

    Kahn's algorithm over a sorted ready-queue; newly ready items are
    insertion-sorted behind any equal keys already queued. Items left over
    by a cycle are appended in input order.
    """
    if len(items) <= 1:
        return [i.id for i in items]

    by_id = {i.id: i for i in items}
    index = build_graph(items, dependencies)
    in_degree = dict(index.in_degree)
    seq = 0

    def entry(nid: str) -> tuple[int, date, int, str]:
        nonlocal seq
        seq += 1
        item = by_id[nid]
        return (item.sort_order or 0, item.start_date, seq, nid)

    queue = sorted(entry(nid) for nid in index.roots())
    out: list[str] = []
    while queue:
        nid = queue.pop(0)[-1]
        out.append(nid)

        ready: list[str] = []
        for succ in index.successors[nid]:
            in_degree[succ] -= 1
            if in_degree[succ] == 0:
                ready.append(succ)
        ready.sort(key=lambda x: (by_id[x].sort_order or 0, by_id[x].start_date))
        for succ in ready:
            bisect.insort(queue, entry(succ))

    placed = set(out)
    out.extend(nid for nid in index.order if nid not in placed)
    return out
