from __future__ import annotations

import logging
from dataclasses import dataclass, replace

from reflow_planner.core.errors import SnapshotValidationError
from reflow_planner.core.graph.build_graph import build_graph
from reflow_planner.core.graph.cycles import would_create_cycle
from reflow_planner.core.model import Dependency, Item, ItemUpdate
from reflow_planner.core.reflow.reflow import compute_reflow, ensure_anchor

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MoveResult:
    moved: Item
    dropped_edges: list[Dependency]
    bridged_edges: list[Dependency]
    rejected_bridges: list[Dependency]
    # Full edge list after the move.
    dependencies: list[Dependency]
    reflow_results: dict[str, list[ItemUpdate]]


def move_item_across_groups(
    item_id: str,
    from_group: str,
    to_group: str,
    items: list[Item],
    dependencies: list[Dependency],
) -> MoveResult:
    """Detach an item from its group's chain and re-home it in another group.

    Every edge touching the item is dropped. Each former predecessor is then
    bridged to each former successor unless the bridge would close a cycle in
    the origin group's remaining graph (accepted bridges count for later
    checks). Both groups are reflowed; the moved item keeps its duration and
    enters the destination group as a root.
    """
    item = next((i for i in items if i.id == item_id), None)
    if item is None:
        raise SnapshotValidationError(
            code="E_UNKNOWN_ITEM", message=f"unknown item: {item_id}", path=item_id
        )
    if item.group_id != from_group:
        raise SnapshotValidationError(
            code="E_ITEM_NOT_IN_GROUP",
            message=f"item {item_id} belongs to group {item.group_id}, not {from_group}",
            path=item_id,
        )
    if from_group == to_group:
        raise SnapshotValidationError(
            code="E_SAME_GROUP",
            message=f"item {item_id} is already in group {to_group}",
            path=item_id,
        )

    touching = [d for d in dependencies if item_id in (d.predecessor_id, d.successor_id)]
    remaining = [d for d in dependencies if item_id not in (d.predecessor_id, d.successor_id)]

    origin_ids = {i.id for i in items if i.group_id == from_group and i.id != item_id}
    origin_edges = [
        d for d in remaining if d.predecessor_id in origin_ids or d.successor_id in origin_ids
    ]

    preds = [d.predecessor_id for d in touching if d.successor_id == item_id]
    succs = [d.successor_id for d in touching if d.predecessor_id == item_id]

    bridged: list[Dependency] = []
    rejected: list[Dependency] = []
    existing = {(d.predecessor_id, d.successor_id) for d in remaining}
    for p in preds:
        for s in succs:
            if (p, s) in existing:
                continue
            bridge = Dependency(predecessor_id=p, successor_id=s)
            if would_create_cycle(s, p, origin_edges + bridged):
                logger.debug("dropping bridge %s -> %s: would create a cycle", p, s)
                rejected.append(bridge)
                continue
            bridged.append(bridge)
            existing.add((p, s))

    new_deps = remaining + bridged
    moved = replace(item, group_id=to_group)
    new_items = [moved if i.id == item_id else i for i in items]

    groups = {
        from_group: [i for i in new_items if i.group_id == from_group],
        to_group: [i for i in new_items if i.group_id == to_group],
    }
    for gid, group_items in groups.items():
        ensure_anchor(build_graph(group_items, new_deps), gid)

    reflow_results = {gid: compute_reflow(gi, new_deps) for gid, gi in groups.items()}

    logger.debug(
        "moved %s %s -> %s: dropped=%d bridged=%d rejected=%d",
        item_id,
        from_group,
        to_group,
        len(touching),
        len(bridged),
        len(rejected),
    )
    return MoveResult(
        moved=moved,
        dropped_edges=touching,
        bridged_edges=bridged,
        rejected_bridges=rejected,
        dependencies=new_deps,
        reflow_results=reflow_results,
    )
