from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, replace

from reflow_planner.core.dates import end_for
from reflow_planner.core.errors import BranchingError, MissingAnchorError, SnapshotValidationError
from reflow_planner.core.model import Dependency, Item, ItemUpdate
from reflow_planner.core.reflow.reflow import compute_reflow

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReorderResult:
    new_edges: list[Dependency]
    removed_edges: list[Dependency]
    # Full edge list after the reorder (external edges untouched).
    dependencies: list[Dependency]
    root_anchor_update: ItemUpdate
    sort_orders: dict[str, int]
    reflow_result: list[ItemUpdate]


def reorder_group_as_chain(
    group_id: str,
    ordered_item_ids: list[str],
    items: list[Item],
    dependencies: list[Dependency],
) -> ReorderResult:
    """Replace a group's internal chain with the caller's total order.

    The group's internal edges must already form a simple chain (or be
    absent). The new first item inherits the earliest start among the current
    roots so the group does not drift.
    """
    group_items = [i for i in items if i.group_id == group_id]
    by_id = {i.id: i for i in group_items}

    _validate_order(group_id, ordered_item_ids, by_id)

    internal = [d for d in dependencies if d.predecessor_id in by_id and d.successor_id in by_id]
    external = [d for d in dependencies if d not in internal]

    pred_count = Counter(d.successor_id for d in internal)
    succ_count = Counter(d.predecessor_id for d in internal)
    for nid, n in sorted(pred_count.items()):
        if n > 1:
            raise BranchingError(
                code="E_BRANCHING",
                message="cannot reorder: chain has branches (multiple predecessors)",
                path=nid,
            )
    for nid, n in sorted(succ_count.items()):
        if n > 1:
            raise BranchingError(
                code="E_BRANCHING",
                message="cannot reorder: chain has branches (multiple successors)",
                path=nid,
            )

    roots = [i for i in group_items if pred_count[i.id] == 0]
    if not roots:
        raise MissingAnchorError(
            code="E_MISSING_ANCHOR",
            message="cannot reorder: group has no root to anchor its start date",
            path=group_id,
        )
    anchor = min(r.start_date for r in roots)

    new_edges = [
        Dependency(predecessor_id=a, successor_id=b)
        for a, b in zip(ordered_item_ids, ordered_item_ids[1:])
    ]

    root_id = ordered_item_ids[0]
    root = by_id[root_id]
    root_anchor_update = ItemUpdate(
        id=root_id,
        start_date=anchor,
        end_date=end_for(anchor, root.duration),
        duration=root.duration,
    )

    reflow_items = [
        replace(i, start_date=anchor, end_date=root_anchor_update.end_date) if i.id == root_id else i
        for i in group_items
    ]
    reflow_result = [u for u in compute_reflow(reflow_items, new_edges) if u.id != root_id]

    logger.debug(
        "reordered group %s: %d edge(s) replaced by %d, anchor=%s",
        group_id,
        len(internal),
        len(new_edges),
        anchor.isoformat(),
    )
    return ReorderResult(
        new_edges=new_edges,
        removed_edges=internal,
        dependencies=external + new_edges,
        root_anchor_update=root_anchor_update,
        sort_orders={nid: idx for idx, nid in enumerate(ordered_item_ids)},
        reflow_result=reflow_result,
    )


def _validate_order(group_id: str, ordered_item_ids: list[str], by_id: dict[str, Item]) -> None:
    if not ordered_item_ids:
        raise SnapshotValidationError(
            code="E_INCOMPLETE_ORDER",
            message="ordered item list must not be empty",
            path=group_id,
        )
    for nid in ordered_item_ids:
        if nid not in by_id:
            raise SnapshotValidationError(
                code="E_UNKNOWN_ITEM",
                message=f"item {nid} not found in group {group_id}",
                path=nid,
            )
    if len(set(ordered_item_ids)) != len(ordered_item_ids):
        raise SnapshotValidationError(
            code="E_DUPLICATE_ITEM",
            message="ordered item list contains duplicates",
            path=group_id,
        )
    if len(ordered_item_ids) != len(by_id):
        raise SnapshotValidationError(
            code="E_INCOMPLETE_ORDER",
            message="ordered item list must include every item in the group",
            path=group_id,
        )
