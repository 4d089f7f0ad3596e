from __future__ import annotations

import logging
from collections import deque
from dataclasses import replace
from typing import Iterable, Mapping, Optional

from reflow_planner.core.dates import add_days, end_for
from reflow_planner.core.errors import MissingAnchorError
from reflow_planner.core.graph.build_graph import GraphIndex, build_graph
from reflow_planner.core.model import Dependency, Item, ItemOverride, ItemUpdate

logger = logging.getLogger(__name__)


def compute_reflow(
    items: Iterable[Item],
    dependencies: Iterable[Dependency],
    overrides: Optional[Mapping[str, ItemOverride]] = None,
) -> list[ItemUpdate]:
    """Tight finish-to-start reflow of one group.

    - Roots (no predecessors) keep their start date; end = start + duration - 1.
    - Chained items start the day after the latest predecessor end.

    Processes items in Kahn order. Returns only items whose start or end
    differs from the value passed in (before overrides).
    """
    original: dict[str, Item] = {}
    working: dict[str, Item] = {}
    for item in items:
        original[item.id] = item
        working[item.id] = _apply_override(item, (overrides or {}).get(item.id))

    index = build_graph(working.values(), dependencies)
    in_degree = dict(index.in_degree)

    q: deque[str] = deque(index.roots())
    visited: list[str] = []
    while q:
        nid = q.popleft()
        visited.append(nid)
        cur = working[nid]

        preds = index.predecessors[nid]
        if preds:
            new_start = add_days(max(working[p].end_date for p in preds), 1)
        else:
            new_start = cur.start_date
        working[nid] = replace(cur, start_date=new_start, end_date=end_for(new_start, cur.duration))

        for succ in index.successors[nid]:
            in_degree[succ] -= 1
            if in_degree[succ] == 0:
                q.append(succ)

    if len(visited) < len(index.order):
        logger.warning(
            "reflow left %d item(s) in place: dependency cycle among them",
            len(index.order) - len(visited),
        )

    updates = _diff(original, working, visited)
    logger.debug("reflow: %d item(s), %d changed", len(index.order), len(updates))
    return updates


def merge_updates(items: Iterable[Item], updates: Iterable[ItemUpdate]) -> list[Item]:
    """Return ``items`` with ``updates`` folded in (order preserved)."""
    by_id = {u.id: u for u in updates}
    out: list[Item] = []
    for item in items:
        u = by_id.get(item.id)
        if u is None:
            out.append(item)
        else:
            out.append(
                replace(item, start_date=u.start_date, end_date=u.end_date, duration=u.duration)
            )
    return out


def ensure_anchor(index: GraphIndex, group_id: Optional[str] = None) -> list[str]:
    """Return the roots of a non-empty group or raise MissingAnchorError."""
    roots = index.roots()
    if index.order and not roots:
        raise MissingAnchorError(
            code="E_MISSING_ANCHOR",
            message="group has items but no root to anchor its start date",
            path=group_id,
        )
    return roots


def _apply_override(item: Item, override: Optional[ItemOverride]) -> Item:
    if override is None:
        return item
    return replace(
        item,
        start_date=override.start_date if override.start_date is not None else item.start_date,
        end_date=override.end_date if override.end_date is not None else item.end_date,
        duration=override.duration if override.duration is not None else item.duration,
    )


def _diff(original: dict[str, Item], working: dict[str, Item], order: list[str]) -> list[ItemUpdate]:
    out: list[ItemUpdate] = []
    for nid in order:
        before = original[nid]
        after = working[nid]
        if after.start_date != before.start_date or after.end_date != before.end_date:
            out.append(
                ItemUpdate(
                    id=nid,
                    start_date=after.start_date,
                    end_date=after.end_date,
                    duration=after.duration,
                )
            )
    return out
