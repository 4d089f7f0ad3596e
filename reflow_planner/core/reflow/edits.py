from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from typing import Iterable, Optional

from reflow_planner.core.dates import duration_between, end_for
from reflow_planner.core.errors import SnapshotValidationError
from reflow_planner.core.model import Dependency, Item, ItemOverride, ItemUpdate
from reflow_planner.core.reflow.reflow import compute_reflow

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ItemEdit:
    """A caller's change request for one item; any subset of fields may be set."""

    id: str
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    duration: Optional[int] = None


@dataclass(frozen=True)
class ItemEditResult:
    edited: list[ItemUpdate]
    cascaded: list[ItemUpdate]


def resolve_item_edit(item: Item, edit: ItemEdit) -> ItemOverride:
    """Duration-first date logic.

    1. duration given: keep it; start = given or existing; end derived.
    2. start and end given: duration = end - start + 1 (at least 1).
    3. end only: start unchanged; duration derived.
    4. start only: duration unchanged; end derived.
    """
    if edit.duration is not None:
        if edit.duration < 1:
            raise SnapshotValidationError(
                code="E_INVALID_DURATION",
                message=f"duration must be >= 1, got {edit.duration}",
                path=f"{item.id}.duration",
            )
        start = edit.start_date if edit.start_date is not None else item.start_date
        return ItemOverride(
            start_date=start, end_date=end_for(start, edit.duration), duration=edit.duration
        )

    if edit.start_date is not None and edit.end_date is not None:
        return ItemOverride(
            start_date=edit.start_date,
            end_date=edit.end_date,
            duration=duration_between(edit.start_date, edit.end_date),
        )

    if edit.end_date is not None:
        return ItemOverride(
            end_date=edit.end_date, duration=duration_between(item.start_date, edit.end_date)
        )

    if edit.start_date is not None:
        return ItemOverride(
            start_date=edit.start_date,
            end_date=end_for(edit.start_date, item.duration),
            duration=item.duration,
        )

    return ItemOverride()


def compute_bulk_edit(
    items: list[Item],
    dependencies: list[Dependency],
    edits: Iterable[ItemEdit],
) -> ItemEditResult:
    """Resolve several edits into one override map and reflow once.

    ``edited`` holds the final dates of every edited item, ``cascaded`` the
    other items that moved as a consequence.
    """
    by_id = {i.id: i for i in items}
    overrides: dict[str, ItemOverride] = {}
    for edit in edits:
        item = by_id.get(edit.id)
        if item is None:
            raise SnapshotValidationError(
                code="E_UNKNOWN_ITEM",
                message=f"edit references unknown item: {edit.id}",
                path=edit.id,
            )
        overrides[edit.id] = resolve_item_edit(item, edit)

    updates = compute_reflow(items, dependencies, overrides)
    changed = {u.id: u for u in updates}

    edited: list[ItemUpdate] = []
    for nid in overrides:
        edited.append(changed.get(nid) or _final_state(by_id[nid], overrides[nid]))
    cascaded = [u for u in updates if u.id not in overrides]

    logger.debug("bulk edit: %d edited, %d cascaded", len(edited), len(cascaded))
    return ItemEditResult(edited=edited, cascaded=cascaded)


def compute_item_edit(
    items: list[Item],
    dependencies: list[Dependency],
    edit: ItemEdit,
) -> ItemEditResult:
    return compute_bulk_edit(items, dependencies, [edit])


def compute_item_removal(
    items: list[Item],
    dependencies: list[Dependency],
    item_id: str,
) -> tuple[list[Dependency], list[ItemUpdate]]:
    """Drop ``item_id`` and every edge touching it; reflow what remains.

    Returns (removed edges, updates).
    """
    if not any(i.id == item_id for i in items):
        raise SnapshotValidationError(
            code="E_UNKNOWN_ITEM",
            message=f"unknown item: {item_id}",
            path=item_id,
        )
    removed = [d for d in dependencies if item_id in (d.predecessor_id, d.successor_id)]
    remaining_deps = [d for d in dependencies if d not in removed]
    remaining_items = [i for i in items if i.id != item_id]
    return removed, compute_reflow(remaining_items, remaining_deps)


def _final_state(item: Item, override: ItemOverride) -> ItemUpdate:
    # Reflow left the dates where they were; only the duration may differ.
    return ItemUpdate(
        id=item.id,
        start_date=item.start_date,
        end_date=item.end_date,
        duration=override.duration if override.duration is not None else item.duration,
    )
