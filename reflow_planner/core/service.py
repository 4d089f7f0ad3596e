from __future__ import annotations

import logging
import threading
from contextlib import ExitStack, contextmanager
from dataclasses import replace
from typing import Iterator, Mapping, Optional

from reflow_planner.core.dates import end_for
from reflow_planner.core.errors import SnapshotValidationError
from reflow_planner.core.graph.cycles import check_new_dependency
from reflow_planner.core.model import Dependency, Item, ItemOverride, TeamOverlay
from reflow_planner.core.mutate.move import MoveResult, move_item_across_groups
from reflow_planner.core.mutate.reorder import ReorderResult, reorder_group_as_chain
from reflow_planner.core.order.topo_sort import topological_order
from reflow_planner.core.reflow.edits import ItemEdit, ItemEditResult, resolve_item_edit
from reflow_planner.core.reflow.team_overlay import (
    TeamOverlayReflowResult,
    TeamReflowResult,
    compute_team_overlay_reflow,
    reflow_per_team,
)
from reflow_planner.core.store.store import ScheduleStore

logger = logging.getLogger(__name__)


class ReflowService:
    """Load -> compute -> persist cycles over a ScheduleStore.

    Every mutating call holds the lock of each group it touches for the whole
    cycle, so two edits to one group never work from diverging snapshots.
    Read-only calls take no lock.
    Locks are created on first use and kept for the service's lifetime.
    """

    def __init__(self, store: ScheduleStore) -> None:
        self.store = store
        self._guard = threading.Lock()
        self._locks: dict[str, threading.Lock] = {}

    @contextmanager
    def _locked(self, *group_ids: str) -> Iterator[None]:
        with self._guard:
            locks = [self._locks.setdefault(g, threading.Lock()) for g in sorted(set(group_ids))]
        with ExitStack() as stack:
            for lock in locks:
                stack.enter_context(lock)
            yield

    def reflow_group(
        self,
        group_id: str,
        overrides: Optional[Mapping[str, ItemOverride]] = None,
        skip_ids: Optional[set[str]] = None,
    ) -> TeamOverlayReflowResult:
        with self._locked(group_id):
            return self._reflow_locked(group_id, overrides, skip_ids)

    def add_dependency(self, predecessor_id: str, successor_id: str) -> TeamOverlayReflowResult:
        group_id = self._require_item(predecessor_id).group_id
        other_group = self._require_item(successor_id).group_id
        with self._locked(group_id, other_group):
            items = self.store.load_items(group_id)
            if other_group != group_id:
                items += self.store.load_items(other_group)
            deps = self.store.load_dependencies([i.id for i in items])
            dep = check_new_dependency(items, deps, predecessor_id, successor_id)
            self.store.replace_dependencies([], [dep])
            logger.info("added dependency %s -> %s", predecessor_id, successor_id)
            return self._reflow_locked(group_id)

    def remove_dependency(self, predecessor_id: str, successor_id: str) -> TeamOverlayReflowResult:
        group_id = self._require_item(predecessor_id).group_id
        with self._locked(group_id):
            dep = Dependency(predecessor_id=predecessor_id, successor_id=successor_id)
            if dep not in self.store.load_dependencies([predecessor_id]):
                raise SnapshotValidationError(
                    code="E_UNKNOWN_DEPENDENCY",
                    message="dependency does not exist",
                    path=f"{predecessor_id}->{successor_id}",
                )
            self.store.replace_dependencies([dep], [])
            logger.info("removed dependency %s -> %s", predecessor_id, successor_id)
            return self._reflow_locked(group_id)

    def edit_item(self, edit: ItemEdit) -> ItemEditResult:
        group_id = self._require_item(edit.id).group_id
        with self._locked(group_id):
            item = self._require_item(edit.id)
            override = resolve_item_edit(item, edit)
            result = self._reflow_locked(group_id, {edit.id: override})
        return ItemEditResult(
            edited=[u for u in result.updates if u.id == edit.id],
            cascaded=[u for u in result.updates if u.id != edit.id],
        )

    def move_item(self, item_id: str, to_group: str) -> MoveResult:
        from_group = self._require_item(item_id).group_id
        with self._locked(from_group, to_group):
            items = self.store.load_items(from_group) + self.store.load_items(to_group)
            deps = self.store.load_dependencies([i.id for i in items])
            result = move_item_across_groups(item_id, from_group, to_group, items, deps)

            self.store.replace_dependencies(result.dropped_edges, result.bridged_edges)
            self.store.set_group(item_id, to_group)
            logger.info(
                "moved %s from %s to %s (bridged %d)",
                item_id,
                from_group,
                to_group,
                len(result.bridged_edges),
            )
            reflows = {g: self._reflow_locked(g).updates for g in (from_group, to_group)}
        return replace(result, reflow_results=reflows)

    def reorder_group(self, group_id: str, ordered_item_ids: list[str]) -> ReorderResult:
        with self._locked(group_id):
            items = self.store.load_items(group_id)
            deps = self.store.load_dependencies([i.id for i in items])
            result = reorder_group_as_chain(group_id, ordered_item_ids, items, deps)

            self.store.set_sort_orders(result.sort_orders)
            self.store.replace_dependencies(result.removed_edges, result.new_edges)
            self.store.apply_updates([result.root_anchor_update])
            logger.info("reordered group %s (%d items)", group_id, len(ordered_item_ids))
            unified = self._reflow_locked(group_id, skip_ids={result.root_anchor_update.id})
        return replace(result, reflow_result=unified.updates)

    def set_team_duration(self, item_id: str, team_id: str, duration: int) -> list[TeamReflowResult]:
        if duration < 1:
            raise SnapshotValidationError(
                code="E_INVALID_DURATION",
                message=f"team duration must be >= 1, got {duration}",
                path=f"{item_id}.{team_id}",
            )
        group_id = self._require_item(item_id).group_id
        with self._locked(group_id):
            item = self._require_item(item_id)
            self.store.upsert_overlay(
                TeamOverlay(
                    item_id=item_id,
                    team_id=team_id,
                    duration=duration,
                    start_date=item.start_date,
                    end_date=end_for(item.start_date, duration),
                )
            )
            return self._team_reflow_locked(group_id)

    def remove_team_duration(self, item_id: str, team_id: str) -> list[TeamReflowResult]:
        group_id = self._require_item(item_id).group_id
        with self._locked(group_id):
            self.store.delete_overlay(item_id, team_id)
            return self._team_reflow_locked(group_id)

    def order_group(self, group_id: str) -> list[str]:
        items = self.store.load_items(group_id)
        return topological_order(items, self.store.load_dependencies([i.id for i in items]))

    def _reflow_locked(
        self,
        group_id: str,
        overrides: Optional[Mapping[str, ItemOverride]] = None,
        skip_ids: Optional[set[str]] = None,
    ) -> TeamOverlayReflowResult:
        items = self.store.load_items(group_id)
        ids = [i.id for i in items]
        result = compute_team_overlay_reflow(
            items,
            self.store.load_dependencies(ids),
            self.store.load_overlays(ids),
            overrides,
        )
        self.store.apply_updates(u for u in result.updates if u.id not in (skip_ids or set()))
        self.store.apply_overlay_dates(result.overlay_dates)
        logger.info("reflowed group %s: %d update(s)", group_id, len(result.updates))
        return result

    def _team_reflow_locked(self, group_id: str) -> list[TeamReflowResult]:
        items = self.store.load_items(group_id)
        ids = [i.id for i in items]
        results = reflow_per_team(
            items, self.store.load_dependencies(ids), self.store.load_overlays(ids)
        )
        for r in results:
            self.store.apply_overlay_dates(r.updates)
        return results

    def _require_item(self, item_id: str) -> Item:
        item = self.store.find_item(item_id)
        if item is None or item.group_id is None:
            raise SnapshotValidationError(
                code="E_UNKNOWN_ITEM", message=f"unknown item: {item_id}", path=item_id
            )
        return item
