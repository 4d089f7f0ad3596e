from __future__ import annotations

from dataclasses import replace
from typing import Iterable, Protocol

from reflow_planner.core.model import (
    Dependency,
    Item,
    ItemUpdate,
    OverlayDates,
    Snapshot,
    TeamOverlay,
)


class ScheduleStore(Protocol):
    """Persistence boundary. Callers serialize writes per group."""

    def load_items(self, group_id: str) -> list[Item]: ...

    def load_dependencies(self, item_ids: Iterable[str]) -> list[Dependency]: ...

    def load_overlays(self, item_ids: Iterable[str]) -> list[TeamOverlay]: ...

    def apply_updates(self, updates: Iterable[ItemUpdate]) -> None: ...

    def apply_overlay_dates(self, dates: Iterable[OverlayDates]) -> None: ...

    def replace_dependencies(
        self, removed: Iterable[Dependency], added: Iterable[Dependency]
    ) -> None: ...

    def set_group(self, item_id: str, group_id: str) -> None: ...

    def set_sort_orders(self, sort_orders: dict[str, int]) -> None: ...

    def upsert_overlay(self, overlay: TeamOverlay) -> None: ...

    def delete_overlay(self, item_id: str, team_id: str) -> None: ...

    def find_item(self, item_id: str) -> Item | None: ...


class InMemoryStore:
    """Dict-backed ScheduleStore, seeded from (and exportable to) a Snapshot."""

    def __init__(self, snapshot: Snapshot) -> None:
        self.schema_version = snapshot.schema_version
        self._items: dict[str, Item] = {i.id: i for i in snapshot.items}
        self._deps: list[Dependency] = list(snapshot.dependencies)
        self._overlays: dict[tuple[str, str], TeamOverlay] = {
            (o.item_id, o.team_id): o for o in snapshot.overlays
        }

    def load_items(self, group_id: str) -> list[Item]:
        return [i for i in self._items.values() if i.group_id == group_id]

    def load_dependencies(self, item_ids: Iterable[str]) -> list[Dependency]:
        ids = set(item_ids)
        return [d for d in self._deps if d.predecessor_id in ids or d.successor_id in ids]

    def load_overlays(self, item_ids: Iterable[str]) -> list[TeamOverlay]:
        ids = set(item_ids)
        return [o for o in self._overlays.values() if o.item_id in ids]

    def apply_updates(self, updates: Iterable[ItemUpdate]) -> None:
        for u in updates:
            cur = self._items[u.id]
            self._items[u.id] = replace(
                cur, start_date=u.start_date, end_date=u.end_date, duration=u.duration
            )

    def apply_overlay_dates(self, dates: Iterable[OverlayDates]) -> None:
        for d in dates:
            key = (d.item_id, d.team_id)
            cur = self._overlays.get(key)
            if cur is not None:
                self._overlays[key] = replace(cur, start_date=d.start_date, end_date=d.end_date)

    def replace_dependencies(
        self, removed: Iterable[Dependency], added: Iterable[Dependency]
    ) -> None:
        drop = set(removed)
        self._deps = [d for d in self._deps if d not in drop]
        for d in added:
            if d not in self._deps:
                self._deps.append(d)

    def set_group(self, item_id: str, group_id: str) -> None:
        self._items[item_id] = replace(self._items[item_id], group_id=group_id)

    def set_sort_orders(self, sort_orders: dict[str, int]) -> None:
        for nid, order in sort_orders.items():
            self._items[nid] = replace(self._items[nid], sort_order=order)

    def upsert_overlay(self, overlay: TeamOverlay) -> None:
        self._overlays[(overlay.item_id, overlay.team_id)] = overlay

    def delete_overlay(self, item_id: str, team_id: str) -> None:
        self._overlays.pop((item_id, team_id), None)

    def find_item(self, item_id: str) -> Item | None:
        return self._items.get(item_id)

    def to_snapshot(self) -> Snapshot:
        return Snapshot(
            schema_version=self.schema_version,
            items=list(self._items.values()),
            dependencies=list(self._deps),
            overlays=list(self._overlays.values()),
        )
