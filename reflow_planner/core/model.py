from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import Optional


@dataclass(frozen=True)
class Item:
    """A schedulable unit. ``end_date == start_date + duration - 1`` once reflowed."""

    id: str
    start_date: date
    end_date: date
    duration: int
    group_id: Optional[str] = None
    sort_order: Optional[int] = None


@dataclass(frozen=True)
class Dependency:
    """Finish-to-start edge: the successor cannot start before the predecessor finishes."""

    predecessor_id: str
    successor_id: str


@dataclass(frozen=True)
class TeamOverlay:
    item_id: str
    team_id: str
    duration: int

    # Last persisted derived dates; None until first derivation.
    start_date: Optional[date] = None
    end_date: Optional[date] = None


@dataclass(frozen=True)
class ItemOverride:
    """Partial replacement applied to an item's working copy before reflow."""

    start_date: Optional[date] = None
    end_date: Optional[date] = None
    duration: Optional[int] = None


@dataclass(frozen=True)
class ItemUpdate:
    id: str
    start_date: date
    end_date: date
    duration: int


@dataclass(frozen=True)
class DurationExpansion:
    id: str
    previous_duration: int
    duration: int
    start_date: date
    end_date: date


@dataclass(frozen=True)
class OverlayDates:
    item_id: str
    team_id: str
    start_date: date
    end_date: date
    duration: int


@dataclass(frozen=True)
class Snapshot:
    schema_version: str
    items: list[Item]
    dependencies: list[Dependency]
    overlays: list[TeamOverlay] = field(default_factory=list)

    def group_ids(self) -> list[str]:
        seen: list[str] = []
        for item in self.items:
            if item.group_id is not None and item.group_id not in seen:
                seen.append(item.group_id)
        return seen
