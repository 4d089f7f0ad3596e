"""Team duration overlays.

A parent item is the union of every team's effort on it, so it must be at
least as long as the longest team track. Team tracks always start with the
parent; only their length differs.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Iterable, Mapping, Optional

from reflow_planner.core.dates import end_for
from reflow_planner.core.model import (
    Dependency,
    DurationExpansion,
    Item,
    ItemOverride,
    ItemUpdate,
    OverlayDates,
    TeamOverlay,
)
from reflow_planner.core.reflow.reflow import compute_reflow, merge_updates

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TeamOverlayReflowResult:
    expansions: list[DurationExpansion]
    # Expansions and cascades merged, one entry per item; cascades win.
    updates: list[ItemUpdate]
    overlay_dates: list[OverlayDates]


@dataclass(frozen=True)
class TeamReflowResult:
    team_id: str
    updates: list[OverlayDates]


def max_overlay_durations(overlays: Iterable[TeamOverlay]) -> dict[str, int]:
    out: dict[str, int] = {}
    for ov in overlays:
        if ov.duration > out.get(ov.item_id, 0):
            out[ov.item_id] = ov.duration
    return out


def expand_durations(
    items: Iterable[Item], overlays: Iterable[TeamOverlay]
) -> tuple[list[Item], list[DurationExpansion]]:
    """Grow each item to its longest team track, keeping its existing start date."""
    longest = max_overlay_durations(overlays)
    out: list[Item] = []
    expansions: list[DurationExpansion] = []
    for item in items:
        target = longest.get(item.id, 0)
        if target <= item.duration:
            out.append(item)
            continue
        expanded = replace(item, duration=target, end_date=end_for(item.start_date, target))
        out.append(expanded)
        expansions.append(
            DurationExpansion(
                id=item.id,
                previous_duration=item.duration,
                duration=target,
                start_date=expanded.start_date,
                end_date=expanded.end_date,
            )
        )
    return out, expansions


def derive_overlay_dates(
    items: Iterable[Item], overlays: Iterable[TeamOverlay]
) -> list[OverlayDates]:
    """Project each overlay onto its parent's (final) start date. Never touches items."""
    start_by_id = {i.id: i.start_date for i in items}
    out: list[OverlayDates] = []
    for ov in overlays:
        start = start_by_id.get(ov.item_id)
        if start is None:
            logger.debug("overlay %s/%s has no parent in snapshot", ov.item_id, ov.team_id)
            continue
        out.append(
            OverlayDates(
                item_id=ov.item_id,
                team_id=ov.team_id,
                start_date=start,
                end_date=end_for(start, ov.duration),
                duration=ov.duration,
            )
        )
    return out


def compute_team_overlay_reflow(
    items: list[Item],
    dependencies: list[Dependency],
    overlays: list[TeamOverlay],
    overrides: Optional[Mapping[str, ItemOverride]] = None,
) -> TeamOverlayReflowResult:
    """Expand parents to their longest team track, reflow once, derive track dates."""
    original = {i.id: i for i in items}

    expanded, expansions = expand_durations(items, overlays)
    cascade = compute_reflow(expanded, dependencies, overrides)

    final: dict[str, Item] = {i.id: i for i in expanded}
    for u in cascade:
        final[u.id] = replace(
            final[u.id], start_date=u.start_date, end_date=u.end_date, duration=u.duration
        )

    updates: list[ItemUpdate] = list(cascade)
    seen = {u.id for u in cascade}
    for exp in expansions:
        if exp.id in seen:
            continue
        after = final[exp.id]
        before = original[exp.id]
        if (after.start_date, after.end_date, after.duration) != (
            before.start_date,
            before.end_date,
            before.duration,
        ):
            updates.append(
                ItemUpdate(
                    id=exp.id,
                    start_date=after.start_date,
                    end_date=after.end_date,
                    duration=after.duration,
                )
            )
            seen.add(exp.id)

    overlay_dates = derive_overlay_dates(final.values(), overlays)
    logger.debug(
        "team overlay reflow: %d expansion(s), %d update(s), %d track(s)",
        len(expansions),
        len(updates),
        len(overlay_dates),
    )
    return TeamOverlayReflowResult(
        expansions=expansions, updates=updates, overlay_dates=overlay_dates
    )


def reflow_per_team(
    items: list[Item],
    dependencies: list[Dependency],
    overlays: list[TeamOverlay],
) -> list[TeamReflowResult]:
    """Independent schedule per team.

    For each team, every item takes that team's overlay duration (or its own
    duration where the team has no overlay), keeps the parent's start, and the
    group is reflowed with the same edges. Only the team's own tracks are
    reported, in item order, and only those whose computed dates differ from
    their last persisted (or derived) dates.
    """
    by_team: dict[str, dict[str, TeamOverlay]] = {}
    for ov in overlays:
        by_team.setdefault(ov.team_id, {})[ov.item_id] = ov

    results: list[TeamReflowResult] = []
    for team_id, tracks in by_team.items():
        team_items: list[Item] = []
        for item in items:
            ov = tracks.get(item.id)
            if ov is None:
                team_items.append(item)
            else:
                team_items.append(
                    replace(
                        item,
                        duration=ov.duration,
                        end_date=end_for(item.start_date, ov.duration),
                    )
                )
        final = merge_updates(team_items, compute_reflow(team_items, dependencies))

        updates: list[OverlayDates] = []
        for item, after in zip(items, final):
            ov = tracks.get(item.id)
            if ov is None:
                continue
            before_start = ov.start_date or item.start_date
            before_end = ov.end_date or end_for(before_start, ov.duration)
            if (after.start_date, after.end_date) == (before_start, before_end):
                continue
            updates.append(
                OverlayDates(
                    item_id=item.id,
                    team_id=team_id,
                    start_date=after.start_date,
                    end_date=after.end_date,
                    duration=ov.duration,
                )
            )
        results.append(TeamReflowResult(team_id=team_id, updates=updates))
    return results
