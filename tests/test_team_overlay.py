from datetime import date

from reflow_planner.core.model import Dependency, Item, ItemOverride, TeamOverlay
from reflow_planner.core.reflow.team_overlay import (
    compute_team_overlay_reflow,
    derive_overlay_dates,
    expand_durations,
    max_overlay_durations,
    reflow_per_team,
)


def _x():
    return Item("X", date(2025, 1, 1), date(2025, 1, 3), 3, "g1")


OVERLAYS = [TeamOverlay("X", "A", 5), TeamOverlay("X", "B", 8)]


def test_parent_grows_to_longest_track():
    assert max_overlay_durations(OVERLAYS) == {"X": 8}
    items, expansions = expand_durations([_x()], OVERLAYS)

    assert items[0].duration == 8
    assert items[0].end_date == date(2025, 1, 8)
    assert expansions[0].previous_duration == 3
    assert expansions[0].duration == 8


def test_shorter_tracks_never_shrink_parent():
    items, expansions = expand_durations([_x()], [TeamOverlay("X", "A", 2)])
    assert items == [_x()]
    assert expansions == []


def test_unified_reflow_reports_expansion_and_track_dates():
    r = compute_team_overlay_reflow([_x()], [], OVERLAYS)

    assert [(u.id, u.end_date, u.duration) for u in r.updates] == [("X", date(2025, 1, 8), 8)]
    tracks = {o.team_id: (o.start_date, o.end_date) for o in r.overlay_dates}
    assert tracks == {
        "A": (date(2025, 1, 1), date(2025, 1, 5)),
        "B": (date(2025, 1, 1), date(2025, 1, 8)),
    }


def test_expansion_cascades_to_successors():
    y = Item("Y", date(2025, 1, 4), date(2025, 1, 5), 2, "g1")
    r = compute_team_overlay_reflow([_x(), y], [Dependency("X", "Y")], OVERLAYS)

    got = {u.id: (u.start_date, u.end_date) for u in r.updates}
    assert got["Y"] == (date(2025, 1, 9), date(2025, 1, 10))
    assert got["X"] == (date(2025, 1, 1), date(2025, 1, 8))


def test_cascade_entry_wins_over_expansion():
    r = compute_team_overlay_reflow(
        [_x()], [], OVERLAYS, {"X": ItemOverride(start_date=date(2025, 1, 2))}
    )
    xs = [u for u in r.updates if u.id == "X"]
    assert len(xs) == 1
    assert (xs[0].start_date, xs[0].end_date) == (date(2025, 1, 2), date(2025, 1, 9))
    assert all(o.start_date == date(2025, 1, 2) for o in r.overlay_dates)


def test_track_dates_skip_missing_parents():
    assert derive_overlay_dates([], OVERLAYS) == []


def test_each_team_gets_its_own_schedule():
    items = [
        Item("A", date(2025, 1, 1), date(2025, 1, 2), 2, "g1"),
        Item("B", date(2025, 1, 3), date(2025, 1, 4), 2, "g1"),
    ]
    overlays = [
        TeamOverlay("A", "web", 4),
        TeamOverlay("B", "web", 1),
        TeamOverlay("B", "ops", 3),
    ]
    results = reflow_per_team(items, [Dependency("A", "B")], overlays)

    assert [r.team_id for r in results] == ["web", "ops"]
    web = results[0].updates
    assert [(o.item_id, o.start_date, o.end_date) for o in web] == [
        ("B", date(2025, 1, 5), date(2025, 1, 5))
    ]
    # ops: B's track already sits right after A.
    assert results[1].updates == []


def test_team_schedule_starts_from_parent_not_stale_track():
    items = [
        Item("A", date(2025, 1, 1), date(2025, 1, 2), 2, "g1"),
        Item("B", date(2025, 1, 3), date(2025, 1, 4), 2, "g1"),
    ]
    overlays = [
        TeamOverlay("A", "web", 2, date(2025, 1, 10), date(2025, 1, 11)),
        TeamOverlay("B", "web", 2, date(2025, 1, 3), date(2025, 1, 4)),
    ]
    results = reflow_per_team(items, [Dependency("A", "B")], overlays)

    web = results[0].updates
    assert [(o.item_id, o.start_date, o.end_date) for o in web] == [
        ("A", date(2025, 1, 1), date(2025, 1, 2))
    ]
