import logging
from datetime import date

from reflow_planner.core.model import Dependency, Item, ItemOverride
from reflow_planner.core.reflow.reflow import compute_reflow, merge_updates


def _item(nid, start, duration, end=None, group="g1"):
    end = end or date.fromordinal(start.toordinal() + duration - 1)
    return Item(id=nid, start_date=start, end_date=end, duration=duration, group_id=group)


def _dep(a, b):
    return Dependency(predecessor_id=a, successor_id=b)


def test_successor_starts_day_after_predecessor_ends():
    items = [_item("X", date(2025, 1, 1), 3), _item("Y", date(2025, 1, 1), 5)]
    updates = compute_reflow(items, [_dep("X", "Y")])

    assert len(updates) == 1
    assert updates[0].id == "Y"
    assert updates[0].start_date == date(2025, 1, 4)
    assert updates[0].end_date == date(2025, 1, 8)
    assert updates[0].duration == 5


def test_chain_cascades_in_dependency_order():
    items = [_item(n, date(2025, 1, 1), 2) for n in ("A", "B", "C")]
    updates = compute_reflow(items, [_dep("A", "B"), _dep("B", "C")])

    got = {u.id: (u.start_date, u.end_date) for u in updates}
    assert "A" not in got
    assert got["B"] == (date(2025, 1, 3), date(2025, 1, 4))
    assert got["C"] == (date(2025, 1, 5), date(2025, 1, 6))
    assert [u.id for u in updates] == ["B", "C"]


def test_latest_predecessor_wins():
    items = [
        _item("P1", date(2025, 1, 1), 2),
        _item("P2", date(2025, 1, 1), 5),
        _item("S", date(2025, 1, 1), 1),
    ]
    updates = compute_reflow(items, [_dep("P1", "S"), _dep("P2", "S")])
    assert [(u.id, u.start_date) for u in updates] == [("S", date(2025, 1, 6))]


def test_second_pass_is_empty_and_leaves_no_gaps():
    items = [
        _item("A", date(2025, 3, 1), 4),
        _item("B", date(2025, 1, 1), 2),
        _item("C", date(2025, 1, 1), 3),
        _item("D", date(2025, 1, 1), 1),
    ]
    deps = [_dep("A", "B"), _dep("A", "C"), _dep("B", "D"), _dep("C", "D")]

    merged = merge_updates(items, compute_reflow(items, deps))
    assert compute_reflow(merged, deps) == []

    by_id = {i.id: i for i in merged}
    for d in deps:
        p, s = by_id[d.predecessor_id], by_id[d.successor_id]
        assert s.start_date.toordinal() >= p.end_date.toordinal() + 1
    assert by_id["D"].start_date == date(2025, 3, 8)
    for i in merged:
        assert i.end_date.toordinal() == i.start_date.toordinal() + i.duration - 1


def test_roots_keep_start_and_only_repair_end():
    stale = _item("R", date(2025, 1, 10), 3, end=date(2025, 1, 20))
    updates = compute_reflow([stale], [])
    assert len(updates) == 1
    assert updates[0].start_date == date(2025, 1, 10)
    assert updates[0].end_date == date(2025, 1, 12)


def test_disconnected_consistent_items_never_reported():
    items = [_item("A", date(2025, 1, 1), 2), _item("B", date(2025, 6, 1), 9)]
    assert compute_reflow(items, []) == []


def test_override_moves_root_and_cascades():
    items = [_item("A", date(2025, 1, 1), 2), _item("B", date(2025, 1, 3), 2)]
    updates = compute_reflow(
        items, [_dep("A", "B")], {"A": ItemOverride(start_date=date(2025, 1, 10))}
    )
    got = {u.id: (u.start_date, u.end_date) for u in updates}
    assert got["A"] == (date(2025, 1, 10), date(2025, 1, 11))
    assert got["B"] == (date(2025, 1, 12), date(2025, 1, 13))


def test_override_duration_changes_end_of_root():
    items = [_item("A", date(2025, 1, 1), 2), _item("B", date(2025, 1, 3), 2)]
    updates = compute_reflow(items, [_dep("A", "B")], {"A": ItemOverride(duration=5)})
    got = {u.id: u for u in updates}
    assert got["A"].end_date == date(2025, 1, 5)
    assert got["A"].duration == 5
    assert got["B"].start_date == date(2025, 1, 6)


def test_dangling_edges_are_ignored():
    items = [_item("A", date(2025, 1, 1), 2)]
    assert compute_reflow(items, [_dep("GHOST", "A"), _dep("A", "GONE")]) == []


def test_cycle_members_are_left_in_place(caplog):
    items = [
        _item("A", date(2025, 1, 1), 1),
        _item("B", date(2025, 1, 5), 1),
        _item("C", date(2025, 1, 1), 1),
    ]
    with caplog.at_level(logging.WARNING):
        updates = compute_reflow(items, [_dep("A", "B"), _dep("B", "A")])
    assert updates == []
    assert "cycle" in caplog.text


def test_input_items_are_not_mutated():
    items = [_item("A", date(2025, 1, 1), 2), _item("B", date(2025, 1, 1), 2)]
    before = list(items)
    compute_reflow(items, [_dep("A", "B")])
    assert items == before
