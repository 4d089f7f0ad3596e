from datetime import date

from reflow_planner.core.errors import SnapshotValidationError
from reflow_planner.core.model import Dependency, Item
from reflow_planner.core.reflow.edits import (
    ItemEdit,
    compute_bulk_edit,
    compute_item_edit,
    compute_item_removal,
    resolve_item_edit,
)


def _chain():
    items = [
        Item("A", date(2025, 1, 1), date(2025, 1, 2), 2, "g1"),
        Item("B", date(2025, 1, 3), date(2025, 1, 4), 2, "g1"),
        Item("C", date(2025, 1, 5), date(2025, 1, 6), 2, "g1"),
    ]
    deps = [Dependency("A", "B"), Dependency("B", "C")]
    return items, deps


def _dates(u):
    return (u.start_date, u.end_date, u.duration)


def test_duration_edit_keeps_start_and_cascades():
    items, deps = _chain()
    r = compute_item_edit(items, deps, ItemEdit(id="A", duration=4))

    assert [_dates(u) for u in r.edited] == [(date(2025, 1, 1), date(2025, 1, 4), 4)]
    assert [(u.id, u.start_date) for u in r.cascaded] == [
        ("B", date(2025, 1, 5)),
        ("C", date(2025, 1, 7)),
    ]


def test_end_only_edit_derives_duration():
    items, deps = _chain()
    r = compute_item_edit(items, deps, ItemEdit(id="A", end_date=date(2025, 1, 3)))
    assert _dates(r.edited[0]) == (date(2025, 1, 1), date(2025, 1, 3), 3)
    assert r.cascaded[0].start_date == date(2025, 1, 4)


def test_start_and_end_edit_derives_duration():
    items, deps = _chain()
    r = compute_item_edit(
        items, deps, ItemEdit(id="A", start_date=date(2025, 1, 5), end_date=date(2025, 1, 7))
    )
    assert _dates(r.edited[0]) == (date(2025, 1, 5), date(2025, 1, 7), 3)
    assert r.cascaded[0].start_date == date(2025, 1, 8)


def test_start_only_edit_keeps_duration():
    items, deps = _chain()
    r = compute_item_edit(items, deps, ItemEdit(id="A", start_date=date(2025, 1, 10)))
    assert _dates(r.edited[0]) == (date(2025, 1, 10), date(2025, 1, 11), 2)
    assert r.cascaded[-1].end_date == date(2025, 1, 15)


def test_start_edit_on_successor_is_overruled_by_predecessor():
    items, deps = _chain()
    r = compute_item_edit(items, deps, ItemEdit(id="B", start_date=date(2025, 1, 20)))
    assert _dates(r.edited[0]) == (date(2025, 1, 3), date(2025, 1, 4), 2)
    assert r.cascaded == []


def test_inverted_range_clamps_to_one_day():
    item = Item("A", date(2025, 1, 1), date(2025, 1, 2), 2, "g1")
    ov = resolve_item_edit(item, ItemEdit(id="A", start_date=date(2025, 1, 9), end_date=date(2025, 1, 3)))
    assert ov.duration == 1


def test_invalid_duration_is_rejected():
    items, deps = _chain()
    try:
        compute_item_edit(items, deps, ItemEdit(id="A", duration=0))
        assert False, "expected SnapshotValidationError"
    except SnapshotValidationError as e:
        assert e.code == "E_INVALID_DURATION"


def test_bulk_edit_reflows_once():
    items, deps = _chain()
    r = compute_bulk_edit(
        items,
        deps,
        [ItemEdit(id="A", duration=3), ItemEdit(id="C", duration=1)],
    )
    assert [u.id for u in r.edited] == ["A", "C"]
    edited = {u.id: u for u in r.edited}
    assert _dates(edited["C"]) == (date(2025, 1, 6), date(2025, 1, 6), 1)
    assert [u.id for u in r.cascaded] == ["B"]


def test_bulk_edit_unknown_item():
    items, deps = _chain()
    try:
        compute_bulk_edit(items, deps, [ItemEdit(id="NOPE", duration=2)])
        assert False, "expected SnapshotValidationError"
    except SnapshotValidationError as e:
        assert e.code == "E_UNKNOWN_ITEM"


def test_removal_drops_touching_edges():
    items, deps = _chain()
    removed, updates = compute_item_removal(items, deps, "B")
    assert removed == deps
    # C becomes a root and keeps its own start.
    assert updates == []
