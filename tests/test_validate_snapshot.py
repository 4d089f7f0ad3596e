from datetime import date

from reflow_planner.core.io.load_snapshot import load_snapshot_file
from reflow_planner.core.validate.validate_snapshot import summarize_snapshot, validate_snapshot


def _raw(items, dependencies=None, overlays=None):
    return {
        "schema_version": "0.1.0",
        "items": items,
        "dependencies": dependencies or [],
        "overlays": overlays or [],
        "__file__": "mem.yaml",
    }


def _it(nid, group="g1", **kw):
    d = {"id": nid, "group_id": group, "start_date": "2025-01-01", "duration": 1}
    d.update(kw)
    return d


def _codes(errors):
    return {e.code for e in errors}


def test_valid_example_snapshot():
    snap, errors = validate_snapshot(load_snapshot_file("examples/basic-schedule.yaml"))
    assert errors == []
    assert snap is not None
    assert len(snap.items) == 5
    assert snap.group_ids() == ["launch", "backlog"]
    # Missing end dates are derived from start and duration.
    design = snap.items[0]
    assert design.end_date == date(2025, 1, 3)
    assert summarize_snapshot(snap).startswith("OK: 5 items, 2 dependencies, 2 overlays")


def test_cycle_example_is_rejected():
    snap, errors = validate_snapshot(load_snapshot_file("examples/invalid-cycle.yaml"))
    assert snap is None
    assert "E_CYCLE_DETECTED" in _codes(errors)


def test_item_field_errors():
    snap, errors = validate_snapshot(
        _raw(
            [
                _it("A"),
                _it("A"),
                _it("B", duration=0),
                _it("C", duration=True),
                _it("D", start_date="not-a-date"),
                _it("E", sort_order="first"),
                {"id": "F", "start_date": "2025-01-01", "duration": 1},
            ]
        )
    )
    assert snap is None
    assert _codes(errors) == {
        "E_DUPLICATE_ID",
        "E_INVALID_DURATION",
        "E_INVALID_DATE",
        "E_INVALID_TYPE",
        "E_REQUIRED_FIELD",
    }


def test_dependency_errors():
    _, errors = validate_snapshot(
        _raw(
            [_it("A"), _it("B"), _it("X", group="g2")],
            [
                {"predecessor_id": "A", "successor_id": "A"},
                {"predecessor_id": "A", "successor_id": "B"},
                {"predecessor_id": "A", "successor_id": "B"},
                {"predecessor_id": "A", "successor_id": "X"},
            ],
        )
    )
    assert _codes(errors) == {
        "E_SELF_DEPENDENCY",
        "E_DUPLICATE_DEPENDENCY",
        "E_CROSS_GROUP_DEPENDENCY",
    }


def test_dangling_edges_kept_unless_strict():
    raw = _raw([_it("A")], [{"predecessor_id": "A", "successor_id": "GONE"}])

    snap, errors = validate_snapshot(raw)
    assert errors == []
    assert snap is not None and len(snap.dependencies) == 1

    snap, errors = validate_snapshot(raw, strict_dangling=True)
    assert snap is None
    assert _codes(errors) == {"E_DANGLING_DEPENDENCY"}


def test_overlay_errors():
    _, errors = validate_snapshot(
        _raw(
            [_it("A")],
            overlays=[
                {"item_id": "NOPE", "team_id": "web", "duration": 2},
                {"item_id": "A", "team_id": "web", "duration": 0},
                {"item_id": "A", "team_id": "ops", "duration": 2},
                {"item_id": "A", "team_id": "ops", "duration": 3},
                {"item_id": "A", "team_id": "qa", "duration": 2, "start_date": "nope"},
            ],
        )
    )
    assert _codes(errors) == {
        "E_UNKNOWN_ITEM",
        "E_INVALID_DURATION",
        "E_DUPLICATE_OVERLAY",
        "E_INVALID_DATE",
    }


def test_errors_are_sorted_by_path():
    _, errors = validate_snapshot(_raw([_it("A", duration=0), _it("B", start_date=None)]))
    assert [e.path for e in errors] == ["items[0].duration", "items[1].start_date"]
    assert all(e.file == "mem.yaml" for e in errors)


def test_missing_schema_version_and_items():
    _, errors = validate_snapshot({"items": None})
    assert [e.path for e in errors] == ["items", "schema_version"]


def test_long_chain_validates():
    ids = [f"N{i}" for i in range(1500)]
    raw = _raw(
        [_it(n) for n in ids],
        [{"predecessor_id": a, "successor_id": b} for a, b in zip(ids, ids[1:])],
    )
    snap, errors = validate_snapshot(raw)
    assert errors == []
    assert snap is not None and len(snap.dependencies) == 1499
