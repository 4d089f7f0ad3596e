from __future__ import annotations

from collections import Counter
from datetime import date
from typing import Any, Iterable, Optional, cast

from reflow_planner.core.dates import end_for, normalize_date
from reflow_planner.core.errors import SnapshotValidationError
from reflow_planner.core.graph.cycles import find_cycles
from reflow_planner.core.model import Dependency, Item, Snapshot, TeamOverlay


def validate_snapshot(
    raw: dict[str, Any], *, strict_dangling: bool = False
) -> tuple[Optional[Snapshot], list[SnapshotValidationError]]:
    """Validate a loaded snapshot document.

    Returns (snapshot, errors). Snapshot is None when errors exist.
    Dangling dependencies are dropped later by the engine unless
    ``strict_dangling`` turns them into errors here.
    """

    file = cast(Optional[str], raw.get("__file__"))
    errors: list[SnapshotValidationError] = []

    def err(code: str, message: str, path: str) -> None:
        errors.append(SnapshotValidationError(code=code, message=message, file=file, path=path))

    schema_version = raw.get("schema_version")
    if not isinstance(schema_version, str) or not schema_version.strip():
        err(
            "E_REQUIRED_FIELD",
            "schema_version is required and must be a non-empty string",
            "schema_version",
        )

    raw_items = raw.get("items")
    if not isinstance(raw_items, list):
        err("E_REQUIRED_FIELD", "items is required and must be an array", "items")
        return None, _sorted(errors)

    items: list[Item] = []
    by_id: dict[str, Item] = {}
    for i, entry in enumerate(raw_items):
        item = _parse_item(entry, f"items[{i}]", err)
        if item is None:
            continue
        if item.id in by_id:
            err("E_DUPLICATE_ID", f"duplicate item id: {item.id}", f"items[{i}].id")
            continue
        by_id[item.id] = item
        items.append(item)

    deps: list[Dependency] = []
    raw_deps = raw.get("dependencies") or []
    if not isinstance(raw_deps, list):
        err("E_INVALID_TYPE", "dependencies must be an array", "dependencies")
        raw_deps = []

    seen_pairs: set[tuple[str, str]] = set()
    for i, entry in enumerate(raw_deps):
        path = f"dependencies[{i}]"
        if not isinstance(entry, dict):
            err("E_INVALID_TYPE", "dependency must be an object", path)
            continue
        pred = entry.get("predecessor_id")
        succ = entry.get("successor_id")
        if not isinstance(pred, str) or not isinstance(succ, str):
            err("E_REQUIRED_FIELD", "predecessor_id and successor_id must be strings", path)
            continue
        if pred == succ:
            err("E_SELF_DEPENDENCY", f"item cannot depend on itself: {pred}", path)
            continue
        if (pred, succ) in seen_pairs:
            err("E_DUPLICATE_DEPENDENCY", f"duplicate dependency: {pred} -> {succ}", path)
            continue
        seen_pairs.add((pred, succ))

        missing = [x for x in (pred, succ) if x not in by_id]
        if missing:
            if strict_dangling:
                err(
                    "E_DANGLING_DEPENDENCY",
                    f"dependency references unknown item: {missing[0]}",
                    path,
                )
            deps.append(Dependency(predecessor_id=pred, successor_id=succ))
            continue
        if by_id[pred].group_id != by_id[succ].group_id:
            err(
                "E_CROSS_GROUP_DEPENDENCY",
                f"{pred} and {succ} belong to different groups",
                path,
            )
            continue
        deps.append(Dependency(predecessor_id=pred, successor_id=succ))

    for nid, msg in find_cycles(d for d in deps if d.predecessor_id in by_id and d.successor_id in by_id):
        err("E_CYCLE_DETECTED", msg, f"items.{nid}")

    overlays: list[TeamOverlay] = []
    raw_overlays = raw.get("overlays") or []
    if not isinstance(raw_overlays, list):
        err("E_INVALID_TYPE", "overlays must be an array", "overlays")
        raw_overlays = []

    seen_tracks: set[tuple[str, str]] = set()
    for i, entry in enumerate(raw_overlays):
        path = f"overlays[{i}]"
        if not isinstance(entry, dict):
            err("E_INVALID_TYPE", "overlay must be an object", path)
            continue
        item_id = entry.get("item_id")
        team_id = entry.get("team_id")
        duration = entry.get("duration")
        if not isinstance(item_id, str) or not isinstance(team_id, str):
            err("E_REQUIRED_FIELD", "item_id and team_id must be strings", path)
            continue
        if item_id not in by_id:
            err("E_UNKNOWN_ITEM", f"overlay references unknown item: {item_id}", f"{path}.item_id")
            continue
        if not _is_positive_int(duration):
            err("E_INVALID_DURATION", "duration must be an integer >= 1", f"{path}.duration")
            continue
        if (item_id, team_id) in seen_tracks:
            err("E_DUPLICATE_OVERLAY", f"duplicate overlay for {item_id}/{team_id}", path)
            continue
        try:
            track_start = _optional_date(entry.get("start_date"))
            track_end = _optional_date(entry.get("end_date"))
        except ValueError as e:
            err("E_INVALID_DATE", str(e), path)
            continue
        seen_tracks.add((item_id, team_id))
        overlays.append(
            TeamOverlay(
                item_id=item_id,
                team_id=team_id,
                duration=cast(int, duration),
                start_date=track_start,
                end_date=track_end,
            )
        )

    if errors:
        return None, _sorted(errors)

    return (
        Snapshot(
            schema_version=cast(str, schema_version),
            items=items,
            dependencies=deps,
            overlays=overlays,
        ),
        [],
    )


def summarize_snapshot(snapshot: Snapshot) -> str:
    counts = Counter(i.group_id for i in snapshot.items)
    parts = [f"{g}={counts[g]}" for g in snapshot.group_ids()]
    return (
        f"OK: {len(snapshot.items)} items, {len(snapshot.dependencies)} dependencies, "
        f"{len(snapshot.overlays)} overlays\nGroups: " + ", ".join(parts)
    )


def _parse_item(entry: Any, path: str, err: Any) -> Optional[Item]:
    if not isinstance(entry, dict):
        err("E_INVALID_TYPE", "item must be an object", path)
        return None

    nid = entry.get("id")
    if not isinstance(nid, str) or not nid.strip():
        err("E_REQUIRED_FIELD", "id is required and must be a non-empty string", f"{path}.id")
        return None

    group_id = entry.get("group_id")
    if not isinstance(group_id, str) or not group_id.strip():
        err("E_REQUIRED_FIELD", "group_id is required and must be a non-empty string", f"{path}.group_id")
        return None

    duration = entry.get("duration")
    if not _is_positive_int(duration):
        err("E_INVALID_DURATION", "duration must be an integer >= 1", f"{path}.duration")
        return None
    duration = cast(int, duration)

    try:
        start = normalize_date(entry.get("start_date"))
    except ValueError as e:
        err("E_INVALID_DATE", f"start_date: {e}", f"{path}.start_date")
        return None

    end = end_for(start, duration)
    if entry.get("end_date") is not None:
        try:
            end = normalize_date(entry.get("end_date"))
        except ValueError as e:
            err("E_INVALID_DATE", f"end_date: {e}", f"{path}.end_date")
            return None

    sort_order = entry.get("sort_order")
    if sort_order is not None and not isinstance(sort_order, int):
        err("E_INVALID_TYPE", "sort_order must be an integer", f"{path}.sort_order")
        return None

    return Item(
        id=nid,
        start_date=start,
        end_date=end,
        duration=duration,
        group_id=group_id,
        sort_order=sort_order,
    )


def _is_positive_int(v: Any) -> bool:
    return isinstance(v, int) and not isinstance(v, bool) and v >= 1


def _optional_date(v: Any) -> Optional[date]:
    return normalize_date(v) if v is not None else None


def _sorted(errors: Iterable[SnapshotValidationError]) -> list[SnapshotValidationError]:
    return sorted(
        list(errors),
        key=lambda e: (
            e.file or "",
            e.path or "",
            e.code,
        ),
    )
