from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import yaml

from reflow_planner.core.errors import SnapshotLoadError
from reflow_planner.core.model import Snapshot


def load_snapshot_file(path: str) -> dict[str, Any]:
    """Load a YAML/JSON schedule snapshot.

    Returns a dict with keys: schema_version, items, dependencies, overlays.
    Does not coerce types; the validator owns shape checking.
    """

    p = Path(path)
    if not p.exists():
        raise SnapshotLoadError(
            code="E_FILE_NOT_FOUND",
            message="file does not exist",
            file=str(p),
        )

    suffix = p.suffix.lower()
    try:
        raw_text = p.read_text(encoding="utf-8")
    except Exception as e:  # pragma: no cover
        raise SnapshotLoadError(code="E_FILE_READ", message=str(e), file=str(p)) from e

    try:
        if suffix in {".yaml", ".yml"}:
            data = yaml.safe_load(raw_text)
        elif suffix == ".json":
            data = json.loads(raw_text)
        else:
            raise SnapshotLoadError(
                code="E_UNSUPPORTED_FORMAT",
                message="supported formats are .yaml/.yml and .json",
                file=str(p),
            )
    except SnapshotLoadError:
        raise
    except Exception as e:
        code = "E_YAML_PARSE" if suffix in {".yaml", ".yml"} else "E_JSON_PARSE"
        raise SnapshotLoadError(code=code, message=str(e), file=str(p)) from e

    if not isinstance(data, dict):
        raise SnapshotLoadError(
            code="E_INVALID_TOP_LEVEL",
            message="top-level document must be a mapping/object",
            file=str(p),
        )

    return {
        "schema_version": data.get("schema_version"),
        "items": data.get("items"),
        "dependencies": data.get("dependencies", []),
        "overlays": data.get("overlays", []),
        "__file__": str(p),
    }


def snapshot_to_dict(snapshot: Snapshot) -> dict[str, Any]:
    items: list[dict[str, Any]] = []
    for i in snapshot.items:
        raw: dict[str, Any] = {
            "id": i.id,
            "group_id": i.group_id,
            "start_date": i.start_date.isoformat(),
            "end_date": i.end_date.isoformat(),
            "duration": i.duration,
        }
        if i.sort_order is not None:
            raw["sort_order"] = i.sort_order
        items.append(raw)

    overlays: list[dict[str, Any]] = []
    for o in snapshot.overlays:
        raw = {"item_id": o.item_id, "team_id": o.team_id, "duration": o.duration}
        if o.start_date is not None and o.end_date is not None:
            raw["start_date"] = o.start_date.isoformat()
            raw["end_date"] = o.end_date.isoformat()
        overlays.append(raw)

    return {
        "schema_version": snapshot.schema_version,
        "items": items,
        "dependencies": [
            {"predecessor_id": d.predecessor_id, "successor_id": d.successor_id}
            for d in snapshot.dependencies
        ],
        "overlays": overlays,
    }


def dump_snapshot_yaml(snapshot: Snapshot, path: str) -> None:
    p = Path(path)
    if str(p.parent) not in (".", ""):
        p.parent.mkdir(parents=True, exist_ok=True)
    with open(p, "w", encoding="utf-8") as f:
        yaml.safe_dump(
            snapshot_to_dict(snapshot),
            f,
            sort_keys=False,
            default_flow_style=False,
            allow_unicode=True,
        )
