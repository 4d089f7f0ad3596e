from __future__ import annotations

import json
import logging
from dataclasses import asdict, is_dataclass
from datetime import date
from typing import Any, Optional

import typer
import yaml

from reflow_planner.core.config.settings import Settings, SettingsError, load_and_merge
from reflow_planner.core.dates import normalize_date
from reflow_planner.core.errors import ReflowError, SnapshotLoadError, SnapshotValidationError
from reflow_planner.core.graph.cycles import would_create_cycle
from reflow_planner.core.io.load_snapshot import dump_snapshot_yaml, load_snapshot_file
from reflow_planner.core.model import Snapshot
from reflow_planner.core.reflow.edits import ItemEdit
from reflow_planner.core.service import ReflowService
from reflow_planner.core.store.store import InMemoryStore
from reflow_planner.core.validate.validate_snapshot import summarize_snapshot, validate_snapshot

app = typer.Typer(add_completion=False, no_args_is_help=True)


@app.callback()
def _callback(
    ctx: typer.Context,
    settings_file: Optional[str] = typer.Option(
        None, "--settings", help="Optional YAML file overriding default settings"
    ),
    log_level: Optional[str] = typer.Option(None, "--log-level", help="DEBUG|INFO|WARNING|ERROR"),
) -> None:
    """Dependency-driven schedule reflow CLI."""
    try:
        settings = load_and_merge(settings_file)
    except FileNotFoundError:
        _print_errors(
            [
                SnapshotLoadError(
                    code="E_SETTINGS_FILE_NOT_FOUND",
                    message=f"settings file not found: {settings_file}",
                    path="settings",
                )
            ]
        )
        raise typer.Exit(code=1)
    except SettingsError as e:
        _print_errors(
            [SnapshotValidationError(code="E_SETTINGS_INVALID", message=str(e), path="settings")]
        )
        raise typer.Exit(code=2)

    logging.basicConfig(
        level=(log_level or settings.log_level).upper(),
        format="%(levelname)s %(name)s: %(message)s",
    )
    ctx.obj = settings


@app.command("validate")
def validate(
    ctx: typer.Context,
    path: str = typer.Argument(..., help="Path to a snapshot file (.yaml/.yml/.json)"),
    format: Optional[str] = typer.Option(None, "--format", help="Output format: text|json"),
) -> None:
    """Validate a schedule snapshot file."""
    fmt = _format(ctx, format)
    snapshot = _load(ctx, path, "validate", fmt)
    if fmt == "text":
        typer.echo(summarize_snapshot(snapshot))
        return
    _emit_json(
        "validate",
        ok=True,
        errors=[],
        result={
            "item_count": len(snapshot.items),
            "dependency_count": len(snapshot.dependencies),
            "overlay_count": len(snapshot.overlays),
            "groups": snapshot.group_ids(),
        },
        exit_code=0,
    )


@app.command("reflow")
def reflow(
    ctx: typer.Context,
    path: str = typer.Argument(..., help="Path to a snapshot file"),
    group: Optional[list[str]] = typer.Option(None, "--group", help="Group(s) to reflow (default: all)"),
    out: Optional[str] = typer.Option(None, "--out", help="Write the reflowed snapshot here"),
    format: Optional[str] = typer.Option(None, "--format", help="Output format: text|json"),
) -> None:
    """Recompute dates (with team duration expansion) for one or more groups."""
    fmt = _format(ctx, format)
    snapshot = _load(ctx, path, "reflow", fmt)
    store = InMemoryStore(snapshot)
    service = ReflowService(store)

    results: dict[str, Any] = {}
    for gid in group or snapshot.group_ids():
        results[gid] = _run(fmt, "reflow", lambda: service.reflow_group(gid))

    _finish(fmt, "reflow", store, out, results)


@app.command("check-edge")
def check_edge(
    ctx: typer.Context,
    path: str = typer.Argument(..., help="Path to a snapshot file"),
    predecessor: str = typer.Argument(...),
    successor: str = typer.Argument(...),
    format: Optional[str] = typer.Option(None, "--format", help="Output format: text|json"),
) -> None:
    """Report whether predecessor -> successor would close a cycle."""
    fmt = _format(ctx, format)
    snapshot = _load(ctx, path, "check-edge", fmt)
    cycles = would_create_cycle(successor, predecessor, snapshot.dependencies)
    if fmt == "json":
        _emit_json(
            "check-edge",
            ok=not cycles,
            errors=[],
            result={"would_create_cycle": cycles},
            exit_code=2 if cycles else 0,
        )
    if cycles:
        typer.echo(f"CYCLE: {predecessor} -> {successor} would create a circular dependency")
        raise typer.Exit(code=2)
    typer.echo(f"OK: {predecessor} -> {successor} keeps the graph acyclic")


@app.command("add-edge")
def add_edge(
    ctx: typer.Context,
    path: str = typer.Argument(..., help="Path to a snapshot file"),
    predecessor: str = typer.Argument(...),
    successor: str = typer.Argument(...),
    out: Optional[str] = typer.Option(None, "--out"),
    format: Optional[str] = typer.Option(None, "--format", help="Output format: text|json"),
) -> None:
    """Insert a dependency (rejecting cycles) and reflow its group."""
    fmt = _format(ctx, format)
    store = InMemoryStore(_load(ctx, path, "add-edge", fmt))
    service = ReflowService(store)
    result = _run(fmt, "add-edge", lambda: service.add_dependency(predecessor, successor))
    _finish(fmt, "add-edge", store, out, result)


@app.command("edit")
def edit(
    ctx: typer.Context,
    path: str = typer.Argument(..., help="Path to a snapshot file"),
    item: str = typer.Argument(..., help="Item id"),
    duration: Optional[int] = typer.Option(None, "--duration"),
    start: Optional[str] = typer.Option(None, "--start", help="ISO date"),
    end: Optional[str] = typer.Option(None, "--end", help="ISO date"),
    out: Optional[str] = typer.Option(None, "--out"),
    format: Optional[str] = typer.Option(None, "--format", help="Output format: text|json"),
) -> None:
    """Change an item's duration or dates and cascade the change."""
    fmt = _format(ctx, format)
    store = InMemoryStore(_load(ctx, path, "edit", fmt))
    service = ReflowService(store)

    def _do() -> Any:
        return service.edit_item(
            ItemEdit(
                id=item,
                start_date=_parse_date(start, "start"),
                end_date=_parse_date(end, "end"),
                duration=duration,
            )
        )

    _finish(fmt, "edit", store, out, _run(fmt, "edit", _do))


@app.command("team-duration")
def team_duration(
    ctx: typer.Context,
    path: str = typer.Argument(..., help="Path to a snapshot file"),
    item: str = typer.Argument(..., help="Item id"),
    team: str = typer.Argument(..., help="Team id"),
    duration: Optional[int] = typer.Option(None, "--duration", help="Set this team's duration"),
    remove: bool = typer.Option(False, "--remove", help="Delete this team's overlay"),
    out: Optional[str] = typer.Option(None, "--out"),
    format: Optional[str] = typer.Option(None, "--format", help="Output format: text|json"),
) -> None:
    """Set or remove a team duration overlay and reflow every team's track."""
    fmt = _format(ctx, format)
    if (duration is None) == (not remove):
        _fail(
            fmt,
            "team-duration",
            SnapshotValidationError(
                code="E_TEAM_DURATION_ARGS",
                message="pass exactly one of --duration or --remove",
                path="duration",
            ),
        )
    store = InMemoryStore(_load(ctx, path, "team-duration", fmt))
    service = ReflowService(store)
    if remove:
        result = _run(fmt, "team-duration", lambda: service.remove_team_duration(item, team))
    else:
        result = _run(
            fmt, "team-duration", lambda: service.set_team_duration(item, team, int(duration or 0))
        )
    _finish(fmt, "team-duration", store, out, result)


@app.command("move")
def move(
    ctx: typer.Context,
    path: str = typer.Argument(..., help="Path to a snapshot file"),
    item: str = typer.Argument(..., help="Item id"),
    to: str = typer.Option(..., "--to", help="Destination group id"),
    out: Optional[str] = typer.Option(None, "--out"),
    format: Optional[str] = typer.Option(None, "--format", help="Output format: text|json"),
) -> None:
    """Move an item to another group, bridging its former neighbours."""
    fmt = _format(ctx, format)
    store = InMemoryStore(_load(ctx, path, "move", fmt))
    service = ReflowService(store)
    result = _run(fmt, "move", lambda: service.move_item(item, to))
    _finish(fmt, "move", store, out, result)


@app.command("reorder")
def reorder(
    ctx: typer.Context,
    path: str = typer.Argument(..., help="Path to a snapshot file"),
    items: list[str] = typer.Argument(..., help="Every item id of the group, in the new order"),
    group: str = typer.Option(..., "--group"),
    out: Optional[str] = typer.Option(None, "--out"),
    format: Optional[str] = typer.Option(None, "--format", help="Output format: text|json"),
) -> None:
    """Rechain a group in the given order, keeping its start anchor."""
    fmt = _format(ctx, format)
    store = InMemoryStore(_load(ctx, path, "reorder", fmt))
    service = ReflowService(store)
    result = _run(fmt, "reorder", lambda: service.reorder_group(group, list(items)))
    _finish(fmt, "reorder", store, out, result)


@app.command("order")
def order(
    ctx: typer.Context,
    path: str = typer.Argument(..., help="Path to a snapshot file"),
    group: str = typer.Option(..., "--group"),
    format: Optional[str] = typer.Option(None, "--format", help="Output format: text|json"),
) -> None:
    """Print a group's items in stable dependency order."""
    fmt = _format(ctx, format)
    service = ReflowService(InMemoryStore(_load(ctx, path, "order", fmt)))
    ids = service.order_group(group)
    if fmt == "json":
        _emit_json("order", ok=True, errors=[], result={"group": group, "order": ids}, exit_code=0)
    for nid in ids:
        typer.echo(nid)


def _format(ctx: typer.Context, format: Optional[str]) -> str:
    settings: Settings = ctx.obj or Settings()
    fmt = format or settings.format
    if fmt not in ("text", "json"):
        _print_errors(
            [
                SnapshotValidationError(
                    code="E_UNKNOWN_FORMAT",
                    message=f"unknown format: {fmt} (choose one of: text, json)",
                    path="format",
                )
            ]
        )
        raise typer.Exit(code=2)
    return fmt


def _load(ctx: typer.Context, path: str, command: str, fmt: str) -> Snapshot:
    settings: Settings = ctx.obj or Settings()
    try:
        raw = load_snapshot_file(path)
    except SnapshotLoadError as e:
        if fmt == "json":
            _emit_json(command, ok=False, errors=[e], result=None, exit_code=1)
        _print_errors([e])
        raise typer.Exit(code=1)

    snapshot, errors = validate_snapshot(raw, strict_dangling=settings.strict_dangling)
    if errors or snapshot is None:
        if fmt == "json":
            _emit_json(command, ok=False, errors=list(errors), result=None, exit_code=2)
        _print_errors(list(errors))
        raise typer.Exit(code=2)
    return snapshot


def _run(fmt: str, command: str, fn: Any) -> Any:
    try:
        return fn()
    except ReflowError as e:
        _fail(fmt, command, e)


def _fail(fmt: str, command: str, e: ReflowError) -> None:
    if fmt == "json":
        _emit_json(command, ok=False, errors=[e], result=None, exit_code=2)
    _print_errors([e])
    raise typer.Exit(code=2)


def _finish(fmt: str, command: str, store: InMemoryStore, out: Optional[str], result: Any) -> None:
    if out:
        dump_snapshot_yaml(store.to_snapshot(), out)
    if fmt == "json":
        _emit_json(command, ok=True, errors=[], result=_jsonable(result), exit_code=0)
    typer.echo(yaml.safe_dump(_jsonable(result), sort_keys=False, default_flow_style=False).rstrip())
    if out:
        typer.echo(f"OK: wrote {out}")


def _emit_json(
    command: str,
    *,
    ok: bool,
    errors: list[ReflowError],
    result: Any,
    exit_code: int,
) -> None:
    payload = {
        "tool": "reflow",
        "command": command,
        "ok": ok,
        "error_count": len(errors),
        "errors": [
            {
                "code": e.code,
                "message": e.message,
                "file": e.file,
                "path": e.path,
                "severity": "error",
                "source": "load" if isinstance(e, SnapshotLoadError) else "engine",
            }
            for e in errors
        ],
        "result": result,
    }
    typer.echo(json.dumps(payload, indent=2, sort_keys=True, default=_json_default))
    raise typer.Exit(code=exit_code)


def _jsonable(obj: Any) -> Any:
    if is_dataclass(obj) and not isinstance(obj, type):
        return asdict(obj)
    if isinstance(obj, dict):
        return {k: _jsonable(v) for k, v in obj.items()}
    if isinstance(obj, list):
        return [_jsonable(v) for v in obj]
    return obj


def _json_default(obj: Any) -> Any:
    if isinstance(obj, date):
        return obj.isoformat()
    raise TypeError(f"not JSON serializable: {type(obj).__name__}")


def _parse_date(value: Optional[str], name: str) -> Optional[date]:
    if value is None:
        return None
    try:
        return normalize_date(value)
    except ValueError as e:
        raise SnapshotValidationError(code="E_INVALID_DATE", message=str(e), path=name) from e


def _print_errors(errors: list[Any]) -> None:
    errors_sorted = sorted(errors, key=lambda e: (e.file or "", e.path or "", e.code))
    for e in errors_sorted:
        typer.echo(str(e), err=True)


def main() -> None:
    app(prog_name="reflow")


cli = typer.main.get_command(app)

if __name__ == "__main__":
    main()
