"""Operation-specific Rich renderers for ServiceResult.

Renderers are dispatched by ``result.op`` in :func:`render_result`.
Unknown ops fall through to a generic key-value renderer.
"""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any

from rich.table import Table
from rich.text import Text

from worldvar.output.console import create_console, get_output, style_for_status

if TYPE_CHECKING:
    from rich.console import Console

    from worldvar.services.result import ServiceResult


# ── Public API ────────────────────────────────────────────────────────


def render_result(result: ServiceResult, *, verbose: bool = False) -> str:
    """Render a ServiceResult to a styled string via Rich."""
    console = create_console()
    if result.ok:
        renderer = _OP_RENDERERS.get(result.op, _render_generic)
        renderer(result, console, verbose=verbose)
    else:
        _render_error(result, console, verbose=verbose)
    return get_output(console).rstrip("\n")


def render_quiet(result: ServiceResult) -> str:
    """Minimal output for ``--quiet`` mode."""
    if not result.ok:
        msg = result.error.message if result.error else "Unknown error"
        return f"ERROR: {result.op} - {msg}"
    if result.op == "get":
        return _compact(result.data.get("value"))
    return f"OK: {result.op}"


# ── Helpers ───────────────────────────────────────────────────────────


def _compact(value: Any) -> str:
    if isinstance(value, str):
        return value
    return json.dumps(value, ensure_ascii=False, separators=(",", ":"))


def _status_line(console: Console, result: ServiceResult) -> None:
    console.print(Text("OK", style="wv.ok"), Text(f"  {result.op}", style="wv.op"))


def _field(console: Console, key: str, value: Any) -> None:
    k = Text(f"  {key}: ", style="wv.key")
    if key == "status":
        v = Text(str(value), style=style_for_status(str(value)))
    elif key == "path":
        v = Text(str(value), style="wv.path")
    else:
        v = Text(value if isinstance(value, str) else _compact(value))
    console.print(k, v, sep="")


def _render_meta(console: Console, result: ServiceResult) -> None:
    """Print the meta block, including the telemetry span tree."""
    if not result.meta:
        return
    console.print()
    console.print(Text("  meta:", style="dim"))
    for k, v in result.meta.items():
        if k == "telemetry":
            _render_telemetry_tree(console, v, indent=4)
        else:
            console.print(f"    {k}: {v}")


def _render_telemetry_tree(console: Console, span_data: dict[str, Any], indent: int = 4) -> None:
    prefix = " " * indent
    duration = span_data.get("duration_ms", 0.0)
    style = "yellow" if duration > 100 else "dim"
    line = f"{prefix}[{style}]{duration:>8.2f}ms[/{style}]  {span_data.get('name', '?')}"
    annotations = span_data.get("annotations") or {}
    if annotations:
        line += "  (" + ", ".join(f"{k}={v}" for k, v in annotations.items()) + ")"
    console.print(line)
    for child in span_data.get("children", []):
        _render_telemetry_tree(console, child, indent=indent + 4)


def _render_warnings(console: Console, result: ServiceResult) -> None:
    for warning in result.warnings:
        console.print(Text("  warning: ", style="wv.warning"), Text(warning), sep="")


def _results_table(rows: list[dict[str, Any]]) -> Table:
    table = Table(show_header=True, show_lines=False, pad_edge=False, expand=False)
    table.add_column("Kind", style="wv.kind", no_wrap=True)
    table.add_column("Path", style="wv.path")
    table.add_column("Old")
    table.add_column("New")
    table.add_column("")
    for row in rows:
        mark = "[wv.ok]ok[/wv.ok]" if row.get("success") else "[wv.error]failed[/wv.error]"
        table.add_row(
            str(row.get("kind", "")),
            Text(str(row.get("path", ""))),
            Text(_compact(row.get("old_value"))),
            Text(_compact(row.get("new_value"))),
            mark,
        )
    return table


# ── Error renderer ────────────────────────────────────────────────────


def _render_error(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    err = result.error
    msg = err.message if err else "Unknown error"
    code = f" [{err.code}]" if err else ""
    console.print(
        Text("ERROR", style="wv.error"),
        Text(f"  {result.op}", style="wv.op"),
        Text(code),
        Text(" - "),
        Text(msg),
        sep="",
    )
    if err and err.detail.get("retryable"):
        console.print(Text("  (retryable)", style="dim"))
    if verbose and err and err.detail:
        console.print(Text("  detail:", style="dim"))
        for k, v in err.detail.items():
            console.print(Text(f"    {k}: {v}"))
    _render_warnings(console, result)


# ── Op renderers ──────────────────────────────────────────────────────


def _render_parse(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    """Parsed commands as a table, then diagnostics."""
    _status_line(console, result)
    d = result.data
    _field(console, "statements", d.get("statement_count", 0))
    _field(console, "parsed", d.get("parsed_count", 0))
    commands = d.get("commands", [])
    if commands:
        table = Table(show_header=True, show_lines=False, pad_edge=False, expand=False)
        table.add_column("Kind", style="wv.kind", no_wrap=True)
        table.add_column("Path", style="wv.path")
        table.add_column("Argument")
        table.add_column("Comment", style="dim")
        for cmd in commands:
            arg = ""
            for key in ("value", "operand", "target"):
                if key in cmd and (key != "target" or cmd.get("has_target")):
                    arg = _compact(cmd[key])
                    break
            table.add_row(
                cmd["kind"], Text(cmd["path"]), Text(arg), Text(cmd.get("comment") or "")
            )
        console.print(table)
    for diag in d.get("diagnostics", []):
        console.print(
            Text(f"  line {diag.get('line', 0)} ", style="wv.warning"),
            Text(f"{diag.get('reason')}: {diag.get('fragment')}"),
            sep="",
        )


def _render_submit(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    """Cycle status, per-command outcomes, warnings."""
    _status_line(console, result)
    d = result.data
    for key in ("status", "cycle_id", "applied", "failed"):
        if key in d:
            _field(console, key, d[key])
    if d.get("created_namespaces"):
        _field(console, "created_namespaces", ", ".join(d["created_namespaces"]))
    rows = d.get("results", [])
    if rows:
        console.print(_results_table(rows))
    if verbose:
        _render_meta(console, result)


def _render_get(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    d = result.data
    _field(console, "path", d.get("path", ""))
    value = d.get("value")
    if isinstance(value, (dict, list)):
        console.print(Text(json.dumps(value, ensure_ascii=False, indent=2)))
    else:
        _field(console, "value", value)


def _render_generic(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    """Fallback renderer: status line + all data as key-value pairs."""
    _status_line(console, result)
    for key, value in result.data.items():
        _field(console, key, value)
    if verbose:
        _render_meta(console, result)


# ── Dispatch table ────────────────────────────────────────────────────

_OP_RENDERERS: dict[str, Any] = {
    "parse": _render_parse,
    "submit": _render_submit,
    "seed": _render_submit,
    "get": _render_get,
}
