"""Output formatting for the slicemeter CLI.

Provides both JSON (machine-parseable) and human-readable (Rich) output.
All public functions accept a ``json_mode`` flag:
    - ``True``  → indented JSON string for scripts and upload handlers
    - ``False`` → Rich-formatted tables and panels for humans
"""

from __future__ import annotations

import json
from io import StringIO
from typing import Any, Dict, Mapping, Optional

from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text


def _render(renderable: Any) -> str:
    """Render a Rich object to a string."""
    buf = StringIO()
    console = Console(file=buf, force_terminal=True, highlight=False, width=100)
    console.print(renderable)
    return buf.getvalue().rstrip("\n")


# ---------------------------------------------------------------------------
# Envelope
# ---------------------------------------------------------------------------


def format_response(
    status: str,
    data: Optional[Dict[str, Any]] = None,
    error: Optional[Dict[str, Any]] = None,
    *,
    json_mode: bool = False,
) -> str:
    """Build a standard ``{status, data, error}`` response."""
    if json_mode:
        envelope: Dict[str, Any] = {"status": status}
        if data is not None:
            envelope["data"] = data
        if error is not None:
            envelope["error"] = error
        return json.dumps(envelope, indent=2, sort_keys=False, ensure_ascii=False)

    if status == "error" and error:
        code = error.get("code", "UNKNOWN")
        msg = error.get("message", "An unknown error occurred.")
        t = Text()
        t.append("Error", style="bold red")
        t.append(f" [{code}]: ", style="red")
        t.append(msg)
        stderr = error.get("stderr")
        if stderr:
            t.append("\n\nslicer stderr:\n", style="dim")
            t.append(stderr.rstrip())
        return _render(Panel(t, title="Error", border_style="red"))

    if data:
        lines = [f"[bold]{k}:[/bold] {v}" for k, v in data.items()]
        return _render(Panel("\n".join(lines), border_style="green"))

    return f"Status: {status}"


def format_error(
    message: str,
    code: str = "ERROR",
    *,
    stderr: str = "",
    stdout: str = "",
    json_mode: bool = False,
) -> str:
    """Shortcut for a standard error response.

    Captured slicer streams are included verbatim when given.
    """
    error: Dict[str, Any] = {"code": code, "message": message}
    if stderr or stdout:
        error["stderr"] = stderr
        error["stdout"] = stdout
    return format_response("error", error=error, json_mode=json_mode)


# ---------------------------------------------------------------------------
# Metrics
# ---------------------------------------------------------------------------


def format_metrics(
    parameters: Mapping[str, str],
    *,
    file_path: Optional[str] = None,
    gcode_file_path: Optional[str] = None,
    json_mode: bool = False,
) -> str:
    """Format an extracted metrics mapping, in report order."""
    if json_mode:
        data: Dict[str, Any] = {"parameters": dict(parameters)}
        if file_path is not None:
            data["filePath"] = file_path
        if gcode_file_path is not None:
            data["gcodeFilePath"] = gcode_file_path
        return format_response("success", data=data, json_mode=True)

    if not parameters:
        msg = "No print metrics found in G-code."
        return _render(Panel(msg, title="Metrics", border_style="yellow"))

    table = Table(title="Print Metrics", border_style="blue")
    table.add_column("Metric", style="bold")
    table.add_column("Value", justify="right")
    for name, value in parameters.items():
        table.add_row(name, value)

    parts = [_render(table)]
    if gcode_file_path:
        parts.append(f"G-code: {gcode_file_path}")
    return "\n".join(parts)


def format_settings(settings: Dict[str, Any], *, json_mode: bool = False) -> str:
    """Format resolved settings (from ``Settings.to_dict()``)."""
    if json_mode:
        return format_response("success", data=settings, json_mode=True)

    table = Table(title="Settings", border_style="blue")
    table.add_column("Key", style="bold")
    table.add_column("Value")
    for key, value in settings.items():
        if isinstance(value, dict):
            for sub_key, sub_value in value.items():
                table.add_row(f"{key}.{sub_key}", "" if sub_value is None else str(sub_value))
        else:
            table.add_row(key, "" if value is None else str(value))
    return _render(table)
