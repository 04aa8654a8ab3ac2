"""Helpers shared across CLI commands."""

from __future__ import annotations

import json
from typing import Mapping, Sequence, TextIO

import typer
from rich.box import SIMPLE
from rich.console import Console
from rich.table import Table

from cxfeed.core.services import RefreshReport


def emit_error(message: str, code: str, *, details: Mapping[str, object] | None = None) -> None:
    """Print a structured error payload to stderr."""

    payload: dict[str, object] = {"code": code, "message": message}
    if details:
        payload["details"] = _sanitize_details(details)
    typer.echo(json.dumps(payload, ensure_ascii=False, default=str), err=True)


def _sanitize_details(details: Mapping[str, object]) -> Mapping[str, object]:
    sanitized: dict[str, object] = {}
    for key, value in details.items():
        if isinstance(value, (str, int, float, bool)) or value is None:
            sanitized[key] = value
        elif isinstance(value, Sequence) and not isinstance(value, (str, bytes, bytearray)):
            sanitized[key] = [str(item) for item in value]
        else:
            sanitized[key] = str(value)
    return sanitized


def render_summary(report: RefreshReport, *, stream: TextIO | None = None, no_color: bool = False) -> None:
    """Print the outcome of a refresh pass as a small table."""

    console = Console(file=stream, color_system=None if no_color else "auto", no_color=no_color)
    table = Table(box=SIMPLE, show_lines=False, title="Refresh summary")
    header_style = "" if no_color else "bold"
    table.add_column("outcome", header_style=header_style)
    table.add_column("records", justify="right", header_style=header_style)
    for key, value in report.summary().items():
        table.add_row(key, "yes" if value is True else "no" if value is False else str(value))
    console.print(table)


__all__ = ["emit_error", "render_summary"]
