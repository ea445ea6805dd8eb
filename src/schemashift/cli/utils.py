"""
CLI utility helpers - settings, error output and report rendering.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, NoReturn

import typer
from rich.console import Console
from rich.table import Table

from schemashift.core.config import MigrationSettings, load_settings, read_config_file
from schemashift.core.errors import MigrationError
from schemashift.core.logging import configure_logging

console = Console()
err_console = Console(stderr=True)


# ── Settings helpers ─────────────────────────────────────────────────────


def parse_variables(pairs: list[str] | None) -> dict[str, str]:
    """Parse repeated ``--var NAME=VALUE`` options."""
    variables: dict[str, str] = {}
    for pair in pairs or []:
        name, sep, value = pair.partition("=")
        if not sep or not name.strip():
            err_console.print(f"[bold red]Error[/bold red]: --var expects NAME=VALUE, got {pair!r}")
            raise typer.Exit(code=2)
        variables[name.strip()] = value
    return variables


def build_settings(ctx: typer.Context, config: Path | None, **overrides: Any) -> MigrationSettings:
    """Load settings from an optional YAML file plus CLI overrides.

    ``variables`` given on the command line are merged over the file's.
    Logging is reconfigured from the resulting ``log_level``/``log_format``,
    with the root ``--log-level``/``--log-json`` options taking precedence.
    """
    overrides.update(ctx.obj or {})
    cli_vars = overrides.pop("variables", None)
    try:
        if cli_vars:
            file_vars = read_config_file(config).get("variables", {}) if config else {}
            overrides["variables"] = {**file_vars, **cli_vars}
        settings = load_settings(config, **overrides)
    except MigrationError as e:
        fail(e)

    configure_logging(level=settings.log_level, json_format=settings.log_json)
    return settings


def fail(error: MigrationError) -> NoReturn:
    """Print a migration error and exit with status 1."""
    err_console.print(f"[bold red]Error[/bold red] ({error.kind.value}): {error.message}")
    raise typer.Exit(code=1)


# ── Output helpers ───────────────────────────────────────────────────────


def print_json(payload: Any) -> None:
    console.print_json(json.dumps(payload, default=str))


def print_table(title: str, columns: list[str], rows: list[list[Any]]) -> None:
    """Render rows as a Rich table."""
    table = Table(title=title or None, show_lines=False, pad_edge=False)
    for col in columns:
        table.add_column(col, overflow="fold")
    for row in rows:
        table.add_row(*(str(v) for v in row))
    console.print(table)


def print_summary(title: str, data: dict[str, Any]) -> None:
    """Render a single dict as key-value pairs."""
    console.print(f"[bold]{title}[/bold]")
    for k, v in data.items():
        if v is None:
            continue
        console.print(f"  [cyan]{k}[/cyan]: {v}")
