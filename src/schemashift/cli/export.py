"""
CLI: ``schemashift export`` - generate an export directory.
"""

from __future__ import annotations

from pathlib import Path

import typer

from schemashift.cli.utils import build_settings, console, fail, print_json, print_summary, print_table
from schemashift.core.errors import MigrationError


def export_command(
    ctx: typer.Context,
    source_db: str = typer.Argument(..., help="Source SQLite database file"),
    output_dir: Path = typer.Argument(..., help="Directory to write artifacts into"),
    config: Path | None = typer.Option(None, "--config", "-c", help="YAML settings file"),
    workers: int | None = typer.Option(None, "--workers", "-w", help="Worker threads (1-16)"),
    grouping: str | None = typer.Option(
        None, "--grouping", "-g", help="Default grouping: per-object, per-schema or per-type"
    ),
    delta_from: Path | None = typer.Option(
        None, "--delta-from", help="Prior export directory for incremental regeneration"
    ),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Export schema objects as dependency-ordered artifacts."""
    from schemashift.orchestration.export import ExportRunner
    from schemashift.providers.sqlite import SQLiteProvider

    settings = build_settings(ctx, config, workers=workers, grouping_default=grouping)
    provider = SQLiteProvider(source_db, readonly=True)

    try:
        report = ExportRunner(provider, settings).run(output_dir, delta_from=delta_from)
    except MigrationError as e:
        fail(e)

    if json_out:
        print_json(report.dispatch.to_dict() | {"summary": report.to_dict()})
    else:
        print_summary("Export", report.to_dict())
        failures = report.dispatch.failures
        if failures:
            print_table(
                "Failures",
                ["item", "target", "kind", "error"],
                [
                    [r.item_id or f"({r.worker_id})", r.target or "", r.error_kind.value if r.error_kind else "", r.error]
                    for r in failures
                ],
            )
        else:
            console.print("[green]All artifacts written.[/green]")

    raise typer.Exit(code=report.exit_code)
