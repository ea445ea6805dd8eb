"""
CLI: ``schemashift apply`` - replay an export against a target database.
"""

from __future__ import annotations

from pathlib import Path

import typer

from schemashift.cli.utils import (
    build_settings,
    console,
    err_console,
    fail,
    parse_variables,
    print_json,
    print_summary,
    print_table,
)
from schemashift.core.errors import MigrationError


def apply_command(
    ctx: typer.Context,
    export_dir: Path = typer.Argument(..., help="Export directory produced by 'export'"),
    target_db: str = typer.Argument(..., help="Target SQLite database file"),
    config: Path | None = typer.Option(None, "--config", "-c", help="YAML settings file"),
    max_passes: int | None = typer.Option(None, "--max-passes", help="Retry passes per retry bucket"),
    continue_on_error: bool | None = typer.Option(
        None, "--continue-on-error/--abort-on-error", help="Keep going after a failed unit"
    ),
    skip_data: bool = typer.Option(False, "--skip-data", help="Do not load the data bucket"),
    var: list[str] | None = typer.Option(None, "--var", help="Script variable NAME=VALUE (repeatable)"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Show what would run without connecting"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Apply an export bucket by bucket with multi-pass retry."""
    from schemashift.execution.apply import ApplyEngine, plan_apply
    from schemashift.providers.sqlite import SQLiteProvider

    settings = build_settings(
        ctx,
        config,
        max_passes=max_passes,
        continue_on_error=continue_on_error,
        include_data=False if skip_data else None,
        variables=parse_variables(var),
    )

    if not export_dir.is_dir():
        err_console.print(f"[bold red]Error[/bold red]: export directory not found: {export_dir}")
        raise typer.Exit(code=1)

    if dry_run:
        plan = plan_apply(export_dir, settings)
        if json_out:
            print_json(
                {
                    "buckets": [
                        {"prefix": b.prefix, "mode": b.mode, "units": [u.path for u in b.units]}
                        for b in plan.buckets
                    ],
                    "missing_variables": plan.missing_variables,
                    "unreadable": plan.unreadable,
                }
            )
        else:
            print_table(
                f"Apply plan: {plan.unit_count} units",
                ["bucket", "mode", "units"],
                [[b.prefix, b.mode, len(b.units)] for b in plan.buckets],
            )
            for path, names in plan.missing_variables.items():
                err_console.print(f"[yellow]Undefined variables[/yellow] in {path}: {', '.join(names)}")
            for path, reason in plan.unreadable.items():
                err_console.print(f"[yellow]Unreadable[/yellow] {path}: {reason}")
        raise typer.Exit(code=0 if plan.is_valid else 1)

    try:
        session = SQLiteProvider(target_db).connect()
    except MigrationError as e:
        fail(e)

    try:
        report = ApplyEngine(session, settings).run(export_dir)
    finally:
        session.close()

    if json_out:
        print_json(report.to_dict())
    else:
        print_summary("Apply", {k: v for k, v in report.to_dict().items() if k != "failures"})
        if report.failures:
            print_table(
                "Failed units",
                ["unit", "pass", "kind", "error"],
                [
                    [a.unit.path, a.pass_number, a.error_kind.value if a.error_kind else "", a.error]
                    for a in report.failures
                ],
            )
        for name in report.constraint_violations:
            err_console.print(f"[bold red]ConstraintViolation[/bold red]: {name}")
        if report.success:
            console.print("[green]Apply complete.[/green]")

    raise typer.Exit(code=report.exit_code)
