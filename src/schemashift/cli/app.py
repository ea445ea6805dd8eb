"""
Root Typer application for the schemashift CLI.

Commands import the provider and runners lazily so ``schemashift order``
and ``--help`` stay fast.
"""

from __future__ import annotations

import typer
from typer import Typer

from schemashift.cli.apply import apply_command
from schemashift.cli.export import export_command
from schemashift.cli.utils import print_table

app = Typer(
    name="schemashift",
    help="schemashift - dependency-ordered schema export and replay.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)


# ── Version callback ─────────────────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        from schemashift import __version__

        typer.echo(f"schemashift {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    ctx: typer.Context,
    version: bool | None = typer.Option(
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
    log_level: str | None = typer.Option(
        None, "--log-level", help="Log level (default: settings log_level, WARNING)"
    ),
    log_json: bool | None = typer.Option(None, "--log-json/--log-console", help="Log format (default: auto)"),
) -> None:
    """schemashift CLI - export, replay and inspect the deployment order."""
    from schemashift.core.logging import configure_logging

    # Commands that load settings reconfigure with these as overrides
    ctx.obj = {
        "log_level": log_level,
        "log_format": None if log_json is None else ("json" if log_json else "console"),
    }
    configure_logging(level=log_level or "WARNING", json_format=log_json)


# ── Commands ─────────────────────────────────────────────────────────────

app.command("export")(export_command)
app.command("apply")(apply_command)


@app.command("order")
def order_command() -> None:
    """Print the bucket table in deployment order."""
    from schemashift.core.buckets import deployment_order

    rows = []
    for bucket, specs in deployment_order():
        for spec in specs:
            flags = []
            if not spec.reliable_timestamp:
                flags.append("always-modified")
            if spec.requires_secret:
                flags.append("secret")
            rows.append([bucket.prefix, spec.priority, spec.name, spec.subfolder or "", ", ".join(flags)])
    print_table("Deployment order", ["bucket", "priority", "type", "subfolder", "notes"], rows)


if __name__ == "__main__":
    app()
