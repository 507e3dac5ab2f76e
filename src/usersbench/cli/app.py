"""Main Typer application: entry point for the ``usersbench`` CLI."""

from __future__ import annotations

import typer

from usersbench import __version__
from usersbench.cli.run import run_cmd

app = typer.Typer(
    name="usersbench",
    help="Staged load benchmark for the users API.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

app.command("run", help="Run a load test scenario (default: the users benchmark).")(run_cmd)


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"usersbench {__version__}")
        raise typer.Exit


@app.callback()
def main(
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
) -> None:
    """usersbench: staged load benchmark for the users API."""
