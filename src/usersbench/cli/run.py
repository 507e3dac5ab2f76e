"""``usersbench run``: execute a scenario with live terminal output."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import TYPE_CHECKING

import typer
from rich.console import Console
from rich.live import Live
from rich.panel import Panel
from rich.table import Table

from usersbench._internal.errors import ConfigError, UsersBenchError
from usersbench.engine.runner import DEFAULT_SCENARIO_PATH, LoadTestRunner
from usersbench.patterns.stages import parse_duration

if TYPE_CHECKING:
    from usersbench.metrics.models import MetricSnapshot, TestResult

console = Console(stderr=True)

# Exit code when the run completed but at least one threshold failed.
THRESHOLDS_FAILED_EXIT_CODE = 99


# ---------------------------------------------------------------------------
# Rich live display
# ---------------------------------------------------------------------------


def _make_live_table(snapshot: MetricSnapshot | None) -> Table:
    """Build a Rich table for the latest interval snapshot."""
    table = Table(show_header=True, header_style="bold cyan", expand=True)
    table.add_column("Metric", style="bold")
    table.add_column("Value", justify="right")

    if snapshot is None:
        table.add_row("Status", "Starting...")
        return table

    table.add_row("Elapsed", f"{snapshot.elapsed_seconds:.0f}s")
    table.add_row("Active Users", str(snapshot.active_users))
    table.add_row("Requests/sec", f"{snapshot.requests_per_second:.1f}")
    table.add_row("p50 Latency", f"{snapshot.latency_p50:.1f}ms")
    table.add_row("p95 Latency", f"{snapshot.latency_p95:.1f}ms")
    table.add_row("Errors", str(snapshot.total_errors))
    table.add_row("Checks", f"{snapshot.checks_passed} ok / {snapshot.checks_failed} failed")

    return table


def _print_summary(result: TestResult) -> None:
    """Print run totals, check tallies and threshold verdicts."""
    summary = result.final_summary
    table = Table(title="Test Complete", show_header=True, header_style="bold green", expand=True)
    table.add_column("Metric", style="bold")
    table.add_column("Value", justify="right")

    table.add_row("Scenario", result.scenario_name)
    table.add_row("Pattern", result.pattern_description)
    table.add_row("Duration", f"{result.duration_seconds:.1f}s")

    if summary:
        table.add_row("Total Requests", str(summary.total_requests))
        table.add_row("Iterations", str(summary.total_iterations))
        table.add_row("Avg Requests/sec", f"{summary.requests_per_second:.1f}")
        table.add_row("Avg Latency", f"{summary.latency_avg:.1f}ms")
        table.add_row("p50 Latency", f"{summary.latency_p50:.1f}ms")
        table.add_row("p95 Latency", f"{summary.latency_p95:.1f}ms")
        table.add_row("p99 Latency", f"{summary.latency_p99:.1f}ms")
        table.add_row("Failed Requests", str(summary.total_errors))
        table.add_row("Failure Rate", f"{summary.error_rate * 100:.2f}%")
    console.print(table)

    if result.checks:
        checks_table = Table(title="Checks", show_header=True, header_style="bold cyan", expand=True)
        checks_table.add_column("Check")
        checks_table.add_column("Passed", justify="right")
        checks_table.add_column("Failed", justify="right")
        checks_table.add_column("Rate", justify="right")
        for check in result.checks.values():
            mark = "[green]✓[/green]" if check.fails == 0 else "[red]✗[/red]"
            checks_table.add_row(
                f"{mark} {check.name}",
                str(check.passes),
                str(check.fails),
                f"{check.pass_rate * 100:.2f}%",
            )
        console.print(checks_table)

    if result.thresholds:
        th_table = Table(title="Thresholds", show_header=True, header_style="bold cyan", expand=True)
        th_table.add_column("Metric")
        th_table.add_column("Expression")
        th_table.add_column("Observed", justify="right")
        th_table.add_column("Result", justify="right")
        for th in result.thresholds:
            th_table.add_row(
                th.metric,
                th.expression,
                f"{th.observed:.4g}",
                "[green]pass[/green]" if th.passed else "[red]FAIL[/red]",
            )
        console.print(th_table)


def _parse_duration_option(value: str | None) -> float | None:
    """Convert ``--duration`` (``"30s"``, ``"2m"``, ``"45"``) to seconds."""
    if value is None:
        return None
    # A bare number means seconds
    raw: str | float = float(value) if value.replace(".", "", 1).isdigit() else value
    try:
        seconds = parse_duration(raw)
    except ConfigError as exc:
        raise typer.BadParameter(str(exc), param_hint="--duration") from exc
    if seconds <= 0:
        msg = "duration must be positive"
        raise typer.BadParameter(msg, param_hint="--duration")
    return seconds


# ---------------------------------------------------------------------------
# Command
# ---------------------------------------------------------------------------


def run_cmd(
    scenario_file: Path | None = typer.Argument(
        None,
        help="Scenario .py file. Defaults to the bundled users benchmark.",
        exists=True,
        file_okay=True,
        dir_okay=False,
        readable=True,
        show_default=False,
    ),
    scenario_name: str | None = typer.Option(
        None,
        "--scenario",
        "-s",
        help="Scenario name when the file declares several.",
    ),
    base_url: str | None = typer.Option(
        None,
        "--base-url",
        help="Target base URL (overrides the scenario and USERSBENCH_BASE_URL).",
    ),
    vus: int | None = typer.Option(
        None,
        "--vus",
        "-u",
        help="Run a flat number of virtual users instead of the scenario stages.",
        min=1,
    ),
    duration: str | None = typer.Option(
        None,
        "--duration",
        "-d",
        help="Run length, e.g. 30s or 2m (default: total stage duration).",
    ),
    summary_export: Path | None = typer.Option(
        None,
        "--summary-export",
        help="Write the end-of-test summary as JSON to this file.",
        dir_okay=False,
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Enable verbose (DEBUG) logging.",
    ),
    log_json: bool = typer.Option(
        False,
        "--log-json",
        help="Emit log records as JSON lines.",
    ),
) -> None:
    """Run a scenario and exit non-zero if any threshold fails."""
    duration_seconds = _parse_duration_option(duration)
    path = scenario_file or DEFAULT_SCENARIO_PATH

    try:
        test_runner = LoadTestRunner(
            scenario_path=path,
            scenario_name=scenario_name,
            vus=vus,
            duration_seconds=duration_seconds,
            base_url=base_url,
            log_level=logging.DEBUG if verbose else logging.INFO,
            json_logs=log_json,
        )
    except UsersBenchError as exc:
        console.print(f"[red]Error:[/red] {exc}")
        raise typer.Exit(code=1) from exc

    console.print(
        Panel(
            f"[bold]Scenario file:[/bold] {path.name}\n"
            f"[bold]Target:[/bold]        {base_url or 'scenario default'}\n"
            f"[bold]VUs:[/bold]           {vus or 'staged'}\n"
            f"[bold]Duration:[/bold]      {duration or 'sum of stages'}",
            title="usersbench",
            border_style="cyan",
        )
    )

    try:
        with Live(
            _make_live_table(None),
            console=console,
            refresh_per_second=2,
            transient=True,
        ) as live:
            test_runner.on_snapshot = lambda snapshot: live.update(_make_live_table(snapshot))
            result = test_runner.run()
    except UsersBenchError as exc:
        console.print(f"[red]Load test failed:[/red] {exc}")
        raise typer.Exit(code=1) from exc

    _print_summary(result)

    if summary_export is not None:
        summary_export.parent.mkdir(parents=True, exist_ok=True)
        summary_export.write_text(json.dumps(result.to_dict(), indent=2))
        console.print(f"Summary written to {summary_export}")

    if not result.passed:
        failed = ", ".join(f"{t.metric} {t.expression}" for t in result.failed_thresholds)
        console.print(f"[red]FAIL:[/red] thresholds crossed: {failed}")
        raise typer.Exit(code=THRESHOLDS_FAILED_EXIT_CODE)

    console.print("[green]All thresholds passed.[/green]")
