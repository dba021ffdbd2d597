"""Command-line interface for exploring the battery story day."""

import json
import logging
from dataclasses import asdict
from pathlib import Path

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from .analysis import explain, replay, summary
from .config import ConfigError, load_context
from .generator import generate_day, samples_in_window
from .models import MODES, ReplayOverrides
from .timefmt import format_window, minutes_to_label, parse_minutes

console = Console()

DEFAULT_START = "17:00"
DEFAULT_END = "19:00"
RESERVE_MIN = 20
RESERVE_MAX = 80


def _parse_time_option(ctx, param, value):
    if value is None:
        return None
    try:
        return parse_minutes(value)
    except ValueError:
        raise click.BadParameter(f"expected HH:MM or minutes, got {value!r}")


def window_options(func):
    """Add --start/--end options to a command."""
    func = click.option(
        "--end", default=DEFAULT_END, callback=_parse_time_option, help="Window end (HH:MM, exclusive)"
    )(func)
    func = click.option(
        "--start", default=DEFAULT_START, callback=_parse_time_option, help="Window start (HH:MM)"
    )(func)
    return func


def _signed(value: float, decimals: int = 1) -> str:
    return f"{value:+.{decimals}f}" if round(value, decimals) else f"{0:.{decimals}f}"


@click.group()
@click.option("--config", "config_path", type=click.Path(exists=True), help="Path to site.yaml")
@click.option("--verbose", is_flag=True, help="Show debug logging")
@click.pass_context
def cli(ctx, config_path, verbose):
    """Battery story day - explain and replay a home battery's behaviour."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
    )
    ctx.ensure_object(dict)
    try:
        context = load_context(Path(config_path) if config_path else None)
    except ConfigError as e:
        console.print(f"[red]Invalid site config: {e}[/red]")
        ctx.exit(1)
    ctx.obj["context"] = context
    ctx.obj["samples"] = generate_day(context)


@cli.command("context")
@click.pass_context
def show_context(ctx):
    """Show the site settings the day was generated with."""
    context = ctx.obj["context"]

    table = Table(title="Site Context")
    table.add_column("Setting", style="cyan")
    table.add_column("Value")

    table.add_row("Mode", context.mode)
    table.add_row("Backup reserve", f"{context.backup_reserve_pct:g}%")
    table.add_row(
        "Peak window", format_window(context.peak_window.start_min, context.peak_window.end_min)
    )
    table.add_row(
        "Storm Watch window",
        format_window(context.storm_watch_window.start_min, context.storm_watch_window.end_min),
    )
    table.add_row(
        "Storm Watch",
        "[green]Enabled[/green]" if context.storm_watch_enabled else "[yellow]Disabled[/yellow]",
    )

    console.print(table)


@cli.command()
@click.option("--every", default=12, type=click.IntRange(min=1), help="Show every Nth sample (default: hourly)")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def day(ctx, every, as_json):
    """Show the generated story day."""
    rows = ctx.obj["samples"][::every]

    if as_json:
        click.echo(json.dumps([asdict(s) for s in rows], indent=2))
        return

    table = Table(title="Story Day")
    table.add_column("Time", style="cyan")
    table.add_column("Solar kW", justify="right")
    table.add_column("Home kW", justify="right")
    table.add_column("Battery kW", justify="right")
    table.add_column("Grid kW", justify="right")
    table.add_column("SOC", justify="right")

    for s in rows:
        table.add_row(
            minutes_to_label(s.minute),
            f"{s.solar_kw:.2f}",
            f"{s.home_kw:.2f}",
            f"{s.battery_kw:+.2f}",
            f"{s.grid_kw:+.2f}",
            f"{s.soc_pct:.1f}%",
        )

    console.print(table)


@cli.command("summary")
@window_options
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def summary_cmd(ctx, start, end, as_json):
    """Summarize energy flows over a window."""
    window_samples = samples_in_window(ctx.obj["samples"], start, end)
    data = summary.summarize_window(window_samples)

    if as_json:
        payload = asdict(data)
        payload["grid_dominance"] = summary.grid_dominance(data)
        click.echo(json.dumps(payload, indent=2))
    else:
        console.print(summary.format_window_summary_text(data, start, end))


@cli.command("explain")
@window_options
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def explain_cmd(ctx, start, end, as_json):
    """Explain what the battery did in a window."""
    events = explain.build_timeline(ctx.obj["samples"], ctx.obj["context"], start, end)

    if as_json:
        click.echo(json.dumps([asdict(e) for e in events], indent=2))
        return

    if not events:
        console.print("[yellow]No samples in this window[/yellow]")
        return

    console.print(f"[bold]Explain {format_window(start, end)}[/bold]")
    for event in events:
        console.print(
            f"\n[cyan]{minutes_to_label(event.minute)}[/cyan]  "
            f"[bold]{event.title}[/bold] [dim]({event.category_label})[/dim]"
        )
        console.print(f"  {event.description}")
        for reason in event.reasons:
            console.print(f"  [green]{reason.title}[/green] [dim]{reason.code}, {reason.confidence}[/dim]")
            for line in reason.evidence:
                console.print(f"    - {line}")


@cli.command("replay")
@window_options
@click.option("--mode", type=click.Choice(MODES), help="Control mode to replay with")
@click.option(
    "--reserve",
    type=click.IntRange(RESERVE_MIN, RESERVE_MAX),
    help=f"Backup reserve % ({RESERVE_MIN}-{RESERVE_MAX})",
)
@click.option("--peak-start", callback=_parse_time_option, help="Peak window start (HH:MM)")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def replay_cmd(ctx, start, end, mode, reserve, peak_start, as_json):
    """Replay a window with different settings and compare."""
    context = ctx.obj["context"]
    overrides = ReplayOverrides(mode=mode, backup_reserve_pct=reserve, peak_start_min=peak_start)
    result = replay.replay_window(ctx.obj["samples"], context, start, end, overrides)
    changes = replay.describe_expected_changes(
        context, start, end, result.mode_used, result.reserve_used, result.deltas
    )

    if as_json:
        payload = asdict(result)
        payload["expected_changes"] = changes
        click.echo(json.dumps(payload, indent=2))
        return

    title = f"Replay {format_window(start, end)} ({result.mode_used}, reserve {result.reserve_used:g}%)"
    table = Table(title=title)
    table.add_column("Metric", style="cyan")
    table.add_column("Actual", justify="right")
    table.add_column("Replay", justify="right")
    table.add_column("Delta", justify="right")

    actual, replayed, deltas = result.actual, result.replay, result.deltas
    table.add_row(
        "End SOC", f"{actual.end_soc}%", f"{replayed.end_soc}%", f"{_signed(deltas.end_soc_pct, 1)}%"
    )
    table.add_row(
        "Grid import",
        f"{actual.grid_import_kwh} kWh",
        f"{replayed.grid_import_kwh} kWh",
        f"{_signed(deltas.grid_import_kwh, 2)} kWh",
    )
    table.add_row(
        "Battery discharge",
        f"{actual.battery_discharge_kwh} kWh",
        f"{replayed.battery_discharge_kwh} kWh",
        f"{_signed(deltas.battery_discharge_kwh, 2)} kWh",
    )
    table.add_row("Grid export", f"{actual.grid_export_kwh} kWh", f"{replayed.grid_export_kwh} kWh", "")
    table.add_row("Battery charge", f"{actual.battery_charge_kwh} kWh", f"{replayed.battery_charge_kwh} kWh", "")

    console.print(table)
    console.print("\n[cyan]Expected changes:[/cyan]")
    for line in changes:
        console.print(f"  - {line}")
    console.print("[dim]Illustrative replay for selected window only.[/dim]")


if __name__ == "__main__":
    cli()
