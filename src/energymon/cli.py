"""Command-line interface for the energy monitor."""

import json
import logging
from datetime import datetime
from pathlib import Path

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from . import db
from .analysis.summary import format_snapshot_text, get_snapshot_summary
from .config import ConfigError, MonitorConfig, load_config
from .poller import PollResult, poll
from .tariffs import snapshot_costs

console = Console()


@click.group()
@click.option("--db-path", type=click.Path(), help="Path to SQLite database")
@click.option("--config", "config_path", type=click.Path(), help="Path to energymon.yaml")
@click.option("-v", "--verbose", is_flag=True, help="Show debug logging")
@click.pass_context
def cli(ctx, db_path, config_path, verbose):
    """Home energy monitor - poll a CurrentCost display and track usage."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
    )
    ctx.ensure_object(dict)
    ctx.obj["db_path"] = Path(db_path) if db_path else None
    ctx.obj["config_path"] = Path(config_path) if config_path else None


def get_config(ctx) -> MonitorConfig:
    """Load config once per invocation; exits on a bad config."""
    if "config" not in ctx.obj:
        try:
            ctx.obj["config"] = load_config(ctx.obj["config_path"])
        except ConfigError as e:
            console.print(f"[red]Configuration error: {e}[/red]")
            ctx.exit(2)
    return ctx.obj["config"]


def get_db_path(ctx) -> Path | None:
    return ctx.obj["db_path"] or get_config(ctx).db_path


def print_result_table(result: PollResult, config: MonitorConfig) -> None:
    snapshot = result.snapshot
    if snapshot is None:
        console.print("[yellow]No readings stored yet[/yellow]")
        return

    currency = config.tariff.currency_symbol
    night = config.tariff.has_night_rate

    table = Table(title=f"Energy Monitor @ {snapshot.timestamp:%Y-%m-%d %H:%M}")
    table.add_column("Sensor", style="cyan")
    table.add_column("Ch", justify="right")
    table.add_column("Now", justify="right")
    table.add_column("Today (Wh)", justify="right")
    table.add_column("Month (Wh)", justify="right")
    table.add_column("Year (Wh)", justify="right")
    if night:
        table.add_column("Night month (Wh)", justify="right", style="dim")
    table.add_column("Month cost", justify="right", style="green")

    for sensor_id, state in sorted(snapshot.by_sensor.items()):
        label = "house" if sensor_id == 0 else str(sensor_id)
        for reading in state.reading.channels:
            acc = state.accumulator(reading.channel_id)
            cost = result.costs.get(sensor_id, {}).get(reading.channel_id)
            row = [
                label,
                str(reading.channel_id),
                f"{reading.instant_value:g} {reading.unit}",
                f"{acc.daily:.1f}" if acc else "",
                f"{acc.monthly:.1f}" if acc else "",
                f"{acc.yearly:.1f}" if acc else "",
            ]
            if night:
                row.append(
                    f"{acc.nightly_monthly:.1f}" if acc and acc.nightly_monthly is not None else ""
                )
            row.append(f"{currency}{cost.cost:.2f}" if cost else "")
            table.add_row(*row)
            label = ""

    console.print(table)


# Database commands
@cli.group()
def database():
    """Database management commands."""
    pass


@database.command("init")
@click.pass_context
def db_init(ctx):
    """Initialize the database schema."""
    db.init_db(get_db_path(ctx))
    console.print("[green]Database initialized successfully[/green]")


@database.command("stats")
@click.pass_context
def db_stats(ctx):
    """Show what is currently stored."""
    try:
        stats = db.get_stats(get_db_path(ctx))
    except db.StoreError as e:
        console.print(f"[red]Error: {e}[/red]")
        ctx.exit(1)

    table = Table(title="Database Statistics")
    table.add_column("Category", style="cyan")
    table.add_column("Value", justify="right")
    table.add_row("Last poll", stats["last_poll"] or "N/A")
    table.add_row("Sensors", str(stats["sensors"]))
    table.add_row("Channels", str(stats["channels"]))

    console.print(table)


@cli.command("poll")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def poll_cmd(ctx, as_json):
    """Read the monitor (if due) and update running totals.

    This should be run periodically (e.g., every 5 minutes via cron).
    """
    config = get_config(ctx)
    try:
        result = poll(datetime.now(), config, db_path=get_db_path(ctx))
    except db.StoreError as e:
        console.print(f"[red]Failed to update stored readings: {e}[/red]")
        ctx.exit(1)

    if as_json:
        click.echo(json.dumps(get_snapshot_summary(result, config.tariff), indent=2))
        return

    if result.warning:
        console.print(f"[yellow]Monitor not read, showing last snapshot: {result.warning}[/yellow]")
    elif not result.refreshed:
        console.print("[dim]Last reading is still fresh[/dim]")
    print_result_table(result, config)


@cli.command()
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def status(ctx, as_json):
    """Show the stored snapshot without reading the monitor."""
    config = get_config(ctx)
    try:
        snapshot = db.load_snapshot(get_db_path(ctx))
    except db.StoreError as e:
        console.print(f"[red]Error: {e}[/red]")
        ctx.exit(1)

    result = PollResult(
        snapshot=snapshot,
        costs=snapshot_costs(snapshot, config.tariff) if snapshot else {},
    )
    summary = get_snapshot_summary(result, config.tariff)

    if as_json:
        click.echo(json.dumps(summary, indent=2))
    else:
        console.print(format_snapshot_text(summary))


@cli.command()
@click.pass_context
def cost(ctx):
    """Show month-to-date cost per channel."""
    config = get_config(ctx)
    tariff = config.tariff
    try:
        snapshot = db.load_snapshot(get_db_path(ctx))
    except db.StoreError as e:
        console.print(f"[red]Error: {e}[/red]")
        ctx.exit(1)

    if snapshot is None:
        console.print("[yellow]No readings stored yet[/yellow]")
        return

    table = Table(title=f"Month to date ({snapshot.timestamp:%B %Y})")
    table.add_column("Sensor", style="cyan")
    table.add_column("Ch", justify="right")
    table.add_column("Day kWh", justify="right")
    table.add_column("Night kWh", justify="right")
    table.add_column("Cost", justify="right", style="green")

    for sensor_id, channels in sorted(snapshot_costs(snapshot, tariff).items()):
        for channel_id, channel_cost in sorted(channels.items()):
            night = channel_cost.night_usage_kwh
            table.add_row(
                "house" if sensor_id == 0 else str(sensor_id),
                str(channel_id),
                f"{channel_cost.usage_kwh:.2f}",
                f"{night:.2f}" if night is not None else "-",
                f"{tariff.currency_symbol}{channel_cost.cost:.2f}",
            )

    console.print(table)


# Alias for database command group
cli.add_command(database, name="db")


if __name__ == "__main__":
    cli()
