#!/usr/bin/env python3
"""Traffic Alert Monitor - CLI Entry Point."""
import sys
import time
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent))

import click
from rich.console import Console
from rich.table import Table

from __version__ import __version__

console = Console()

SEVERITY_STYLES = {"high": "bold red", "medium": "yellow", "low": "blue"}


def _init_components(config_path=None, verbose=False):
    """Lazy initialization of all components."""
    from utils.logger import setup_logging
    from config import load_config
    from models.database import Database
    from monitor.sources import build_source
    from alerts.engine import AlertEngine
    from alerts.channels import build_channels

    config = load_config(config_path)
    setup_logging("DEBUG" if verbose else config["logging"]["level"], config["logging"].get("file"))

    db = Database(config["database"]["path"])
    db.connect()

    source = build_source(config)
    channels = build_channels(config, interactive=sys.stdout.isatty())
    engine = AlertEngine(db, source, config, channels)

    return {"config": config, "db": db, "source": source, "engine": engine}


@click.group()
@click.option("--config", "config_path", default=None, help="Path to config YAML")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.version_option(__version__, prog_name="cfalerts")
@click.pass_context
def cli(ctx, config_path, verbose):
    """Traffic Alert Monitor - rule-based alerts on HTTP status metrics."""
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path
    ctx.obj["verbose"] = verbose


def _get_components(ctx):
    if "_components" not in ctx.obj:
        components = _init_components(ctx.obj.get("config_path"), ctx.obj.get("verbose"))
        ctx.obj["_components"] = components
        ctx.call_on_close(components["db"].close)
    return ctx.obj["_components"]


def _fail(message):
    console.print(f"[red]✗[/red] {message}")
    raise SystemExit(1)


def _print_alerts(alerts):
    for a in alerts:
        style = SEVERITY_STYLES.get(a.severity.value, "")
        console.print(f"  [{style}][{a.severity.value.upper()}][/{style}] {a.message}")


# ──────────────────────────────────────────────────────
# RULES
# ──────────────────────────────────────────────────────
@cli.group()
def rules():
    """Alert rule management."""
    pass


@rules.command("list")
@click.pass_context
def rules_list(ctx):
    """List all alert rules with their current state."""
    from utils.formatters import format_condition

    engine = _get_components(ctx)["engine"]
    all_rules = engine.list_rules()
    if not all_rules:
        console.print("[dim]No rules configured. Add one with: python main.py rules add[/dim]")
        return

    table = Table(title="Alert Rules", show_header=True)
    table.add_column("ID", style="dim")
    table.add_column("Name")
    table.add_column("Condition")
    table.add_column("Zone")
    table.add_column("Enabled")
    for r in all_rules:
        table.add_row(r.id, r.name, format_condition(r), r.zone_id or "all",
                      "[green]✓[/green]" if r.enabled else "[red]✗[/red]")
    console.print(table)


@rules.command("add")
@click.option("--name", required=True, help="Rule label")
@click.option("--metric", type=click.Choice(["status5xx", "status4xx", "status2xx", "status3xx"]),
              default="status5xx", show_default=True)
@click.option("--condition", type=click.Choice(["increase", "decrease", "threshold"]),
              default="increase", show_default=True)
@click.option("--value", type=float, required=True, help="Percent change, or absolute value for threshold")
@click.option("--window", "time_window_minutes", type=int, default=5, show_default=True,
              help="Time window in minutes (increase/decrease)")
@click.option("--zone", "zone_id", default=None, help="Restrict to one zone id")
@click.option("--cooldown", "cooldown_minutes", type=int, default=None, help="Cooldown in minutes")
@click.option("--disabled", is_flag=True, help="Create the rule disabled")
@click.pass_context
def rules_add(ctx, name, metric, condition, value, time_window_minutes, zone_id, cooldown_minutes, disabled):
    """Create a new alert rule."""
    from models.errors import InvalidRule

    engine = _get_components(ctx)["engine"]
    try:
        rule_id = engine.create_rule({
            "name": name, "metric": metric, "condition": condition, "value": value,
            "time_window_minutes": time_window_minutes, "zone_id": zone_id,
            "cooldown_minutes": cooldown_minutes, "enabled": not disabled,
        })
    except InvalidRule as e:
        _fail(f"Invalid rule: {e}")
    console.print(f"[green]✓[/green] Created rule [bold]{rule_id}[/bold]")


@rules.command("update")
@click.argument("rule_id")
@click.option("--name", default=None)
@click.option("--metric", type=click.Choice(["status5xx", "status4xx", "status2xx", "status3xx"]), default=None)
@click.option("--condition", type=click.Choice(["increase", "decrease", "threshold"]), default=None)
@click.option("--value", type=float, default=None)
@click.option("--window", "time_window_minutes", type=int, default=None)
@click.option("--zone", "zone_id", default=None)
@click.option("--cooldown", "cooldown_minutes", type=int, default=None)
@click.pass_context
def rules_update(ctx, rule_id, **fields):
    """Change fields of an existing rule."""
    from models.errors import InvalidRule, NotFound

    changes = {k: v for k, v in fields.items() if v is not None}
    if not changes:
        _fail("Nothing to update")
    engine = _get_components(ctx)["engine"]
    try:
        engine.update_rule(rule_id, changes)
    except (InvalidRule, NotFound) as e:
        _fail(str(e))
    console.print(f"[green]✓[/green] Updated {rule_id}: {', '.join(sorted(changes))}")


def _set_enabled(ctx, rule_id, enabled):
    from models.errors import NotFound

    engine = _get_components(ctx)["engine"]
    try:
        engine.update_rule(rule_id, enabled=enabled)
    except NotFound as e:
        _fail(str(e))
    console.print(f"[green]✓[/green] {'Enabled' if enabled else 'Disabled'} {rule_id}")


@rules.command("enable")
@click.argument("rule_id")
@click.pass_context
def rules_enable(ctx, rule_id):
    """Enable a rule."""
    _set_enabled(ctx, rule_id, True)


@rules.command("disable")
@click.argument("rule_id")
@click.pass_context
def rules_disable(ctx, rule_id):
    """Disable a rule (it is no longer sampled or evaluated)."""
    _set_enabled(ctx, rule_id, False)


@rules.command("delete")
@click.argument("rule_id")
@click.pass_context
def rules_delete(ctx, rule_id):
    """Delete a rule. Its past alerts stay in history."""
    _get_components(ctx)["engine"].delete_rule(rule_id)
    console.print(f"[green]✓[/green] Deleted {rule_id}")


@rules.command("import")
@click.argument("path", required=False)
@click.pass_context
def rules_import(ctx, path):
    """Create rules from a YAML file (defaults to alerts.rules_file)."""
    c = _get_components(ctx)
    path = path or c["config"]["alerts"].get("rules_file")
    if not path or not Path(path).exists():
        _fail(f"Rules file not found: {path}")
    created = c["engine"].rules.import_yaml(path)
    console.print(f"[green]✓[/green] Imported {len(created)} rule(s) from {path}")


# ──────────────────────────────────────────────────────
# ALERTS
# ──────────────────────────────────────────────────────
@cli.group()
def alerts():
    """Alert history and acknowledgment."""
    pass


@alerts.command("history")
@click.option("--limit", default=20, type=int, help="Number of alerts to show")
@click.pass_context
def alerts_history(ctx, limit):
    """Show past alerts, most recent first."""
    from utils.formatters import format_timestamp

    recent = _get_components(ctx)["engine"].list_alerts(limit=limit)
    if not recent:
        console.print("[dim]No alerts in history[/dim]")
        return
    table = Table(title="Alert History", show_header=True)
    table.add_column("Time", style="dim")
    table.add_column("ID", style="dim")
    table.add_column("Severity")
    table.add_column("Message")
    table.add_column("Ack")
    for a in recent:
        style = SEVERITY_STYLES.get(a.severity.value, "")
        table.add_row(format_timestamp(a.triggered_at), a.id,
                      f"[{style}]{a.severity.value}[/{style}]", a.message[:80],
                      "[green]✓[/green]" if a.acknowledged else "")
    console.print(table)


@alerts.command("ack")
@click.argument("alert_id")
@click.pass_context
def alerts_ack(ctx, alert_id):
    """Acknowledge an alert."""
    from models.errors import NotFound
    from utils.formatters import format_timestamp

    try:
        alert = _get_components(ctx)["engine"].acknowledge(alert_id)
    except NotFound as e:
        _fail(str(e))
    console.print(f"[green]✓[/green] {alert_id} acknowledged at {format_timestamp(alert.acknowledged_at)}")


@alerts.command("clear")
@click.option("--yes", is_flag=True, help="Skip confirmation")
@click.pass_context
def alerts_clear(ctx, yes):
    """Delete all alert history."""
    if not yes and not click.confirm("Delete all alert history?"):
        return
    removed = _get_components(ctx)["engine"].clear_history()
    console.print(f"[green]✓[/green] Removed {removed} alert(s)")


@alerts.command("stats")
@click.pass_context
def alerts_stats(ctx):
    """Alert counts by severity."""
    stats = _get_components(ctx)["engine"].history.stats()
    console.print(f"Total: [bold]{stats['total']}[/bold]  Unacknowledged: [bold]{stats['unacknowledged']}[/bold]")
    for sev in ("high", "medium", "low"):
        count = stats["by_severity"].get(sev, 0)
        style = SEVERITY_STYLES[sev]
        console.print(f"  [{style}]{sev:<7}[/{style}] {count}")


# ──────────────────────────────────────────────────────
# EVALUATION
# ──────────────────────────────────────────────────────
@cli.command()
@click.pass_context
def check(ctx):
    """Run one evaluation pass over all enabled rules."""
    engine = _get_components(ctx)["engine"]
    engine.initialize(start_scheduler=False)
    try:
        triggered = engine.tick()
    finally:
        engine.shutdown()
    if triggered:
        console.print(f"[bold yellow]{len(triggered)} alert(s) triggered:[/bold yellow]")
        _print_alerts(triggered)
    else:
        console.print("[green]All clear - no alerts triggered[/green]")


@cli.command("test")
@click.pass_context
def test_rules(ctx):
    """Dry-run all rules against current values (no alerts recorded)."""
    from utils.formatters import format_condition, format_count, format_pct

    engine = _get_components(ctx)["engine"]
    try:
        results = engine.test_rules()
    finally:
        engine.shutdown()

    table = Table(title="Alert Rules Test", show_header=True)
    table.add_column("Rule")
    table.add_column("Condition")
    table.add_column("Current")
    table.add_column("Change")
    table.add_column("Would Fire")
    table.add_column("Enabled")
    rules_by_id = {r.id: r for r in engine.list_rules()}
    for r in results:
        rule = rules_by_id.get(r["rule_id"])
        fire_str = "[green]YES[/green]" if r["would_fire"] else "[dim]no[/dim]"
        change = format_pct(r["observed"]) if r["condition"] != "threshold" and r["observed"] is not None else "-"
        table.add_row(r["name"], format_condition(rule) if rule else r["condition"],
                      format_count(r["current_value"]), change, fire_str,
                      "✓" if r["enabled"] else "✗")
    console.print(table)


@cli.command()
@click.pass_context
def status(ctx):
    """Show engine and history status."""
    engine = _get_components(ctx)["engine"]
    engine.initialize(start_scheduler=False)
    s = engine.status()
    engine.shutdown()
    console.print(f"Rules: [bold]{s['rules']}[/bold] ({s['enabled_rules']} enabled)")
    console.print(f"Firing: {', '.join(s['firing']) if s['firing'] else '[dim]none[/dim]'}")
    console.print(f"Alerts: {s['alerts']['total']} ({s['alerts']['unacknowledged']} unacknowledged)")


@cli.command()
@click.pass_context
def run(ctx):
    """Start the monitor loop in the foreground (Ctrl+C to stop)."""
    c = _get_components(ctx)
    engine = c["engine"]
    interval = c["config"]["monitor"]["tick_interval"]

    def _on_tick(emitted):
        if emitted:
            _print_alerts(emitted)

    engine.scheduler.on_tick(_on_tick)
    engine.initialize()
    console.print(f"[bold]Monitoring {len(engine.list_rules())} rule(s) every {interval}s.[/bold] Press Ctrl+C to stop.")
    try:
        while True:
            time.sleep(1)
    except KeyboardInterrupt:
        console.print("\nStopping...")
    finally:
        engine.shutdown()


@cli.command()
@click.option("--port", default=None, type=int, help="Port to bind to")
@click.option("--host", default=None, type=str, help="Host to bind to")
@click.pass_context
def web(ctx, port, host):
    """Serve the JSON API with the monitor running in the background."""
    from web.app import create_app

    c = _get_components(ctx)
    web_cfg = c["config"].get("web", {})
    host = host or web_cfg.get("host", "127.0.0.1")
    port = port or web_cfg.get("port", 5000)

    engine = c["engine"]
    engine.initialize()
    app = create_app(c["config"], engine)

    console.print(f"\n[bold]Traffic Alert Monitor -- API[/bold]\n")
    console.print(f"  Rules:   http://{host}:{port}/api/rules")
    console.print(f"  Alerts:  http://{host}:{port}/api/alerts")
    console.print(f"\n  Press Ctrl+C to stop.\n")

    try:
        app.run(host=host, port=port, debug=False)
    finally:
        engine.shutdown()


if __name__ == "__main__":
    cli()
