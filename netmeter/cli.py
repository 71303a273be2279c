"""CLI commands for netmeter using Typer."""

from typing import Optional

import typer

from netmeter import __version__
from netmeter.config import NetmeterConfig, load_config, set_config_value, setup_logging
from netmeter.display import (
    console,
    print_config,
    print_daily_table,
    print_error,
    print_info,
    print_interfaces,
    print_success,
    print_today,
    print_warning,
    run_live_monitor,
)
from netmeter.errors import ExternalIPFetchFailed, NetmeterError
from netmeter.external_ip import ExternalIPResolver
from netmeter.interfaces import InterfaceReader
from netmeter.stats_store import DailyStatsStore

# Create Typer app
app = typer.Typer(
    name="netmeter",
    help="Network throughput and daily usage meter",
    add_completion=False,
    no_args_is_help=True,
)

config_app = typer.Typer(help="Configuration commands")
app.add_typer(config_app, name="config")


def open_store(config: NetmeterConfig) -> DailyStatsStore:
    store = DailyStatsStore(config.stats_path)
    if store.last_error is not None:
        print_warning(f"Usage history could not be read: {store.last_error.message}")
    return store


def build_resolver(config: NetmeterConfig) -> ExternalIPResolver:
    return ExternalIPResolver(config.external_ip_services, timeout=config.http_timeout)


# ═══════════════════════════════════════════════════════════════
# MONITOR COMMANDS
# ═══════════════════════════════════════════════════════════════

@app.command()
def run(
    sample_ms: Optional[int] = typer.Option(None, "--sample-ms", "-s", help="Sampling interval (ms)"),
    publish_ms: Optional[int] = typer.Option(None, "--publish-ms", "-p", help="Publish interval (ms)"),
    external_ip: bool = typer.Option(True, "--external-ip/--no-external-ip", help="Look up the public IP"),
):
    """Live throughput monitor."""
    from netmeter.engine import SamplingEngine

    config = load_config()
    setup_logging(config)

    engine = SamplingEngine(
        reader=InterfaceReader(cache_ttl=config.interface_cache_ttl),
        store=open_store(config),
        resolver=build_resolver(config) if external_ip else None,
        config=config,
    )

    if not engine.start(sample_ms, publish_ms):
        print_error("Intervals must be greater than zero")
        raise typer.Exit(1)

    engine.start_link_observer()
    engine.resolve_external_ip()

    try:
        run_live_monitor(engine)
    finally:
        engine.shutdown()


# ═══════════════════════════════════════════════════════════════
# REPORT COMMANDS
# ═══════════════════════════════════════════════════════════════

@app.command()
def today():
    """Today's usage."""
    config = load_config()
    print_today(open_store(config).today())


@app.command()
def week():
    """Usage for the last 7 days."""
    config = load_config()
    print_daily_table(open_store(config).last_n_days(7), "LAST 7 DAYS")


@app.command()
def history(
    days: int = typer.Argument(30, help="Number of days")
):
    """Usage for the last N days."""
    if days <= 0:
        print_error("Number of days must be positive")
        raise typer.Exit(1)
    config = load_config()
    print_daily_table(open_store(config).last_n_days(days), f"LAST {days} DAYS")


@app.command()
def reset(
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation")
):
    """Delete all stored daily statistics."""
    if not yes:
        typer.confirm("Delete the whole usage history?", abort=True)

    config = load_config()
    store = open_store(config)
    store.reset_all()

    if store.last_error is not None:
        print_error(store.last_error.message)
        raise typer.Exit(1)
    print_success("Usage history deleted")


# ═══════════════════════════════════════════════════════════════
# NETWORK COMMANDS
# ═══════════════════════════════════════════════════════════════

@app.command()
def interfaces():
    """Show network interfaces."""
    config = load_config()
    reader = InterfaceReader(cache_ttl=config.interface_cache_ttl)

    primary = None
    try:
        primary = reader.primary_interface().name
    except NetmeterError as e:
        print_info(e.message)

    print_interfaces(reader.interface_summary(), primary)


@app.command()
def ip():
    """Show the external IP address."""
    config = load_config()
    resolver = build_resolver(config)

    try:
        address = resolver.fetch()
        console.print(address)
    except ExternalIPFetchFailed as e:
        print_error(e.message)
        raise typer.Exit(1)
    finally:
        resolver.close()


# ═══════════════════════════════════════════════════════════════
# CONFIG COMMANDS
# ═══════════════════════════════════════════════════════════════

@config_app.command("show")
def config_show():
    """Show configuration."""
    config = load_config()
    print_config(config.model_dump(mode='json'))


@config_app.command("set")
def config_set(
    key: str = typer.Argument(..., help="Config key"),
    value: str = typer.Argument(..., help="New value")
):
    """Set a configuration value.

    Keys:
    - sample_interval_ms: Sampling interval (ms)
    - publish_interval_ms: Publish interval (ms)
    - interface_cache_ttl: Primary interface cache lifetime (s)
    - path_poll_sec: Link state poll interval (s)
    - http_timeout: External IP request timeout (s)
    - log_level: Log level (DEBUG, INFO, WARNING, ERROR)
    """
    try:
        set_config_value(key, value)
        print_success(f"{key} = {value}")
        print_info("Restart netmeter run for the change to take effect")
    except ValueError as e:
        print_error(str(e))
        raise typer.Exit(1)
    except PermissionError:
        print_error("Permission denied writing the config file")
        raise typer.Exit(1)


@app.command()
def version():
    """Show version."""
    console.print(f"netmeter v{__version__}")


if __name__ == "__main__":
    app()
