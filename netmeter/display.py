"""Rich-based display functions for netmeter."""

import time
from datetime import datetime
from typing import Any, Optional

from rich.console import Console
from rich.live import Live
from rich.panel import Panel
from rich.table import Table

from netmeter.engine import SamplingEngine
from netmeter.models import ConnectionStatus, DailyStats, PublishedMetrics
from netmeter.utils import format_bytes, format_speed, format_uptime

console = Console()

STATUS_STYLES = {
    ConnectionStatus.CONNECTED: "green",
    ConnectionStatus.DISCONNECTED: "red",
    ConnectionStatus.CONNECTING: "yellow",
    ConnectionStatus.ERROR: "red",
}


def print_success(message: str) -> None:
    """Print success message."""
    console.print(f"[green]✓[/green] {message}")


def print_error(message: str) -> None:
    """Print error message."""
    console.print(f"[red]✗[/red] {message}")


def print_info(message: str) -> None:
    """Print info message."""
    console.print(f"[blue]ℹ[/blue] {message}")


def print_warning(message: str) -> None:
    """Print warning message."""
    console.print(f"[yellow]⚠[/yellow] {message}")


def status_text(metrics: PublishedMetrics) -> str:
    """One-line connection status."""
    if metrics.status == ConnectionStatus.CONNECTED:
        return f"Connected via {metrics.interface_description}"
    if metrics.status == ConnectionStatus.DISCONNECTED:
        return "Network Disconnected"
    if metrics.status == ConnectionStatus.CONNECTING:
        return "Connecting..."
    reason = metrics.last_error.message if metrics.last_error else "unknown"
    return f"Error: {reason}"


def build_metrics_panel(metrics: PublishedMetrics) -> Panel:
    """Build the live metrics panel.

    Args:
        metrics: Current snapshot

    Returns:
        Rich Panel object
    """
    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column("", style="dim", width=18)
    table.add_column("", justify="right", width=14)
    table.add_column("", justify="right", width=14)

    table.add_row("", "[bold green]Upload ↑[/bold green]", "[bold blue]Download ↓[/bold blue]")
    table.add_row(
        "Speed",
        f"[green]{format_speed(metrics.upload_speed)}[/green]",
        f"[blue]{format_speed(metrics.download_speed)}[/blue]",
    )
    table.add_row(
        "Peak",
        format_speed(metrics.peak_upload_speed),
        format_speed(metrics.peak_download_speed),
    )
    table.add_row(
        "Today",
        f"[yellow]{format_bytes(metrics.total_uploaded_today)}[/yellow]",
        f"[yellow]{format_bytes(metrics.total_downloaded_today)}[/yellow]",
    )
    table.add_row("", "", "")
    table.add_row("Interface", f"{metrics.interface_name} ({metrics.interface_description})", "")
    table.add_row("Local IP", metrics.ip_address, "")
    table.add_row("External IP", metrics.external_ip_address, "")
    table.add_row("Uptime", format_uptime(metrics.network_uptime), "")

    style = STATUS_STYLES.get(metrics.status, "white")
    timestamp = datetime.now().strftime('%H:%M:%S')
    return Panel(
        table,
        title=f"[bold]netmeter - {timestamp}[/bold]\n[{style}]{status_text(metrics)}[/{style}]",
        subtitle="[dim]Ctrl+C to quit[/dim]",
        border_style=style
    )


def print_daily_table(stats: list[DailyStats], title: str) -> None:
    """Print per-day totals as a table.

    Args:
        stats: Days to show, in display order
        title: Table title
    """
    total_up = sum(s.total_uploaded for s in stats)
    total_down = sum(s.total_downloaded for s in stats)

    table = Table(
        title=f"[bold]{title}[/bold]\nTotal: {format_bytes(total_up + total_down)}",
        show_header=True,
        header_style="bold cyan"
    )

    table.add_column("Day", style="white", width=14)
    table.add_column("Uploaded", justify="right", style="green")
    table.add_column("Downloaded", justify="right", style="blue")
    table.add_column("Peak ↑", justify="right")
    table.add_column("Peak ↓", justify="right")

    for day in stats:
        table.add_row(
            day.date.strftime('%a, %b %d'),
            format_bytes(day.total_uploaded),
            format_bytes(day.total_downloaded),
            format_speed(day.peak_upload_speed),
            format_speed(day.peak_download_speed),
        )

    console.print()
    console.print(table)
    console.print()


def print_today(stats: DailyStats) -> None:
    """Print today's usage panel."""
    lines = [
        f"Uploaded: [green]{format_bytes(stats.total_uploaded)}[/green]",
        f"Downloaded: [blue]{format_bytes(stats.total_downloaded)}[/blue]",
        f"Total: [yellow]{format_bytes(stats.total_uploaded + stats.total_downloaded)}[/yellow]",
        f"Peak upload: {format_speed(stats.peak_upload_speed)}",
        f"Peak download: {format_speed(stats.peak_download_speed)}",
    ]

    panel = Panel(
        "\n".join(lines),
        title=f"[bold]Today ({stats.date.isoformat()})[/bold]",
        border_style="cyan"
    )

    console.print()
    console.print(panel)
    console.print()


def print_config(config_data: dict) -> None:
    """Print configuration panel."""
    lines = [
        f"Sample interval: {config_data.get('sample_interval_ms')} ms",
        f"Publish interval: {config_data.get('publish_interval_ms')} ms",
        f"Interface cache TTL: {config_data.get('interface_cache_ttl')}s",
        f"Link poll interval: {config_data.get('path_poll_sec')}s",
        f"HTTP timeout: {config_data.get('http_timeout')}s",
        f"Log level: {config_data.get('log_level')}",
    ]

    services = config_data.get('external_ip_services', [])
    if services:
        lines.append("External IP services:")
        for service in services:
            lines.append(f"  [cyan]{service['name']}[/cyan] {service['url']} ({service['format']})")

    panel = Panel(
        "\n".join(lines),
        title="[bold]Configuration[/bold]",
        border_style="blue"
    )

    console.print()
    console.print(panel)
    console.print()


def print_interfaces(summary: dict[str, Any], primary: Optional[str] = None) -> None:
    """Print interface table."""
    if 'error' in summary:
        print_error(summary['error'])
        return

    table = Table(title="[bold]Network Interfaces[/bold]")
    table.add_column("Interface", style="cyan")
    table.add_column("Type")
    table.add_column("IP")
    table.add_column("Received", justify="right", style="blue")
    table.add_column("Sent", justify="right", style="green")
    table.add_column("", style="dim")

    for iface in sorted(summary['interfaces'], key=lambda i: i['name']):
        marker = "(primary)" if iface['name'] == primary else ""
        if not iface['is_active']:
            marker = marker or "[dim]inactive[/dim]"
        table.add_row(
            iface['name'],
            iface['description'],
            iface['ip_address'] or "-",
            format_bytes(iface['input_bytes']),
            format_bytes(iface['output_bytes']),
            marker
        )

    console.print()
    console.print(table)
    console.print(
        f"\nTotal: {summary['total_interfaces']} interfaces, "
        f"{summary['active_interfaces']} active"
    )
    console.print()


def run_live_monitor(engine: SamplingEngine) -> None:
    """Render engine snapshots with Rich Live until Ctrl+C.

    Args:
        engine: Running SamplingEngine instance
    """
    console.print()

    try:
        with Live(
            build_metrics_panel(engine.snapshot),
            console=console,
            refresh_per_second=4
        ) as live:
            unsubscribe = engine.subscribe(lambda m: live.update(build_metrics_panel(m)))
            try:
                while True:
                    time.sleep(0.5)
            finally:
                unsubscribe()
    except KeyboardInterrupt:
        pass

    console.print("\n[dim]Live monitoring stopped.[/dim]\n")
