import logging
from collections import deque

from rich import box
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from .model.Core.Stats import ConnectionStats, format_bytes

LEVEL_STYLES = {
    "DEBUG": "dim",
    "INFO": "cyan",
    "WARNING": "yellow",
    "ERROR": "red",
    "CRITICAL": "bold red",
}


class DashboardLogHandler(logging.Handler):
    """Keeps the most recent log records for the dashboard's log table."""

    def __init__(self, maxlen=10, level=logging.NOTSET):
        super().__init__(level)
        self.records = deque(maxlen=maxlen)

    def emit(self, record):
        try:
            self.records.append((record.levelname, self.format(record)))
        except Exception:
            self.handleError(record)


def _format_ms(value):
    return "N/A" if value is None else f"{value:.2f} ms"


def build_dashboard(stats: ConnectionStats, listen_address: str, log_handler: DashboardLogHandler,
                    auth_required: bool = True):
    snap = stats.snapshot()

    # Status Panel
    status_panel = Panel(
        f"[bold green]🟢 Running[/bold green]\n"
        f"[bold]Listening:[/bold] {listen_address}\n"
        f"[bold]Auth:[/bold] {'required' if auth_required else 'disabled'}\n"
        f"[bold]Uptime:[/bold] {snap['uptime']} sec\n"
        f"[bold]Active Connections:[/bold] {snap['active_connections']}\n"
        f"[bold]Total Connections:[/bold] {snap['total_connections']}",
        title="🌐 [bold cyan]Status[/bold cyan]",
        border_style="green",
        padding=(1, 2),
    )

    # Connect Times Panel
    connect_panel = Panel(
        f"[bold]📈 Avg Connect:[/bold] {_format_ms(snap['connect_avg'])}\n"
        f"[bold]📉 Min Connect:[/bold] {_format_ms(snap['connect_min'])}\n"
        f"[bold]📈 Max Connect:[/bold] {_format_ms(snap['connect_max'])}",
        title="⏱️ [bold magenta]Upstream Connect Times[/bold magenta]",
        border_style="magenta",
        padding=(1, 2),
    )

    # Traffic Panel
    traffic_panel = Panel(
        f"[bold]↑ Sent:[/bold] {format_bytes(snap['traffic_sent'])}\n"
        f"[bold]↓ Received:[/bold] {format_bytes(snap['traffic_received'])}",
        title="📊 [bold blue]Traffic[/bold blue]",
        border_style="blue",
        padding=(1, 2),
    )

    # Logs Table
    log_table = Table(title="🧾 [bold red]Recent Logs[/bold red]", expand=True, box=box.SIMPLE)
    log_table.add_column("Level", style="bold cyan", justify="center")
    log_table.add_column("Message", style="dim white", justify="left")
    for level, msg in list(log_handler.records):
        style = LEVEL_STYLES.get(level, "white")
        log_table.add_row(f"[{style}]{level}[/]", Text(msg))

    # Dashboard Layout
    grid = Table.grid(expand=True)
    grid.add_row(status_panel, traffic_panel)
    grid.add_row(connect_panel)
    grid.add_row(log_table)

    return grid
