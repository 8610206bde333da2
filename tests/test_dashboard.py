import logging

from rich.console import Console

from gatenet.dashboard import DashboardLogHandler, build_dashboard
from gatenet.model.Core.Stats import ConnectionStats, format_bytes


def test_format_bytes():
    assert format_bytes(0) == "0.00 bytes"
    assert format_bytes(1536) == "1.50 KB"
    assert format_bytes(5 * 1024 * 1024) == "5.00 MB"


def test_stats_snapshot():
    stats = ConnectionStats()
    stats.connection_opened()
    stats.connection_opened()
    stats.connection_closed()
    stats.add_sent(100)
    stats.add_received(250)
    stats.add_connect_time(2.0)
    stats.add_connect_time(4.0)

    snap = stats.snapshot()
    assert snap["total_connections"] == 2
    assert snap["active_connections"] == 1
    assert snap["traffic_sent"] == 100
    assert snap["traffic_received"] == 250
    assert snap["connect_avg"] == 3.0
    assert snap["connect_min"] == 2.0
    assert snap["connect_max"] == 4.0


def test_empty_stats_have_no_latency():
    snap = ConnectionStats().snapshot()
    assert snap["connect_avg"] is None


def test_log_handler_keeps_recent_records():
    handler = DashboardLogHandler(maxlen=2)
    handler.setFormatter(logging.Formatter("%(message)s"))
    log = logging.getLogger("gatenet.test_dashboard")
    log.addHandler(handler)
    log.setLevel(logging.INFO)
    try:
        for index in range(3):
            log.info(f"line {index}")
    finally:
        log.removeHandler(handler)
    assert list(handler.records) == [("INFO", "line 1"), ("INFO", "line 2")]


def test_dashboard_renders():
    stats = ConnectionStats()
    stats.add_sent(2048)
    handler = DashboardLogHandler()
    handler.records.append(("WARNING", "Connection abc: [cannot connect]"))

    console = Console(record=True, width=120)
    console.print(build_dashboard(stats, "0.0.0.0:8080", handler))
    text = console.export_text()
    assert "0.0.0.0:8080" in text
    assert "2.00 KB" in text
    assert "[cannot connect]" in text
    assert "N/A" in text
