"""
GateNet command line.

    gatenet serve -p 8080 -u alice --password secret
    gatenet check --proxy http://127.0.0.1:8080 -u alice --password secret https://example.com
    gatenet echo -p 8081
"""

import argparse
import logging
import os
import signal
import sys
import threading
from logging.handlers import RotatingFileHandler

from rich.console import Console
from rich.live import Live
from rich.logging import RichHandler

from . import __version__
from .dashboard import DashboardLogHandler, build_dashboard
from .model.Core.header import ConfigError, Credentials, ProxyConfig
from .model.GateNetProxyServer import GateNetProxyServer

logger = logging.getLogger("gatenet")

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def setup_logging(verbose=False, log_file=None, console_handler=None):
    """
    Configure the ``gatenet`` loggers.

    Args:
        verbose: Log at DEBUG instead of INFO
        log_file: Also write to this file, rotated at 1 MB
        console_handler: Replaces the default RichHandler (dashboard mode)
    """
    level = logging.DEBUG if verbose else logging.INFO
    if console_handler is None:
        console_handler = RichHandler(rich_tracebacks=True, show_path=False)
        console_handler.setFormatter(logging.Formatter('%(message)s'))
    else:
        console_handler.setFormatter(logging.Formatter('%(asctime)s %(message)s', datefmt='%H:%M:%S'))
    handlers = [console_handler]

    if log_file:
        file_handler = RotatingFileHandler(log_file, maxBytes=1024 * 1024, backupCount=3)
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handlers.append(file_handler)

    logging.basicConfig(level=level, handlers=handlers, force=True)
    # werkzeug logs every request of the echo server at INFO
    logging.getLogger("werkzeug").setLevel(logging.WARNING)


def _positive_float(value):
    try:
        number = float(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"not a number: {value!r}")
    if number <= 0:
        raise argparse.ArgumentTypeError(f"must be greater than 0: {value!r}")
    return number


def _port(value):
    try:
        number = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"not a port number: {value!r}")
    if not 0 <= number < 65536:
        raise argparse.ArgumentTypeError(f"port out of range: {value!r}")
    return number


def build_parser():
    parser = argparse.ArgumentParser(
        prog="gatenet",
        description="Forward HTTP/HTTPS proxy behind a shared Basic-Auth credential",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    subparsers = parser.add_subparsers(dest="command", required=True)

    serve = subparsers.add_parser("serve", help="Run the proxy server")
    serve.add_argument("-H", "--host", default="0.0.0.0", help="Bind address")
    serve.add_argument("-p", "--port", type=_port, default=8080, help="Port to listen")
    serve.add_argument("-u", "--username", default=os.environ.get("GATENET_USERNAME"),
                       help="Proxy username (env GATENET_USERNAME). Omit with --password to disable auth")
    serve.add_argument("--password", default=os.environ.get("GATENET_PASSWORD"),
                       help="Proxy password (env GATENET_PASSWORD)")
    serve.add_argument("--connect-timeout", type=_positive_float, default=None,
                       help="Seconds to wait for upstream connects (default: wait forever)")
    serve.add_argument("--idle-timeout", type=_positive_float, default=None,
                       help="Close sessions idle this many seconds (default: never)")
    serve.add_argument("--log-file", help="Also log to this file")
    serve.add_argument("-d", "--dashboard", action="store_true", help="Show the live dashboard")
    serve.add_argument("-v", "--verbose", action="store_true", help="Debug logging")

    check = subparsers.add_parser("check", help="Fetch URLs through a running proxy")
    check.add_argument("urls", nargs="+", metavar="URL")
    check.add_argument("--proxy", default="http://127.0.0.1:8080", help="Proxy URL")
    check.add_argument("-u", "--username", default=os.environ.get("GATENET_USERNAME"))
    check.add_argument("--password", default=os.environ.get("GATENET_PASSWORD"))
    check.add_argument("--timeout", type=_positive_float, default=10.0)

    echo = subparsers.add_parser("echo", help="Run a catch-all origin that echoes requests")
    echo.add_argument("-H", "--host", default="0.0.0.0", help="Bind address")
    echo.add_argument("-p", "--port", type=_port, default=8081, help="Port to listen")

    return parser


def run_serve(args, parser):
    try:
        credentials = Credentials.create(args.username, args.password)
    except ConfigError as e:
        parser.error(str(e))

    config = ProxyConfig(
        host=args.host,
        port=args.port,
        credentials=credentials,
        connect_timeout=args.connect_timeout,
        idle_timeout=args.idle_timeout,
    )

    dashboard_handler = DashboardLogHandler() if args.dashboard else None
    setup_logging(args.verbose, args.log_file, console_handler=dashboard_handler)

    server = GateNetProxyServer(config)
    try:
        server.bind()
    except OSError as e:
        logger.error(f"Failed to start server on {config.host}:{config.port}: {e}")
        return 1

    def shutdown(signum=None, frame=None):
        server.stop()

    signal.signal(signal.SIGINT, shutdown)
    signal.signal(signal.SIGTERM, shutdown)

    if not args.dashboard:
        server.serve_forever()
        return 0

    host, port = server.server_address
    listen_address = f"{host}:{port}"
    server_thread = threading.Thread(target=server.serve_forever, daemon=True)
    server_thread.start()

    def render():
        return build_dashboard(server.stats, listen_address, dashboard_handler,
                               auth_required=credentials.required)

    with Live(render(), refresh_per_second=1, screen=True) as live:
        while server_thread.is_alive():
            server_thread.join(timeout=1)
            live.update(render())
    return 0


def run_check(args):
    from .model.local import ProxyTester

    console = Console()
    tester = ProxyTester(args.proxy, args.username, args.password, timeout=args.timeout)
    failed = 0
    try:
        for url in args.urls:
            result = tester.check(url)
            if result["ok"]:
                console.print(f"✅ {url} -> {result['status']} ({result['elapsed_ms']:.0f} ms)")
            else:
                failed += 1
                status = result["status"] if result["status"] is not None else "no response"
                console.print(f"❌ {url} -> {status}: {result['error']}", markup=False)
    finally:
        tester.close()
    return 1 if failed else 0


def run_echo(args):
    from .Server.echo import run

    setup_logging()
    run(args.host, args.port)
    return 0


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command == "serve":
        return run_serve(args, parser)
    if args.command == "check":
        return run_check(args)
    return run_echo(args)


if __name__ == '__main__':
    sys.exit(main())
