"""
GateNet Proxy Server
License: MIT License
Description: Accepts client connections, checks the shared proxy credential
             and either tunnels CONNECT traffic or forwards plain HTTP
             requests to their origin server.
"""

import logging
import socket
import threading
import uuid
from datetime import datetime
from typing import Optional, Tuple

from .Core.AuthManager import AuthManager
from .Core.header import (
    AuthRequired,
    InvalidTarget,
    Phase,
    ProxyConfig,
    ProxyError,
    ProxySession,
    TransportError,
    UpstreamConnectFailed,
    read_request_head,
)
from .Core.RequestRewriter import forward_request
from .Core.RoutingEngine import RoutingEngine
from .Core.Stats import ConnectionStats
from .Core.Tunnel import establish_tunnel

logger = logging.getLogger(__name__)


def send_error_response(sock: socket.socket, error: ProxyError, challenge: Optional[str] = None):
    """Write a short plain-text error response for ``error``."""
    body = f"{error.status} {error.reason}\n".encode()
    lines = [
        f"HTTP/1.1 {error.status} {error.reason}",
        "Content-Type: text/plain",
        f"Content-Length: {len(body)}",
        "Connection: close",
    ]
    if challenge:
        lines.append(f"Proxy-Authenticate: {challenge}")
    response = ("\r\n".join(lines) + "\r\n\r\n").encode() + body
    try:
        sock.sendall(response)
    except OSError as e:
        logger.debug(f"Could not send {error.status} response: {e}")


class GateNetProxyServer:
    """
    A proxy server that authenticates clients and relays their traffic.

    Attributes:
        config (ProxyConfig): Listening address, credentials and timeouts
        stats (ConnectionStats): Counters shared with the dashboard
        server_socket (socket): The listening socket
        client_threads (list): Threads of connections still being served
        running (bool): Flag indicating if the server is running
    """

    def __init__(self, config: ProxyConfig, stats: Optional[ConnectionStats] = None):
        self.config = config
        self.stats = stats or ConnectionStats()
        self.auth_manager = AuthManager(config.credentials)
        self.routing_engine = RoutingEngine()
        self.server_socket = None
        self.client_threads = []
        self.running = False

    @property
    def server_address(self) -> Tuple[str, int]:
        return self.server_socket.getsockname()[:2]

    def bind(self):
        """Create the listening socket. Raises OSError if the port is taken."""
        self.server_socket = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        self.server_socket.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        try:
            self.server_socket.bind((self.config.host, self.config.port))
            self.server_socket.listen(1024)
        except OSError:
            self.server_socket.close()
            self.server_socket = None
            raise
        self.server_socket.settimeout(1)
        self.running = True
        host, port = self.server_address
        logger.info(f"📍 Listening on {host}:{port}"
                    f" (authentication {'required' if self.config.credentials.required else 'disabled'})")

    def start(self):
        """Bind and serve until stop() is called."""
        self.bind()
        self.serve_forever()

    def serve_forever(self):
        """Accept connections until stop() is called. bind() must run first."""
        try:
            while self.running:
                try:
                    client_socket, client_addr = self.server_socket.accept()
                except socket.timeout:
                    continue
                except OSError as e:
                    if not self.running:
                        break
                    logger.error(f"Accept error: {e}")
                    continue

                client_handler = threading.Thread(
                    target=self.handle_client,
                    args=(client_socket, client_addr),
                    daemon=True
                )
                client_handler.start()
                self.client_threads.append(client_handler)

                # Clean up finished threads
                self.client_threads = [t for t in self.client_threads if t.is_alive()]
        finally:
            self.cleanup()

    def stop(self):
        """Stop accepting connections. Sessions already running finish on their own."""
        if self.running:
            logger.info("🛑 Stopping proxy...")
        self.running = False

    def cleanup(self):
        if self.server_socket:
            self.server_socket.close()
            self.server_socket = None

    def handle_client(self, client_socket: socket.socket, client_addr):
        """Serve one client connection. Never raises."""
        session = ProxySession(
            connection_id=str(uuid.uuid4())[:8],
            client_socket=client_socket,
            client_addr=client_addr,
            start_time=datetime.now(),
        )
        self.stats.connection_opened()
        logger.debug(f"Connection {session.connection_id} from {client_addr[0]}:{client_addr[1]}")
        try:
            self._process_session(session)
        except AuthRequired as e:
            send_error_response(client_socket, e, challenge=self.auth_manager.challenge)
        except (InvalidTarget, UpstreamConnectFailed) as e:
            logger.warning(f"Connection {session.connection_id}: {e}")
            send_error_response(client_socket, e)
        except TransportError as e:
            logger.debug(f"Connection {session.connection_id} closed: {e}")
        except OSError as e:
            logger.debug(f"Connection {session.connection_id} socket error: {e}")
        except Exception:
            logger.exception(f"Connection {session.connection_id} failed")
        finally:
            session.phase = Phase.CLOSED
            self.stats.connection_closed()
            try:
                client_socket.close()
            except OSError:
                pass

    def _process_session(self, session: ProxySession):
        config = self.config
        client_socket = session.client_socket
        client_socket.settimeout(config.idle_timeout)

        request = read_request_head(client_socket, max_size=config.max_head_size,
                                    buffer_size=config.buffer_size)
        if request is None:
            return
        session.request = request

        session.phase = Phase.AUTHENTICATING
        if not self.auth_manager.check_access(request.headers, session.client_addr):
            raise AuthRequired()
        session.authenticated = True

        session.target = self.routing_engine.resolve(request.method, request.target)
        client = session.client_addr[0]

        if request.method == "CONNECT":
            session.phase = Phase.TUNNELING
            logger.info(f"🔒 HTTPS: {client} -> {session.target.authority}")
            sent, received = establish_tunnel(
                client_socket, session.target,
                initial_data=request.body_prefix,
                connect_timeout=config.connect_timeout,
                idle_timeout=config.idle_timeout,
                buffer_size=config.buffer_size,
                stats=self.stats,
            )
        else:
            session.phase = Phase.FORWARDING
            logger.info(f"🌐 HTTP: {client} -> {session.target.authority} {request.method} {request.target}")
            sent, received = forward_request(
                client_socket, request, session.target,
                connect_timeout=config.connect_timeout,
                idle_timeout=config.idle_timeout,
                buffer_size=config.buffer_size,
                stats=self.stats,
            )

        logger.debug(f"📊 Connection {session.connection_id} done: ↑{sent} ↓{received}")
