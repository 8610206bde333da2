import logging
import selectors
import socket
import time
from typing import Optional, Tuple

from .header import TargetAddress, TransportError, UpstreamConnectFailed
from .Stats import ConnectionStats

logger = logging.getLogger(__name__)

CONNECTION_ESTABLISHED = b"HTTP/1.1 200 Connection Established\r\n\r\n"


def connect_upstream(target: TargetAddress, timeout: Optional[float] = None,
                     stats: Optional[ConnectionStats] = None) -> socket.socket:
    """
    Open a TCP connection to ``target``.

    Raises:
        UpstreamConnectFailed: The target could not be reached
    """
    start = time.perf_counter()
    try:
        sock = socket.create_connection((target.host, target.port), timeout=timeout)
    except OSError as e:
        raise UpstreamConnectFailed(f"cannot connect to {target.authority}: {e}") from e
    if stats is not None:
        stats.add_connect_time((time.perf_counter() - start) * 1000)
    return sock


def relay(client_sock: socket.socket, upstream_sock: socket.socket,
          initial_data: bytes = b"", buffer_size: int = 65536, idle_timeout: Optional[float] = None,
          stats: Optional[ConnectionStats] = None) -> Tuple[int, int]:
    """
    Copy bytes between the two sockets until one side closes.

    ``initial_data`` (bytes the client sent along with its request head)
    is delivered to the upstream before anything else.

    The first EOF on either socket ends the relay; closing the sockets is
    left to the caller. With ``idle_timeout`` set, the relay also ends
    after that many seconds without traffic in either direction.

    Returns:
        (bytes client -> upstream, bytes upstream -> client)

    Raises:
        TransportError: recv/send failed on either socket
    """
    sockets = [client_sock, upstream_sock]
    bytes_up = 0
    bytes_down = 0

    for sock in sockets:
        sock.settimeout(idle_timeout)

    if initial_data:
        try:
            upstream_sock.sendall(initial_data)
        except OSError as e:
            raise TransportError(str(e)) from e
        bytes_up += len(initial_data)
        if stats is not None:
            stats.add_sent(len(initial_data))

    with selectors.DefaultSelector() as selector:
        try:
            for sock in sockets:
                selector.register(sock, selectors.EVENT_READ)
        except (OSError, ValueError) as e:
            raise TransportError(f"cannot watch sockets: {e}") from e

        while True:
            try:
                events = selector.select(idle_timeout)
            except OSError as e:
                raise TransportError(f"select failed: {e}") from e

            if not events:
                logger.debug("Relay idle for %ss, closing", idle_timeout)
                break

            for key, _ in events:
                sock = key.fileobj
                other = upstream_sock if sock is client_sock else client_sock
                try:
                    data = sock.recv(buffer_size)
                    if not data:
                        return bytes_up, bytes_down
                    other.sendall(data)
                except OSError as e:
                    raise TransportError(str(e)) from e

                if sock is client_sock:
                    bytes_up += len(data)
                    if stats is not None:
                        stats.add_sent(len(data))
                else:
                    bytes_down += len(data)
                    if stats is not None:
                        stats.add_received(len(data))

    return bytes_up, bytes_down


def establish_tunnel(client_sock: socket.socket, target: TargetAddress,
                     initial_data: bytes = b"", connect_timeout: Optional[float] = None,
                     idle_timeout: Optional[float] = None, buffer_size: int = 65536,
                     stats: Optional[ConnectionStats] = None) -> Tuple[int, int]:
    """
    Serve a CONNECT: connect, acknowledge, then relay raw bytes.

    Raises:
        UpstreamConnectFailed: Before anything was sent to the client
        TransportError: After the tunnel was acknowledged
    """
    upstream_sock = connect_upstream(target, timeout=connect_timeout, stats=stats)
    try:
        try:
            client_sock.sendall(CONNECTION_ESTABLISHED)
        except OSError as e:
            raise TransportError(str(e)) from e
        return relay(client_sock, upstream_sock, initial_data=initial_data,
                     buffer_size=buffer_size,
                     idle_timeout=idle_timeout, stats=stats)
    finally:
        upstream_sock.close()
