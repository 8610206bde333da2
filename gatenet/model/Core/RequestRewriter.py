import socket
from typing import List, Optional, Tuple

from .header import InboundRequest, TargetAddress, TransportError
from .RoutingEngine import DEFAULT_HTTP_PORT, origin_form
from .Stats import ConnectionStats
from .Tunnel import connect_upstream, relay

# Lower-cased names never passed through to the origin
DROPPED_HEADERS = {"proxy-authorization", "host"}


def host_header(target: TargetAddress) -> str:
    if target.port == DEFAULT_HTTP_PORT:
        return f"[{target.host}]" if ":" in target.host else target.host
    return target.authority


def rewrite_headers(headers: List[Tuple[str, str]], target: TargetAddress) -> List[Tuple[str, str]]:
    """Drop proxy-only headers and put a single canonical Host first."""
    rewritten = [("Host", host_header(target))]
    for key, value in headers:
        if key.lower() in DROPPED_HEADERS:
            continue
        rewritten.append((key, value))
    return rewritten


def build_request_head(request: InboundRequest, target: TargetAddress) -> bytes:
    """
    Render the request head sent to the origin server.

    The request line uses origin form (path and query only); all headers
    keep their order and case except the dropped and inserted ones.
    """
    lines = [f"{request.method} {origin_form(request.target)} {request.version}"]
    for key, value in rewrite_headers(request.headers, target):
        lines.append(f"{key}: {value}")
    return ("\r\n".join(lines) + "\r\n\r\n").encode("iso-8859-1")


def forward_request(client_sock: socket.socket, request: InboundRequest, target: TargetAddress,
                    connect_timeout: Optional[float] = None, idle_timeout: Optional[float] = None,
                    buffer_size: int = 65536,
                    stats: Optional[ConnectionStats] = None) -> Tuple[int, int]:
    """
    Forward a plain HTTP request and relay the rest of the stream.

    Raises:
        UpstreamConnectFailed: The origin could not be reached
        TransportError: Sending or relaying failed
    """
    head = build_request_head(request, target)
    upstream_sock = connect_upstream(target, timeout=connect_timeout, stats=stats)
    try:
        try:
            upstream_sock.sendall(head)
        except OSError as e:
            raise TransportError(str(e)) from e
        if stats is not None:
            stats.add_sent(len(head))
        return relay(client_sock, upstream_sock, initial_data=request.body_prefix,
                     buffer_size=buffer_size, idle_timeout=idle_timeout, stats=stats)
    finally:
        upstream_sock.close()
