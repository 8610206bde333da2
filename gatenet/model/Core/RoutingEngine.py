from urllib.parse import urlsplit

from .header import InvalidTarget, TargetAddress

DEFAULT_HTTP_PORT = 80


def _parse_port(value: str, target: str) -> int:
    if not (value.isascii() and value.isdigit()):
        raise InvalidTarget(f"invalid port in {target!r}")
    port = int(value)
    if not 0 < port < 65536:
        raise InvalidTarget(f"port out of range in {target!r}")
    return port


def parse_authority(authority: str) -> TargetAddress:
    """
    Parse a CONNECT authority (``host:port`` or ``[v6addr]:port``).

    Raises:
        InvalidTarget: Host or port missing or malformed
    """
    if authority.startswith("["):
        host, sep, rest = authority[1:].partition("]")
        if not sep or not rest.startswith(":"):
            raise InvalidTarget(f"CONNECT must be to a socket address: {authority!r}")
        port_str = rest[1:]
    else:
        host, sep, port_str = authority.rpartition(":")
        if not sep or ":" in host:
            raise InvalidTarget(f"CONNECT must be to a socket address: {authority!r}")
    if not host:
        raise InvalidTarget(f"CONNECT must be to a socket address: {authority!r}")
    return TargetAddress(host=host, port=_parse_port(port_str, authority))


def _split(uri: str):
    try:
        return urlsplit(uri)
    except ValueError:
        raise InvalidTarget(f"malformed request target: {uri!r}")


def parse_absolute_uri(uri: str) -> TargetAddress:
    """Extract host and port (default 80) from an absolute-form URI."""
    parts = _split(uri)
    if not parts.scheme or not parts.netloc:
        raise InvalidTarget(f"request target is not an absolute URI: {uri!r}")
    try:
        host = parts.hostname
        port = parts.port
    except ValueError:
        raise InvalidTarget(f"invalid port in {uri!r}")
    if not host:
        raise InvalidTarget(f"request target has no host: {uri!r}")
    if port is None:
        port = DEFAULT_HTTP_PORT
    elif port == 0:
        raise InvalidTarget(f"port out of range in {uri!r}")
    return TargetAddress(host=host, port=port)


def origin_form(uri: str) -> str:
    """Path plus ``?query`` of an absolute URI, as sent to the origin server."""
    parts = _split(uri)
    path = parts.path or "/"
    if parts.query:
        return f"{path}?{parts.query}"
    return path


class RoutingEngine:
    """Resolves where a request should be sent."""

    def resolve(self, method: str, target: str) -> TargetAddress:
        if method.upper() == "CONNECT":
            return parse_authority(target)
        return parse_absolute_uri(target)
