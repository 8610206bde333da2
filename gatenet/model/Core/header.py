import socket
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List, Optional, Tuple

# =============================================================================
# Core Types & Configuration
# =============================================================================

class Phase(Enum):
    AWAIT_REQUEST = "await-request"
    AUTHENTICATING = "authenticating"
    TUNNELING = "tunneling"
    FORWARDING = "forwarding"
    CLOSED = "closed"


@dataclass(frozen=True)
class Credentials:
    """Username/password every client must present. Both ``None`` disables auth."""
    username: Optional[str] = None
    password: Optional[str] = None

    @classmethod
    def create(cls, username: Optional[str], password: Optional[str]) -> "Credentials":
        username = username or None
        password = password or None
        if username is not None and password is None:
            raise ConfigError("a password is required when a username is set")
        if password is not None and username is None:
            raise ConfigError("a username is required when a password is set")
        return cls(username=username, password=password)

    @property
    def required(self) -> bool:
        return self.username is not None


@dataclass(frozen=True)
class TargetAddress:
    host: str
    port: int

    @property
    def authority(self) -> str:
        if ":" in self.host:
            return f"[{self.host}]:{self.port}"
        return f"{self.host}:{self.port}"


@dataclass
class InboundRequest:
    method: str
    target: str
    version: str
    headers: List[Tuple[str, str]]
    raw_head: bytes
    body_prefix: bytes = b""

    def get_header(self, name: str) -> Optional[str]:
        """Return the first header called ``name``, ignoring case."""
        name = name.lower()
        for key, value in self.headers:
            if key.lower() == name:
                return value
        return None


@dataclass
class ProxyConfig:
    host: str = "0.0.0.0"
    port: int = 8080
    credentials: Credentials = field(default_factory=Credentials)
    connect_timeout: Optional[float] = None
    idle_timeout: Optional[float] = None
    buffer_size: int = 65536
    max_head_size: int = 65536


@dataclass
class ProxySession:
    connection_id: str
    client_socket: socket.socket
    client_addr: Tuple
    start_time: datetime
    authenticated: bool = False
    phase: Phase = Phase.AWAIT_REQUEST
    target: Optional[TargetAddress] = None
    request: Optional[InboundRequest] = None

# =============================================================================
# Errors
# =============================================================================

class ProxyError(Exception):
    """Base class for errors that end a single proxy session."""
    status = 500
    reason = "Internal Server Error"


class AuthRequired(ProxyError):
    status = 407
    reason = "Proxy Authentication Required"


class InvalidTarget(ProxyError):
    status = 400
    reason = "Bad Request"


class UpstreamConnectFailed(ProxyError):
    status = 502
    reason = "Bad Gateway"


class TransportError(ProxyError):
    """I/O failure after relaying started. Nothing is sent back to the client."""


class ConfigError(ValueError):
    """Invalid startup configuration."""

# =============================================================================
# Request head parsing
# =============================================================================

HEAD_TERMINATORS = (b"\r\n\r\n", b"\n\n")


def _find_head_end(data: bytes) -> int:
    """Index just past the blank line ending the head, or -1."""
    best = -1
    for terminator in HEAD_TERMINATORS:
        pos = data.find(terminator)
        if pos != -1:
            end = pos + len(terminator)
            if best == -1 or end < best:
                best = end
    return best


def parse_request_head(head: bytes) -> InboundRequest:
    """
    Parse a request line and header block.

    Args:
        head: Bytes up to and including the blank line

    Returns:
        InboundRequest with headers in their original order and case

    Raises:
        InvalidTarget: Request line or a header line is malformed
    """
    text = head.decode("iso-8859-1")
    lines = text.replace("\r\n", "\n").split("\n")
    parts = lines[0].split()
    if len(parts) != 3 or not parts[2].startswith("HTTP/"):
        raise InvalidTarget(f"malformed request line: {lines[0]!r}")
    method, target, version = parts

    headers = []
    for line in lines[1:]:
        if not line:
            continue
        if ":" not in line:
            raise InvalidTarget(f"malformed header line: {line!r}")
        key, value = line.split(":", 1)
        key = key.strip()
        if not key:
            raise InvalidTarget(f"malformed header line: {line!r}")
        headers.append((key, value.strip()))

    return InboundRequest(
        method=method.upper(),
        target=target,
        version=version,
        headers=headers,
        raw_head=head,
    )


def read_request_head(sock: socket.socket, max_size: int = 65536,
                      buffer_size: int = 65536) -> Optional[InboundRequest]:
    """
    Read one request head off ``sock``.

    Returns ``None`` when the peer closes before sending a complete head.
    Any bytes received past the blank line are kept in ``body_prefix``.

    Raises:
        InvalidTarget: Head is larger than ``max_size`` or malformed
    """
    data = b""
    while True:
        end = _find_head_end(data)
        if end != -1:
            break
        if len(data) > max_size:
            raise InvalidTarget("request head too large")
        chunk = sock.recv(buffer_size)
        if not chunk:
            return None
        data += chunk

    if end > max_size:
        raise InvalidTarget("request head too large")
    request = parse_request_head(data[:end])
    request.body_prefix = data[end:]
    return request
