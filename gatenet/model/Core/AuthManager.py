import base64
import binascii
import hmac
import logging
from typing import Iterable, Optional, Tuple

from .header import Credentials

logger = logging.getLogger(__name__)

PROXY_AUTHORIZATION = "proxy-authorization"
REALM = "Proxy"


def encode_basic(username: str, password: str) -> str:
    """Build a ``Basic ...`` header value for ``username:password``."""
    token = base64.b64encode(f"{username}:{password}".encode("utf-8")).decode("ascii")
    return f"Basic {token}"


def decode_basic(value: str) -> Optional[Tuple[str, str]]:
    """
    Decode a ``Basic <base64>`` value into ``(user, password)``.

    The payload is split on the first colon only, so passwords may
    contain colons. Returns None for any malformed value.
    """
    scheme, _, token = value.strip().partition(" ")
    if scheme.lower() != "basic" or not token.strip():
        return None
    token = token.strip()
    try:
        raw = base64.b64decode(token, validate=True)
        decoded = raw.decode("utf-8")
    except (binascii.Error, ValueError):
        return None
    # Unused trailing bits must be zero
    if base64.b64encode(raw).decode("ascii") != token:
        return None
    if ":" not in decoded:
        return None
    user, password = decoded.split(":", 1)
    return user, password


def authenticate(headers: Iterable[Tuple[str, str]], credentials: Credentials) -> bool:
    """Check the ``Proxy-Authorization`` header against ``credentials``."""
    if not credentials.required:
        return True

    value = None
    for key, header_value in headers:
        if key.lower() == PROXY_AUTHORIZATION:
            value = header_value
            break
    if value is None:
        return False

    decoded = decode_basic(value)
    if decoded is None:
        return False
    user, password = decoded

    # Both fields are always compared
    user_ok = hmac.compare_digest(user.encode("utf-8"), credentials.username.encode("utf-8"))
    password_ok = hmac.compare_digest(password.encode("utf-8"), credentials.password.encode("utf-8"))
    return user_ok and password_ok


class AuthManager:
    """Authentication gate shared by every connection."""

    def __init__(self, credentials: Credentials):
        self.credentials = credentials

    @property
    def challenge(self) -> str:
        return f'Basic realm="{REALM}"'

    def check_access(self, headers: Iterable[Tuple[str, str]], client_addr=None) -> bool:
        """Return True if the request may go through."""
        allowed = authenticate(headers, self.credentials)
        if not allowed and client_addr:
            logger.warning(f"Authentication failed for {client_addr[0]}")
        return allowed
