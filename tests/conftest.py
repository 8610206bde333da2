import socket
import threading

import pytest

from gatenet.model.Core.AuthManager import encode_basic
from gatenet.model.Core.header import Credentials
from gatenet.Server.echo import make_echo_server

from .helpers import PASSWORD, USERNAME, OriginServer, start_proxy


# ============================================================================
# Origin servers
# ============================================================================

@pytest.fixture
def echo_origin():
    server = OriginServer("echo").start()
    yield server
    server.stop()


@pytest.fixture
def http_origin():
    server = OriginServer("http").start()
    yield server
    server.stop()


@pytest.fixture(scope="module")
def echo_app():
    server = make_echo_server("127.0.0.1", 0)
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    yield server
    server.shutdown()
    server.server_close()


@pytest.fixture
def closed_port():
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    sock.bind(("127.0.0.1", 0))
    port = sock.getsockname()[1]
    sock.close()
    return port


# ============================================================================
# Proxy
# ============================================================================

@pytest.fixture
def credentials():
    return Credentials.create(USERNAME, PASSWORD)


@pytest.fixture
def auth_header():
    return encode_basic(USERNAME, PASSWORD)


@pytest.fixture
def proxy(credentials):
    server, thread = start_proxy(credentials)
    yield server
    server.stop()
    thread.join(timeout=5)


@pytest.fixture
def open_proxy():
    server, thread = start_proxy(Credentials())
    yield server
    server.stop()
    thread.join(timeout=5)
