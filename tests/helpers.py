import socket
import threading

from gatenet.model.Core.header import ProxyConfig
from gatenet.model.GateNetProxyServer import GateNetProxyServer

USERNAME = "alice"
PASSWORD = "s3cr:et"


class OriginServer:
    """
    Raw TCP origin used behind the proxy.

    mode "echo" sends every byte back; mode "http" stores the request head
    it receives, answers with a tiny response and closes.
    """

    RESPONSE = b"HTTP/1.1 200 OK\r\nContent-Length: 2\r\nConnection: close\r\n\r\nok"

    def __init__(self, mode="echo"):
        self.mode = mode
        self.sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        self.sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        self.sock.bind(("127.0.0.1", 0))
        self.sock.listen(16)
        self.port = self.sock.getsockname()[1]
        self.connections = []
        self.heads = []
        self.closed = threading.Event()
        self._thread = threading.Thread(target=self._accept_loop, daemon=True)

    def start(self):
        self._thread.start()
        return self

    def stop(self):
        try:
            self.sock.shutdown(socket.SHUT_RDWR)
        except OSError:
            pass
        self.sock.close()
        for conn in self.connections:
            try:
                conn.close()
            except OSError:
                pass

    @property
    def connection_count(self):
        return len(self.connections)

    def _accept_loop(self):
        while True:
            try:
                conn, _ = self.sock.accept()
            except OSError:
                return
            self.connections.append(conn)
            handler = self._echo if self.mode == "echo" else self._http
            threading.Thread(target=handler, args=(conn,), daemon=True).start()

    def _echo(self, conn):
        try:
            while True:
                data = conn.recv(65536)
                if not data:
                    break
                conn.sendall(data)
        except OSError:
            pass
        finally:
            self.closed.set()
            conn.close()

    def _http(self, conn):
        data = b""
        try:
            while b"\r\n\r\n" not in data:
                chunk = conn.recv(65536)
                if not chunk:
                    break
                data += chunk
            self.heads.append(data)
            conn.sendall(self.RESPONSE)
        except OSError:
            pass
        finally:
            self.closed.set()
            conn.close()


def start_proxy(credentials, **kwargs):
    config = ProxyConfig(host="127.0.0.1", port=0, credentials=credentials, **kwargs)
    server = GateNetProxyServer(config)
    server.bind()
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    return server, thread


def connect(server, timeout=5):
    return socket.create_connection(server.server_address, timeout=timeout)


def recv_head(sock):
    data = b""
    while b"\r\n\r\n" not in data:
        chunk = sock.recv(1)
        if not chunk:
            break
        data += chunk
    return data


def recv_all(sock):
    data = b""
    while True:
        chunk = sock.recv(65536)
        if not chunk:
            return data
        data += chunk


def recv_exactly(sock, size):
    data = b""
    while len(data) < size:
        chunk = sock.recv(min(65536, size - len(data)))
        if not chunk:
            break
        data += chunk
    return data
