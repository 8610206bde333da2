import socket

import pytest

from gatenet.model.Core.header import InvalidTarget, parse_request_head, read_request_head


def test_parse_request_head_keeps_order_and_case():
    head = (b"GET http://example.com/a?b=1 HTTP/1.1\r\n"
            b"Host: example.com\r\n"
            b"X-Custom-Header: One\r\n"
            b"accept: */*\r\n\r\n")
    request = parse_request_head(head)
    assert request.method == "GET"
    assert request.target == "http://example.com/a?b=1"
    assert request.version == "HTTP/1.1"
    assert request.headers == [
        ("Host", "example.com"),
        ("X-Custom-Header", "One"),
        ("accept", "*/*"),
    ]
    assert request.get_header("x-custom-header") == "One"
    assert request.get_header("missing") is None


def test_parse_request_head_bare_newlines():
    request = parse_request_head(b"CONNECT example.com:443 HTTP/1.1\nHost: example.com:443\n\n")
    assert request.method == "CONNECT"
    assert request.headers == [("Host", "example.com:443")]


@pytest.mark.parametrize("head", [
    b"GET\r\n\r\n",
    b"GET http://example.com/\r\n\r\n",
    b"GET http://example.com/ FTP/1.0\r\n\r\n",
    b"GET http://example.com/ HTTP/1.1\r\nno colon here\r\n\r\n",
    b"GET http://example.com/ HTTP/1.1\r\n: empty-name\r\n\r\n",
])
def test_parse_request_head_malformed(head):
    with pytest.raises(InvalidTarget):
        parse_request_head(head)


def test_read_request_head_keeps_extra_bytes():
    client, server = socket.socketpair()
    try:
        client.sendall(b"POST http://example.com/ HTTP/1.1\r\nContent-Length: 5\r\n\r\nhel")
        client.sendall(b"lo")
        request = read_request_head(server)
        assert request.method == "POST"
        assert request.raw_head.endswith(b"\r\n\r\n")
        assert request.body_prefix.startswith(b"hel")
    finally:
        client.close()
        server.close()


def test_read_request_head_split_across_reads():
    client, server = socket.socketpair()
    try:
        client.sendall(b"GET http://example.com/ HTTP/1.1\r\nHo")
        client.sendall(b"st: example.com\r\n")
        client.sendall(b"\r\n")
        request = read_request_head(server, buffer_size=4)
        assert request.headers == [("Host", "example.com")]
        assert request.body_prefix == b""
    finally:
        client.close()
        server.close()


def test_read_request_head_returns_none_on_early_close():
    client, server = socket.socketpair()
    try:
        client.sendall(b"GET http://example.com/ HTTP/1.1\r\n")
        client.close()
        assert read_request_head(server) is None
    finally:
        server.close()


def test_read_request_head_too_large():
    client, server = socket.socketpair()
    try:
        client.sendall(b"GET http://example.com/ HTTP/1.1\r\nX-Big: " + b"a" * 2048)
        with pytest.raises(InvalidTarget):
            read_request_head(server, max_size=1024)
    finally:
        client.close()
        server.close()
