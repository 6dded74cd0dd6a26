import socket

import pytest

from relaylb.proxyprotocol import format_header_v1, send_proxy_protocol_v1


def test_format_tcp4():
    header = format_header_v1(("192.0.2.1", 1234), ("198.51.100.2", 80))
    assert header == "PROXY TCP4 192.0.2.1 198.51.100.2 1234 80\r\n"


def test_format_tcp6():
    header = format_header_v1(("2001:db8::1", 1234), ("2001:db8::2", 443))
    assert header.startswith("PROXY TCP6 2001:db8::1 2001:db8::2 ")
    assert header.endswith("\r\n")


def test_format_mixed_families():
    with pytest.raises(ValueError):
        format_header_v1(("192.0.2.1", 1), ("2001:db8::2", 2))


def test_send_header():
    listener = socket.socket()
    listener.bind(("127.0.0.1", 0))
    listener.listen(1)
    outgoing = socket.create_connection(listener.getsockname())
    client, _ = listener.accept()
    backend_w, backend_r = socket.socketpair()
    with listener, outgoing, client, backend_w, backend_r:
        send_proxy_protocol_v1(client, backend_w)
        data = backend_r.recv(256).decode("ascii")
        assert data == format_header_v1(client.getpeername(), client.getsockname())
        assert data.startswith("PROXY TCP4 127.0.0.1 127.0.0.1 ")


def test_send_header_write_error_is_swallowed():
    listener = socket.socket()
    listener.bind(("127.0.0.1", 0))
    listener.listen(1)
    outgoing = socket.create_connection(listener.getsockname())
    client, _ = listener.accept()
    backend_w, backend_r = socket.socketpair()
    backend_w.close()
    with listener, outgoing, client, backend_r:
        assert send_proxy_protocol_v1(client, backend_w) is None
        assert backend_w.fileno() == -1