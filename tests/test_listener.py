import errno
import socket
from unittest import mock

import pytest

from ssrelay.listener import BindError, create_and_bind, peer_name, set_fast_open


class _RecordingSocket:
    def __init__(self, error=None):
        self.calls = []
        self.error = error

    def setsockopt(self, level, option, value):
        self.calls.append((level, option, value))
        if self.error is not None:
            raise self.error


def test_create_and_bind_loopback():
    sock = create_and_bind("127.0.0.1", "0", False)
    try:
        assert sock.getsockname()[0] == "127.0.0.1"
        assert sock.getsockname()[1] > 0
        assert sock.getsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR) != 0
        assert sock.type == socket.SOCK_STREAM
    finally:
        sock.close()


def test_create_and_bind_accepts_int_port():
    sock = create_and_bind("127.0.0.1", 0, False)
    try:
        assert sock.family == socket.AF_INET
    finally:
        sock.close()


def test_bound_socket_can_listen_and_accept():
    server = create_and_bind("127.0.0.1", "0", False)
    try:
        server.listen(1)
        client = socket.create_connection(server.getsockname())
        conn, _ = server.accept()
        try:
            assert peer_name(conn) == "127.0.0.1"
        finally:
            conn.close()
            client.close()
    finally:
        server.close()


def test_peer_name_unconnected():
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    try:
        assert peer_name(sock) is None
    finally:
        sock.close()


@mock.patch("ssrelay.listener.time.sleep")
@mock.patch("ssrelay.listener.socket.getaddrinfo", side_effect=socket.gaierror("no name"))
def test_resolve_failure_retries_then_raises(getaddrinfo, sleep):
    with pytest.raises(BindError):
        create_and_bind("unresolvable.example.com", "8388", False)
    assert getaddrinfo.call_count == 7
    assert sleep.call_args_list[0] == mock.call(2)
    assert sleep.call_count == 7


@mock.patch("ssrelay.listener.time.sleep")
def test_resolve_recovers_after_failure(sleep):
    real = socket.getaddrinfo("127.0.0.1", "0", socket.AF_INET, socket.SOCK_STREAM)
    with mock.patch(
        "ssrelay.listener.socket.getaddrinfo",
        side_effect=[socket.gaierror("temporary"), real],
    ):
        sock = create_and_bind("127.0.0.1", "0", False)
    try:
        assert sock.getsockname()[0] == "127.0.0.1"
        assert sleep.call_args_list == [mock.call(2)]
    finally:
        sock.close()


def test_bind_to_foreign_address_fails():
    with pytest.raises(BindError):
        create_and_bind("192.0.2.1", "0", False)


def test_set_fast_open_success():
    sock = _RecordingSocket()
    assert set_fast_open(sock) is True
    level, option, value = sock.calls[0]
    assert (level, option) == (socket.IPPROTO_TCP, socket.TCP_FASTOPEN)
    assert value in (1, 5)


@pytest.mark.parametrize("code", [errno.ENOPROTOOPT, errno.EPROTONOSUPPORT, errno.EINVAL])
def test_set_fast_open_failure(code):
    sock = _RecordingSocket(OSError(code, "unsupported"))
    assert set_fast_open(sock) is False
    assert len(sock.calls) == 1