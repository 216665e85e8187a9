import pytest

from ssrelay.sni import (
    IncompleteRequestError,
    InvalidClientHelloError,
    NoServerNameError,
    SniError,
    parse_server_name,
)


def _sni_extension(name: bytes, name_type: int = 0) -> bytes:
    entry = bytes([name_type]) + len(name).to_bytes(2, "big") + name
    body = len(entry).to_bytes(2, "big") + entry
    return b"\x00\x00" + len(body).to_bytes(2, "big") + body


def _client_hello(extensions: bytes | None, version=(3, 3)) -> bytes:
    body = bytes(version) + b"\x11" * 32
    body += b"\x00"  # session id
    body += b"\x00\x02\x00\x2f"  # one cipher suite
    body += b"\x01\x00"  # null compression
    if extensions is not None:
        body += len(extensions).to_bytes(2, "big") + extensions
    handshake = b"\x01" + len(body).to_bytes(3, "big") + body
    return b"\x16\x03\x01" + len(handshake).to_bytes(2, "big") + handshake


def test_extracts_host_name():
    hello = _client_hello(_sni_extension(b"example.com"))
    assert parse_server_name(hello) == "example.com"


def test_skips_other_extensions():
    other = b"\x00\x0b\x00\x02\x01\x00"
    hello = _client_hello(other + _sni_extension(b"www.example.com"))
    assert parse_server_name(hello) == "www.example.com"


def test_trailing_bytes_after_record_are_ignored():
    hello = _client_hello(_sni_extension(b"example.com"))
    assert parse_server_name(hello + b"\xff\xff\xff") == "example.com"


def test_short_data_is_incomplete():
    with pytest.raises(IncompleteRequestError):
        parse_server_name(b"\x16\x03")


def test_truncated_record_is_incomplete():
    hello = _client_hello(_sni_extension(b"example.com"))
    with pytest.raises(IncompleteRequestError):
        parse_server_name(hello[:-3])


def test_not_a_handshake():
    with pytest.raises(InvalidClientHelloError):
        parse_server_name(b"GET / HTTP/1.1\r\n")


def test_ssl2_hello_has_no_server_name():
    with pytest.raises(NoServerNameError):
        parse_server_name(b"\x80\x2e\x01\x00\x02\x00\x15")


def test_old_ssl_version_has_no_server_name():
    with pytest.raises(NoServerNameError):
        parse_server_name(b"\x16\x02\x00\x00\x00")


def test_no_sni_extension():
    hello = _client_hello(b"\x00\x0b\x00\x02\x01\x00")
    with pytest.raises(NoServerNameError):
        parse_server_name(hello)


def test_not_client_hello_type():
    hello = bytearray(_client_hello(_sni_extension(b"example.com")))
    hello[5] = 0x02
    with pytest.raises(InvalidClientHelloError):
        parse_server_name(bytes(hello))


def test_unknown_name_type_only():
    hello = _client_hello(_sni_extension(b"example.com", name_type=5))
    with pytest.raises(SniError):
        parse_server_name(hello)


def test_errors_share_base_class():
    with pytest.raises(SniError):
        parse_server_name(b"")