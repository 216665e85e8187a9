"""Extract the Server Name Indication host name from a TLS ClientHello."""

from __future__ import annotations

import logging

__all__ = [
    "SniError",
    "IncompleteRequestError",
    "NoServerNameError",
    "InvalidClientHelloError",
    "parse_server_name",
    "DEFAULT_PORT",
]

log = logging.getLogger(__name__)

DEFAULT_PORT = 443

_TLS_HEADER_LEN = 5
_TLS_HANDSHAKE_CONTENT_TYPE = 0x16
_TLS_HANDSHAKE_TYPE_CLIENT_HELLO = 0x01


class SniError(Exception):
    """Base class for failures to extract a server name."""


class IncompleteRequestError(SniError):
    """More data is needed before the ClientHello can be parsed."""


class NoServerNameError(SniError):
    """The handshake is valid but carries no server name."""


class InvalidClientHelloError(SniError):
    """The data is not a well-formed TLS ClientHello."""


def _signed(byte: int) -> int:
    return byte - 256 if byte >= 0x80 else byte


def parse_server_name(data: bytes) -> str:
    """Return the first host name found in the SNI extension of ``data``."""
    data = bytes(data)
    if len(data) < _TLS_HEADER_LEN:
        raise IncompleteRequestError("shorter than a TLS record header")

    # SSL 2.0 compatible ClientHello: high bit of the length byte set.
    if data[0] & 0x80 and data[2] == 1:
        log.debug("received SSL 2.0 ClientHello which cannot carry SNI")
        raise NoServerNameError("SSL 2.0 ClientHello")

    if data[0] != _TLS_HANDSHAKE_CONTENT_TYPE:
        raise InvalidClientHelloError("request did not begin with a TLS handshake")

    major = _signed(data[1])
    minor = _signed(data[2])
    if major < 3:
        log.debug("received SSL %d.%d handshake which cannot carry SNI", major, minor)
        raise NoServerNameError(f"SSL {major}.{minor} handshake")

    record_len = (data[3] << 8) + data[4] + _TLS_HEADER_LEN
    if len(data) < record_len:
        raise IncompleteRequestError("TLS record not fully received")
    data = data[:record_len]
    data_len = len(data)

    pos = _TLS_HEADER_LEN
    if pos + 1 > data_len:
        raise InvalidClientHelloError("missing handshake type")
    if data[pos] != _TLS_HANDSHAKE_TYPE_CLIENT_HELLO:
        raise InvalidClientHelloError("not a client hello")

    # Handshake type, length, version and random.
    pos += 38

    if pos + 1 > data_len:
        raise InvalidClientHelloError("truncated session id")
    pos += 1 + data[pos]

    if pos + 2 > data_len:
        raise InvalidClientHelloError("truncated cipher suites")
    pos += 2 + ((data[pos] << 8) + data[pos + 1])

    if pos + 1 > data_len:
        raise InvalidClientHelloError("truncated compression methods")
    pos += 1 + data[pos]

    if pos == data_len and major == 3 and minor == 0:
        raise NoServerNameError("SSL 3.0 handshake without extensions")

    if pos + 2 > data_len:
        raise InvalidClientHelloError("truncated extensions length")
    ext_len = (data[pos] << 8) + data[pos + 1]
    pos += 2
    if pos + ext_len > data_len:
        raise InvalidClientHelloError("extensions exceed record")
    return _parse_extensions(data[pos:pos + ext_len])


def _parse_extensions(data: bytes) -> str:
    pos = 0
    while pos + 4 <= len(data):
        length = (data[pos + 2] << 8) + data[pos + 3]
        if data[pos] == 0x00 and data[pos + 1] == 0x00:
            if pos + 4 + length > len(data):
                raise InvalidClientHelloError("server name extension exceeds data")
            return _parse_server_name_extension(data[pos + 4:pos + 4 + length])
        pos += 4 + length
    if pos != len(data):
        raise InvalidClientHelloError("extensions did not end where expected")
    raise NoServerNameError("no server name extension")


def _parse_server_name_extension(data: bytes) -> str:
    pos = 2  # server name list length
    while pos + 3 < len(data):
        length = (data[pos + 1] << 8) + data[pos + 2]
        if pos + 3 + length > len(data):
            raise InvalidClientHelloError("server name exceeds extension")
        if data[pos] == 0x00:
            name = data[pos + 3:pos + 3 + length].split(b"\x00", 1)[0]
            return name.decode("latin-1")
        log.debug("unknown server name type: %d", data[pos])
        pos += 3 + length
    if pos != len(data):
        raise InvalidClientHelloError("server name list did not end where expected")
    raise NoServerNameError("no host_name entry")