"""Parsing of the TCP relay request header sent by clients.

The header is::

    +------+----------+----------+----------------+
    | ATYP | DST.ADDR | DST.PORT |    HMAC-SHA1   |
    +------+----------+----------+----------------+
    |  1   | Variable |    2     |      10        |
    +------+----------+----------+----------------+

The HMAC is present when one-time authentication is enabled for the
server or flagged in ATYP with ``ONETIMEAUTH_FLAG``.
"""

from __future__ import annotations

import enum
import ipaddress
import logging
import re
import socket
from dataclasses import dataclass

from ssrelay.udp_header import ADDRTYPE_MASK, ONETIMEAUTH_FLAG

__all__ = [
    "ONETIMEAUTH_BYTES",
    "AddressType",
    "Destination",
    "HeaderError",
    "header_body_length",
    "header_complete",
    "parse_header",
]

log = logging.getLogger(__name__)

ONETIMEAUTH_BYTES = 10

_IPV4_LEN = 4
_IPV6_LEN = 16
_PORT_LEN = 2
_LABEL = re.compile(r"^[A-Za-z0-9](?:[A-Za-z0-9-]{0,61}[A-Za-z0-9])?$")


class AddressType(enum.IntEnum):
    """Address type carried in the low bits of ATYP."""

    IPV4 = 1
    DOMAIN = 3
    IPV6 = 4


class HeaderError(ValueError):
    """The request header is malformed."""


@dataclass(frozen=True)
class Destination:
    """Where a client asked to be connected."""

    atyp: int
    host: str
    port: int
    family: int
    auth: bool = False
    header: bytes = b""
    tag: bytes = b""

    @property
    def address_type(self) -> AddressType:
        return AddressType(self.atyp & ADDRTYPE_MASK)

    @property
    def needs_resolve(self) -> bool:
        """True when the host is a name that still has to be resolved."""
        return self.family not in (socket.AF_INET, socket.AF_INET6)

    def __str__(self) -> str:
        if self.address_type is AddressType.IPV6:
            return f"[{self.host}]:{self.port}"
        return f"{self.host}:{self.port}"


def _address_type(atyp: int) -> AddressType:
    try:
        return AddressType(atyp & ADDRTYPE_MASK)
    except ValueError:
        raise HeaderError(f"invalid header with addr type {atyp}") from None


def header_body_length(atyp: int, data: bytes) -> int:
    """Length of address plus port, given ATYP and the bytes that follow it."""
    kind = _address_type(atyp)
    if kind is AddressType.IPV4:
        length = _IPV4_LEN
    elif kind is AddressType.IPV6:
        length = _IPV6_LEN
    else:
        if not data:
            raise HeaderError("missing domain name length")
        length = data[0] + 1
    return length + _PORT_LEN


def header_complete(data: bytes, auth: bool) -> bool:
    """Whether ``data`` holds a whole header; raises for an unknown ATYP."""
    data = bytes(data)
    if not data:
        return False
    atyp = data[0]
    kind = _address_type(atyp)
    if kind is AddressType.DOMAIN and len(data) < 2:
        return False
    needed = 1 + header_body_length(atyp, data[1:])
    if auth or atyp & ONETIMEAUTH_FLAG:
        needed += ONETIMEAUTH_BYTES
    return len(data) >= needed


def _valid_hostname(name: str) -> bool:
    if not name or len(name) > 255:
        return False
    if name.endswith("."):
        name = name[:-1]
    return bool(name) and all(_LABEL.match(label) for label in name.split("."))


def parse_header(data: bytes, auth: bool) -> tuple[Destination, bytes]:
    """Parse the request header; return the destination and remaining payload."""
    data = bytes(data)
    if not data:
        raise HeaderError("empty request")
    atyp = data[0]
    use_auth = bool(auth or atyp & ONETIMEAUTH_FLAG)

    if use_auth:
        body = header_body_length(atyp, data[1:])
        if len(data) < 1 + body + ONETIMEAUTH_BYTES:
            raise HeaderError("header shorter than its authentication tag")

    kind = _address_type(atyp)
    offset = 1
    if kind is AddressType.IPV4:
        if len(data) < _IPV4_LEN + 3:
            raise HeaderError(f"invalid header with addr type {atyp}")
        host = socket.inet_ntop(socket.AF_INET, data[1:1 + _IPV4_LEN])
        family = socket.AF_INET
        offset += _IPV4_LEN
    elif kind is AddressType.IPV6:
        if len(data) < _IPV6_LEN + 3:
            raise HeaderError(f"invalid header with addr type {atyp}")
        host = socket.inet_ntop(socket.AF_INET6, data[1:1 + _IPV6_LEN])
        family = socket.AF_INET6
        offset += _IPV6_LEN
    else:
        if len(data) < 2:
            raise HeaderError("missing domain name length")
        name_len = data[1]
        if name_len + 4 > len(data):
            raise HeaderError(f"invalid name length: {name_len}")
        host = data[2:2 + name_len].split(b"\x00", 1)[0].decode("latin-1")
        offset += 1 + name_len
        try:
            ip = ipaddress.ip_address(host)
        except ValueError:
            if not _valid_hostname(host):
                raise HeaderError(f"invalid host name: {host!r}") from None
            family = socket.AF_UNSPEC
        else:
            family = socket.AF_INET if ip.version == 4 else socket.AF_INET6

    port = int.from_bytes(data[offset:offset + _PORT_LEN], "big")
    offset += _PORT_LEN
    header = data[:offset]
    tag = b""
    if use_auth:
        tag = data[offset:offset + ONETIMEAUTH_BYTES]
        offset += ONETIMEAUTH_BYTES
    if len(data) < offset:
        raise HeaderError("header longer than received data")

    destination = Destination(
        atyp=atyp,
        host=host,
        port=port,
        family=family,
        auth=use_auth,
        header=header,
        tag=tag,
    )
    log.debug("connect to %s", destination)
    return destination, data[offset:]