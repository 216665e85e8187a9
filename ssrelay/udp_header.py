"""Shadowsocks UDP relay address header handling."""

from __future__ import annotations

import ipaddress
import logging
import socket
from dataclasses import dataclass

__all__ = [
    "ADDRTYPE_MASK",
    "ONETIMEAUTH_FLAG",
    "MAX_UDP_PACKET_SIZE",
    "DEFAULT_PACKET_SIZE",
    "UdpTarget",
    "UdpHeaderError",
    "parse_udp_header",
    "build_udp_header",
    "format_address",
    "hash_key",
    "packet_size_for_mtu",
]

log = logging.getLogger(__name__)

ADDRTYPE_MASK = 0x0F
ONETIMEAUTH_FLAG = 0x10

ATYP_IPV4 = 1
ATYP_DOMAIN = 3
ATYP_IPV6 = 4

MAX_UDP_PACKET_SIZE = 65507
# 1492 - 1 - 28 - 2 - 64 = 1397, the default MTU for UDP relay
DEFAULT_PACKET_SIZE = 1397
_MTU_OVERHEAD = 1 + 28 + 2 + 64


class UdpHeaderError(ValueError):
    """The UDP relay header is malformed."""


@dataclass(frozen=True)
class UdpTarget:
    """A destination parsed from a UDP relay header."""

    atyp: int
    host: str
    port: int
    length: int
    family: int

    @property
    def is_resolved(self) -> bool:
        """True when the host is a literal IP address."""
        return self.family in (socket.AF_INET, socket.AF_INET6)


def parse_udp_header(data: bytes) -> UdpTarget:
    """Parse ATYP, address and port at the start of ``data``."""
    data = bytes(data)
    if not data:
        raise UdpHeaderError("empty packet")
    atyp = data[0]
    kind = atyp & ADDRTYPE_MASK
    offset = 1
    host = ""
    family = socket.AF_UNSPEC

    if kind == ATYP_IPV4:
        if len(data) >= 4 + 3:
            host = socket.inet_ntop(socket.AF_INET, data[1:5])
            family = socket.AF_INET
            offset += 4
    elif kind == ATYP_DOMAIN:
        if len(data) >= 2:
            name_len = data[1]
            if name_len + 4 <= len(data):
                raw = data[2:2 + name_len]
                host = raw.split(b"\x00", 1)[0].decode("latin-1")
                try:
                    ip = ipaddress.ip_address(host)
                except ValueError:
                    pass
                else:
                    family = socket.AF_INET if ip.version == 4 else socket.AF_INET6
                offset += 1 + name_len
    elif kind == ATYP_IPV6:
        if len(data) >= 16 + 3:
            host = socket.inet_ntop(socket.AF_INET6, data[1:17])
            family = socket.AF_INET6
            offset += 16

    if offset == 1:
        log.error("[udp] invalid header with addr type %d", atyp)
        raise UdpHeaderError(f"invalid header with addr type {atyp}")

    port = int.from_bytes(data[offset:offset + 2], "big")
    return UdpTarget(atyp=atyp, host=host, port=port, length=offset + 2, family=family)


def build_udp_header(host: str, port: int) -> bytes:
    """Build the address header for ``host`` and ``port``."""
    if not 0 <= port <= 0xFFFF:
        raise UdpHeaderError(f"port out of range: {port}")
    try:
        ip = ipaddress.ip_address(host)
    except ValueError:
        name = host.encode("idna") if host else b""
        if not name or len(name) > 255:
            raise UdpHeaderError(f"invalid host name: {host!r}") from None
        head = bytes([ATYP_DOMAIN, len(name)]) + name
    else:
        atyp = ATYP_IPV4 if ip.version == 4 else ATYP_IPV6
        head = bytes([atyp]) + ip.packed
    return head + port.to_bytes(2, "big")


def format_address(host: str, port: int) -> str:
    """Render an address the way log lines show it."""
    return f"{host}:{port}"


def hash_key(family: int, address: tuple) -> tuple:
    """Key under which a client's association is cached."""
    return (family, tuple(address))


def packet_size_for_mtu(mtu: int) -> int:
    """Largest relayed payload for a given MTU; the default when ``mtu`` <= 0."""
    if mtu > 0:
        return mtu - _MTU_OVERHEAD
    return DEFAULT_PACKET_SIZE