"""Creation of the UDP sockets used by the relay."""

from __future__ import annotations

import contextlib
import logging
import socket

__all__ = ["UdpBindError", "create_server_socket", "create_remote_socket", "QOS_TOS"]

log = logging.getLogger(__name__)

# DSCP "expedited forwarding" as a TOS byte.
QOS_TOS = 46


class UdpBindError(OSError):
    """No UDP socket could be created and bound."""


def _resolve(host: str | None, port: str) -> list:
    flags = socket.AI_PASSIVE | socket.AI_ADDRCONFIG
    try:
        return socket.getaddrinfo(
            host, port, socket.AF_UNSPEC, socket.SOCK_DGRAM, socket.IPPROTO_UDP, flags
        )
    except socket.gaierror:
        # A loopback-only host makes AI_ADDRCONFIG reject even literal addresses.
        try:
            return socket.getaddrinfo(
                host,
                port,
                socket.AF_UNSPEC,
                socket.SOCK_DGRAM,
                socket.IPPROTO_UDP,
                socket.AI_PASSIVE,
            )
        except socket.gaierror as exc:
            log.error("[udp] getaddrinfo: %s", exc)
            raise UdpBindError(f"[udp] getaddrinfo: {exc}") from exc


def _set_reuseport(sock: socket.socket) -> bool:
    option = getattr(socket, "SO_REUSEPORT", None)
    if option is None:
        return False
    try:
        sock.setsockopt(socket.SOL_SOCKET, option, 1)
    except OSError:
        return False
    return True


def _set_qos(sock: socket.socket) -> None:
    option = getattr(socket, "IP_TOS", None)
    if option is not None:
        with contextlib.suppress(OSError):
            sock.setsockopt(socket.IPPROTO_IP, option, QOS_TOS)


def create_server_socket(host: str | None, port) -> socket.socket:
    """Bind the UDP socket clients send to; ``None`` binds all addresses."""
    results = _resolve(host, str(port))

    # With no host, prefer the first IPv6 wildcard so one socket serves both stacks.
    start = 0
    if host is None:
        start = next(
            (i for i, info in enumerate(results) if info[0] == socket.AF_INET6), 0
        )

    for family, socktype, proto, _, address in results[start:]:
        try:
            sock = socket.socket(family, socktype, proto)
        except OSError:
            continue
        try:
            if family == socket.AF_INET6:
                sock.setsockopt(socket.IPPROTO_IPV6, socket.IPV6_V6ONLY, 1 if host else 0)
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            if _set_reuseport(sock):
                log.info("udp port reuse enabled")
            _set_qos(sock)
            sock.bind(address)
        except OSError as exc:
            log.error("[udp] bind: %s", exc)
            sock.close()
            continue
        return sock

    log.error("[udp] cannot bind")
    raise UdpBindError(f"[udp] cannot bind to {host}:{port}")


def create_remote_socket(ipv6: bool) -> socket.socket:
    """A UDP socket bound to an ephemeral port on every local address."""
    if ipv6:
        family, address = socket.AF_INET6, ("::", 0)
    else:
        family, address = socket.AF_INET, ("0.0.0.0", 0)
    try:
        sock = socket.socket(family, socket.SOCK_DGRAM)
    except OSError as exc:
        log.error("[udp] cannot create socket: %s", exc)
        raise UdpBindError(f"[udp] cannot create socket: {exc}") from exc
    try:
        sock.bind(address)
    except OSError as exc:
        sock.close()
        log.error("[udp] cannot bind remote: %s", exc)
        raise UdpBindError(f"[udp] cannot bind remote: {exc}") from exc
    return sock