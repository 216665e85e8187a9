"""Creation and inspection of the TCP listening and client sockets."""

from __future__ import annotations

import errno
import logging
import socket
import sys
import time

__all__ = ["BindError", "create_and_bind", "set_fast_open", "peer_name", "MPTCP_ENABLED"]

log = logging.getLogger(__name__)

MPTCP_ENABLED = 42
_RESOLVE_ATTEMPTS = 7


class BindError(OSError):
    """No listening socket could be created."""


def _resolve(host: str | None, port: str) -> list:
    flags = socket.AI_PASSIVE | socket.AI_ADDRCONFIG
    error: socket.gaierror | None = None
    for attempt in range(1, _RESOLVE_ATTEMPTS + 1):
        try:
            return socket.getaddrinfo(
                host, port, socket.AF_UNSPEC, socket.SOCK_STREAM, socket.IPPROTO_TCP, flags
            )
        except socket.gaierror as exc:
            error = exc
            delay = 2 ** attempt
            time.sleep(delay)
            log.error("failed to resolve server name, wait %d seconds", delay)
    raise BindError(f"getaddrinfo: {error}")


def _set_reuseport(sock: socket.socket) -> bool:
    option = getattr(socket, "SO_REUSEPORT", None)
    if option is None:
        return False
    try:
        sock.setsockopt(socket.SOL_SOCKET, option, 1)
    except OSError:
        return False
    return True


def create_and_bind(host: str | None, port, mptcp: bool) -> socket.socket:
    """Bind a TCP socket for ``host`` and ``port``; ``None`` binds all addresses."""
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
                log.info("tcp port reuse enabled")
            if mptcp:
                try:
                    sock.setsockopt(socket.IPPROTO_TCP, MPTCP_ENABLED, 1)
                except OSError as exc:
                    log.error("failed to enable multipath TCP: %s", exc)
            sock.bind(address)
        except OSError as exc:
            log.error("bind: %s", exc)
            sock.close()
            continue
        return sock

    log.error("Could not bind")
    raise BindError(f"could not bind to {host}:{port}")


def set_fast_open(sock) -> bool:
    """Enable TCP fast open on a listening socket; False when unavailable."""
    option = getattr(socket, "TCP_FASTOPEN", None)
    if option is None:
        log.error("fast open is not supported on this platform")
        return False
    queue = 1 if sys.platform == "darwin" else 5
    try:
        sock.setsockopt(socket.IPPROTO_TCP, option, queue)
    except OSError as exc:
        if exc.errno in (errno.EPROTONOSUPPORT, errno.ENOPROTOOPT):
            log.error("fast open is not supported on this platform")
        else:
            log.error("setsockopt: %s", exc)
        return False
    return True


def peer_name(sock: socket.socket) -> str | None:
    """IP address of the peer, or None when it cannot be obtained."""
    try:
        address = sock.getpeername()
    except OSError:
        return None
    if sock.family in (socket.AF_INET, socket.AF_INET6):
        return address[0]
    return None