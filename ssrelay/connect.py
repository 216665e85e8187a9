"""Opening the outbound connection to the destination a client asked for."""

from __future__ import annotations

import asyncio
import logging
import socket
from collections.abc import Callable

from ssrelay.addr import Destination

__all__ = ["OutboundBlockedError", "resolve_target", "open_remote"]

log = logging.getLogger(__name__)


class OutboundBlockedError(ConnectionError):
    """The destination is on the outbound block list."""


def _sockaddr(family: int, host: str, port: int) -> tuple:
    if family == socket.AF_INET6:
        return (host, port, 0, 0)
    return (host, port)


async def resolve_target(destination: Destination, ipv6_first: bool = False) -> tuple[int, tuple]:
    """Return the address family and socket address for ``destination``."""
    if not destination.needs_resolve:
        return destination.family, _sockaddr(destination.family, destination.host, destination.port)

    loop = asyncio.get_running_loop()
    try:
        infos = await loop.getaddrinfo(
            destination.host,
            destination.port,
            type=socket.SOCK_STREAM,
            proto=socket.IPPROTO_TCP,
        )
    except OSError:
        log.error("unable to resolve %s", destination.host)
        raise
    if not infos:
        raise OSError(f"unable to resolve {destination.host}")

    preferred = socket.AF_INET6 if ipv6_first else socket.AF_INET
    family, _, _, _, address = next(
        (info for info in infos if info[0] == preferred), infos[0]
    )
    log.debug("successfully resolved %s", destination.host)
    return family, address


async def open_remote(
    destination: Destination,
    bind_address: str | None = None,
    ipv6_first: bool = False,
    blocked: Callable[[str], bool] | None = None,
) -> tuple[asyncio.StreamReader, asyncio.StreamWriter]:
    """Connect to ``destination``; ``blocked`` vetoes host names and IP addresses."""
    if blocked is not None and destination.needs_resolve and blocked(destination.host):
        log.debug("outbound blocked %s", destination.host)
        raise OutboundBlockedError(f"outbound blocked {destination.host}")

    family, address = await resolve_target(destination, ipv6_first)

    if blocked is not None and blocked(address[0]):
        log.debug("outbound blocked %s", address[0])
        raise OutboundBlockedError(f"outbound blocked {address[0]}")

    sock = socket.socket(family, socket.SOCK_STREAM, socket.IPPROTO_TCP)
    try:
        sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.setblocking(False)
        if bind_address is not None:
            sock.bind(_sockaddr(family, bind_address, 0))
        await asyncio.get_running_loop().sock_connect(sock, address)
    except BaseException:
        sock.close()
        raise
    return await asyncio.open_connection(sock=sock)