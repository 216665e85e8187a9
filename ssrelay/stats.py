"""Traffic accounting and reporting of usage to a manager process."""

from __future__ import annotations

import contextlib
import logging
import os
import socket
import tempfile
from dataclasses import dataclass

__all__ = [
    "UPDATE_INTERVAL",
    "TrafficCounter",
    "stat_message",
    "send_stat",
]

log = logging.getLogger(__name__)

UPDATE_INTERVAL = 30


@dataclass
class TrafficCounter:
    """Bytes received from clients (tx) and from remotes (rx)."""

    tx: int = 0
    rx: int = 0

    def add_tx(self, count: int) -> None:
        if count < 0:
            raise ValueError("byte count cannot be negative")
        self.tx += count

    def add_rx(self, count: int) -> None:
        if count < 0:
            raise ValueError("byte count cannot be negative")
        self.rx += count

    def total(self) -> int:
        return self.tx + self.rx


def stat_message(port, total: int) -> str:
    """The report line a manager expects for ``port``."""
    return f'stat: {{"{port}":{total}}}'


def _split_address(address: str) -> tuple[str | None, str | None]:
    """Split ``host:port``; the port is None when there is no colon."""
    head, sep, tail = address.rpartition(":")
    if not sep:
        return address or None, None
    host = head
    if host.startswith("[") and host.endswith("]"):
        host = host[1:-1]
    return host or None, tail or None


def _pick_address(host: str, port: str, ipv6_first: bool):
    infos = socket.getaddrinfo(host, port, socket.AF_UNSPEC, socket.SOCK_DGRAM)
    preferred = socket.AF_INET6 if ipv6_first else socket.AF_INET
    for info in infos:
        if info[0] == preferred:
            return info[0], info[4]
    family, _, _, _, address = infos[0]
    return family, address


def send_stat(manager_address: str, port, total: int, ipv6_first: bool) -> None:
    """Send the traffic report to the manager; raises OSError on failure."""
    message = stat_message(port, total).encode() + b"\x00"
    host, manager_port = _split_address(manager_address)

    if host is None or manager_port is None:
        client_path = os.path.join(tempfile.gettempdir(), f"shadowsocks.{port}")
        with contextlib.suppress(FileNotFoundError):
            os.unlink(client_path)
        with socket.socket(socket.AF_UNIX, socket.SOCK_DGRAM) as sock:
            sock.bind(client_path)
            try:
                sent = sock.sendto(message, manager_address)
            finally:
                with contextlib.suppress(FileNotFoundError):
                    os.unlink(client_path)
    else:
        family, address = _pick_address(host, manager_port, ipv6_first)
        with socket.socket(family, socket.SOCK_DGRAM) as sock:
            sent = sock.sendto(message, address)

    if sent != len(message):
        raise OSError("stat_sendto: short write")
    log.debug("update traffic stat: %d", total)