"""Table of UDP associations between clients and the sockets serving them."""

from __future__ import annotations

import contextlib
import logging
from collections import OrderedDict
from collections.abc import Callable, Hashable, Iterator
from dataclasses import dataclass
from typing import Any

__all__ = ["MAX_UDP_CONN_NUM", "RemoteEntry", "RemoteTable"]

log = logging.getLogger(__name__)

MAX_UDP_CONN_NUM = 512


@dataclass
class RemoteEntry:
    """One client association: where it came from and where it is going."""

    src_addr: tuple
    af: int
    addr_header: bytes = b""
    dst_addr: tuple | None = None
    sock: Any = None

    def close(self) -> None:
        """Release the socket or transport serving this association."""
        if self.sock is not None:
            with contextlib.suppress(OSError):
                self.sock.close()
            self.sock = None


class RemoteTable:
    """A bounded, least-recently-used map of associations.

    ``on_evict(key, value)`` is called whenever a value leaves the table,
    whether pushed out by a newer entry, removed, replaced or cleared.
    """

    def __init__(
        self,
        capacity: int = MAX_UDP_CONN_NUM,
        on_evict: Callable[[Hashable, Any], None] | None = None,
    ) -> None:
        if capacity <= 0:
            raise ValueError("capacity must be positive")
        self.capacity = capacity
        self.on_evict = on_evict
        self._entries: OrderedDict[Hashable, Any] = OrderedDict()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def __iter__(self) -> Iterator[Hashable]:
        return iter(list(self._entries))

    def _evict(self, key: Hashable, value: Any) -> None:
        log.debug("[udp] one connection freed")
        if self.on_evict is not None:
            self.on_evict(key, value)

    def get(self, key: Hashable) -> Any:
        """The value for ``key``, marked as most recently used; None if absent."""
        try:
            self._entries.move_to_end(key)
        except KeyError:
            return None
        return self._entries[key]

    def insert(self, key: Hashable, value: Any) -> None:
        """Store ``value``, pushing out the least recently used entry when full."""
        old = self._entries.pop(key, None)
        if old is not None and old is not value:
            self._evict(key, old)
        while len(self._entries) >= self.capacity:
            oldest_key, oldest = self._entries.popitem(last=False)
            self._evict(oldest_key, oldest)
        self._entries[key] = value

    def remove(self, key: Hashable) -> bool:
        """Drop ``key``; True when it was present."""
        try:
            value = self._entries.pop(key)
        except KeyError:
            return False
        self._evict(key, value)
        return True

    def clear(self) -> None:
        """Drop every entry."""
        while self._entries:
            key, value = self._entries.popitem(last=False)
            self._evict(key, value)