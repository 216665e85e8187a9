import socket

import pytest

from ssrelay.udp_remote import MAX_UDP_CONN_NUM, RemoteEntry, RemoteTable


class _Closable:
    def __init__(self):
        self.closed = 0

    def close(self):
        self.closed += 1


def _recording_table(capacity):
    evicted = []
    table = RemoteTable(capacity, lambda key, value: evicted.append((key, value)))
    return table, evicted


def test_default_capacity_matches_server_limit():
    assert RemoteTable().capacity == MAX_UDP_CONN_NUM == 512


def test_insert_then_get():
    table, evicted = _recording_table(4)
    table.insert("a", 1)
    assert table.get("a") == 1
    assert len(table) == 1
    assert evicted == []


def test_get_missing_returns_none():
    table, _ = _recording_table(4)
    assert table.get("missing") is None
    assert "missing" not in table


def test_oldest_entry_evicted_when_full():
    table, evicted = _recording_table(2)
    table.insert("a", 1)
    table.insert("b", 2)
    table.insert("c", 3)
    assert evicted == [("a", 1)]
    assert list(table) == ["b", "c"]


def test_get_refreshes_recency():
    table, evicted = _recording_table(2)
    table.insert("a", 1)
    table.insert("b", 2)
    assert table.get("a") == 1
    table.insert("c", 3)
    assert evicted == [("b", 2)]
    assert "a" in table and "c" in table


def test_replacing_key_evicts_old_value():
    table, evicted = _recording_table(2)
    table.insert("a", 1)
    table.insert("a", 2)
    assert evicted == [("a", 1)]
    assert table.get("a") == 2
    assert len(table) == 1


def test_reinserting_same_value_does_not_evict():
    table, evicted = _recording_table(2)
    value = object()
    table.insert("a", value)
    table.insert("a", value)
    assert evicted == []
    assert table.get("a") is value


def test_remove_calls_on_evict():
    table, evicted = _recording_table(2)
    table.insert("a", 1)
    assert table.remove("a") is True
    assert evicted == [("a", 1)]
    assert table.remove("a") is False
    assert len(table) == 0


def test_clear_evicts_all_in_age_order():
    table, evicted = _recording_table(3)
    for key, value in (("a", 1), ("b", 2), ("c", 3)):
        table.insert(key, value)
    table.clear()
    assert evicted == [("a", 1), ("b", 2), ("c", 3)]
    assert len(table) == 0


def test_size_never_exceeds_capacity():
    table, evicted = _recording_table(3)
    for i in range(10):
        table.insert(i, i)
        assert len(table) <= 3
    assert len(evicted) == 7


@pytest.mark.parametrize("capacity", [0, -1])
def test_non_positive_capacity_rejected(capacity):
    with pytest.raises(ValueError):
        RemoteTable(capacity)


def test_entry_close_releases_socket_once():
    sock = _Closable()
    entry = RemoteEntry(src_addr=("127.0.0.1", 1000), af=socket.AF_INET, sock=sock)
    entry.close()
    entry.close()
    assert sock.closed == 1
    assert entry.sock is None


def test_table_eviction_closes_entries():
    table = RemoteTable(1, lambda key, entry: entry.close())
    first_sock = _Closable()
    table.insert(("k", 1), RemoteEntry(("127.0.0.1", 1), socket.AF_INET, sock=first_sock))
    table.insert(("k", 2), RemoteEntry(("127.0.0.1", 2), socket.AF_INET, sock=_Closable()))
    assert first_sock.closed == 1
    assert table.get(("k", 2)).src_addr == ("127.0.0.1", 2)