# ssrelay

`ssrelay` is a library of building blocks for a relay server. In such a
server, clients open an encrypted stream or send encrypted datagrams, and
each one starts with an address header that names the destination. The
package parses and builds those headers and tracks the state of each client
connection. It also opens the sockets a relay needs, keeps a table of UDP
associations, reports traffic to a manager process and reads the Server
Name Indication from a TLS ClientHello.

It needs Python 3.10 or later and has no runtime dependencies.

```
pip install .
```

## Modules

- `ssrelay.sni`: `parse_server_name(data)` returns the first host name in
  the SNI extension of a TLS ClientHello. It raises
  `IncompleteRequestError` when more data is needed,
  `NoServerNameError` when the handshake carries no name (for example
  SSL 2.0, or SSL 3.0 without extensions), and `InvalidClientHelloError`
  for anything malformed. All three derive from `SniError`.
- `ssrelay.udp_header`: `parse_udp_header(data)` returns a `UdpTarget`
  with the address type, host, port, header length and address family.
  `build_udp_header(host, port)` writes an IPv4, IPv6 or domain header.
  The module also has `format_address`, `hash_key` and
  `packet_size_for_mtu`. The last returns the MTU minus 95, or 1397 when
  the MTU is not positive. Malformed input raises `UdpHeaderError`.
- `ssrelay.addr`: the TCP request header. `header_complete(data, auth)`
  tells whether a whole header has arrived, counting the 10-byte
  authentication tag when `auth` is set or the ATYP flag asks for it.
  `parse_header(data, auth)` returns a `Destination` and the payload that
  follows the header. `header_body_length(atyp, data)` gives the size of
  the address plus port. An unknown address type or an invalid host name
  raises `HeaderError`.
- `ssrelay.session`: `Session(cipher, auth, iv_len)` holds one client
  connection. `feed(data)` takes raw client bytes and decrypts them. It
  collects a header that arrives over several reads and checks the
  one-time HMAC-SHA1 tags of the header and of each chunk. It returns the
  payload that is ready for the destination, and sets `destination` once
  the header has been parsed. `encode_response(data)` encrypts data going
  back to the client. Failures raise `SessionError`, whose `reason`
  attribute is one of `MALICIOUS`, `MALFORMED`, `BAD`, `OVERFLOW` or
  `CIPHER`. Ciphers follow the abstract `Cipher` class. `PlainCipher`
  passes data through unchanged.
- `ssrelay.connect`: `open_remote(destination, bind_address, ipv6_first,
  blocked)` is a coroutine. It resolves the destination when needed and
  connects to it, returning an asyncio reader and writer pair. It raises
  `OutboundBlockedError` when the `blocked` callback rejects the host or
  the resolved address. `resolve_target` performs only the resolution
  step.
- `ssrelay.listener`: `create_and_bind(host, port, mptcp)` returns a bound
  TCP socket, which is not yet listening, or raises `BindError`. Name
  resolution is retried up to seven times, with waits that double from
  2 seconds. With no host, the first IPv6 wildcard address is preferred.
  The module also has `set_fast_open(sock)` and `peer_name(sock)`.
- `ssrelay.udp_sockets`: `create_server_socket(host, port)` and
  `create_remote_socket(ipv6)` return bound UDP sockets or raise
  `UdpBindError`.
- `ssrelay.udp_remote`: `RemoteTable(capacity, on_evict)` is a
  least-recently-used map with `get`, `insert`, `remove` and `clear`. It
  calls `on_evict(key, value)` for every value that leaves the table.
  `RemoteEntry` describes one client association and closes its socket
  with `close()`.
- `ssrelay.stats`: `TrafficCounter` counts bytes in both directions.
  `stat_message(port, total)` formats a report line such as
  `stat: {"8388":1234}`. `send_stat(manager_address, port, total,
  ipv6_first)` sends that line over UDP when the address is `host:port`.
  For any other address it sends over a Unix datagram socket to that path.

## Example

```python
from ssrelay.session import PlainCipher, Session
from ssrelay.udp_header import build_udp_header, parse_udp_header

header = build_udp_header("127.0.0.1", 8080)
target = parse_udp_header(header + b"payload")
assert (target.host, target.port, target.length) == ("127.0.0.1", 8080, 7)

session = Session(PlainCipher(), auth=False, iv_len=0)
payload = session.feed(header + b"hello")
assert payload == b"hello"
assert str(session.destination) == "127.0.0.1:8080"
```

## What this package does not do

The package has no command-line program and no running relay. Nothing in
it accepts client connections and pumps data between them and their
destinations, and nothing runs the UDP relay loop. You have to wire the
pieces above together in your own asyncio code. It ships no real stream
ciphers, only the `Cipher` interface and the pass-through `PlainCipher`. It
has no protocol or obfuscation plugins, no access-control lists and no
block list of misbehaving clients.

## Development

```
pip install -e ".[test]"
pytest
```