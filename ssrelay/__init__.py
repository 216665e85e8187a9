"""Building blocks for an encrypted TCP and UDP relay: headers, sessions, sockets and SNI."""

__version__ = "0.1.0"