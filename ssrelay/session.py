"""Per-connection state of a client talking to the relay server."""

from __future__ import annotations

import abc
import enum
import hashlib
import hmac
import logging
from dataclasses import dataclass

from ssrelay.addr import ONETIMEAUTH_BYTES, Destination, HeaderError, header_complete, parse_header

__all__ = [
    "BUF_SIZE",
    "MALICIOUS",
    "MALFORMED",
    "BAD",
    "OVERFLOW",
    "CIPHER",
    "Stage",
    "Cipher",
    "PlainCipher",
    "SessionError",
    "Session",
]

log = logging.getLogger(__name__)

BUF_SIZE = 2048

MALICIOUS = "malicious"
MALFORMED = "malformed"
BAD = "bad"
OVERFLOW = "overflow"
CIPHER = "cipher"

_CHUNK_HEAD = 2 + ONETIMEAUTH_BYTES


class Stage(enum.IntEnum):
    """Progress of a connection through the handshake."""

    ERROR = -1
    INIT = 0
    HANDSHAKE = 1
    PARSE = 2
    RESOLVE = 4
    STREAM = 5


class Cipher(abc.ABC):
    """A stream cipher context; ``iv`` is known once the first data passed through."""

    key: bytes = b""
    iv: bytes = b""

    @abc.abstractmethod
    def encrypt(self, data: bytes) -> bytes:
        """Encrypt the next part of the stream."""

    @abc.abstractmethod
    def decrypt(self, data: bytes) -> bytes:
        """Decrypt the next part of the stream; raise ValueError when invalid."""


@dataclass
class PlainCipher(Cipher):
    """A cipher that leaves data unchanged."""

    key: bytes = b""
    iv: bytes = b""

    def encrypt(self, data: bytes) -> bytes:
        return bytes(data)

    def decrypt(self, data: bytes) -> bytes:
        return bytes(data)


class SessionError(Exception):
    """The client sent something the session cannot accept."""

    def __init__(self, message: str, reason: str) -> None:
        super().__init__(message)
        self.reason = reason


def _tag(key: bytes, data: bytes) -> bytes:
    return hmac.new(key, data, hashlib.sha1).digest()[:ONETIMEAUTH_BYTES]


class Session:
    """Turns the bytes a client sends into a destination and a payload stream."""

    def __init__(self, cipher: Cipher, auth: bool, iv_len: int) -> None:
        self.cipher = cipher
        self.auth = bool(auth)
        self.iv_len = iv_len
        self.stage = Stage.INIT
        self.destination: Destination | None = None
        self._raw = b""
        self._header = b""
        self._chunks = b""
        self._chunk_id = 0

    def feed(self, data: bytes) -> bytes:
        """Take bytes from the client; return the payload ready for the remote."""
        data = bytes(data)
        if self.stage is Stage.ERROR:
            return b""

        if self.stage is Stage.INIT:
            self._raw += data
            if len(self._raw) > BUF_SIZE:
                raise SessionError("out of recv buffer", OVERFLOW)
            if len(self._raw) <= self.iv_len + 1:
                return b""
            data, self._raw = self._raw, b""

        plain = self._decrypt(data)

        if self.stage in (Stage.INIT, Stage.HANDSHAKE):
            self._header += plain
            if len(self._header) > BUF_SIZE:
                raise SessionError("out of recv buffer", OVERFLOW)
            try:
                complete = header_complete(self._header, self.auth)
            except HeaderError as exc:
                log.error("malformed header: %s", exc)
                self.stage = Stage.ERROR
                self._header = b""
                return b""
            if not complete:
                self.stage = Stage.HANDSHAKE
                return b""
            plain, self._header = self._header, b""
            self.stage = Stage.PARSE
            return self._parse(plain)

        return self._unwrap(plain)

    def encode_response(self, data: bytes) -> bytes:
        """Encrypt data coming back from the remote for the client."""
        try:
            return self.cipher.encrypt(bytes(data))
        except ValueError as exc:
            log.error("invalid password or cipher")
            raise SessionError(str(exc), CIPHER) from exc

    def _decrypt(self, data: bytes) -> bytes:
        try:
            return self.cipher.decrypt(data)
        except ValueError as exc:
            raise SessionError(f"decryption failed: {exc}", MALICIOUS) from exc

    def _parse(self, plain: bytes) -> bytes:
        try:
            destination, payload = parse_header(plain, self.auth)
        except HeaderError as exc:
            raise SessionError(str(exc), MALFORMED) from exc
        if destination.auth:
            expected = _tag(self.cipher.iv + self.cipher.key, destination.header)
            if not hmac.compare_digest(expected, destination.tag):
                raise SessionError("one time auth failed", BAD)
            self.auth = True
        self.destination = destination
        self.stage = Stage.STREAM
        return self._unwrap(payload)

    def _unwrap(self, data: bytes) -> bytes:
        if not self.auth:
            return data
        self._chunks += data
        out = bytearray()
        while len(self._chunks) >= _CHUNK_HEAD:
            length = int.from_bytes(self._chunks[:2], "big")
            end = _CHUNK_HEAD + length
            if len(self._chunks) < end:
                break
            tag = self._chunks[2:_CHUNK_HEAD]
            body = self._chunks[_CHUNK_HEAD:end]
            key = self.cipher.iv + self._chunk_id.to_bytes(4, "big")
            if not hmac.compare_digest(_tag(key, body), tag):
                log.error("hash error")
                raise SessionError("hash error", BAD)
            out += body
            self._chunks = self._chunks[end:]
            self._chunk_id += 1
        if len(self._chunks) > BUF_SIZE:
            raise SessionError("out of recv buffer", OVERFLOW)
        return bytes(out)