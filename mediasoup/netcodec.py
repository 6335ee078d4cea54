"""Framings of the messages exchanged with the worker over a byte stream."""

from __future__ import annotations

import abc
import re
import struct
import threading
from typing import BinaryIO

SEPARATOR_SYMBOL = b":"
END_SYMBOL = b","

# Length prefix in the host's native byte order.
_LENGTH = struct.Struct("=I")
_NETSTRING_LENGTH = re.compile(rb"[+-]?[0-9]+")


def _read_exact(reader: BinaryIO, size: int) -> bytes:
    """Read exactly ``size`` bytes, raising EOFError if the stream ends first."""
    chunks = []
    remaining = size
    while remaining > 0:
        chunk = reader.read(remaining)
        if not chunk:
            raise EOFError(f"stream ended {remaining} bytes short of {size}")
        chunks.append(chunk)
        remaining -= len(chunk)
    return b"".join(chunks)


def _write_all(writer: BinaryIO, data: bytes) -> None:
    writer.write(data)
    flush = getattr(writer, "flush", None)
    if flush is not None:
        flush()


def _close_both(writer: BinaryIO, reader: BinaryIO) -> None:
    """Close both streams; the writer's error wins if both fail."""
    first: BaseException | None = None
    try:
        writer.close()
    except Exception as exc:
        first = exc
    try:
        reader.close()
    except Exception as exc:
        if first is None:
            raise
    if first is not None:
        raise first


class Codec(abc.ABC):
    """Writes and reads whole payloads over a pair of byte streams."""

    @abc.abstractmethod
    def write_payload(self, payload: bytes) -> None:
        """Send one payload."""

    @abc.abstractmethod
    def read_payload(self) -> bytes:
        """Receive one payload; EOFError when the stream has ended."""

    @abc.abstractmethod
    def close(self) -> None:
        """Close both streams."""

    def __enter__(self) -> Codec:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


class NetLVCodec(Codec):
    """Payloads prefixed by a 32-bit length in native byte order."""

    def __init__(self, writer: BinaryIO, reader: BinaryIO) -> None:
        self._writer = writer
        self._reader = reader
        self._lock = threading.Lock()

    def write_payload(self, payload: bytes) -> None:
        """Send ``payload``; an empty payload is not sent at all."""
        if not payload:
            return
        if len(payload) > 0xFFFFFFFF:
            raise ValueError("payload too large for a 32-bit length")
        with self._lock:
            _write_all(self._writer, _LENGTH.pack(len(payload)) + bytes(payload))

    def read_payload(self) -> bytes:
        (length,) = _LENGTH.unpack(_read_exact(self._reader, _LENGTH.size))
        return _read_exact(self._reader, length)

    def close(self) -> None:
        _close_both(self._writer, self._reader)


class NetStringCodec(Codec):
    """Payloads framed as netstrings: ``<length>:<payload>,``."""

    def __init__(self, writer: BinaryIO, reader: BinaryIO) -> None:
        self._writer = writer
        self._reader = reader

    def write_payload(self, payload: bytes) -> None:
        frame = str(len(payload)).encode() + SEPARATOR_SYMBOL + bytes(payload) + END_SYMBOL
        _write_all(self._writer, frame)

    def read_payload(self) -> bytes:
        begin = self._read_until_separator()
        if not _NETSTRING_LENGTH.fullmatch(begin):
            raise ValueError(f"invalid payload length: {begin!r}")
        length = int(begin)
        if length < 0:
            raise ValueError(f"invalid payload length: {length}")
        payload = _read_exact(self._reader, length)
        end = _read_exact(self._reader, 1)
        if end != END_SYMBOL:
            raise ValueError("invalid payload end")
        return payload

    def close(self) -> None:
        _close_both(self._writer, self._reader)

    def _read_until_separator(self) -> bytes:
        prefix = bytearray()
        while True:
            char = self._reader.read(1)
            if not char:
                raise EOFError("stream ended before the payload separator")
            if char == SEPARATOR_SYMBOL:
                return bytes(prefix)
            prefix += char