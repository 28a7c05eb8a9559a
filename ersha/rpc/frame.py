"""Length-prefixed framing of envelopes over a byte stream."""

from __future__ import annotations

import asyncio
import struct

from ersha.rpc.message import Envelope
from ersha.rpc.wire import DecodeError, decode_envelope, encode_envelope

MAX_FRAME_BYTES = 2_000_000
_HEADER = struct.Struct(">I")


class FrameError(Exception):
    """A frame could not be written or read."""


class FrameTooLarge(FrameError):
    """A frame exceeds MAX_FRAME_BYTES."""

    def __init__(self, size: int) -> None:
        super().__init__(f"frame too large: {size} bytes (limit {MAX_FRAME_BYTES})")
        self.size = size


async def write_frame(writer, envelope: Envelope) -> None:
    """Encode an envelope and write it with a 4-byte big-endian length prefix."""
    data = encode_envelope(envelope)
    if len(data) > MAX_FRAME_BYTES:
        raise FrameTooLarge(len(data))
    try:
        writer.write(_HEADER.pack(len(data)) + data)
        await writer.drain()
    except OSError as exc:
        raise FrameError(f"io error: {exc}") from exc


async def _read_exactly(reader, count: int) -> bytes:
    try:
        return await reader.readexactly(count)
    except asyncio.IncompleteReadError as exc:
        raise FrameError(
            f"io error: stream ended after {len(exc.partial)} of {count} bytes"
        ) from exc
    except OSError as exc:
        raise FrameError(f"io error: {exc}") from exc


async def read_frame(reader) -> Envelope:
    """Read one length-prefixed frame and decode the envelope it holds."""
    (length,) = _HEADER.unpack(await _read_exactly(reader, _HEADER.size))
    if length > MAX_FRAME_BYTES:
        raise FrameTooLarge(length)
    body = await _read_exactly(reader, length)
    try:
        return decode_envelope(body)
    except DecodeError as exc:
        raise FrameError(f"decode error: {exc}") from exc