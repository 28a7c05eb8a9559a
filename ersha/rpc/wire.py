"""Compact binary encoding of envelopes.

Integers are LEB128 varints (signed ones zigzag-encoded), bytes and
percentages are single raw bytes, floats are 8-byte little-endian IEEE 754
values, strings and sequences carry a varint length prefix, options a one-byte
tag, and enum variants their varint index in declaration order.  Identifiers
travel as their 26-character text and timestamps as RFC 3339 text.
"""

from __future__ import annotations

import struct
from datetime import datetime
from typing import Any, Callable, TypeVar

from ersha.jsoncodec import format_timestamp, parse_timestamp
from ersha.models import (
    BatchId,
    BatchUploadRequest,
    BatchUploadResponse,
    DeviceError,
    DeviceErrorCode,
    DeviceId,
    DeviceStatus,
    DispatcherId,
    H3Cell,
    HelloRequest,
    HelloResponse,
    Percentage,
    ReadingId,
    SensorId,
    SensorKind,
    SensorMetric,
    SensorReading,
    SensorState,
    SensorStatus,
    StatusId,
    UlidId,
)
from ersha.rpc.message import (
    WIRE_MESSAGE_TYPES,
    Envelope,
    MessageId,
    Ping,
    Pong,
    WireError,
    WireErrorCode,
)
from ersha.ulid import Ulid

T = TypeVar("T")

_F64 = struct.Struct("<d")
_PERCENT_KINDS = frozenset({SensorKind.SOIL_MOISTURE, SensorKind.HUMIDITY})
_METRIC_KINDS = tuple(SensorKind)
_PAYLOAD_INDEX = {cls: index for index, cls in enumerate(WIRE_MESSAGE_TYPES)}


class DecodeError(ValueError):
    """Raised when bytes do not hold a valid envelope."""


class _Encoder:
    def __init__(self) -> None:
        self._buf = bytearray()

    def getvalue(self) -> bytes:
        return bytes(self._buf)

    def u8(self, value: int) -> None:
        self._buf.append(value)

    def varint(self, value: int) -> None:
        if value < 0:
            raise ValueError("varint must not be negative")
        while True:
            byte = value & 0x7F
            value >>= 7
            if value:
                self._buf.append(byte | 0x80)
            else:
                self._buf.append(byte)
                return

    def zigzag(self, value: int) -> None:
        self.varint(value << 1 if value >= 0 else ((-value) << 1) - 1)

    def f64(self, value: float) -> None:
        self._buf += _F64.pack(value)

    def string(self, text: str) -> None:
        data = text.encode("utf-8")
        self.varint(len(data))
        self._buf += data

    def ulid_id(self, ident: UlidId) -> None:
        self.string(str(ident.value))

    def timestamp(self, value: datetime) -> None:
        self.string(format_timestamp(value))

    def variant(self, member: Any) -> None:
        self.varint(list(type(member)).index(member))

    def option(self, value: T | None, put: Callable[[_Encoder, T], None]) -> None:
        if value is None:
            self.u8(0)
        else:
            self.u8(1)
            put(self, value)

    def seq(self, items: tuple, put: Callable[[_Encoder, Any], None]) -> None:
        self.varint(len(items))
        for item in items:
            put(self, item)


class _Decoder:
    def __init__(self, data: bytes) -> None:
        self._data = bytes(data)
        self._pos = 0

    def take(self, count: int) -> bytes:
        end = self._pos + count
        if end > len(self._data):
            raise DecodeError("unexpected end of input")
        chunk = self._data[self._pos:end]
        self._pos = end
        return chunk

    def u8(self) -> int:
        return self.take(1)[0]

    def varint(self, bits: int = 64) -> int:
        max_bytes = (bits + 6) // 7
        result = 0
        for index in range(max_bytes):
            byte = self.u8()
            result |= (byte & 0x7F) << (7 * index)
            if not byte & 0x80:
                if result >> bits:
                    raise DecodeError(f"varint overflows {bits} bits")
                return result
        raise DecodeError(f"varint longer than {max_bytes} bytes")

    def zigzag(self, bits: int) -> int:
        raw = self.varint(bits)
        return (raw >> 1) ^ -(raw & 1)

    def f64(self) -> float:
        return _F64.unpack(self.take(8))[0]

    def string(self) -> str:
        raw = self.take(self.varint())
        try:
            return raw.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise DecodeError(f"invalid UTF-8 in string: {exc}") from exc

    def ulid(self) -> Ulid:
        return Ulid.from_str(self.string())

    def timestamp(self) -> datetime:
        return parse_timestamp(self.string())

    def variant(self, enum_cls: type[T]) -> T:
        members = list(enum_cls)  # type: ignore[call-overload]
        index = self.varint(32)
        if index >= len(members):
            raise DecodeError(f"unknown {enum_cls.__name__} variant {index}")
        return members[index]

    def option(self, get: Callable[[_Decoder], T]) -> T | None:
        tag = self.u8()
        if tag == 0:
            return None
        if tag == 1:
            return get(self)
        raise DecodeError(f"invalid option tag {tag}")

    def seq(self, get: Callable[[_Decoder], T]) -> tuple[T, ...]:
        return tuple(get(self) for _ in range(self.varint()))


def _put_metric(enc: _Encoder, metric: SensorMetric) -> None:
    enc.varint(_METRIC_KINDS.index(metric.kind))
    if metric.kind in _PERCENT_KINDS:
        enc.u8(metric.value.value)
    else:
        enc.f64(metric.value)


def _get_metric(dec: _Decoder) -> SensorMetric:
    kind = dec.variant(SensorKind)
    if kind in _PERCENT_KINDS:
        return SensorMetric(kind, Percentage(dec.u8()))
    return SensorMetric(kind, dec.f64())


def _put_reading(enc: _Encoder, reading: SensorReading) -> None:
    enc.ulid_id(reading.id)
    enc.ulid_id(reading.device_id)
    enc.ulid_id(reading.dispatcher_id)
    _put_metric(enc, reading.metric)
    enc.varint(reading.location.value)
    enc.u8(reading.confidence.value)
    enc.timestamp(reading.timestamp)
    enc.ulid_id(reading.sensor_id)


def _get_reading(dec: _Decoder) -> SensorReading:
    return SensorReading(
        id=ReadingId(dec.ulid()),
        device_id=DeviceId(dec.ulid()),
        dispatcher_id=DispatcherId(dec.ulid()),
        metric=_get_metric(dec),
        location=H3Cell(dec.varint()),
        confidence=Percentage(dec.u8()),
        timestamp=dec.timestamp(),
        sensor_id=SensorId(dec.ulid()),
    )


def _put_device_error(enc: _Encoder, error: DeviceError) -> None:
    enc.variant(error.code)
    enc.option(error.message, _Encoder.string)


def _get_device_error(dec: _Decoder) -> DeviceError:
    code = dec.variant(DeviceErrorCode)
    return DeviceError(code, dec.option(_Decoder.string))


def _put_sensor_status(enc: _Encoder, status: SensorStatus) -> None:
    enc.ulid_id(status.sensor_id)
    enc.variant(status.state)
    enc.option(status.last_reading, _Encoder.timestamp)


def _get_sensor_status(dec: _Decoder) -> SensorStatus:
    sensor_id = SensorId(dec.ulid())
    state = dec.variant(SensorState)
    return SensorStatus(sensor_id, state, dec.option(_Decoder.timestamp))


def _put_device_status(enc: _Encoder, status: DeviceStatus) -> None:
    enc.ulid_id(status.id)
    enc.ulid_id(status.device_id)
    enc.ulid_id(status.dispatcher_id)
    enc.u8(status.battery_percent.value)
    enc.varint(status.uptime_seconds)
    enc.zigzag(status.signal_rssi)
    enc.seq(status.errors, _put_device_error)
    enc.timestamp(status.timestamp)
    enc.seq(status.sensor_statuses, _put_sensor_status)


def _get_device_status(dec: _Decoder) -> DeviceStatus:
    return DeviceStatus(
        id=StatusId(dec.ulid()),
        device_id=DeviceId(dec.ulid()),
        dispatcher_id=DispatcherId(dec.ulid()),
        battery_percent=Percentage(dec.u8()),
        uptime_seconds=dec.varint(),
        signal_rssi=dec.zigzag(16),
        errors=dec.seq(_get_device_error),
        timestamp=dec.timestamp(),
        sensor_statuses=dec.seq(_get_sensor_status),
    )


def _put_hello_request(enc: _Encoder, request: HelloRequest) -> None:
    enc.ulid_id(request.dispatcher_id)
    enc.varint(request.location.value)


def _get_hello_request(dec: _Decoder) -> HelloRequest:
    return HelloRequest(DispatcherId(dec.ulid()), H3Cell(dec.varint()))


def _put_hello_response(enc: _Encoder, response: HelloResponse) -> None:
    enc.ulid_id(response.dispatcher_id)


def _get_hello_response(dec: _Decoder) -> HelloResponse:
    return HelloResponse(DispatcherId(dec.ulid()))


def _put_batch_request(enc: _Encoder, request: BatchUploadRequest) -> None:
    enc.ulid_id(request.id)
    enc.ulid_id(request.dispatcher_id)
    enc.seq(request.readings, _put_reading)
    enc.seq(request.statuses, _put_device_status)
    enc.timestamp(request.timestamp)


def _get_batch_request(dec: _Decoder) -> BatchUploadRequest:
    return BatchUploadRequest(
        id=BatchId(dec.ulid()),
        dispatcher_id=DispatcherId(dec.ulid()),
        readings=dec.seq(_get_reading),
        statuses=dec.seq(_get_device_status),
        timestamp=dec.timestamp(),
    )


def _put_batch_response(enc: _Encoder, response: BatchUploadResponse) -> None:
    enc.ulid_id(response.id)


def _get_batch_response(dec: _Decoder) -> BatchUploadResponse:
    return BatchUploadResponse(BatchId(dec.ulid()))


def _put_wire_error(enc: _Encoder, error: WireError) -> None:
    enc.variant(error.code)
    enc.string(error.message)


def _get_wire_error(dec: _Decoder) -> WireError:
    code = dec.variant(WireErrorCode)
    return WireError(code, dec.string())


_PAYLOAD_WRITERS: dict[type, Callable[[_Encoder, Any], None]] = {
    Ping: lambda enc, _payload: None,
    Pong: lambda enc, _payload: None,
    HelloRequest: _put_hello_request,
    HelloResponse: _put_hello_response,
    BatchUploadRequest: _put_batch_request,
    BatchUploadResponse: _put_batch_response,
    WireError: _put_wire_error,
}

_PAYLOAD_READERS: dict[type, Callable[[_Decoder], Any]] = {
    Ping: lambda dec: Ping(),
    Pong: lambda dec: Pong(),
    HelloRequest: _get_hello_request,
    HelloResponse: _get_hello_response,
    BatchUploadRequest: _get_batch_request,
    BatchUploadResponse: _get_batch_response,
    WireError: _get_wire_error,
}


def _get_message_id(dec: _Decoder) -> MessageId:
    return MessageId(dec.ulid())


def encode_envelope(envelope: Envelope) -> bytes:
    """Encode an envelope to its binary form."""
    enc = _Encoder()
    enc.ulid_id(envelope.msg_id)
    enc.option(envelope.reply_to, _Encoder.ulid_id)
    payload_type = type(envelope.payload)
    enc.varint(_PAYLOAD_INDEX[payload_type])
    _PAYLOAD_WRITERS[payload_type](enc, envelope.payload)
    return enc.getvalue()


def decode_envelope(data: bytes) -> Envelope:
    """Decode an envelope from its binary form; trailing bytes are ignored."""
    dec = _Decoder(data)
    try:
        msg_id = _get_message_id(dec)
        reply_to = dec.option(_get_message_id)
        index = dec.varint(32)
        if index >= len(WIRE_MESSAGE_TYPES):
            raise DecodeError(f"unknown message variant {index}")
        payload = _PAYLOAD_READERS[WIRE_MESSAGE_TYPES[index]](dec)
        return Envelope(msg_id, reply_to, payload)
    except DecodeError:
        raise
    except (ValueError, TypeError) as exc:
        raise DecodeError(str(exc)) from exc