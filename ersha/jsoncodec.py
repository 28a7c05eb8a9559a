"""JSON encoding of domain values, using the externally tagged layout."""

from __future__ import annotations

import json
import math
import re
from dataclasses import MISSING, dataclass, fields, is_dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any

from ersha.models import (
    BatchId,
    BatchUploadRequest,
    BatchUploadResponse,
    Device,
    DeviceError,
    DeviceErrorCode,
    DeviceId,
    DeviceKind,
    DeviceState,
    DeviceStatus,
    Dispatcher,
    DispatcherId,
    DispatcherState,
    H3Cell,
    HelloRequest,
    HelloResponse,
    Percentage,
    ReadingId,
    Sensor,
    SensorId,
    SensorKind,
    SensorMetric,
    SensorReading,
    SensorState,
    SensorStatus,
    StatusId,
    UlidId,
)
from ersha.ulid import Ulid

_PERCENT_KINDS = frozenset({SensorKind.SOIL_MOISTURE, SensorKind.HUMIDITY})
_TIMESTAMP_RE = re.compile(
    r"(\d{4})-(\d{2})-(\d{2})[Tt](\d{2}):(\d{2}):(\d{2})(?:\.(\d{1,9}))?([Zz]|[+-]\d{2}:\d{2})"
)


class CodecError(ValueError):
    """Raised when a value cannot be encoded or decoded."""


@dataclass(frozen=True)
class _Optional:
    inner: Any


@dataclass(frozen=True)
class _Sequence:
    item: Any


_SCHEMAS: dict[type, dict[str, Any]] = {
    Sensor: {"id": SensorId, "metric": SensorMetric, "kind": SensorKind},
    SensorStatus: {
        "sensor_id": SensorId,
        "state": SensorState,
        "last_reading": _Optional(datetime),
    },
    Device: {
        "id": DeviceId,
        "kind": DeviceKind,
        "state": DeviceState,
        "location": H3Cell,
        "manufacturer": _Optional(str),
        "provisioned_at": datetime,
        "sensors": _Sequence(Sensor),
    },
    SensorReading: {
        "id": ReadingId,
        "device_id": DeviceId,
        "dispatcher_id": DispatcherId,
        "metric": SensorMetric,
        "location": H3Cell,
        "confidence": Percentage,
        "timestamp": datetime,
        "sensor_id": SensorId,
    },
    DeviceError: {"code": DeviceErrorCode, "message": _Optional(str)},
    DeviceStatus: {
        "id": StatusId,
        "device_id": DeviceId,
        "dispatcher_id": DispatcherId,
        "battery_percent": Percentage,
        "uptime_seconds": int,
        "signal_rssi": int,
        "errors": _Sequence(DeviceError),
        "timestamp": datetime,
        "sensor_statuses": _Sequence(SensorStatus),
    },
    Dispatcher: {
        "id": DispatcherId,
        "location": H3Cell,
        "state": DispatcherState,
        "provisioned_at": datetime,
    },
    BatchUploadRequest: {
        "id": BatchId,
        "dispatcher_id": DispatcherId,
        "readings": _Sequence(SensorReading),
        "statuses": _Sequence(DeviceStatus),
        "timestamp": datetime,
    },
    BatchUploadResponse: {"id": BatchId},
    HelloRequest: {"dispatcher_id": DispatcherId, "location": H3Cell},
    HelloResponse: {"dispatcher_id": DispatcherId},
}


def format_timestamp(value: datetime) -> str:
    """Format an aware datetime as RFC 3339 in UTC with a trailing Z."""
    if value.tzinfo is None or value.utcoffset() is None:
        raise CodecError("timestamp must be timezone-aware")
    ts = value.astimezone(timezone.utc)
    text = (
        f"{ts.year:04d}-{ts.month:02d}-{ts.day:02d}"
        f"T{ts.hour:02d}:{ts.minute:02d}:{ts.second:02d}"
    )
    if ts.microsecond:
        text += "." + f"{ts.microsecond:06d}".rstrip("0")
    return text + "Z"


def parse_timestamp(text: str) -> datetime:
    """Parse an RFC 3339 timestamp into an aware UTC datetime."""
    match = _TIMESTAMP_RE.fullmatch(text)
    if match is None:
        raise CodecError(f"invalid timestamp {text!r}")
    year, month, day, hour, minute, second, fraction, offset = match.groups()
    micro = int((fraction or "").ljust(6, "0")[:6])
    if offset in ("Z", "z"):
        tz = timezone.utc
    else:
        sign = -1 if offset[0] == "-" else 1
        tz = timezone(sign * timedelta(hours=int(offset[1:3]), minutes=int(offset[4:6])))
    try:
        value = datetime(
            int(year), int(month), int(day), int(hour), int(minute), int(second), micro, tzinfo=tz
        )
    except ValueError as exc:
        raise CodecError(f"invalid timestamp {text!r}: {exc}") from exc
    return value.astimezone(timezone.utc)


def _to_json(value: Any) -> Any:
    if value is None or isinstance(value, (str, bool, int)):
        return value
    if isinstance(value, float):
        if not math.isfinite(value):
            raise CodecError("non-finite numbers cannot be encoded")
        return value
    if isinstance(value, Ulid):
        return str(value)
    if isinstance(value, UlidId):
        return str(value.value)
    if isinstance(value, (H3Cell, Percentage)):
        return value.value
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return format_timestamp(value)
    if isinstance(value, SensorMetric):
        return {value.kind.value: {"value": _to_json(value.value)}}
    if isinstance(value, (list, tuple)):
        return [_to_json(item) for item in value]
    if is_dataclass(value) and not isinstance(value, type):
        return {f.name: _to_json(getattr(value, f.name)) for f in fields(value)}
    raise CodecError(f"cannot encode value of type {type(value).__name__}")


def dumps(value: Any) -> str:
    """Encode a domain value as compact JSON text."""
    return json.dumps(_to_json(value), separators=(",", ":"), ensure_ascii=False)


def _expect(data: Any, expected: type | tuple[type, ...], path: str) -> None:
    if isinstance(data, bool) and expected is not bool:
        raise CodecError(f"{path}: unexpected boolean")
    if not isinstance(data, expected):
        raise CodecError(f"{path}: expected {expected}, got {type(data).__name__}")


def _metric_from_json(data: Any, path: str) -> SensorMetric:
    _expect(data, dict, path)
    if len(data) != 1:
        raise CodecError(f"{path}: metric must have exactly one variant")
    (name, body), = data.items()
    try:
        kind = SensorKind(name)
    except ValueError:
        raise CodecError(f"{path}: unknown metric {name!r}") from None
    _expect(body, dict, f"{path}.{name}")
    if "value" not in body:
        raise CodecError(f"{path}.{name}: missing field 'value'")
    raw = body["value"]
    if kind in _PERCENT_KINDS:
        _expect(raw, int, f"{path}.{name}.value")
        return SensorMetric(kind, Percentage(raw))
    _expect(raw, (int, float), f"{path}.{name}.value")
    return SensorMetric(kind, float(raw))


def _record_from_json(tp: type, data: Any, path: str) -> Any:
    schema = _SCHEMAS.get(tp)
    if schema is None:
        raise CodecError(f"{path}: unsupported type {tp.__name__}")
    _expect(data, dict, path)
    kwargs = {}
    for f in fields(tp):
        if not f.init:
            continue
        if f.name not in schema:
            raise CodecError(f"{path}: no schema for field {f.name!r}")
        field_type = schema[f.name]
        if f.name in data:
            kwargs[f.name] = _from_json(field_type, data[f.name], f"{path}.{f.name}")
        elif isinstance(field_type, _Optional):
            kwargs[f.name] = None
        elif f.default is MISSING and f.default_factory is MISSING:
            raise CodecError(f"{path}: missing field {f.name!r}")
    return tp(**kwargs)


def _from_json(tp: Any, data: Any, path: str) -> Any:
    if isinstance(tp, _Optional):
        return None if data is None else _from_json(tp.inner, data, path)
    if isinstance(tp, _Sequence):
        _expect(data, list, path)
        return tuple(_from_json(tp.item, item, f"{path}[{i}]") for i, item in enumerate(data))
    if not isinstance(tp, type):
        raise CodecError(f"{path}: unsupported type {tp!r}")
    if tp is Ulid:
        _expect(data, str, path)
        return Ulid.from_str(data)
    if issubclass(tp, UlidId):
        _expect(data, str, path)
        return tp(Ulid.from_str(data))
    if tp in (H3Cell, Percentage):
        _expect(data, int, path)
        return tp(data)
    if issubclass(tp, Enum):
        try:
            return tp(data)
        except ValueError:
            raise CodecError(f"{path}: unknown {tp.__name__} variant {data!r}") from None
    if tp is datetime:
        _expect(data, str, path)
        return parse_timestamp(data)
    if tp is SensorMetric:
        return _metric_from_json(data, path)
    if tp is float:
        _expect(data, (int, float), path)
        return float(data)
    if tp in (str, int, bool):
        _expect(data, tp, path)
        return data
    return _record_from_json(tp, data, path)


def _reject_constant(name: str) -> Any:
    raise CodecError(f"invalid JSON constant {name}")


def loads(cls: type, text: str | bytes) -> Any:
    """Decode JSON text into an instance of ``cls``."""
    try:
        data = json.loads(text, parse_constant=_reject_constant)
    except json.JSONDecodeError as exc:
        raise CodecError(f"invalid JSON: {exc}") from exc
    try:
        return _from_json(cls, data, cls.__name__)
    except CodecError:
        raise
    except (ValueError, TypeError) as exc:
        raise CodecError(str(exc)) from exc