"""Core domain types shared by dispatchers and the central service."""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Iterable

from ersha.ulid import Ulid

U8_MAX = 0xFF
U64_MAX = (1 << 64) - 1
I16_MIN = -(1 << 15)
I16_MAX = (1 << 15) - 1


def _set(obj: object, name: str, value: object) -> None:
    object.__setattr__(obj, name, value)


def _require(value: object, expected: type | tuple[type, ...], name: str) -> None:
    if not isinstance(value, expected):
        raise TypeError(f"{name} has invalid type {type(value).__name__}")


def _check_int(value: object, name: str, low: int, high: int) -> None:
    if isinstance(value, bool) or not isinstance(value, int):
        raise TypeError(f"{name} must be an integer")
    if not low <= value <= high:
        raise ValueError(f"{name} must be between {low} and {high}, got {value}")


def _utc(value: object, name: str) -> datetime:
    if not isinstance(value, datetime):
        raise TypeError(f"{name} must be a datetime")
    if value.tzinfo is None or value.utcoffset() is None:
        raise ValueError(f"{name} must be timezone-aware")
    return value.astimezone(timezone.utc)


def _tuple_of(values: Iterable[object], item_type: type, name: str) -> tuple:
    items = tuple(values)
    for item in items:
        _require(item, item_type, f"{name} item")
    return items


@dataclass(frozen=True, order=True)
class UlidId:
    """Base for identifiers that wrap a ULID."""

    value: Ulid

    def __post_init__(self) -> None:
        _require(self.value, Ulid, type(self).__name__)

    @classmethod
    def new(cls):
        """Create an identifier from a fresh ULID."""
        return cls(Ulid.new())

    def __str__(self) -> str:
        return str(self.value)


class DeviceId(UlidId):
    """Unique identifier for an edge device."""


class ReadingId(UlidId):
    """Unique identifier for a telemetry reading event."""


class StatusId(UlidId):
    """Unique identifier for a device status report event."""


class DispatcherId(UlidId):
    """Unique identifier for a dispatcher device."""


class BatchId(UlidId):
    """Unique identifier for an upload batch."""


class SensorId(UlidId):
    """Unique identifier for a sensor."""


@dataclass(frozen=True, order=True)
class H3Cell:
    """H3 cell index (64-bit integer) representing a spatial cell."""

    value: int

    def __post_init__(self) -> None:
        _check_int(self.value, "H3Cell", 0, U64_MAX)


@dataclass(frozen=True, order=True)
class Percentage:
    """Percentage value, nominally 0-100, stored in one byte."""

    value: int

    def __post_init__(self) -> None:
        _check_int(self.value, "Percentage", 0, U8_MAX)


class SensorState(Enum):
    ACTIVE = "Active"
    FAULTY = "Faulty"
    INACTIVE = "Inactive"


class SensorKind(Enum):
    SOIL_MOISTURE = "SoilMoisture"
    SOIL_TEMP = "SoilTemp"
    AIR_TEMP = "AirTemp"
    HUMIDITY = "Humidity"
    RAINFALL = "Rainfall"


class DeviceKind(Enum):
    """Device classification."""

    SENSOR = "Sensor"


class DeviceState(Enum):
    """Whether a device may upload telemetry."""

    ACTIVE = "Active"
    SUSPENDED = "Suspended"


class MetricUnit(Enum):
    PERCENT = "Percent"
    CELSIUS = "Celsius"
    MM = "Mm"


_PERCENT_KINDS = frozenset({SensorKind.SOIL_MOISTURE, SensorKind.HUMIDITY})
_UNITS = {
    SensorKind.SOIL_MOISTURE: MetricUnit.PERCENT,
    SensorKind.SOIL_TEMP: MetricUnit.CELSIUS,
    SensorKind.AIR_TEMP: MetricUnit.CELSIUS,
    SensorKind.HUMIDITY: MetricUnit.PERCENT,
    SensorKind.RAINFALL: MetricUnit.MM,
}


@dataclass(frozen=True)
class SensorMetric:
    """A measured quantity: percentages for moisture and humidity, floats otherwise."""

    kind: SensorKind
    value: Percentage | float

    def __post_init__(self) -> None:
        _require(self.kind, SensorKind, "SensorMetric.kind")
        if self.kind in _PERCENT_KINDS:
            if isinstance(self.value, int) and not isinstance(self.value, bool):
                _set(self, "value", Percentage(self.value))
            _require(self.value, Percentage, "SensorMetric.value")
            return
        if isinstance(self.value, bool) or not isinstance(self.value, (int, float)):
            raise TypeError(f"{self.kind.value} value must be a number")
        number = float(self.value)
        if math.isnan(number):
            raise ValueError(f"{self.kind.value} value must not be NaN")
        _set(self, "value", number)

    @classmethod
    def soil_moisture(cls, value: Percentage | int) -> SensorMetric:
        return cls(SensorKind.SOIL_MOISTURE, value)

    @classmethod
    def soil_temp(cls, value: float) -> SensorMetric:
        return cls(SensorKind.SOIL_TEMP, value)

    @classmethod
    def air_temp(cls, value: float) -> SensorMetric:
        return cls(SensorKind.AIR_TEMP, value)

    @classmethod
    def humidity(cls, value: Percentage | int) -> SensorMetric:
        return cls(SensorKind.HUMIDITY, value)

    @classmethod
    def rainfall(cls, value: float) -> SensorMetric:
        return cls(SensorKind.RAINFALL, value)

    def unit(self) -> MetricUnit:
        """The unit this metric is expressed in."""
        return _UNITS[self.kind]


@dataclass(frozen=True)
class Sensor:
    id: SensorId
    metric: SensorMetric
    kind: SensorKind

    def __post_init__(self) -> None:
        _require(self.id, SensorId, "Sensor.id")
        _require(self.metric, SensorMetric, "Sensor.metric")
        _require(self.kind, SensorKind, "Sensor.kind")


@dataclass(frozen=True)
class SensorStatus:
    sensor_id: SensorId
    state: SensorState
    last_reading: datetime | None = None

    def __post_init__(self) -> None:
        _require(self.sensor_id, SensorId, "SensorStatus.sensor_id")
        _require(self.state, SensorState, "SensorStatus.state")
        if self.last_reading is not None:
            _set(self, "last_reading", _utc(self.last_reading, "SensorStatus.last_reading"))


@dataclass(frozen=True)
class Device:
    """A registered edge device."""

    id: DeviceId
    kind: DeviceKind
    state: DeviceState
    location: H3Cell
    manufacturer: str | None
    provisioned_at: datetime
    sensors: tuple[Sensor, ...] = ()

    def __post_init__(self) -> None:
        _require(self.id, DeviceId, "Device.id")
        _require(self.kind, DeviceKind, "Device.kind")
        _require(self.state, DeviceState, "Device.state")
        _require(self.location, H3Cell, "Device.location")
        _require(self.manufacturer, (str, type(None)), "Device.manufacturer")
        _set(self, "provisioned_at", _utc(self.provisioned_at, "Device.provisioned_at"))
        _set(self, "sensors", _tuple_of(self.sensors, Sensor, "Device.sensors"))


@dataclass(frozen=True)
class SensorReading:
    """A single reading emitted by a device and forwarded by a dispatcher."""

    id: ReadingId
    device_id: DeviceId
    dispatcher_id: DispatcherId
    metric: SensorMetric
    location: H3Cell
    confidence: Percentage
    timestamp: datetime
    sensor_id: SensorId

    def __post_init__(self) -> None:
        _require(self.id, ReadingId, "SensorReading.id")
        _require(self.device_id, DeviceId, "SensorReading.device_id")
        _require(self.dispatcher_id, DispatcherId, "SensorReading.dispatcher_id")
        _require(self.metric, SensorMetric, "SensorReading.metric")
        _require(self.location, H3Cell, "SensorReading.location")
        _require(self.confidence, Percentage, "SensorReading.confidence")
        _set(self, "timestamp", _utc(self.timestamp, "SensorReading.timestamp"))
        _require(self.sensor_id, SensorId, "SensorReading.sensor_id")


class DeviceErrorCode(Enum):
    LOW_BATTERY = "LowBattery"
    SENSOR_FAULT = "SensorFault"
    RADIO_FAULT = "RadioFault"
    UNKNOWN = "Unknown"


@dataclass(frozen=True)
class DeviceError:
    """A structured error reported by device firmware."""

    code: DeviceErrorCode
    message: str | None = None

    def __post_init__(self) -> None:
        _require(self.code, DeviceErrorCode, "DeviceError.code")
        _require(self.message, (str, type(None)), "DeviceError.message")


@dataclass(frozen=True)
class DeviceStatus:
    """A status report emitted by a device."""

    id: StatusId
    device_id: DeviceId
    dispatcher_id: DispatcherId
    battery_percent: Percentage
    uptime_seconds: int
    signal_rssi: int
    errors: tuple[DeviceError, ...]
    timestamp: datetime
    sensor_statuses: tuple[SensorStatus, ...] = ()

    def __post_init__(self) -> None:
        _require(self.id, StatusId, "DeviceStatus.id")
        _require(self.device_id, DeviceId, "DeviceStatus.device_id")
        _require(self.dispatcher_id, DispatcherId, "DeviceStatus.dispatcher_id")
        _require(self.battery_percent, Percentage, "DeviceStatus.battery_percent")
        _check_int(self.uptime_seconds, "DeviceStatus.uptime_seconds", 0, U64_MAX)
        _check_int(self.signal_rssi, "DeviceStatus.signal_rssi", I16_MIN, I16_MAX)
        _set(self, "errors", _tuple_of(self.errors, DeviceError, "DeviceStatus.errors"))
        _set(self, "timestamp", _utc(self.timestamp, "DeviceStatus.timestamp"))
        _set(
            self,
            "sensor_statuses",
            _tuple_of(self.sensor_statuses, SensorStatus, "DeviceStatus.sensor_statuses"),
        )


class DispatcherState(Enum):
    """Whether a dispatcher may upload data."""

    ACTIVE = "Active"
    SUSPENDED = "Suspended"


@dataclass(frozen=True)
class Dispatcher:
    """A registered dispatcher."""

    id: DispatcherId
    location: H3Cell
    state: DispatcherState
    provisioned_at: datetime

    def __post_init__(self) -> None:
        _require(self.id, DispatcherId, "Dispatcher.id")
        _require(self.location, H3Cell, "Dispatcher.location")
        _require(self.state, DispatcherState, "Dispatcher.state")
        _set(self, "provisioned_at", _utc(self.provisioned_at, "Dispatcher.provisioned_at"))


@dataclass(frozen=True)
class BatchUploadRequest:
    id: BatchId
    dispatcher_id: DispatcherId
    readings: tuple[SensorReading, ...]
    statuses: tuple[DeviceStatus, ...]
    timestamp: datetime

    def __post_init__(self) -> None:
        _require(self.id, BatchId, "BatchUploadRequest.id")
        _require(self.dispatcher_id, DispatcherId, "BatchUploadRequest.dispatcher_id")
        _set(self, "readings", _tuple_of(self.readings, SensorReading, "BatchUploadRequest.readings"))
        _set(self, "statuses", _tuple_of(self.statuses, DeviceStatus, "BatchUploadRequest.statuses"))
        _set(self, "timestamp", _utc(self.timestamp, "BatchUploadRequest.timestamp"))


@dataclass(frozen=True)
class BatchUploadResponse:
    id: BatchId

    def __post_init__(self) -> None:
        _require(self.id, BatchId, "BatchUploadResponse.id")


@dataclass(frozen=True)
class HelloRequest:
    dispatcher_id: DispatcherId
    location: H3Cell

    def __post_init__(self) -> None:
        _require(self.dispatcher_id, DispatcherId, "HelloRequest.dispatcher_id")
        _require(self.location, H3Cell, "HelloRequest.location")


@dataclass(frozen=True)
class HelloResponse:
    dispatcher_id: DispatcherId

    def __post_init__(self) -> None:
        _require(self.dispatcher_id, DispatcherId, "HelloResponse.dispatcher_id")