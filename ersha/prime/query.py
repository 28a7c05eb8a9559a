"""Filters, sorting options, pagination and registry interfaces for the central service."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Callable, Generic, Iterable, Optional, Sequence, TypeVar, Union

from ersha.models import (
    Device,
    DeviceId,
    DeviceKind,
    DeviceState,
    Dispatcher,
    DispatcherId,
    DispatcherState,
    H3Cell,
    Sensor,
)
from ersha.ulid import Ulid

T = TypeVar("T")
F = TypeVar("F")
S = TypeVar("S")


class DeviceSortBy(Enum):
    STATE = "state"
    MANUFACTURER = "manufacturer"
    PROVISION_AT = "provisioned_at"
    SENSOR_COUNT = "sensor_count"


class DispatcherSortBy(Enum):
    PROVISION_AT = "provisioned_at"


class SortOrder(Enum):
    ASC = "asc"
    DESC = "desc"


def _check_count(value: object, name: str) -> None:
    if isinstance(value, bool) or not isinstance(value, int):
        raise TypeError(f"{name} must be an integer")
    if value < 0:
        raise ValueError(f"{name} must not be negative")


@dataclass(frozen=True)
class OffsetPagination:
    """Skip ``offset`` items, then return at most ``limit``."""

    offset: int
    limit: int

    def __post_init__(self) -> None:
        _check_count(self.offset, "offset")
        _check_count(self.limit, "limit")


@dataclass(frozen=True)
class CursorPagination:
    """Return at most ``limit`` items following the item whose id is ``after``."""

    after: Optional[Ulid]
    limit: int

    def __post_init__(self) -> None:
        if self.after is not None and not isinstance(self.after, Ulid):
            raise TypeError("after must be a Ulid or None")
        _check_count(self.limit, "limit")


Pagination = Union[OffsetPagination, CursorPagination]


@dataclass(frozen=True)
class QueryOptions(Generic[F, S]):
    """What to select, how to order it and which page to return."""

    filter: F
    sort_by: S
    sort_order: SortOrder
    pagination: Pagination


def _freeze(obj: object, name: str) -> None:
    value = getattr(obj, name)
    if value is not None:
        object.__setattr__(obj, name, tuple(value))


def _check_aware(value: Optional[datetime], name: str) -> None:
    if value is None:
        return
    if not isinstance(value, datetime):
        raise TypeError(f"{name} must be a datetime")
    if value.utcoffset() is None:
        raise ValueError(f"{name} must be timezone-aware")


@dataclass(frozen=True)
class DeviceFilter:
    """Criteria a device must meet; ``None`` leaves a criterion out.

    ``sensor_count`` is an inclusive ``(low, high)`` range and
    ``manufacturer_pattern`` a case-insensitive substring.
    """

    ids: Optional[Sequence[DeviceId]] = None
    states: Optional[Sequence[DeviceState]] = None
    kinds: Optional[Sequence[DeviceKind]] = None
    locations: Optional[Sequence[H3Cell]] = None
    provisioned_after: Optional[datetime] = None
    provisioned_before: Optional[datetime] = None
    sensor_count: Optional[tuple[int, int]] = None
    manufacturer_pattern: Optional[str] = None

    def __post_init__(self) -> None:
        for name in ("ids", "states", "kinds", "locations"):
            _freeze(self, name)
        _check_aware(self.provisioned_after, "provisioned_after")
        _check_aware(self.provisioned_before, "provisioned_before")
        if self.sensor_count is not None:
            low, high = self.sensor_count
            _check_count(low, "sensor_count low")
            _check_count(high, "sensor_count high")
            object.__setattr__(self, "sensor_count", (low, high))
        if self.manufacturer_pattern is not None and not isinstance(self.manufacturer_pattern, str):
            raise TypeError("manufacturer_pattern must be a string")

    def matches(self, device: Device) -> bool:
        """Tell whether ``device`` meets every criterion."""
        if self.ids is not None and device.id not in self.ids:
            return False
        if self.locations is not None and device.location not in self.locations:
            return False
        if self.states is not None and device.state not in self.states:
            return False
        if self.kinds is not None and device.kind not in self.kinds:
            return False
        if self.manufacturer_pattern is not None:
            if device.manufacturer is None:
                return False
            if self.manufacturer_pattern.lower() not in device.manufacturer.lower():
                return False
        if self.sensor_count is not None:
            low, high = self.sensor_count
            if not low <= len(device.sensors) <= high:
                return False
        if self.provisioned_after is not None and device.provisioned_at < self.provisioned_after:
            return False
        if self.provisioned_before is not None and device.provisioned_at > self.provisioned_before:
            return False
        return True


@dataclass(frozen=True)
class DispatcherFilter:
    """Criteria a dispatcher must meet; ``None`` leaves a criterion out."""

    states: Optional[Sequence[DispatcherState]] = None
    locations: Optional[Sequence[H3Cell]] = None

    def __post_init__(self) -> None:
        _freeze(self, "states")
        _freeze(self, "locations")

    def matches(self, dispatcher: Dispatcher) -> bool:
        """Tell whether ``dispatcher`` meets every criterion."""
        if self.locations is not None and dispatcher.location not in self.locations:
            return False
        if self.states is not None and dispatcher.state not in self.states:
            return False
        return True


def paginate(items: Iterable[T], pagination: Pagination, id_of: Callable[[T], Ulid]) -> list[T]:
    """Select one page of already ordered ``items``.

    A cursor without ``after`` selects nothing, as does one whose item is absent.
    """
    if isinstance(pagination, OffsetPagination):
        ordered = list(items)
        return ordered[pagination.offset:pagination.offset + pagination.limit]
    if isinstance(pagination, CursorPagination):
        if pagination.after is None:
            return []
        page: list[T] = []
        found = False
        for item in items:
            if not found:
                found = id_of(item) == pagination.after
                continue
            if len(page) >= pagination.limit:
                break
            page.append(item)
        return page
    raise TypeError(f"unsupported pagination {type(pagination).__name__}")


class DeviceRegistry(ABC):
    """Keeps track of registered devices."""

    @abstractmethod
    def register(self, device: Device) -> None:
        """Add or replace a device."""

    @abstractmethod
    def get(self, id: DeviceId) -> Optional[Device]:
        """Return the device with this id, or None."""

    @abstractmethod
    def update(self, id: DeviceId, new: Device) -> None:
        """Replace the device stored under ``id``."""

    @abstractmethod
    def suspend(self, id: DeviceId) -> None:
        """Mark a device as suspended."""

    @abstractmethod
    def add_sensor(self, id: DeviceId, sensor: Sensor) -> None:
        """Attach one sensor to a device."""

    @abstractmethod
    def add_sensors(self, id: DeviceId, sensors: Iterable[Sensor]) -> None:
        """Attach several sensors to a device."""

    def batch_register(self, devices: Iterable[Device]) -> None:
        """Register several devices; by default one at a time."""
        for device in devices:
            self.register(device)

    @abstractmethod
    def count(self, filter: Optional[DeviceFilter] = None) -> int:
        """Count devices, optionally only those matching ``filter``."""

    @abstractmethod
    def list(self, options: QueryOptions[DeviceFilter, DeviceSortBy]) -> list[Device]:
        """Return one ordered page of matching devices."""


class DispatcherRegistry(ABC):
    """Keeps track of registered dispatchers."""

    @abstractmethod
    def register(self, dispatcher: Dispatcher) -> None:
        """Add or replace a dispatcher."""

    @abstractmethod
    def get(self, id: DispatcherId) -> Optional[Dispatcher]:
        """Return the dispatcher with this id, or None."""

    @abstractmethod
    def update(self, id: DispatcherId, new: Dispatcher) -> None:
        """Replace the dispatcher stored under ``id``."""

    @abstractmethod
    def suspend(self, id: DispatcherId) -> None:
        """Mark a dispatcher as suspended."""

    def batch_register(self, dispatchers: Iterable[Dispatcher]) -> None:
        """Register several dispatchers; by default one at a time."""
        for dispatcher in dispatchers:
            self.register(dispatcher)

    @abstractmethod
    def count(self, filter: Optional[DispatcherFilter] = None) -> int:
        """Count dispatchers, optionally only those matching ``filter``."""

    @abstractmethod
    def list(
        self, options: QueryOptions[DispatcherFilter, DispatcherSortBy]
    ) -> list[Dispatcher]:
        """Return one ordered page of matching dispatchers."""