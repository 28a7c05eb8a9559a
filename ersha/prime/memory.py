"""In-memory device and dispatcher registries."""

from __future__ import annotations

import dataclasses
from typing import Callable, Iterable, Optional

from ersha.models import (
    Device,
    DeviceId,
    DeviceState,
    Dispatcher,
    DispatcherId,
    DispatcherState,
    Sensor,
)
from ersha.prime.query import (
    DeviceFilter,
    DeviceRegistry,
    DeviceSortBy,
    DispatcherFilter,
    DispatcherRegistry,
    DispatcherSortBy,
    QueryOptions,
    SortOrder,
    paginate,
)


class NotFoundError(LookupError):
    """No entry is registered under the requested id."""


def _ordinal(member) -> int:
    return list(type(member)).index(member)


def _manufacturer_key(device: Device) -> tuple[bool, str]:
    # An absent manufacturer orders before any present one.
    return (device.manufacturer is not None, device.manufacturer or "")


_DEVICE_SORT_KEYS: dict[DeviceSortBy, Callable[[Device], object]] = {
    DeviceSortBy.STATE: lambda device: _ordinal(device.state),
    DeviceSortBy.MANUFACTURER: _manufacturer_key,
    DeviceSortBy.PROVISION_AT: lambda device: device.provisioned_at,
    DeviceSortBy.SENSOR_COUNT: lambda device: len(device.sensors),
}

_DISPATCHER_SORT_KEYS: dict[DispatcherSortBy, Callable[[Dispatcher], object]] = {
    DispatcherSortBy.PROVISION_AT: lambda dispatcher: dispatcher.provisioned_at,
}


def _sorted(items: Iterable, key: Callable, order: SortOrder) -> list:
    return sorted(items, key=key, reverse=order is SortOrder.DESC)


class InMemoryDeviceRegistry(DeviceRegistry):
    """Keeps devices in a dictionary keyed by their id."""

    def __init__(self, devices: Optional[dict[DeviceId, Device]] = None) -> None:
        self.devices: dict[DeviceId, Device] = dict(devices or {})

    def _require(self, id: DeviceId) -> Device:
        try:
            return self.devices[id]
        except KeyError:
            raise NotFoundError(f"device {id} not found") from None

    def register(self, device: Device) -> None:
        self.devices[device.id] = device

    def get(self, id: DeviceId) -> Optional[Device]:
        return self.devices.get(id)

    def update(self, id: DeviceId, new: Device) -> None:
        self.devices[id] = new

    def suspend(self, id: DeviceId) -> None:
        device = self._require(id)
        self.update(id, dataclasses.replace(device, state=DeviceState.SUSPENDED))

    def add_sensor(self, id: DeviceId, sensor: Sensor) -> None:
        self.add_sensors(id, (sensor,))

    def add_sensors(self, id: DeviceId, sensors: Iterable[Sensor]) -> None:
        device = self._require(id)
        combined = tuple(device.sensors) + tuple(sensors)
        self.devices[id] = dataclasses.replace(device, sensors=combined)

    def batch_register(self, devices: Iterable[Device]) -> None:
        for device in devices:
            self.register(device)

    def count(self, filter: Optional[DeviceFilter] = None) -> int:
        if filter is None:
            return len(self.devices)
        return sum(1 for device in self.devices.values() if filter.matches(device))

    def list(self, options: QueryOptions[DeviceFilter, DeviceSortBy]) -> list[Device]:
        matching = (d for d in self.devices.values() if options.filter.matches(d))
        ordered = _sorted(matching, _DEVICE_SORT_KEYS[options.sort_by], options.sort_order)
        return paginate(ordered, options.pagination, lambda device: device.id.value)


class InMemoryDispatcherRegistry(DispatcherRegistry):
    """Keeps dispatchers in a dictionary keyed by their id."""

    def __init__(self, dispatchers: Optional[dict[DispatcherId, Dispatcher]] = None) -> None:
        self.dispatchers: dict[DispatcherId, Dispatcher] = dict(dispatchers or {})

    def register(self, dispatcher: Dispatcher) -> None:
        self.dispatchers[dispatcher.id] = dispatcher

    def get(self, id: DispatcherId) -> Optional[Dispatcher]:
        return self.dispatchers.get(id)

    def update(self, id: DispatcherId, new: Dispatcher) -> None:
        self.dispatchers[id] = new

    def suspend(self, id: DispatcherId) -> None:
        dispatcher = self.get(id)
        if dispatcher is None:
            raise NotFoundError(f"dispatcher {id} not found")
        self.update(id, dataclasses.replace(dispatcher, state=DispatcherState.SUSPENDED))

    def batch_register(self, dispatchers: Iterable[Dispatcher]) -> None:
        for dispatcher in dispatchers:
            self.register(dispatcher)

    def count(self, filter: Optional[DispatcherFilter] = None) -> int:
        if filter is None:
            return len(self.dispatchers)
        return sum(1 for d in self.dispatchers.values() if filter.matches(d))

    def list(
        self, options: QueryOptions[DispatcherFilter, DispatcherSortBy]
    ) -> list[Dispatcher]:
        matching = (d for d in self.dispatchers.values() if options.filter.matches(d))
        ordered = _sorted(matching, _DISPATCHER_SORT_KEYS[options.sort_by], options.sort_order)
        return paginate(ordered, options.pagination, lambda dispatcher: dispatcher.id.value)