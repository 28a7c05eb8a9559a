"""Storage abstraction used by a dispatcher to keep events until they are uploaded."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import timedelta
from enum import Enum
from typing import Iterable

from ersha.models import DeviceStatus, ReadingId, SensorReading, StatusId


class StorageError(Exception):
    """Base class for errors raised by storage backends."""


class StorageState(Enum):
    """Upload state of a stored event."""

    PENDING = "pending"
    UPLOADED = "uploaded"


@dataclass
class StoredSensorReading:
    """A sensor reading together with its upload state."""

    id: ReadingId
    reading: SensorReading
    state: StorageState = StorageState.PENDING


@dataclass
class StoredDeviceStatus:
    """A device status together with its upload state."""

    id: StatusId
    status: DeviceStatus
    state: StorageState = StorageState.PENDING


@dataclass(frozen=True)
class StorageStats:
    """Counts of stored events by upload state."""

    sensor_readings_pending: int = 0
    sensor_readings_uploaded: int = 0
    sensor_readings_total: int = 0
    device_statuses_pending: int = 0
    device_statuses_uploaded: int = 0
    device_statuses_total: int = 0


@dataclass(frozen=True)
class CleanupStats:
    """Counts of events removed by a cleanup."""

    sensor_readings_deleted: int = 0
    device_statuses_deleted: int = 0


class Storage(ABC):
    """Persists events locally and tracks whether they have been uploaded.

    Backends raise a subclass of :class:`StorageError` when an operation fails.
    """

    @abstractmethod
    def store_sensor_reading(self, reading: SensorReading) -> None:
        """Store a sensor reading as pending."""

    @abstractmethod
    def store_device_status(self, status: DeviceStatus) -> None:
        """Store a device status as pending."""

    def store_sensor_readings_batch(self, readings: Iterable[SensorReading]) -> None:
        """Store several sensor readings as pending; by default one at a time."""
        for reading in readings:
            self.store_sensor_reading(reading)

    def store_device_statuses_batch(self, statuses: Iterable[DeviceStatus]) -> None:
        """Store several device statuses as pending; by default one at a time."""
        for status in statuses:
            self.store_device_status(status)

    @abstractmethod
    def fetch_pending_sensor_readings(self) -> list[SensorReading]:
        """Return every sensor reading not yet uploaded."""

    @abstractmethod
    def fetch_pending_device_statuses(self) -> list[DeviceStatus]:
        """Return every device status not yet uploaded."""

    @abstractmethod
    def mark_sensor_readings_uploaded(self, ids: Iterable[ReadingId]) -> None:
        """Mark the readings with these ids as uploaded; unknown ids are ignored."""

    @abstractmethod
    def mark_device_statuses_uploaded(self, ids: Iterable[StatusId]) -> None:
        """Mark the statuses with these ids as uploaded; unknown ids are ignored."""

    @abstractmethod
    def get_stats(self) -> StorageStats:
        """Return counts of stored events."""

    @abstractmethod
    def cleanup_uploaded(self, older_than: timedelta) -> CleanupStats:
        """Delete uploaded events older than ``older_than``."""