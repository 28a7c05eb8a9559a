"""In-memory storage, mainly for tests and as a reference backend."""

from __future__ import annotations

import threading
from datetime import timedelta
from typing import Iterable

from ersha.dispatch.storage import (
    CleanupStats,
    Storage,
    StorageState,
    StorageStats,
    StoredDeviceStatus,
    StoredSensorReading,
)
from ersha.models import DeviceStatus, ReadingId, SensorReading, StatusId


class MemoryStorage(Storage):
    """Keeps events in dictionaries guarded by a lock; safe to share between threads."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._sensor_readings: dict[ReadingId, StoredSensorReading] = {}
        self._device_statuses: dict[StatusId, StoredDeviceStatus] = {}

    def store_sensor_reading(self, reading: SensorReading) -> None:
        with self._lock:
            self._sensor_readings[reading.id] = StoredSensorReading(reading.id, reading)

    def store_device_status(self, status: DeviceStatus) -> None:
        with self._lock:
            self._device_statuses[status.id] = StoredDeviceStatus(status.id, status)

    def store_sensor_readings_batch(self, readings: Iterable[SensorReading]) -> None:
        with self._lock:
            for reading in readings:
                self._sensor_readings[reading.id] = StoredSensorReading(reading.id, reading)

    def store_device_statuses_batch(self, statuses: Iterable[DeviceStatus]) -> None:
        with self._lock:
            for status in statuses:
                self._device_statuses[status.id] = StoredDeviceStatus(status.id, status)

    def fetch_pending_sensor_readings(self) -> list[SensorReading]:
        with self._lock:
            return [
                entry.reading
                for entry in self._sensor_readings.values()
                if entry.state is StorageState.PENDING
            ]

    def fetch_pending_device_statuses(self) -> list[DeviceStatus]:
        with self._lock:
            return [
                entry.status
                for entry in self._device_statuses.values()
                if entry.state is StorageState.PENDING
            ]

    def mark_sensor_readings_uploaded(self, ids: Iterable[ReadingId]) -> None:
        with self._lock:
            for reading_id in ids:
                entry = self._sensor_readings.get(reading_id)
                if entry is not None:
                    entry.state = StorageState.UPLOADED

    def mark_device_statuses_uploaded(self, ids: Iterable[StatusId]) -> None:
        with self._lock:
            for status_id in ids:
                entry = self._device_statuses.get(status_id)
                if entry is not None:
                    entry.state = StorageState.UPLOADED

    def get_stats(self) -> StorageStats:
        with self._lock:
            readings_total = len(self._sensor_readings)
            readings_pending = sum(
                entry.state is StorageState.PENDING for entry in self._sensor_readings.values()
            )
            statuses_total = len(self._device_statuses)
            statuses_pending = sum(
                entry.state is StorageState.PENDING for entry in self._device_statuses.values()
            )
        return StorageStats(
            sensor_readings_pending=readings_pending,
            sensor_readings_uploaded=readings_total - readings_pending,
            sensor_readings_total=readings_total,
            device_statuses_pending=statuses_pending,
            device_statuses_uploaded=statuses_total - statuses_pending,
            device_statuses_total=statuses_total,
        )

    def cleanup_uploaded(self, older_than: timedelta) -> CleanupStats:
        """Delete every uploaded event; upload times are not tracked, so ``older_than`` is ignored."""
        with self._lock:
            readings = [
                key
                for key, entry in self._sensor_readings.items()
                if entry.state is StorageState.UPLOADED
            ]
            for key in readings:
                del self._sensor_readings[key]
            statuses = [
                key
                for key, entry in self._device_statuses.items()
                if entry.state is StorageState.UPLOADED
            ]
            for key in statuses:
                del self._device_statuses[key]
        return CleanupStats(
            sensor_readings_deleted=len(readings),
            device_statuses_deleted=len(statuses),
        )