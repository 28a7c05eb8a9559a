from datetime import datetime, timedelta, timezone

import pytest

from ersha.dispatch.storage import (
    CleanupStats,
    Storage,
    StorageError,
    StorageState,
    StorageStats,
    StoredDeviceStatus,
    StoredSensorReading,
)
from ersha.models import (
    DeviceId,
    DeviceStatus,
    DispatcherId,
    H3Cell,
    Percentage,
    ReadingId,
    SensorId,
    SensorMetric,
    SensorReading,
    StatusId,
)


def dummy_reading() -> SensorReading:
    return SensorReading(
        id=ReadingId.new(),
        device_id=DeviceId.new(),
        dispatcher_id=DispatcherId.new(),
        metric=SensorMetric.soil_moisture(42),
        location=H3Cell(123),
        confidence=Percentage(95),
        timestamp=datetime.now(timezone.utc),
        sensor_id=SensorId.new(),
    )


def dummy_status() -> DeviceStatus:
    return DeviceStatus(
        id=StatusId.new(),
        device_id=DeviceId.new(),
        dispatcher_id=DispatcherId.new(),
        battery_percent=Percentage(85),
        uptime_seconds=3600,
        signal_rssi=-65,
        errors=(),
        timestamp=datetime.now(timezone.utc),
    )


class _RecordingStorage(Storage):
    def __init__(self):
        self.readings = []
        self.statuses = []

    def store_sensor_reading(self, reading):
        self.readings.append(reading)

    def store_device_status(self, status):
        self.statuses.append(status)

    def fetch_pending_sensor_readings(self):
        return list(self.readings)

    def fetch_pending_device_statuses(self):
        return list(self.statuses)

    def mark_sensor_readings_uploaded(self, ids):
        raise StorageError("read only")

    def mark_device_statuses_uploaded(self, ids):
        raise StorageError("read only")

    def get_stats(self):
        return StorageStats(
            sensor_readings_pending=len(self.readings),
            sensor_readings_total=len(self.readings),
            device_statuses_pending=len(self.statuses),
            device_statuses_total=len(self.statuses),
        )

    def cleanup_uploaded(self, older_than):
        return CleanupStats()


def test_storage_is_abstract():
    with pytest.raises(TypeError):
        Storage()


def test_default_batch_stores_each_reading_in_order():
    storage = _RecordingStorage()
    readings = [dummy_reading(), dummy_reading(), dummy_reading()]
    storage.store_sensor_readings_batch(readings)
    assert storage.fetch_pending_sensor_readings() == readings


def test_default_batch_stores_each_status_from_generator():
    storage = _RecordingStorage()
    statuses = [dummy_status(), dummy_status()]
    storage.store_device_statuses_batch(status for status in statuses)
    assert storage.fetch_pending_device_statuses() == statuses


def test_default_batch_with_empty_input_stores_nothing():
    storage = _RecordingStorage()
    storage.store_sensor_readings_batch([])
    storage.store_device_statuses_batch([])
    assert storage.get_stats() == StorageStats()


def test_stats_default_to_zero():
    stats = StorageStats()
    assert stats.sensor_readings_total == 0
    assert stats.device_statuses_total == 0
    assert CleanupStats().sensor_readings_deleted == 0


def test_stored_reading_defaults_to_pending_and_can_change_state():
    reading = dummy_reading()
    stored = StoredSensorReading(reading.id, reading)
    assert stored.state is StorageState.PENDING
    stored.state = StorageState.UPLOADED
    assert stored.state is StorageState.UPLOADED
    assert stored.reading == reading


def test_stored_status_keeps_status():
    status = dummy_status()
    stored = StoredDeviceStatus(status.id, status)
    assert stored.id == status.id
    assert stored.state is StorageState.PENDING


def test_state_round_trips_through_value():
    for state in StorageState:
        assert StorageState(state.value) is state


def test_backend_errors_are_storage_errors():
    storage = _RecordingStorage()
    with pytest.raises(StorageError):
        storage.mark_sensor_readings_uploaded([ReadingId.new()])
    assert storage.cleanup_uploaded(timedelta(0)) == CleanupStats()