from datetime import datetime, timedelta, timezone

from ersha.dispatch.memory import MemoryStorage
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
        sensor_statuses=(),
    )


def test_memory_sensor_reading_lifecycle():
    storage = MemoryStorage()
    reading = dummy_reading()
    storage.store_sensor_reading(reading)
    assert len(storage.fetch_pending_sensor_readings()) == 1
    storage.mark_sensor_readings_uploaded([reading.id])
    assert len(storage.fetch_pending_sensor_readings()) == 0


def test_memory_device_status_lifecycle():
    storage = MemoryStorage()
    status = dummy_status()
    storage.store_device_status(status)
    assert len(storage.fetch_pending_device_statuses()) == 1
    storage.mark_device_statuses_uploaded([status.id])
    assert len(storage.fetch_pending_device_statuses()) == 0


def test_memory_mixed_events():
    storage = MemoryStorage()
    storage.store_sensor_reading(dummy_reading())
    storage.store_device_status(dummy_status())
    assert len(storage.fetch_pending_sensor_readings()) == 1
    assert len(storage.fetch_pending_device_statuses()) == 1


def test_memory_batch_sensor_readings():
    storage = MemoryStorage()
    storage.store_sensor_readings_batch([dummy_reading(), dummy_reading(), dummy_reading()])
    assert len(storage.fetch_pending_sensor_readings()) == 3


def test_memory_batch_device_statuses():
    storage = MemoryStorage()
    storage.store_device_statuses_batch([dummy_status(), dummy_status()])
    assert len(storage.fetch_pending_device_statuses()) == 2


def test_memory_get_stats():
    storage = MemoryStorage()
    stats = storage.get_stats()
    assert stats.sensor_readings_total == 0
    assert stats.device_statuses_total == 0

    storage.store_sensor_reading(dummy_reading())
    storage.store_sensor_reading(dummy_reading())
    storage.store_device_status(dummy_status())

    stats = storage.get_stats()
    assert stats.sensor_readings_total == 2
    assert stats.sensor_readings_pending == 2
    assert stats.sensor_readings_uploaded == 0
    assert stats.device_statuses_total == 1
    assert stats.device_statuses_pending == 1
    assert stats.device_statuses_uploaded == 0

    reading = dummy_reading()
    storage.store_sensor_reading(reading)
    storage.mark_sensor_readings_uploaded([reading.id])

    stats = storage.get_stats()
    assert stats.sensor_readings_total == 3
    assert stats.sensor_readings_pending == 2
    assert stats.sensor_readings_uploaded == 1


def test_memory_cleanup_uploaded():
    storage = MemoryStorage()
    reading1, reading2, reading3 = dummy_reading(), dummy_reading(), dummy_reading()
    for reading in (reading1, reading2, reading3):
        storage.store_sensor_reading(reading)
    storage.store_device_status(dummy_status())
    storage.mark_sensor_readings_uploaded([reading1.id, reading2.id])

    before = storage.get_stats()
    assert before.sensor_readings_total == 3
    assert before.sensor_readings_uploaded == 2

    cleanup = storage.cleanup_uploaded(timedelta(0))
    assert cleanup.sensor_readings_deleted == 2
    assert cleanup.device_statuses_deleted == 0

    after = storage.get_stats()
    assert after.sensor_readings_total == 1
    assert after.sensor_readings_pending == 1
    assert after.sensor_readings_uploaded == 0


def test_memory_zero_duration_cleanup():
    storage = MemoryStorage()
    reading = dummy_reading()
    storage.store_sensor_reading(reading)
    storage.mark_sensor_readings_uploaded([reading.id])

    cleanup = storage.cleanup_uploaded(timedelta(0))
    assert cleanup.sensor_readings_deleted == 1
    assert cleanup.device_statuses_deleted == 0

    stats = storage.get_stats()
    assert stats.sensor_readings_total == 0
    assert stats.sensor_readings_uploaded == 0


def test_cleanup_ignores_age():
    storage = MemoryStorage()
    status = dummy_status()
    storage.store_device_status(status)
    storage.mark_device_statuses_uploaded([status.id])
    cleanup = storage.cleanup_uploaded(timedelta(days=365))
    assert cleanup.device_statuses_deleted == 1
    assert storage.get_stats().device_statuses_total == 0


def test_fetched_reading_equals_stored_one():
    storage = MemoryStorage()
    reading = dummy_reading()
    storage.store_sensor_reading(reading)
    assert storage.fetch_pending_sensor_readings() == [reading]


def test_storing_same_id_replaces_entry():
    storage = MemoryStorage()
    reading = dummy_reading()
    storage.store_sensor_reading(reading)
    storage.mark_sensor_readings_uploaded([reading.id])
    storage.store_sensor_reading(reading)
    stats = storage.get_stats()
    assert stats.sensor_readings_total == 1
    assert stats.sensor_readings_pending == 1


def test_marking_unknown_ids_is_ignored():
    storage = MemoryStorage()
    storage.store_sensor_reading(dummy_reading())
    storage.mark_sensor_readings_uploaded([ReadingId.new()])
    storage.mark_device_statuses_uploaded([StatusId.new()])
    stats = storage.get_stats()
    assert stats.sensor_readings_pending == 1
    assert stats.sensor_readings_uploaded == 0


def test_stats_totals_are_sums():
    storage = MemoryStorage()
    readings = [dummy_reading() for _ in range(4)]
    storage.store_sensor_readings_batch(readings)
    storage.mark_sensor_readings_uploaded([r.id for r in readings[:1]])
    stats = storage.get_stats()
    assert stats.sensor_readings_total == stats.sensor_readings_pending + stats.sensor_readings_uploaded
    assert stats.device_statuses_total == stats.device_statuses_pending + stats.device_statuses_uploaded