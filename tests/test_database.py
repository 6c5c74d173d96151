"""
Unit tests for the in-memory device registry and per-device records.
"""
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta, timezone

import pytest

from database import DeviceRecord, DeviceRegistry, ReadWriteLock, truncate_to_minute
from errors import DeviceNotFound, InvalidArgument

NOON = datetime(2025, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


def test_new_record_starts_unseen():
    snapshot = DeviceRecord("dev").snapshot_counters()

    assert snapshot.heartbeat_minute_count == 0
    assert snapshot.first_heartbeat is None
    assert snapshot.last_heartbeat is None
    assert snapshot.upload_count == 0
    assert snapshot.upload_duration_sum == 0


def test_heartbeats_in_same_minute_count_once():
    """Two heartbeats inside one UTC minute add a single minute."""
    record = DeviceRecord("dev")

    assert record.record_heartbeat(NOON + timedelta(seconds=5)) is True
    assert record.record_heartbeat(NOON + timedelta(seconds=55)) is False

    snapshot = record.snapshot_counters()
    assert snapshot.heartbeat_minute_count == 1
    assert snapshot.first_heartbeat == NOON
    assert snapshot.last_heartbeat == NOON


def test_out_of_order_heartbeats_extend_range_both_ways():
    record = DeviceRecord("dev")

    record.record_heartbeat(NOON + timedelta(minutes=3))
    record.record_heartbeat(NOON + timedelta(minutes=10, seconds=30))
    record.record_heartbeat(NOON)
    record.record_heartbeat(NOON + timedelta(minutes=5))

    snapshot = record.snapshot_counters()
    assert snapshot.heartbeat_minute_count == 4
    assert snapshot.first_heartbeat == NOON
    assert snapshot.last_heartbeat == NOON + timedelta(minutes=10)
    assert snapshot.first_heartbeat <= snapshot.last_heartbeat


def test_heartbeat_minute_is_taken_in_utc():
    """13:02:40+01:00 is the same minute as 12:02Z."""
    record = DeviceRecord("dev")
    plus_one = timezone(timedelta(hours=1))

    record.record_heartbeat(datetime(2025, 1, 1, 13, 2, 40, tzinfo=plus_one))
    created = record.record_heartbeat(datetime(2025, 1, 1, 12, 2, 1, tzinfo=timezone.utc))

    assert created is False
    snapshot = record.snapshot_counters()
    assert snapshot.first_heartbeat == datetime(2025, 1, 1, 12, 2, tzinfo=timezone.utc)
    assert snapshot.first_heartbeat.tzinfo == timezone.utc


def test_truncate_to_minute_treats_naive_as_utc():
    assert truncate_to_minute(datetime(2025, 1, 1, 12, 4, 30, 999)) == NOON + timedelta(minutes=4)


def test_record_upload_accumulates():
    record = DeviceRecord("dev")

    record.record_upload(1_000)
    totals = record.record_upload(2_500)

    assert totals.count == 2
    assert totals.duration_sum == 3_500
    snapshot = record.snapshot_counters()
    assert (snapshot.upload_count, snapshot.upload_duration_sum) == (2, 3_500)


def test_zero_duration_upload_is_accepted():
    record = DeviceRecord("dev")

    assert record.record_upload(0).count == 1


def test_negative_upload_is_rejected_without_mutation():
    record = DeviceRecord("dev")
    record.record_upload(400)

    with pytest.raises(InvalidArgument):
        record.record_upload(-1)

    snapshot = record.snapshot_counters()
    assert snapshot.upload_count == 1
    assert snapshot.upload_duration_sum == 400


def test_uploads_do_not_depend_on_heartbeats():
    record = DeviceRecord("dev")
    record.record_upload(10)

    snapshot = record.snapshot_counters()
    assert snapshot.first_heartbeat is None
    assert snapshot.upload_count == 1


def test_snapshot_is_frozen():
    snapshot = DeviceRecord("dev").snapshot_counters()

    with pytest.raises(AttributeError):
        snapshot.upload_count = 5


def test_registry_insert_if_absent_is_idempotent():
    registry = DeviceRegistry()

    assert registry.insert_if_absent("dev") is True
    first = registry.get("dev")
    assert registry.insert_if_absent("dev") is False

    assert registry.count() == 1
    assert registry.get("dev") is first


def test_registry_lookup_of_unknown_id_does_not_create():
    registry = DeviceRegistry()
    registry.insert_if_absent("known")

    with pytest.raises(DeviceNotFound) as excinfo:
        registry.get("unknown")

    assert excinfo.value.device_id == "unknown"
    assert isinstance(excinfo.value, LookupError)
    assert registry.count() == 1


def test_registry_device_ids_sorted_copy():
    registry = DeviceRegistry()
    for device_id in ("c", "a", "b"):
        registry.insert_if_absent(device_id)

    ids = registry.device_ids()
    ids.append("z")

    assert registry.device_ids() == ["a", "b", "c"]


def test_concurrent_insert_of_same_id_creates_one_record():
    """N racing inserts for one id leave exactly one record."""
    registry = DeviceRegistry()
    barrier = threading.Barrier(32)

    def insert():
        barrier.wait()
        return registry.insert_if_absent("dev")

    with ThreadPoolExecutor(max_workers=32) as executor:
        results = list(executor.map(lambda _: insert(), range(32)))

    assert results.count(True) == 1
    assert registry.count() == 1


def test_concurrent_uploads_and_heartbeats_are_not_lost():
    record = DeviceRecord("dev")

    def worker(index):
        for step in range(200):
            record.record_upload(10)
            record.record_heartbeat(NOON + timedelta(minutes=(index * 200 + step) % 60))

    with ThreadPoolExecutor(max_workers=8) as executor:
        list(executor.map(worker, range(8)))

    snapshot = record.snapshot_counters()
    assert snapshot.upload_count == 1_600
    assert snapshot.upload_duration_sum == 16_000
    assert snapshot.heartbeat_minute_count == 60
    assert snapshot.first_heartbeat == NOON
    assert snapshot.last_heartbeat == NOON + timedelta(minutes=59)


def test_read_write_lock_writer_blocks_readers():
    lock = ReadWriteLock()
    entered = threading.Event()

    def reader():
        with lock.read_locked():
            entered.set()

    with lock.write_locked():
        thread = threading.Thread(target=reader)
        thread.start()
        assert entered.wait(timeout=0.2) is False

    assert entered.wait(timeout=5) is True
    thread.join(timeout=5)


def test_read_write_lock_waiting_writer_goes_before_new_readers():
    lock = ReadWriteLock()
    writer_entered = threading.Event()
    writer_release = threading.Event()
    late_reader_entered = threading.Event()
    reader_saw_writer_done = []

    def writer():
        with lock.write_locked():
            writer_entered.set()
            writer_release.wait(timeout=5)

    def late_reader():
        with lock.read_locked():
            reader_saw_writer_done.append(writer_release.is_set())
            late_reader_entered.set()

    with lock.read_locked():
        writer_thread = threading.Thread(target=writer)
        writer_thread.start()

        deadline = time.monotonic() + 5
        while lock._writers_waiting == 0 and time.monotonic() < deadline:
            time.sleep(0.001)
        assert lock._writers_waiting == 1

        reader_thread = threading.Thread(target=late_reader)
        reader_thread.start()
        # The first reader still holds the lock, yet the newcomer queues
        assert late_reader_entered.wait(timeout=0.2) is False

    assert writer_entered.wait(timeout=5) is True
    assert late_reader_entered.wait(timeout=0.2) is False

    writer_release.set()
    assert late_reader_entered.wait(timeout=5) is True
    assert reader_saw_writer_done == [True]

    writer_thread.join(timeout=5)
    reader_thread.join(timeout=5)


def test_read_write_lock_allows_concurrent_readers():
    lock = ReadWriteLock()
    barrier = threading.Barrier(2, timeout=5)

    def reader():
        with lock.read_locked():
            # Both readers must be inside at once to pass the barrier
            barrier.wait()
        return True

    with ThreadPoolExecutor(max_workers=2) as executor:
        results = list(executor.map(lambda _: reader(), range(2)))

    assert results == [True, True]


def test_read_write_lock_released_after_exception():
    lock = ReadWriteLock()

    with pytest.raises(RuntimeError):
        with lock.write_locked():
            raise RuntimeError("boom")

    acquired = threading.Event()

    def writer():
        with lock.write_locked():
            acquired.set()

    thread = threading.Thread(target=writer)
    thread.start()
    thread.join(timeout=5)
    assert acquired.is_set()
