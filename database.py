# ─────────────────────────────────────────────────────────────────
# database.py - In-Memory Storage
#
# Everything the service remembers lives here, in RAM, for the life
# of the process. Nothing survives a restart.
#
# Two levels of locking:
#   DeviceRegistry  → one guard around the id → record dictionary
#   DeviceRecord    → one guard per device around its counters
#
# Requests for different devices never wait on each other. The only
# shared critical section is the dictionary lookup itself, which is
# O(1) and never does I/O.
# ─────────────────────────────────────────────────────────────────

import threading
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, Iterator, List, NamedTuple, Optional, Set

from errors import DeviceNotFound, InvalidArgument


class ReadWriteLock:
    """
    Many readers OR one writer.

    Writers waiting for the lock block new readers from entering,
    so a steady stream of stats reads cannot starve heartbeats.
    Not re-entrant: do not take the write lock while holding the
    read lock on the same instance.
    """

    def __init__(self):
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False
        self._writers_waiting = 0

    @contextmanager
    def read_locked(self) -> Iterator[None]:
        with self._cond:
            while self._writer or self._writers_waiting:
                self._cond.wait()
            self._readers += 1
        try:
            yield
        finally:
            with self._cond:
                self._readers -= 1
                if self._readers == 0:
                    self._cond.notify_all()

    @contextmanager
    def write_locked(self) -> Iterator[None]:
        with self._cond:
            self._writers_waiting += 1
            try:
                while self._writer or self._readers:
                    self._cond.wait()
            finally:
                self._writers_waiting -= 1
            self._writer = True
        try:
            yield
        finally:
            with self._cond:
                self._writer = False
                self._cond.notify_all()


@dataclass(frozen=True)
class CounterSnapshot:
    """Point-in-time copy of a device's counters, safe to read without locks."""

    heartbeat_minute_count: int
    first_heartbeat: Optional[datetime]
    last_heartbeat: Optional[datetime]
    upload_count: int
    upload_duration_sum: int  # nanoseconds


class UploadTotals(NamedTuple):
    count: int
    duration_sum: int  # nanoseconds


def truncate_to_minute(timestamp: datetime) -> datetime:
    """Convert to UTC and drop seconds. Naive datetimes are taken as UTC."""
    if timestamp.tzinfo is None:
        timestamp = timestamp.replace(tzinfo=timezone.utc)
    else:
        timestamp = timestamp.astimezone(timezone.utc)
    return timestamp.replace(second=0, microsecond=0)


class DeviceRecord:
    """
    Running aggregates for one device.

    Fields are only touched through the methods below, and every
    method takes this record's own lock:
        record_heartbeat / record_upload → exclusive
        snapshot_counters                → shared
    """

    def __init__(self, device_id: str):
        self._device_id = device_id
        self._lock = ReadWriteLock()

        self._heartbeat_minutes: Set[datetime] = set()
        self._first_heartbeat: Optional[datetime] = None   # None until first heartbeat
        self._last_heartbeat: Optional[datetime] = None

        self._upload_count = 0
        self._upload_duration_sum = 0                      # nanoseconds

    @property
    def device_id(self) -> str:
        return self._device_id

    def record_heartbeat(self, timestamp: datetime) -> bool:
        """
        Count the UTC minute `timestamp` falls in as "seen".

        Repeated heartbeats inside the same minute count once.
        Returns True only when the minute had not been seen before.
        """
        minute = truncate_to_minute(timestamp)

        with self._lock.write_locked():
            created = minute not in self._heartbeat_minutes
            if created:
                self._heartbeat_minutes.add(minute)

            if self._first_heartbeat is None or minute < self._first_heartbeat:
                self._first_heartbeat = minute
            if self._last_heartbeat is None or minute > self._last_heartbeat:
                self._last_heartbeat = minute

            return created

    def record_upload(self, duration_ns: int) -> UploadTotals:
        """Add one upload measurement (nanoseconds). Negative values are rejected."""
        if duration_ns < 0:
            raise InvalidArgument(f"upload duration must be >= 0, got {duration_ns}")

        with self._lock.write_locked():
            self._upload_count += 1
            self._upload_duration_sum += duration_ns
            return UploadTotals(self._upload_count, self._upload_duration_sum)

    def snapshot_counters(self) -> CounterSnapshot:
        with self._lock.read_locked():
            return CounterSnapshot(
                heartbeat_minute_count=len(self._heartbeat_minutes),
                first_heartbeat=self._first_heartbeat,
                last_heartbeat=self._last_heartbeat,
                upload_count=self._upload_count,
                upload_duration_sum=self._upload_duration_sum,
            )

    def __repr__(self) -> str:
        return f"DeviceRecord(device_id={self._device_id!r})"


class DeviceRegistry:
    """
    All known devices, keyed by id.

    Built once at startup and handed to the request layer; there is
    no module-level instance. Records are created here and nowhere
    else, and are never removed.
    """

    def __init__(self):
        self._lock = ReadWriteLock()
        self._devices: Dict[str, DeviceRecord] = {}

    def insert_if_absent(self, device_id: str) -> bool:
        """Register `device_id`. Returns False (and does nothing) if it already exists."""
        with self._lock.write_locked():
            if device_id in self._devices:
                return False
            self._devices[device_id] = DeviceRecord(device_id)
            return True

    def get(self, device_id: str) -> DeviceRecord:
        """Return the shared record for `device_id`. Never creates one."""
        with self._lock.read_locked():
            device = self._devices.get(device_id)
        if device is None:
            raise DeviceNotFound(device_id)
        return device

    def count(self) -> int:
        with self._lock.read_locked():
            return len(self._devices)

    def device_ids(self) -> List[str]:
        with self._lock.read_locked():
            return sorted(self._devices)
