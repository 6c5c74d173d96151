# ─────────────────────────────────────────────────────────────────
# metrics.py - Uptime & Upload Calculations
#
# Pure functions. They take plain numbers and datetimes copied out of
# a DeviceRecord snapshot, so they never need a lock.
#
# All durations are integer NANOSECONDS, from the request body,
# through the running sum, to the reported average.
# ─────────────────────────────────────────────────────────────────

from datetime import datetime, timedelta
from typing import Optional

MINUTE = timedelta(minutes=1)

NANOSECOND = 1
MICROSECOND = 1_000 * NANOSECOND
MILLISECOND = 1_000 * MICROSECOND
SECOND = 1_000 * MILLISECOND
MINUTE_NS = 60 * SECOND
HOUR_NS = 60 * MINUTE_NS


def span_minutes_inclusive(start: Optional[datetime], end: Optional[datetime]) -> int:
    """
    Whole minutes from start to end, counting both ends.

    12:00 → 12:04 is 5. Order does not matter. Returns 0 when either
    end is missing.
    """
    if start is None or end is None:
        return 0

    if end < start:
        start, end = end, start

    return (end - start) // MINUTE + 1


def uptime_percentage(
    heartbeat_minute_count: int,
    first_heartbeat: Optional[datetime],
    last_heartbeat: Optional[datetime],
) -> float:
    """
    Distinct heartbeat minutes divided by the inclusive minute span
    between the first and last heartbeat, as a percentage.

    Not clamped: a count larger than the span gives more than 100.
    """
    if heartbeat_minute_count == 0:
        return 0.0

    denominator = max(span_minutes_inclusive(first_heartbeat, last_heartbeat), 1)

    return (heartbeat_minute_count / denominator) * 100.0


def average_upload_duration(duration_sum: int, count: int) -> int:
    """Mean upload time in nanoseconds. Remainders are dropped, not rounded."""
    if count <= 0:
        return 0

    return duration_sum // count


def _trimmed(value: int, unit: int) -> str:
    # 1_500_000 with unit 1_000_000 → "1.5"
    whole, frac = divmod(value, unit)
    if not frac:
        return str(whole)
    width = len(str(unit)) - 1
    return f"{whole}.{frac:0{width}d}".rstrip("0")


def format_upload_time(duration_ns: int) -> str:
    """
    Render nanoseconds the way operators read them.

        0            → "0s"
        250          → "250ns"
        1_500        → "1.5µs"
        500_000_000  → "500ms"
        90 seconds   → "1m30s"
        2h and 5s    → "2h0m5s"
    """
    if duration_ns == 0:
        return "0s"

    sign = "-" if duration_ns < 0 else ""
    value = abs(duration_ns)

    # Below one second: pick the largest unit that keeps a whole part
    if value < MICROSECOND:
        return f"{sign}{value}ns"
    if value < MILLISECOND:
        return f"{sign}{_trimmed(value, MICROSECOND)}µs"
    if value < SECOND:
        return f"{sign}{_trimmed(value, MILLISECOND)}ms"

    hours, rest = divmod(value, HOUR_NS)
    minutes, rest = divmod(rest, MINUTE_NS)

    parts = [sign]
    if hours:
        parts.append(f"{hours}h")
    if hours or minutes:
        parts.append(f"{minutes}m")
    parts.append(f"{_trimmed(rest, SECOND)}s")
    return "".join(parts)
