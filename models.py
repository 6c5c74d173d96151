# ─────────────────────────────────────────────────────────────────
# models.py - Data Models (Pydantic Schemas)
#
# Every request body is checked here before any route code runs.
# A missing field, a wrong type, or a timestamp that is not RFC3339
# is rejected at the door with a 400.
#
# All API shapes live in this file. Storage types live in
# database.py and never leave the server.
# ─────────────────────────────────────────────────────────────────

import re
from datetime import datetime, timezone
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator


INT64_MAX = 2**63 - 1

# YYYY-MM-DDTHH:MM:SS[.frac](Z|±HH:MM), nothing looser
RFC3339_PATTERN = re.compile(
    r"\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}(\.\d+)?(Z|[+-]\d{2}:\d{2})"
)


def parse_rfc3339(value) -> datetime:
    """
    Accept "2025-01-01T12:00:00Z" or "2025-01-01T12:00:00.5+02:00".

    The result is always in UTC. Offsets that push the instant past
    year 1 or year 9999 are refused rather than wrapped.
    """
    if not isinstance(value, str) or not value.strip():
        raise ValueError("sent_at must be a non-empty RFC3339 string")

    text = value.strip()
    if not RFC3339_PATTERN.fullmatch(text):
        raise ValueError("sent_at must be RFC3339 formatted")

    if text.endswith("Z"):
        text = text[:-1] + "+00:00"

    try:
        parsed = datetime.fromisoformat(text).astimezone(timezone.utc)
    except ValueError:
        raise ValueError("sent_at must be RFC3339 formatted") from None
    except OverflowError:
        raise ValueError("sent_at is out of range") from None

    return parsed


class HeartbeatIn(BaseModel):
    """
    Body of POST /devices/{device_id}/heartbeat

        {"sent_at": "2025-01-01T12:00:00Z"}
    """

    sent_at: datetime

    @field_validator("sent_at", mode="before")
    @classmethod
    def _sent_at_rfc3339(cls, value):
        return parse_rfc3339(value)


class UploadStatsIn(BaseModel):
    """
    Body of POST /devices/{device_id}/stats

        {"sent_at": "2025-01-01T12:00:00Z", "upload_time": 1500000000}

    upload_time is the duration of one upload in NANOSECONDS.
    sent_at is optional and only checked for format.
    """

    sent_at: Optional[datetime] = None
    upload_time: int = Field(ge=0, le=INT64_MAX, strict=True)

    @field_validator("sent_at", mode="before")
    @classmethod
    def _sent_at_rfc3339(cls, value):
        if value is None:
            return None
        return parse_rfc3339(value)


class HeartbeatAck(BaseModel):
    device_id: str
    minute: datetime      # the UTC minute the heartbeat was counted under
    new_minute: bool      # False when this minute was already seen


class UploadStatsAck(BaseModel):
    device_id: str
    upload_count: int


class DeviceStatsOut(BaseModel):
    """
    Response of GET /devices/{device_id}/stats

        {"uptime": 40.0, "avg_upload_time": "1.166666666s"}
    """

    uptime: float
    avg_upload_time: str


class DeviceList(BaseModel):
    devices: List[str]
    total: int
