# ─────────────────────────────────────────────────────────────────
# routes/devices.py - Device Telemetry Endpoints
#
# This file owns HTTP request/response logic only.
# It does NOT know how counters are stored or locked (database.py)
# It does NOT know how metrics are computed (metrics.py)
# It resolves the device, calls the core, and shapes the response.
#
# Handlers are plain `def` functions: FastAPI runs each one on its
# worker thread pool, so requests really do run in parallel and the
# per-device locks in database.py are what keep them consistent.
# ─────────────────────────────────────────────────────────────────

from fastapi import APIRouter, Depends, HTTPException, Request

import metrics
from database import DeviceRecord, DeviceRegistry, truncate_to_minute
from errors import DeviceNotFound, InvalidArgument
from logging_config import RequestContext, get_request_context
from models import (
    DeviceList,
    DeviceStatsOut,
    HeartbeatAck,
    HeartbeatIn,
    UploadStatsAck,
    UploadStatsIn,
)

router = APIRouter(
    prefix="/devices",
    tags=["Devices"]
)


def get_registry(request: Request) -> DeviceRegistry:
    """The registry built at startup, attached to the app by main.py."""
    return request.app.state.registry


def _resolve_device(
    registry: DeviceRegistry, device_id: str, ctx: RequestContext
) -> DeviceRecord:
    # Lookup never creates: unknown ids are a client error
    try:
        return registry.get(device_id)
    except DeviceNotFound as exc:
        ctx.logger.warning(f"🔍 Unknown device '{device_id}' | status: 404")
        raise HTTPException(status_code=404, detail=str(exc)) from exc


# ─────────────────────────────────────────────────────────────────
# GET /devices - List registered devices
# ─────────────────────────────────────────────────────────────────

@router.get("", response_model=DeviceList)
def list_devices(registry: DeviceRegistry = Depends(get_registry)):
    """Every device id seeded at startup, sorted."""
    device_ids = registry.device_ids()
    return DeviceList(devices=device_ids, total=len(device_ids))


# ─────────────────────────────────────────────────────────────────
# POST /devices/{device_id}/heartbeat - Record a liveness signal
# ─────────────────────────────────────────────────────────────────

@router.post("/{device_id}/heartbeat", response_model=HeartbeatAck)
def add_heartbeat(
    device_id: str,
    payload: HeartbeatIn,
    registry: DeviceRegistry = Depends(get_registry),
    ctx: RequestContext = Depends(get_request_context),
):
    """
    Marks the UTC minute of `sent_at` as seen for this device.

    Flow:
    1. Validate body via Pydantic (automatic, 400 on failure)
    2. Resolve device → 404 if unknown
    3. Record the minute under the device's exclusive lock
    4. Return the minute and whether it was new
    """
    device = _resolve_device(registry, device_id, ctx)

    # record_heartbeat only reports whether the minute was new; truncating
    # again here yields the same minute it stored
    created = device.record_heartbeat(payload.sent_at)
    minute = truncate_to_minute(payload.sent_at)

    ctx.logger.info(
        f"💓 Heartbeat: '{device.device_id}' | minute: {minute.isoformat()} | new_minute: {created}"
    )

    return HeartbeatAck(device_id=device.device_id, minute=minute, new_minute=created)


# ─────────────────────────────────────────────────────────────────
# POST /devices/{device_id}/stats - Record one upload duration
# ─────────────────────────────────────────────────────────────────

@router.post("/{device_id}/stats", response_model=UploadStatsAck)
def add_upload_stats(
    device_id: str,
    payload: UploadStatsIn,
    registry: DeviceRegistry = Depends(get_registry),
    ctx: RequestContext = Depends(get_request_context),
):
    """
    Adds one upload measurement (nanoseconds) to the device's running totals.

    Negative durations are refused by the schema, and again by the
    record itself. Either way nothing is counted.
    """
    device = _resolve_device(registry, device_id, ctx)

    try:
        totals = device.record_upload(payload.upload_time)
    except InvalidArgument as exc:
        ctx.logger.warning(f"🚫 Rejected upload for '{device.device_id}' | {exc}")
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    ctx.logger.info(
        f"📤 Upload stats: '{device.device_id}' | upload_time_ns: {payload.upload_time} "
        f"| count: {totals.count} | sum_ns: {totals.duration_sum}"
    )

    return UploadStatsAck(device_id=device.device_id, upload_count=totals.count)


# ─────────────────────────────────────────────────────────────────
# GET /devices/{device_id}/stats - Uptime & average upload time
# ─────────────────────────────────────────────────────────────────

@router.get("/{device_id}/stats", response_model=DeviceStatsOut)
def get_device_stats(
    device_id: str,
    registry: DeviceRegistry = Depends(get_registry),
    ctx: RequestContext = Depends(get_request_context),
):
    """
    Reduces the device's counters into its two metrics.

    The counters are copied under the read lock; the math runs
    after the lock is released.
    """
    device = _resolve_device(registry, device_id, ctx)

    snapshot = device.snapshot_counters()

    uptime = metrics.uptime_percentage(
        snapshot.heartbeat_minute_count,
        snapshot.first_heartbeat,
        snapshot.last_heartbeat,
    )
    avg_upload_ns = metrics.average_upload_duration(
        snapshot.upload_duration_sum, snapshot.upload_count
    )
    avg_upload_time = metrics.format_upload_time(avg_upload_ns)

    ctx.logger.info(
        f"📊 Stats: '{device.device_id}' | uptime: {uptime:.2f}% | avg_upload_time: {avg_upload_time}"
    )

    return DeviceStatsOut(uptime=uptime, avg_upload_time=avg_upload_time)
