# ─────────────────────────────────────────────────────────────────
# errors.py - Typed error conditions
#
# The in-memory core raises these and never logs or formats
# user-facing messages itself. The routes layer decides the HTTP
# status code and what gets logged.
# ─────────────────────────────────────────────────────────────────


class DeviceStatsError(Exception):
    """Base class for every error raised by this service."""


class DeviceNotFound(DeviceStatsError, LookupError):
    """The device id was never registered."""

    def __init__(self, device_id: str):
        super().__init__(f"Device '{device_id}' not found")
        self.device_id = device_id


class InvalidArgument(DeviceStatsError, ValueError):
    """A value broke a contract at the core boundary. Nothing was mutated."""


class SeedError(DeviceStatsError):
    """The device seed source is missing, unreadable or empty."""
