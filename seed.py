# ─────────────────────────────────────────────────────────────────
# seed.py - Bootstrap the registry from a CSV device list
#
# Expected file shape (first column is the device id, extra columns
# are ignored):
#
#     device_id
#     60-6b-44-84-dc-64
#     b4-45-52-a2-f1-3c
#
# The first row is always treated as a header.
# ─────────────────────────────────────────────────────────────────

import csv
import logging
from pathlib import Path
from typing import Iterable, List, Union

from database import DeviceRegistry
from errors import SeedError

logger = logging.getLogger("seed")


def read_device_ids(path: Union[str, Path]) -> List[str]:
    """Return the device ids listed in `path`, in file order, blanks skipped."""
    path = Path(path)

    try:
        with path.open(newline="", encoding="utf-8") as handle:
            rows = list(csv.reader(handle))
    except FileNotFoundError as exc:
        raise SeedError(f"devices csv not found: {path}") from exc
    except (OSError, UnicodeDecodeError, csv.Error) as exc:
        raise SeedError(f"read devices csv {path}: {exc}") from exc

    if not rows:
        raise SeedError(f"devices csv is empty: {path}")

    device_ids = []
    for row in rows[1:]:
        if not row:
            continue
        device_id = row[0].strip()
        if device_id:
            device_ids.append(device_id)

    return device_ids


def seed_registry(registry: DeviceRegistry, device_ids: Iterable[str]) -> int:
    """Insert every id. Duplicates are ignored. Returns how many were new."""
    added = 0
    for device_id in device_ids:
        if registry.insert_if_absent(device_id):
            added += 1
    return added


def registry_from_csv(path: Union[str, Path]) -> DeviceRegistry:
    """
    Build a fresh registry from the CSV at `path`.

    Raises SeedError when the file is missing, unreadable, or lists
    no devices at all. The service has nothing to serve in that case.
    """
    device_ids = read_device_ids(path)
    if not device_ids:
        raise SeedError(f"devices csv lists no devices: {path}")

    registry = DeviceRegistry()
    added = seed_registry(registry, device_ids)

    skipped = len(device_ids) - added
    if skipped:
        logger.warning(f"⚠️  Ignored {skipped} duplicate device id(s) in {path}")
    logger.info(f"📋 Loaded {added} device(s) from {path}")

    return registry
