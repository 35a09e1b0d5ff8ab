"""
In-memory device registry.

Thread Safety:
    The registry holds the service's serialization lock; every read and
    write goes through it. Devices are never removed (process-lifetime cache).

Lifecycle:
    heartbeat -> upsert() -> status "online"
    sweep()   -> status "offline" once now - updated_at > timeout
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, replace
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from blinklink.types import DevStatus


@dataclass
class Device:
    """Presence record for one sensor device."""

    device_id: str
    status: DevStatus = "online"
    last_seen: int = 0  # Device-reported (ms), display only
    updated_at: int = 0  # Server clock (ms) at last heartbeat, drives liveness
    rssi: int | float | None = None
    battery: int | float | None = None

    def to_json(self) -> dict[str, object]:
        return {
            "deviceId": self.device_id,
            "status": self.status,
            "lastSeen": self.last_seen,
            "updatedAt": self.updated_at,
            "rssi": self.rssi,
            "battery": self.battery,
        }


class DeviceRegistry:
    """Single-writer store for `Device` records."""

    def __init__(self, lock: threading.RLock | None = None) -> None:
        self._lock = lock if lock is not None else threading.RLock()
        self._devices: dict[str, Device] = {}

    def get(self, device_id: str) -> Device | None:
        """Return a copy of the device record, if known."""
        with self._lock:
            dev = self._devices.get(device_id)
            return replace(dev) if dev is not None else None

    def upsert(
        self,
        device_id: str,
        *,
        now: int,
        last_seen: int,
        rssi: int | float | None = None,
        battery: int | float | None = None,
    ) -> Device:
        """Create or refresh a device from a heartbeat and mark it online."""
        with self._lock:
            dev = self._devices.get(device_id)
            if dev is None:
                dev = self._devices[device_id] = Device(device_id=device_id)

            dev.status = "online"
            dev.updated_at = now
            dev.last_seen = last_seen
            dev.rssi = rssi
            dev.battery = battery
            return replace(dev)

    def touch(self, device_id: str, last_seen: int) -> bool:
        """Refresh `last_seen` of a known device without affecting liveness."""
        with self._lock:
            dev = self._devices.get(device_id)
            if dev is None:
                return False
            dev.last_seen = last_seen
            return True

    def sweep(self, *, now: int, timeout_ms: int) -> list[Device]:
        """Flip timed-out online devices to offline. Returns the flipped devices."""
        flipped: list[Device] = []
        with self._lock:
            for dev in self._devices.values():
                if dev.status == "online" and (now - dev.updated_at) > timeout_ms:
                    dev.status = "offline"
                    flipped.append(replace(dev))
        return flipped

    def all(self) -> list[Device]:
        with self._lock:
            return [replace(dev) for dev in self._devices.values()]
