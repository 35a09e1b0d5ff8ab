"""Presence tracker: heartbeat ingestion, offline sweep, status rebroadcast.

Liveness is decided on the server clock only. Device-reported timestamps are
kept for display (`lastSeen`) and never consulted by the sweep.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Final

from blinklink.misc.utils import time_now_ms
from blinklink.state import Device, DeviceRegistry

if TYPE_CHECKING:
    from collections.abc import Callable
    from logging import Logger

    from blinklink.bus import FanOutBus
    from blinklink.models import HeartbeatRequest
    from blinklink.types import Frame, StatusPayload, TelemetryPayload, Transport

# Device considered offline if no heartbeat received within this window
HEARTBEAT_TIMEOUT_MS: Final = 15_000

# Background task periods (seconds)
SWEEP_INTERVAL: Final = 5
REBROADCAST_INTERVAL: Final = 10


def status_payload(dev: Device, transport: Transport = "ws") -> StatusPayload:
    return {
        "deviceId": dev.device_id,
        "status": dev.status,
        "lastSeen": dev.last_seen,
        "transport": transport,
    }


class PresenceTracker:
    """Classifies devices online/offline and fans out every change."""

    registry: DeviceRegistry
    timeout_ms: int

    _log: Logger

    def __init__(
        self,
        registry: DeviceRegistry,
        bus: FanOutBus,
        *,
        clock: Callable[[], int] = time_now_ms,
        timeout_ms: int = HEARTBEAT_TIMEOUT_MS,
    ) -> None:
        self.registry = registry
        self.timeout_ms = timeout_ms
        self._bus = bus
        self._clock = clock
        self._log = logging.getLogger("PresenceTracker")

        bus.add_replay_source(self.snapshot)

    def ingest_heartbeat(self, req: HeartbeatRequest) -> Device:
        """Upsert the device as online and broadcast status (+ telemetry)."""
        now = self._clock()
        prev = self.registry.get(req.device_id)
        dev = self.registry.upsert(
            req.device_id,
            now=now,
            last_seen=req.ts if req.ts is not None else now,
            rssi=req.rssi,
            battery=req.battery,
        )

        if prev is None:
            self._log.info("New device [bright_green]%s[/] online", dev.device_id)
        elif prev.status == "offline":
            self._log.info("Device [bright_green]%s[/] back online", dev.device_id)
        else:
            self._log.debug("Heartbeat from %s", dev.device_id)

        self._bus.publish("status", dict(status_payload(dev)))

        if req.rssi is not None or req.battery is not None:
            self._bus.publish("telemetry", dict(self._telemetry_payload(dev)))

        return dev

    def note_activity(self, device_id: str, ts: int | None = None) -> None:
        """Record non-heartbeat traffic (blinks) as `lastSeen` for display."""
        self.registry.touch(device_id, ts if ts is not None else self._clock())

    def sweep(self) -> list[Device]:
        """Mark devices offline whose last heartbeat is older than the timeout."""
        flipped = self.registry.sweep(now=self._clock(), timeout_ms=self.timeout_ms)
        for dev in flipped:
            self._log.warning("Device [bright_yellow]%s[/] timed out, marked offline", dev.device_id)
            self._bus.publish("status", dict(status_payload(dev)))
        return flipped

    def rebroadcast(self) -> None:
        """Re-send every known device's status so late observers converge."""
        for topic, payload in self.snapshot():
            self._bus.publish(topic, payload)

    def snapshot(self, transport: Transport = "ws") -> list[Frame]:
        return [("status", dict(status_payload(dev, transport))) for dev in self.registry.all()]

    def _telemetry_payload(self, dev: Device) -> TelemetryPayload:
        pload: TelemetryPayload = {"deviceId": dev.device_id, "timestamp": dev.last_seen}
        if dev.rssi is not None:
            pload["rssi"] = dev.rssi
        if dev.battery is not None:
            pload["battery"] = dev.battery
        return pload
