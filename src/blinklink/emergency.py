"""Emergency trigger with cooldown.

Once fired, no further emergency fires for 5 seconds, and a trigger arriving
while the outbound page is still in flight is dropped (never queued). The
local "activated" state is published before the page is sent and is never
rolled back if the send fails.
"""

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING, Final

if TYPE_CHECKING:
    from collections.abc import Callable
    from logging import Logger

    from blinklink.interpreters.base import Outlet

    type Runner = Callable[[str, Callable[[], None], Callable[[bool], None]], object]

COOLDOWN_MS: Final = 5_000
EMERGENCY_ANNOUNCEMENT: Final = "Emergency! Calling for help!"


class EmergencyGuard:
    cooldown_ms: int
    fired: int  # Number of emergencies actually dispatched

    _log: Logger

    def __init__(
        self,
        out: Outlet,
        *,
        sender: Callable[[], None],
        runner: Runner,
        lock: threading.RLock | None = None,
        cooldown_ms: int = COOLDOWN_MS,
    ) -> None:
        self.cooldown_ms = cooldown_ms
        self.fired = 0
        self._out = out
        self._sender = sender
        self._runner = runner
        self._lock = lock if lock is not None else threading.RLock()
        self._last_fired_at: int | None = None
        self._in_flight = False
        self._log = logging.getLogger("EmergencyGuard")

    @property
    def in_flight(self) -> bool:
        with self._lock:
            return self._in_flight

    def cooling_down(self, now: int) -> bool:
        with self._lock:
            return self._last_fired_at is not None and now - self._last_fired_at < self.cooldown_ms

    def trigger(self, now: int) -> bool:
        """Fire an emergency unless cooling down or already sending.

        Returns:
            True if an emergency was dispatched
        """
        with self._lock:
            if self._in_flight:
                self._log.warning("Emergency send in flight, dropping duplicate trigger")
                return False
            if self.cooling_down(now):
                self._log.warning("Emergency cooldown active, ignoring trigger")
                return False

            self._last_fired_at = now
            self._in_flight = True
            self.fired += 1

            self._log.critical("EMERGENCY triggered")
            self._out.announce(EMERGENCY_ANNOUNCEMENT)
            self._out.emit("emergency", {"state": "activated", "timestamp": now})

        self._runner("emergency", self._sender, self._on_sent)
        return True

    def _on_sent(self, delivered: bool) -> None:  # noqa: FBT001
        with self._lock:
            self._in_flight = False
            if not delivered:
                self._log.error("Emergency page failed; local alert stays active")
            self._out.emit("emergency", {"state": "activated", "delivered": delivered})
