"""Blink routing: one active interpreter slot plus the global emergency.

The slot is last-writer-wins: registering a context replaces whatever held
it before. Registration and dispatch share the service lock, so an event
racing a swap reaches exactly one interpreter.

Resolution order for a blink count:
    1. the active interpreter, if it claims the count locally
    2. the emergency guard, if the count is the emergency gesture
    3. the active interpreter (which ignores gestures it has no use for)
"""

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING

from blinklink.gestures import Gesture, classify
from blinklink.misc.utils import time_now_ms

if TYPE_CHECKING:
    from collections.abc import Callable
    from logging import Logger

    from blinklink.emergency import EmergencyGuard
    from blinklink.interpreters.base import Interpreter


class BlinkRouter:
    _log: Logger

    def __init__(
        self,
        emergency: EmergencyGuard,
        *,
        clock: Callable[[], int] = time_now_ms,
        lock: threading.RLock | None = None,
    ) -> None:
        self._emergency = emergency
        self._clock = clock
        self._lock = lock if lock is not None else threading.RLock()
        self._slot: Interpreter | None = None
        self._log = logging.getLogger("BlinkRouter")

    @property
    def active(self) -> Interpreter | None:
        with self._lock:
            return self._slot

    def register(self, interpreter: Interpreter) -> Interpreter | None:
        """Give `interpreter` the blink stream. Returns the displaced one."""
        with self._lock:
            prev, self._slot = self._slot, interpreter
            self._log.info(
                "Blink handler [bright_green]%s[/] registered%s",
                interpreter.NAME,
                f" (replacing {prev.NAME})" if prev is not None else "",
            )
            return prev

    def unregister(self, name: str) -> bool:
        """Release the slot if `name` still holds it."""
        with self._lock:
            if self._slot is None or self._slot.NAME != name:
                self._log.debug("Unregister %s ignored (slot held by %s)", name, self._slot and self._slot.NAME)
                return False
            self._slot = None
            self._log.info("Blink handler [bright_green]%s[/] unregistered", name)
            return True

    def dispatch(self, count: int, now: int | None = None) -> str | None:
        """Route a validated blink count.

        Returns:
            Name of whoever consumed the event ("emergency" for the guard),
            or None if it was dropped
        """
        with self._lock:
            now = self._clock() if now is None else now
            handler = self._slot

            if handler is not None and handler.claims(count):
                handler.handle(count, now)
                return handler.NAME

            if classify(count) is Gesture.EMERGENCY:
                return "emergency" if self._emergency.trigger(now) else None

            if handler is None:
                self._log.debug("No blink handler registered, dropping %d blinks", count)
                return None

            handler.handle(count, now)
            return handler.NAME

    def tick(self, now: int | None = None) -> None:
        with self._lock:
            if self._slot is not None:
                self._slot.tick(self._clock() if now is None else now)
