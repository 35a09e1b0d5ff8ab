"""Light state mirror.

Tracks the last state reported by the actuator bridge for each light. A
confirmed report always overwrites whatever is held locally, including an
optimistic value set by `toggle`.
"""

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING, Final, Protocol, cast

from blinklink.errors import UpstreamDeliveryError

if TYPE_CHECKING:
    from logging import Logger

    from blinklink.bus import FanOutBus
    from blinklink.types import Frame, LightCommand, LightName, LightStatusPayload

LIGHTS: Final[tuple[LightName, ...]] = ("light1", "light2")
COMMANDS: Final[tuple[LightCommand, ...]] = ("ON", "OFF")


class Actuator(Protocol):
    def send_command(self, light: LightName, command: LightCommand) -> None:
        """Publish a command. Raises UpstreamDeliveryError on failure."""
        ...


class NullActuator:
    """Actuator used when running without a broker: every command fails."""

    def send_command(self, light: LightName, command: LightCommand) -> None:
        raise UpstreamDeliveryError(f"esp32/{light}", "no actuator bridge configured")


def parse_state(raw: str) -> LightCommand | None:
    state = raw.strip().upper()
    return cast("LightCommand", state) if state in COMMANDS else None


class LightMirror:
    _log: Logger

    def __init__(self, bus: FanOutBus, actuator: Actuator, lock: threading.RLock | None = None) -> None:
        self._bus = bus
        self._actuator = actuator
        self._lock = lock if lock is not None else threading.RLock()
        self._states: dict[LightName, LightCommand] = dict.fromkeys(LIGHTS, "OFF")
        self._log = logging.getLogger("LightMirror")

        bus.add_replay_source(self.snapshot)

    def set_actuator(self, actuator: Actuator) -> None:
        with self._lock:
            self._actuator = actuator

    def current_state(self, light: LightName) -> LightCommand:
        with self._lock:
            return self._states[light]

    def status(self) -> LightStatusPayload:
        with self._lock:
            return {"light1": self._states["light1"], "light2": self._states["light2"]}

    def snapshot(self) -> list[Frame]:
        return [("lightStatus", dict(self.status()))]

    def report_actuator_state(self, light: LightName, state: LightCommand) -> None:
        """Apply a state confirmed by the actuator and republish."""
        with self._lock:
            self._log.info("Actuator reports [bright_magenta]%s[/] = %s", light, state)
            self._states[light] = state
            self._bus.publish("lightStatus", dict(self.status()))

    def command(self, light: LightName, command: LightCommand) -> None:
        """Send `command` and mirror it once the publish has been accepted.

        Raises:
            UpstreamDeliveryError: Actuator publish failed (mirror unchanged)
        """
        with self._lock:
            self._actuator.send_command(light, command)
            self._states[light] = command
            self._bus.publish("lightStatus", dict(self.status()))

    def toggle(self, light: LightName = "light1") -> LightCommand:
        """Flip `light` optimistically and command the actuator.

        The optimistic value is kept even if the publish fails; the next
        actuator report corrects it.

        Returns:
            The state the light was toggled to
        """
        with self._lock:
            new_state: LightCommand = "OFF" if self._states[light] == "ON" else "ON"
            self._states[light] = new_state
            self._bus.publish("lightStatus", dict(self.status()))
            try:
                self._actuator.send_command(light, new_state)
            except UpstreamDeliveryError as e:
                self._log.error("Light toggle not delivered: %s", e)
            return new_state
