"""
Service wiring: presence, fan-out, light mirror, blink routing, interpreters.

Architecture:
    heartbeat  --> PresenceTracker --> FanOutBus --> observers (WS / SSE)
    blinkCount --> BlinkRouter --> active interpreter | EmergencyGuard
    MQTT       --> LightBridge --> LightMirror --> FanOutBus

Thread Safety:
    One re-entrant lock (`BlinkLinkService.lock`) is shared by every
    component. HTTP handlers, MQTT callbacks and the periodic tasks all mutate
    state under it, so updates are serialized and never interleave.
"""

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING, Any, Final, cast, get_args

from blinklink.bus import FanOutBus
from blinklink.emergency import EmergencyGuard
from blinklink.errors import ValidationError
from blinklink.interpreters import BlinkGame, MenuNavigator, MorseDecoder, PhraseBuilder
from blinklink.light import LightMirror, NullActuator
from blinklink.misc.utils import iso_now, time_now_ms
from blinklink.models import (
    BlinkCountRequest,
    BlinkRequest,
    HeartbeatRequest,
    LightControlRequest,
    MorsePressRequest,
    parse_request,
)
from blinklink.notify import WebhookNotifier, send_in_background
from blinklink.presence import REBROADCAST_INTERVAL, SWEEP_INTERVAL, PresenceTracker
from blinklink.router import BlinkRouter
from blinklink.scheduler import PeriodicTask
from blinklink.state import DeviceRegistry
from blinklink.types import ContextName

if TYPE_CHECKING:
    from collections.abc import Callable
    from logging import Logger

    from blinklink.emergency import Runner
    from blinklink.interpreters import Interpreter
    from blinklink.light import Actuator
    from blinklink.state import Device
    from blinklink.types import BlinkCountPayload, BlinkPayload, LightCommand, LightStatusPayload

# Interpreter idle/reset checks (seconds)
TICK_INTERVAL: Final = 0.2

CONTEXTS: Final[tuple[str, ...]] = get_args(ContextName.__value__)


class BlinkLinkService:
    """Owns all core state and exposes the ingestion operations."""

    device_id: str
    lock: threading.RLock

    _log: Logger

    def __init__(
        self,
        *,
        device_id: str,
        notifier: WebhookNotifier | None = None,
        actuator: Actuator | None = None,
        clock: Callable[[], int] = time_now_ms,
        runner: Runner = send_in_background,
    ) -> None:
        self.device_id = device_id
        self.lock = threading.RLock()
        self._clock = clock
        self._runner = runner
        self._log = logging.getLogger("BlinkLinkService")

        self.bus = FanOutBus(self.lock)
        self.registry = DeviceRegistry(self.lock)
        self.presence = PresenceTracker(self.registry, self.bus, clock=clock)
        self.lights = LightMirror(self.bus, actuator or NullActuator(), self.lock)
        self.notifier = notifier or WebhookNotifier(webhook_url="", device_id=device_id)
        self.emergency = EmergencyGuard(self, sender=self.notifier.send_emergency, runner=runner, lock=self.lock)
        self.router = BlinkRouter(self.emergency, clock=clock, lock=self.lock)

        self._tasks = [
            PeriodicTask("presence-sweep", SWEEP_INTERVAL, self.presence.sweep),
            PeriodicTask("status-rebroadcast", REBROADCAST_INTERVAL, self.presence.rebroadcast),
            PeriodicTask("interpreter-tick", TICK_INTERVAL, self.router.tick),
        ]

    # ==================== Lifecycle ====================

    def start(self) -> None:
        for task in self._tasks:
            task.start()
        self._log.info("Background tasks started")

    def stop(self) -> None:
        for task in self._tasks:
            task.stop()
        self._log.info("Background tasks stopped")

    # ==================== Ingestion ====================

    def heartbeat(self, data: Any) -> Device:  # noqa: ANN401
        req = parse_request(HeartbeatRequest, data)
        with self.lock:
            return self.presence.ingest_heartbeat(req)

    def blink(self, data: Any) -> BlinkPayload:  # noqa: ANN401
        """Free-form blink telemetry: broadcast only, never interpreted."""
        req = parse_request(BlinkRequest, data)
        event: BlinkPayload = {
            "deviceId": req.device_id,
            "type": "blink",
            "count": req.count or 1,
            "timestamp": req.timestamp if req.timestamp is not None else iso_now(),
        }
        with self.lock:
            self.presence.note_activity(req.device_id)
            self.bus.publish("blink", dict(event))
        self._log.info("[BLINK] Device %s blinked %d times", req.device_id, event["count"])
        return event

    def blink_count(self, data: Any) -> BlinkCountPayload:  # noqa: ANN401
        """Validated gesture count: broadcast and route to the active interpreter."""
        try:
            req = parse_request(BlinkCountRequest, data)
        except ValidationError as e:
            self._log.warning("[BLINK COUNT] Rejected: %s", e.reason)
            raise

        event: BlinkCountPayload = {
            "deviceId": req.device_id,
            "blinkCount": req.blink_count,
            "timestamp": req.timestamp if req.timestamp is not None else iso_now(),
        }
        with self.lock:
            self.presence.note_activity(req.device_id)
            self.bus.publish("blinkCount", dict(event))
            if req.device_id == self.device_id:
                consumer = self.router.dispatch(req.blink_count)
                self._log.info(
                    "[BLINK COUNT] Device %s: %d blinks -> %s", req.device_id, req.blink_count, consumer or "dropped"
                )
            else:
                self._log.debug("[BLINK COUNT] Device %s is not interpreted", req.device_id)
        return event

    def light_control(self, data: Any) -> dict[str, Any]:  # noqa: ANN401
        req = parse_request(LightControlRequest, data)
        self.lights.command(req.light, req.command)
        return {"light": req.light, "command": req.command, "timestamp": iso_now()}

    def light_status(self) -> LightStatusPayload:
        return self.lights.status()

    def trigger_webhook(self, payload: dict[str, Any]) -> Any:  # noqa: ANN401
        """Forward `payload` to the webhook (`webhookUrl` overrides the target)."""
        body = dict(payload)
        url = body.pop("webhookUrl", None)
        self._log.info("Forwarding payload to %s", url or self.notifier.webhook_url or "<unset>")
        return self.notifier.post(body, url if isinstance(url, str) and url else None)

    # ==================== Interpreter contexts ====================

    def open_context(self, name: str) -> Interpreter:
        """Create a fresh interpreter for `name` and give it the blink stream."""
        interp = self._build_interpreter(name)
        with self.lock:
            self.router.register(interp)
            interp.publish_state()
        return interp

    def close_context(self, name: str) -> bool:
        with self.lock:
            return self.router.unregister(name)

    def context(self, name: str) -> Interpreter:
        """Return the active interpreter, which must be `name`.

        Raises:
            ValidationError: `name` does not currently own the blink stream
        """
        active = self.router.active
        if active is None or active.NAME != name:
            msg = f"context {name!r} is not active"
            raise ValidationError(msg)
        return active

    def context_state(self) -> dict[str, Any] | None:
        with self.lock:
            active = self.router.active
            return None if active is None else {"context": active.NAME, "state": active.state()}

    def menu_select(self, index: int) -> dict[str, Any]:
        with self.lock:
            menu = cast("MenuNavigator", self.context("menu"))
            menu.choose(index, self._clock())
            return menu.state()

    def phrases_select(self, index: int) -> dict[str, Any]:
        with self.lock:
            phrases = cast("PhraseBuilder", self.context("phrases"))
            phrases.choose(index, self._clock())
            return phrases.state()

    def morse_press(self, data: Any) -> dict[str, Any]:  # noqa: ANN401
        req = parse_request(MorsePressRequest, data)
        with self.lock:
            morse = cast("MorseDecoder", self.context("morse"))
            morse.press(req.duration_ms, self._clock())
            return morse.state()

    def game_hit(self) -> dict[str, Any]:
        with self.lock:
            game = cast("BlinkGame", self.context("game"))
            game.attempt(self._clock())
            return game.state()

    def _build_interpreter(self, name: str) -> Interpreter:
        match name:
            case "menu":
                return MenuNavigator(self, self)
            case "phrases":
                return PhraseBuilder(self)
            case "morse":
                return MorseDecoder(self)
            case "game":
                return BlinkGame(self, started_at=self._clock())
            case _:
                msg = f"unknown context {name!r}, expected one of: {', '.join(CONTEXTS)}"
                raise ValidationError(msg)

    # ==================== Outlet ====================

    def announce(self, text: str) -> None:
        self.bus.publish("announce", {"text": text})

    def emit(self, topic: str, payload: dict[str, Any]) -> None:
        self.bus.publish(topic, payload)

    # ==================== Menu actions ====================

    def navigate(self, target: ContextName) -> None:
        self.emit("navigate", {"target": target})
        self.open_context(target)

    def toggle_light(self) -> LightCommand:
        return self.lights.toggle("light1")

    def light_state(self) -> LightCommand:
        return self.lights.current_state("light1")

    def report_need(self, item: str) -> None:
        def _done(delivered: bool) -> None:  # noqa: FBT001
            with self.lock:
                self.emit("need", {"item": item, "delivered": delivered})

        self._runner(f"need-{item.lower()}", lambda: self.notifier.send_need(item), _done)
