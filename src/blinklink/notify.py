"""Outbound caretaker notifications over workflow webhooks."""

from __future__ import annotations

import logging
import threading
import time
from typing import TYPE_CHECKING, Any, Final

import requests

from blinklink.errors import UpstreamDeliveryError
from blinklink.misc.utils import time_now_ms

if TYPE_CHECKING:
    from collections.abc import Callable
    from logging import Logger

WEBHOOK_TIMEOUT_S: Final = 10.0


class WebhookNotifier:
    """Posts need reports and emergencies to the workflow webhooks."""

    webhook_url: str
    call_agent_url: str
    device_id: str

    _log: Logger

    def __init__(
        self,
        *,
        webhook_url: str,
        call_agent_url: str = "",
        device_id: str = "",
        session: requests.Session | None = None,
        timeout_s: float = WEBHOOK_TIMEOUT_S,
    ) -> None:
        self.webhook_url = webhook_url
        self.call_agent_url = call_agent_url
        self.device_id = device_id
        self._session = session or requests.Session()
        self._timeout_s = timeout_s
        self._log = logging.getLogger("WebhookNotifier")

    def post(self, payload: dict[str, Any], url: str | None = None) -> Any:  # noqa: ANN401
        """POST `payload` as JSON and return the decoded response body.

        Raises:
            UpstreamDeliveryError: No URL configured, transport error, or non-2xx
        """
        target = url or self.webhook_url
        if not target:
            raise UpstreamDeliveryError("webhook", "no webhook URL configured")

        try:
            start = time.perf_counter()
            response = self._session.post(target, json=payload, timeout=self._timeout_s)
            latency_ms = (time.perf_counter() - start) * 1000.0
            response.raise_for_status()
        except requests.RequestException as exc:
            raise UpstreamDeliveryError(target, f"{exc.__class__.__name__}: {exc}") from exc

        self._log.debug("Webhook %s delivered in %.1fms", target, latency_ms)
        try:
            return response.json()
        except ValueError:
            return response.text

    def send_need(self, item: str) -> None:
        self.post({"type": "need", "item": item, "deviceId": self.device_id, "timestamp": time_now_ms()})
        self._log.info("Need [bright_green]%s[/] delivered", item)

    def send_emergency(self) -> None:
        """Page caretakers. The call-agent leg is best-effort."""
        ts = time_now_ms()
        self.post({"type": "emergency", "deviceId": self.device_id, "timestamp": ts})
        self._log.info("Emergency delivered to webhook")

        if not self.call_agent_url:
            return
        try:
            self.post({"type": "emergency", "deviceId": self.device_id, "emergency_time": ts}, self.call_agent_url)
        except UpstreamDeliveryError as e:
            self._log.warning("Call agent webhook failed, continuing: %s", e)


def send_in_background(
    name: str,
    fn: Callable[[], None],
    on_done: Callable[[bool], None],
) -> threading.Thread:
    """Run `fn` on a daemon thread and report success/failure to `on_done`."""
    log = logging.getLogger("WebhookNotifier")

    def _run() -> None:
        try:
            fn()
        except UpstreamDeliveryError as e:
            log.error("%s not delivered: %s", name, e)
            on_done(False)
        except Exception:
            # on_done must still run or the caller's in-flight flag never clears
            log.exception("%s failed unexpectedly", name)
            on_done(False)
        else:
            on_done(True)

    thread = threading.Thread(target=_run, name=name, daemon=True)
    thread.start()
    return thread
