"""MQTT bridge to the light actuator.

Topics:
    esp32/light1, esp32/light2 -> payload "ON" / "OFF"

Commands are published on the same topics the actuator reports on, so every
message seen there (including our own echoes) is treated as the confirmed
light state.
"""

from __future__ import annotations

import logging
import os
import socket
from typing import TYPE_CHECKING, Any, ClassVar

from paho.mqtt.client import Client, ConnectFlags, DisconnectFlags, MQTTMessage
from paho.mqtt.enums import CallbackAPIVersion, MQTTErrorCode

from blinklink.errors import UpstreamDeliveryError
from blinklink.light import LIGHTS, parse_state

if TYPE_CHECKING:
    from logging import Logger

    from paho.mqtt.properties import Properties
    from paho.mqtt.reasoncodes import ReasonCode

    from blinklink.light import LightMirror
    from blinklink.types import LightCommand, LightName


class LightBridge:
    """Wrapper around paho-mqtt for the light actuator."""

    KEEPALIVE: ClassVar = 30
    TOPIC_NAMESPACE: ClassVar = "esp32"

    broker: str
    port: int

    _log: Logger
    _client: Client

    def __init__(self, *, broker: str, port: int, mirror: LightMirror, client: Client | None = None) -> None:
        self.broker = broker
        self.port = port
        self._mirror = mirror

        self._log = logging.getLogger("LightBridge")
        self._client = client or Client(
            client_id=f"blinklink-{socket.gethostname()}-{os.getpid()}",
            callback_api_version=CallbackAPIVersion.VERSION2,
        )
        self._client.on_message = self._on_message
        self._client.on_connect = self._on_connect
        self._client.on_disconnect = self._on_disconnect
        self._client.reconnect_delay_set(min_delay=1, max_delay=30)

    @classmethod
    def topic_for(cls, light: LightName) -> str:
        return f"{cls.TOPIC_NAMESPACE}/{light}"

    def connect(self) -> bool:
        """Connect to MQTT broker. Return True on success."""

        self._log.debug("Connecting to MQTT broker [bright_magenta]%s:%d[/]", self.broker, self.port)
        try:
            res1 = self._client.connect(self.broker, self.port, keepalive=LightBridge.KEEPALIVE)
        except OSError as e:
            self._log.critical("MQTT connect failed: %s", e)
            return False

        if res1 != MQTTErrorCode.MQTT_ERR_SUCCESS:
            self._log.critical("MQTT connect failed with rc=%s", res1)
            return False

        if (res2 := self._client.loop_start()) != MQTTErrorCode.MQTT_ERR_SUCCESS:
            self._log.critical("MQTT connect (loop start) failed with rc=%s", res2)
            return False

        self._log.info("Connected to [bright_magenta]%s:%d[/]", self.broker, self.port)
        return True

    def disconnect(self) -> None:
        """Disconnect from MQTT broker and stop loop."""

        self._log.debug("Disconnecting from MQTT broker [bright_magenta]%s:%d[/]", self.broker, self.port)
        res1 = self._client.disconnect()

        if res1 != MQTTErrorCode.MQTT_ERR_SUCCESS:
            self._log.critical("MQTT disconnect failed with rc=%s", res1)
            return

        if (res2 := self._client.loop_stop()) != MQTTErrorCode.MQTT_ERR_SUCCESS:
            self._log.critical("MQTT disconnect (loop stop) failed with rc=%s", res2)
            return

        self._log.info("Disconnected from [bright_magenta]%s:%d[/]", self.broker, self.port)

    def send_command(self, light: LightName, command: LightCommand) -> None:
        """Publish a light command.

        Raises:
            UpstreamDeliveryError: Publish was not accepted by the client
        """
        topic = LightBridge.topic_for(light)
        self._log.debug("[bright_white on grey30][Server -> MQTT][/] %s %s", topic, command)
        res = self._client.publish(topic, command, qos=1)

        if res.rc != MQTTErrorCode.MQTT_ERR_SUCCESS:
            self._log.error("MQTT publish to %s failed with rc=%s", topic, res.rc)
            raise UpstreamDeliveryError(topic, f"publish failed with rc={res.rc}")

        self._log.info("Published to [bright_green]%s[/]: %s", topic, command)

    def handle_message(self, topic: str, raw: bytes) -> None:
        """Apply an actuator state report to the mirror."""
        light = next((lt for lt in LIGHTS if LightBridge.topic_for(lt) == topic), None)
        if light is None:
            self._log.debug("Ignoring message on %s", topic)
            return

        try:
            state = parse_state(raw.decode())
        except UnicodeDecodeError:
            state = None

        if state is None:
            self._log.warning("[bright_yellow on grey30][IGNORING][/] Invalid light state on %s: %r", topic, raw)
            return

        self._mirror.report_actuator_state(light, state)

    def _sub(self, client: Client, topic: str) -> None:
        self._log.debug("Subscribing to topic: [bright_green]%s[/]", topic)
        res, _ = client.subscribe(topic, qos=1)

        if res != MQTTErrorCode.MQTT_ERR_SUCCESS:
            self._log.error("MQTT subscribe failed with rc=%s", res)
            return

        self._log.info("Subscribed to topic: [bright_green]%s[/]", topic)

    ############################################### Paho MQTT Callbacks ################################################

    def _on_connect(
        self,
        client: Client,
        userdata: Any,  # noqa: ANN401
        connect_flags: ConnectFlags,
        reason_code: ReasonCode,
        properties: Properties | None = None,
    ) -> None:
        """Subscribe to every light topic on (re)connect."""

        if reason_code.is_failure:
            self._log.warning("MQTT connect failed with rc=%s", reason_code)
            return

        for light in LIGHTS:
            self._sub(client, LightBridge.topic_for(light))
        _ = userdata, connect_flags, properties

    def _on_disconnect(
        self,
        client: Client,
        userdata: Any,  # noqa: ANN401
        disconnect_flags: DisconnectFlags,
        reason_code: ReasonCode,
        properties: Properties | None = None,
    ) -> None:
        if reason_code.is_failure:
            self._log.warning("MQTT disconnected unexpectedly: %s, will reconnect...", reason_code)

        _ = client, userdata, disconnect_flags, properties

    def _on_message(self, client: Client, userdata: Any, message: MQTTMessage) -> None:  # noqa: ANN401
        self._log.debug("[bright_white on grey30][MQTT -> Server][/] %s %r", message.topic, message.payload)
        try:
            self.handle_message(message.topic, message.payload)
        except Exception:
            self._log.exception("Error processing message on %s", message.topic)
        _ = client, userdata
