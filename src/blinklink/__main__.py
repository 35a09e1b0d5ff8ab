"""
Server entry point.

    1. Parse CLI flags, configure logging, load the environment
    2. Build the service and (unless --no-mqtt) the light actuator bridge
    3. Start background tasks and open the main menu context
    4. Serve HTTP/WebSocket via uvicorn until interrupted
"""

import contextlib
import logging

import uvicorn

from .app import create_app
from .misc import get_cli_args, get_env_vars, init_logging
from .mqtt import LightBridge
from .notify import WebhookNotifier
from .service import BlinkLinkService


def main() -> None:
    args = get_cli_args()
    init_logging(args.log_level)
    env = get_env_vars(require_mqtt=not args.no_mqtt)
    log = logging.getLogger("blinklink")

    notifier = WebhookNotifier(
        webhook_url=env.webhook_url,
        call_agent_url=env.call_agent_url,
        device_id=env.device_id,
    )
    service = BlinkLinkService(device_id=env.device_id, notifier=notifier)

    bridge: LightBridge | None = None
    if args.no_mqtt:
        log.warning("Running without MQTT: light commands will fail")
    else:
        bridge = LightBridge(broker=env.mqtt_broker, port=env.mqtt_port, mirror=service.lights)
        if bridge.connect():
            service.lights.set_actuator(bridge)
        else:
            log.error("Light bridge unavailable, continuing without it")
            bridge = None

    if not env.webhook_url:
        log.warning("WEBHOOK_URL not set: needs and emergencies stay local")

    service.start()
    service.open_context("menu")

    try:
        with contextlib.suppress(KeyboardInterrupt):
            uvicorn.run(
                create_app(service, env.cors_origins),
                host=args.host,
                port=args.port or env.app_port,
                log_config=None,
            )
    finally:
        service.stop()
        if bridge is not None:
            bridge.disconnect()


if __name__ == "__main__":
    main()
