import os
import sys
from typing import Final, NamedTuple

from dotenv import load_dotenv

from blinklink import __prog__

from .utils import cerr

_PORT_MIN: Final = 1
_PORT_MAX: Final = 65535

_DEFAULT_APP_PORT: Final = 8787
_DEFAULT_DEVICE_ID: Final = "esp32-01"
_DEFAULT_CORS_ORIGINS: Final = "http://localhost:8080,http://localhost:5173,http://localhost:3000"


class EnvConf(NamedTuple):
    mqtt_broker: str
    mqtt_port: int
    app_port: int
    device_id: str
    webhook_url: str
    call_agent_url: str
    cors_origins: list[str]


def _ensure_valid_port(name: str, default: int | None = None) -> int:
    val = os.getenv(name)
    if val is None or not val.strip():
        if default is not None:
            return default
        msg = f"[cyan]{name}[/] is not set"
        raise ValueError(msg)

    try:
        port = int(val)
    except ValueError as e:
        msg = f"[cyan]{name}[/] is not an integer: {val}"
        raise ValueError(msg) from e
    else:
        if not (_PORT_MIN <= port <= _PORT_MAX):
            msg = f"[cyan]{name}[/] is out of range: {val}"
            raise ValueError(msg)

    return port


def _ensure_valid_broker(name: str) -> str:
    val = os.getenv(name)
    if val is None or not val.strip():
        msg = f"[cyan]{name}[/] is not set"
        raise ValueError(msg)

    return val.strip()


def _ensure_valid_url(name: str) -> str:
    val = os.getenv(name, "").strip()
    if val and not val.startswith(("http://", "https://")):
        msg = f"[cyan]{name}[/] must be an http(s) URL: {val}"
        raise ValueError(msg)

    return val


def get_env_vars(*, require_mqtt: bool = True) -> EnvConf:
    """Load & validate configuration from the environment (and `.env`).

    Exits with status 1 after reporting every invalid variable.
    """
    load_dotenv()

    errs: list[str] = []
    broker = ""
    mqtt_port = 0
    app_port = _DEFAULT_APP_PORT
    webhook_url = ""
    call_agent_url = ""

    if require_mqtt:
        try:
            broker = _ensure_valid_broker("MQTT_BROKER")
        except ValueError as e:
            errs.append(str(e))

        try:
            mqtt_port = _ensure_valid_port("MQTT_PORT")
        except ValueError as e:
            errs.append(str(e))

    try:
        app_port = _ensure_valid_port("APP_PORT", default=_DEFAULT_APP_PORT)
    except ValueError as e:
        errs.append(str(e))

    try:
        webhook_url = _ensure_valid_url("WEBHOOK_URL")
    except ValueError as e:
        errs.append(str(e))

    try:
        call_agent_url = _ensure_valid_url("CALL_AGENT_URL")
    except ValueError as e:
        errs.append(str(e))

    if errs:
        cerr.print("".join(f"[bold bright_red]{__prog__}: env-error:[/] {e}\n" for e in errs), end="")
        sys.exit(1)

    device_id = os.getenv("DEVICE_ID", "").strip() or _DEFAULT_DEVICE_ID
    origins = os.getenv("CORS_ORIGINS", _DEFAULT_CORS_ORIGINS)

    return EnvConf(
        mqtt_broker=broker,
        mqtt_port=mqtt_port,
        app_port=app_port,
        device_id=device_id,
        webhook_url=webhook_url,
        call_agent_url=call_agent_url,
        cors_origins=[o.strip() for o in origins.split(",") if o.strip()],
    )
