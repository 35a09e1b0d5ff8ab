"""Tagged request schemas for the ingestion endpoints.

Every payload is validated into one of these models before any state is
touched; `parse_request` turns pydantic failures into `ValidationError` with a
human-readable reason.
"""

from __future__ import annotations

import math
from typing import Annotated, Any, ClassVar, Final, Literal

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, StrictInt, field_validator
from pydantic import ValidationError as PydanticValidationError

from blinklink.errors import ValidationError
from blinklink.misc.utils import ms_from_iso

BLINK_COUNT_MIN: Final = 1
BLINK_COUNT_MAX: Final = 10


class _Request(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)  # Firmware may add fields.

    # Field alias -> reason reported when that field fails validation
    ERROR_HINTS: ClassVar[dict[str, str]] = {"deviceId": "deviceId required"}


def _is_number(v: Any) -> bool:  # noqa: ANN401
    if isinstance(v, bool):
        return False
    return isinstance(v, int) or (isinstance(v, float) and math.isfinite(v))


def _number_or_none(v: Any) -> int | float | None:  # noqa: ANN401
    return v if _is_number(v) else None


def _epoch_ms_or_none(v: Any) -> int | None:  # noqa: ANN401
    """Accept epoch ms as a number, a numeric string or an ISO-8601 string."""
    if isinstance(v, str):
        try:
            v = float(v)
        except ValueError:
            v = ms_from_iso(v)
    if not _is_number(v) or v < 0:
        return None
    return int(v)


def _timestamp_or_none(v: Any) -> str | int | float | None:  # noqa: ANN401
    return v if isinstance(v, str) or _is_number(v) else None


# Lenient telemetry fields: anything unparseable becomes None
Telemetry = Annotated[int | float | None, BeforeValidator(_number_or_none)]
EpochMs = Annotated[int | None, BeforeValidator(_epoch_ms_or_none)]
Timestamp = Annotated[str | int | float | None, BeforeValidator(_timestamp_or_none)]


class HeartbeatRequest(_Request):
    """Periodic liveness report from the sensor headset.

    Only `deviceId` is required. Telemetry that does not parse is dropped so a
    flaky firmware field never costs a heartbeat.
    """

    device_id: str = Field(alias="deviceId", min_length=1)
    rssi: Telemetry = None
    battery: Telemetry = None
    ts: EpochMs = None  # Device clock (ms), display only


class BlinkRequest(_Request):
    """Free-form blink telemetry. `count` is not range checked."""

    device_id: str = Field(alias="deviceId", min_length=1)
    count: int | None = None
    timestamp: Timestamp = None

    @field_validator("count", mode="before")
    @classmethod
    def _whole_count(cls, v: Any) -> int | None:  # noqa: ANN401
        if _is_number(v) and (isinstance(v, int) or v.is_integer()):
            return int(v)
        return None


class BlinkCountRequest(_Request):
    """Classified gesture count, the only input that reaches interpreters."""

    ERROR_HINTS: ClassVar[dict[str, str]] = {
        "deviceId": "deviceId and blinkCount required",
        "blinkCount": f"Invalid blinkCount: must be integer between {BLINK_COUNT_MIN}-{BLINK_COUNT_MAX}",
    }

    device_id: str = Field(alias="deviceId", min_length=1)
    blink_count: StrictInt = Field(alias="blinkCount", ge=BLINK_COUNT_MIN, le=BLINK_COUNT_MAX)
    timestamp: Timestamp = None


class LightControlRequest(_Request):
    ERROR_HINTS: ClassVar[dict[str, str]] = {
        "deviceId": "deviceId, light, and command required",
        "light": 'light must be "light1" or "light2"',
        "command": 'command must be "ON" or "OFF"',
    }

    device_id: str = Field(alias="deviceId", min_length=1)
    light: Literal["light1", "light2"]
    command: Literal["ON", "OFF"]

    @field_validator("command", mode="before")
    @classmethod
    def _upper(cls, v: Any) -> Any:  # noqa: ANN401
        return v.strip().upper() if isinstance(v, str) else v


class MorsePressRequest(_Request):
    ERROR_HINTS: ClassVar[dict[str, str]] = {"durationMs": "durationMs must be a non-negative integer"}

    duration_ms: StrictInt = Field(alias="durationMs", ge=0)


def _reason(model: type[_Request], exc: PydanticValidationError) -> str:
    reasons: list[str] = []
    for err in exc.errors():
        field = str(err["loc"][0]) if err["loc"] else ""
        reason = model.ERROR_HINTS.get(field, f"{field or 'body'}: {err['msg']}")
        if reason not in reasons:
            reasons.append(reason)
    return "; ".join(reasons)


def parse_request[M: _Request](model: type[M], data: Any) -> M:  # noqa: ANN401
    """Validate raw request data into `model`.

    Raises:
        ValidationError: Payload is not an object or a field is missing/invalid
    """
    if not isinstance(data, dict):
        msg = "request body must be a JSON object"
        raise ValidationError(msg)

    try:
        return model.model_validate(data)
    except PydanticValidationError as e:
        raise ValidationError(_reason(model, e)) from e
