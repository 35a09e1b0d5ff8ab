from __future__ import annotations

from typing import Any, Literal, NotRequired, TypedDict

type DevStatus = Literal["online", "offline"]
type Transport = Literal["ws", "sse"]
type LightName = Literal["light1", "light2"]
type LightCommand = Literal["ON", "OFF"]
type ContextName = Literal["menu", "phrases", "morse", "game"]

# (topic, payload) pair as pushed to observers
type Frame = tuple[str, dict[str, Any]]


class StatusPayload(TypedDict):
    deviceId: str
    status: DevStatus
    lastSeen: int
    transport: Transport


class TelemetryPayload(TypedDict):
    deviceId: str
    rssi: NotRequired[int | float | None]
    battery: NotRequired[int | float | None]
    timestamp: int


class BlinkPayload(TypedDict):
    deviceId: str
    type: Literal["blink"]
    count: int
    timestamp: str | int | float


class BlinkCountPayload(TypedDict):
    deviceId: str
    blinkCount: int
    timestamp: str | int | float


class LightStatusPayload(TypedDict):
    light1: LightCommand
    light2: LightCommand
