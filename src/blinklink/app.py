"""FastAPI surface for the blink communication server.

Provides:
    - Ingestion endpoints (heartbeat, blink telemetry, gesture counts)
    - Light control and light state read-out
    - Interpreter context endpoints (register, pointer input, state)
    - Push channel over WebSocket (`/ws`) and an SSE fallback (`/sse`)

Handlers are plain `def` functions so FastAPI runs them in its threadpool;
the service lock is never taken on the event loop for longer than a bus
subscribe/replay.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import TYPE_CHECKING, Any, Final

from fastapi import Body, FastAPI, Request, WebSocket, WebSocketDisconnect
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse

from blinklink.bus import QueueObserver
from blinklink.errors import UpstreamDeliveryError, ValidationError
from blinklink.misc.utils import iso_now

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from blinklink.bus import FanOutBus
    from blinklink.service import BlinkLinkService

# SSE comment frame period (seconds)
SSE_KEEPALIVE_S: Final = 30.0

_log = logging.getLogger("BlinkLinkAPI")


def sse_frame(topic: str, payload: dict[str, Any]) -> str:
    """Format one server-sent event."""
    return f"event: {topic}\ndata: {json.dumps(payload)}\n\n"


async def sse_events(bus: FanOutBus, keepalive_s: float = SSE_KEEPALIVE_S) -> AsyncIterator[str]:
    """Status-only event stream: snapshot first, then live changes.

    Yields a `: keepalive` comment whenever `keepalive_s` passes without a
    frame. The subscription is released when the consumer closes the stream.
    """
    observer = QueueObserver(asyncio.get_running_loop())
    bus.subscribe(observer, topics={"status"})
    _log.info("[SSE] Client connected")
    try:
        while True:
            try:
                frame = await asyncio.wait_for(observer.queue.get(), timeout=keepalive_s)
            except TimeoutError:
                yield ": keepalive\n\n"
                continue

            if frame is None:
                break
            topic, payload = frame
            yield sse_frame(topic, {**payload, "transport": "sse"})
    finally:
        bus.unsubscribe(observer)
        _log.info("[SSE] Client disconnected")


def create_app(service: BlinkLinkService, cors_origins: list[str] | None = None) -> FastAPI:
    """Build the HTTP/WebSocket app around a running `service`."""

    app = FastAPI(title="blinklink")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins or [],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # === Error mapping ===

    @app.exception_handler(ValidationError)
    async def _on_validation_error(request: Request, exc: ValidationError) -> JSONResponse:
        _log.warning("[bright_yellow]400[/] %s %s: %s", request.method, request.url.path, exc.reason)
        return JSONResponse(status_code=400, content={"error": exc.reason})

    @app.exception_handler(RequestValidationError)
    async def _on_request_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
        reason = "; ".join(str(err.get("msg", err)) for err in exc.errors()) or "invalid request"
        _log.warning("[bright_yellow]400[/] %s %s: %s", request.method, request.url.path, reason)
        return JSONResponse(status_code=400, content={"error": reason})

    @app.exception_handler(UpstreamDeliveryError)
    async def _on_upstream_error(request: Request, exc: UpstreamDeliveryError) -> JSONResponse:
        _log.error("500 %s %s: %s", request.method, request.url.path, exc)
        return JSONResponse(status_code=500, content={"error": exc.reason})

    # === Health & read-outs ===

    @app.get("/healthz")
    def healthz() -> dict[str, Any]:
        return {"ok": True, "timestamp": iso_now()}

    @app.get("/api/devices")
    def get_devices() -> list[dict[str, Any]]:
        """Return all known devices (polled by the status page)."""
        return [dev.to_json() for dev in service.registry.all()]

    @app.get("/api/light-status")
    def get_light_status() -> dict[str, Any]:
        return dict(service.light_status())

    # === Ingestion ===

    @app.post("/api/heartbeat")
    def post_heartbeat(data: Any = Body(None)) -> dict[str, Any]:  # noqa: ANN401
        dev = service.heartbeat(data)
        return {"success": True, "device": dev.to_json()}

    @app.post("/api/blink")
    def post_blink(data: Any = Body(None)) -> dict[str, Any]:  # noqa: ANN401
        return {"success": True, "event": service.blink(data)}

    @app.post("/api/blink-count")
    def post_blink_count(data: Any = Body(None)) -> dict[str, Any]:  # noqa: ANN401
        return {"success": True, "data": service.blink_count(data)}

    @app.post("/api/light-control")
    def post_light_control(data: Any = Body(None)) -> dict[str, Any]:  # noqa: ANN401
        return {"success": True, **service.light_control(data)}

    @app.post("/api/trigger-webhook")
    def post_trigger_webhook(data: Any = Body(None)) -> dict[str, Any]:  # noqa: ANN401
        """Proxy an arbitrary JSON object to the workflow webhook."""
        if not isinstance(data, dict):
            msg = "request body must be a JSON object"
            raise ValidationError(msg)
        return {"success": True, "message": "webhook triggered", "data": service.trigger_webhook(data)}

    # === Interpreter contexts ===
    # Pointer routes are declared before the generic /{name} routes.

    @app.get("/api/context")
    def get_context() -> dict[str, Any] | None:
        return service.context_state()

    @app.post("/api/context/menu/select/{index}")
    def post_menu_select(index: int) -> dict[str, Any]:
        return {"context": "menu", "state": service.menu_select(index)}

    @app.post("/api/context/phrases/select/{index}")
    def post_phrases_select(index: int) -> dict[str, Any]:
        return {"context": "phrases", "state": service.phrases_select(index)}

    @app.post("/api/context/morse/press")
    def post_morse_press(data: Any = Body(None)) -> dict[str, Any]:  # noqa: ANN401
        return {"context": "morse", "state": service.morse_press(data)}

    @app.post("/api/context/game/hit")
    def post_game_hit() -> dict[str, Any]:
        return {"context": "game", "state": service.game_hit()}

    @app.post("/api/context/{name}")
    def post_context(name: str) -> dict[str, Any]:
        interp = service.open_context(name)
        return {"context": interp.NAME, "state": interp.state()}

    @app.delete("/api/context/{name}")
    def delete_context(name: str) -> dict[str, Any]:
        return {"context": name, "released": service.close_context(name)}

    # === Push channels ===

    @app.websocket("/ws")
    async def ws_push(websocket: WebSocket) -> None:
        """Push every bus frame as `{"event": topic, "data": payload}`.

        A `{"type": "hello"}` message from the client re-sends the snapshot.
        """
        await websocket.accept()
        observer = QueueObserver(asyncio.get_running_loop())
        service.bus.subscribe(observer)
        _log.info("[WS] Client connected (%d observers)", service.bus.observer_count)

        reader = asyncio.create_task(_read_client(websocket, observer))
        try:
            while (frame := await observer.queue.get()) is not None:
                topic, payload = frame
                await websocket.send_json({"event": topic, "data": payload})
        except (WebSocketDisconnect, RuntimeError):
            _log.debug("[WS] Send on closed socket")
        finally:
            reader.cancel()
            service.bus.unsubscribe(observer)
            _log.info("[WS] Client disconnected (%d dropped frames)", observer.dropped)

    async def _read_client(websocket: WebSocket, observer: QueueObserver) -> None:
        try:
            while True:
                raw = await websocket.receive_text()
                try:
                    msg = json.loads(raw)
                except ValueError:
                    _log.debug("[WS] Ignoring non-JSON message: %r", raw)
                    continue

                if isinstance(msg, dict) and msg.get("type") == "hello":
                    _log.debug("[WS] Client hello: %s", msg)
                    service.bus.replay(observer)
        except WebSocketDisconnect:
            _log.debug("[WS] Client closed the socket")
        finally:
            observer.close()

    @app.get("/sse")
    async def sse_push() -> StreamingResponse:
        """Status-only fallback stream with periodic keepalive comments."""

        return StreamingResponse(
            sse_events(service.bus),
            media_type="text/event-stream",
            headers={"Cache-Control": "no-cache", "Connection": "keep-alive"},
        )

    return app
