import asyncio
import json

import pytest
from fakes import FakeActuator, FakeClock, FakeNotifier, sync_runner
from fastapi.testclient import TestClient

from blinklink.app import create_app, sse_events, sse_frame
from blinklink.service import BlinkLinkService

DEVICE = "esp32-01"


def make_client(actuator=None, notifier=None):
    service = BlinkLinkService(
        device_id=DEVICE,
        notifier=notifier or FakeNotifier(),
        actuator=actuator or FakeActuator(),
        clock=FakeClock(1_000),
        runner=sync_runner,
    )
    return TestClient(create_app(service)), service


def test_healthz():
    client, _ = make_client()
    res = client.get("/healthz")
    assert res.status_code == 200
    assert res.json()["ok"] is True


def test_heartbeat_and_devices():
    client, _ = make_client()

    res = client.post("/api/heartbeat", json={"deviceId": DEVICE, "rssi": -55, "battery": 88, "ts": 900})
    assert res.status_code == 200
    body = res.json()
    assert body["success"] is True
    assert body["device"]["status"] == "online"
    assert body["device"]["lastSeen"] == 900

    devices = client.get("/api/devices").json()
    assert [d["deviceId"] for d in devices] == [DEVICE]


def test_heartbeat_keeps_integer_rssi_and_parses_iso_ts():
    client, _ = make_client()

    body = client.post(
        "/api/heartbeat", json={"deviceId": DEVICE, "rssi": -55, "ts": "2024-01-01T00:00:00Z"}
    ).json()
    assert body["device"]["rssi"] == -55
    assert isinstance(body["device"]["rssi"], int)
    assert body["device"]["lastSeen"] == 1_704_067_200_000


def test_heartbeat_with_junk_telemetry_still_counts():
    client, _ = make_client()

    res = client.post("/api/heartbeat", json={"deviceId": DEVICE, "ts": "soon", "battery": "full"})
    assert res.status_code == 200
    assert res.json()["device"]["lastSeen"] == 1_000
    assert res.json()["device"]["battery"] is None


def test_markup_like_device_id_is_accepted():
    client, _ = make_client()
    res = client.post("/api/heartbeat", json={"deviceId": "dev[/]"})
    assert res.status_code == 200
    assert res.json()["device"]["deviceId"] == "dev[/]"


@pytest.mark.parametrize(
    ("path", "body", "reason"),
    [
        ("/api/heartbeat", {}, "deviceId required"),
        ("/api/blink", {"count": 2}, "deviceId required"),
        ("/api/blink-count", {"deviceId": DEVICE}, "Invalid blinkCount: must be integer between 1-10"),
        ("/api/blink-count", {"deviceId": DEVICE, "blinkCount": 0}, "Invalid blinkCount: must be integer between 1-10"),
        ("/api/blink-count", {"deviceId": DEVICE, "blinkCount": 3.5}, "Invalid blinkCount: must be integer between 1-10"),
        ("/api/light-control", {"deviceId": DEVICE, "light": "light9", "command": "ON"}, 'light must be "light1" or "light2"'),
    ],
)
def test_validation_errors_are_400(path, body, reason):
    client, _ = make_client()
    res = client.post(path, json=body)
    assert res.status_code == 400
    assert res.json() == {"error": reason}


def test_malformed_json_is_400():
    client, _ = make_client()
    res = client.post("/api/heartbeat", content=b"{not json", headers={"Content-Type": "application/json"})
    assert res.status_code == 400
    assert "error" in res.json()


def test_blink_defaults_count():
    client, service = make_client()
    res = client.post("/api/blink", json={"deviceId": DEVICE})
    assert res.json()["event"]["count"] == 1
    assert service.router.active is None


def test_blink_tolerates_bad_count_and_float_timestamp():
    client, _ = make_client()

    res = client.post("/api/blink", json={"deviceId": DEVICE, "count": "two", "timestamp": 1712.5})
    assert res.status_code == 200
    assert res.json()["event"]["count"] == 1
    assert res.json()["event"]["timestamp"] == 1712.5

    res = client.post("/api/blink-count", json={"deviceId": DEVICE, "blinkCount": 2, "timestamp": 1712.5})
    assert res.status_code == 200
    assert res.json()["data"]["timestamp"] == 1712.5


def test_blink_count_reaches_active_context():
    client, _ = make_client()
    client.post("/api/context/menu")

    res = client.post("/api/blink-count", json={"deviceId": DEVICE, "blinkCount": 2})
    assert res.status_code == 200
    assert res.json()["data"]["blinkCount"] == 2

    ctx = client.get("/api/context").json()
    assert ctx["context"] == "menu"
    assert ctx["state"]["activeIndex"] == 1


def test_blink_count_from_other_device_is_not_interpreted():
    client, _ = make_client()
    client.post("/api/context/menu")
    client.post("/api/blink-count", json={"deviceId": "esp32-99", "blinkCount": 2})
    assert client.get("/api/context").json()["state"]["activeIndex"] == 0


def test_emergency_via_blink_count():
    notifier = FakeNotifier()
    client, service = make_client(notifier=notifier)
    client.post("/api/blink-count", json={"deviceId": DEVICE, "blinkCount": 5})
    client.post("/api/blink-count", json={"deviceId": DEVICE, "blinkCount": 5})
    assert notifier.emergencies == 1
    assert service.emergency.fired == 1


def test_light_control_and_status():
    actuator = FakeActuator()
    client, _ = make_client(actuator=actuator)

    res = client.post("/api/light-control", json={"deviceId": DEVICE, "light": "light1", "command": "on"})
    assert res.status_code == 200
    assert res.json()["command"] == "ON"
    assert actuator.sent == [("light1", "ON")]
    assert client.get("/api/light-status").json() == {"light1": "ON", "light2": "OFF"}


def test_light_control_publish_failure_is_500():
    client, _ = make_client(actuator=FakeActuator(fail=True))
    res = client.post("/api/light-control", json={"deviceId": DEVICE, "light": "light2", "command": "OFF"})
    assert res.status_code == 500
    assert res.json() == {"error": "broker unreachable"}


def test_context_lifecycle():
    client, _ = make_client()
    assert client.get("/api/context").json() is None

    assert client.post("/api/context/morse").json()["context"] == "morse"
    assert client.post("/api/context/bogus").status_code == 400

    # Menu pointer input while morse owns the stream
    assert client.post("/api/context/menu/select/1").status_code == 400

    assert client.delete("/api/context/menu").json()["released"] is False
    assert client.delete("/api/context/morse").json()["released"] is True
    assert client.get("/api/context").json() is None


def test_menu_pointer_selection_navigates():
    client, service = make_client()
    client.post("/api/context/menu")

    client.post("/api/context/menu/select/4")
    assert service.router.active.NAME == "phrases"
    assert service.context_state()["state"]["mode"] == "perspective"

    assert client.post("/api/context/phrases/select/2").json()["state"]["perspective"] == "My"


def test_menu_need_is_reported():
    notifier = FakeNotifier()
    client, _ = make_client(notifier=notifier)
    client.post("/api/context/menu")
    client.post("/api/context/menu/select/2")
    assert notifier.needs == ["Toilet"]


def test_morse_press_and_game_hit():
    client, _ = make_client()
    client.post("/api/context/morse")
    res = client.post("/api/context/morse/press", json={"durationMs": 400})
    assert res.json()["state"]["buffer"] == "-"
    assert client.post("/api/context/morse/press", json={"durationMs": -1}).status_code == 400

    client.post("/api/context/game")
    state = client.post("/api/context/game/hit").json()["state"]
    assert state["attempts"] == 1
    assert state["feedback"] == "miss"


def test_trigger_webhook_override():
    notifier = FakeNotifier()
    client, _ = make_client(notifier=notifier)

    res = client.post("/api/trigger-webhook", json={"msg": "hi", "webhookUrl": "http://other.local"})
    assert res.status_code == 200
    assert res.json()["data"] == {"received": True}
    assert notifier.posted == [({"msg": "hi"}, "http://other.local")]


def test_trigger_webhook_failure_is_500():
    client, _ = make_client(notifier=FakeNotifier(fail=True))
    assert client.post("/api/trigger-webhook", json={"msg": "hi"}).status_code == 500


def test_websocket_replays_snapshot_on_connect_and_hello():
    client, _ = make_client()
    client.post("/api/heartbeat", json={"deviceId": DEVICE})

    with client.websocket_connect("/ws") as ws:
        first = ws.receive_json()
        assert first["event"] == "status"
        assert first["data"]["deviceId"] == DEVICE
        assert ws.receive_json()["event"] == "lightStatus"

        ws.send_json({"type": "hello"})
        assert ws.receive_json()["event"] == "status"
        assert ws.receive_json()["data"] == {"light1": "OFF", "light2": "OFF"}


def test_sse_frame_format():
    assert sse_frame("status", {"deviceId": "a"}) == 'event: status\ndata: {"deviceId": "a"}\n\n'


def test_sse_stream_replays_filters_and_keeps_alive():
    _, service = make_client()
    service.heartbeat({"deviceId": "a"})
    idle = service.bus.observer_count

    async def consume():
        stream = sse_events(service.bus, keepalive_s=0.05)
        try:
            replayed = await anext(stream)
            connected = service.bus.observer_count

            service.bus.publish("blink", {"deviceId": "a", "type": "blink", "count": 1, "timestamp": 0})
            service.bus.publish("status", {"deviceId": "a", "status": "offline", "lastSeen": 0})
            live = await anext(stream)
            keepalive = await anext(stream)
        finally:
            await stream.aclose()
        return replayed, connected, live, keepalive

    replayed, connected, live, keepalive = asyncio.run(consume())

    assert replayed.startswith("event: status\n")
    data = json.loads(replayed.split("data: ", 1)[1])
    assert data["deviceId"] == "a"
    assert data["transport"] == "sse"

    # The blink frame never reaches a status-only stream
    assert live.startswith("event: status\n")
    assert json.loads(live.split("data: ", 1)[1])["status"] == "offline"

    assert keepalive == ": keepalive\n\n"
    assert connected == idle + 1
    assert service.bus.observer_count == idle
