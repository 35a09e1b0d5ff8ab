from fakes import FakeClock, ListObserver

from blinklink.bus import FanOutBus
from blinklink.models import HeartbeatRequest
from blinklink.presence import HEARTBEAT_TIMEOUT_MS, PresenceTracker
from blinklink.state import DeviceRegistry


def make_presence(clock=None):
    clock = clock or FakeClock(1_000)
    bus = FanOutBus()
    tracker = PresenceTracker(DeviceRegistry(), bus, clock=clock)
    observer = ListObserver()
    bus.subscribe(observer)
    return tracker, bus, observer, clock


def beat(tracker, device_id="esp32-01", **kw):
    return tracker.ingest_heartbeat(HeartbeatRequest.model_validate({"deviceId": device_id, **kw}))


def test_first_heartbeat_goes_online_and_broadcasts():
    tracker, _, observer, _ = make_presence()

    dev = beat(tracker)
    assert dev.status == "online"
    assert dev.last_seen == 1_000
    assert observer.of("status") == [
        {"deviceId": "esp32-01", "status": "online", "lastSeen": 1_000, "transport": "ws"},
    ]
    # No rssi/battery, no telemetry
    assert observer.of("telemetry") == []


def test_telemetry_published_with_rssi_or_battery():
    tracker, _, observer, _ = make_presence()

    beat(tracker, rssi=-61, ts=500)
    assert observer.of("telemetry") == [{"deviceId": "esp32-01", "rssi": -61, "timestamp": 500}]


def test_sweep_uses_server_clock_and_strict_timeout():
    tracker, _, observer, clock = make_presence()
    # Device clock is far in the past; only the server clock decides liveness
    beat(tracker, ts=1)

    clock.advance(HEARTBEAT_TIMEOUT_MS)
    assert tracker.sweep() == []

    clock.advance(1)
    flipped = tracker.sweep()
    assert [d.device_id for d in flipped] == ["esp32-01"]
    assert observer.of("status")[-1]["status"] == "offline"
    assert observer.of("status")[-1]["lastSeen"] == 1

    # Already offline: no repeated transition
    clock.advance(10_000)
    assert tracker.sweep() == []
    assert len(observer.of("status")) == 2


def test_heartbeat_brings_offline_device_back():
    tracker, _, observer, clock = make_presence()
    beat(tracker)
    clock.advance(HEARTBEAT_TIMEOUT_MS + 1)
    tracker.sweep()

    dev = beat(tracker)
    assert dev.status == "online"
    assert [p["status"] for p in observer.of("status")] == ["online", "offline", "online"]


def test_new_observer_gets_snapshot_replay():
    tracker, bus, _, clock = make_presence()
    beat(tracker, "a")
    beat(tracker, "b")
    clock.advance(HEARTBEAT_TIMEOUT_MS + 1)
    beat(tracker, "b")
    tracker.sweep()

    late = ListObserver()
    bus.subscribe(late)
    assert {p["deviceId"]: p["status"] for p in late.of("status")} == {"a": "offline", "b": "online"}


def test_blink_activity_updates_last_seen_not_liveness():
    tracker, _, _, clock = make_presence()
    beat(tracker)

    clock.advance(HEARTBEAT_TIMEOUT_MS + 1)
    tracker.note_activity("esp32-01")
    tracker.note_activity("unknown-device")
    flipped = tracker.sweep()

    assert [d.status for d in flipped] == ["offline"]
    assert flipped[0].last_seen == clock.now
    assert tracker.registry.get("unknown-device") is None


def test_rebroadcast_sends_every_device():
    tracker, _, observer, _ = make_presence()
    beat(tracker, "a")
    beat(tracker, "b")
    observer.frames.clear()

    tracker.rebroadcast()
    assert sorted(p["deviceId"] for p in observer.of("status")) == ["a", "b"]
