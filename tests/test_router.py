from fakes import DeferredRunner, FakeClock, RecordingOutlet, sync_runner

from blinklink.emergency import COOLDOWN_MS, EMERGENCY_ANNOUNCEMENT, EmergencyGuard
from blinklink.interpreters import MorseDecoder, PhraseBuilder
from blinklink.notify import send_in_background
from blinklink.router import BlinkRouter


def make_router(runner=sync_runner):
    out, clock = RecordingOutlet(), FakeClock()
    sent = []
    guard = EmergencyGuard(out, sender=lambda: sent.append(clock.now), runner=runner)
    return BlinkRouter(guard, clock=clock), guard, out, clock, sent


def test_emergency_without_active_context():
    router, guard, out, _, sent = make_router()

    assert router.dispatch(5) == "emergency"
    assert guard.fired == 1
    assert sent == [0]
    assert out.spoken == [EMERGENCY_ANNOUNCEMENT]
    assert out.of("emergency") == [
        {"state": "activated", "timestamp": 0},
        {"state": "activated", "delivered": True},
    ]


def test_emergency_cooldown():
    router, guard, _, clock, _ = make_router()
    router.dispatch(5)

    clock.advance(2_000)
    assert router.dispatch(5) is None
    assert guard.fired == 1

    clock.advance(COOLDOWN_MS - 2_000 + 1)
    assert router.dispatch(5) == "emergency"
    assert guard.fired == 2


def test_trigger_during_in_flight_send_is_dropped():
    runner = DeferredRunner()
    router, guard, out, clock, _ = make_router(runner)
    router.dispatch(5)
    assert guard.in_flight

    # Cooldown over but the first page is still being sent
    clock.advance(COOLDOWN_MS + 1_000)
    assert router.dispatch(5) is None
    assert len(runner.pending) == 1

    runner.finish(delivered=False)
    assert not guard.in_flight
    assert out.of("emergency")[-1] == {"state": "activated", "delivered": False}

    assert router.dispatch(5) == "emergency"
    assert guard.fired == 2


def test_unexpected_sender_error_clears_in_flight():
    threads = []

    def runner(name, fn, on_done):
        threads.append(send_in_background(name, fn, on_done))

    def sender():
        raise TypeError("payload not serialisable")

    out, clock = RecordingOutlet(), FakeClock()
    guard = EmergencyGuard(out, sender=sender, runner=runner)
    router = BlinkRouter(guard, clock=clock)

    assert router.dispatch(5) == "emergency"
    for thread in threads:
        thread.join(1)

    assert not guard.in_flight
    assert out.of("emergency")[-1] == {"state": "activated", "delivered": False}

    clock.advance(COOLDOWN_MS + 1)
    assert router.dispatch(5) == "emergency"
    assert guard.fired == 2


def test_active_context_gets_gestures():
    router, _, _, _, _ = make_router()
    assert router.dispatch(2) is None

    morse = MorseDecoder(RecordingOutlet())
    router.register(morse)
    assert router.dispatch(2) == "morse"
    assert morse.pattern == "."


def test_five_is_back_in_phrase_builder():
    router, guard, _, _, _ = make_router()
    phrases = PhraseBuilder(RecordingOutlet())
    router.register(phrases)
    router.dispatch(3)
    assert phrases.mode == "base"

    assert router.dispatch(5) == "phrases"
    assert phrases.mode == "perspective"
    assert guard.fired == 0


def test_five_is_emergency_in_other_contexts():
    router, guard, _, _, _ = make_router()
    morse = MorseDecoder(RecordingOutlet())
    router.register(morse)

    assert router.dispatch(5) == "emergency"
    assert guard.fired == 1
    assert morse.buffer == []


def test_register_is_last_writer_wins():
    router, _, _, _, _ = make_router()
    morse = MorseDecoder(RecordingOutlet())
    phrases = PhraseBuilder(RecordingOutlet())

    assert router.register(morse) is None
    assert router.register(phrases) is morse
    assert router.dispatch(2) == "phrases"
    assert morse.buffer == []

    # A stale unregister from the displaced context does not free the slot
    assert router.unregister("morse") is False
    assert router.active is phrases
    assert router.unregister("phrases") is True
    assert router.active is None


def test_tick_reaches_active_context():
    router, _, _, clock, _ = make_router()
    morse = MorseDecoder(RecordingOutlet())
    router.register(morse)
    router.dispatch(2)

    clock.advance(7_000)
    router.tick()
    assert morse.output == "E"
