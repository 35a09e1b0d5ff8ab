"""Process-wide fan-out bus.

Delivery is best-effort and fire-and-forget: `publish` pushes to whoever is
subscribed right now and never waits on a slow observer. A newly subscribed
observer is first replayed the current snapshot (device status, light state)
so it converges without waiting for the next event or rebroadcast tick.

Thread Safety:
    Subscribe, unsubscribe and publish run under one lock. The service passes
    in its own serialization lock so a snapshot replay cannot interleave with
    a concurrent state change.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from typing import TYPE_CHECKING, Any, ClassVar, Protocol

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable
    from logging import Logger

    from blinklink.types import Frame

    type ReplaySource = Callable[[], Iterable[Frame]]


class Observer(Protocol):
    def deliver(self, topic: str, payload: dict[str, Any]) -> None: ...


class _Subscription:
    __slots__ = ("observer", "topics")

    def __init__(self, observer: Observer, topics: frozenset[str] | None) -> None:
        self.observer = observer
        self.topics = topics

    def wants(self, topic: str) -> bool:
        return self.topics is None or topic in self.topics


class FanOutBus:
    """Broadcast primitive with replay-on-subscribe."""

    _log: Logger

    def __init__(self, lock: threading.RLock | None = None) -> None:
        self._lock = lock if lock is not None else threading.RLock()
        self._subs: list[_Subscription] = []
        self._replay_sources: list[ReplaySource] = []
        self._log = logging.getLogger("FanOutBus")

    @property
    def observer_count(self) -> int:
        with self._lock:
            return len(self._subs)

    def add_replay_source(self, source: ReplaySource) -> None:
        """Register a snapshot provider replayed to every new observer."""
        with self._lock:
            self._replay_sources.append(source)

    def subscribe(self, observer: Observer, *, topics: Iterable[str] | None = None) -> None:
        """Subscribe `observer`, replaying the current snapshot first.

        Args:
            observer: Receiver of (topic, payload) deliveries
            topics: Only deliver these topics (default: all)
        """
        sub = _Subscription(observer, frozenset(topics) if topics is not None else None)
        with self._lock:
            self._subs.append(sub)
            self._replay_to(sub)
            self._log.debug("Observer subscribed (%d total)", len(self._subs))

    def unsubscribe(self, observer: Observer) -> None:
        with self._lock:
            self._subs = [s for s in self._subs if s.observer is not observer]
            self._log.debug("Observer unsubscribed (%d total)", len(self._subs))

    def replay(self, observer: Observer) -> None:
        """Re-send the current snapshot to an already subscribed observer."""
        with self._lock:
            for sub in self._subs:
                if sub.observer is observer:
                    self._replay_to(sub)

    def publish(self, topic: str, payload: dict[str, Any]) -> None:
        """Deliver `payload` on `topic` to every current subscriber."""
        with self._lock:
            subs = [s for s in self._subs if s.wants(topic)]
            for sub in subs:
                self._deliver(sub, topic, payload)

    def _replay_to(self, sub: _Subscription) -> None:
        for source in self._replay_sources:
            for topic, payload in source():
                if sub.wants(topic):
                    self._deliver(sub, topic, payload)

    def _deliver(self, sub: _Subscription, topic: str, payload: dict[str, Any]) -> None:
        try:
            sub.observer.deliver(topic, payload)
        except Exception:
            self._log.exception("Observer failed on [bright_green]%s[/], dropping it", topic)
            self._subs = [s for s in self._subs if s is not sub]


class QueueObserver:
    """Observer feeding an asyncio queue owned by a WebSocket/SSE handler.

    `deliver` may be called from any thread. Frames that do not fit in the
    bounded queue are dropped; the client resynchronizes via replay.
    """

    MAX_QUEUED: ClassVar = 256

    _log: Logger

    def __init__(self, loop: asyncio.AbstractEventLoop, maxsize: int = MAX_QUEUED) -> None:
        self.queue: asyncio.Queue[Frame | None] = asyncio.Queue(maxsize=maxsize)
        self.dropped = 0
        self._loop = loop
        self._log = logging.getLogger("QueueObserver")

    def deliver(self, topic: str, payload: dict[str, Any]) -> None:
        self._schedule((topic, payload))

    def close(self) -> None:
        """Wake the consumer with a sentinel so it can stop."""
        self._schedule(None)

    def _schedule(self, frame: Frame | None) -> None:
        try:
            self._loop.call_soon_threadsafe(self._put, frame)
        except RuntimeError:
            # Event loop already closed: the client is gone
            self._log.debug("Dropping frame for closed loop")

    def _put(self, frame: Frame | None) -> None:
        try:
            self.queue.put_nowait(frame)
        except asyncio.QueueFull:
            self.dropped += 1
            self._log.debug("Queue full, dropped frame (%d total)", self.dropped)
