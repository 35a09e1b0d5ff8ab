"""Target-blink training game.

A target sweeps across the track and wraps around; a blink (or keyboard hit)
while it is inside the hit zone scores a point.
"""

from __future__ import annotations

from typing import Any, Final, Literal

from blinklink.gestures import Gesture, classify

from .base import Interpreter, Outlet

TRACK_WIDTH: Final = 600
HIT_ZONE: Final = (250, 350)
SPEED_PER_S: Final = 60  # Track units per second

type Feedback = Literal["ready", "hit", "miss"]


class BlinkGame(Interpreter):
    NAME = "game"

    score: int
    attempts: int
    feedback: Feedback

    def __init__(self, out: Outlet, started_at: int) -> None:
        super().__init__(out)
        self.started_at = started_at
        self.score = 0
        self.attempts = 0
        self.feedback = "ready"
        self._last_now = started_at

    def target_x(self, now: int) -> float:
        elapsed_s = max(now - self.started_at, 0) / 1000
        return (elapsed_s * SPEED_PER_S) % TRACK_WIDTH

    def handle(self, count: int, now: int) -> None:
        if classify(count) in (Gesture.ADVANCE, Gesture.SELECT):
            self.attempt(now)
        else:
            self._log.debug("Ignoring %d blinks", count)

    def attempt(self, now: int) -> bool:
        """Check the target position at `now`. Returns True on a hit."""
        self._last_now = now
        x = self.target_x(now)
        hit = HIT_ZONE[0] <= x <= HIT_ZONE[1]
        self.attempts += 1
        if hit:
            self.score += 1
            self.feedback = "hit"
            self._log.info("Hit at %.0f, score [bright_green]%d[/]", x, self.score)
        else:
            self.feedback = "miss"
            self._log.info("Miss at %.0f", x)
        self.publish_state()
        return hit

    def state(self) -> dict[str, Any]:
        return {
            "score": self.score,
            "attempts": self.attempts,
            "feedback": self.feedback,
            "targetX": round(self.target_x(self._last_now), 1),
            "hitZone": list(HIT_ZONE),
            "trackWidth": TRACK_WIDTH,
        }
