"""Hierarchical phrase builder.

Three levels, walked with blinks:

    perspective ("I" / "We" / "My")
      -> base phrase ("hungry", "watch tv", ...)
        -> suggestion ("order food", ...)  => spoken utterance

    2 blinks -> next option in the current level
    3 blinks -> commit option, descend (or speak at the last level)
    5 blinks -> back up one level (this context owns count 5, so it is not
                an emergency here)
"""

from __future__ import annotations

import re
from typing import Any, Final, Literal, NamedTuple

from blinklink.errors import ValidationError
from blinklink.gestures import EMERGENCY_COUNT, Gesture, classify

from .base import Interpreter, Outlet

type Mode = Literal["perspective", "base", "suggestion"]

PERSPECTIVES: Final = ("I", "We", "My")
BASE_PHRASES: Final = ("sleeping", "watch tv", "hungry", "help", "eat")

ACTIVITY_MAP: Final[dict[str, tuple[str, ...]]] = {
    "sleep": ("go to sleep", "take a nap", "set a sleep timer", "talk about sleep schedule"),
    "sleeping": ("go to sleep", "nap for 30 minutes", "adjust sleeping schedule", "sleep well wishes"),
    "watch tv": ("watch TV", "change channel", "start streaming", "recommend a show"),
    "watch": ("watch TV", "watch a movie", "turn on the show", "choose what to watch"),
    "eat": ("have dinner", "order food", "prepare a snack", "set mealtime reminder"),
    "hungry": ("grab something to eat", "order food", "prepare a snack", "drink water"),
    "help": ("call for help", "need assistance", "send emergency alert"),
}

MAX_SUGGESTIONS: Final = 8
MAX_HISTORY: Final = 20

BACK_COUNT: Final = EMERGENCY_COUNT

_MY_RE: Final = re.compile(r"^my\b", re.IGNORECASE)
_I_VERB_RE: Final = re.compile(r"^(go to |take |set |watch |order |prepare |call |need |send )", re.IGNORECASE)
_LETS_RE: Final = re.compile(r"^(watch|prepare|order|start|choose|set)", re.IGNORECASE)


def compose(perspective: str, phrase: str) -> str:
    """Build the spoken sentence for `phrase` from `perspective`."""
    p = phrase.strip()
    if perspective == "My":
        return p if _MY_RE.match(p) else f"My {p}"
    if perspective == "I":
        return f"I {p}" if _I_VERB_RE.match(p) else f"I want to {p}"
    return f"Let's {p}" if _LETS_RE.match(p) else f"We will {p}"


def suggestions_for(base: str) -> list[str]:
    """Deterministic suggestion list for a base phrase (deduplicated, max 8)."""
    key = base.strip().lower()
    found: list[str] = [*ACTIVITY_MAP.get(key, ())]

    tokens = key.split()
    if tokens:
        found.extend(ACTIVITY_MAP.get(tokens[0], ()))

    found.extend((base, f"think about {base}", f"set reminder for {base}"))
    return list(dict.fromkeys(found))[:MAX_SUGGESTIONS]


class Utterance(NamedTuple):
    text: str
    ts: int  # ms


class PhraseBuilder(Interpreter):
    NAME = "phrases"
    CLAIMED_COUNTS = frozenset({BACK_COUNT})

    mode: Mode
    selection_index: int
    perspective: str
    base_phrase: str | None
    suggestions: list[str]
    history: list[Utterance]  # Most recent first

    def __init__(self, out: Outlet) -> None:
        super().__init__(out)
        self.mode = "perspective"
        self.selection_index = 0
        self.perspective = PERSPECTIVES[0]
        self.base_phrase = None
        self.suggestions = []
        self.history = []

    @property
    def options(self) -> tuple[str, ...]:
        match self.mode:
            case "perspective":
                return PERSPECTIVES
            case "base":
                return BASE_PHRASES
            case "suggestion":
                return tuple(self.suggestions)

    @property
    def highlighted(self) -> str | None:
        opts = self.options
        return opts[self.selection_index] if opts else None

    def handle(self, count: int, now: int) -> None:
        if count == BACK_COUNT:
            self.back()
            return

        match classify(count):
            case Gesture.ADVANCE:
                self.advance()
            case Gesture.SELECT:
                self.select(now)
            case gesture:
                self._log.debug("Ignoring %d blinks (%s)", count, gesture.value)

    def advance(self) -> None:
        opts = self.options
        if not opts:
            return
        self.selection_index = (self.selection_index + 1) % len(opts)
        self._log.debug("%s -> %s", self.mode, self.highlighted)
        self.publish_state()

    def select(self, now: int) -> None:
        match self.mode:
            case "perspective":
                self.perspective = PERSPECTIVES[self.selection_index]
                self._log.info("Perspective [bright_green]%s[/]", self.perspective)
                self._descend("base")
            case "base":
                self.base_phrase = BASE_PHRASES[self.selection_index]
                self.suggestions = suggestions_for(self.base_phrase)
                self._log.info("Base phrase [bright_green]%s[/]", self.base_phrase)
                self._descend("suggestion")
            case "suggestion":
                if not self.suggestions:
                    return
                self._speak(compose(self.perspective, self.suggestions[self.selection_index]), now)
                self.base_phrase = None
                self.suggestions = []
                self._descend("perspective")

    def choose(self, index: int, now: int) -> None:
        """Pointer selection of option `index` in the current level."""
        if not 0 <= index < len(self.options):
            msg = f"option index must be between 0-{len(self.options) - 1}"
            raise ValidationError(msg)
        self.selection_index = index
        self.select(now)

    def back(self) -> None:
        match self.mode:
            case "suggestion":
                self.base_phrase = None
                self.suggestions = []
                self._descend("base")
            case "base":
                self._descend("perspective")
            case "perspective":
                self._log.debug("Already at top level")

    def state(self) -> dict[str, Any]:
        return {
            "mode": self.mode,
            "selectionIndex": self.selection_index,
            "options": list(self.options),
            "perspective": self.perspective,
            "basePhrase": self.base_phrase,
            "preview": [compose(self.perspective, s) for s in self.suggestions],
            "history": [u._asdict() for u in self.history],
        }

    def _descend(self, mode: Mode) -> None:
        self.mode = mode
        self.selection_index = 0
        self.publish_state()

    def _speak(self, text: str, now: int) -> None:
        self._log.info("Speaking: [bright_green]%s[/]", text)
        self._out.announce(text)
        self.history.insert(0, Utterance(text, now))
        del self.history[MAX_HISTORY:]
