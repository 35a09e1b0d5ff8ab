"""Morse decoder driven by blinks or press durations.

Symbols:
    2 blinks / press < 250ms  -> dot
    3 blinks / press >= 250ms -> dash

Boundaries are detected on the 200ms tick from idle time since the last
symbol: > 6s closes the letter, > 8s closes the word (one space per gap).
"""

from __future__ import annotations

from typing import Any, Final, Literal

from blinklink.gestures import Gesture, classify

from .base import Interpreter, Outlet

type Symbol = Literal[".", "-"]

DOT_MAX_PRESS_MS: Final = 250
LETTER_GAP_MS: Final = 6_000
WORD_GAP_MS: Final = 8_000
UNKNOWN_CHAR: Final = "?"

MORSE_TABLE: Final[dict[str, str]] = {
    ".-": "A", "-...": "B", "-.-.": "C", "-..": "D",
    ".": "E", "..-.": "F", "--.": "G", "....": "H",
    "..": "I", ".---": "J", "-.-": "K", ".-..": "L",
    "--": "M", "-.": "N", "---": "O", ".--.": "P",
    "--.-": "Q", ".-.": "R", "...": "S", "-": "T",
    "..-": "U", "...-": "V", ".--": "W", "-..-": "X",
    "-.--": "Y", "--..": "Z",
    "-----": "0", ".----": "1", "..---": "2", "...--": "3",
    "....-": "4", ".....": "5", "-....": "6", "--...": "7",
    "---..": "8", "----.": "9",
}  # fmt: skip


def decode_symbols(pattern: str) -> str:
    return MORSE_TABLE.get(pattern, UNKNOWN_CHAR)


class MorseDecoder(Interpreter):
    NAME = "morse"

    buffer: list[Symbol]
    output: str
    last_symbol_time: int | None

    def __init__(self, out: Outlet) -> None:
        super().__init__(out)
        self.buffer = []
        self.output = ""
        self.last_symbol_time = None
        self._word_closed = True

    @property
    def pattern(self) -> str:
        return "".join(self.buffer)

    def handle(self, count: int, now: int) -> None:
        match classify(count):
            case Gesture.ADVANCE:
                self.add_symbol(".", now)
            case Gesture.SELECT:
                self.add_symbol("-", now)
            case gesture:
                self._log.debug("Ignoring %d blinks (%s)", count, gesture.value)

    def press(self, duration_ms: int, now: int) -> Symbol:
        """Press-duration source: short press is a dot, long press a dash."""
        symbol: Symbol = "." if duration_ms < DOT_MAX_PRESS_MS else "-"
        self.add_symbol(symbol, now)
        return symbol

    def add_symbol(self, symbol: Symbol, now: int) -> None:
        self.buffer.append(symbol)
        self.last_symbol_time = now
        self._word_closed = False
        self._log.debug("Added symbol %s (%s)", symbol, self.pattern)
        self.publish_state()

    def tick(self, now: int) -> None:
        if self.last_symbol_time is None:
            return

        idle = now - self.last_symbol_time
        changed = False

        if self.buffer and idle > LETTER_GAP_MS:
            letter = decode_symbols(self.pattern)
            self._log.info("Decoded %s -> [bright_green]%s[/]", self.pattern, letter)
            self.output += letter
            self.buffer.clear()
            self._out.announce(letter)
            changed = True

        if idle > WORD_GAP_MS and not self._word_closed:
            self.output = self.output.rstrip() + " "
            self._word_closed = True
            changed = True

        if changed:
            self.publish_state()

    def state(self) -> dict[str, Any]:
        return {
            "buffer": self.pattern,
            "output": self.output,
            "text": self.output.strip(),
        }
