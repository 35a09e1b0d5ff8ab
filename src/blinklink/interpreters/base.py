from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, ClassVar, Protocol

if TYPE_CHECKING:
    from logging import Logger

    from blinklink.types import ContextName


class Outlet(Protocol):
    """Where an interpreter sends its user-facing output."""

    def announce(self, text: str) -> None:
        """Speak `text` to the user."""
        ...

    def emit(self, topic: str, payload: dict[str, Any]) -> None: ...


class Interpreter(ABC):
    """Stateful consumer of the blink stream for one UI context.

    Subclasses list in `CLAIMED_COUNTS` the raw counts they give a local
    meaning that would otherwise be handled globally (e.g. 5 = back instead
    of emergency).
    """

    NAME: ClassVar[ContextName]
    CLAIMED_COUNTS: ClassVar[frozenset[int]] = frozenset()

    _log: Logger

    def __init__(self, out: Outlet) -> None:
        self._out = out
        self._log = logging.getLogger(type(self).__name__)

    def claims(self, count: int) -> bool:
        return count in self.CLAIMED_COUNTS

    @abstractmethod
    def handle(self, count: int, now: int) -> None:
        """Consume one validated blink count received at `now` (ms)."""

    def tick(self, now: int) -> None:
        """Periodic time check (200ms). Default: nothing time based."""
        _ = now

    @abstractmethod
    def state(self) -> dict[str, Any]:
        """JSON-ready view of the interpreter state."""

    def publish_state(self) -> None:
        self._out.emit("interpreter", {"context": self.NAME, "state": self.state()})
