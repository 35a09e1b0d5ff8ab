from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Callable
    from logging import Logger


class PeriodicTask:
    """Run `fn` every `interval` seconds on a daemon thread until stopped.

    A failing call is logged and the task keeps running.
    """

    name: str
    interval: float

    _log: Logger

    def __init__(self, name: str, interval: float, fn: Callable[[], object]) -> None:
        self.name = name
        self.interval = interval
        self._fn = fn
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None
        self._log = logging.getLogger("PeriodicTask")

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.running:
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run, name=self.name, daemon=True)
        self._thread.start()
        self._log.debug("Started [bright_green]%s[/] (every %.1fs)", self.name, self.interval)

    def stop(self, timeout: float | None = None) -> None:
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout if timeout is not None else self.interval + 1)
            self._thread = None
        self._log.debug("Stopped [bright_green]%s[/]", self.name)

    def _run(self) -> None:
        while not self._stop_event.wait(self.interval):
            try:
                self._fn()
            except Exception:
                self._log.exception("Periodic task %s failed", self.name)
