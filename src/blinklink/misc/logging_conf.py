from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING, ClassVar, Final, Literal, cast, override

from rich.markup import escape

from .utils import cerr, cout

if TYPE_CHECKING:
    from collections.abc import Mapping

    type LogLvl = Literal[10, 20, 30, 40, 50]


LOG_ABBREV_2_LVL: Final[dict[str, LogLvl]] = {
    "DBG": logging.DEBUG,
    "INF": logging.INFO,
    "WRN": logging.WARNING,
    "ERR": logging.ERROR,
    "CRT": logging.CRITICAL,
}


LOG_LVL_2_COLOR: Final = {
    logging.DEBUG: "green",
    logging.INFO: "cyan",
    logging.WARNING: "yellow",
    logging.ERROR: "red",
    logging.CRITICAL: "bold red",
}

# Chatty third-party loggers kept at WARNING unless running at DEBUG
_NOISY_LOGGERS: Final = ("uvicorn.access", "urllib3")

_EXC_FORMATTER: Final = logging.Formatter()


class _Escaped:
    """Log argument rendered with Rich markup escaped (device IDs, payloads)."""

    __slots__ = ("_val",)

    def __init__(self, val: object) -> None:
        self._val = val

    @override
    def __str__(self) -> str:
        return escape(str(self._val))

    @override
    def __repr__(self) -> str:
        return escape(repr(self._val))


type _LogArgs = tuple[object, ...] | Mapping[str, object] | None


def _escape_args(args: _LogArgs) -> _LogArgs:
    if not isinstance(args, tuple):
        return args
    # Numbers pass through untouched so %d / %.1f still format
    return tuple(a if isinstance(a, int | float) else _Escaped(a) for a in args)


class _RichStyleHandler(logging.Handler):
    """Logging handler with Rich markup support and custom format.

    The format string is trusted markup; interpolated arguments and
    tracebacks are escaped, so client-supplied text prints literally.
    """

    LVL_2_ABBREV: ClassVar = {v: k for k, v in LOG_ABBREV_2_LVL.items()}

    @override
    def __init__(self) -> None:
        super().__init__()
        self._stdout = cout
        self._stderr = cerr

    @override
    def emit(self, record: logging.LogRecord) -> None:
        try:
            fmted = _RichStyleHandler._fmt_msg(self._render(record), cast("LogLvl", record.levelno))
            if fmted is None:
                self.handleError(record)
                return

            cons = self._stderr if record.levelno >= logging.WARNING else self._stdout
            cons.print(fmted)
        except Exception:
            # Never raise into the code that logged
            self.handleError(record)

    def _render(self, record: logging.LogRecord) -> str:
        safe = logging.makeLogRecord(
            {**record.__dict__, "args": _escape_args(record.args), "exc_info": None, "exc_text": None},
        )
        msg = self.format(safe)
        if record.exc_info:
            msg = f"{msg}\n{escape(_EXC_FORMATTER.formatException(record.exc_info))}"
        return msg

    @classmethod
    def _fmt_msg(cls, msg: str, lvlno: LogLvl) -> str | None:
        try:
            color = LOG_LVL_2_COLOR[lvlno]
            lvl_abbrev = _RichStyleHandler.LVL_2_ABBREV[lvlno]
            time_str = time.strftime("%X")
            msg = f"[{color}]{msg}[/]" if lvlno >= logging.WARNING else msg
        except KeyError:
            return None

        return f"[dim][{color}][{lvl_abbrev}][/] [white]({time_str})[/] ::[/] {msg}"


def init_logging(lvl: LogLvl) -> None:
    """Initialize logging.

    Args:
        lvl: Logging level
    """
    logging.basicConfig(
        level=lvl,
        format="%(message)s",
        handlers=[_RichStyleHandler()],
    )

    if lvl > logging.DEBUG:
        for name in _NOISY_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)
