from __future__ import annotations

from argparse import ArgumentParser
from typing import TYPE_CHECKING, NamedTuple, cast

from rich_argparse import RichHelpFormatter

from .logging_conf import LOG_ABBREV_2_LVL, LOG_LVL_2_COLOR

if TYPE_CHECKING:
    from .logging_conf import LogLvl


def _mk_parser() -> ArgumentParser:
    RichHelpFormatter.usage_markup = True
    RichHelpFormatter.styles.update(
        {
            "argparse.args": "cyan",
            "argparse.groups": "green bold",
            "argparse.metavar": "dim cyan",
            "argparse.usage": "dim cyan",
            "argparse.prog": "cyan bold",
        },
    )

    parser = ArgumentParser(
        description="Blink interpretation & device presence server",
        formatter_class=RichHelpFormatter,
        usage="%(prog)s [cyan]\\[options][/]",
    )

    arg = parser.add_argument

    arg("--host", default="0.0.0.0", help="bind address (default: [yellow]0.0.0.0[/])", metavar="H")  # noqa: S104
    arg(
        "-p",
        "--port",
        type=int,
        default=None,
        help="HTTP/WebSocket port (default: [cyan]APP_PORT[/] or [yellow]8787[/])",
        metavar="PORT",
    )
    arg(
        "--no-mqtt",
        action="store_true",
        help="run without the light actuator bridge",
        dest="no_mqtt",
    )

    log_lvl_choices = ", ".join(
        f"[{clr}]{abbr}[/]" for abbr, clr in zip(LOG_ABBREV_2_LVL, LOG_LVL_2_COLOR.values(), strict=True)
    )

    arg(
        "-l",
        "--log-level",
        type=str,
        default="INF",
        help=f"base logging level (default: [yellow]INF[/])\t[{log_lvl_choices}]",
        choices=LOG_ABBREV_2_LVL,
        dest="log_level",
        metavar="L",
    )
    return parser


class _Args(NamedTuple):
    host: str
    port: int | None
    no_mqtt: bool
    log_level: LogLvl


def get_cli_args(argv: list[str] | None = None) -> _Args:
    """Create & return parsed arguments."""

    parser = _mk_parser()
    args = parser.parse_args(argv)

    return _Args(
        host=args.host,
        port=args.port,
        no_mqtt=args.no_mqtt,
        log_level=LOG_ABBREV_2_LVL[cast("str", args.log_level)],
    )
