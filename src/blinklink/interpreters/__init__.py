from typing import Final

from .base import Interpreter, Outlet
from .game import BlinkGame
from .menu import MenuActions, MenuNavigator
from .morse import MorseDecoder
from .phrases import PhraseBuilder

__all__: Final = [
    "BlinkGame",
    "Interpreter",
    "MenuActions",
    "MenuNavigator",
    "MorseDecoder",
    "Outlet",
    "PhraseBuilder",
]
