from typing import Final

__prog__: Final = "blinklink"
__version__: Final = "0.1.0"
