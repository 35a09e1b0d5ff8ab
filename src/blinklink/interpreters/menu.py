"""Menu navigator: cyclic selection over the fixed main-menu actions.

    2 blinks -> next item (announced)
    3 blinks -> run highlighted item, then jump back to the first item after
                a 3 second grace period
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Final, Literal, NamedTuple, Protocol

from blinklink.errors import ValidationError
from blinklink.gestures import Gesture, classify

from .base import Interpreter, Outlet

if TYPE_CHECKING:
    from blinklink.types import ContextName, LightCommand

RESET_DELAY_MS: Final = 3_000

type ItemKind = Literal["need", "navigate", "light"]


class MenuItem(NamedTuple):
    id: str
    label: str
    kind: ItemKind
    target: ContextName | None = None


MENU_ITEMS: Final[tuple[MenuItem, ...]] = (
    MenuItem("food", "Food", "need"),
    MenuItem("water", "Water", "need"),
    MenuItem("toilet", "Toilet", "need"),
    MenuItem("game", "Game", "navigate", "game"),
    MenuItem("training", "Ai Talk", "navigate", "phrases"),
    MenuItem("morse", "Talk Training", "navigate", "morse"),
    MenuItem("light", "Light", "light"),
)


class MenuActions(Protocol):
    def navigate(self, target: ContextName) -> None: ...

    def toggle_light(self) -> LightCommand: ...

    def light_state(self) -> LightCommand: ...

    def report_need(self, item: str) -> None: ...


class MenuNavigator(Interpreter):
    NAME = "menu"

    active_index: int
    reset_at: int | None

    def __init__(self, out: Outlet, actions: MenuActions) -> None:
        super().__init__(out)
        self._actions = actions
        self.active_index = 0
        self.reset_at = None

    @property
    def items(self) -> tuple[MenuItem, ...]:
        return MENU_ITEMS

    def label(self, item: MenuItem) -> str:
        if item.kind == "light":
            # Label names the action the item will perform
            return "Light OFF" if self._actions.light_state() == "ON" else "Light ON"
        return item.label

    def handle(self, count: int, now: int) -> None:
        match classify(count):
            case Gesture.ADVANCE:
                self.advance()
            case Gesture.SELECT:
                self.select(now)
            case gesture:
                self._log.debug("Ignoring %d blinks (%s)", count, gesture.value)

    def advance(self) -> None:
        self.active_index = (self.active_index + 1) % len(self.items)
        label = self.label(self.items[self.active_index])
        self._log.info("Menu -> [bright_green]%s[/] (%d)", label, self.active_index)
        self._out.announce(label)
        self.publish_state()

    def select(self, now: int) -> None:
        item = self.items[self.active_index]
        label = self.label(item)
        self._log.info("Selected [bright_green]%s[/]", label)
        self._out.announce(f"Selected {label}")
        self._execute(item, label)
        self.reset_at = now + RESET_DELAY_MS
        self.publish_state()

    def choose(self, index: int, now: int) -> None:
        """Pointer selection: jump straight to `index` and select it."""
        if not 0 <= index < len(self.items):
            msg = f"menu index must be between 0-{len(self.items) - 1}"
            raise ValidationError(msg)
        self.active_index = index
        self.select(now)

    def tick(self, now: int) -> None:
        if self.reset_at is not None and now >= self.reset_at:
            self.reset_at = None
            self.active_index = 0
            self.publish_state()

    def state(self) -> dict[str, Any]:
        return {
            "activeIndex": self.active_index,
            "items": [{"id": it.id, "label": self.label(it)} for it in self.items],
            "resetPending": self.reset_at is not None,
        }

    def _execute(self, item: MenuItem, label: str) -> None:
        match item.kind:
            case "light":
                new_state = self._actions.toggle_light()
                self._out.announce(f"Light {'turned on' if new_state == 'ON' else 'turned off'}")
            case "navigate":
                if item.target is not None:
                    self._actions.navigate(item.target)
            case "need":
                self._actions.report_need(label)
