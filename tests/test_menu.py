import pytest
from fakes import RecordingOutlet

from blinklink.errors import ValidationError
from blinklink.interpreters import MenuNavigator
from blinklink.interpreters.menu import MENU_ITEMS, RESET_DELAY_MS


class FakeMenuActions:
    def __init__(self):
        self.light = "OFF"
        self.navigated = []
        self.needs = []

    def navigate(self, target):
        self.navigated.append(target)

    def toggle_light(self):
        self.light = "OFF" if self.light == "ON" else "ON"
        return self.light

    def light_state(self):
        return self.light

    def report_need(self, item):
        self.needs.append(item)


def make_menu():
    out, actions = RecordingOutlet(), FakeMenuActions()
    return MenuNavigator(out, actions), out, actions


def test_advance_wraps_around():
    menu, out, _ = make_menu()
    assert len(MENU_ITEMS) == 7

    for _ in range(6):
        menu.handle(2, 0)
    assert menu.active_index == 6

    menu.handle(2, 0)
    assert menu.active_index == 0
    assert out.spoken[0] == "Water"
    assert out.spoken[-1] == "Food"


def test_noise_counts_are_ignored():
    menu, out, _ = make_menu()
    for count in (1, 4, 6, 10):
        menu.handle(count, 0)
    assert menu.active_index == 0
    assert out.spoken == []


def test_select_need_then_reset_after_delay():
    menu, out, actions = make_menu()
    menu.handle(2, 0)
    menu.handle(3, 1_000)

    assert actions.needs == ["Water"]
    assert "Selected Water" in out.spoken
    assert menu.state()["resetPending"] is True

    menu.tick(1_000 + RESET_DELAY_MS - 1)
    assert menu.active_index == 1

    menu.tick(1_000 + RESET_DELAY_MS)
    assert menu.active_index == 0
    assert menu.state()["resetPending"] is False


def test_light_label_names_the_action():
    menu, out, actions = make_menu()
    light = MENU_ITEMS[6]
    assert menu.label(light) == "Light ON"

    menu.choose(6, 0)
    assert actions.light == "ON"
    assert out.spoken[-1] == "Light turned on"
    assert menu.label(light) == "Light OFF"


def test_navigate_items():
    menu, _, actions = make_menu()
    menu.choose(3, 0)
    menu.choose(4, 0)
    menu.choose(5, 0)
    assert actions.navigated == ["game", "phrases", "morse"]


def test_choose_out_of_range():
    menu, out, _ = make_menu()
    with pytest.raises(ValidationError):
        menu.choose(7, 0)
    with pytest.raises(ValidationError):
        menu.choose(-1, 0)
    assert out.emitted == []


def test_every_transition_publishes_state():
    menu, out, _ = make_menu()
    menu.handle(2, 0)
    assert out.of("interpreter")[-1]["context"] == "menu"
    assert out.of("interpreter")[-1]["state"]["activeIndex"] == 1
