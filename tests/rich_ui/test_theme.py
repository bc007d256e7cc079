"""
Tests for color resolution and palette styles.
"""
import io

import allure
import pytest
from rich.color import ColorSystem
from rich.style import Style

from qcli.rich_ui.theme import Palette, RenderConfig, ThemeColors, resolve_color, to_rich_theme


class TtyStream(io.StringIO):
    def isatty(self):
        return True


@allure.feature("Theme")
@allure.story("Palette")
def test_paint_renders_rich_styles():
    palette = Palette(RenderConfig(color=True))
    expected = Style.parse(f"bold {ThemeColors().purple}").render("q", color_system=ColorSystem.TRUECOLOR)
    assert palette.paint("q", "purple", "bold") == expected
    assert palette.style("purple", "bold") == Style(color=ThemeColors().purple, bold=True)


def test_paint_truecolor_codes():
    painted = Palette(RenderConfig(color=True)).paint("x", "green")
    assert painted == "\x1b[38;2;80;250;123mx\x1b[0m"


@pytest.mark.parametrize("styles", [(), ("coral",), ("italic", "muted")])
def test_paint_without_color_returns_text(styles):
    assert Palette(RenderConfig(color=False)).paint("text", *styles) == "text"


def test_custom_colors_are_used():
    palette = Palette(RenderConfig(color=True, colors=ThemeColors(red="#010203")))
    assert palette.error("e") == "\x1b[38;2;1;2;3me\x1b[0m"


def test_empty_text_is_not_wrapped():
    assert Palette(RenderConfig(color=True)).paint("", "bold") == ""


@allure.feature("Theme")
@allure.story("Color resolution")
@pytest.mark.parametrize("mode,env,tty,expected", [
    ("always", {"NO_COLOR": "1"}, False, True),
    ("never", {"FORCE_COLOR": "1"}, True, False),
    ("auto", {}, True, True),
    ("auto", {}, False, False),
    ("auto", {"NO_COLOR": "1"}, True, False),
    ("auto", {"FORCE_COLOR": "1"}, False, True),
])
def test_resolve_color(monkeypatch, mode, env, tty, expected):
    monkeypatch.delenv("NO_COLOR", raising=False)
    monkeypatch.delenv("FORCE_COLOR", raising=False)
    for key, value in env.items():
        monkeypatch.setenv(key, value)
    stream = TtyStream() if tty else io.StringIO()
    assert resolve_color(mode, stream) is expected


def test_rich_theme_uses_palette_colors():
    theme = to_rich_theme(ThemeColors(cyan="#000001"))
    assert theme.styles["info"] == Style.parse("#000001")
