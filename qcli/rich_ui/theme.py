"""
Theme and color handling for qcli.

Colors are carried explicitly in a ``RenderConfig``; nothing reads a
process-wide color flag. ``Palette`` renders rich styles to ANSI text
for the markdown and tool-line renderers, ``to_rich_theme`` feeds the
diagnostic rich Console.
"""
import os
import shutil
from dataclasses import dataclass, field
from typing import Optional, TextIO

from rich.color import ColorSystem
from rich.style import Style
from rich.theme import Theme as RichTheme

from ..constants import HR_WIDTH


@dataclass
class ThemeColors:
    """Neon palette, as 24-bit hex colors."""
    purple: str = "#e135ff"
    cyan: str = "#80ffea"
    coral: str = "#ff6ac1"
    yellow: str = "#f1fa8c"
    green: str = "#50fa7b"
    red: str = "#ff6363"
    fg: str = "#f8f8f2"
    muted: str = "#8b85a0"


@dataclass
class RenderConfig:
    """
    How output should be rendered.

    Attributes:
        color: Emit ANSI escape codes
        width: Terminal width used for rules and wrapping decisions
    """
    color: bool = False
    width: int = HR_WIDTH
    colors: ThemeColors = field(default_factory=ThemeColors)


class Palette:
    """
    Named rich styles for a RenderConfig, rendered straight to ANSI text.

    Style names are the ThemeColors fields plus rich attributes such as
    ``bold`` or ``italic``. With color disabled ``paint`` returns the text
    unchanged, so callers can use it unconditionally.
    """

    COLOR_NAMES = ("purple", "cyan", "coral", "yellow", "green", "red", "fg", "muted")

    def __init__(self, config: Optional[RenderConfig] = None) -> None:
        self.config = config or RenderConfig()
        colors = self.config.colors
        self._colors = {name: getattr(colors, name) for name in self.COLOR_NAMES}
        self._styles: dict[tuple[str, ...], Style] = {}

    @property
    def enabled(self) -> bool:
        return self.config.color

    def style(self, *names: str) -> Style:
        """Combined rich Style for color and attribute names."""
        if names not in self._styles:
            self._styles[names] = Style.parse(" ".join(self._colors.get(n, n) for n in names))
        return self._styles[names]

    def paint(self, text: str, *styles: str) -> str:
        """
        Render text in the given styles.

        Args:
            text: Text to style
            styles: Color or attribute names

        Returns:
            ANSI-styled text, or the text unchanged when color is disabled
        """
        if not self.enabled or not styles or not text:
            return text
        return self.style(*styles).render(text, color_system=ColorSystem.TRUECOLOR)

    # Semantic helpers
    def success(self, text: str) -> str:
        return self.paint(text, "green")

    def error(self, text: str) -> str:
        return self.paint(text, "red")

    def warning(self, text: str) -> str:
        return self.paint(text, "yellow")

    def info(self, text: str) -> str:
        return self.paint(text, "cyan")

    def muted(self, text: str) -> str:
        return self.paint(text, "muted")

    def highlight(self, text: str) -> str:
        return self.paint(text, "purple", "bold")


def resolve_color(mode: str = "auto", stream: Optional[TextIO] = None) -> bool:
    """
    Decide whether to emit color.

    Args:
        mode: 'always', 'never' or 'auto'
        stream: Stream the output goes to (for the isatty check)

    Returns:
        True if ANSI colors should be written
    """
    if mode == "always":
        return True
    if mode == "never":
        return False
    if os.environ.get("NO_COLOR"):
        return False
    if os.environ.get("FORCE_COLOR"):
        return True
    isatty = getattr(stream, "isatty", None)
    return bool(isatty and isatty())


def make_render_config(mode: str = "auto", stream: Optional[TextIO] = None) -> RenderConfig:
    """Build a RenderConfig for a stream."""
    width = shutil.get_terminal_size((HR_WIDTH, 24)).columns
    return RenderConfig(color=resolve_color(mode, stream), width=min(width, HR_WIDTH))


def to_rich_theme(colors: Optional[ThemeColors] = None) -> RichTheme:
    """Convert the palette to a Rich Theme for the diagnostic console."""
    colors = colors or ThemeColors()
    return RichTheme({
        "primary": colors.purple,
        "accent": colors.coral,
        "info": colors.cyan,
        "success": colors.green,
        "warning": colors.yellow,
        "error": f"bold {colors.red}",
        "muted": colors.muted,
        "session.id": colors.cyan,
        "session.title": colors.fg,
        "cost": colors.green,
        "timestamp": colors.muted,
    })
