"""
Terminal output for qcli.

The response goes to a plain text stream (stdout) so pipelines receive
exactly the answer; everything else (errors, warnings, the thinking
indicator, summaries) goes to a rich Console bound to stderr.
"""
import sys
from typing import Optional, TextIO

from rich.console import Console
from rich.markup import escape
from rich.status import Status

from .theme import Palette, RenderConfig, make_render_config, to_rich_theme


class Terminal:
    """
    Primary and diagnostic output streams.

    Tracks whether the primary stream is at the start of a line so
    batched output after live text always begins on a fresh line.
    """

    def __init__(
        self,
        out: Optional[TextIO] = None,
        err: Optional[Console] = None,
        config: Optional[RenderConfig] = None,
    ) -> None:
        """
        Initialize the terminal.

        Args:
            out: Stream for the response (stdout by default)
            err: Console for diagnostics (stderr by default)
            config: Rendering configuration for the primary stream
        """
        self._out = out or sys.stdout
        self.config = config or make_render_config("auto", self._out)
        self.palette = Palette(self.config)
        self._err = err or Console(
            stderr=True,
            theme=to_rich_theme(self.config.colors),
            highlight=False,
            no_color=not self.config.color,
        )
        self._status: Optional[Status] = None
        self._at_line_start = True

    @property
    def err(self) -> Console:
        """Get the diagnostic console."""
        return self._err

    def write(self, text: str) -> None:
        """Write text to the primary stream as-is."""
        if not text:
            return
        self.stop_thinking()
        self._out.write(text)
        self._out.flush()
        self._at_line_start = text.endswith("\n")

    def line(self, text: str = "") -> None:
        """Write a full line to the primary stream."""
        self.write(f"{text}\n")

    def ensure_newline(self) -> None:
        """End the current line if something was left on it."""
        if not self._at_line_start:
            self.write("\n")

    def rule(self, width: int) -> None:
        self.line(self.palette.muted("─" * width))

    # Diagnostics

    def error(self, message: str) -> None:
        """Print an error to the diagnostic stream."""
        self.stop_thinking()
        self._err.print(f"[error]Error:[/error] {escape(message)}")

    def error_detail(self, message: str) -> None:
        self._err.print(f"[error]  {escape(message)}[/error]")

    def warning(self, message: str) -> None:
        self.stop_thinking()
        self._err.print(f"[warning]⚠[/warning] {escape(message)}")

    def info(self, message: str) -> None:
        self._err.print(f"[muted]{escape(message)}[/muted]")

    def thinking(self, label: str = "Thinking...") -> None:
        """Show a transient spinner on the diagnostic stream."""
        if self._status is not None or not self._err.is_terminal:
            return
        self._status = self._err.status(f"[muted]{escape(label)}[/muted]", spinner="dots")
        self._status.start()

    def stop_thinking(self) -> None:
        if self._status is not None:
            self._status.stop()
            self._status = None
