# display.py
# All terminal output for the RT patching wizard.
#
# This module owns presentation entirely. The executor and the work units
# never format escape sequences; they call named methods here.
#
# Screen layout (1-based rows, H = number of header lines, P = panel height):
#   1            ===== title =====
#   2 .. H+1     header lines
#   H+2          Steps:
#   H+3 + i      one line per visible step, in registration order
#   H+3 + P      banner of the active step
#   H+4 + P ..   scroll region for the active step's own output
#
# P is the step count, reduced when the screen cannot also hold the banner
# and MIN_OUTPUT_ROWS of output. A reduced panel shows a window that always
# contains the active step.
#
# Every row is computed from the session on demand; nothing is cached.
# Outside the scroll region nothing ends in a newline, so the fixed rows
# never scroll.
#
# Colour language:
#   grey: planned
#   yellow: skipped steps and comments
#   green: completed / ok
#   red: failed / fatal
#   cyan: active step banner

import logging
import shutil
import signal
import threading

from rich.console import Console
from rich.control import Control, ControlType
from rich.segment import Segment
from rich.text import Text

from rt_patcher.errors import Terminated
from rt_patcher.models import StepStatus, WizardSession

logger = logging.getLogger(__name__)

DEFAULT_SIZE = (80, 24)
MIN_OUTPUT_ROWS = 2


class _Sequence(Control):
    """A raw control sequence rich has no ControlType for."""

    def __init__(self, codes: str) -> None:
        self.segment = Segment(codes)


RESET_SCROLL_REGION = _Sequence("\x1b[r")
SAVE_CURSOR = _Sequence("\x1b7")
RESTORE_CURSOR = _Sequence("\x1b8")
ERASE_BELOW = _Sequence("\x1b[0J")
RESET_COLORS = _Sequence("\x1b[0m")
ERASE_LINE = Control((ControlType.ERASE_IN_LINE, 2))


def scroll_region(top: int, bottom: int) -> Control:
    return _Sequence(f"\x1b[{top};{bottom}r")


MARKERS: dict[StepStatus, tuple[str, str]] = {
    StepStatus.PLANNED: ("🕑", "bright_black"),
    StepStatus.CURRENT: ("→", "default"),
    StepStatus.SKIPPED: ("↷", "yellow"),
    StepStatus.COMPLETED: ("✓", "green"),
    StepStatus.FAILED: ("❌", "red"),
}


# ---------------------------------------------------------------------------
# Renderer
# ---------------------------------------------------------------------------


class TerminalRenderer:
    """
    Draws the header, the step panel and the active step's scroll region.

    Use as a context manager: entering takes control of the terminal,
    leaving restores it exactly once, whether the block returned, raised
    or was interrupted. SIGTERM is turned into SystemExit while held so the
    restore still runs.

    Example:
        with TerminalRenderer(session) as renderer:
            renderer.full_redraw()
    """

    def __init__(
        self,
        session: WizardSession,
        console: Console | None = None,
        size: tuple[int, int] | None = None,
    ) -> None:
        self._session = session
        self.console = console or Console(highlight=False)
        self._size = size
        self._previous_sigterm = None

    # ------------------------------------------------------------------
    # Geometry
    # ------------------------------------------------------------------

    def size(self) -> tuple[int, int]:
        """(columns, rows); 80x24 when the terminal will not say."""
        if self._size is not None:
            return self._size
        columns, rows = shutil.get_terminal_size(DEFAULT_SIZE)
        return columns, rows

    @property
    def steps_label_row(self) -> int:
        return len(self._session.header) + 2

    def panel_height(self) -> int:
        """Step lines that fit above the banner and the minimal output area."""
        _, rows = self.size()
        room = rows - MIN_OUTPUT_ROWS - 1 - self.steps_label_row
        return max(0, min(len(self._session.steps), room))

    def first_visible(self) -> int:
        height = self.panel_height()
        cursor = self._session.cursor
        if cursor is None or cursor < height:
            return 0
        return cursor - height + 1

    def visible_steps(self) -> range:
        first = self.first_visible()
        return range(first, min(first + self.panel_height(), len(self._session.steps)))

    def step_row(self, index: int) -> int:
        return self.steps_label_row + 1 + index - self.first_visible()

    @property
    def banner_row(self) -> int:
        return self.steps_label_row + 1 + self.panel_height()

    def output_region(self) -> tuple[int, int]:
        _, rows = self.size()
        return self.banner_row + 1, rows

    # ------------------------------------------------------------------
    # Low-level drawing
    # ------------------------------------------------------------------

    def _emit(self, *controls: Control) -> None:
        # Redirected output gets the text only, never cursor movement.
        if self.console.is_terminal:
            self.console.control(*controls)

    def _move_to_row(self, row: int) -> Control:
        return Control.move_to(0, row - 1)

    def _print_line(self, text: Text) -> None:
        # On a terminal the cursor is positioned explicitly, so no newline.
        end = "" if self.console.is_terminal else "\n"
        self.console.print(text, end=end, no_wrap=True, overflow="ellipsis", crop=True)

    def _draw_line(self, row: int, text: Text) -> None:
        self._emit(self._move_to_row(row), ERASE_LINE)
        self._print_line(text)

    def _step_text(self, index: int) -> Text:
        step = self._session.steps[index]
        marker, style = MARKERS[step.status]
        text = Text()
        text.append(f" {marker} {step.name}", style=style)
        if step.comment:
            text.append(f" {step.comment}", style="yellow")
        return text

    def _draw_step(self, index: int) -> None:
        if index in self.visible_steps():
            self._draw_line(self.step_row(index), self._step_text(index))

    def _draw_panel(self) -> None:
        for index in self.visible_steps():
            self._draw_line(self.step_row(index), self._step_text(index))

    def _confine_output(self) -> None:
        top, bottom = self.output_region()
        # Setting the region homes the cursor, so move back into it afterwards.
        self._emit(scroll_region(top, bottom), self._move_to_row(top))

    # ------------------------------------------------------------------
    # Contract
    # ------------------------------------------------------------------

    def full_redraw(self) -> None:
        """Clear the screen and draw every region from scratch."""
        self._emit(RESET_SCROLL_REGION, Control.clear(), Control.home())
        self._draw_line(1, Text(f" ===== {self._session.title} =====", style="bold"))
        for offset, line in enumerate(self._session.header):
            self._draw_line(2 + offset, Text(line))
        self._draw_line(self.steps_label_row, Text("Steps:"))
        self._draw_panel()

        if self._session.cursor is None:
            self._emit(self._move_to_row(self.banner_row), ERASE_BELOW)
            self._confine_output()
        else:
            self.begin_step_output(self._session.cursor)

    def redraw_step(self, index: int) -> None:
        """Rewrite one step line in place; the active output cursor is untouched."""
        self._emit(SAVE_CURSOR)
        self._draw_step(index)
        self._emit(RESTORE_CURSOR)

    def redraw_steps(self) -> None:
        self._emit(SAVE_CURSOR)
        self._draw_panel()
        self._emit(RESTORE_CURSOR)

    def begin_step_output(self, index: int) -> None:
        """Clear the output area, print the step banner, confine output below it."""
        self._emit(RESET_SCROLL_REGION)
        if self.panel_height() < len(self._session.steps):
            # The window may have moved to keep the active step in view.
            self._draw_panel()
        self._emit(self._move_to_row(self.banner_row), ERASE_BELOW)
        self._print_line(Text(f"{self._session.steps[index].name}:", style="cyan"))
        self._confine_output()

    # ------------------------------------------------------------------
    # Messages into the scroll region
    # ------------------------------------------------------------------

    def ok(self, message: str) -> None:
        self.console.print(Text(f"✓ {message}", style="green"))

    def fatal(self, message: str) -> None:
        self.console.print(Text("⚠ Fatal Error! ⚠", style="bold red"))
        self.console.print(Text(message, style="red"))

    def farewell(self, lines: list[str]) -> None:
        for line in lines:
            self.console.print(Text(line, style="green"))

    # ------------------------------------------------------------------
    # Terminal ownership
    # ------------------------------------------------------------------

    def restore(self) -> None:
        """Full-screen scroll region, default colors, visible cursor, parked low."""
        columns, rows = self.size()
        self._emit(
            RESET_COLORS,
            RESET_SCROLL_REGION,
            Control.show_cursor(True),
            Control.move_to(max(columns - 1, 0), max(rows - 2, 0)),
        )
        self.console.line()
        logger.info("Terminal restored")

    def _on_sigterm(self, signum, frame) -> None:
        raise Terminated(128 + signum)

    def __enter__(self) -> "TerminalRenderer":
        if threading.current_thread() is threading.main_thread():
            self._previous_sigterm = signal.signal(signal.SIGTERM, self._on_sigterm)
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        try:
            self.restore()
        finally:
            if self._previous_sigterm is not None:
                signal.signal(signal.SIGTERM, self._previous_sigterm)
                self._previous_sigterm = None
