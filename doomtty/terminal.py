"""The terminal side: capability query, input polling and drawing.

Drawing and ANSI emission go through ``rich``. Graphics-protocol payloads
are written verbatim at the image's top-left cell after the panel.
"""

from __future__ import annotations

import codecs
import fcntl
import logging
import os
import select
import struct
import sys
import termios
import tty
from collections.abc import Mapping
from dataclasses import dataclass
from typing import TextIO

from rich import box
from rich.align import Align
from rich.console import Console
from rich.control import Control
from rich.panel import Panel
from rich.segment import Segments

from .encoding import DEFAULT_FONT_SIZE, KITTY_DELETE, CellArea, FontSize, ProtocolType
from .errors import TerminalError
from .keys import KITTY_KEYBOARD_POP, KITTY_KEYBOARD_PUSH, KeyDecoder, KeyEvent
from .renderer import FrameView

logger = logging.getLogger(__name__)

# Top-left cell of the image, inside the border and below the log line.
IMAGE_X = 2
IMAGE_Y = 2
READ_CHUNK = 4096


@dataclass(frozen=True)
class Capabilities:
    font_size: FontSize
    protocol: ProtocolType


def query_font_size(fd: int) -> FontSize | None:
    """Cell size in pixels from the window-size ioctl, if the terminal reports it."""
    if fd < 0:
        return None
    try:
        packed = fcntl.ioctl(fd, termios.TIOCGWINSZ, struct.pack("HHHH", 0, 0, 0, 0))
    except (OSError, ValueError):
        return None
    rows, cols, width, height = struct.unpack("HHHH", packed)
    if not (rows and cols and width and height):
        return None
    return width // cols, height // rows


def guess_protocol(environ: Mapping[str, str]) -> ProtocolType:
    term = environ.get("TERM", "")
    program = environ.get("TERM_PROGRAM", "")
    if "KITTY_WINDOW_ID" in environ or term == "xterm-kitty" or program == "ghostty":
        return ProtocolType.KITTY
    if program in ("iTerm.app", "WezTerm"):
        return ProtocolType.ITERM2
    if term.startswith(("foot", "mlterm")) or "sixel" in term:
        return ProtocolType.SIXEL
    return ProtocolType.HALFBLOCKS


def query_capabilities(
    fallback_font_size: FontSize = DEFAULT_FONT_SIZE,
    fd: int | None = None,
    environ: Mapping[str, str] | None = None,
) -> Capabilities:
    if fd is None:
        try:
            fd = sys.stdout.fileno()
        except (OSError, ValueError):
            fd = -1
    font_size = query_font_size(fd)
    if font_size is None:
        # Some terminals never report pixel sizes; pick a common cell size.
        logger.info("Terminal did not report its font size, using %sx%s", *fallback_font_size)
        font_size = fallback_font_size
    protocol = guess_protocol(os.environ if environ is None else environ)
    return Capabilities(font_size, protocol)


class Terminal:
    """
    Owns the interactive terminal for one session. Entering puts stdin in
    cbreak mode, switches to the alternate screen and asks for kitty
    keyboard reporting; leaving undoes all of it, on every exit path.
    """

    def __init__(self, console: Console | None = None, stdin: TextIO | None = None):
        self.console = console or Console(highlight=False)
        self._stdin = stdin or sys.stdin
        self._fd: int | None = None
        self._saved: list | None = None
        self._active = False
        self._kitty_shown = False
        self._decoder = KeyDecoder()
        self._utf8 = codecs.getincrementaldecoder("utf-8")(errors="replace")

    def __enter__(self) -> "Terminal":
        try:
            if self._stdin.isatty():
                self._fd = self._stdin.fileno()
                self._saved = termios.tcgetattr(self._fd)
                tty.setcbreak(self._fd)
            self._active = True
            self.console.set_alt_screen(True)
            self.console.show_cursor(False)
            self._write(KITTY_KEYBOARD_PUSH)
        except (OSError, termios.error) as e:
            self.restore()
            raise TerminalError(f"failed to set up the terminal: {e}") from e
        return self

    def __exit__(self, *exc_info) -> None:
        self.restore()

    def restore(self) -> None:
        """Put the terminal back the way it was. Safe to call more than once."""
        if self._active:
            self._active = False
            try:
                self._write(KITTY_KEYBOARD_POP)
                self.console.show_cursor(True)
                self.console.set_alt_screen(False)
            except OSError as e:
                logger.warning("Failed to reset the screen: %s", e)
        if self._fd is not None and self._saved is not None:
            termios.tcsetattr(self._fd, termios.TCSADRAIN, self._saved)
            self._saved = None

    def _write(self, data: str) -> None:
        if self.console.is_terminal:
            self.console.file.write(data)
            self.console.file.flush()

    def poll(self) -> list[KeyEvent]:
        """Return every key event already waiting; never blocks."""
        if self._fd is None:
            return []
        events: list[KeyEvent] = []
        try:
            while select.select([self._fd], [], [], 0)[0]:
                data = os.read(self._fd, READ_CHUNK)
                if not data:
                    break
                events.extend(self._decoder.feed(self._utf8.decode(data)))
        except OSError as e:
            raise TerminalError(f"failed to read terminal input: {e}") from e
        return events

    def image_area(self) -> CellArea:
        width, height = self.console.size
        return max(0, width - 2 * IMAGE_X), max(0, height - IMAGE_Y - 1)

    def draw(self, view: FrameView) -> None:
        width, height = self.console.size
        panel = Panel(
            Align.center(view.log),
            title=view.title,
            subtitle=view.legend,
            box=box.HEAVY,
            width=width,
            height=height,
        )
        frame = view.frame
        try:
            if self._kitty_shown and frame is not None and frame.protocol is not ProtocolType.KITTY:
                self.console.file.write(KITTY_DELETE)
                self._kitty_shown = False
            with self.console:
                lines = self.console.render_lines(panel, self.console.options.update(width=width, height=height))
                for y, line in enumerate(lines):
                    self.console.control(Control.move_to(0, y))
                    self.console.print(Segments(line), end="")
                if frame is not None and frame.lines:
                    for row, text in enumerate(frame.lines):
                        self.console.control(Control.move_to(IMAGE_X, IMAGE_Y + row))
                        self.console.print(text, end="", crop=False)
            if frame is not None and frame.payload and not frame.is_empty:
                self.console.control(Control.move_to(IMAGE_X, IMAGE_Y))
                self.console.file.write(frame.payload)
                self._kitty_shown = frame.protocol is ProtocolType.KITTY
            self.console.file.flush()
        except OSError as e:
            raise TerminalError(f"failed to draw to the terminal: {e}") from e
