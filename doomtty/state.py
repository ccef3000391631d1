"""Mutable session state shared by the main loop and the draw callback.

There is only one thread. The guest calls back into the host while the
main loop is blocked inside a guest call, so ``HostState`` is handed to
whichever side currently has control and is never touched by both at once.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass, field

from PIL import Image

from .encoding import DEFAULT_FONT_SIZE, FontSize, ImagePicker, ProtocolType, RenderedFrame

Clock = Callable[[], float]

ONE_SECOND = 1.0


@dataclass
class FpsCounter:
    """
    Frames-per-second over whole-second windows.

    Every frame is counted. When at least a second has passed since the
    anchor, the anchor moves forward in whole seconds and the rate becomes
    the frame count divided by the number of seconds skipped, so a stall
    spreads its frames over the seconds it covered.
    """

    clock: Clock = time.monotonic
    last_second: float = 0.0
    frames_since_last_second: int = 0
    fps: int = 0

    def __post_init__(self) -> None:
        self.last_second = self.clock()

    def frame(self) -> int:
        now = self.clock()
        self.frames_since_last_second += 1
        if now - self.last_second < ONE_SECOND:
            return self.fps
        seconds = 0
        while now - self.last_second >= ONE_SECOND:
            self.last_second += ONE_SECOND
            seconds += 1
        self.fps = self.frames_since_last_second // seconds
        self.frames_since_last_second = 0
        return self.fps


@dataclass
class HostState:
    """Everything the loop and the callbacks read or write."""

    default_font_size: FontSize = DEFAULT_FONT_SIZE
    picker: ImagePicker = field(default_factory=ImagePicker)
    clock: Clock = time.monotonic

    exit: bool = False
    last_log_line: str | None = None
    last_log_error: bool = False

    current_frame: RenderedFrame | None = None
    last_image: Image.Image | None = None
    zoom: int = 1

    started_at: float = 0.0
    fps_counter: FpsCounter = field(init=False)

    def __post_init__(self) -> None:
        self.started_at = self.clock()
        self.fps_counter = FpsCounter(self.clock)
        if self.zoom < 1:
            raise ValueError(f"zoom must be at least 1, got {self.zoom}")
        if self.zoom != 1:
            self.picker = self.picker.zoomed(self.default_font_size, self.zoom)

    @property
    def fps(self) -> int:
        return self.fps_counter.fps

    @property
    def protocol(self) -> ProtocolType:
        return self.picker.protocol

    def elapsed_ms(self) -> int:
        return int((self.clock() - self.started_at) * 1000)

    def log(self, line: str, error: bool = False) -> None:
        self.last_log_line = line
        self.last_log_error = error

    def request_exit(self) -> None:
        self.exit = True

    def cycle_protocol(self) -> ProtocolType:
        self.picker.protocol = self.picker.protocol.next()
        return self.picker.protocol

    def set_zoom(self, zoom: int) -> None:
        self.zoom = max(1, zoom)
        # The next frame (or an explicit refresh) re-encodes with the new picker.
        self.picker = self.picker.zoomed(self.default_font_size, self.zoom)

    def increment_zoom(self) -> None:
        self.set_zoom(self.zoom + 1)

    def decrement_zoom(self) -> None:
        self.set_zoom(self.zoom - 1)
