"""Turns guest frame buffers into what the terminal draws."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Protocol

from PIL import Image
from rich.text import Text

from .encoding import CellArea, RenderedFrame
from .errors import ImageError
from .state import HostState

logger = logging.getLogger(__name__)

FRAME_WIDTH = 640
FRAME_HEIGHT = 400
BYTES_PER_PIXEL = 4
FRAME_BYTES = FRAME_WIDTH * FRAME_HEIGHT * BYTES_PER_PIXEL


@dataclass(frozen=True)
class FrameView:
    """Everything one redraw needs: the panel texts and the encoded image."""

    title: Text
    log: Text
    legend: Text
    frame: RenderedFrame | None


class Display(Protocol):
    def image_area(self) -> CellArea:
        """Cells available to the image inside the panel border."""
        ...

    def draw(self, view: FrameView) -> None:
        ...


def legend() -> Text:
    text = Text()
    for label, key in (
        (" Quit ", "<Q>"),
        (" - Switch Image Protocol ", "<P>"),
        (" - Increase Zoom ", "<+>"),
        (" - Decrease Zoom ", "<->"),
    ):
        text.append(label)
        text.append(key, style="bold blue")
    text.append(" ")
    return text


def frame_image(raw: bytes) -> Image.Image:
    """Build the guest's RGBA frame, refusing anything but a whole frame."""
    if len(raw) != FRAME_BYTES:
        raise ImageError(f"frame buffer is {len(raw)} bytes, expected {FRAME_BYTES}")
    return Image.frombytes("RGBA", (FRAME_WIDTH, FRAME_HEIGHT), raw)


class FrameRenderer:
    """
    Called from the guest's draw callback once per finished frame. It owns
    no state of its own: the frame, the FPS counter and the picker live in
    ``HostState``, and the terminal is the handle it was given.
    """

    def __init__(self, state: HostState, display: Display):
        self.state = state
        self.display = display

    def on_frame(self, raw: bytes) -> None:
        image = frame_image(raw)
        self.state.last_image = image
        self.state.current_frame = self._encode(image)
        self.state.fps_counter.frame()
        self.display.draw(self.view())

    def refresh(self) -> None:
        """Re-encode the buffered frame after a zoom or encoding change and redraw."""
        if self.state.last_image is None:
            return
        self.state.current_frame = self._encode(self.state.last_image)
        self.display.draw(self.view())

    def _encode(self, image: Image.Image) -> RenderedFrame:
        return self.state.picker.new_protocol(image, self.display.image_area())

    def title(self) -> Text:
        return Text.assemble(
            " WASM DooM in TUI - FPS: ",
            str(self.state.fps),
            " - Protocol: ",
            self.state.protocol.value,
            " ",
            style="bold",
        )

    def log_text(self) -> Text:
        style = "red" if self.state.last_log_error else "yellow"
        return Text(self.state.last_log_line or "", style=style)

    def view(self) -> FrameView:
        return FrameView(self.title(), self.log_text(), legend(), self.state.current_frame)
