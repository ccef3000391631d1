"""Tests for turning guest frame buffers into terminal views."""

import pytest

from doomtty.encoding import ProtocolType
from doomtty.errors import ImageError
from doomtty.renderer import FRAME_BYTES, FrameRenderer, frame_image
from doomtty.state import HostState

from .conftest import FakeTerminal, ManualClock


def solid_frame(value: int = 0x80) -> bytes:
    return bytes([value]) * FRAME_BYTES


class TestFrameImage:
    """Only a whole 640x400 RGBA frame is accepted."""

    def test_whole_frame(self) -> None:
        """Exactly 640*400*4 bytes builds an RGBA image."""
        image = frame_image(solid_frame())
        assert image.size == (640, 400)
        assert image.mode == "RGBA"

    @pytest.mark.parametrize("length", [0, FRAME_BYTES - 1, FRAME_BYTES + 4])
    def test_wrong_size(self, length: int) -> None:
        """Any other length is an ImageError."""
        with pytest.raises(ImageError):
            frame_image(bytes(length))


class TestFrameRenderer:
    """Encoding, FPS and redraw on each frame."""

    def test_frame_is_stored_and_drawn(
        self, renderer: FrameRenderer, state: HostState, terminal: FakeTerminal
    ) -> None:
        """A frame becomes the current frame and triggers one redraw."""
        renderer.on_frame(solid_frame())
        assert state.current_frame is not None
        assert state.last_image is not None
        assert len(terminal.views) == 1
        assert terminal.views[0].frame is state.current_frame

    def test_bad_frame_changes_nothing(
        self, renderer: FrameRenderer, state: HostState, terminal: FakeTerminal
    ) -> None:
        """A short buffer raises before touching state or the terminal."""
        renderer.on_frame(solid_frame())
        previous = state.current_frame
        with pytest.raises(ImageError):
            renderer.on_frame(bytes(10))
        assert state.current_frame is previous
        assert len(terminal.views) == 1

    def test_fps_in_title(
        self, renderer: FrameRenderer, clock: ManualClock, terminal: FakeTerminal
    ) -> None:
        """The title shows the FPS and the encoding name."""
        for _ in range(3):
            clock.advance(0.4)
            renderer.on_frame(solid_frame())
        title = terminal.views[-1].title.plain
        assert "FPS: 3" in title
        assert "Protocol: Halfblocks" in title

    def test_refresh_without_frame_is_noop(self, renderer: FrameRenderer, terminal: FakeTerminal) -> None:
        """Nothing to re-encode before the first frame."""
        renderer.refresh()
        assert terminal.views == []

    def test_refresh_reencodes_buffered_frame(
        self, renderer: FrameRenderer, state: HostState, terminal: FakeTerminal
    ) -> None:
        """After switching encoding the buffered frame is rebuilt with the new one."""
        renderer.on_frame(solid_frame())
        state.cycle_protocol()
        renderer.refresh()
        assert state.current_frame.protocol is ProtocolType.SIXEL
        assert len(terminal.views) == 2

    def test_refresh_does_not_count_frames(
        self, renderer: FrameRenderer, state: HostState
    ) -> None:
        """Redraws from the buffer are not guest frames."""
        renderer.on_frame(solid_frame())
        renderer.refresh()
        assert state.fps_counter.frames_since_last_second == 1

    def test_log_colour_follows_severity(self, renderer: FrameRenderer, state: HostState) -> None:
        """Errors are red, everything else yellow."""
        state.log("careful", error=True)
        assert str(renderer.log_text().style) == "red"
        state.log("fine")
        assert str(renderer.log_text().style) == "yellow"

    def test_legend_lists_controls(self, renderer: FrameRenderer) -> None:
        """The footer names the four host keys."""
        legend = renderer.view().legend.plain
        for key in ("<Q>", "<P>", "<+>", "<->"):
            assert key in legend
