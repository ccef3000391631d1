"""Tests for the image output encodings."""

import pytest
from PIL import Image

from doomtty.encoding import ImagePicker, ProtocolType

FONT = (8, 16)


@pytest.fixture
def frame() -> Image.Image:
    image = Image.new("RGBA", (640, 400), (255, 0, 0, 255))
    image.paste((0, 0, 255, 255), (0, 200, 640, 400))
    return image


class TestProtocolType:
    """The closed, cyclic set of encodings."""

    def test_cycle_order(self) -> None:
        """Halfblocks -> Sixel -> Kitty -> Iterm2 -> Halfblocks."""
        order = [ProtocolType.HALFBLOCKS]
        for _ in range(4):
            order.append(order[-1].next())
        assert order == [
            ProtocolType.HALFBLOCKS,
            ProtocolType.SIXEL,
            ProtocolType.KITTY,
            ProtocolType.ITERM2,
            ProtocolType.HALFBLOCKS,
        ]

    def test_parse_ignores_case(self) -> None:
        """Names parse case-insensitively."""
        assert ProtocolType.parse("kitty") is ProtocolType.KITTY

    def test_parse_unknown(self) -> None:
        """Unknown names are rejected."""
        with pytest.raises(ValueError):
            ProtocolType.parse("braille")


class TestFit:
    """Scaling an image into a cell area."""

    def test_scales_down_to_fit(self, frame: Image.Image) -> None:
        """640x400 in 20x10 cells of 8x16 fits 160x100 pixels, 20x7 cells."""
        fitted, cells = ImagePicker(FONT).fit(frame, (20, 10))
        assert fitted.size == (160, 100)
        assert cells == (20, 7)

    def test_never_scales_up(self) -> None:
        """A small image keeps its size."""
        fitted, cells = ImagePicker(FONT).fit(Image.new("RGBA", (16, 16)), (80, 30))
        assert fitted.size == (16, 16)
        assert cells == (2, 1)

    def test_smaller_font_needs_more_cells(self, frame: Image.Image) -> None:
        """Halving the font size (zoom 2) doubles the cells the image covers."""
        _, normal = ImagePicker(FONT).fit(frame, (200, 100))
        _, zoomed = ImagePicker(FONT).zoomed(FONT, 2).fit(frame, (200, 100))
        assert zoomed == (normal[0] * 2, normal[1] * 2)


class TestEncoders:
    """Each encoding produces a frame of the fitted cell size."""

    def test_empty_area(self, frame: Image.Image) -> None:
        """No room means an empty frame, not an error."""
        assert ImagePicker(FONT).new_protocol(frame, (0, 5)).is_empty

    def test_halfblocks(self, frame: Image.Image) -> None:
        """One text line per cell row, one cell per column."""
        rendered = ImagePicker(FONT).new_protocol(frame, (20, 10))
        assert rendered.protocol is ProtocolType.HALFBLOCKS
        assert len(rendered.lines) == rendered.rows == 7
        assert all(line.cell_len == rendered.cols for line in rendered.lines)
        assert rendered.payload == ""

    def test_halfblocks_colours(self) -> None:
        """Top pixel is the foreground, bottom pixel the background."""
        image = Image.new("RGBA", (8, 32), (255, 0, 0, 255))
        image.paste((0, 0, 255, 255), (0, 16, 8, 32))
        (line,) = ImagePicker(FONT).new_protocol(image, (1, 1)).lines
        style = line.spans[0].style
        assert style.color.triplet == (255, 0, 0)
        assert style.bgcolor.triplet == (0, 0, 255)

    def test_sixel(self, frame: Image.Image) -> None:
        """A DCS sixel stream with a raster header and palette."""
        rendered = ImagePicker(FONT, ProtocolType.SIXEL).new_protocol(frame, (20, 10))
        assert rendered.payload.startswith('\x1bP0;1;0q"1;1;160;100')
        assert rendered.payload.endswith("\x1b\\")
        assert "#0;2;" in rendered.payload
        assert rendered.payload.count("-") >= 100 // 6

    def test_kitty(self, frame: Image.Image) -> None:
        """Kitty graphics chunks replace image 1 and end with m=0."""
        rendered = ImagePicker(FONT, ProtocolType.KITTY).new_protocol(frame, (20, 10))
        assert rendered.payload.startswith("\x1b_Ga=T,f=32,o=z,s=160,v=100,c=20,r=7,i=1,p=1")
        last_chunk_keys = rendered.payload.split("\x1b_G")[-1].split(";")[0]
        assert "m=0" in last_chunk_keys.split(",")

    def test_iterm2(self, frame: Image.Image) -> None:
        """iTerm2 inline PNG sized in cells."""
        rendered = ImagePicker(FONT, ProtocolType.ITERM2).new_protocol(frame, (20, 10))
        assert rendered.payload.startswith("\x1b]1337;File=inline=1;")
        assert "width=20;height=7" in rendered.payload
        assert rendered.payload.endswith("\x07")
