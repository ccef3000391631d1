"""Output encodings that turn a pixel image into something a terminal can show.

The set of encodings is closed and cycles in a fixed order. An
``ImagePicker`` pairs one encoding with a font cell size; it fits an image
into a cell area and produces a ``RenderedFrame`` that the terminal can
place without knowing how it was made.
"""

from __future__ import annotations

import base64
import io
import math
import zlib
from dataclasses import dataclass
from enum import StrEnum
from functools import lru_cache
from itertools import groupby

import numpy as np
from PIL import Image
from rich.color import Color
from rich.style import Style
from rich.text import Text

FontSize = tuple[int, int]
CellArea = tuple[int, int]

DEFAULT_FONT_SIZE: FontSize = (8, 16)

UPPER_HALF_BLOCK = "▀"
KITTY_IMAGE_ID = 1
KITTY_CHUNK = 4096
# Deletes every placement of the host image so other encodings can draw over it.
KITTY_DELETE = f"\x1b_Ga=d,d=i,i={KITTY_IMAGE_ID},q=2\x1b\\"
SIXEL_COLORS = 255


class ProtocolType(StrEnum):
    HALFBLOCKS = "Halfblocks"
    SIXEL = "Sixel"
    KITTY = "Kitty"
    ITERM2 = "Iterm2"

    def next(self) -> "ProtocolType":
        members = list(type(self))
        return members[(members.index(self) + 1) % len(members)]

    @classmethod
    def parse(cls, name: str) -> "ProtocolType":
        for member in cls:
            if member.value.lower() == name.lower():
                return member
        raise ValueError(f"unknown output encoding: {name!r}")


@dataclass(frozen=True)
class RenderedFrame:
    """
    An encoded image occupying ``cols`` x ``rows`` cells. Halfblocks frames
    carry styled text lines; the graphics protocols carry one escape
    sequence to be written at the image's top-left cell.
    """

    protocol: ProtocolType
    cols: int
    rows: int
    lines: tuple[Text, ...] = ()
    payload: str = ""

    @property
    def is_empty(self) -> bool:
        return self.cols == 0 or self.rows == 0


class ImagePicker:
    """An output encoding together with the font cell size it targets."""

    def __init__(self, font_size: FontSize = DEFAULT_FONT_SIZE, protocol: ProtocolType = ProtocolType.HALFBLOCKS):
        width, height = font_size
        self._font_size = (max(1, width), max(1, height))
        self.protocol = protocol

    @property
    def font_size(self) -> FontSize:
        return self._font_size

    def zoomed(self, base: FontSize, zoom: int) -> "ImagePicker":
        """A picker for the same encoding with ``base`` shrunk by ``zoom``."""
        zoom = max(1, zoom)
        return ImagePicker((base[0] // zoom, base[1] // zoom), self.protocol)

    def fit(self, image: Image.Image, area: CellArea) -> tuple[Image.Image, CellArea]:
        """Scale ``image`` down (never up) to fit ``area`` and return its cell size."""
        fw, fh = self._font_size
        max_w, max_h = area[0] * fw, area[1] * fh
        if image.width > max_w or image.height > max_h:
            scale = min(max_w / image.width, max_h / image.height)
            size = (max(1, int(image.width * scale)), max(1, int(image.height * scale)))
            image = image.resize(size, Image.Resampling.NEAREST)
        cells = (min(area[0], math.ceil(image.width / fw)), min(area[1], math.ceil(image.height / fh)))
        return image, cells

    def new_protocol(self, image: Image.Image, area: CellArea) -> RenderedFrame:
        """Encode ``image`` for this picker's protocol inside ``area`` cells."""
        if area[0] <= 0 or area[1] <= 0:
            return RenderedFrame(self.protocol, 0, 0)
        fitted, (cols, rows) = self.fit(image, area)
        if self.protocol is ProtocolType.HALFBLOCKS:
            return RenderedFrame(self.protocol, cols, rows, lines=encode_halfblocks(fitted, cols, rows))
        if self.protocol is ProtocolType.SIXEL:
            payload = encode_sixel(fitted)
        elif self.protocol is ProtocolType.KITTY:
            payload = encode_kitty(fitted, cols, rows)
        else:
            payload = encode_iterm2(fitted, cols, rows)
        return RenderedFrame(self.protocol, cols, rows, payload=payload)


@lru_cache(maxsize=65536)
def _cell_style(top: tuple[int, int, int], bottom: tuple[int, int, int]) -> Style:
    return Style(color=Color.from_rgb(*top), bgcolor=Color.from_rgb(*bottom))


def encode_halfblocks(image: Image.Image, cols: int, rows: int) -> tuple[Text, ...]:
    """One upper-half-block per cell: foreground is the top pixel, background the bottom."""
    pixels = np.asarray(image.convert("RGB").resize((cols, rows * 2), Image.Resampling.NEAREST))
    lines = []
    for top_row, bottom_row in zip(pixels[0::2], pixels[1::2]):
        line = Text(no_wrap=True, end="")
        pairs = zip(map(tuple, top_row.tolist()), map(tuple, bottom_row.tolist()))
        for (top, bottom), run in groupby(pairs):
            line.append(UPPER_HALF_BLOCK * len(list(run)), _cell_style(top, bottom))
        lines.append(line)
    return tuple(lines)


def _sixel_run(chars: str) -> str:
    out = []
    for ch, run in groupby(chars):
        count = len(list(run))
        out.append(f"!{count}{ch}" if count > 3 else ch * count)
    return "".join(out)


def encode_sixel(image: Image.Image) -> str:
    """Quantize to a palette and emit a DEC sixel stream, six pixel rows per band."""
    paletted = image.convert("RGB").quantize(colors=SIXEL_COLORS)
    indices = np.asarray(paletted)
    height, width = indices.shape
    palette = paletted.getpalette() or []
    out = [f'\x1bP0;1;0q"1;1;{width};{height}']
    for index in range(int(indices.max()) + 1):
        r, g, b = palette[3 * index : 3 * index + 3]
        out.append(f"#{index};2;{r * 100 // 255};{g * 100 // 255};{b * 100 // 255}")
    for top in range(0, height, 6):
        band = indices[top : top + 6]
        runs = []
        for color in np.unique(band):
            bits = np.zeros(width, dtype=np.uint8)
            for row, mask in enumerate(band == color):
                bits |= mask.astype(np.uint8) << row
            runs.append(f"#{color}{_sixel_run((bits + 63).tobytes().decode('ascii'))}")
        out.append("$".join(runs))
        out.append("-")
    out.append("\x1b\\")
    return "".join(out)


def encode_kitty(image: Image.Image, cols: int, rows: int) -> str:
    """Kitty graphics protocol, zlib-compressed RGBA, replacing placement 1 of image 1."""
    rgba = image.convert("RGBA")
    data = base64.standard_b64encode(zlib.compress(rgba.tobytes())).decode("ascii")
    chunks = [data[i : i + KITTY_CHUNK] for i in range(0, len(data), KITTY_CHUNK)] or [""]
    out = []
    for n, chunk in enumerate(chunks):
        more = 1 if n < len(chunks) - 1 else 0
        if n == 0:
            keys = (
                f"a=T,f=32,o=z,s={rgba.width},v={rgba.height},c={cols},r={rows},"
                f"i={KITTY_IMAGE_ID},p=1,q=2,C=1,m={more}"
            )
        else:
            keys = f"m={more}"
        out.append(f"\x1b_G{keys};{chunk}\x1b\\")
    return "".join(out)


def encode_iterm2(image: Image.Image, cols: int, rows: int) -> str:
    """iTerm2 inline image (OSC 1337) of a PNG stretched over the cell area."""
    buffer = io.BytesIO()
    image.convert("RGBA").save(buffer, format="PNG")
    data = buffer.getvalue()
    encoded = base64.standard_b64encode(data).decode("ascii")
    return (
        f"\x1b]1337;File=inline=1;size={len(data)};width={cols};height={rows};"
        f"preserveAspectRatio=0;doNotMoveCursor=1:{encoded}\x07"
    )
