"""Key events and the decoder that turns raw terminal input into them.

Two input dialects are understood:

* the legacy one every terminal speaks, where a key produces bytes only when
  it goes down (a press is followed by a synthesized release, since nothing
  else will ever release it), and
* the kitty keyboard protocol (``CSI ... u``), enabled with
  ``KITTY_KEYBOARD_PUSH``, which reports press, repeat and release as well as
  bare modifier keys.

Once a kitty-style sequence has been seen the decoder stops synthesizing
releases.
"""

from __future__ import annotations

import re
import sys
from dataclasses import dataclass
from enum import StrEnum

# disambiguate | report event types | report alternate keys | all keys as escapes
KITTY_KEYBOARD_PUSH = "\x1b[>15u"
KITTY_KEYBOARD_POP = "\x1b[<u"


class KeyEventKind(StrEnum):
    PRESS = "press"
    RELEASE = "release"
    REPEAT = "repeat"


class NamedKey(StrEnum):
    ENTER = "enter"
    BACKSPACE = "backspace"
    TAB = "tab"
    ESC = "esc"
    LEFT = "left"
    RIGHT = "right"
    UP = "up"
    DOWN = "down"
    HOME = "home"
    END = "end"
    INSERT = "insert"
    DELETE = "delete"
    PAGE_UP = "page_up"
    PAGE_DOWN = "page_down"
    SHIFT = "shift"
    CTRL = "ctrl"
    ALT = "alt"
    F1 = "f1"
    F2 = "f2"
    F3 = "f3"
    F4 = "f4"
    F5 = "f5"
    F6 = "f6"
    F7 = "f7"
    F8 = "f8"
    F9 = "f9"
    F10 = "f10"
    F11 = "f11"
    F12 = "f12"

    @property
    def function_number(self) -> int | None:
        """Return ``n`` for ``Fn`` keys, ``None`` for everything else."""
        if self.value[0] == "f" and self.value[1:].isdigit():
            return int(self.value[1:])
        return None


Key = str | NamedKey


@dataclass(frozen=True)
class KeyEvent:
    """One key transition. ``key`` is a single character or a ``NamedKey``."""

    key: Key
    kind: KeyEventKind = KeyEventKind.PRESS

    @property
    def is_press(self) -> bool:
        return self.kind is KeyEventKind.PRESS


_LEGACY_SEQUENCES: dict[str, NamedKey] = {
    "\x1b[A": NamedKey.UP,
    "\x1b[B": NamedKey.DOWN,
    "\x1b[C": NamedKey.RIGHT,
    "\x1b[D": NamedKey.LEFT,
    "\x1b[H": NamedKey.HOME,
    "\x1b[F": NamedKey.END,
    "\x1bOA": NamedKey.UP,
    "\x1bOB": NamedKey.DOWN,
    "\x1bOC": NamedKey.RIGHT,
    "\x1bOD": NamedKey.LEFT,
    "\x1bOH": NamedKey.HOME,
    "\x1bOF": NamedKey.END,
    "\x1bOP": NamedKey.F1,
    "\x1bOQ": NamedKey.F2,
    "\x1bOR": NamedKey.F3,
    "\x1bOS": NamedKey.F4,
}

# CSI <number> ~
_TILDE_KEYS: dict[int, NamedKey] = {
    1: NamedKey.HOME,
    2: NamedKey.INSERT,
    3: NamedKey.DELETE,
    4: NamedKey.END,
    5: NamedKey.PAGE_UP,
    6: NamedKey.PAGE_DOWN,
    7: NamedKey.HOME,
    8: NamedKey.END,
    11: NamedKey.F1,
    12: NamedKey.F2,
    13: NamedKey.F3,
    14: NamedKey.F4,
    15: NamedKey.F5,
    17: NamedKey.F6,
    18: NamedKey.F7,
    19: NamedKey.F8,
    20: NamedKey.F9,
    21: NamedKey.F10,
    23: NamedKey.F11,
    24: NamedKey.F12,
}

# CSI 1 ; mods <letter>
_LETTER_KEYS: dict[str, NamedKey] = {
    "A": NamedKey.UP,
    "B": NamedKey.DOWN,
    "C": NamedKey.RIGHT,
    "D": NamedKey.LEFT,
    "H": NamedKey.HOME,
    "F": NamedKey.END,
    "P": NamedKey.F1,
    "Q": NamedKey.F2,
    "R": NamedKey.F3,
    "S": NamedKey.F4,
}

# Unicode code points used by the kitty protocol for functional keys.
_KITTY_CODEPOINTS: dict[int, NamedKey] = {
    9: NamedKey.TAB,
    13: NamedKey.ENTER,
    27: NamedKey.ESC,
    127: NamedKey.BACKSPACE,
    57441: NamedKey.SHIFT,
    57442: NamedKey.CTRL,
    57443: NamedKey.ALT,
    57447: NamedKey.SHIFT,
    57448: NamedKey.CTRL,
    57449: NamedKey.ALT,
}

_KITTY_EVENT_KINDS = {
    1: KeyEventKind.PRESS,
    2: KeyEventKind.REPEAT,
    3: KeyEventKind.RELEASE,
}

_SHIFT_BIT = 1

# Parameters are digits, ':' and ';'; the final byte selects the key family.
_CSI = re.compile(r"\x1b\[([0-9:;]*)([A-Za-z~])")
_SS3 = re.compile(r"\x1bO[A-DFHPQRS]")


class KeyDecoder:
    """Incremental decoder from terminal input text to ``KeyEvent`` lists."""

    def __init__(self, synthesize_release: bool = True):
        self.synthesize_release = synthesize_release
        self._pending = ""

    def feed(self, data: str) -> list[KeyEvent]:
        """Decode ``data`` (appended to any incomplete tail of a previous feed)."""
        text = self._pending + data
        self._pending = ""
        events: list[KeyEvent] = []
        i = 0
        while i < len(text):
            ch = text[i]
            if ch != "\x1b":
                events.extend(self._legacy(_control_key(ch)))
                i += 1
                continue
            if i + 1 == len(text):
                # A lone ESC at the end of a read is the Escape key.
                events.extend(self._legacy(NamedKey.ESC))
                i += 1
                continue
            match = _CSI.match(text, i) or _SS3.match(text, i)
            if match is None:
                if text[i + 1] in "[O" and _is_incomplete(text[i:]):
                    self._pending = text[i:]
                    break
                events.extend(self._legacy(NamedKey.ESC))
                i += 1
                continue
            events.extend(self._sequence(match.group(0)))
            i = match.end()
        return events

    def _legacy(self, key: Key | None) -> list[KeyEvent]:
        if key is None:
            return []
        events = [KeyEvent(key, KeyEventKind.PRESS)]
        if self.synthesize_release:
            events.append(KeyEvent(key, KeyEventKind.RELEASE))
        return events

    def _sequence(self, seq: str) -> list[KeyEvent]:
        if seq in _LEGACY_SEQUENCES and seq[1] == "O":
            return self._legacy(_LEGACY_SEQUENCES[seq])
        params, final = seq[2:-1], seq[-1]
        fields = params.split(";") if params else []
        kind, mods = _modifiers(fields[1] if len(fields) > 1 else "")
        kitty = kind is not None or final == "u"
        if final == "u":
            key = _kitty_key(fields[0] if fields else "", mods)
        elif final == "~":
            number = fields[0].split(":")[0] if fields else ""
            key = _TILDE_KEYS.get(int(number)) if number.isdigit() else None
        else:
            key = _LETTER_KEYS.get(final)
        if key is None:
            return []
        if kitty:
            # The terminal reports releases itself from now on.
            self.synthesize_release = False
            return [KeyEvent(key, kind or KeyEventKind.PRESS)]
        return self._legacy(key)


def _control_key(ch: str) -> Key | None:
    if ch in "\r\n":
        return NamedKey.ENTER
    if ch in "\x7f\x08":
        return NamedKey.BACKSPACE
    if ch == "\t":
        return NamedKey.TAB
    if ord(ch) < 0x20:
        return None
    return ch


def _modifiers(field: str) -> tuple[KeyEventKind | None, int]:
    """Split a ``mods[:event]`` parameter into (event kind, modifier bits)."""
    if not field:
        return None, 0
    mods, _, event = field.partition(":")
    bits = int(mods) - 1 if mods.isdigit() and int(mods) > 0 else 0
    if not event.isdigit():
        return None, bits
    return _KITTY_EVENT_KINDS.get(int(event), KeyEventKind.PRESS), bits


def _kitty_key(field: str, mods: int) -> Key | None:
    codes = field.split(":")
    if not codes or not codes[0].isdigit():
        return None
    code = int(codes[0])
    if code in _KITTY_CODEPOINTS:
        return _KITTY_CODEPOINTS[code]
    shifted = codes[1] if len(codes) > 1 else ""
    if mods & _SHIFT_BIT and shifted.isdigit():
        code = int(shifted)
    if code < 0x20 or 0xE000 <= code <= 0xF8FF or code > sys.maxunicode:
        return None
    return chr(code)


def _is_incomplete(text: str) -> bool:
    # An unterminated CSI/SS3 prefix split across two reads.
    if text.startswith("\x1bO"):
        return len(text) == 2
    return all(c in "0123456789:;" for c in text[2:])
