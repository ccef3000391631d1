"""Translation from terminal key events to the guest's input encoding.

The guest models input as ``(event_kind, key_code)`` pairs: kind 0 is a key
going down, 1 a key coming up. Key codes follow the engine's own table
(ASCII for printable keys, 0xAC..0xAF for arrows, 0x80-based scancodes for
modifiers, ``187 + n`` for ``Fn``).
"""

from __future__ import annotations

from collections.abc import Mapping
from types import MappingProxyType

from .keys import Key, KeyEvent, KeyEventKind, NamedKey

GUEST_PRESS = 0
GUEST_RELEASE = 1

KEY_CTRL = 0x80 + 0x1D
KEY_ALT = 0x80 + 0x38
KEY_SHIFT = 16
KEY_SPACE = 32
FUNCTION_KEY_BASE = 187

NAMED_KEYS: Mapping[NamedKey, int] = MappingProxyType(
    {
        NamedKey.ENTER: 13,
        NamedKey.BACKSPACE: 127,
        NamedKey.LEFT: 0xAC,
        NamedKey.RIGHT: 0xAE,
        NamedKey.UP: 0xAD,
        NamedKey.DOWN: 0xAF,
        NamedKey.TAB: 9,
        NamedKey.ESC: 27,
        NamedKey.CTRL: KEY_CTRL,
        NamedKey.ALT: KEY_ALT,
        NamedKey.SHIFT: KEY_SHIFT,
    }
)

EVENT_KINDS: Mapping[KeyEventKind, int | None] = MappingProxyType(
    {
        KeyEventKind.PRESS: GUEST_PRESS,
        KeyEventKind.RELEASE: GUEST_RELEASE,
        # The guest only knows down/up; auto-repeat is dropped.
        KeyEventKind.REPEAT: None,
    }
)

# Letters standing in for modifier keys, in this order.
DEFAULT_MODIFIER_KEYS = "zxcv"
_MODIFIER_TARGETS = (KEY_CTRL, KEY_ALT, KEY_SHIFT, KEY_SPACE)


def modifier_aliases(letters: str) -> dict[str, int]:
    """
    Build the alias table for ``letters`` (ctrl, alt, shift, space in that
    order). Most terminals never report a modifier key on its own, so four
    nearby letters stand in for them. This is an ergonomic choice of the
    host, not part of the guest protocol; an empty string disables it.
    """
    if letters and len(letters) != len(_MODIFIER_TARGETS):
        raise ValueError(f"expected {len(_MODIFIER_TARGETS)} modifier keys, got {letters!r}")
    if len(set(letters)) != len(letters):
        raise ValueError(f"modifier keys must be distinct, got {letters!r}")
    return dict(zip(letters, _MODIFIER_TARGETS))


class InputTranslator:
    """Pure, total mapping from key events to guest ``(kind, code)`` pairs."""

    def __init__(self, modifier_keys: str = DEFAULT_MODIFIER_KEYS):
        self._aliases: Mapping[str, int] = MappingProxyType(modifier_aliases(modifier_keys))

    @property
    def aliases(self) -> Mapping[str, int]:
        return self._aliases

    def key_code(self, key: Key) -> int | None:
        if isinstance(key, NamedKey):
            number = key.function_number
            if number is not None:
                return FUNCTION_KEY_BASE + number
            return NAMED_KEYS.get(key)
        if key in self._aliases:
            return self._aliases[key]
        if key == " ":
            return KEY_SPACE
        if len(key) != 1:
            return None
        return ord(key)

    def event_kind(self, kind: KeyEventKind) -> int | None:
        return EVENT_KINDS.get(kind)

    def translate(self, event: KeyEvent) -> tuple[int, int] | None:
        """Return ``(event_kind, key_code)`` or ``None`` if the event is dropped."""
        code = self.key_code(event.key)
        kind = self.event_kind(event.kind)
        if code is None or kind is None:
            return None
        return kind, code
