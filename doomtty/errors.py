"""Exceptions raised by the host.

Per-frame and per-callback errors (``GuestMemoryError``, ``DecodeError``,
``ImageError``) are absorbed at the callback boundary and shown as the log
line. The rest end the session.
"""


class HostError(Exception):
    """Base class for every error raised by the host."""


class ModuleError(HostError):
    """The guest module is malformed or does not satisfy the host ABI."""


class GuestMemoryError(HostError):
    """A guest-supplied offset/length falls outside the linear memory."""

    def __init__(self, offset: int, length: int, size: int):
        self.offset = offset
        self.length = length
        self.size = size
        super().__init__(
            f"guest memory access out of bounds: offset={offset} length={length} size={size}"
        )


class DecodeError(HostError):
    """Guest bytes that should be text are not valid UTF-8."""


class ImageError(HostError):
    """A frame buffer does not hold exactly one full guest frame."""


class TerminalError(HostError):
    """Reading from or drawing to the terminal failed."""


class GuestTrap(HostError):
    """The guest trapped while running ``step`` or ``submit_input``."""
