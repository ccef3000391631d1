"""Run a WebAssembly game engine inside the terminal."""

import logging

from .errors import DecodeError, GuestMemoryError, GuestTrap, HostError, ImageError, ModuleError, TerminalError
from .host import GuestRuntime, Host
from .loop import MainLoop

__version__ = "0.1.0"

__all__ = [
    "DecodeError",
    "GuestMemoryError",
    "GuestRuntime",
    "GuestTrap",
    "Host",
    "HostError",
    "ImageError",
    "MainLoop",
    "ModuleError",
    "TerminalError",
]

logging.getLogger(__name__).addHandler(logging.NullHandler())
