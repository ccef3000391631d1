"""Bounds-checked access to the linear memory shared with the guest."""

from __future__ import annotations

from wasmtime import Limits, Memory, MemoryType, Store

from .errors import GuestMemoryError

PAGE_SIZE = 64 * 1024
DEFAULT_PAGES = 102

_U32_MASK = 0xFFFF_FFFF


def _unsigned(value: int) -> int:
    # Wasm pointers are u32 but arrive in Python as signed i32.
    return value & _U32_MASK


class HostMemory:
    """
    Owns the guest's linear memory. Every read driven by a guest-supplied
    offset goes through ``read``, which checks the request against the
    region's current size (the guest may grow it) before touching it.
    """

    def __init__(self, store: Store, memory: Memory):
        self.store = store
        self.memory = memory

    @classmethod
    def create(cls, store: Store, pages: int = DEFAULT_PAGES) -> "HostMemory":
        """Allocate a growable memory of ``pages`` 64 KiB pages."""
        memory = Memory(store, MemoryType(Limits(pages, None)))
        return cls(store, memory)

    @property
    def size(self) -> int:
        return self.memory.data_len(self.store)

    def _check(self, offset: int, length: int) -> tuple[int, int]:
        start = _unsigned(offset)
        count = _unsigned(length)
        size = self.size
        if start + count > size:
            raise GuestMemoryError(start, count, size)
        return start, count

    def read(self, offset: int, length: int) -> bytes:
        """Return ``length`` bytes starting at ``offset``."""
        start, count = self._check(offset, length)
        return bytes(self.memory.read(self.store, start, start + count))

    def write(self, offset: int, data: bytes) -> None:
        """Write ``data`` at ``offset``."""
        start, _ = self._check(offset, len(data))
        self.memory.write(self.store, data, start)
