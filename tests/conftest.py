from __future__ import annotations

from collections import deque
from collections.abc import Callable, Iterable

import pytest
from wasmtime import Engine, Store

from doomtty.encoding import CellArea
from doomtty.host import GuestRuntime, Host
from doomtty.keys import KeyEvent, KeyEventKind
from doomtty.memory import HostMemory
from doomtty.renderer import FrameRenderer, FrameView
from doomtty.state import HostState
from doomtty.stubguest import build_stub_guest

# Small image area keeps encoding fast in tests.
TEST_AREA: CellArea = (20, 10)


class ManualClock:
    """A monotonic clock that only moves when told to."""

    def __init__(self, start: float = 0.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeTerminal:
    """Stands in for the real terminal: scripted key batches in, views out."""

    def __init__(self, batches: Iterable[Iterable[KeyEvent]] = (), area: CellArea = TEST_AREA):
        self.batches = deque(list(batch) for batch in batches)
        self.area = area
        self.views: list[FrameView] = []
        self.polls = 0
        self.entered = False

    def __enter__(self) -> "FakeTerminal":
        self.entered = True
        return self

    def __exit__(self, *exc_info) -> None:
        self.entered = False

    def poll(self) -> list[KeyEvent]:
        self.polls += 1
        return self.batches.popleft() if self.batches else []

    def image_area(self) -> CellArea:
        return self.area

    def draw(self, view: FrameView) -> None:
        self.views.append(view)


def press(key) -> KeyEvent:
    return KeyEvent(key, KeyEventKind.PRESS)


def release(key) -> KeyEvent:
    return KeyEvent(key, KeyEventKind.RELEASE)


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def state(clock: ManualClock) -> HostState:
    return HostState(clock=clock)


@pytest.fixture
def terminal() -> FakeTerminal:
    return FakeTerminal()


@pytest.fixture
def renderer(state: HostState, terminal: FakeTerminal) -> FrameRenderer:
    return FrameRenderer(state, terminal)


@pytest.fixture
def store() -> Store:
    return Store(Engine())


@pytest.fixture
def memory(store: Store) -> HostMemory:
    return HostMemory.create(store, pages=20)


@pytest.fixture
def host(state: HostState, renderer: FrameRenderer, memory: HostMemory) -> Host:
    h = Host(state, renderer)
    h.memory = memory
    return h


@pytest.fixture
def make_runtime(state: HostState, renderer: FrameRenderer) -> Callable[..., GuestRuntime]:
    """Load a stub guest (``build_stub_guest`` keyword arguments) against a fresh host."""

    def _make(**stub_options) -> GuestRuntime:
        stub_options.setdefault("tick_ms", 0)
        return GuestRuntime.load(build_stub_guest(**stub_options), Host(state, renderer))

    return _make
