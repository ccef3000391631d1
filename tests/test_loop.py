"""End-to-end tests: scripted key batches through the main loop into a stub guest."""

from collections.abc import Callable

import pytest

from doomtty.config import HostConfig
from doomtty.cli import run
from doomtty.encoding import ProtocolType
from doomtty.errors import ModuleError
from doomtty.host import GuestRuntime
from doomtty.input import GUEST_PRESS, GUEST_RELEASE
from doomtty.keys import KeyEvent, KeyEventKind, NamedKey
from doomtty.loop import LoopPhase, MainLoop
from doomtty.renderer import FrameRenderer
from doomtty.state import HostState
from doomtty.stubguest import EXPORT_NAMES, build_stub_guest, read_events

from .conftest import FakeTerminal, press, release

SNAPSHOT = 8192
SLEEP_INTERVAL = 0.001


class RecordingSleep:
    def __init__(self) -> None:
        self.calls: list[float] = []

    def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


@pytest.fixture
def make_loop(
    make_runtime: Callable[..., GuestRuntime], state: HostState, renderer: FrameRenderer, terminal: FakeTerminal
) -> Callable[..., MainLoop]:
    def _make(*batches: list[KeyEvent], **stub_options) -> MainLoop:
        terminal.batches.extend(list(batch) for batch in batches)
        return MainLoop(
            make_runtime(**stub_options),
            state,
            renderer,
            terminal,
            sleep_interval=SLEEP_INTERVAL,
            sleep=RecordingSleep(),
        )

    return _make


def guest_events(loop: MainLoop) -> list[tuple[int, int]]:
    return read_events(loop.runtime.memory.read(0, SNAPSHOT))


class TestQuit:
    """The quit key ends the loop on the next poll."""

    def test_quit_on_first_poll(self, make_loop: Callable[..., MainLoop], terminal: FakeTerminal) -> None:
        """[press q] exits before the guest steps at all."""
        loop = make_loop([press("q")])
        assert loop.run() == 0
        assert loop.phase is LoopPhase.EXITING
        assert terminal.polls == 1

    def test_quit_after_running(self, make_loop: Callable[..., MainLoop], terminal: FakeTerminal) -> None:
        """Quit arriving later stops the loop on that poll."""
        loop = make_loop([], [], [press("Q")])
        assert loop.run() == 2
        assert terminal.polls == 3

    def test_quit_release_ignored(self, make_loop: Callable[..., MainLoop]) -> None:
        """Only a press quits; a stray release is swallowed."""
        loop = make_loop([release("q")], [press("q")])
        assert loop.run() == 1
        assert guest_events(loop) == []

    def test_sleeps_each_iteration(self, make_loop: Callable[..., MainLoop]) -> None:
        """Every iteration yields for the configured interval."""
        loop = make_loop([], [], [], [press("q")])
        loop.run()
        assert loop.sleep.calls == [SLEEP_INTERVAL] * 3


class TestAppKeys:
    """Zoom and encoding keys change host state and never reach the guest."""

    def test_plus_plus_minus(self, make_loop: Callable[..., MainLoop], state: HostState) -> None:
        """[+, +, -] from zoom 1 ends at zoom 2."""
        loop = make_loop([press("+")], [press("+")], [press("-")], [press("q")])
        loop.run()
        assert state.zoom == 2
        assert guest_events(loop) == []

    def test_zoom_out_clamps(self, make_loop: Callable[..., MainLoop], state: HostState) -> None:
        """Zooming out below 1 stays at 1."""
        make_loop([press("-"), press("-")], [press("q")]).run()
        assert state.zoom == 1

    def test_cycle_encoding_rebuilds_frame(
        self, make_loop: Callable[..., MainLoop], state: HostState
    ) -> None:
        """p switches encoding and re-encodes the frame already on screen."""
        make_loop([], [press("p")], [press("q")]).run()
        assert state.protocol is ProtocolType.SIXEL
        assert state.current_frame.protocol is ProtocolType.SIXEL

    def test_app_key_releases_not_forwarded(self, make_loop: Callable[..., MainLoop]) -> None:
        """Releases of host keys are swallowed too."""
        loop = make_loop([press("p"), release("p"), release("+"), release("-")], [press("q")])
        loop.run()
        assert guest_events(loop) == []


class TestForwarding:
    """All other keys go to the guest through the translator."""

    def test_keys_forwarded_in_order(self, make_loop: Callable[..., MainLoop]) -> None:
        """Presses and releases arrive as (kind, code); repeats are dropped."""
        loop = make_loop(
            [press("a"), KeyEvent("a", KeyEventKind.REPEAT), release("a"), press(NamedKey.UP)],
            [press("q")],
        )
        loop.run()
        assert guest_events(loop) == [(GUEST_PRESS, ord("a")), (GUEST_RELEASE, ord("a")), (GUEST_PRESS, 0xAD)]

    def test_untranslatable_keys_dropped(self, make_loop: Callable[..., MainLoop]) -> None:
        """Keys without a guest code are ignored."""
        loop = make_loop([press(NamedKey.HOME), press(NamedKey.PAGE_UP)], [press("q")])
        loop.run()
        assert guest_events(loop) == []

    def test_modifier_alias(self, make_loop: Callable[..., MainLoop]) -> None:
        """z fires the guest's ctrl key."""
        loop = make_loop([press("z")], [press("q")])
        loop.run()
        assert guest_events(loop) == [(GUEST_PRESS, 0x80 + 0x1D)]


class TestFrames:
    """The guest's draw callback drives the terminal."""

    def test_each_step_draws(
        self, make_loop: Callable[..., MainLoop], state: HostState, terminal: FakeTerminal
    ) -> None:
        """With a zero tick every step produces a frame."""
        make_loop([], [], [], [press("q")]).run()
        assert len(terminal.views) == 3
        assert state.current_frame is not None

    def test_init_greeting_is_log_line(self, make_loop: Callable[..., MainLoop], state: HostState) -> None:
        """The guest's init log shows up as the log line."""
        make_loop([press("q")]).run()
        assert state.last_log_line == "stub guest ready"
        assert not state.last_log_error


class TestStartup:
    """A guest without the full ABI never reaches the loop."""

    def test_missing_submit_input(self, tmp_path, terminal: FakeTerminal) -> None:
        """Missing add_browser_event fails with ModuleError before any poll."""
        wasm = tmp_path / "doom.wasm"
        wasm.write_bytes(build_stub_guest(exports=[n for n in EXPORT_NAMES if n != "add_browser_event"]))
        terminal.batches.append([press("q")])
        with pytest.raises(ModuleError):
            run(HostConfig(wasm_path=wasm), terminal)
        assert terminal.polls == 0
        assert not terminal.entered

    def test_run_demo(self, terminal: FakeTerminal) -> None:
        """The demo guest runs until quit and the terminal is released."""
        terminal.batches.extend([[], [press("q")]])
        assert run(HostConfig(demo=True, sleep_interval=0), terminal) == 0
        assert terminal.polls == 2
        assert not terminal.entered
