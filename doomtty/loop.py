"""The host's main loop: poll input, feed the guest, let it step, repeat."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from enum import StrEnum
from typing import Protocol

from .host import GuestRuntime
from .input import InputTranslator
from .keys import KeyEvent
from .renderer import FrameRenderer
from .state import HostState

logger = logging.getLogger(__name__)

DEFAULT_SLEEP_INTERVAL = 0.001


class EventSource(Protocol):
    def poll(self) -> list[KeyEvent]:
        """Return pending key events without waiting."""
        ...


class LoopPhase(StrEnum):
    INIT = "init"
    RUNNING = "running"
    EXITING = "exiting"


class MainLoop:
    """
    Drives one guest session.

    The guest paces itself: ``step`` is a no-op until its tick has elapsed,
    so the loop just calls it as often as it can, sleeping a millisecond
    between iterations to keep host CPU down without missing a tick
    boundary by more than that.
    """

    def __init__(
        self,
        runtime: GuestRuntime,
        state: HostState,
        renderer: FrameRenderer,
        events: EventSource,
        translator: InputTranslator | None = None,
        sleep_interval: float = DEFAULT_SLEEP_INTERVAL,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.runtime = runtime
        self.state = state
        self.renderer = renderer
        self.events = events
        self.translator = translator or InputTranslator()
        self.sleep_interval = sleep_interval
        self.sleep = sleep
        self.phase = LoopPhase.INIT
        self.iterations = 0

    # Keys the host keeps for itself, acted on when pressed and never forwarded.
    def _app_action(self, key: object) -> Callable[[], None] | None:
        if key in ("q", "Q"):
            return self.state.request_exit
        if key in ("p", "P"):
            return self.cycle_protocol
        if key == "+":
            return self.zoom_in
        if key == "-":
            return self.zoom_out
        return None

    def run(self) -> int:
        """Run until the quit key; return the number of completed iterations."""
        self.phase = LoopPhase.INIT
        self.runtime.init(0, 0)
        self.runtime.host.raise_pending()

        self.phase = LoopPhase.RUNNING
        while not self.state.exit:
            self.poll_events()
            if self.state.exit:
                break
            self.runtime.step()
            self.runtime.host.raise_pending()
            self.iterations += 1
            self.sleep(self.sleep_interval)

        self.phase = LoopPhase.EXITING
        logger.info("Leaving main loop after %d iterations", self.iterations)
        return self.iterations

    def poll_events(self) -> None:
        for event in self.events.poll():
            self.handle_key(event)

    def handle_key(self, event: KeyEvent) -> None:
        action = self._app_action(event.key)
        if action is not None:
            if event.is_press:
                action()
            return
        translated = self.translator.translate(event)
        if translated is None:
            return
        self.runtime.submit_input(*translated)
        self.runtime.host.raise_pending()

    def cycle_protocol(self) -> None:
        protocol = self.state.cycle_protocol()
        logger.info("Switched output encoding to %s", protocol.value)
        self.renderer.refresh()

    def zoom_in(self) -> None:
        self.state.increment_zoom()
        self.renderer.refresh()

    def zoom_out(self) -> None:
        self.state.decrement_zoom()
        self.renderer.refresh()
