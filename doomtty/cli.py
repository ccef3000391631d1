"""Command-line entry point."""

from __future__ import annotations

import logging
import sys
from collections.abc import Sequence

from .config import HostConfig, build_parser
from .encoding import ImagePicker
from .errors import HostError
from .host import GuestRuntime, Host
from .input import InputTranslator
from .loop import MainLoop
from .renderer import FrameRenderer
from .state import HostState
from .stubguest import build_stub_guest
from .terminal import Terminal, query_capabilities

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(config: HostConfig) -> None:
    # stdout and stderr belong to the TUI; logs only go to a file.
    if config.log_file is None:
        return
    logging.basicConfig(
        filename=config.log_file,
        level=logging.DEBUG if config.verbose else logging.INFO,
        format=LOG_FORMAT,
    )


def run(config: HostConfig, terminal: Terminal | None = None) -> int:
    """Load the guest, then run it in the terminal until the user quits."""
    terminal = terminal or Terminal()
    capabilities = query_capabilities(config.fallback_font_size)
    protocol = config.protocol or capabilities.protocol
    logger.info(
        "Font size %sx%s, output encoding %s", capabilities.font_size[0], capabilities.font_size[1], protocol.value
    )
    state = HostState(
        default_font_size=capabilities.font_size,
        picker=ImagePicker(capabilities.font_size, protocol),
        zoom=config.zoom,
    )
    renderer = FrameRenderer(state, terminal)
    host = Host(state, renderer)
    if config.demo:
        runtime = GuestRuntime.load(build_stub_guest(), host, config.memory_pages)
    else:
        runtime = GuestRuntime.from_file(config.wasm_path, host, config.memory_pages)

    loop = MainLoop(
        runtime,
        state,
        renderer,
        terminal,
        InputTranslator(config.modifier_keys),
        sleep_interval=config.sleep_interval,
    )
    with terminal:
        loop.run()
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    config = HostConfig.from_args(args)
    configure_logging(config)
    try:
        return run(config)
    except (HostError, FileNotFoundError) as e:
        logger.error("Fatal: %s", e)
        print(f"error: {e}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        return 130
