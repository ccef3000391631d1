"""Session configuration and the command-line parser that builds it."""

from __future__ import annotations

import argparse
from dataclasses import dataclass
from pathlib import Path

from .encoding import DEFAULT_FONT_SIZE, FontSize, ProtocolType
from .input import DEFAULT_MODIFIER_KEYS, modifier_aliases
from .loop import DEFAULT_SLEEP_INTERVAL
from .memory import DEFAULT_PAGES

DEFAULT_WASM = Path("doom.wasm")


@dataclass(frozen=True)
class HostConfig:
    wasm_path: Path = DEFAULT_WASM
    memory_pages: int = DEFAULT_PAGES
    sleep_interval: float = DEFAULT_SLEEP_INTERVAL
    fallback_font_size: FontSize = DEFAULT_FONT_SIZE
    protocol: ProtocolType | None = None
    zoom: int = 1
    modifier_keys: str = DEFAULT_MODIFIER_KEYS
    log_file: Path | None = None
    verbose: bool = False
    demo: bool = False

    @classmethod
    def from_args(cls, args: argparse.Namespace) -> "HostConfig":
        return cls(
            wasm_path=args.wasm,
            memory_pages=args.memory_pages,
            sleep_interval=args.sleep_ms / 1000.0,
            fallback_font_size=args.font_size,
            protocol=args.protocol,
            zoom=args.zoom,
            modifier_keys=args.modifier_keys,
            log_file=args.log_file,
            verbose=args.verbose,
            demo=args.demo,
        )


def _positive_int(text: str) -> int:
    try:
        value = int(text)
    except ValueError:
        raise argparse.ArgumentTypeError(f"not an integer: {text!r}") from None
    if value < 1:
        raise argparse.ArgumentTypeError(f"must be at least 1, got {value}")
    return value


def _non_negative_float(text: str) -> float:
    try:
        value = float(text)
    except ValueError:
        raise argparse.ArgumentTypeError(f"not a number: {text!r}") from None
    if value < 0:
        raise argparse.ArgumentTypeError(f"must not be negative, got {value}")
    return value


def _font_size(text: str) -> FontSize:
    width, sep, height = text.lower().partition("x")
    if not sep:
        raise argparse.ArgumentTypeError(f"expected WIDTHxHEIGHT, got {text!r}")
    return _positive_int(width), _positive_int(height)


def _protocol(text: str) -> ProtocolType:
    try:
        return ProtocolType.parse(text)
    except ValueError as e:
        raise argparse.ArgumentTypeError(str(e)) from None


def _modifier_keys(text: str) -> str:
    try:
        modifier_aliases(text)
    except ValueError as e:
        raise argparse.ArgumentTypeError(str(e)) from None
    return text


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="doomtty",
        description="Run a WebAssembly build of DOOM in the terminal.",
        epilog="Keys: q quits, p switches image protocol, + and - change the zoom. "
        "Everything else goes to the game.",
    )
    parser.add_argument("wasm", nargs="?", type=Path, default=DEFAULT_WASM, help="guest module (default: %(default)s)")
    parser.add_argument("--demo", action="store_true", help="run the built-in stub guest instead of a module file")
    parser.add_argument(
        "--protocol",
        type=_protocol,
        default=None,
        help="initial image encoding: " + ", ".join(p.value for p in ProtocolType) + " (default: autodetect)",
    )
    parser.add_argument("--zoom", type=_positive_int, default=1, help="initial zoom level (default: %(default)s)")
    parser.add_argument(
        "--font-size",
        type=_font_size,
        default=DEFAULT_FONT_SIZE,
        metavar="WxH",
        help="cell size in pixels when the terminal does not report one (default: 8x16)",
    )
    parser.add_argument(
        "--modifier-keys",
        type=_modifier_keys,
        default=DEFAULT_MODIFIER_KEYS,
        metavar="KEYS",
        help="four letters standing in for ctrl, alt, shift and space, or '' to disable (default: %(default)s)",
    )
    parser.add_argument(
        "--memory-pages",
        type=_positive_int,
        default=DEFAULT_PAGES,
        help="minimum guest memory in 64 KiB pages (default: %(default)s)",
    )
    parser.add_argument(
        "--sleep-ms",
        type=_non_negative_float,
        default=DEFAULT_SLEEP_INTERVAL * 1000,
        help="pause between loop iterations in milliseconds (default: %(default)s)",
    )
    parser.add_argument("--log-file", type=Path, default=None, help="write host and guest logs to this file")
    parser.add_argument("-v", "--verbose", action="store_true", help="log at DEBUG level")
    return parser
