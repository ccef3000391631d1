# stubguest.py
# Emits a small WebAssembly guest that speaks the same ABI as the real game:
#   (import "env" "memory" (memory N))
#   (import "js" "js_console_log" (func (param i32 i32)))
#   (import "js" "js_stderr" (func (param i32 i32)))
#   (import "js" "js_milliseconds_since_start" (func (result i32)))
#   (import "js" "js_draw_screen" (func (param i32)))
#   (export "main" (func (param i32 i32) (result i32)))
#   (export "doom_loop_step" (func))
#   (export "add_browser_event" (func (param i32 i32)))
#
# main logs a greeting. doom_loop_step paces itself on the host clock and,
# once per tick, paints a moving gradient into its frame buffer and asks the
# host to draw it. add_browser_event appends (kind, code) to an event log in
# memory so the host side can be checked from outside.
#
# Deterministic output: the WAT depends only on the arguments.

from __future__ import annotations

import sys
from collections.abc import Iterable, Sequence
from pathlib import Path

from wasmtime import wat2wasm

from .memory import DEFAULT_PAGES
from .renderer import FRAME_BYTES

OUT_WASM = Path("stub-guest.wasm")

EXPORT_NAMES = ("main", "doom_loop_step", "add_browser_event")
DEFAULT_TICK_MS = 28

EVENT_COUNT_OFFSET = 1024
EVENT_LOG_OFFSET = 1032
EVENT_LOG_CAPACITY = 256
GREETING_OFFSET = 4096
FRAME_OFFSET = 65536

DEFAULT_GREETING = b"stub guest ready"


def build_stub_guest(
    *,
    exports: Iterable[str] = EXPORT_NAMES,
    tick_ms: int = DEFAULT_TICK_MS,
    greeting: bytes = DEFAULT_GREETING,
    init_status: int = 0,
    memory_pages: int = DEFAULT_PAGES,
    import_memory: bool = True,
    draw_offset: int = FRAME_OFFSET,
    extra_imports: Sequence[tuple[str, str]] = (),
) -> bytes:
    """Return the compiled guest module."""
    return wat2wasm(
        emit_wat(
            exports=exports,
            tick_ms=tick_ms,
            greeting=greeting,
            init_status=init_status,
            memory_pages=memory_pages,
            import_memory=import_memory,
            draw_offset=draw_offset,
            extra_imports=extra_imports,
        )
    )


# --- WAT emission -------------------------------------------------------------------


def emit_wat(
    *,
    exports: Iterable[str] = EXPORT_NAMES,
    tick_ms: int = DEFAULT_TICK_MS,
    greeting: bytes = DEFAULT_GREETING,
    init_status: int = 0,
    memory_pages: int = DEFAULT_PAGES,
    import_memory: bool = True,
    draw_offset: int = FRAME_OFFSET,
    extra_imports: Sequence[tuple[str, str]] = (),
) -> str:
    exported = set(exports)
    unknown = exported - set(EXPORT_NAMES)
    if unknown:
        raise ValueError(f"unknown exports: {sorted(unknown)}")

    # Imports have to precede every definition, so an owned memory goes after them.
    memory_import = f'  (import "env" "memory" (memory {memory_pages}))' if import_memory else ""
    memory_def = "" if import_memory else f'  (memory (export "memory") {memory_pages})'

    extra = "\n".join(
        f'  (import "{module}" "{name}" (func $extra_{n}))' for n, (module, name) in enumerate(extra_imports)
    )

    export_lines = "\n".join(
        f'  (export "{name}" (func ${name}))' for name in EXPORT_NAMES if name in exported
    )

    wat = f"""
(module
{memory_import}
  (import "js" "js_console_log" (func $log (param i32 i32)))
  (import "js" "js_stderr" (func $log_error (param i32 i32)))
  (import "js" "js_milliseconds_since_start" (func $now (result i32)))
  (import "js" "js_draw_screen" (func $draw (param i32)))
{extra}
{memory_def}

  (global $last_tick (mut i32) (i32.const 0))
  (global $frame (mut i32) (i32.const 0))

  (data (i32.const {GREETING_OFFSET}) "{_wat_bytes(greeting)}") ;; greeting

  ;; main(argc: i32, argv: i32) -> i32
  (func $main (param i32 i32) (result i32)
    i32.const {GREETING_OFFSET}
    i32.const {len(greeting)}
    call $log
    call $now
    i32.const {tick_ms}
    i32.sub
    global.set $last_tick
    i32.const {init_status})

  ;; doom_loop_step(): at most one frame per tick
  (func $doom_loop_step
    (local $i i32)
    call $now
    global.get $last_tick
    i32.sub
    i32.const {tick_ms}
    i32.lt_s
    if
      return
    end
    call $now
    global.set $last_tick
    block $done
      loop $fill
        local.get $i
        i32.const {FRAME_BYTES}
        i32.ge_u
        br_if $done
        i32.const {FRAME_OFFSET}
        local.get $i
        i32.add
        local.get $i
        global.get $frame
        i32.const 4096
        i32.mul
        i32.add
        i32.const 0x00010203
        i32.mul
        i32.const 0xff000000
        i32.or
        i32.store
        local.get $i
        i32.const 4
        i32.add
        local.set $i
        br $fill
      end
    end
    global.get $frame
    i32.const 1
    i32.add
    global.set $frame
    i32.const {draw_offset}
    call $draw)

  ;; add_browser_event(kind: i32, code: i32): append to the ring at {EVENT_LOG_OFFSET}
  (func $add_browser_event (param $kind i32) (param $code i32)
    (local $slot i32)
    i32.const {EVENT_COUNT_OFFSET}
    i32.load
    i32.const {EVENT_LOG_CAPACITY - 1}
    i32.and
    i32.const 8
    i32.mul
    i32.const {EVENT_LOG_OFFSET}
    i32.add
    local.set $slot
    local.get $slot
    local.get $kind
    i32.store
    local.get $slot
    local.get $code
    i32.store offset=4
    i32.const {EVENT_COUNT_OFFSET}
    i32.const {EVENT_COUNT_OFFSET}
    i32.load
    i32.const 1
    i32.add
    i32.store)

{export_lines}
)
    """.strip()
    return wat


def _wat_bytes(b: bytes) -> str:
    # Encode arbitrary bytes into WAT string with escapes
    # Printable ASCII except " and \ are emitted directly, others as \xx
    out = []
    for by in b:
        ch = chr(by)
        if 32 <= by <= 126 and ch not in {'"', "\\"}:
            out.append(ch)
        else:
            out.append(f"\\{by:02x}")
    return "".join(out)


def read_events(data: bytes) -> list[tuple[int, int]]:
    """
    Decode the stub's event log from a memory snapshot starting at offset 0.
    Returns the ``(kind, code)`` pairs in arrival order (last
    ``EVENT_LOG_CAPACITY`` only).
    """
    count = int.from_bytes(data[EVENT_COUNT_OFFSET : EVENT_COUNT_OFFSET + 4], "little")
    first = max(0, count - EVENT_LOG_CAPACITY)
    events = []
    for n in range(first, count):
        slot = EVENT_LOG_OFFSET + (n % EVENT_LOG_CAPACITY) * 8
        kind = int.from_bytes(data[slot : slot + 4], "little", signed=True)
        code = int.from_bytes(data[slot + 4 : slot + 8], "little", signed=True)
        events.append((kind, code))
    return events


# --- Main ---------------------------------------------------------------------------

if __name__ == "__main__":
    out = Path(sys.argv[1]) if len(sys.argv) > 1 else OUT_WASM
    wasm_bytes = build_stub_guest()
    out.write_bytes(wasm_bytes)
    print(f"Wrote {out} ({len(wasm_bytes)} bytes)")
