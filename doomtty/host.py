from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from wasmtime import (
    Engine,
    Func,
    FuncType,
    Linker,
    Memory,
    MemoryType,
    Module,
    Store,
    Trap,
    ValType,
    WasmtimeError,
)

from .errors import DecodeError, GuestMemoryError, GuestTrap, ImageError, ModuleError, TerminalError
from .memory import DEFAULT_PAGES, HostMemory
from .renderer import FRAME_BYTES, FrameRenderer
from .state import HostState

logger = logging.getLogger(__name__)
guest_logger = logging.getLogger("doomtty.guest")

MEMORY_NAMESPACE = "env"
MEMORY_NAME = "memory"
IMPORT_NAMESPACE = "js"

INVALID_TEXT_PLACEHOLDER = "<guest log message is not valid UTF-8>"

_I32_MASK = 0xFFFF_FFFF
_I32_SIGN = 0x8000_0000


def _wrap_i32(value: int) -> int:
    value &= _I32_MASK
    return value - (1 << 32) if value & _I32_SIGN else value


def decode_text(data: bytes) -> str:
    try:
        return data.decode("utf-8")
    except UnicodeDecodeError as e:
        raise DecodeError(f"guest text is not valid UTF-8: {e.reason} at byte {e.start}") from e


# --- Host side of the ABI ---


class Host:
    """
    Implements the functions the guest imports. Each one runs while the main
    loop is blocked inside a guest call, reads guest memory only through
    ``HostMemory`` and turns every per-call failure into the visible log
    line rather than letting it unwind through the guest.
    """

    def __init__(self, state: HostState, renderer: FrameRenderer | None = None):
        self.state = state
        self.renderer = renderer
        self.memory: HostMemory | None = None
        self.pending_error: TerminalError | None = None

    def log_normal(self, offset: int, length: int) -> None:
        self._log(offset, length, error=False)

    def log_error(self, offset: int, length: int) -> None:
        self._log(offset, length, error=True)

    def _log(self, offset: int, length: int, error: bool) -> None:
        if self.memory is None:
            self.state.log("host error: memory not available for logging", error=True)
            return
        try:
            message = decode_text(self.memory.read(offset, length))
        except GuestMemoryError as e:
            logger.warning("Dropped guest log line: %s", e)
            self.state.log(f"host error: {e}", error=True)
            return
        except DecodeError as e:
            logger.warning("%s", e)
            message, error = INVALID_TEXT_PLACEHOLDER, True
        guest_logger.log(logging.ERROR if error else logging.INFO, "%s", message)
        self.state.log(message, error)

    def elapsed_ms(self) -> int:
        """Milliseconds since the session started; the guest's only clock."""
        return _wrap_i32(self.state.elapsed_ms())

    def draw_frame(self, offset: int) -> None:
        if self.memory is None or self.renderer is None:
            self.state.log("host error: draw requested before the host was ready", error=True)
            return
        try:
            self.renderer.on_frame(self.memory.read(offset, FRAME_BYTES))
        except (GuestMemoryError, ImageError) as e:
            # Keep the previous frame on screen.
            logger.warning("Skipped guest frame: %s", e)
            self.state.log(f"draw failed: {e}", error=True)
        except TerminalError as e:
            # Can't unwind through the guest; the loop re-raises it after the call.
            self.pending_error = e

    def raise_pending(self) -> None:
        if self.pending_error is not None:
            error, self.pending_error = self.pending_error, None
            raise error


# --- ABI description ---


def _i32s(count: int) -> list[ValType]:
    return [ValType.i32() for _ in range(count)]


@dataclass(frozen=True)
class ImportSpec:
    name: str
    params: int
    results: int
    handler: str

    def func_type(self) -> FuncType:
        return FuncType(_i32s(self.params), _i32s(self.results))


@dataclass(frozen=True)
class ExportSpec:
    role: str
    name: str
    params: int
    results: int

    def matches(self, ty: Any) -> bool:
        if not isinstance(ty, FuncType):
            return False
        return [str(p) for p in ty.params] == ["i32"] * self.params and [
            str(r) for r in ty.results
        ] == ["i32"] * self.results


HOST_IMPORTS = (
    ImportSpec("js_console_log", 2, 0, "log_normal"),
    ImportSpec("js_stdout", 2, 0, "log_normal"),
    ImportSpec("js_stderr", 2, 0, "log_error"),
    ImportSpec("js_milliseconds_since_start", 0, 1, "elapsed_ms"),
    ImportSpec("js_draw_screen", 1, 0, "draw_frame"),
)

REQUIRED_EXPORTS = (
    ExportSpec("init", "main", 2, 1),
    ExportSpec("step", "doom_loop_step", 0, 0),
    ExportSpec("submit_input", "add_browser_event", 2, 0),
)


# --- Guest runtime ---


class GuestRuntime:
    """
    A running guest instance: the module, its store and memory, and the
    three entry points the host drives it with.
    """

    def __init__(self, store: Store, module: Module, host: Host, exports: dict[str, Func]):
        self.store = store
        self.module = module
        self.host = host
        self._exports = exports

    @property
    def memory(self) -> HostMemory:
        if self.host.memory is None:
            raise ModuleError("guest runtime has no memory attached")
        return self.host.memory

    @classmethod
    def from_file(cls, wasm_file: Path, host: Host, memory_pages: int = DEFAULT_PAGES) -> "GuestRuntime":
        if not wasm_file.exists():
            raise FileNotFoundError(f"Wasm file not found at: {wasm_file}")
        logger.info("Loading Wasm module from %s...", wasm_file)
        return cls.load(wasm_file.read_bytes(), host, memory_pages)

    @classmethod
    def load(cls, wasm_bytes: bytes, host: Host, memory_pages: int = DEFAULT_PAGES) -> "GuestRuntime":
        engine = Engine()
        store = Store(engine)
        try:
            module = Module(engine, wasm_bytes)
        except WasmtimeError as e:
            raise ModuleError(f"invalid guest module: {e}") from e

        memory_import = _analyze_imports(module)
        _check_exports(module)

        linker = Linker(engine)
        if memory_import is not None:
            pages = max(memory_pages, memory_import.limits.min)
            host.memory = HostMemory.create(store, pages)
            linker.define(store, MEMORY_NAMESPACE, MEMORY_NAME, host.memory.memory)
        for spec in HOST_IMPORTS:
            linker.define_func(IMPORT_NAMESPACE, spec.name, spec.func_type(), getattr(host, spec.handler))

        logger.info("Instantiating module...")
        try:
            instance = linker.instantiate(store, module)
        except (WasmtimeError, Trap) as e:
            raise ModuleError(f"failed to instantiate guest module: {e}") from e

        exports = instance.exports(store)
        if memory_import is None:
            # No imported memory: share the one the guest exports instead.
            try:
                memory = exports[MEMORY_NAME]
            except KeyError:
                memory = None
            if not isinstance(memory, Memory):
                raise ModuleError("guest module neither imports nor exports a memory")
            host.memory = HostMemory(store, memory)

        funcs = {}
        for spec in REQUIRED_EXPORTS:
            func = exports[spec.name]
            if not isinstance(func, Func):
                raise ModuleError(f"export '{spec.name}' is not a function")
            funcs[spec.role] = func

        logger.info("Successfully instantiated WASM module.")
        return cls(store, module, host, funcs)

    def _call(self, role: str, *args: int) -> Any:
        func = self._exports[role]
        logger.debug("Calling exported function '%s' with args: %s", role, args)
        return func(self.store, *args)

    def init(self, arg0: int = 0, arg1: int = 0) -> int:
        """Run the guest's initialization entry point once."""
        try:
            status = self._call("init", arg0, arg1)
        except (WasmtimeError, Trap) as e:
            raise ModuleError(f"guest init failed: {e}") from e
        logger.info("Guest init returned %s", status)
        return status

    def step(self) -> None:
        """Let the guest advance at most one tick; it decides whether one is due."""
        try:
            self._call("step")
        except (WasmtimeError, Trap) as e:
            raise GuestTrap(f"guest step failed: {e}") from e

    def submit_input(self, event_kind: int, key_code: int) -> None:
        try:
            self._call("submit_input", event_kind, key_code)
        except (WasmtimeError, Trap) as e:
            raise GuestTrap(f"guest rejected input ({event_kind}, {key_code}): {e}") from e


def _analyze_imports(module: Module) -> MemoryType | None:
    """Check every import is one the host provides; return the memory import's type."""
    logger.debug("Analyzing WASM module imports...")
    provided = {spec.name for spec in HOST_IMPORTS}
    memory_import = None
    for imp in module.imports:
        logger.debug("  - Import: %s.%s", imp.module, imp.name)
        if imp.module == MEMORY_NAMESPACE and imp.name == MEMORY_NAME and isinstance(imp.type, MemoryType):
            memory_import = imp.type
        elif imp.module != IMPORT_NAMESPACE or imp.name not in provided:
            raise ModuleError(f"guest module requires unknown import '{imp.module}.{imp.name}'")
    return memory_import


def _check_exports(module: Module) -> None:
    exported = {exp.name: exp.type for exp in module.exports}
    for spec in REQUIRED_EXPORTS:
        if spec.name not in exported:
            raise ModuleError(f"guest module is missing required export '{spec.name}' ({spec.role})")
        if not spec.matches(exported[spec.name]):
            raise ModuleError(f"guest export '{spec.name}' has the wrong signature for {spec.role}")
