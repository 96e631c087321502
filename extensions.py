"""Extension hooks for BF-Lang.

An extension is a Python file with a ``register(hooks)`` function. It can
subscribe to interpreter events with ``hooks.on`` and to the instruction
counter with ``hooks.every``.
"""

from __future__ import annotations

import importlib.util
import os
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple


EVENTS = frozenset(
    {
        "program_start",
        "program_end",
        "before_instruction",
        "after_instruction",
        "loop_enter",
        "loop_exit",
        "on_error",
    }
)


class BFExtensionError(Exception):
    pass


class Hooks:
    def __init__(self) -> None:
        self._handlers: Dict[str, List[Callable[..., None]]] = {}
        # (interval, handler) pairs, called with (interpreter, step).
        self._periodic: List[Tuple[int, Callable[[Any, int], None]]] = []

    def on(self, event: str, handler: Optional[Callable[..., None]] = None):
        if event not in EVENTS:
            raise BFExtensionError(f"Unknown event '{event}'")
        if handler is None:
            def deco(fn: Callable[..., None]) -> Callable[..., None]:
                self._handlers.setdefault(event, []).append(fn)
                return fn
            return deco
        self._handlers.setdefault(event, []).append(handler)
        return handler

    def every(self, interval: int, handler: Optional[Callable[[Any, int], None]] = None):
        if interval < 1:
            raise BFExtensionError("Step interval must be >= 1")
        if handler is None:
            def deco(fn: Callable[[Any, int], None]) -> Callable[[Any, int], None]:
                self._periodic.append((interval, fn))
                return fn
            return deco
        self._periodic.append((interval, handler))
        return handler

    @property
    def idle(self) -> bool:
        """True when nothing listens to per-instruction traffic."""
        return not (
            self._periodic
            or self._handlers.get("before_instruction")
            or self._handlers.get("after_instruction")
        )

    def emit(self, event: str, *args: Any) -> None:
        for handler in self._handlers.get(event, ()):
            handler(*args)

    def step(self, interpreter: Any, count: int) -> None:
        for interval, handler in self._periodic:
            if count % interval == 0:
                handler(interpreter, count)


def load_extension(path: str, hooks: Hooks) -> None:
    if not os.path.isfile(path):
        raise BFExtensionError(f"Extension not found: {path}")
    full_path = os.path.abspath(path)
    module_name = "bf_ext_" + "".join(ch if ch.isalnum() else "_" for ch in full_path)
    spec = importlib.util.spec_from_file_location(module_name, full_path)
    if spec is None or spec.loader is None:
        raise BFExtensionError(f"Failed to load extension module: {path}")
    module = importlib.util.module_from_spec(spec)
    try:
        spec.loader.exec_module(module)
    except Exception as exc:
        raise BFExtensionError(f"Failed to import {path}: {exc}") from exc
    register = getattr(module, "register", None)
    if not callable(register):
        raise BFExtensionError(f"Extension {path} must define callable register(hooks)")
    register(hooks)


def load_hooks(paths: Sequence[str]) -> Hooks:
    hooks = Hooks()
    for path in paths:
        load_extension(path, hooks)
    return hooks
