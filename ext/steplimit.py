"""BF-Lang extension: stop programs that run for too long.

The interpreter itself has no timeout. This extension counts executed
instructions and ends the run with exit code 124 once the budget in the
BF_STEP_LIMIT environment variable (default 10,000,000) is spent.
"""

from __future__ import annotations

import os
import sys
from typing import Any

from extensions import BFExtensionError, Hooks
from interpreter import ExitSignal

DEFAULT_STEP_LIMIT = 10_000_000
EXIT_CODE = 124
CHECK_EVERY = 1000


def _read_limit() -> int:
    raw = os.environ.get("BF_STEP_LIMIT", "")
    if not raw:
        return DEFAULT_STEP_LIMIT
    try:
        limit = int(raw)
    except ValueError:
        raise BFExtensionError(f"BF_STEP_LIMIT must be an integer, got {raw!r}")
    if limit <= 0:
        raise BFExtensionError("BF_STEP_LIMIT must be positive")
    return limit


def register(hooks: Hooks) -> None:
    limit = _read_limit()

    @hooks.every(min(CHECK_EVERY, limit))
    def _check(interpreter: Any, step: int) -> None:
        if step >= limit:
            sys.stdout.flush()
            print(f"Step limit of {limit} instructions exceeded", file=sys.stderr)
            raise ExitSignal(EXIT_CODE)
