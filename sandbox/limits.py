"""
Step and wall-clock bounds for generated code.

Generated functions run in-process, so a runaway loop is stopped from the
inside: a ``sys.settrace`` hook counts line and call events in frames
compiled from generated source and raises ``BudgetExceeded`` once either
limit is spent. Code outside the sandbox (the json proxies, pydantic, the
executor itself) is not traced and not counted.

The hook sees Python bytecode only. A single builtin call that never returns
(``sum`` over an endless iterator) is not interrupted.
"""

from __future__ import annotations

import sys
import time
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Iterator

SANDBOX_FILENAME_PREFIX = "<sandbox:"


def sandbox_filename(label: str) -> str:
    """Filename generated source is compiled under; traced by ``enforce_budget``."""
    return f"{SANDBOX_FILENAME_PREFIX}{label}>"


class BudgetExceeded(BaseException):
    """Raised inside generated code when its step or time budget is spent.

    Not an ``Exception`` subclass, so ``except Exception`` in generated code
    does not catch it.
    """


@dataclass(frozen=True)
class ExecutionBudget:
    """Limits for one call into generated code."""

    max_steps: int = 1_000_000
    timeout_seconds: float = 5.0


@contextmanager
def enforce_budget(budget: ExecutionBudget) -> Iterator[None]:
    """Trace generated frames on the current thread for the block's duration.

    Raises:
        BudgetExceeded: From inside the generated frame that overran.
    """
    deadline = time.monotonic() + budget.timeout_seconds
    steps = 0

    def check(frame, event, arg):
        nonlocal steps
        if event not in ("call", "line"):
            return check
        steps += 1
        if steps > budget.max_steps:
            raise BudgetExceeded(f"exceeded {budget.max_steps} steps")
        if time.monotonic() > deadline:
            raise BudgetExceeded(f"exceeded {budget.timeout_seconds:g} seconds")
        return check

    def on_call(frame, event, arg):
        if frame.f_code.co_filename.startswith(SANDBOX_FILENAME_PREFIX):
            return check(frame, event, arg)
        return None

    previous = sys.gettrace()
    sys.settrace(on_call)
    try:
        yield
    finally:
        sys.settrace(previous)
