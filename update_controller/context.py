"""Timing of the stages of a reconciliation cycle.

Each stage of a cycle runs inside `stage_timer` which logs entry and exit at
debug level. When a collector is active (see `collect_timings`) the elapsed
time of every stage is also recorded so it can be attached to the cycle result.
"""

import contextvars
from contextlib import contextmanager
import logging
from time import perf_counter
from typing import Generator


_LOGGER = logging.getLogger(__name__)

# No public API
__all__: list[str] = []


_cycle_timings: contextvars.ContextVar[dict[str, float] | None] = (
    contextvars.ContextVar("_cycle_timings", default=None)
)


@contextmanager
def collect_timings() -> Generator[dict[str, float], None, None]:
    """Collect stage durations (seconds) for the enclosed block."""
    timings: dict[str, float] = {}
    token = _cycle_timings.set(timings)
    try:
        yield timings
    finally:
        _cycle_timings.reset(token)


@contextmanager
def stage_timer(stage: str) -> Generator[None, None, None]:
    """Log entry and exit of a cycle stage and record how long it took."""
    timings = _cycle_timings.get()
    start = perf_counter()
    _LOGGER.debug("[Stage] > %s", stage)
    try:
        yield
    finally:
        elapsed = perf_counter() - start
        if timings is not None:
            timings[stage] = timings.get(stage, 0.0) + elapsed
        _LOGGER.debug("[Stage] < %s (%0.2fs)", stage, elapsed)
