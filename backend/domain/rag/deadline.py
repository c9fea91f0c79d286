"""
Per-request deadline and budget-bounded awaiting
"""

import asyncio
import logging
import time
from typing import Awaitable, Callable, Optional

from core.exceptions import RAGException
from domain.rag.outcome import StageOutcome

logger = logging.getLogger(__name__)


class Deadline:
    """A fixed point in monotonic time; stages ask it how much budget is left."""

    def __init__(self, timeout_ms: int, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self.started_at = clock()
        self.expires_at = self.started_at + max(timeout_ms, 0) / 1000.0

    def remaining(self) -> float:
        """Seconds left, never negative"""
        return max(0.0, self.expires_at - self._clock())

    def remaining_ms(self) -> float:
        return self.remaining() * 1000.0

    def elapsed_ms(self) -> float:
        return (self._clock() - self.started_at) * 1000.0

    @property
    def expired(self) -> bool:
        return self.remaining() <= 0.0

    def budget(self, cap_seconds: Optional[float] = None, fraction: float = 1.0) -> float:
        """Slice of the remaining time for one stage, optionally capped."""
        seconds = self.remaining() * fraction
        if cap_seconds is not None:
            seconds = min(seconds, cap_seconds)
        return max(0.0, seconds)


async def run_within(coro: Awaitable, timeout: float, stage: str) -> StageOutcome:
    """
    Await coro for at most timeout seconds.

    A timeout or an application error (RAGException) becomes an EMPTY outcome
    carrying the reason; anything else propagates.
    """
    if timeout <= 0:
        if asyncio.iscoroutine(coro):
            coro.close()
        logger.warning(f"[{stage}] skipped: no time left")
        return StageOutcome.empty(f"{stage}: deadline exhausted")

    try:
        value = await asyncio.wait_for(coro, timeout=timeout)
    except asyncio.TimeoutError:
        logger.warning(f"[{stage}] timed out after {timeout * 1000:.0f}ms")
        return StageOutcome.empty(f"{stage}: timed out after {timeout * 1000:.0f}ms")
    except RAGException as e:
        logger.warning(f"[{stage}] failed: {e}")
        return StageOutcome.empty(f"{stage}: {e}")
    return StageOutcome.ok(value)
