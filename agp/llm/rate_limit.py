"""Per-model requests-per-minute / tokens-per-minute limiter.

One limiter per model lives in the process-wide router, so every job running
in the process shares the same ceilings.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections import deque
from typing import Awaitable, Callable, NamedTuple

logger = logging.getLogger(__name__)

WINDOW_S = 60.0


class _Entry(NamedTuple):
    at: float
    tokens: int
    is_request: bool


class RateLimiter:
    """Sliding one-minute window over request count and token volume."""

    def __init__(
        self,
        requests_per_minute: int,
        tokens_per_minute: int,
        *,
        name: str = "",
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.name = name
        self.rpm = requests_per_minute
        self.tpm = tokens_per_minute
        self._clock = clock
        self._sleep = sleep
        self._entries: deque[_Entry] = deque()
        self._lock = asyncio.Lock()

    def _prune(self, now: float) -> None:
        while self._entries and now - self._entries[0].at >= WINDOW_S:
            self._entries.popleft()

    def _requests(self) -> int:
        return sum(1 for e in self._entries if e.is_request)

    def _tokens(self) -> int:
        return sum(e.tokens for e in self._entries)

    async def acquire(self, estimated_tokens: int) -> None:
        """Wait until one more request of ``estimated_tokens`` fits in the window."""
        async with self._lock:
            while True:
                now = self._clock()
                self._prune(now)
                fits_requests = self._requests() < self.rpm
                # An empty window always admits, even an oversized request
                fits_tokens = not self._entries or self._tokens() + estimated_tokens <= self.tpm
                if fits_requests and fits_tokens:
                    self._entries.append(_Entry(now, estimated_tokens, True))
                    return
                wait = max(self._entries[0].at + WINDOW_S - now, 0.05)
                logger.info(
                    "Rate limit reached for %s (%d/%d RPM, %d/%d TPM), waiting %.1fs",
                    self.name, self._requests(), self.rpm, self._tokens(), self.tpm, wait,
                )
                await self._sleep(wait)

    def report_usage(self, estimated_tokens: int, actual_tokens: int) -> None:
        """Charge the window for tokens used beyond the estimate."""
        extra = actual_tokens - estimated_tokens
        if extra > 0:
            self._entries.append(_Entry(self._clock(), extra, False))

    def usage(self) -> dict[str, int]:
        self._prune(self._clock())
        return {"requests": self._requests(), "tokens": self._tokens()}
