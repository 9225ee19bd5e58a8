"""Per-job time budget shared by every agent call of one execute()."""

from __future__ import annotations

import time
from typing import Callable


class Deadline:
    def __init__(self, budget_s: float, *, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self.budget_s = budget_s
        self._ends_at = clock() + budget_s

    def remaining(self) -> float:
        return max(self._ends_at - self._clock(), 0.0)

    @property
    def expired(self) -> bool:
        return self.remaining() <= 0.0

    def timeout_for(self, agent_timeout: float) -> float:
        """Agent's own timeout, cut down to what is left of the budget."""
        return min(agent_timeout, self.remaining())
