"""
Circuit breaker in front of the classification model.

After `fail_max` consecutive failures the breaker opens and callers skip the
model entirely until `reset_timeout` has elapsed; the next request is then let
through (half-open) and its outcome closes or re-opens the breaker.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass, field

from researchvault.observability.telemetry import counter, log_event


@dataclass
class CircuitBreaker:
    stage: str
    fail_max: int = 5
    reset_timeout: float = 60.0
    clock: Callable[[], float] = time.monotonic
    _failures: int = field(default=0, init=False)
    _state: str = field(default="closed", init=False)
    _opened_at: float = field(default=0.0, init=False)

    @property
    def state(self) -> str:
        return self._state

    def allow_request(self) -> bool:
        if self._state == "open":
            if self.clock() - self._opened_at >= self.reset_timeout:
                self._state = "half_open"
                log_event("circuit.half_open", stage=self.stage)
                return True
            counter(f"{self.stage}.circuit_open")
            return False
        return True

    def record_success(self) -> None:
        self._failures = 0
        self._state = "closed"

    def record_failure(self) -> None:
        self._failures += 1
        if self._state == "half_open" or self._failures >= self.fail_max:
            self._state = "open"
            self._opened_at = self.clock()
            counter(f"{self.stage}.circuit_opened")
            log_event("circuit.opened", stage=self.stage, failures=self._failures)
