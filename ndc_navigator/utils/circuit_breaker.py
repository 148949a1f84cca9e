"""
Circuit breaker for the advisory service.

CLOSED   -> calls allowed; consecutive failures are counted
OPEN     -> calls rejected until ``reset_timeout_s`` has elapsed
HALF_OPEN-> one trial call allowed (``acquire``); success closes, failure
            re-opens; other callers are rejected until it finishes

One instance is owned by the application and injected into the
advisory service; it is not a module-level singleton.
"""

from __future__ import annotations

import logging
import threading
import time
from enum import Enum
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)


class CircuitState(str, Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreaker:
    def __init__(
        self,
        failure_threshold: int = 3,
        reset_timeout_s: float = 300.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.failure_threshold = failure_threshold
        self.reset_timeout_s = reset_timeout_s
        self._clock = clock
        self._lock = threading.Lock()
        self._state = CircuitState.CLOSED
        self._failures = 0
        self._opened_at: Optional[float] = None
        self._trial_in_flight = False

    @property
    def state(self) -> CircuitState:
        with self._lock:
            return self._current_state()

    def _current_state(self) -> CircuitState:
        if (
            self._state is CircuitState.OPEN
            and self._opened_at is not None
            and self._clock() - self._opened_at >= self.reset_timeout_s
        ):
            self._state = CircuitState.HALF_OPEN
            self._trial_in_flight = False
            logger.info("[CircuitBreaker] Cool-down elapsed, half-open")
        return self._state

    def allows_request(self) -> bool:
        with self._lock:
            state = self._current_state()
            if state is CircuitState.HALF_OPEN:
                return not self._trial_in_flight
            return state is not CircuitState.OPEN

    def acquire(self) -> bool:
        """Claim permission for one call. In HALF_OPEN only the first caller wins."""
        with self._lock:
            state = self._current_state()
            if state is CircuitState.OPEN:
                return False
            if state is CircuitState.HALF_OPEN:
                if self._trial_in_flight:
                    return False
                self._trial_in_flight = True
            return True

    def record_success(self) -> None:
        with self._lock:
            if self._state is not CircuitState.CLOSED:
                logger.info("[CircuitBreaker] Closed after successful call")
            self._state = CircuitState.CLOSED
            self._failures = 0
            self._opened_at = None
            self._trial_in_flight = False

    def record_failure(self) -> None:
        with self._lock:
            self._failures += 1
            self._trial_in_flight = False
            if self._state is CircuitState.HALF_OPEN or self._failures >= self.failure_threshold:
                self._state = CircuitState.OPEN
                self._opened_at = self._clock()
                logger.warning(
                    "[CircuitBreaker] Opened after %d consecutive failure(s)", self._failures
                )

    def reset(self) -> None:
        with self._lock:
            self._state = CircuitState.CLOSED
            self._failures = 0
            self._opened_at = None
            self._trial_in_flight = False

    def snapshot(self) -> dict[str, Any]:
        with self._lock:
            return {
                "state": self._current_state().value,
                "failures": self._failures,
                "failure_threshold": self.failure_threshold,
            }
