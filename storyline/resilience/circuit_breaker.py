"""Named circuit breakers for flaky dependencies.

One CircuitBreaker instance is a registry of independent circuits keyed by
name. Each circuit moves CLOSED -> OPEN once `failure_threshold` failures have
accumulated, OPEN -> HALF_OPEN once `reset_timeout` seconds passed since the last
failure, and HALF_OPEN -> CLOSED on the first successful probe (or back to OPEN
on a failed one). At most `half_open_max_calls` probes are let through while
half-open.

State lives in memory only and resets with the process.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Callable, Dict, Optional, TypeVar


logger = logging.getLogger(__name__)

T = TypeVar("T")


class CircuitState(str, Enum):
    CLOSED = "CLOSED"
    OPEN = "OPEN"
    HALF_OPEN = "HALF_OPEN"


class CircuitOpenError(RuntimeError):
    """Raised when a call is short-circuited and the caller gave no fallback."""

    def __init__(self, name: str, reason: str = "OPEN"):
        if reason == "OPEN":
            message = f"Circuit breaker is OPEN for {name}"
        else:
            message = f"Circuit breaker {reason} for {name}"
        super().__init__(message)
        self.name = name
        self.reason = reason


@dataclass
class CircuitMetrics:
    failures: int = 0
    successes: int = 0
    last_failure_time: Optional[float] = None
    state: CircuitState = CircuitState.CLOSED
    half_open_calls: int = 0


class CircuitBreaker:
    def __init__(
        self,
        *,
        failure_threshold: int = 5,
        reset_timeout: float = 30.0,
        half_open_max_calls: int = 3,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.failure_threshold = failure_threshold
        self.reset_timeout = reset_timeout
        self.half_open_max_calls = half_open_max_calls
        self._clock = clock
        self._metrics: Dict[str, CircuitMetrics] = {}
        self._lock = threading.Lock()

    def execute(self, name: str, fn: Callable[[], T], fallback: Optional[Callable[[], T]] = None) -> T:
        """Run `fn` under the named circuit.

        When the circuit short-circuits, or `fn` raises, `fallback()` supplies
        the result if given; otherwise CircuitOpenError (short-circuit) or the
        original exception propagates.
        """
        rejected = self._admit(name)
        if rejected is not None:
            if fallback is not None:
                logger.warning(f"Circuit {name} {rejected}, using fallback")
                return fallback()
            raise CircuitOpenError(name, rejected)

        try:
            result = fn()
        except Exception as e:
            self._on_failure(name)
            if fallback is not None:
                logger.warning(f"Call through circuit {name} failed ({e}), using fallback")
                return fallback()
            raise

        self._on_success(name)
        return result

    def _admit(self, name: str) -> Optional[str]:
        """Return None when the call may proceed, else the rejection reason."""
        with self._lock:
            m = self._get(name)
            if m.state is CircuitState.OPEN:
                if not self._should_attempt_reset(m):
                    return "OPEN"
                m.state = CircuitState.HALF_OPEN
                m.half_open_calls = 0
                logger.info(f"Circuit {name} entering half-open state")

            if m.state is CircuitState.HALF_OPEN:
                if m.half_open_calls >= self.half_open_max_calls:
                    return "half-open call limit reached"
                m.half_open_calls += 1
            return None

    def _get(self, name: str) -> CircuitMetrics:
        m = self._metrics.get(name)
        if m is None:
            m = CircuitMetrics()
            self._metrics[name] = m
        return m

    def _should_attempt_reset(self, m: CircuitMetrics) -> bool:
        if m.last_failure_time is None:
            return True
        return self._clock() - m.last_failure_time >= self.reset_timeout

    def _on_success(self, name: str) -> None:
        with self._lock:
            m = self._get(name)
            m.successes += 1
            if m.state is CircuitState.HALF_OPEN:
                m.state = CircuitState.CLOSED
                m.half_open_calls = 0
                m.failures = 0
                logger.info(f"Circuit {name} closed")

    def _on_failure(self, name: str) -> None:
        with self._lock:
            m = self._get(name)
            m.failures += 1
            m.last_failure_time = self._clock()
            if m.state is CircuitState.HALF_OPEN:
                m.state = CircuitState.OPEN
                logger.error(f"Circuit {name} re-opened after failed probe")
            elif m.state is CircuitState.CLOSED and m.failures >= self.failure_threshold:
                m.state = CircuitState.OPEN
                logger.error(f"Circuit {name} opened after {m.failures} failures")

    def get_state(self, name: str) -> CircuitState:
        with self._lock:
            return self._get(name).state

    def reset(self, name: str) -> None:
        """Force a circuit back to CLOSED with zeroed counters."""
        with self._lock:
            self._metrics[name] = CircuitMetrics()
        logger.info(f"Circuit {name} manually reset")

    def get_all_metrics(self) -> Dict[str, Dict[str, object]]:
        with self._lock:
            out = {}
            for name, m in self._metrics.items():
                snapshot = asdict(m)
                snapshot["state"] = m.state.value
                out[name] = snapshot
            return out
