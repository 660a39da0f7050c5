from __future__ import annotations

import time
from dataclasses import dataclass
from threading import Lock
from typing import Callable


@dataclass
class BackoffDecision:
    delay_seconds: float
    consecutive_failures: int


class TenantBackoff:
    """Per-(tenant, integration) failure tracker for outbound calls.

    Below `threshold` consecutive failures no delay is applied; past it the
    delay doubles per failure up to `max_backoff_seconds`. A streak older than
    `cooldown_seconds` is forgotten so one bad minute does not slow a tenant
    down for the life of the process.
    """

    def __init__(
        self,
        *,
        threshold: int = 3,
        max_backoff_seconds: float = 8.0,
        cooldown_seconds: float = 300.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.threshold = threshold
        self.max_backoff_seconds = max_backoff_seconds
        self.cooldown_seconds = cooldown_seconds
        self._clock = clock
        self._failures: dict[tuple[int, str], int] = {}
        self._last_failure_at: dict[tuple[int, str], float] = {}
        self._lock = Lock()

    def _expire(self, key: tuple[int, str]) -> None:
        last = self._last_failure_at.get(key)
        if last is not None and self._clock() - last > self.cooldown_seconds:
            self._failures.pop(key, None)
            self._last_failure_at.pop(key, None)

    def before_request(self, *, tenant_id: int, integration: str) -> BackoffDecision:
        key = (tenant_id, integration)
        with self._lock:
            self._expire(key)
            failures = self._failures.get(key, 0)
            if failures < self.threshold:
                return BackoffDecision(delay_seconds=0.0, consecutive_failures=failures)
            delay = min(2 ** (failures - self.threshold), self.max_backoff_seconds)
            return BackoffDecision(delay_seconds=float(delay), consecutive_failures=failures)

    def register_success(self, *, tenant_id: int, integration: str) -> None:
        key = (tenant_id, integration)
        with self._lock:
            self._failures.pop(key, None)
            self._last_failure_at.pop(key, None)

    def register_failure(self, *, tenant_id: int, integration: str) -> int:
        key = (tenant_id, integration)
        with self._lock:
            self._expire(key)
            failures = self._failures.get(key, 0) + 1
            self._failures[key] = failures
            self._last_failure_at[key] = self._clock()
            return failures
