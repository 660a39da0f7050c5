from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from threading import Lock


@dataclass
class EndpointMetric:
    total_requests: int = 0
    total_duration_ms: float = 0.0
    error_count: int = 0


class InMemoryRequestMetrics:
    def __init__(self) -> None:
        self._metrics: dict[tuple[str, str], EndpointMetric] = {}
        self._lock = Lock()

    def observe(self, endpoint: str, method: str, status_code: int, duration_ms: float) -> None:
        key = (endpoint, method)
        with self._lock:
            metric = self._metrics.setdefault(key, EndpointMetric())
            metric.total_requests += 1
            metric.total_duration_ms += duration_ms
            if status_code >= 400:
                metric.error_count += 1

    def snapshot(self) -> dict[str, dict[str, float | int]]:
        with self._lock:
            result: dict[str, dict[str, float | int]] = {}
            for (endpoint, method), metric in self._metrics.items():
                avg = metric.total_duration_ms / metric.total_requests if metric.total_requests else 0.0
                result[f"{method} {endpoint}"] = {
                    "total_requests": metric.total_requests,
                    "total_duration_ms": round(metric.total_duration_ms, 2),
                    "avg_duration_ms": round(avg, 2),
                    "error_count": metric.error_count,
                }
            return result


class EngineCounters:
    """Event counters for the webhook pipeline, overall and per tenant."""

    def __init__(self) -> None:
        self._totals: Counter[str] = Counter()
        self._per_tenant: dict[str, Counter[str]] = {}
        self._lock = Lock()

    def increment(self, name: str, tenant_id: int | str | None = None) -> None:
        with self._lock:
            self._totals[name] += 1
            if tenant_id is not None:
                self._per_tenant.setdefault(str(tenant_id), Counter())[name] += 1

    def get(self, name: str) -> int:
        with self._lock:
            return self._totals[name]

    def snapshot(self) -> dict[str, dict]:
        with self._lock:
            return {
                "totals": dict(self._totals),
                "tenants": {tenant: dict(counts) for tenant, counts in self._per_tenant.items()},
            }

    def reset(self) -> None:
        with self._lock:
            self._totals.clear()
            self._per_tenant.clear()


request_metrics = InMemoryRequestMetrics()
engine_counters = EngineCounters()
