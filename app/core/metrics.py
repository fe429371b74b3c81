"""
Metrics sinks. The app owns one sink instance (app.state.metrics); nothing here is process-global.
"""

from collections import deque
from typing import Any, Deque, Dict, Protocol


class MetricsSink(Protocol):
    def record_request(self, route: str, method: str, status_code: int, duration_ms: float) -> None:
        ...

    def record_conversion(self, method: str, ok: bool, duration_ms: float) -> None:
        ...

    def record_error(self, kind: str) -> None:
        ...


class NoOpMetricsSink:
    def record_request(self, route: str, method: str, status_code: int, duration_ms: float) -> None:
        return None

    def record_conversion(self, method: str, ok: bool, duration_ms: float) -> None:
        return None

    def record_error(self, kind: str) -> None:
        return None


class InMemoryMetricsSink:
    """Counters plus a bounded window of recent samples."""

    def __init__(self, window: int = 100) -> None:
        self.requests_total = 0
        self.requests_by_route: Dict[str, int] = {}
        self.requests_by_method: Dict[str, int] = {}
        self.response_time_total_ms = 0.0
        self.response_time_max_ms = 0.0
        self.conversions_total = 0
        self.conversions_ok = 0
        self.conversions_failed = 0
        self.conversions_by_method: Dict[str, int] = {}
        self.conversion_time_total_ms = 0.0
        self.errors_total = 0
        self.errors_by_kind: Dict[str, int] = {}
        self.recent_requests: Deque[Dict[str, Any]] = deque(maxlen=window)

    def record_request(self, route: str, method: str, status_code: int, duration_ms: float) -> None:
        self.requests_total += 1
        self.requests_by_route[route] = self.requests_by_route.get(route, 0) + 1
        self.requests_by_method[method] = self.requests_by_method.get(method, 0) + 1
        self.response_time_total_ms += duration_ms
        self.response_time_max_ms = max(self.response_time_max_ms, duration_ms)
        self.recent_requests.append(
            {"route": route, "method": method, "status_code": status_code, "time_ms": round(duration_ms, 2)}
        )

    def record_conversion(self, method: str, ok: bool, duration_ms: float) -> None:
        self.conversions_total += 1
        if ok:
            self.conversions_ok += 1
        else:
            self.conversions_failed += 1
        self.conversions_by_method[method] = self.conversions_by_method.get(method, 0) + 1
        self.conversion_time_total_ms += duration_ms

    def record_error(self, kind: str) -> None:
        self.errors_total += 1
        self.errors_by_kind[kind] = self.errors_by_kind.get(kind, 0) + 1

    def snapshot(self) -> Dict[str, Any]:
        avg_response = self.response_time_total_ms / self.requests_total if self.requests_total else 0.0
        avg_conversion = self.conversion_time_total_ms / self.conversions_total if self.conversions_total else 0.0
        return {
            "requests": {
                "total": self.requests_total,
                "by_route": dict(self.requests_by_route),
                "by_method": dict(self.requests_by_method),
                "average_ms": round(avg_response, 2),
                "max_ms": round(self.response_time_max_ms, 2),
            },
            "conversions": {
                "total": self.conversions_total,
                "successful": self.conversions_ok,
                "failed": self.conversions_failed,
                "by_method": dict(self.conversions_by_method),
                "average_ms": round(avg_conversion, 2),
            },
            "errors": {"total": self.errors_total, "by_kind": dict(self.errors_by_kind)},
        }
