"""
In-memory metrics collector for PHI-safe observability.
Thread-safe singleton; counters are keyed by operation name and error code only.
"""
import threading
import time
from dataclasses import dataclass, field
from typing import Dict, Optional


@dataclass
class LatencyStats:
    """Sum/count pair; the average is derived on read."""
    sum_ms: int = 0
    count: int = 0

    def record(self, ms: int) -> None:
        self.sum_ms += ms
        self.count += 1

    def as_dict(self) -> dict:
        avg = self.sum_ms / self.count if self.count else 0.0
        return {"sum_ms": self.sum_ms, "count": self.count, "avg_ms": round(avg, 2)}


@dataclass
class OperationStats:
    """Counters for one pipeline operation (e.g. "symptom_check")."""
    requests: int = 0
    errors: int = 0
    fallbacks: int = 0
    latency: LatencyStats = field(default_factory=LatencyStats)

    def as_dict(self) -> dict:
        return {
            "requests": self.requests,
            "errors": self.errors,
            "fallbacks": self.fallbacks,
            "latency": self.latency.as_dict(),
        }


@dataclass
class MetricsData:
    total_requests: int = 0
    success_count: int = 0
    error_count: int = 0
    rate_limited: int = 0
    error_codes: Dict[str, int] = field(default_factory=dict)
    operations: Dict[str, OperationStats] = field(default_factory=dict)
    latency: LatencyStats = field(default_factory=LatencyStats)
    inference_latency: LatencyStats = field(default_factory=LatencyStats)
    started_at: float = field(default_factory=time.time)

    def operation(self, name: str) -> OperationStats:
        return self.operations.setdefault(name, OperationStats())

    def count_error(self, error_code: Optional[str]) -> None:
        self.error_count += 1
        if error_code:
            self.error_codes[error_code] = self.error_codes.get(error_code, 0) + 1


class MetricsCollector:
    """
    Thread-safe singleton for collecting PHI-safe metrics.

    Usage:
        metrics = get_metrics_collector()
        metrics.record_request("identify_conditions", latency_ms=150, inference_ms=120, success=True)
        metrics.record_fallback("suggest_medicines")
    """
    _instance: "MetricsCollector | None" = None
    _lock = threading.Lock()

    def __new__(cls) -> "MetricsCollector":
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    instance = super().__new__(cls)
                    instance._data = MetricsData()
                    instance._data_lock = threading.Lock()
                    cls._instance = instance
        return cls._instance

    def record_request(
        self,
        operation: str,
        latency_ms: int,
        inference_ms: int,
        success: bool,
        error_code: Optional[str] = None,
    ) -> None:
        """
        Record a finished HTTP request for an operation.

        inference_ms only feeds the inference average for successful requests.
        """
        with self._data_lock:
            data = self._data
            op = data.operation(operation)
            data.total_requests += 1
            op.requests += 1
            data.latency.record(latency_ms)
            op.latency.record(latency_ms)

            if success:
                data.success_count += 1
                data.inference_latency.record(inference_ms)
            else:
                op.errors += 1
                data.count_error(error_code)

    def record_fallback(self, operation: str) -> None:
        """An always-succeeding operation returned its fallback payload."""
        with self._data_lock:
            self._data.operation(operation).fallbacks += 1

    def record_rate_limited(self) -> None:
        with self._data_lock:
            self._data.total_requests += 1
            self._data.rate_limited += 1
            self._data.count_error("RATE_LIMITED")

    def get_snapshot(self) -> dict:
        """Plain dict suitable for JSON serialization."""
        with self._data_lock:
            data = self._data
            return {
                "uptime_seconds": int(time.time() - data.started_at),
                "total_requests": data.total_requests,
                "success_count": data.success_count,
                "error_count": data.error_count,
                "error_codes": dict(data.error_codes),
                "operations": {
                    name: stats.as_dict() for name, stats in sorted(data.operations.items())
                },
                "latency": data.latency.as_dict(),
                "inference_latency": data.inference_latency.as_dict(),
                "rate_limited": data.rate_limited,
            }

    def reset(self) -> None:
        """Reset all metrics (for testing)."""
        with self._data_lock:
            self._data = MetricsData()


def get_metrics_collector() -> MetricsCollector:
    """Get the singleton metrics collector instance."""
    return MetricsCollector()
