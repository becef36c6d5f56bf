"""Metrics collection for configuration resolution."""

import threading
from dataclasses import dataclass, field
from typing import ClassVar


@dataclass
class EcsMetrics:
    """Metrics for ECS configuration resolution.

    Singleton class that tracks remote fetches, cache fallbacks,
    retries, and failures across every client in the process.
    """

    remote_requests_total: dict[int, int] = field(default_factory=dict)
    resolve_total: int = 0
    resolve_success_total: int = 0
    cache_fallback_total: int = 0
    retry_total: int = 0
    failures_total: dict[str, int] = field(default_factory=dict)
    duration_ms_total: float = 0.0

    _instance: ClassVar["EcsMetrics | None"] = None
    _lock: ClassVar[threading.Lock] = threading.Lock()

    @classmethod
    def get_instance(cls) -> "EcsMetrics":
        """Get singleton metrics instance."""
        with cls._lock:
            if cls._instance is None:
                cls._instance = cls()
            return cls._instance

    @classmethod
    def reset(cls) -> None:
        """Reset metrics (primarily for testing)."""
        with cls._lock:
            cls._instance = None

    def record_remote_request(self, status_code: int) -> None:
        """Record a completed remote call.

        Args:
            status_code: HTTP status code, 0 when no response was received.
        """
        with self._lock:
            self.remote_requests_total[status_code] = (
                self.remote_requests_total.get(status_code, 0) + 1
            )

    def record_resolve(self, duration_ms: float) -> None:
        """Record one resolution attempt and its duration."""
        with self._lock:
            self.resolve_total += 1
            self.duration_ms_total += duration_ms

    def record_success(self) -> None:
        """Record a resolution served by the remote service."""
        with self._lock:
            self.resolve_success_total += 1

    def record_cache_fallback(self) -> None:
        """Record a resolution served from the cache after a failure."""
        with self._lock:
            self.cache_fallback_total += 1

    def record_retry(self) -> None:
        """Record a retry attempt."""
        with self._lock:
            self.retry_total += 1

    def record_failure(self, error_class: str) -> None:
        """Record a failed remote call.

        Args:
            error_class: Classification of the failure.
        """
        with self._lock:
            self.failures_total[error_class] = (
                self.failures_total.get(error_class, 0) + 1
            )

    def to_dict(self) -> dict[str, int | float | dict[str, int] | dict[int, int]]:
        """Convert metrics to dictionary.

        Returns:
            Dictionary of metric name to value.
        """
        return {
            "remote_requests_total": dict(self.remote_requests_total),
            "resolve_total": self.resolve_total,
            "resolve_success_total": self.resolve_success_total,
            "cache_fallback_total": self.cache_fallback_total,
            "retry_total": self.retry_total,
            "failures_total": dict(self.failures_total),
            "duration_ms_total": self.duration_ms_total,
        }

    @property
    def avg_duration_ms(self) -> float:
        """Average resolution duration in milliseconds."""
        if self.resolve_total == 0:
            return 0.0
        return self.duration_ms_total / self.resolve_total
