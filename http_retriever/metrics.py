"""Metrics collection for the retriever."""

import threading
from dataclasses import dataclass, field
from typing import ClassVar

from http_retriever.errors import RetrievalErrorClass


@dataclass
class RetrieverMetrics:
    """Metrics for retrieval operations.

    Singleton class that tracks per-connection status codes, redirect hops,
    classified failures and transferred bytes. Updates are serialized so
    concurrent retrievals never lose counts.
    """

    requests_total: dict[int, int] = field(default_factory=dict)
    redirects_total: int = 0
    failures_total: dict[str, int] = field(default_factory=dict)
    bytes_total: int = 0
    duration_ms_total: float = 0.0
    retrieval_count: int = 0
    _lock: threading.Lock = field(
        default_factory=threading.Lock, init=False, repr=False, compare=False
    )

    _instance: ClassVar["RetrieverMetrics | None"] = None
    _instance_lock: ClassVar[threading.Lock] = threading.Lock()

    @classmethod
    def get_instance(cls) -> "RetrieverMetrics":
        """Get singleton metrics instance."""
        with cls._instance_lock:
            if cls._instance is None:
                cls._instance = cls()
            return cls._instance

    @classmethod
    def reset(cls) -> None:
        """Reset metrics (primarily for testing)."""
        with cls._instance_lock:
            cls._instance = None

    def record_response(self, status_code: int) -> None:
        """Record the status code of one connection attempt.

        Args:
            status_code: HTTP status code.
        """
        with self._lock:
            self.requests_total[status_code] = (
                self.requests_total.get(status_code, 0) + 1
            )

    def record_redirect(self) -> None:
        """Record a followed redirect hop."""
        with self._lock:
            self.redirects_total += 1

    def record_failure(self, error_class: RetrievalErrorClass | str) -> None:
        """Record a failed retrieval.

        Args:
            error_class: Classification of the failure, or the exception
                type name for transport errors.
        """
        key = (
            error_class.value
            if isinstance(error_class, RetrievalErrorClass)
            else error_class
        )
        with self._lock:
            self.failures_total[key] = self.failures_total.get(key, 0) + 1

    def record_bytes(self, count: int) -> None:
        """Record bytes drained from a response body.

        Args:
            count: Number of bytes.
        """
        with self._lock:
            self.bytes_total += count

    def record_retrieval(self, duration_ms: float) -> None:
        """Record a completed top-level retrieval.

        Args:
            duration_ms: Duration in milliseconds.
        """
        with self._lock:
            self.retrieval_count += 1
            self.duration_ms_total += duration_ms

    def to_dict(self) -> dict[str, int | float | dict[str, int] | dict[int, int]]:
        """Convert metrics to dictionary.

        Returns:
            Dictionary of metric name to value.
        """
        with self._lock:
            return {
                "requests_total": dict(self.requests_total),
                "redirects_total": self.redirects_total,
                "failures_total": dict(self.failures_total),
                "bytes_total": self.bytes_total,
                "duration_ms_total": self.duration_ms_total,
                "retrieval_count": self.retrieval_count,
            }

    @property
    def avg_duration_ms(self) -> float:
        """Calculate average retrieval duration.

        Returns:
            Average duration in milliseconds.
        """
        if self.retrieval_count == 0:
            return 0.0
        return self.duration_ms_total / self.retrieval_count
