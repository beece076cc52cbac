"""
Prometheus metrics collection for the exam portal auth service.
"""

import time
from typing import Optional
from prometheus_client import Counter, Histogram, Gauge, generate_latest, CONTENT_TYPE_LATEST


class MetricsCollector:
    """Centralized metrics collection."""

    def __init__(self):
        # Request metrics
        self.requests_total = Counter(
            'portal_http_requests_total',
            'Total HTTP requests',
            ['method', 'path', 'status_code']
        )

        self.request_duration = Histogram(
            'portal_http_request_duration_seconds',
            'Request duration in seconds',
            ['method', 'path'],
            buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0)
        )

        # Authentication metrics
        self.auth_attempts = Counter(
            'portal_auth_attempts_total',
            'Total login attempts',
            ['principal_type', 'status']
        )

        self.tokens_issued = Counter(
            'portal_tokens_issued_total',
            'Signed tokens issued',
            ['token_type', 'principal_type']
        )

        self.token_refreshes = Counter(
            'portal_token_refreshes_total',
            'Access token refresh attempts',
            ['status']
        )

        # Session metrics
        self.sessions_revoked = Counter(
            'portal_sessions_revoked_total',
            'Admin sessions revoked',
            ['reason']
        )

        self.cleanup_runs = Counter(
            'portal_session_cleanup_runs_total',
            'Session cleanup sweeps',
            ['status']
        )

        self.cleanup_deleted = Counter(
            'portal_session_cleanup_deleted_total',
            'Expired sessions deleted by cleanup sweeps'
        )

        self.cleanup_running = Gauge(
            'portal_session_cleanup_running',
            'Session cleanup scheduler state (1 = running, 0 = stopped)'
        )

    def record_request(self, method: str, path: str, status_code: int, duration: float):
        """Record an HTTP request."""
        self.requests_total.labels(
            method=method,
            path=path,
            status_code=str(status_code)
        ).inc()

        self.request_duration.labels(
            method=method,
            path=path
        ).observe(duration)

    def record_auth_attempt(self, principal_type: str, success: bool):
        """Record a login attempt."""
        status = "success" if success else "failure"
        self.auth_attempts.labels(
            principal_type=principal_type,
            status=status
        ).inc()

    def record_token_issued(self, token_type: str, principal_type: str):
        self.tokens_issued.labels(
            token_type=token_type,
            principal_type=principal_type
        ).inc()

    def record_refresh(self, success: bool):
        self.token_refreshes.labels(status="success" if success else "failure").inc()

    def record_sessions_revoked(self, reason: str, count: int = 1):
        if count > 0:
            self.sessions_revoked.labels(reason=reason).inc(count)

    def record_cleanup(self, success: bool, deleted: int = 0):
        """Record a session cleanup sweep."""
        self.cleanup_runs.labels(status="success" if success else "failure").inc()
        if deleted > 0:
            self.cleanup_deleted.inc(deleted)

    def set_cleanup_running(self, running: bool):
        self.cleanup_running.set(1 if running else 0)

    def get_metrics(self) -> str:
        """Get metrics in Prometheus format."""
        return generate_latest().decode('utf-8')


# Global metrics collector instance
_metrics_collector: Optional[MetricsCollector] = None


def get_metrics_collector() -> MetricsCollector:
    """Get the global metrics collector."""
    global _metrics_collector
    if _metrics_collector is None:
        _metrics_collector = MetricsCollector()
    return _metrics_collector


class RequestMetricsContext:
    """Context manager for tracking request metrics."""

    def __init__(self, method: str, path: str):
        self.method = method
        self.path = path
        self.start_time = None
        self.status_code = None
        self.metrics = get_metrics_collector()

    def __enter__(self):
        self.start_time = time.time()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        duration = time.time() - self.start_time
        status_code = self.status_code or (500 if exc_type else 200)

        self.metrics.record_request(
            self.method,
            self.path,
            status_code,
            duration
        )

    def set_status_code(self, status_code: int):
        """Set the response status code."""
        self.status_code = status_code

    @property
    def elapsed(self) -> float:
        return time.time() - self.start_time


__all__ = [
    "MetricsCollector",
    "RequestMetricsContext",
    "get_metrics_collector",
    "CONTENT_TYPE_LATEST",
]
