"""
Observability features for the exam portal auth service.
"""

from .metrics import MetricsCollector, get_metrics_collector
from .logging import setup_logging, get_logger, AuditLogger
from .tracing import setup_tracing, TracingContext

__all__ = [
    "MetricsCollector",
    "get_metrics_collector",
    "setup_logging",
    "get_logger",
    "AuditLogger",
    "setup_tracing",
    "TracingContext",
]
