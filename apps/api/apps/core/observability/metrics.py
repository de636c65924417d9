"""
Prometheus metrics for the visit workflow.
"""
import time
from functools import wraps

from prometheus_client import Counter, Histogram


class MetricsRegistry:
    """
    Central metrics registry.

    Provides typed access to all application metrics. Instantiated once at
    import time; prometheus_client registers every collector in its default
    registry, which /metrics exposes.
    """

    def __init__(self):
        self._setup_metrics()

    def _setup_metrics(self):
        # ===================================================================
        # HTTP Metrics
        # ===================================================================
        self.http_requests_total = Counter(
            'http_requests_total',
            'Total HTTP requests',
            ['path', 'method', 'status']
        )

        self.exceptions_total = Counter(
            'exceptions_total',
            'Total exceptions',
            ['exception_type', 'location']
        )

        # ===================================================================
        # Visit Workflow Metrics
        # ===================================================================
        self.visit_transition_total = Counter(
            'visit_transition_total',
            'Visit status transitions',
            ['from_status', 'to_status', 'result']
        )

        self.visit_transition_duration_seconds = Histogram(
            'visit_transition_duration_seconds',
            'Duration of visit transition writes',
            buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0]
        )

        self.record_guard_rejections_total = Counter(
            'record_guard_rejections_total',
            'Clinical writes rejected by a guard',
            ['operation', 'reason']
        )

        self.medical_record_lock_total = Counter(
            'medical_record_lock_total',
            'Lock and unlock operations on visits',
            ['action', 'source']
        )

        # ===================================================================
        # Billing Metrics
        # ===================================================================
        self.discharge_eligibility_checks_total = Counter(
            'discharge_eligibility_checks_total',
            'Billing gate evaluations',
            ['result']  # eligible, blocked
        )

        self.payments_total = Counter(
            'payments_total',
            'Payments recorded',
            ['method', 'result']
        )

        # ===================================================================
        # Clinical Audit Metrics
        # ===================================================================
        self.clinical_auditlog_created_total = Counter(
            'clinical_auditlog_created_total',
            'Clinical audit logs created',
            ['model', 'action']
        )

    def track_duration(self, histogram_metric):
        """
        Decorator to track function duration.

        Usage:
            @metrics.track_duration(metrics.visit_transition_duration_seconds)
            def apply_transition(...):
                ...
        """
        def decorator(func):
            @wraps(func)
            def wrapper(*args, **kwargs):
                start_time = time.time()
                try:
                    return func(*args, **kwargs)
                finally:
                    histogram_metric.observe(time.time() - start_time)
            return wrapper
        return decorator


# Global metrics instance
metrics = MetricsRegistry()
