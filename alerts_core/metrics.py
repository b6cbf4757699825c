"""
Prometheus metrics for the alert worker
"""
import logging

from prometheus_client import Counter, Histogram, start_http_server

logger = logging.getLogger(__name__)

JOBS_PROCESSED = Counter(
    'alert_worker_jobs_total',
    'Jobs processed, by job kind and outcome',
    ['kind', 'outcome']
)
JOB_DURATION = Histogram(
    'alert_worker_job_duration_seconds',
    'Time spent processing one job',
    ['kind'],
    buckets=(0.05, 0.1, 0.25, 0.5, 1, 2, 5, 10, 30, 60)
)
NOTIFICATIONS = Counter(
    'alert_worker_notifications_total',
    'Alert notification attempts',
    ['channel', 'result']
)
DELEGATIONS = Counter(
    'alert_worker_delegations_total',
    'Delegated trigger requests, by endpoint and final result',
    ['endpoint', 'result']
)


def start_metrics_server(port: int) -> None:
    """Expose /metrics on port"""
    start_http_server(port)
    logger.info(f"Metrics exporter listening on :{port}")
