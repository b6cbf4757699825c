"""
Celery Tasks for the Alert Worker
=================================
One task per job name the scheduler enqueues:
- metric         metric rule evaluation
- custom_kpi     custom KPI evaluation
- report         scheduled report trigger
- alert_tracker  alert tracker trigger

plus process_job(name, data) for producers that pass the job name as data.

Retry/backoff belongs to the queue: a failed job is retried by Celery with
exponential countdown. The engine itself never retries.
"""
import logging
from typing import Any, Dict, Optional
from uuid import uuid4

from celery import Celery, signals

from alerts_core.config import configure_logging, get_config
from alerts_core.delegator import Delegator
from alerts_core.dispatcher import JobDispatcher
from alerts_core.metrics import start_metrics_server
from alerts_core.models import parse_job
from alerts_core.poller import MetricPoller
from alerts_core.repository import RuleRepository
from alerts_core.runtime import WorkerRuntime
from notifications.channels import build_notifier

config = get_config()

# Initialize Celery
celery_app = Celery('alert_worker', broker=config.queue_url)

# Celery configuration
celery_app.conf.update(
    task_serializer='json',
    accept_content=['json'],
    result_serializer='json',
    timezone='UTC',
    enable_utc=True,
    task_default_queue=config.queue_name,
    task_acks_late=True,
    task_ignore_result=True,
    worker_prefetch_multiplier=1,
    worker_concurrency=config.concurrency,
)

logger = logging.getLogger(__name__)

MAX_RETRIES = 3

runtime = WorkerRuntime()
_dispatcher: Optional[JobDispatcher] = None


def get_dispatcher() -> JobDispatcher:
    """Process-wide dispatcher, wired from configuration on first use"""
    global _dispatcher
    if _dispatcher is None:
        _dispatcher = JobDispatcher(
            repository=RuleRepository(config.rule_store_dsn),
            delegator=Delegator.from_config(config),
            notifier=build_notifier(config),
            poller=MetricPoller(command_timeout=config.poll_timeout),
            config=config,
        )
    return _dispatcher


# =============================================
# WORKER PROCESS LIFECYCLE
# =============================================

@signals.worker_process_init.connect
def init_worker_process(**kwargs):
    configure_logging(config.log_level)
    runtime.start()
    if config.metrics_port:
        start_metrics_server(config.metrics_port)
    logger.info("Worker process ready. Listening for all job types...")


@signals.worker_process_shutdown.connect
def shutdown_worker_process(**kwargs):
    global _dispatcher
    dispatcher, _dispatcher = _dispatcher, None
    runtime.shutdown(cleanup=dispatcher.close if dispatcher else None)


# =============================================
# JOB TASKS
# =============================================

def run_job(task, name: str, data: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """
    Parse and process one delivery of a job.

    Args:
        task: Bound Celery task (for request id and retry)
        name: Job name
        data: Job payload

    Returns:
        Outcome summary for locally evaluated rules, otherwise None
    """
    job_id = task.request.id or str(uuid4())
    job = parse_job(name, data, correlation_id=job_id)

    try:
        outcome = runtime.run(get_dispatcher().process(job))
    except Exception as e:
        logger.error(f"Job '{name}' {job_id} failed (attempt {task.request.retries + 1}): {e}")
        raise task.retry(exc=e, countdown=60 * (2 ** task.request.retries))

    return outcome.model_dump(mode='json', exclude_none=True) if outcome else None


@celery_app.task(name='metric', bind=True, max_retries=MAX_RETRIES)
def metric_task(self, **data):
    """Evaluate a metric rule"""
    return run_job(self, 'metric', data)


@celery_app.task(name='custom_kpi', bind=True, max_retries=MAX_RETRIES)
def custom_kpi_task(self, **data):
    """Evaluate a custom KPI rule"""
    return run_job(self, 'custom_kpi', data)


@celery_app.task(name='report', bind=True, max_retries=MAX_RETRIES)
def report_task(self, **data):
    """Trigger a scheduled report"""
    return run_job(self, 'report', data)


@celery_app.task(name='alert_tracker', bind=True, max_retries=MAX_RETRIES)
def alert_tracker_task(self, **data):
    """Trigger an alert tracker"""
    return run_job(self, 'alert_tracker', data)


@celery_app.task(name='process_job', bind=True, max_retries=MAX_RETRIES)
def process_job_task(self, name: str, data: Dict[str, Any] = None):
    """Generic entry point; unknown names are logged and acknowledged"""
    return run_job(self, name, data)
