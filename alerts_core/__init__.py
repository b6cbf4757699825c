"""
Alerts Core - Job Dispatch and Rule Evaluation Engine
=====================================================
Consumes scheduled jobs (metric rules, custom KPIs, reports, alert trackers),
evaluates threshold rules against user databases or delegates the work to
the application API, and records an append-only history of every run.

Usage:
    from alerts_core import JobDispatcher, parse_job

    job = parse_job('metric', {'jobId': 42, 'jobType': 'metric'}, correlation_id='abc')
    outcome = await dispatcher.process(job)
"""

from alerts_core.conditions import evaluate_condition
from alerts_core.dispatcher import JobDispatcher
from alerts_core.models import (
    EvaluationOutcome,
    HistoryLogEntry,
    JobKind,
    OutcomeStatus,
    parse_job,
)

__all__ = [
    'EvaluationOutcome',
    'HistoryLogEntry',
    'JobDispatcher',
    'JobKind',
    'OutcomeStatus',
    'evaluate_condition',
    'parse_job',
]
