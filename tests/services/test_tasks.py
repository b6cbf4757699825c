"""
Tests for services/tasks.py

Tests cover:
- Task registration per job name
- run_job hands the parsed job to the dispatcher on the worker runtime
- Failures are retried by the queue with exponential backoff
- Unknown job names are acknowledged
"""
import asyncio

import pytest
from unittest.mock import AsyncMock, MagicMock, patch

from celery.exceptions import Retry
from pydantic import ValidationError

from alerts_core.errors import PollError
from alerts_core.models import EvaluationOutcome, OutcomeStatus, RuleJob, UnknownJob
from services import tasks


class FakeRuntime:
    """Runs coroutines on a private loop instead of the worker thread"""

    def run(self, coro):
        return asyncio.run(coro)


def make_task(request_id='delivery-1', retries=0):
    task = MagicMock()
    task.request.id = request_id
    task.request.retries = retries
    task.retry.side_effect = lambda exc, countdown: Retry(exc=exc, when=countdown)
    return task


@pytest.fixture
def dispatcher():
    mock = MagicMock()
    mock.process = AsyncMock(return_value=None)
    with patch.object(tasks, 'runtime', FakeRuntime()), \
            patch.object(tasks, 'get_dispatcher', return_value=mock):
        yield mock


class TestTaskRegistration:

    @pytest.mark.parametrize('name', ['metric', 'custom_kpi', 'report', 'alert_tracker', 'process_job'])
    def test_task_registered(self, name):
        assert name in tasks.celery_app.tasks

    def test_queue_settings(self):
        conf = tasks.celery_app.conf
        assert conf.task_default_queue == tasks.config.queue_name
        assert conf.task_acks_late is True
        assert conf.worker_prefetch_multiplier == 1


class TestRunJob:

    def test_processes_parsed_job(self, dispatcher):
        dispatcher.process.return_value = EvaluationOutcome(
            status=OutcomeStatus.TRIGGERED, value=10.0, operator='>', threshold=5.0
        )

        result = tasks.run_job(make_task(), 'metric', {'jobId': 7, 'jobType': 'metric'})

        job = dispatcher.process.await_args.args[0]
        assert isinstance(job, RuleJob)
        assert job.rule_id == 7
        assert job.correlation_id == 'delivery-1'
        assert result == {'status': 'triggered', 'value': 10.0, 'operator': '>', 'threshold': 5.0}

    def test_delegated_job_returns_none(self, dispatcher):
        result = tasks.run_job(make_task(), 'report', {'jobId': 3, 'slug': 'weekly'})

        assert result is None
        dispatcher.process.assert_awaited_once()

    def test_unknown_name_is_acknowledged(self, dispatcher):
        task = make_task()

        assert tasks.run_job(task, 'cleanup', {'foo': 'bar'}) is None

        job = dispatcher.process.await_args.args[0]
        assert isinstance(job, UnknownJob)
        assert job.kind == 'cleanup'
        task.retry.assert_not_called()

    def test_failure_is_retried_with_backoff(self, dispatcher):
        dispatcher.process.side_effect = PollError("SQL query returned no rows.")
        task = make_task(retries=2)

        with pytest.raises(Retry):
            tasks.run_job(task, 'metric', {'jobId': 7})

        task.retry.assert_called_once()
        assert task.retry.call_args.kwargs['countdown'] == 240
        assert isinstance(task.retry.call_args.kwargs['exc'], PollError)

    def test_invalid_payload_is_not_retried(self, dispatcher):
        task = make_task()

        with pytest.raises(ValidationError):
            tasks.run_job(task, 'metric', {})

        dispatcher.process.assert_not_awaited()
        task.retry.assert_not_called()

    def test_missing_request_id_gets_generated(self, dispatcher):
        tasks.run_job(make_task(request_id=None), 'alert_tracker', {'slug': 't1'})

        job = dispatcher.process.await_args.args[0]
        assert job.correlation_id


class TestGetDispatcher:

    def test_dispatcher_is_built_once(self, monkeypatch):
        monkeypatch.setattr(tasks, '_dispatcher', None)

        first = tasks.get_dispatcher()
        second = tasks.get_dispatcher()

        assert first is second
        assert first.config is tasks.config
