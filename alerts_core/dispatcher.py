"""
Job Dispatcher - routes queue jobs to their pipeline
====================================================
metric / custom_kpi (local mode):
    fetch rule -> skip if inactive -> resolve target -> poll -> evaluate
    -> persist history -> notify on trigger. Failures are persisted first,
    then re-raised to the queue.
metric / custom_kpi (delegated mode):
    trigger the application's test endpoint, then record a 'triggered'
    initiation entry. No entry is written when the trigger fails.
report:
    run_id is generated before any network call. A 'triggered' entry
    follows a successful trigger (write failure only logged); a failed
    trigger writes a 'failed' entry with the same run_id, then re-raises.
alert_tracker:
    trigger only, no history.
anything else:
    warning, no-op success.
"""
import logging
import time
from contextlib import asynccontextmanager
from typing import Optional, Union
from uuid import UUID, uuid4

from alerts_core.conditions import evaluate_condition
from alerts_core.config import WorkerConfig
from alerts_core.delegator import Delegator
from alerts_core.errors import DelegationError, PersistenceError
from alerts_core.metrics import JOB_DURATION, JOBS_PROCESSED
from alerts_core.models import (
    AlertDetails,
    AlertTrackerJob,
    EvaluationOutcome,
    HistoryLogEntry,
    HistorySource,
    JOB_KINDS,
    OutcomeStatus,
    ReportJob,
    RuleJob,
    UnknownJob,
)
from alerts_core.poller import MetricPoller
from alerts_core.repository import RuleRepository

logger = logging.getLogger(__name__)

AnyJob = Union[RuleJob, ReportJob, AlertTrackerJob, UnknownJob]


class JobDispatcher:
    """
    Single entry point for every job the worker receives.

    Holds no per-job state; concurrent jobs share only the read-only
    collaborators passed in here.
    """

    def __init__(
        self,
        repository: RuleRepository,
        delegator: Delegator,
        notifier,
        poller: Optional[MetricPoller] = None,
        config: Optional[WorkerConfig] = None
    ):
        """
        Args:
            repository: Rule store gateway
            delegator: Fire-and-forget client for the application API
            notifier: AlertNotifier used when a rule triggers
            poller: Metric poller (default: MetricPoller with config timeout)
            config: Worker configuration
        """
        self.config = config or WorkerConfig()
        self.repository = repository
        self.delegator = delegator
        self.notifier = notifier
        self.poller = poller or MetricPoller(command_timeout=self.config.poll_timeout)

        logger.info(
            f"JobDispatcher initialized (evaluation_mode={self.config.evaluation_mode}, "
            f"session_per_job={self.config.store_session_per_job})"
        )

    async def close(self, drain_timeout: float = 10.0) -> None:
        """Wait for detached delegations and release the store pool"""
        await self.delegator.drain(drain_timeout)
        await self.repository.close()

    @asynccontextmanager
    async def _store_scope(self):
        """Shared gateway, or a fresh one for this job when configured"""
        if not self.config.store_session_per_job:
            yield self.repository
            return

        store = RuleRepository(self.repository.db_dsn)
        try:
            yield store
        finally:
            await store.close()

    # =====================================================
    # ENTRY POINT
    # =====================================================

    async def process(self, job: AnyJob) -> Optional[EvaluationOutcome]:
        """
        Process one job delivery.

        Returns:
            The evaluation outcome for locally evaluated rules, otherwise None

        Raises:
            Whatever failed the job, after its history entry is written
        """
        kind_label = job.kind if job.kind in JOB_KINDS else 'unknown'
        outcome_label = 'ok'
        started = time.monotonic()

        logger.info(f"Processing '{job.kind}' job {job.correlation_id}")

        try:
            if isinstance(job, RuleJob):
                if self.config.delegates_rules:
                    await self._delegate_rule(job)
                    outcome_label = OutcomeStatus.TRIGGERED.value
                    return None
                outcome = await self._evaluate_rule(job)
                outcome_label = outcome.status.value
                return outcome
            elif isinstance(job, ReportJob):
                await self._trigger_report(job)
                outcome_label = OutcomeStatus.TRIGGERED.value
            elif isinstance(job, AlertTrackerJob):
                await self._trigger_tracker(job)
                outcome_label = OutcomeStatus.TRIGGERED.value
            else:
                logger.warning(f"Unknown job name received: {job.kind}")
                outcome_label = 'ignored'
            return None
        except Exception:
            outcome_label = OutcomeStatus.FAILED.value
            raise
        finally:
            JOBS_PROCESSED.labels(kind=kind_label, outcome=outcome_label).inc()
            JOB_DURATION.labels(kind=kind_label).observe(time.monotonic() - started)

    # =====================================================
    # LOCAL RULE EVALUATION
    # =====================================================

    async def _evaluate_rule(self, job: RuleJob) -> EvaluationOutcome:
        async with self._store_scope() as store:
            owner_id = None
            error: Optional[Exception] = None
            alert: Optional[AlertDetails] = None

            try:
                rule = await store.fetch_rule(job.rule_kind, job.rule_id)
                owner_id = rule.owner_id

                if not rule.is_active:
                    outcome = EvaluationOutcome.skipped()
                else:
                    rule.require_condition()
                    target = await store.resolve_target(rule)
                    polled = await self.poller.poll(target.connection, target.sql)
                    triggered = evaluate_condition(polled.value, rule.operator, rule.threshold)

                    outcome = EvaluationOutcome(
                        status=OutcomeStatus.TRIGGERED if triggered else OutcomeStatus.SUCCESS,
                        value=polled.value,
                        operator=rule.operator,
                        threshold=rule.threshold,
                    )
                    if triggered:
                        alert = AlertDetails(
                            name=target.name,
                            id=rule.id,
                            current_value=polled.value,
                            operator=rule.operator,
                            threshold=rule.threshold,
                        )
            except Exception as e:
                error = e
                outcome = EvaluationOutcome.failed(e)
                logger.error(f"ERROR processing alert job {job.correlation_id} (rule {job.rule_id}): {outcome.error_message}")

            if owner_id:
                await self._append_quietly(store, HistoryLogEntry(
                    source=HistorySource.RULE,
                    rule_id=job.rule_id,
                    status=outcome.status,
                    details=outcome.to_details(),
                    owner_id=owner_id,
                ))
            else:
                logger.warning(f"Rule {job.rule_id} owner unknown; no history entry written")

        if error is not None:
            raise error

        if alert is not None:
            await self.notifier.notify(alert)
        elif outcome.status == OutcomeStatus.SUCCESS:
            logger.info(f"Rule {job.rule_id} completed successfully but was not triggered.")
        else:
            logger.info(f"Rule {job.rule_id} is inactive, skipped.")

        return outcome

    # =====================================================
    # DELEGATED KINDS
    # =====================================================

    async def _delegate_rule(self, job: RuleJob) -> None:
        run_id = uuid4()

        try:
            await self.delegator.trigger_rule_test(job)
        except DelegationError as e:
            logger.error(f"ERROR triggering {job.rule_kind.value} test for rule {job.rule_id}: {e}")
            raise

        logger.info(f"Triggered {job.rule_kind.value} test for rule {job.rule_id} (run {run_id})")

        if not job.user_id:
            logger.warning(f"Rule job {job.correlation_id} carries no userId; no history entry written")
            return

        async with self._store_scope() as store:
            await self._append_quietly(store, HistoryLogEntry(
                source=HistorySource.RULE,
                rule_id=job.rule_id,
                run_id=run_id,
                status=OutcomeStatus.TRIGGERED,
                details={'message': 'Evaluation delegated to application', 'source': 'worker'},
                owner_id=job.user_id,
            ))

    async def _trigger_report(self, job: ReportJob) -> None:
        run_id = uuid4()
        details = {
            'slug': job.slug,
            'slackChannelId': job.slack_channel_id,
            'viewType': job.view_type,
            'subViewType': job.sub_view_type,
            'executionType': 'scheduled',
        }

        async with self._store_scope() as store:
            try:
                await self.delegator.trigger_report(job, run_id)
            except DelegationError as e:
                logger.error(f"ERROR sending trigger request for report ID {job.report_id}: {e}")
                if job.owner_id:
                    # Escalates PersistenceError: the failure must stay traceable
                    await store.append_history(self._report_entry(
                        job, run_id, OutcomeStatus.FAILED, {**details, 'error': str(e)}
                    ))
                raise

            logger.info(
                f"Successfully TRIGGERED report for ID: {job.report_id} (run {run_id}). "
                f"The report is now generating in the background."
            )

            if job.owner_id:
                await self._append_quietly(
                    store, self._report_entry(job, run_id, OutcomeStatus.TRIGGERED, details)
                )
            else:
                logger.warning(f"Report job {job.correlation_id} carries no owner; no history entry written")

    async def _trigger_tracker(self, job: AlertTrackerJob) -> None:
        try:
            await self.delegator.trigger_tracker(job)
        except DelegationError as e:
            logger.error(f"ERROR triggering alert tracker {job.slug}: {e}")
            raise

        logger.info(f"Triggered alert tracker {job.slug}")

    # =====================================================
    # HISTORY HELPERS
    # =====================================================

    @staticmethod
    def _report_entry(job: ReportJob, run_id: UUID, status: OutcomeStatus, details: dict) -> HistoryLogEntry:
        return HistoryLogEntry(
            source=HistorySource.REPORT,
            rule_id=job.report_id,
            run_id=run_id,
            status=status,
            details=details,
            owner_id=job.owner_id,
        )

    @staticmethod
    async def _append_quietly(store: RuleRepository, entry: HistoryLogEntry) -> None:
        """Append a history entry; a failed write is logged, not raised"""
        try:
            await store.append_history(entry)
        except PersistenceError as e:
            logger.error(f"History write failed for {entry.source.value} {entry.rule_id}: {e}")
