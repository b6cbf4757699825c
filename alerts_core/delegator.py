"""
Delegator - fire-and-forget triggers to the application API
===========================================================
Reports, delegated rule tests and alert trackers run inside the application,
not in this worker. The worker only has to get the request out:

- the POST runs as a detached task on the worker loop
- trigger() waits at most `dispatch_grace` seconds for it
- a transport error inside that window raises DelegationError
- otherwise the job is done; the detached request's result is only logged
"""
import asyncio
import logging
from typing import Any, Dict, Optional, Set
from uuid import UUID

import httpx

from alerts_core.config import WorkerConfig
from alerts_core.errors import DelegationError
from alerts_core.metrics import DELEGATIONS
from alerts_core.models import AlertTrackerJob, ReportJob, RuleJob, RuleKind

logger = logging.getLogger(__name__)

SECRET_HEADER = 'X-Worker-Secret'


def build_report_payload(job: ReportJob, run_id: UUID) -> Dict[str, Any]:
    payload = {
        'slug': job.slug,
        'slackChannelId': job.slack_channel_id,
        'executionType': 'scheduled',
        'run_id': str(run_id),
    }
    if job.view_type is not None:
        payload['viewType'] = job.view_type
    if job.sub_view_type is not None:
        payload['subViewType'] = job.sub_view_type
    return payload


def build_rule_test_payload(job: RuleJob) -> Dict[str, Any]:
    if job.rule_kind == RuleKind.METRIC:
        return {'id': job.rule_id, 'type': 'metric', 'source': 'worker'}
    return {'kpiId': job.rule_id, 'source': 'worker'}


def build_tracker_payload(job: AlertTrackerJob) -> Dict[str, Any]:
    return {
        'slug': job.slug,
        'executionType': 'scheduled',
        'slackChannelId': job.slack_channel_id,
    }


class Delegator:
    """Posts trigger requests to the application API without awaiting the work"""

    def __init__(
        self,
        base_url: str,
        secret: Optional[str],
        dispatch_grace: float = 2.0,
        timeout: Optional[float] = None,
        paths: Optional[Dict[str, str]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        """
        Args:
            base_url: Application base URL
            secret: Shared secret sent as X-Worker-Secret
            dispatch_grace: Seconds to wait for an early transport error
            timeout: HTTP timeout for the detached request (None = no limit)
            paths: Endpoint paths keyed by report/metric_test/kpi_test/tracker
            transport: Optional httpx transport (tests)
        """
        self.base_url = base_url.rstrip('/')
        self.secret = secret
        self.dispatch_grace = dispatch_grace
        self.timeout = timeout
        self.paths = {
            'report': '/api/report-trigger',
            'metric_test': '/api/metric-test',
            'kpi_test': '/api/kpi-test',
            'tracker': '/api/tracker-trigger',
        }
        self.paths.update(paths or {})
        self._transport = transport
        self._inflight: Set[asyncio.Task] = set()

    @classmethod
    def from_config(cls, config: WorkerConfig) -> 'Delegator':
        return cls(
            base_url=config.app_base_url,
            secret=config.worker_secret,
            dispatch_grace=config.dispatch_grace_seconds,
            timeout=config.delegation_timeout,
            paths={
                'report': config.report_trigger_path,
                'metric_test': config.metric_test_path,
                'kpi_test': config.kpi_test_path,
                'tracker': config.tracker_trigger_path,
            },
        )

    @property
    def inflight(self) -> int:
        return len(self._inflight)

    # =====================================================
    # JOB-SPECIFIC TRIGGERS
    # =====================================================

    async def trigger_report(self, job: ReportJob, run_id: UUID) -> None:
        await self.trigger(self.paths['report'], build_report_payload(job, run_id))

    async def trigger_rule_test(self, job: RuleJob) -> None:
        path = self.paths['metric_test'] if job.rule_kind == RuleKind.METRIC else self.paths['kpi_test']
        await self.trigger(path, build_rule_test_payload(job))

    async def trigger_tracker(self, job: AlertTrackerJob) -> None:
        await self.trigger(self.paths['tracker'], build_tracker_payload(job))

    # =====================================================
    # FIRE-AND-FORGET CORE
    # =====================================================

    async def trigger(self, path: str, payload: Dict[str, Any]) -> None:
        """
        Dispatch a POST to path and return once it is on its way.

        Raises:
            DelegationError: no secret configured, or the request failed
                with a transport error within the grace window
        """
        if not self.secret:
            raise DelegationError("WORKER_SECRET_KEY is not configured. Cannot trigger delegated work.")

        url = f"{self.base_url}{path}"
        task = asyncio.create_task(self._post(url, payload), name=f"delegate:{path}")
        self._inflight.add(task)
        task.add_done_callback(lambda t: self._finished(path, url, t))

        done, _ = await asyncio.wait({task}, timeout=self.dispatch_grace)

        if task in done and not task.cancelled() and task.exception() is not None:
            exc = task.exception()
            raise DelegationError(f"Failed to trigger {url}: {exc}") from exc

        logger.info(f"Triggered {url}; downstream work continues in the background")

    async def _post(self, url: str, payload: Dict[str, Any]) -> int:
        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            response = await client.post(url, json=payload, headers={SECRET_HEADER: self.secret})
        return response.status_code

    def _finished(self, path: str, url: str, task: asyncio.Task) -> None:
        self._inflight.discard(task)

        if task.cancelled():
            logger.warning(f"Delegated request to {url} was cancelled")
            DELEGATIONS.labels(endpoint=path, result='cancelled').inc()
            return

        exc = task.exception()
        if exc is not None:
            logger.error(f"Delegated request to {url} failed: {exc}")
            DELEGATIONS.labels(endpoint=path, result='error').inc()
            return

        status_code = task.result()
        if status_code >= 400:
            logger.error(f"Delegated request to {url} returned HTTP {status_code}")
            DELEGATIONS.labels(endpoint=path, result='http_error').inc()
        else:
            logger.info(f"Delegated request to {url} completed with HTTP {status_code}")
            DELEGATIONS.labels(endpoint=path, result='ok').inc()

    async def drain(self, timeout: float = 10.0) -> None:
        """Wait for detached requests before shutdown"""
        if not self._inflight:
            return
        logger.info(f"Waiting for {len(self._inflight)} delegated request(s)")
        await asyncio.wait(set(self._inflight), timeout=timeout)
