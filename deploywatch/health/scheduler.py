"""Health check scheduler: probes every deployed workflow at a fixed interval.

Each tick lists deployments in the ``deployed`` state and runs probe + record
for each of them in a thread pool, concurrently across deployments. Stopping
the scheduler lets the current tick finish and starts no new one.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any

from deploywatch.config import settings
from deploywatch.deployments.models import now_ms
from deploywatch.deployments.store import DeploymentStore, NotFoundError
from deploywatch.health.models import ProbeResult
from deploywatch.health.prober import N8nProber
from deploywatch.health.recorder import HealthRecorder
from deploywatch.notifications.models import Notification

logger = logging.getLogger(__name__)


@dataclass
class CheckOutcome:
    deployment_id: str
    result: ProbeResult
    notification: Notification | None = None


class HealthScheduler:
    """Runs deployment health checks on a repeating asyncio task."""

    def __init__(
        self,
        deployments: DeploymentStore,
        recorder: HealthRecorder,
        prober: N8nProber,
        interval_seconds: float | None = None,
        on_notification: Callable[[Notification], Any] | None = None,
        max_workers: int | None = None,
    ) -> None:
        self.deployments = deployments
        self.recorder = recorder
        self.prober = prober
        self.interval = interval_seconds or settings.health_check_interval_seconds
        self.on_notification = on_notification  # webhook push
        self._max_workers = max_workers or settings.probe_workers
        self._executor: ThreadPoolExecutor | None = None
        self._task: asyncio.Task[None] | None = None
        self._stop_event: asyncio.Event | None = None
        self._running = False

    def _pool(self) -> ThreadPoolExecutor:
        # Recreated on demand so a stopped scheduler can be started again
        if self._executor is None:
            self._executor = ThreadPoolExecutor(
                max_workers=self._max_workers, thread_name_prefix="health-check",
            )
        return self._executor

    @property
    def is_running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Start the periodic loop (first tick runs immediately)."""
        if self._running:
            return
        self._running = True
        self._stop_event = asyncio.Event()
        self._task = asyncio.create_task(self._loop(), name="deployment-health")
        logger.info("Health scheduler started: interval=%ss", self.interval)

    async def stop(self) -> None:
        """Stop after the in-flight tick completes."""
        self._running = False
        if self._stop_event is not None:
            self._stop_event.set()
        if self._task is not None:
            await asyncio.gather(self._task, return_exceptions=True)
            self._task = None
        if self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None
        logger.info("Health scheduler stopped")

    # -- Checks ---------------------------------------------------------------

    def check_deployment(self, deployment_id: str) -> CheckOutcome:
        """Probe one deployment and record the result (blocking)."""
        deployment = self.deployments.require(deployment_id)
        result = self.prober.probe_deployment(deployment)
        notification = self.recorder.record(
            deployment_id, result.is_healthy, result, now_ms(),
        )
        return CheckOutcome(deployment_id, result, notification)

    async def run_deployment_check(self, deployment_id: str) -> CheckOutcome:
        loop = asyncio.get_running_loop()
        outcome = await loop.run_in_executor(self._pool(), self.check_deployment, deployment_id)
        await self._dispatch(outcome)
        return outcome

    async def run_all_now(self) -> list[CheckOutcome]:
        """Run one tick: every active deployment, concurrently."""
        ids = self.deployments.list_active_ids()
        if not ids:
            logger.debug("No deployed workflows to check")
            return []

        loop = asyncio.get_running_loop()
        futures = [
            loop.run_in_executor(self._pool(), self.check_deployment, deployment_id)
            for deployment_id in ids
        ]
        outcomes: list[CheckOutcome] = []
        for deployment_id, result in zip(ids, await asyncio.gather(*futures, return_exceptions=True)):
            if isinstance(result, NotFoundError):
                # Removed between listing and recording; gone from the next tick
                logger.warning("Skipping health check: %s", result)
            elif isinstance(result, BaseException):
                logger.error(
                    "Health check error for %s", deployment_id,
                    exc_info=(type(result), result, result.__traceback__),
                )
            else:
                outcomes.append(result)
                await self._dispatch(result)

        unhealthy = sum(1 for o in outcomes if not o.result.is_healthy)
        logger.info("Health tick: %d checked, %d unhealthy", len(outcomes), unhealthy)
        return outcomes

    async def _dispatch(self, outcome: CheckOutcome) -> None:
        if outcome.notification is None or self.on_notification is None:
            return
        try:
            pending = self.on_notification(outcome.notification)
            if inspect.isawaitable(pending):
                await pending
        except Exception:
            logger.exception("Notification callback error")

    async def _loop(self) -> None:
        assert self._stop_event is not None
        while self._running:
            try:
                await self.run_all_now()
            except Exception:
                logger.exception("Health tick failed")
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self.interval)
            except asyncio.TimeoutError:
                continue
