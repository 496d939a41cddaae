"""Elapsed-time and staleness computation for timeout-bearing jobs."""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime
from typing import NamedTuple

from churrera.orchestrator.contracts import JobStore
from churrera.orchestrator.models import Job
from churrera.storage.common import utc_now

logger = logging.getLogger(__name__)

STALE_TIMEOUT_FACTOR = 2.0


class TimeoutCheck(NamedTuple):
    elapsed_millis: int
    timeout_millis: int | None
    reached: bool


class TimeoutTracker:
    """Measures jobs against their ``timeout_millis``.

    A start time older than ``stale_factor`` times the timeout is assumed to be left
    over from a previous process and is reset instead of firing a fallback.
    """

    def __init__(
        self,
        *,
        store: JobStore,
        stale_factor: float = STALE_TIMEOUT_FACTOR,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.store = store
        self.stale_factor = stale_factor
        self.clock = clock

    def elapsed_millis(self, job: Job, *, timeout_millis: int | None = None) -> int:
        limit = timeout_millis if timeout_millis is not None else job.timeout_millis
        if limit is None or job.workflow_start_time is None:
            return 0
        delta = self.clock() - job.workflow_start_time
        return int(delta.total_seconds() * 1000)

    def check(self, job: Job, *, timeout_millis: int | None = None) -> TimeoutCheck:
        """Evaluate ``job`` against its own timeout or an explicit override."""

        limit = timeout_millis if timeout_millis is not None else job.timeout_millis
        elapsed = self.elapsed_millis(job, timeout_millis=limit)
        if limit is None or job.agent_id is None or job.workflow_start_time is None:
            return TimeoutCheck(elapsed_millis=elapsed, timeout_millis=limit, reached=False)
        return TimeoutCheck(elapsed_millis=elapsed, timeout_millis=limit, reached=elapsed >= limit)

    def is_stale(self, job: Job) -> bool:
        if job.timeout_millis is None or job.workflow_start_time is None:
            return False
        return self.elapsed_millis(job) > self.stale_factor * job.timeout_millis

    def reset_stale_start_time(self, job: Job) -> Job:
        """Reset a missing or stale start time of a running, timeout-bearing job."""

        if job.timeout_millis is None or job.status.is_terminal:
            return job
        if job.workflow_start_time is not None and not self.is_stale(job):
            return job
        if job.workflow_start_time is None:
            logger.info("Job %s has a timeout but no start time, starting the clock now", job.job_id)
        else:
            logger.info(
                "Job %s start time is older than %.1fx its timeout, resetting",
                job.job_id,
                self.stale_factor,
            )
        return self.store.save_job(job.evolve(workflow_start_time=self.clock()))
