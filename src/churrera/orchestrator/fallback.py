"""Fallback prompt dispatch for timed-out jobs and fan-outs."""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime

from churrera.orchestrator.agents import AgentGateway
from churrera.orchestrator.contracts import JobStore
from churrera.orchestrator.models import AgentState, Job, ParallelDescription
from churrera.orchestrator.prompts import infer_prompt_type
from churrera.orchestrator.timeouts import TimeoutCheck
from churrera.storage.common import utc_now

logger = logging.getLogger(__name__)


class FallbackExecutor:
    """Sends a job's fallback prompt at most once."""

    def __init__(
        self,
        *,
        store: JobStore,
        gateway: AgentGateway,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.store = store
        self.gateway = gateway
        self.clock = clock

    def run_single(
        self,
        job: Job,
        *,
        fallback_src: str | None,
        check: TimeoutCheck | None = None,
    ) -> Job:
        """Dispatch ``fallback_src`` for a timed-out job.

        A terminal job or one whose fallback already ran is returned unchanged. A
        missing fallback source or any dispatch error marks the job ERROR.
        """

        if job.status.is_terminal or job.fallback_executed:
            return job
        elapsed = check.elapsed_millis if check is not None else 0
        limit = check.timeout_millis if check is not None else job.timeout_millis
        if not fallback_src:
            logger.error(
                "Job %s timed out after %d ms (limit %s ms) and has no fallback configured",
                job.job_id,
                elapsed,
                limit,
            )
            return self.store.save_job(job.evolve(status=AgentState.ERROR))

        logger.info(
            "Job %s timed out after %d ms (limit %s ms), running fallback %s",
            job.job_id,
            elapsed,
            limit,
            fallback_src,
        )
        try:
            return self._dispatch(job, fallback_src)
        except Exception as exc:  # noqa: BLE001
            logger.error("Fallback %s failed for job %s: %s", fallback_src, job.job_id, exc)
            return self.store.save_job(job.evolve(status=AgentState.ERROR))

    def run_for_children(self, parent: Job, parallel: ParallelDescription) -> Job:
        """Dispatch the fan-out fallback to every child still running."""

        if parent.fallback_executed:
            return parent
        if not parallel.fallback_src:
            logger.error("Fan-out of job %s timed out and has no fallback configured", parent.job_id)
            if parent.status.is_terminal:
                return self.store.save_job(parent.evolve(fallback_executed=True))
            return self.store.save_job(parent.evolve(status=AgentState.ERROR))

        pending = [
            child
            for child in self.store.find_children(parent.job_id)
            if not child.status.is_terminal and not child.fallback_executed
        ]
        logger.info(
            "Fan-out of job %s timed out, running fallback %s for %d children",
            parent.job_id,
            parallel.fallback_src,
            len(pending),
        )
        for child in pending:
            try:
                self._dispatch(child, parallel.fallback_src)
            except Exception as exc:  # noqa: BLE001
                logger.error(
                    "Fallback %s failed for child job %s: %s",
                    parallel.fallback_src,
                    child.job_id,
                    exc,
                )
        return self.store.save_job(parent.evolve(fallback_executed=True))

    def _dispatch(self, job: Job, fallback_src: str) -> Job:
        prompt_type = infer_prompt_type(fallback_src)
        if job.agent_id is not None:
            self.gateway.follow_up(job, fallback_src, prompt_type, bind_value=job.result)
            return self.store.save_job(job.evolve(fallback_executed=True))

        agent_id = self.gateway.launch(
            job,
            fallback_src,
            prompt_type,
            create_pr=True,
            bind_value=job.result,
        )
        return self.store.save_job(
            job.evolve(
                agent_id=agent_id,
                status=AgentState.CREATING,
                workflow_start_time=(
                    self.clock() if job.timeout_millis is not None else job.workflow_start_time
                ),
                fallback_executed=True,
            ),
        )
