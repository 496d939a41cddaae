"""Cascade deletion of jobs, their prompts, children and remote agents."""

from __future__ import annotations

import logging

from churrera.orchestrator.contracts import AgentClient, JobStore
from churrera.orchestrator.errors import JobNotFoundError
from churrera.orchestrator.models import AgentState, ExecutionResult

logger = logging.getLogger(__name__)


class JobDeletionService:
    """Deletes a job tree children-first using an explicit worklist."""

    def __init__(self, *, store: JobStore, agent_client: AgentClient) -> None:
        self.store = store
        self.agent_client = agent_client

    def delete_job_tree(self, job_id: str) -> list[str]:
        """Delete ``job_id`` and all its descendants; returns deleted ids in order."""

        root = self.store.find_by_id(job_id)
        if root is None:
            raise JobNotFoundError(job_id)

        order: list[str] = []
        seen: set[str] = set()
        stack = [root]
        while stack:
            job = stack.pop()
            if job.job_id in seen:
                logger.warning("Job %s reached twice while deleting %s", job.job_id, job_id)
                continue
            seen.add(job.job_id)
            order.append(job.job_id)
            stack.extend(self.store.find_children(job.job_id))

        deleted: list[str] = []
        for current_id in reversed(order):
            self._delete_one(current_id)
            deleted.append(current_id)
        return deleted

    def apply_policy(
        self,
        result: ExecutionResult,
        job_id: str,
        *,
        delete_on_completion: bool,
        delete_on_success_completion: bool,
    ) -> bool:
        """Delete the job tree after a wait when the chosen policy applies."""

        if result.interrupted or result.final_status is None:
            return False
        should_delete = delete_on_completion or (
            delete_on_success_completion and result.final_status is AgentState.FINISHED
        )
        if not should_delete:
            return False
        self.delete_job_tree(job_id)
        logger.info("Deleted job %s after completion (%s)", job_id, result.final_status.value)
        return True

    def _delete_one(self, job_id: str) -> None:
        job = self.store.find_by_id(job_id)
        if job is None:
            return
        if job.agent_id is not None:
            try:
                self.agent_client.delete(job.agent_id)
            except Exception as exc:  # noqa: BLE001
                logger.warning(
                    "Could not delete agent %s of job %s, continuing: %s",
                    job.agent_id,
                    job_id,
                    exc,
                )
        self.store.delete_prompts(job_id)
        self.store.delete_by_id(job_id)
        logger.info("Deleted job %s", job_id)
