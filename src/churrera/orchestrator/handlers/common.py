"""Steps shared by the sequence, parallel and child handlers."""

from __future__ import annotations

import logging
from collections.abc import Sequence

from churrera.orchestrator.agents import AgentGateway
from churrera.orchestrator.contracts import JobStore
from churrera.orchestrator.errors import AgentClientError
from churrera.orchestrator.models import AgentState, Job, Prompt, PromptStatus

logger = logging.getLogger(__name__)


def poll_remote_status(gateway: AgentGateway, job: Job) -> AgentState | None:
    """Remote status of the job's agent; ``None`` on a transient error."""

    if job.agent_id is None:
        return None
    try:
        return gateway.status(job.agent_id)
    except AgentClientError as exc:
        logger.warning(
            "Status check failed for job %s (agent %s), retrying next pass: %s",
            job.job_id,
            job.agent_id,
            exc,
        )
        return None


def save_status(store: JobStore, job: Job, status: AgentState) -> Job:
    if job.status is status:
        return job
    logger.info("Job %s status %s -> %s", job.job_id, job.status.value, status.value)
    return store.save_job(job.evolve(status=status))


def settle_sent_prompts(
    store: JobStore,
    prompts: Sequence[Prompt],
    remote: AgentState,
) -> list[Prompt]:
    """Close out prompts whose effect is now observed terminal on the remote side."""

    outcome = PromptStatus.COMPLETED if remote.is_successful else PromptStatus.FAILED
    settled: list[Prompt] = []
    for prompt in prompts:
        if prompt.status is PromptStatus.SENT:
            prompt = store.save_prompt(prompt.evolve(status=outcome))
        settled.append(prompt)
    return settled


def mark_prompt(store: JobStore, prompt: Prompt | None, status: PromptStatus) -> None:
    if prompt is not None and prompt.status is not status:
        store.save_prompt(prompt.evolve(status=status))
