"""First launch of a job's remote agent."""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from datetime import datetime

from churrera.orchestrator.agents import AgentGateway, bound_value_for
from churrera.orchestrator.contracts import JobStore
from churrera.orchestrator.handlers.common import mark_prompt
from churrera.orchestrator.models import AgentState, Job, Prompt, PromptInfo, PromptStatus
from churrera.storage.common import utc_now

logger = logging.getLogger(__name__)


class AgentLauncher:
    """Launches the agent for a job with no agent yet."""

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

    def launch(
        self,
        job: Job,
        prompts: Sequence[Prompt],
        prompt: PromptInfo,
        *,
        create_pr: bool,
        timeout_millis: int | None = None,
    ) -> Job:
        """Launch with ``prompt`` and record the agent; a failed launch is terminal.

        ``timeout_millis`` starts the timeout clock even when the job itself has
        no timeout (a parallel parent measured against its fan-out timeout).
        """

        launch_row = prompts[0] if prompts else None
        try:
            agent_id = self.gateway.launch(
                job,
                prompt.source_file,
                prompt.type,
                create_pr=create_pr,
                bind_value=bound_value_for(job, prompt),
            )
        except Exception as exc:  # noqa: BLE001
            logger.error("Launch failed for job %s: %s", job.job_id, exc)
            mark_prompt(self.store, launch_row, PromptStatus.ERROR)
            return self.store.save_job(job.evolve(status=AgentState.ERROR))

        tracked = job.timeout_millis is not None or timeout_millis is not None
        saved = self.store.save_job(
            job.evolve(
                agent_id=agent_id,
                status=AgentState.CREATING,
                workflow_start_time=self.clock() if tracked else job.workflow_start_time,
            ),
        )
        mark_prompt(self.store, launch_row, PromptStatus.SENT)
        return saved
