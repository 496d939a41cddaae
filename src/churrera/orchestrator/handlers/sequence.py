"""Single-track prompt sequences: launch, follow-ups, timeout fallback."""

from __future__ import annotations

import logging
from collections.abc import Sequence

from churrera.orchestrator.agents import AgentGateway, bound_value_for
from churrera.orchestrator.contracts import JobStore
from churrera.orchestrator.fallback import FallbackExecutor
from churrera.orchestrator.handlers.common import (
    mark_prompt,
    poll_remote_status,
    save_status,
    settle_sent_prompts,
)
from churrera.orchestrator.handlers.launcher import AgentLauncher
from churrera.orchestrator.models import (
    AgentState,
    Job,
    Prompt,
    PromptInfo,
    PromptStatus,
    WorkflowDescription,
)
from churrera.orchestrator.timeouts import TimeoutTracker

logger = logging.getLogger(__name__)


class SequenceHandler:
    """Advances a sequence job by at most one transition per pass.

    Prompt rows pair by position with the workflow's launch prompt followed by
    its follow-ups. A follow-up is sent only once the remote agent is observed
    terminal after the previous prompt; sending it puts the job back to RUNNING,
    so the job only becomes FINISHED after its last prompt settles.
    """

    def __init__(
        self,
        *,
        store: JobStore,
        gateway: AgentGateway,
        launcher: AgentLauncher,
        timeouts: TimeoutTracker,
        fallback: FallbackExecutor,
    ) -> None:
        self.store = store
        self.gateway = gateway
        self.launcher = launcher
        self.timeouts = timeouts
        self.fallback = fallback

    def process(
        self,
        job: Job,
        prompts: Sequence[Prompt],
        description: WorkflowDescription,
        *,
        create_pr: bool = True,
    ) -> None:
        if job.status.is_terminal:
            return
        if job.agent_id is None:
            self.launcher.launch(job, prompts, description.launch_prompt, create_pr=create_pr)
            return

        job = self._adopt_workflow_limits(job, description)
        job = self.timeouts.reset_stale_start_time(job)
        check = self.timeouts.check(job)
        if check.reached and not job.fallback_executed:
            self.fallback.run_single(
                job,
                fallback_src=job.fallback_src or description.fallback_src,
                check=check,
            )
            return

        self.advance(job, prompts, description)

    def advance(
        self,
        job: Job,
        prompts: Sequence[Prompt],
        description: WorkflowDescription,
    ) -> None:
        """Sync remote status and dispatch the next follow-up when due."""

        remote = poll_remote_status(self.gateway, job)
        if remote is None:
            return
        if remote.is_active:
            save_status(self.store, job, remote)
            return

        settled = settle_sent_prompts(self.store, prompts, remote)
        if not remote.is_successful:
            save_status(self.store, job, remote)
            return

        pending = _next_unsent(settled, description)
        if pending is None:
            save_status(self.store, job, remote)
            return

        prompt, info = pending
        try:
            self.gateway.follow_up(
                job,
                info.source_file,
                info.type,
                bind_value=bound_value_for(job, info),
            )
        except Exception as exc:  # noqa: BLE001
            logger.error(
                "Follow-up %s failed for job %s: %s",
                info.source_file,
                job.job_id,
                exc,
            )
            mark_prompt(self.store, prompt, PromptStatus.ERROR)
            save_status(self.store, job, AgentState.ERROR)
            return
        mark_prompt(self.store, prompt, PromptStatus.SENT)
        save_status(self.store, job, AgentState.RUNNING)

    def _adopt_workflow_limits(self, job: Job, description: WorkflowDescription) -> Job:
        if job.timeout_millis is not None or description.timeout_millis is None:
            return job
        return self.store.save_job(job.evolve(timeout_millis=description.timeout_millis))


def _next_unsent(
    prompts: Sequence[Prompt],
    description: WorkflowDescription,
) -> tuple[Prompt, PromptInfo] | None:
    for prompt, info in zip(prompts[1:], description.followup_prompts, strict=False):
        if prompt.status is PromptStatus.UNKNOWN:
            return prompt, info
    return None
