"""Agent gateway: renders prompt files and talks to the remote agent client."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable

from churrera.orchestrator.contracts import AgentClient, MarkupConverter
from churrera.orchestrator.errors import AgentClientError
from churrera.orchestrator.models import AgentState, Job, PromptInfo, PromptType
from churrera.orchestrator.prompts import (
    PassthroughConverter,
    read_prompt_file,
    substitute_bound_value,
)

logger = logging.getLogger(__name__)


def bound_value_for(job: Job, prompt: PromptInfo) -> str | None:
    """Bound value to substitute into ``prompt`` for ``job``, if any."""

    if prompt.has_bind_expression and job.result:
        return job.result
    return None


class AgentGateway:
    """Sends prompt files of a job's workflow to the remote agent."""

    def __init__(
        self,
        *,
        client: AgentClient,
        converter: MarkupConverter | None = None,
    ) -> None:
        self.client = client
        self.converter = converter or PassthroughConverter()

    def render(
        self,
        job: Job,
        source_file: str,
        prompt_type: PromptType,
        *,
        bind_value: str | None = None,
    ) -> str:
        content = read_prompt_file(job.workflow_path, source_file)
        text = self.converter.to_text(content, prompt_type)
        if bind_value is not None:
            text = substitute_bound_value(text, bind_value)
        return text

    def launch(
        self,
        job: Job,
        source_file: str,
        prompt_type: PromptType,
        *,
        create_pr: bool,
        bind_value: str | None = None,
    ) -> str:
        """Launch a new agent for ``job`` and return its id."""

        text = self.render(job, source_file, prompt_type, bind_value=bind_value)
        agent_id = self.client.launch(text, job.model, job.repository, create_pr)
        logger.info(
            "Launched agent %s for job %s with %s (create_pr=%s)",
            agent_id,
            job.job_id,
            source_file,
            create_pr,
        )
        return agent_id

    def follow_up(
        self,
        job: Job,
        source_file: str,
        prompt_type: PromptType,
        *,
        bind_value: str | None = None,
    ) -> str:
        if job.agent_id is None:
            raise AgentClientError(f"Job {job.job_id} has no agent to follow up")
        text = self.render(job, source_file, prompt_type, bind_value=bind_value)
        followup_id = self.client.follow_up(job.agent_id, text)
        logger.info("Sent follow-up %s to agent %s for job %s", source_file, job.agent_id, job.job_id)
        return followup_id

    def status(self, agent_id: str) -> AgentState:
        return self.client.status(agent_id)

    def transcript(self, agent_id: str) -> str:
        return self.client.transcript(agent_id)

    def delete(self, agent_id: str) -> None:
        self.client.delete(agent_id)

    def monitor(
        self,
        agent_id: str,
        *,
        interval_seconds: float,
        should_stop: Callable[[], bool] | None = None,
        on_status: Callable[[AgentState], None] | None = None,
    ) -> AgentState | None:
        """Poll ``agent_id`` until its status is terminal.

        Status errors are logged and polling continues. Returns ``None`` when
        ``should_stop`` reports true or the wait is interrupted with Ctrl-C.
        """

        stop = should_stop or (lambda: False)
        try:
            while not stop():
                try:
                    state = self.client.status(agent_id)
                except AgentClientError as exc:
                    logger.warning("Status check failed for agent %s: %s", agent_id, exc)
                else:
                    if on_status is not None:
                        on_status(state)
                    if state.is_terminal:
                        return state
                _sleep_until(interval_seconds, stop)
        except KeyboardInterrupt:
            logger.info("Monitoring of agent %s interrupted", agent_id)
        return None


def _sleep_until(seconds: float, stop: Callable[[], bool]) -> None:
    deadline = time.monotonic() + seconds
    while not stop() and time.monotonic() < deadline:
        time.sleep(min(0.1, max(0.0, deadline - time.monotonic())))
