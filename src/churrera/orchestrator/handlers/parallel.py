"""Fan-out/fan-in coordination for parallel workflows."""

from __future__ import annotations

import json
import logging
from collections.abc import Callable, Sequence
from datetime import datetime
from typing import Any
from uuid import uuid4

from churrera.orchestrator.agents import AgentGateway
from churrera.orchestrator.contracts import JobStore
from churrera.orchestrator.errors import AgentClientError
from churrera.orchestrator.extraction import ResultExtractor
from churrera.orchestrator.fallback import FallbackExecutor
from churrera.orchestrator.handlers.common import (
    poll_remote_status,
    save_status,
    settle_sent_prompts,
)
from churrera.orchestrator.handlers.launcher import AgentLauncher
from churrera.orchestrator.models import (
    AgentState,
    Job,
    ParallelDescription,
    Prompt,
    PromptStatus,
    WorkflowDescription,
    WorkflowKind,
)
from churrera.orchestrator.timeouts import TimeoutTracker
from churrera.storage.common import utc_now

logger = logging.getLogger(__name__)


def bound_text(value: Any) -> str:
    """Text form of an extracted element as stored on a child job."""

    if isinstance(value, str):
        return value
    return json.dumps(value)


class ParallelHandler:
    """Drives a parallel parent and spawns one child per extracted value.

    The parent runs only the parallel-producing prompt, never opens a pull
    request, and is not persisted as FINISHED until its children exist.
    """

    def __init__(  # noqa: PLR0913
        self,
        *,
        store: JobStore,
        gateway: AgentGateway,
        launcher: AgentLauncher,
        timeouts: TimeoutTracker,
        fallback: FallbackExecutor,
        extractor: ResultExtractor,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.store = store
        self.gateway = gateway
        self.launcher = launcher
        self.timeouts = timeouts
        self.fallback = fallback
        self.extractor = extractor
        self.clock = clock

    def process(
        self,
        job: Job,
        prompts: Sequence[Prompt],
        description: WorkflowDescription,
    ) -> None:
        parallel = description.parallel
        if parallel is None:
            raise ValueError(f"Workflow {job.workflow_path} has no parallel section")

        if job.agent_id is None:
            if job.status.is_terminal:
                return
            self.launcher.launch(
                job,
                prompts,
                parallel.parallel_prompt,
                create_pr=False,
                timeout_millis=parallel.timeout_millis,
            )
            return

        children = self.store.find_children(job.job_id)
        if children:
            job = self._check_fan_out_timeout(job, children, parallel)
        if job.status.is_terminal:
            return

        job = self.timeouts.reset_stale_start_time(job)
        check = self.timeouts.check(job)
        if check.reached and not job.fallback_executed and not children:
            self.fallback.run_single(
                job,
                fallback_src=job.fallback_src or description.fallback_src,
                check=check,
            )
            return

        remote = poll_remote_status(self.gateway, job)
        if remote is None:
            return
        if remote.is_active:
            save_status(self.store, job, remote)
            return

        settle_sent_prompts(self.store, prompts, remote)
        if not remote.is_successful:
            save_status(self.store, job, remote)
            return

        if not children:
            try:
                values = self.extractor.extract(job, parallel)
            except AgentClientError as exc:
                logger.warning(
                    "Transcript fetch failed for job %s, retrying next pass: %s",
                    job.job_id,
                    exc,
                )
                return
            if not values:
                logger.error("Job %s finished without a usable result, no children created", job.job_id)
                save_status(self.store, job, AgentState.ERROR)
                return
            job = self.store.find_by_id(job.job_id) or job
            if not self._spawn_children(job, values, parallel):
                save_status(self.store, job, AgentState.ERROR)
                return

        save_status(self.store, job, remote)

    def _check_fan_out_timeout(
        self,
        job: Job,
        children: Sequence[Job],
        parallel: ParallelDescription,
    ) -> Job:
        if job.fallback_executed or parallel.timeout_millis is None:
            return job
        if all(child.status.is_terminal for child in children):
            return job
        check = self.timeouts.check(job, timeout_millis=parallel.timeout_millis)
        if not check.reached:
            return job
        return self.fallback.run_for_children(job, parallel)

    def _spawn_children(
        self,
        parent: Job,
        values: Sequence[Any],
        parallel: ParallelDescription,
    ) -> list[Job]:
        templates = [template for template in parallel.sequences if template.prompts]
        if len(templates) < len(parallel.sequences):
            logger.error(
                "Parallel workflow %s declares child sequences without prompts, skipping them",
                parent.workflow_path,
            )
        if not templates:
            logger.error("Parallel workflow %s declares no usable child sequences", parent.workflow_path)
            return []

        now = self.clock()
        children: list[Job] = []
        for index, value in enumerate(values):
            template = templates[index % len(templates)]
            child = self.store.save_job(
                Job(
                    job_id=str(uuid4()),
                    workflow_path=parent.workflow_path,
                    model=template.model or parent.model,
                    repository=template.repository or parent.repository,
                    status=AgentState.CREATING,
                    created_at=now,
                    last_update=now,
                    parent_id=parent.job_id,
                    result=bound_text(value),
                    workflow_kind=WorkflowKind.SEQUENCE,
                    timeout_millis=template.timeout_millis or parallel.timeout_millis,
                    fallback_src=template.fallback_src or parallel.fallback_src,
                ),
            )
            for position, info in enumerate(template.prompts):
                self.store.save_prompt(
                    Prompt(
                        prompt_id=str(uuid4()),
                        job_id=child.job_id,
                        source_file=info.source_file,
                        status=PromptStatus.UNKNOWN,
                        created_at=now,
                        last_update=now,
                        position=position,
                    ),
                )
            children.append(child)
        logger.info("Created %d child jobs for job %s", len(children), parent.job_id)
        return children
