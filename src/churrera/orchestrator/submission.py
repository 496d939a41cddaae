"""Job creation for a workflow file at submission time."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from uuid import uuid4

from churrera.orchestrator.contracts import JobStore, WorkflowParser
from churrera.orchestrator.models import (
    AgentState,
    Job,
    Prompt,
    PromptInfo,
    PromptStatus,
    WorkflowDescription,
)
from churrera.storage.common import utc_now

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class SubmittedJob:
    """Job and prompt rows created for a submitted workflow."""

    job: Job
    prompts: list[Prompt]
    description: WorkflowDescription


def declared_prompts(description: WorkflowDescription) -> tuple[PromptInfo, ...]:
    """Prompts a top-level job runs itself, in dispatch order."""

    if description.parallel is not None:
        return (description.parallel.parallel_prompt,)
    return (description.launch_prompt, *description.followup_prompts)


class WorkflowSubmitter:
    def __init__(
        self,
        *,
        store: JobStore,
        parser: WorkflowParser,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.store = store
        self.parser = parser
        self.clock = clock

    def submit(self, workflow_path: Path) -> SubmittedJob:
        """Parse ``workflow_path`` and store a new CREATING job for it."""

        resolved = workflow_path.resolve()
        description = self.parser.parse(resolved)
        now = self.clock()
        job = self.store.save_job(
            Job(
                job_id=str(uuid4()),
                workflow_path=str(resolved),
                model=description.model,
                repository=description.repository,
                status=AgentState.CREATING,
                created_at=now,
                last_update=now,
                workflow_kind=description.kind,
                timeout_millis=description.timeout_millis,
                fallback_src=description.fallback_src,
            ),
        )
        prompts = [
            self.store.save_prompt(
                Prompt(
                    prompt_id=str(uuid4()),
                    job_id=job.job_id,
                    source_file=info.source_file,
                    status=PromptStatus.UNKNOWN,
                    created_at=now,
                    last_update=now,
                    position=position,
                ),
            )
            for position, info in enumerate(declared_prompts(description))
        ]
        logger.info(
            "Submitted job %s for %s (%s, %d prompts)",
            job.job_id,
            resolved,
            description.kind.value,
            len(prompts),
        )
        return SubmittedJob(job=job, prompts=prompts, description=description)
