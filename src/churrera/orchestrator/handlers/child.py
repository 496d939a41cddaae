"""Sequence handling for the children of a parallel fan-out."""

from __future__ import annotations

import logging
from collections.abc import Sequence

from churrera.orchestrator.contracts import JobStore
from churrera.orchestrator.handlers.common import save_status
from churrera.orchestrator.handlers.sequence import SequenceHandler
from churrera.orchestrator.models import (
    AgentState,
    Job,
    ParallelDescription,
    Prompt,
    SequenceTemplate,
    WorkflowDescription,
)

logger = logging.getLogger(__name__)


def select_template(
    prompts: Sequence[Prompt],
    templates: Sequence[SequenceTemplate],
) -> SequenceTemplate:
    """Template whose prompt files match the child's prompt rows, else the first."""

    sources = [prompt.source_file for prompt in prompts]
    for template in templates:
        if [info.source_file for info in template.prompts] == sources:
            return template
    return templates[0]


def child_description(
    template: SequenceTemplate,
    parallel: ParallelDescription,
    parent: WorkflowDescription,
) -> WorkflowDescription:
    return WorkflowDescription(
        launch_prompt=template.launch_prompt,
        followup_prompts=template.followup_prompts,
        model=template.model or parent.model,
        repository=template.repository or parent.repository,
        timeout_millis=template.timeout_millis or parallel.timeout_millis,
        fallback_src=template.fallback_src or parallel.fallback_src,
    )


class ChildHandler:
    """Runs a child job through its child-sequence template."""

    def __init__(self, *, store: JobStore, sequence: SequenceHandler) -> None:
        self.store = store
        self.sequence = sequence

    def process(
        self,
        job: Job,
        prompts: Sequence[Prompt],
        description: WorkflowDescription,
    ) -> None:
        parallel = description.parallel
        if parallel is None or not parallel.sequences:
            logger.error(
                "Child job %s points at %s, which declares no child sequences",
                job.job_id,
                job.workflow_path,
            )
            if not job.status.is_terminal:
                save_status(self.store, job, AgentState.ERROR)
            return
        template = select_template(prompts, parallel.sequences)
        self.sequence.process(job, prompts, child_description(template, parallel, description))
