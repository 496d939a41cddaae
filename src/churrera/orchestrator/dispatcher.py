"""Routes every unfinished job to the handler for its workflow shape."""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from enum import Enum
from pathlib import Path
from typing import Protocol

from churrera.orchestrator.contracts import JobStore, WorkflowParser
from churrera.orchestrator.models import Job, Prompt, WorkflowDescription

logger = logging.getLogger(__name__)


class WorkflowShape(str, Enum):
    SEQUENCE = "sequence"
    PARALLEL = "parallel"
    CHILD = "child"


class JobHandler(Protocol):
    def process(
        self,
        job: Job,
        prompts: Sequence[Prompt],
        description: WorkflowDescription,
    ) -> None: ...


def classify(job: Job, description: WorkflowDescription) -> WorkflowShape:
    """Children first, then parallel parents, everything else is a sequence."""

    if job.parent_id is not None:
        return WorkflowShape.CHILD
    if description.is_parallel:
        return WorkflowShape.PARALLEL
    return WorkflowShape.SEQUENCE


class JobDispatcher:
    """Runs one processing pass over all unfinished jobs."""

    def __init__(
        self,
        *,
        store: JobStore,
        parser: WorkflowParser,
        handlers: Mapping[WorkflowShape, JobHandler],
    ) -> None:
        missing = set(WorkflowShape) - set(handlers)
        if missing:
            names = ", ".join(sorted(shape.value for shape in missing))
            raise ValueError(f"No handler registered for: {names}")
        self.store = store
        self.parser = parser
        self.handlers = dict(handlers)

    def process_all(self) -> int:
        """Process each unfinished job once; returns how many were attempted.

        A failure in one job is logged and never stops the pass.
        """

        try:
            jobs = self.store.find_unfinished()
        except Exception:  # noqa: BLE001
            logger.exception("Could not load unfinished jobs")
            return 0

        logger.debug("Processing %d unfinished jobs", len(jobs))
        for job in jobs:
            try:
                self.process_job(job)
            except Exception:  # noqa: BLE001
                logger.exception("Error processing job %s", job.job_id)
        return len(jobs)

    def process_job(self, job: Job) -> None:
        # Earlier jobs in the same pass may have updated this one.
        current = self.store.find_by_id(job.job_id)
        if current is None:
            logger.info("Job %s disappeared before processing", job.job_id)
            return
        job = current
        prompts = self.store.find_prompts(job.job_id)
        if not prompts:
            logger.error("Job %s has no prompts, skipping", job.job_id)
            return
        description = self.parser.parse(Path(job.workflow_path))
        shape = classify(job, description)
        logger.debug("Job %s handled as %s", job.job_id, shape.value)
        self.handlers[shape].process(job, prompts, description)
