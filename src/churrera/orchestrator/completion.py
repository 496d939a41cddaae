"""Completion checks used by callers that block until a job is done."""

from __future__ import annotations

from typing import Protocol

from churrera.orchestrator.contracts import JobStore
from churrera.orchestrator.models import CompletionCheckResult, Job, WorkflowKind


class CompletionChecker(Protocol):
    def check(self, job: Job) -> CompletionCheckResult: ...


class SimpleCompletionChecker:
    """A sequence job is complete once its own status is terminal."""

    def check(self, job: Job) -> CompletionCheckResult:
        return CompletionCheckResult(completed=job.status.is_terminal, final_status=job.status)


class ParallelCompletionChecker:
    """A parallel job is complete once the parent and every child are terminal.

    The final status is the first non-successful child in store order, so two
    failing children resolve by position rather than by severity.
    """

    def __init__(self, store: JobStore) -> None:
        self.store = store

    def check(self, job: Job) -> CompletionCheckResult:
        children = self.store.find_children(job.job_id)
        completed = job.status.is_terminal and all(child.status.is_terminal for child in children)
        final_status = job.status
        if completed and job.status.is_successful:
            for child in children:
                if not child.status.is_successful:
                    final_status = child.status
                    break
        return CompletionCheckResult(
            completed=completed,
            final_status=final_status,
            child_jobs=children,
        )


def completion_checker_for(kind: WorkflowKind | None, store: JobStore) -> CompletionChecker:
    """Checker for a workflow kind; an unknown kind is treated as a sequence."""

    if kind is WorkflowKind.PARALLEL:
        return ParallelCompletionChecker(store)
    return SimpleCompletionChecker()
