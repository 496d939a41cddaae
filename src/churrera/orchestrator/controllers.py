"""Controllers for churrera CLI commands."""

from __future__ import annotations

from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path

from churrera.config import Settings
from churrera.orchestrator.agents import AgentGateway
from churrera.orchestrator.backend import CursorAgentClient
from churrera.orchestrator.contracts import MarkupConverter, WorkflowParser
from churrera.orchestrator.deletion import JobDeletionService
from churrera.orchestrator.errors import JobNotFoundError
from churrera.orchestrator.models import (
    AgentState,
    CompletionCheckResult,
    ExecutionResult,
    Job,
)
from churrera.orchestrator.plugins import build_plugin
from churrera.orchestrator.repository import JobRepository
from churrera.orchestrator.services import OrchestratorServices, build_services

EXIT_SUCCESS = 0
EXIT_FAILURE = 1
EXIT_INTERRUPTED = 130


@dataclass(slots=True)
class RunWorkflowCommand:
    """CLI input for submitting a workflow and waiting for it."""

    db_path: Path | None
    workflow_path: Path
    delete_on_completion: bool = False
    delete_on_success_completion: bool = False


@dataclass(slots=True)
class WaitJobCommand:
    """CLI input for waiting on an existing job."""

    db_path: Path | None
    job_id: str
    delete_on_completion: bool = False
    delete_on_success_completion: bool = False


@dataclass(slots=True)
class WorkerCommand:
    """CLI input for the continuous dispatcher loop."""

    db_path: Path | None
    once: bool
    max_passes: int | None = None


@dataclass(slots=True)
class ListJobsCommand:
    db_path: Path | None
    status: str | None
    limit: int


@dataclass(slots=True)
class JobStatusCommand:
    db_path: Path | None
    job_id: str
    follow: bool = False


@dataclass(slots=True)
class JobLogsCommand:
    db_path: Path | None
    job_id: str


@dataclass(slots=True)
class DeleteJobCommand:
    db_path: Path | None
    job_id: str


@dataclass(slots=True)
class WaitResult:
    """Rendered outcome of a blocking wait plus the process exit code."""

    lines: list[str]
    exit_code: int


class OrchestratorCliController:
    """Runs engine use-cases and renders them as output lines."""

    def __init__(self, *, emit: Callable[[str], None] | None = None) -> None:
        self.emit = emit or (lambda _line: None)

    def run_workflow(self, command: RunWorkflowCommand) -> WaitResult:
        settings = Settings.from_env(db_path=command.db_path)
        with _engine(settings) as services:
            submitted = services.submitter.submit(command.workflow_path)
            self.emit(
                f"Submitted job {submitted.job.job_id} "
                f"({submitted.description.kind.value}, {len(submitted.prompts)} prompts)",
            )
            return self._wait(
                services,
                submitted.job.job_id,
                delete_on_completion=command.delete_on_completion,
                delete_on_success_completion=command.delete_on_success_completion,
            )

    def wait_for_job(self, command: WaitJobCommand) -> WaitResult:
        settings = Settings.from_env(db_path=command.db_path)
        with _engine(settings) as services:
            if services.store.find_by_id(command.job_id) is None:
                raise JobNotFoundError(command.job_id)
            return self._wait(
                services,
                command.job_id,
                delete_on_completion=command.delete_on_completion,
                delete_on_success_completion=command.delete_on_success_completion,
            )

    def run_worker(self, command: WorkerCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        with _engine(settings) as services:
            if command.once:
                processed = services.dispatcher.process_all()
                return [f"Worker summary: passes=1 jobs_processed={processed}"]
            passes = services.polling.run_forever(max_passes=command.max_passes)
        return [f"Worker summary: passes={passes}"]

    def list_jobs(self, command: ListJobsCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        status = AgentState(command.status.upper()) if command.status else None
        with _repository(settings) as repository:
            jobs = repository.list_jobs(status=status, limit=command.limit)
        if not jobs:
            return ["No jobs found."]
        return ["Jobs:", *[_job_line(job) for job in jobs]]

    def job_status(self, command: JobStatusCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        with _repository(settings) as repository:
            job = repository.find_by_id(command.job_id)
            if job is None:
                raise JobNotFoundError(command.job_id)
            prompts = repository.find_prompts(job.job_id)
            children = repository.find_children(job.job_id)

        lines = [
            f"Job: {job.job_id}",
            f"Workflow: {job.workflow_path}",
            f"Status: {job.status.value}",
            f"Kind: {job.workflow_kind.value if job.workflow_kind else 'unknown'}",
            f"Agent: {job.agent_id or '-'}",
            f"Model: {job.model}",
            f"Repository: {job.repository}",
            f"Timeout ms: {job.timeout_millis if job.timeout_millis is not None else '-'}",
            f"Fallback: {job.fallback_src or '-'} (executed={job.fallback_executed})",
        ]
        if job.result:
            lines.append(f"Result: {job.result}")
        lines.append("Prompts:")
        lines.extend(
            f"  {prompt.position}. {prompt.source_file} [{prompt.status.value}]"
            for prompt in prompts
        )
        if children:
            lines.append("Children:")
            lines.extend(f"  {_job_line(child)}" for child in children)

        if command.follow and job.agent_id is not None:
            settings.validate_for_agent_api()
            with _agent_client(settings) as client:
                final = AgentGateway(client=client).monitor(
                    job.agent_id,
                    interval_seconds=settings.polling.interval_seconds,
                    on_status=lambda state: self.emit(f"Agent {job.agent_id}: {state.value}"),
                )
            lines.append(f"Agent final status: {final.value if final else 'interrupted'}")
        return lines

    def job_logs(self, command: JobLogsCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        with _repository(settings) as repository:
            job = repository.find_by_id(command.job_id)
        if job is None:
            raise JobNotFoundError(command.job_id)
        if job.agent_id is None:
            return [f"Job {job.job_id} has not launched an agent yet."]
        settings.validate_for_agent_api()
        with _agent_client(settings) as client:
            transcript = client.transcript(job.agent_id)
        return transcript.splitlines() or ["(empty conversation)"]

    def delete_job(self, command: DeleteJobCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        settings.validate_for_agent_api()
        with _repository(settings) as repository, _agent_client(settings) as client:
            deleted = JobDeletionService(store=repository, agent_client=client).delete_job_tree(
                command.job_id,
            )
        return [f"Deleted {len(deleted)} job(s): {', '.join(deleted)}"]

    def _wait(
        self,
        services: OrchestratorServices,
        job_id: str,
        *,
        delete_on_completion: bool,
        delete_on_success_completion: bool,
    ) -> WaitResult:
        last_seen: dict[str, str] = {}

        def _on_progress(job: Job, check: CompletionCheckResult) -> None:
            line = _progress_line(job, check)
            if last_seen.get(job.job_id) != line:
                last_seen[job.job_id] = line
                self.emit(line)

        result = services.polling.wait_for(job_id, on_progress=_on_progress)
        lines = _outcome_lines(job_id, result)
        if services.deletion.apply_policy(
            result,
            job_id,
            delete_on_completion=delete_on_completion,
            delete_on_success_completion=delete_on_success_completion,
        ):
            lines.append(f"Deleted job {job_id} and its children.")
        return WaitResult(lines=lines, exit_code=_exit_code(result))


@contextmanager
def _repository(settings: Settings) -> Iterator[JobRepository]:
    repository = JobRepository(
        db_path=settings.db_path,
        sqlite_busy_timeout_ms=settings.sqlite_busy_timeout_ms,
    )
    repository.init_schema()
    try:
        yield repository
    finally:
        repository.close()


@contextmanager
def _agent_client(settings: Settings) -> Iterator[CursorAgentClient]:
    with CursorAgentClient(
        api_key=settings.agent_api.api_key,
        base_url=settings.agent_api.base_url,
        timeout_seconds=settings.agent_api.request_timeout_seconds,
        max_retries=settings.agent_api.max_retries,
        default_ref=settings.agent_api.default_ref,
    ) as client:
        yield client


@contextmanager
def _engine(settings: Settings) -> Iterator[OrchestratorServices]:
    settings.validate_for_agent_api()
    settings.validate_for_workflows()
    parser: WorkflowParser = build_plugin(settings.workflow_parser)
    converter: MarkupConverter | None = (
        build_plugin(settings.markup_converter) if settings.markup_converter else None
    )
    with _repository(settings) as repository, _agent_client(settings) as client:
        yield build_services(
            store=repository,
            agent_client=client,
            parser=parser,
            converter=converter,
            poll_interval_seconds=settings.polling.interval_seconds,
            stale_timeout_factor=settings.polling.stale_timeout_factor,
        )


def _job_line(job: Job) -> str:
    kind = job.workflow_kind.value if job.workflow_kind else "-"
    parent = job.parent_id or "-"
    return f"{job.job_id}  {job.status.value:<8}  {kind:<8}  parent={parent}  {job.workflow_path}"


def _progress_line(job: Job, check: CompletionCheckResult) -> str:
    if not check.child_jobs:
        return f"Job {job.job_id}: {job.status.value}"
    done = sum(1 for child in check.child_jobs if child.status.is_terminal)
    return f"Job {job.job_id}: {job.status.value} (children {done}/{len(check.child_jobs)} terminal)"


def _outcome_lines(job_id: str, result: ExecutionResult) -> list[str]:
    if result.interrupted:
        return [f"Waiting for job {job_id} interrupted; the job keeps running remotely."]
    status = result.final_status.value if result.final_status else "unknown"
    lines = [f"Job {job_id} completed with status {status}"]
    lines.extend(f"  {_job_line(child)}" for child in result.child_jobs)
    return lines


def _exit_code(result: ExecutionResult) -> int:
    if result.interrupted:
        return EXIT_INTERRUPTED
    return EXIT_SUCCESS if result.succeeded else EXIT_FAILURE
