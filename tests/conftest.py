"""Shared test fixtures."""

from __future__ import annotations

from collections.abc import Callable, Iterator, Sequence
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any
from uuid import uuid4

import pytest

from churrera.orchestrator.errors import AgentClientError
from churrera.orchestrator.models import (
    AgentState,
    Job,
    ParallelDescription,
    Prompt,
    PromptInfo,
    PromptStatus,
    PromptType,
    SequenceTemplate,
    WorkflowDescription,
    WorkflowKind,
)
from churrera.orchestrator.repository import JobRepository
from churrera.orchestrator.services import OrchestratorServices, build_services

PROMPT_FILES = {
    "workflow.xml": "<workflow/>",
    "prompt1.xml": "Implement the feature",
    "prompt2.md": "Add tests for it",
    "prompt3.txt": "Update the changelog",
    "fallback.md": "Wrap up and commit what you have",
    "split.xml": "List the issue numbers to fix",
    "child.xml": "Fix issue <input>INPUT</input>",
    "child-review.md": "Review the fix for <input>INPUT</input>",
    "fan-out-fallback.txt": "Stop and summarize issue <input>INPUT</input>",
    "notes.yaml": "not a prompt",
}


class FakeAgentClient:
    """In-memory agent client whose remote states are set by the test."""

    def __init__(self) -> None:
        self.launches: list[dict[str, Any]] = []
        self.followups: list[tuple[str, str]] = []
        self.deleted: list[str] = []
        self.states: dict[str, AgentState] = {}
        self.transcripts: dict[str, str] = {}
        self.default_transcript = ""
        self.launch_state = AgentState.CREATING
        self.followup_state = AgentState.RUNNING
        self.fail_launch = False
        self.fail_followup = False
        self.fail_status = False
        self.fail_transcript = False
        self.fail_delete = False

    def launch(self, prompt_text: str, model: str, repository: str, create_pr: bool) -> str:
        if self.fail_launch:
            raise AgentClientError("launch refused", status_code=400)
        agent_id = f"agent-{len(self.launches) + 1}"
        self.launches.append(
            {
                "agent_id": agent_id,
                "text": prompt_text,
                "model": model,
                "repository": repository,
                "create_pr": create_pr,
            },
        )
        self.states[agent_id] = self.launch_state
        return agent_id

    def follow_up(self, agent_id: str, prompt_text: str) -> str:
        if self.fail_followup:
            raise AgentClientError("follow-up refused", status_code=409)
        self.followups.append((agent_id, prompt_text))
        self.states[agent_id] = self.followup_state
        return f"followup-{len(self.followups)}"

    def status(self, agent_id: str) -> AgentState:
        if self.fail_status:
            raise AgentClientError("status unavailable", status_code=503)
        return self.states[agent_id]

    def transcript(self, agent_id: str) -> str:
        if self.fail_transcript:
            raise AgentClientError("conversation unavailable", status_code=503)
        return self.transcripts.get(agent_id, self.default_transcript)

    def delete(self, agent_id: str) -> None:
        if self.fail_delete:
            raise AgentClientError("delete refused", status_code=500)
        self.deleted.append(agent_id)

    def finish_all(self, state: AgentState = AgentState.FINISHED) -> None:
        for agent_id in self.states:
            self.states[agent_id] = state


class StaticWorkflowParser:
    """Parser returning the same description for every workflow path."""

    def __init__(self, description: WorkflowDescription) -> None:
        self.description = description
        self.parsed: list[Path] = []

    def parse(self, path: Path) -> WorkflowDescription:
        self.parsed.append(path)
        return self.description

    def determine_kind(self, path: Path) -> WorkflowKind:
        del path
        return self.description.kind


class FrozenClock:
    def __init__(self, now: datetime | None = None) -> None:
        self.now = now or datetime(2026, 10, 18, 12, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta: float) -> None:
        self.now += timedelta(**delta)


@pytest.fixture()
def repository(tmp_path: Path) -> Iterator[JobRepository]:
    repo = JobRepository(tmp_path / "churrera.db")
    repo.init_schema()
    try:
        yield repo
    finally:
        repo.close()


@pytest.fixture()
def agent_client() -> FakeAgentClient:
    return FakeAgentClient()


@pytest.fixture()
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture()
def workflow_dir(tmp_path: Path) -> Path:
    directory = tmp_path / "workflow"
    directory.mkdir()
    for name, content in PROMPT_FILES.items():
        (directory / name).write_text(content, encoding="utf-8")
    return directory


@pytest.fixture()
def sequence_description() -> WorkflowDescription:
    return WorkflowDescription(
        launch_prompt=PromptInfo("prompt1.xml", PromptType.PML),
        followup_prompts=(
            PromptInfo("prompt2.md", PromptType.MARKDOWN),
            PromptInfo("prompt3.txt", PromptType.TEXT),
        ),
        model="default",
        repository="https://github.com/acme/widgets",
    )


@pytest.fixture()
def parallel_description() -> WorkflowDescription:
    split = PromptInfo("split.xml", PromptType.PML)
    return WorkflowDescription(
        launch_prompt=split,
        model="default",
        repository="https://github.com/acme/widgets",
        parallel=ParallelDescription(
            parallel_prompt=split,
            bind_result_type="List_Integer",
            sequences=(
                SequenceTemplate(
                    prompts=(
                        PromptInfo("child.xml", PromptType.PML, has_bind_expression=True),
                        PromptInfo("child-review.md", PromptType.MARKDOWN, has_bind_expression=True),
                    ),
                ),
            ),
        ),
    )


@pytest.fixture()
def job_factory(
    repository: JobRepository,
    workflow_dir: Path,
    clock: FrozenClock,
) -> Callable[..., Job]:
    """Store a job with one UNKNOWN prompt row per source file."""

    def _create(sources: Sequence[str] = ("prompt1.xml",), **overrides: Any) -> Job:
        now = clock()
        fields: dict[str, Any] = {
            "job_id": str(uuid4()),
            "workflow_path": str(workflow_dir / "workflow.xml"),
            "model": "default",
            "repository": "https://github.com/acme/widgets",
            "status": AgentState.CREATING,
            "created_at": now,
            "last_update": now,
            "workflow_kind": WorkflowKind.SEQUENCE,
        }
        fields.update(overrides)
        job = repository.save_job(Job(**fields))
        for position, source in enumerate(sources):
            repository.save_prompt(
                Prompt(
                    prompt_id=str(uuid4()),
                    job_id=job.job_id,
                    source_file=source,
                    status=PromptStatus.UNKNOWN,
                    created_at=now,
                    last_update=now,
                    position=position,
                ),
            )
        return job

    return _create


@pytest.fixture()
def services_factory(
    repository: JobRepository,
    agent_client: FakeAgentClient,
    clock: FrozenClock,
) -> Callable[[WorkflowDescription], OrchestratorServices]:
    def _build(description: WorkflowDescription) -> OrchestratorServices:
        return build_services(
            store=repository,
            agent_client=agent_client,
            parser=StaticWorkflowParser(description),
            poll_interval_seconds=0.01,
            clock=clock,
        )

    return _build
