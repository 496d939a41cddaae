"""Collaborator protocols consumed by the workflow engine."""

from __future__ import annotations

from pathlib import Path
from typing import Protocol

from churrera.orchestrator.models import (
    AgentState,
    Job,
    Prompt,
    PromptType,
    WorkflowDescription,
    WorkflowKind,
)


class JobStore(Protocol):
    """Persistent job and prompt storage.

    "Unfinished" is defined by the implementation; the engine only processes what
    ``find_unfinished`` returns.
    """

    def find_unfinished(self) -> list[Job]: ...

    def find_by_id(self, job_id: str) -> Job | None: ...

    def find_children(self, parent_id: str) -> list[Job]: ...

    def find_prompts(self, job_id: str) -> list[Prompt]: ...

    def save_job(self, job: Job) -> Job: ...

    def save_prompt(self, prompt: Prompt) -> Prompt: ...

    def delete_prompts(self, job_id: str) -> None: ...

    def delete_by_id(self, job_id: str) -> None: ...


class WorkflowParser(Protocol):
    """Turns a workflow file into a typed description."""

    def parse(self, path: Path) -> WorkflowDescription: ...

    def determine_kind(self, path: Path) -> WorkflowKind: ...


class AgentClient(Protocol):
    """Remote coding-agent API."""

    def launch(self, prompt_text: str, model: str, repository: str, create_pr: bool) -> str: ...

    def follow_up(self, agent_id: str, prompt_text: str) -> str: ...

    def status(self, agent_id: str) -> AgentState: ...

    def transcript(self, agent_id: str) -> str: ...

    def delete(self, agent_id: str) -> None: ...


class MarkupConverter(Protocol):
    """Renders raw prompt file content into the text sent to the agent."""

    def to_text(self, content: str, prompt_type: PromptType) -> str: ...
