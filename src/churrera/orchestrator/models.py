"""Domain models for jobs, prompts and workflow descriptions."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any


class AgentState(str, Enum):
    """Remote agent lifecycle states as tracked on a job."""

    CREATING = "CREATING"
    RUNNING = "RUNNING"
    FINISHED = "FINISHED"
    ERROR = "ERROR"
    EXPIRED = "EXPIRED"

    @property
    def is_active(self) -> bool:
        return self in (AgentState.CREATING, AgentState.RUNNING)

    @property
    def is_terminal(self) -> bool:
        return not self.is_active

    @property
    def is_successful(self) -> bool:
        return self is AgentState.FINISHED

    @property
    def is_failed(self) -> bool:
        return self in (AgentState.ERROR, AgentState.EXPIRED)

    @classmethod
    def parse(cls, value: str | None) -> AgentState:
        """Map a remote status string onto the lattice; unknown values count as CREATING."""

        if not value:
            return cls.CREATING
        try:
            return cls(value.strip().upper())
        except ValueError:
            return cls.CREATING


class PromptStatus(str, Enum):
    """Dispatch state of a single prompt within a job."""

    UNKNOWN = "UNKNOWN"
    SENT = "SENT"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    ERROR = "ERROR"


class WorkflowKind(str, Enum):
    SEQUENCE = "SEQUENCE"
    PARALLEL = "PARALLEL"


class PromptType(str, Enum):
    PML = "pml"
    MARKDOWN = "markdown"
    TEXT = "text"


@dataclass(slots=True, frozen=True)
class Job:
    """Persistent state of one agent-driven workflow run."""

    job_id: str
    workflow_path: str
    model: str
    repository: str
    status: AgentState
    created_at: datetime
    last_update: datetime
    agent_id: str | None = None
    parent_id: str | None = None
    result: str | None = None
    workflow_kind: WorkflowKind | None = None
    timeout_millis: int | None = None
    workflow_start_time: datetime | None = None
    fallback_src: str | None = None
    fallback_executed: bool = False

    @property
    def is_child(self) -> bool:
        return self.parent_id is not None

    def evolve(self, **changes: Any) -> Job:
        """Return a copy with the given fields replaced."""

        return replace(self, **changes)


@dataclass(slots=True, frozen=True)
class Prompt:
    """One prompt row belonging to a job, ordered by ``position``."""

    prompt_id: str
    job_id: str
    source_file: str
    status: PromptStatus
    created_at: datetime
    last_update: datetime
    position: int = 0

    def evolve(self, **changes: Any) -> Prompt:
        return replace(self, **changes)


@dataclass(slots=True, frozen=True)
class PromptInfo:
    """Prompt declaration inside a workflow file."""

    source_file: str
    type: PromptType
    has_bind_expression: bool = False


@dataclass(slots=True, frozen=True)
class SequenceTemplate:
    """Child-sequence template declared inside a parallel workflow."""

    prompts: tuple[PromptInfo, ...]
    model: str | None = None
    repository: str | None = None
    timeout_millis: int | None = None
    fallback_src: str | None = None

    @property
    def launch_prompt(self) -> PromptInfo:
        return self.prompts[0]

    @property
    def followup_prompts(self) -> tuple[PromptInfo, ...]:
        return self.prompts[1:]


@dataclass(slots=True, frozen=True)
class ParallelDescription:
    """Fan-out part of a parallel workflow."""

    parallel_prompt: PromptInfo
    bind_result_type: str
    sequences: tuple[SequenceTemplate, ...]
    timeout_millis: int | None = None
    fallback_src: str | None = None


@dataclass(slots=True, frozen=True)
class WorkflowDescription:
    """Typed, read-only view of a parsed workflow file."""

    launch_prompt: PromptInfo
    model: str
    repository: str
    followup_prompts: tuple[PromptInfo, ...] = ()
    timeout_millis: int | None = None
    fallback_src: str | None = None
    parallel: ParallelDescription | None = None

    @property
    def is_parallel(self) -> bool:
        return self.parallel is not None

    @property
    def kind(self) -> WorkflowKind:
        return WorkflowKind.PARALLEL if self.is_parallel else WorkflowKind.SEQUENCE


@dataclass(slots=True)
class CompletionCheckResult:
    """Outcome of a completion check for blocking callers."""

    completed: bool
    final_status: AgentState
    child_jobs: list[Job] = field(default_factory=list)


@dataclass(slots=True)
class ExecutionResult:
    """Final outcome of a run-and-wait loop."""

    final_status: AgentState | None
    interrupted: bool
    child_jobs: list[Job] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return not self.interrupted and self.final_status is AgentState.FINISHED
