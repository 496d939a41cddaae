"""Exception taxonomy for the workflow engine."""

from __future__ import annotations


class ChurreraError(Exception):
    """Base class for engine errors."""


class AgentClientError(ChurreraError):
    """Remote agent API call failed."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class PromptFileError(ChurreraError):
    """Prompt or fallback file is missing or has an unsupported extension."""


class WorkflowParseError(ChurreraError):
    """Workflow file could not be turned into a description."""


class JobNotFoundError(ChurreraError):
    """Job id is unknown to the store."""

    def __init__(self, job_id: str) -> None:
        super().__init__(f"Job not found: {job_id}")
        self.job_id = job_id


class PluginLoadError(ChurreraError):
    """A ``module:attribute`` collaborator spec could not be resolved."""
