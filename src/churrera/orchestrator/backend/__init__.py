"""Remote agent client implementations."""

from churrera.orchestrator.backend.cursor_api import DEFAULT_API_BASE_URL, CursorAgentClient

__all__ = ["DEFAULT_API_BASE_URL", "CursorAgentClient"]
