"""HTTP client for the Cursor background-agents API."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from churrera.orchestrator.errors import AgentClientError
from churrera.orchestrator.models import AgentState

logger = logging.getLogger(__name__)

DEFAULT_API_BASE_URL = "https://api.cursor.com"
DEFAULT_TIMEOUT_SECONDS = 30.0
DEFAULT_MAX_RETRIES = 3
DEFAULT_REF = "main"


class CursorAgentClient:
    """Agent client speaking to ``/v0/agents`` with bearer authentication."""

    def __init__(  # noqa: PLR0913
        self,
        *,
        api_key: str,
        base_url: str = DEFAULT_API_BASE_URL,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        max_retries: int = DEFAULT_MAX_RETRIES,
        default_ref: str = DEFAULT_REF,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        if not api_key:
            raise ValueError("Cursor API key is required")
        self.default_ref = default_ref
        self._client = httpx.Client(
            base_url=base_url.rstrip("/"),
            timeout=httpx.Timeout(timeout_seconds, connect=10.0),
            headers={
                "Authorization": f"Bearer {api_key}",
                "Accept": "application/json",
            },
            transport=transport or httpx.HTTPTransport(retries=max_retries),
        )

    def launch(self, prompt_text: str, model: str, repository: str, create_pr: bool) -> str:
        if not prompt_text.strip():
            raise AgentClientError("Prompt text must not be empty")
        if not model.strip():
            raise AgentClientError("Model must not be empty")
        if not repository.strip():
            raise AgentClientError("Repository must not be empty")
        payload = {
            "prompt": {"text": prompt_text},
            "source": {"repository": repository, "ref": self.default_ref},
            "model": model,
            "target": {"autoCreatePr": create_pr},
        }
        body = self._request("POST", "/v0/agents", json=payload)
        return _require_str(body, "id")

    def follow_up(self, agent_id: str, prompt_text: str) -> str:
        if not prompt_text.strip():
            raise AgentClientError("Follow-up text must not be empty")
        body = self._request(
            "POST",
            f"/v0/agents/{agent_id}/followup",
            json={"prompt": {"text": prompt_text}},
        )
        return _require_str(body, "id")

    def status(self, agent_id: str) -> AgentState:
        body = self._request("GET", f"/v0/agents/{agent_id}")
        raw = body.get("status")
        return AgentState.parse(raw if isinstance(raw, str) else None)

    def transcript(self, agent_id: str) -> str:
        body = self._request("GET", f"/v0/agents/{agent_id}/conversation")
        messages = body.get("messages")
        if not isinstance(messages, list):
            return ""
        lines = [
            f"{message['text']}\n"
            for message in messages
            if isinstance(message, dict) and isinstance(message.get("text"), str)
        ]
        return "".join(lines)

    def delete(self, agent_id: str) -> None:
        self._request("DELETE", f"/v0/agents/{agent_id}")

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> CursorAgentClient:
        return self

    def __exit__(self, *_: object) -> None:
        self.close()

    def _request(self, method: str, path: str, **kwargs: Any) -> dict[str, Any]:
        try:
            response = self._client.request(method, path, **kwargs)
        except httpx.TimeoutException as exc:
            raise AgentClientError(f"{method} {path} timed out") from exc
        except httpx.HTTPError as exc:
            raise AgentClientError(f"{method} {path} failed: {exc}") from exc

        if not response.is_success:
            logger.debug("%s %s -> HTTP %d: %s", method, path, response.status_code, response.text)
            raise AgentClientError(
                f"{method} {path} returned HTTP {response.status_code}",
                status_code=response.status_code,
            )
        if not response.content:
            return {}
        try:
            body = response.json()
        except ValueError as exc:
            raise AgentClientError(f"{method} {path} returned invalid JSON") from exc
        if not isinstance(body, dict):
            raise AgentClientError(f"{method} {path} returned a non-object payload")
        return body


def _require_str(body: dict[str, Any], key: str) -> str:
    value = body.get(key)
    if not isinstance(value, str) or not value:
        raise AgentClientError(f"Response is missing {key!r}")
    return value
