from __future__ import annotations

import allure
import pytest

from churrera.orchestrator.agents import AgentGateway
from churrera.orchestrator.errors import AgentClientError
from churrera.orchestrator.models import AgentState, PromptType

pytestmark = [
    allure.epic("Workflow Engine"),
    allure.feature("Agent Gateway"),
]


class ScriptedStatusClient:
    """Returns queued status outcomes, raising the queued exceptions."""

    def __init__(self, outcomes: list[AgentState | Exception]) -> None:
        self.outcomes = outcomes
        self.calls = 0

    def status(self, agent_id: str) -> AgentState:
        del agent_id
        self.calls += 1
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


def test_monitor_returns_first_terminal_state() -> None:
    client = ScriptedStatusClient([AgentState.CREATING, AgentState.RUNNING, AgentState.FINISHED])
    seen: list[AgentState] = []

    state = AgentGateway(client=client).monitor(  # type: ignore[arg-type]
        "agent-1",
        interval_seconds=0,
        on_status=seen.append,
    )

    assert state is AgentState.FINISHED
    assert seen == [AgentState.CREATING, AgentState.RUNNING, AgentState.FINISHED]


def test_monitor_keeps_polling_after_status_errors() -> None:
    client = ScriptedStatusClient([AgentClientError("busy", status_code=503), AgentState.EXPIRED])

    state = AgentGateway(client=client).monitor("agent-1", interval_seconds=0)  # type: ignore[arg-type]

    assert state is AgentState.EXPIRED
    assert client.calls == 2


def test_monitor_stops_on_request() -> None:
    client = ScriptedStatusClient([AgentState.RUNNING] * 5)
    checks = iter([False, False, True])

    state = AgentGateway(client=client).monitor(  # type: ignore[arg-type]
        "agent-1",
        interval_seconds=0,
        should_stop=lambda: next(checks, True),
    )

    assert state is None
    assert client.calls == 1


def test_follow_up_without_agent_is_rejected(agent_client, job_factory) -> None:
    gateway = AgentGateway(client=agent_client)

    with pytest.raises(AgentClientError, match="no agent"):
        gateway.follow_up(job_factory(), "prompt2.md", PromptType.MARKDOWN)
    assert agent_client.followups == []


def test_launch_sends_rendered_prompt_with_job_target(agent_client, job_factory) -> None:
    job = job_factory(model="claude-4", repository="https://github.com/acme/gadgets")

    agent_id = AgentGateway(client=agent_client).launch(
        job,
        "prompt1.xml",
        PromptType.PML,
        create_pr=True,
    )

    assert agent_id == "agent-1"
    assert agent_client.launches == [
        {
            "agent_id": "agent-1",
            "text": "Implement the feature",
            "model": "claude-4",
            "repository": "https://github.com/acme/gadgets",
            "create_pr": True,
        },
    ]
