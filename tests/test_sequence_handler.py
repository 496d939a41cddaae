from __future__ import annotations

from dataclasses import replace

import allure

from churrera.orchestrator.models import AgentState, PromptInfo, PromptStatus, PromptType

pytestmark = [
    allure.epic("Workflow Engine"),
    allure.feature("Sequence Workflows"),
]

SOURCES = ("prompt1.xml", "prompt2.md", "prompt3.txt")


def _prompt_statuses(repository, job_id: str) -> list[PromptStatus]:
    return [prompt.status for prompt in repository.find_prompts(job_id)]


def test_sequence_sends_one_follow_up_per_pass_until_finished(
    repository,
    agent_client,
    job_factory,
    services_factory,
    sequence_description,
) -> None:
    job = job_factory(SOURCES)
    services = services_factory(sequence_description)

    services.dispatcher.process_all()
    launched = repository.find_by_id(job.job_id)
    assert launched.agent_id == "agent-1"
    assert launched.status is AgentState.CREATING
    assert agent_client.launches[0]["text"] == "Implement the feature"
    assert agent_client.launches[0]["create_pr"] is True
    assert _prompt_statuses(repository, job.job_id) == [
        PromptStatus.SENT,
        PromptStatus.UNKNOWN,
        PromptStatus.UNKNOWN,
    ]

    agent_client.finish_all()
    services.dispatcher.process_all()
    assert agent_client.followups == [("agent-1", "Add tests for it")]
    assert repository.find_by_id(job.job_id).status is AgentState.RUNNING
    assert _prompt_statuses(repository, job.job_id) == [
        PromptStatus.COMPLETED,
        PromptStatus.SENT,
        PromptStatus.UNKNOWN,
    ]

    agent_client.finish_all()
    services.dispatcher.process_all()
    assert agent_client.followups[-1] == ("agent-1", "Update the changelog")
    assert repository.find_by_id(job.job_id).status is AgentState.RUNNING
    assert _prompt_statuses(repository, job.job_id) == [
        PromptStatus.COMPLETED,
        PromptStatus.COMPLETED,
        PromptStatus.SENT,
    ]

    agent_client.finish_all()
    services.dispatcher.process_all()
    assert len(agent_client.followups) == 2
    assert repository.find_by_id(job.job_id).status is AgentState.FINISHED
    assert _prompt_statuses(repository, job.job_id) == [PromptStatus.COMPLETED] * 3


def test_terminal_job_is_left_untouched_by_later_passes(
    repository,
    agent_client,
    job_factory,
    services_factory,
    sequence_description,
) -> None:
    job = job_factory(SOURCES)
    services = services_factory(sequence_description)
    services.dispatcher.process_all()
    agent_client.states["agent-1"] = AgentState.EXPIRED
    services.dispatcher.process_all()

    before = repository.find_by_id(job.job_id)
    prompts_before = _prompt_statuses(repository, job.job_id)
    assert before.status is AgentState.EXPIRED

    agent_client.states["agent-1"] = AgentState.RUNNING
    services.dispatcher.process_all()
    services.dispatcher.process_all()

    after = repository.find_by_id(job.job_id)
    assert after.status is AgentState.EXPIRED
    assert after.agent_id == before.agent_id
    assert _prompt_statuses(repository, job.job_id) == prompts_before
    assert len(agent_client.launches) == 1
    assert agent_client.followups == []


def test_active_remote_status_is_synced_without_follow_up(
    repository,
    agent_client,
    job_factory,
    services_factory,
    sequence_description,
) -> None:
    job = job_factory(SOURCES)
    services = services_factory(sequence_description)
    services.dispatcher.process_all()

    agent_client.states["agent-1"] = AgentState.RUNNING
    services.dispatcher.process_all()

    assert repository.find_by_id(job.job_id).status is AgentState.RUNNING
    assert agent_client.followups == []
    assert _prompt_statuses(repository, job.job_id)[0] is PromptStatus.SENT


def test_failed_launch_is_terminal_and_not_retried(
    repository,
    agent_client,
    job_factory,
    services_factory,
    sequence_description,
) -> None:
    job = job_factory(SOURCES)
    services = services_factory(sequence_description)
    agent_client.fail_launch = True

    services.dispatcher.process_all()
    failed = repository.find_by_id(job.job_id)
    assert failed.status is AgentState.ERROR
    assert failed.agent_id is None
    assert _prompt_statuses(repository, job.job_id)[0] is PromptStatus.ERROR

    agent_client.fail_launch = False
    services.dispatcher.process_all()
    assert agent_client.launches == []
    assert repository.find_by_id(job.job_id).status is AgentState.ERROR


def test_remote_failure_marks_sent_prompt_failed_and_stops(
    repository,
    agent_client,
    job_factory,
    services_factory,
    sequence_description,
) -> None:
    job = job_factory(SOURCES)
    services = services_factory(sequence_description)
    services.dispatcher.process_all()

    agent_client.states["agent-1"] = AgentState.ERROR
    services.dispatcher.process_all()

    assert repository.find_by_id(job.job_id).status is AgentState.ERROR
    assert _prompt_statuses(repository, job.job_id) == [
        PromptStatus.FAILED,
        PromptStatus.UNKNOWN,
        PromptStatus.UNKNOWN,
    ]
    assert agent_client.followups == []


def test_status_check_error_leaves_job_for_next_pass(
    repository,
    agent_client,
    job_factory,
    services_factory,
    sequence_description,
) -> None:
    job = job_factory(SOURCES)
    services = services_factory(sequence_description)
    services.dispatcher.process_all()

    agent_client.fail_status = True
    services.dispatcher.process_all()
    assert repository.find_by_id(job.job_id).status is AgentState.CREATING

    agent_client.fail_status = False
    agent_client.states["agent-1"] = AgentState.RUNNING
    services.dispatcher.process_all()
    assert repository.find_by_id(job.job_id).status is AgentState.RUNNING


def test_failed_follow_up_marks_prompt_and_job_error(
    repository,
    agent_client,
    job_factory,
    services_factory,
    sequence_description,
) -> None:
    job = job_factory(SOURCES)
    services = services_factory(sequence_description)
    services.dispatcher.process_all()

    agent_client.finish_all()
    agent_client.fail_followup = True
    services.dispatcher.process_all()

    assert repository.find_by_id(job.job_id).status is AgentState.ERROR
    assert _prompt_statuses(repository, job.job_id) == [
        PromptStatus.COMPLETED,
        PromptStatus.ERROR,
        PromptStatus.UNKNOWN,
    ]


def test_launch_substitutes_bound_value_when_prompt_declares_binding(
    agent_client,
    job_factory,
    services_factory,
    sequence_description,
) -> None:
    description = replace(
        sequence_description,
        launch_prompt=PromptInfo("child.xml", PromptType.PML, has_bind_expression=True),
        followup_prompts=(),
    )
    job_factory(("child.xml",), result="42")
    services_factory(description).dispatcher.process_all()

    assert agent_client.launches[0]["text"] == "Fix issue <input>42</input>"


def test_timeout_sends_fallback_once_then_keeps_polling(
    repository,
    agent_client,
    clock,
    job_factory,
    services_factory,
    sequence_description,
) -> None:
    job = job_factory(SOURCES, timeout_millis=1000, fallback_src="fallback.md")
    services = services_factory(sequence_description)
    services.dispatcher.process_all()
    assert repository.find_by_id(job.job_id).workflow_start_time == clock()

    agent_client.states["agent-1"] = AgentState.RUNNING
    clock.advance(milliseconds=1500)
    services.dispatcher.process_all()

    after_fallback = repository.find_by_id(job.job_id)
    assert after_fallback.fallback_executed is True
    assert after_fallback.status is AgentState.CREATING
    assert agent_client.followups == [("agent-1", "Wrap up and commit what you have")]

    clock.advance(milliseconds=300)
    services.dispatcher.process_all()
    assert len(agent_client.followups) == 1
    assert repository.find_by_id(job.job_id).status is AgentState.RUNNING


def test_timeout_without_fallback_marks_job_error(
    repository,
    agent_client,
    clock,
    job_factory,
    services_factory,
    sequence_description,
) -> None:
    job = job_factory(SOURCES, timeout_millis=1000)
    services = services_factory(sequence_description)
    services.dispatcher.process_all()

    agent_client.states["agent-1"] = AgentState.RUNNING
    clock.advance(milliseconds=1200)
    services.dispatcher.process_all()

    assert repository.find_by_id(job.job_id).status is AgentState.ERROR
    assert agent_client.followups == []


def test_stale_start_time_is_reset_instead_of_firing_fallback(
    repository,
    agent_client,
    clock,
    job_factory,
    services_factory,
    sequence_description,
) -> None:
    job = job_factory(SOURCES, timeout_millis=1000, fallback_src="fallback.md")
    services = services_factory(sequence_description)
    services.dispatcher.process_all()

    agent_client.states["agent-1"] = AgentState.RUNNING
    clock.advance(milliseconds=2500)
    services.dispatcher.process_all()

    current = repository.find_by_id(job.job_id)
    assert current.workflow_start_time == clock()
    assert current.fallback_executed is False
    assert agent_client.followups == []
