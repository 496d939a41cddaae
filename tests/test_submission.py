from __future__ import annotations

import allure

from churrera.orchestrator.models import AgentState, PromptStatus, WorkflowKind
from churrera.orchestrator.submission import declared_prompts

pytestmark = [
    allure.epic("Workflow Engine"),
    allure.feature("Submission"),
]


def test_sequence_submission_stores_every_prompt(
    repository,
    workflow_dir,
    services_factory,
    sequence_description,
) -> None:
    services = services_factory(sequence_description)

    submitted = services.submitter.submit(workflow_dir / "workflow.xml")

    job = repository.find_by_id(submitted.job.job_id)
    assert job.status is AgentState.CREATING
    assert job.agent_id is None
    assert job.workflow_kind is WorkflowKind.SEQUENCE
    assert job.workflow_path == str((workflow_dir / "workflow.xml").resolve())
    assert job.repository == "https://github.com/acme/widgets"
    prompts = repository.find_prompts(job.job_id)
    assert [prompt.source_file for prompt in prompts] == ["prompt1.xml", "prompt2.md", "prompt3.txt"]
    assert {prompt.status for prompt in prompts} == {PromptStatus.UNKNOWN}


def test_parallel_submission_stores_only_the_producing_prompt(
    repository,
    workflow_dir,
    services_factory,
    parallel_description,
) -> None:
    services = services_factory(parallel_description)

    submitted = services.submitter.submit(workflow_dir / "workflow.xml")

    assert submitted.job.workflow_kind is WorkflowKind.PARALLEL
    assert [prompt.source_file for prompt in submitted.prompts] == ["split.xml"]
    assert repository.find_children(submitted.job.job_id) == []


def test_declared_prompts_follow_dispatch_order(sequence_description, parallel_description) -> None:
    assert [info.source_file for info in declared_prompts(sequence_description)] == [
        "prompt1.xml",
        "prompt2.md",
        "prompt3.txt",
    ]
    assert [info.source_file for info in declared_prompts(parallel_description)] == ["split.xml"]
