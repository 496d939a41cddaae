from __future__ import annotations

from pathlib import Path

import allure
import pytest

from churrera.orchestrator.dispatcher import JobDispatcher, WorkflowShape, classify
from churrera.orchestrator.errors import WorkflowParseError
from churrera.orchestrator.models import AgentState, WorkflowDescription, WorkflowKind

pytestmark = [
    allure.epic("Workflow Engine"),
    allure.feature("Job Dispatcher"),
]


class RecordingHandler:
    def __init__(self) -> None:
        self.processed: list[str] = []

    def process(self, job, prompts, description) -> None:
        del prompts, description
        self.processed.append(job.job_id)


class StubParser:
    """Returns one description; fails for workflow files named ``broken*``."""

    def __init__(self, description: WorkflowDescription) -> None:
        self.description = description

    def parse(self, path: Path) -> WorkflowDescription:
        if path.name.startswith("broken"):
            raise WorkflowParseError(f"Cannot parse {path}")
        return self.description

    def determine_kind(self, path: Path) -> WorkflowKind:
        return self.parse(path).kind


def _dispatcher(repository, parser) -> tuple[JobDispatcher, dict[WorkflowShape, RecordingHandler]]:
    handlers = {shape: RecordingHandler() for shape in WorkflowShape}
    return JobDispatcher(store=repository, parser=parser, handlers=handlers), handlers


def test_classify_prefers_parent_link(job_factory, sequence_description, parallel_description) -> None:
    top = job_factory()
    child = job_factory(parent_id=top.job_id)

    assert classify(top, sequence_description) is WorkflowShape.SEQUENCE
    assert classify(top, parallel_description) is WorkflowShape.PARALLEL
    assert classify(child, parallel_description) is WorkflowShape.CHILD
    assert classify(child, sequence_description) is WorkflowShape.CHILD


def test_every_shape_needs_a_handler(repository, sequence_description) -> None:
    with pytest.raises(ValueError, match="child"):
        JobDispatcher(
            store=repository,
            parser=StubParser(sequence_description),
            handlers={
                WorkflowShape.SEQUENCE: RecordingHandler(),
                WorkflowShape.PARALLEL: RecordingHandler(),
            },
        )


def test_routes_jobs_by_shape(repository, job_factory, parallel_description) -> None:
    dispatcher, handlers = _dispatcher(repository, StubParser(parallel_description))
    parent = job_factory(("split.xml",), agent_id="agent-1", status=AgentState.RUNNING)
    child = job_factory(("child.xml",), parent_id=parent.job_id)

    assert dispatcher.process_all() == 2

    assert handlers[WorkflowShape.PARALLEL].processed == [parent.job_id]
    assert handlers[WorkflowShape.CHILD].processed == [child.job_id]
    assert handlers[WorkflowShape.SEQUENCE].processed == []


def test_failing_job_does_not_stop_the_pass(
    repository,
    job_factory,
    workflow_dir,
    sequence_description,
    caplog,
) -> None:
    dispatcher, handlers = _dispatcher(repository, StubParser(sequence_description))
    broken = job_factory(workflow_path=str(workflow_dir / "broken.xml"))
    healthy = job_factory()

    with caplog.at_level("ERROR"):
        assert dispatcher.process_all() == 2

    assert handlers[WorkflowShape.SEQUENCE].processed == [healthy.job_id]
    assert broken.job_id in caplog.text


def test_job_without_prompts_is_skipped(repository, job_factory, sequence_description) -> None:
    dispatcher, handlers = _dispatcher(repository, StubParser(sequence_description))
    job_factory(())

    assert dispatcher.process_all() == 1
    assert handlers[WorkflowShape.SEQUENCE].processed == []


def test_terminal_jobs_are_not_processed(repository, job_factory, sequence_description) -> None:
    dispatcher, handlers = _dispatcher(repository, StubParser(sequence_description))
    job_factory(agent_id="agent-1", status=AgentState.FINISHED)
    job_factory(agent_id="agent-2", status=AgentState.ERROR)

    assert dispatcher.process_all() == 0
    assert handlers[WorkflowShape.SEQUENCE].processed == []
