"""Assembly of the engine from its collaborators."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime

from churrera.orchestrator.agents import AgentGateway
from churrera.orchestrator.contracts import AgentClient, JobStore, MarkupConverter, WorkflowParser
from churrera.orchestrator.deletion import JobDeletionService
from churrera.orchestrator.dispatcher import JobDispatcher, WorkflowShape
from churrera.orchestrator.extraction import ResultExtractor
from churrera.orchestrator.fallback import FallbackExecutor
from churrera.orchestrator.handlers import (
    AgentLauncher,
    ChildHandler,
    ParallelHandler,
    SequenceHandler,
)
from churrera.orchestrator.polling import JobPollingService
from churrera.orchestrator.submission import WorkflowSubmitter
from churrera.orchestrator.timeouts import STALE_TIMEOUT_FACTOR, TimeoutTracker
from churrera.storage.common import utc_now


@dataclass(slots=True)
class OrchestratorServices:
    """Wired engine components sharing one store and agent client."""

    store: JobStore
    gateway: AgentGateway
    dispatcher: JobDispatcher
    polling: JobPollingService
    deletion: JobDeletionService
    submitter: WorkflowSubmitter


def build_services(  # noqa: PLR0913
    *,
    store: JobStore,
    agent_client: AgentClient,
    parser: WorkflowParser,
    converter: MarkupConverter | None = None,
    poll_interval_seconds: float = 5.0,
    stale_timeout_factor: float = STALE_TIMEOUT_FACTOR,
    clock: Callable[[], datetime] = utc_now,
) -> OrchestratorServices:
    gateway = AgentGateway(client=agent_client, converter=converter)
    timeouts = TimeoutTracker(store=store, stale_factor=stale_timeout_factor, clock=clock)
    launcher = AgentLauncher(store=store, gateway=gateway, clock=clock)
    fallback = FallbackExecutor(store=store, gateway=gateway, clock=clock)
    sequence = SequenceHandler(
        store=store,
        gateway=gateway,
        launcher=launcher,
        timeouts=timeouts,
        fallback=fallback,
    )
    parallel = ParallelHandler(
        store=store,
        gateway=gateway,
        launcher=launcher,
        timeouts=timeouts,
        fallback=fallback,
        extractor=ResultExtractor(store=store, fetch_transcript=gateway.transcript),
        clock=clock,
    )
    dispatcher = JobDispatcher(
        store=store,
        parser=parser,
        handlers={
            WorkflowShape.SEQUENCE: sequence,
            WorkflowShape.PARALLEL: parallel,
            WorkflowShape.CHILD: ChildHandler(store=store, sequence=sequence),
        },
    )
    return OrchestratorServices(
        store=store,
        gateway=gateway,
        dispatcher=dispatcher,
        polling=JobPollingService(
            store=store,
            dispatcher=dispatcher,
            parser=parser,
            poll_interval_seconds=poll_interval_seconds,
        ),
        deletion=JobDeletionService(store=store, agent_client=agent_client),
        submitter=WorkflowSubmitter(store=store, parser=parser, clock=clock),
    )
