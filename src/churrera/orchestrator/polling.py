"""Blocking run-and-wait loop and the continuous dispatcher loop."""

from __future__ import annotations

import logging
import signal
import time
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from pathlib import Path

from churrera.orchestrator.completion import completion_checker_for
from churrera.orchestrator.contracts import JobStore, WorkflowParser
from churrera.orchestrator.dispatcher import JobDispatcher
from churrera.orchestrator.errors import JobNotFoundError
from churrera.orchestrator.models import CompletionCheckResult, ExecutionResult, Job, WorkflowKind

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[Job, CompletionCheckResult], None]


class JobPollingService:
    """Invokes the dispatcher at a fixed interval until told to stop."""

    def __init__(
        self,
        *,
        store: JobStore,
        dispatcher: JobDispatcher,
        parser: WorkflowParser,
        poll_interval_seconds: float = 5.0,
    ) -> None:
        self.store = store
        self.dispatcher = dispatcher
        self.parser = parser
        self.poll_interval_seconds = poll_interval_seconds
        self._stop_requested = False
        self._stop_signal_name: str | None = None

    @property
    def stop_requested(self) -> bool:
        return self._stop_requested

    def wait_for(
        self,
        job_id: str,
        *,
        on_progress: ProgressCallback | None = None,
    ) -> ExecutionResult:
        """Process passes until ``job_id`` and its fan-out reach a final outcome."""

        with self._signal_handlers():
            try:
                while not self._stop_requested:
                    self.dispatcher.process_all()
                    job = self.store.find_by_id(job_id)
                    if job is None:
                        raise JobNotFoundError(job_id)
                    checker = completion_checker_for(self._kind_of(job), self.store)
                    result = checker.check(job)
                    if on_progress is not None:
                        on_progress(job, result)
                    if result.completed:
                        return ExecutionResult(
                            final_status=result.final_status,
                            interrupted=False,
                            child_jobs=result.child_jobs,
                        )
                    self._sleep_with_stop(self.poll_interval_seconds)
            except KeyboardInterrupt:
                self._request_stop(signal_name="SIGINT")
            finally:
                # Stop requests apply to the current loop only.
                self._stop_requested = False
        logger.info("Waiting for job %s interrupted by %s", job_id, self._stop_signal_name)
        return ExecutionResult(final_status=None, interrupted=True)

    def run_forever(self, *, max_passes: int | None = None) -> int:
        """Run dispatcher passes until stopped or ``max_passes`` is reached."""

        passes = 0
        with self._signal_handlers():
            try:
                while not self._stop_requested:
                    if max_passes is not None and passes >= max_passes:
                        break
                    self.dispatcher.process_all()
                    passes += 1
                    if max_passes is not None and passes >= max_passes:
                        break
                    self._sleep_with_stop(self.poll_interval_seconds)
            except KeyboardInterrupt:
                self._request_stop(signal_name="SIGINT")
            finally:
                # Stop requests apply to the current loop only.
                self._stop_requested = False
        return passes

    def _kind_of(self, job: Job) -> WorkflowKind:
        if job.workflow_kind is not None:
            return job.workflow_kind
        return self.parser.determine_kind(Path(job.workflow_path))

    def _sleep_with_stop(self, seconds: float) -> None:
        deadline = time.monotonic() + seconds
        while not self._stop_requested and time.monotonic() < deadline:
            time.sleep(min(0.1, max(0.0, deadline - time.monotonic())))

    @contextmanager
    def _signal_handlers(self) -> Iterator[None]:
        if not hasattr(signal, "SIGINT"):
            yield
            return

        original_sigint = signal.getsignal(signal.SIGINT)
        original_sigterm = signal.getsignal(signal.SIGTERM)

        def _handler(signum: int, _: object | None) -> None:
            try:
                name = signal.Signals(signum).name
            except ValueError:
                name = str(signum)
            self._request_stop(signal_name=name)

        try:
            signal.signal(signal.SIGINT, _handler)
            signal.signal(signal.SIGTERM, _handler)
        except ValueError:
            # Signal handlers can only be installed in main thread.
            yield
            return
        try:
            yield
        finally:
            signal.signal(signal.SIGINT, original_sigint)
            signal.signal(signal.SIGTERM, original_sigterm)

    def request_stop(self) -> None:
        self._request_stop(signal_name="request")

    def _request_stop(self, *, signal_name: str) -> None:
        if not self._stop_requested:
            logger.info("Stop requested (%s)", signal_name)
        self._stop_requested = True
        self._stop_signal_name = signal_name
