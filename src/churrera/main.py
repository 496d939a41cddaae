"""CLI entrypoint for churrera."""

from __future__ import annotations

import logging
from collections.abc import Callable
from pathlib import Path
from typing import TypeVar

import rich_click as click

from churrera import __version__
from churrera.config import Settings
from churrera.orchestrator.controllers import (
    DeleteJobCommand,
    JobLogsCommand,
    JobStatusCommand,
    ListJobsCommand,
    OrchestratorCliController,
    RunWorkflowCommand,
    WaitJobCommand,
    WaitResult,
    WorkerCommand,
)
from churrera.orchestrator.errors import ChurreraError
from churrera.orchestrator.models import AgentState

click.rich_click.USE_MARKDOWN = True
ORCHESTRATOR_CONTROLLER = OrchestratorCliController(emit=click.echo)

T = TypeVar("T")


@click.group()
@click.version_option(version=__version__, prog_name="churrera")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging.")
def churrera(verbose: bool) -> None:
    """Run workflows of remote coding agents.

    Configuration comes from the environment, e.g. `CURSOR_API_KEY`,
    `CHURRERA_DB_PATH` and `CHURRERA_WORKFLOW_PARSER`.
    """

    level = logging.DEBUG if verbose else _guarded(lambda: Settings.from_env().log_level_value)
    logging.basicConfig(level=level, format="%(levelname)s: %(message)s")


@churrera.command("run")
@click.argument("workflow", type=click.Path(path_type=Path, exists=True, dir_okay=False))
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.option(
    "--delete-on-completion",
    is_flag=True,
    help="Delete the job, its children and agents once it completes.",
)
@click.option(
    "--delete-on-success-completion",
    is_flag=True,
    help="Delete the job tree only when it completes with FINISHED.",
)
def run(
    workflow: Path,
    db_path: Path | None,
    delete_on_completion: bool,
    delete_on_success_completion: bool,
) -> None:
    """Submit a workflow file and wait for its final outcome."""

    _finish_wait(
        _guarded(
            lambda: ORCHESTRATOR_CONTROLLER.run_workflow(
                RunWorkflowCommand(
                    db_path=db_path,
                    workflow_path=workflow,
                    delete_on_completion=delete_on_completion,
                    delete_on_success_completion=delete_on_success_completion,
                ),
            ),
        ),
    )


@churrera.command("wait")
@click.argument("job_id")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.option("--delete-on-completion", is_flag=True, help="Delete the job tree once it completes.")
@click.option(
    "--delete-on-success-completion",
    is_flag=True,
    help="Delete the job tree only when it completes with FINISHED.",
)
def wait(
    job_id: str,
    db_path: Path | None,
    delete_on_completion: bool,
    delete_on_success_completion: bool,
) -> None:
    """Wait for an existing job and its fan-out to reach a final outcome."""

    _finish_wait(
        _guarded(
            lambda: ORCHESTRATOR_CONTROLLER.wait_for_job(
                WaitJobCommand(
                    db_path=db_path,
                    job_id=job_id,
                    delete_on_completion=delete_on_completion,
                    delete_on_success_completion=delete_on_success_completion,
                ),
            ),
        ),
    )


@churrera.command("worker")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.option("--once", is_flag=True, help="Run a single dispatcher pass and exit.")
@click.option(
    "--max-passes",
    type=click.IntRange(min=1),
    default=None,
    help="Stop after this many passes.",
)
def worker(db_path: Path | None, once: bool, max_passes: int | None) -> None:
    """Process all unfinished jobs every poll interval until stopped."""

    _emit_lines(
        _guarded(
            lambda: ORCHESTRATOR_CONTROLLER.run_worker(
                WorkerCommand(db_path=db_path, once=once, max_passes=max_passes),
            ),
        ),
    )


@churrera.command("jobs")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.option(
    "--status",
    type=click.Choice([state.value for state in AgentState], case_sensitive=False),
    default=None,
    help="Only show jobs in this status.",
)
@click.option("--limit", type=click.IntRange(min=1), default=50, show_default=True)
def jobs(db_path: Path | None, status: str | None, limit: int) -> None:
    """List jobs, newest first."""

    _emit_lines(
        _guarded(
            lambda: ORCHESTRATOR_CONTROLLER.list_jobs(
                ListJobsCommand(db_path=db_path, status=status, limit=limit),
            ),
        ),
    )


@churrera.command("status")
@click.argument("job_id")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.option("--follow", is_flag=True, help="Poll the remote agent until it is terminal.")
def status(job_id: str, db_path: Path | None, follow: bool) -> None:
    """Show a job, its prompts and children."""

    _emit_lines(
        _guarded(
            lambda: ORCHESTRATOR_CONTROLLER.job_status(
                JobStatusCommand(db_path=db_path, job_id=job_id, follow=follow),
            ),
        ),
    )


@churrera.command("logs")
@click.argument("job_id")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
def logs(job_id: str, db_path: Path | None) -> None:
    """Print the agent conversation of a job."""

    _emit_lines(
        _guarded(
            lambda: ORCHESTRATOR_CONTROLLER.job_logs(JobLogsCommand(db_path=db_path, job_id=job_id)),
        ),
    )


@churrera.command("delete")
@click.argument("job_id")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
def delete(job_id: str, db_path: Path | None) -> None:
    """Delete a job with its children, prompts and remote agents."""

    _emit_lines(
        _guarded(
            lambda: ORCHESTRATOR_CONTROLLER.delete_job(
                DeleteJobCommand(db_path=db_path, job_id=job_id),
            ),
        ),
    )


def _guarded(action: Callable[[], T]) -> T:
    try:
        return action()
    except (ChurreraError, ValueError) as error:
        raise click.ClickException(str(error)) from error


def _finish_wait(result: WaitResult) -> None:
    _emit_lines(result.lines)
    if result.exit_code:
        raise SystemExit(result.exit_code)


def _emit_lines(lines: list[str]) -> None:
    for line in lines:
        click.echo(line)


if __name__ == "__main__":  # pragma: no cover
    churrera()
