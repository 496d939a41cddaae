"""Job store backed by SQLModel + SQLite."""

from __future__ import annotations

from pathlib import Path

from sqlalchemy import exists, literal_column, or_
from sqlalchemy.orm import aliased
from sqlmodel import Session, col, delete, select

from churrera.orchestrator.models import (
    AgentState,
    Job,
    Prompt,
    PromptStatus,
    WorkflowKind,
)
from churrera.storage.alembic_runner import upgrade_head
from churrera.storage.common import (
    build_sqlite_engine,
    to_db_datetime,
    to_utc_aware,
    utc_now,
)
from churrera.storage.sqlmodel_models import JobRow, PromptRow

ACTIVE_STATUSES = tuple(state.value for state in AgentState if state.is_active)


class JobRepository:
    """Persistence facade for jobs and prompts.

    A job is unfinished while its status is active or while it still has an
    active child, so fan-out timeouts are evaluated after the parent finished.
    """

    def __init__(self, db_path: Path, *, sqlite_busy_timeout_ms: int = 5_000) -> None:
        self.db_path = db_path
        self.engine = build_sqlite_engine(db_path=db_path, busy_timeout_ms=sqlite_busy_timeout_ms)

    def close(self) -> None:
        """Close underlying DB resources."""

        self.engine.dispose()

    def init_schema(self) -> None:
        """Run schema migrations."""

        upgrade_head(self.db_path)

    def find_unfinished(self) -> list[Job]:
        child = aliased(JobRow)
        has_active_child = exists().where(
            col(child.parent_id) == col(JobRow.job_id),
            col(child.status).in_(ACTIVE_STATUSES),
        )
        with Session(self.engine) as session:
            rows = session.exec(
                select(JobRow)
                .where(or_(col(JobRow.status).in_(ACTIVE_STATUSES), has_active_child))
                .order_by(col(JobRow.created_at).asc(), literal_column("jobs.rowid").asc()),
            ).all()
            return [_to_job(row) for row in rows]

    def find_by_id(self, job_id: str) -> Job | None:
        with Session(self.engine) as session:
            row = session.get(JobRow, job_id)
            return _to_job(row) if row is not None else None

    def find_children(self, parent_id: str) -> list[Job]:
        with Session(self.engine) as session:
            rows = session.exec(
                select(JobRow)
                .where(JobRow.parent_id == parent_id)
                .order_by(col(JobRow.created_at).asc(), literal_column("jobs.rowid").asc()),
            ).all()
            return [_to_job(row) for row in rows]

    def list_jobs(self, *, status: AgentState | None = None, limit: int | None = None) -> list[Job]:
        """Jobs newest first, optionally filtered by status."""

        statement = select(JobRow)
        if status is not None:
            statement = statement.where(JobRow.status == status.value)
        statement = statement.order_by(col(JobRow.created_at).desc())
        if limit is not None:
            statement = statement.limit(limit)
        with Session(self.engine) as session:
            return [_to_job(row) for row in session.exec(statement).all()]

    def find_prompts(self, job_id: str) -> list[Prompt]:
        with Session(self.engine) as session:
            rows = session.exec(
                select(PromptRow)
                .where(PromptRow.job_id == job_id)
                .order_by(col(PromptRow.position).asc(), col(PromptRow.created_at).asc()),
            ).all()
            return [_to_prompt(row) for row in rows]

    def save_job(self, job: Job) -> Job:
        """Insert or update ``job``, stamping ``last_update``."""

        now = utc_now()
        with Session(self.engine) as session:
            row = session.get(JobRow, job.job_id)
            if row is None:
                row = JobRow(
                    job_id=job.job_id,
                    created_at=to_db_datetime(job.created_at),
                    workflow_path=job.workflow_path,
                    model=job.model,
                    repository=job.repository,
                    status=job.status.value,
                    last_update=to_db_datetime(now),
                )
            row.workflow_path = job.workflow_path
            row.agent_id = job.agent_id
            row.model = job.model
            row.repository = job.repository
            row.status = job.status.value
            row.parent_id = job.parent_id
            row.result = job.result
            row.workflow_kind = job.workflow_kind.value if job.workflow_kind else None
            row.timeout_millis = job.timeout_millis
            row.workflow_start_time = to_db_datetime(job.workflow_start_time)
            row.fallback_src = job.fallback_src
            row.fallback_executed = job.fallback_executed
            row.last_update = to_db_datetime(now)
            session.add(row)
            session.commit()
            session.refresh(row)
            return _to_job(row)

    def save_prompt(self, prompt: Prompt) -> Prompt:
        """Insert or update ``prompt``, stamping ``last_update``."""

        now = utc_now()
        with Session(self.engine) as session:
            row = session.get(PromptRow, prompt.prompt_id)
            if row is None:
                row = PromptRow(
                    prompt_id=prompt.prompt_id,
                    job_id=prompt.job_id,
                    position=prompt.position,
                    source_file=prompt.source_file,
                    status=prompt.status.value,
                    created_at=to_db_datetime(prompt.created_at),
                    last_update=to_db_datetime(now),
                )
            row.status = prompt.status.value
            row.last_update = to_db_datetime(now)
            session.add(row)
            session.commit()
            session.refresh(row)
            return _to_prompt(row)

    def delete_prompts(self, job_id: str) -> None:
        with Session(self.engine) as session:
            session.exec(delete(PromptRow).where(col(PromptRow.job_id) == job_id))
            session.commit()

    def delete_by_id(self, job_id: str) -> None:
        with Session(self.engine) as session:
            session.exec(delete(JobRow).where(col(JobRow.job_id) == job_id))
            session.commit()


def _to_job(row: JobRow) -> Job:
    created_at = to_utc_aware(row.created_at)
    last_update = to_utc_aware(row.last_update)
    assert created_at is not None
    assert last_update is not None
    return Job(
        job_id=row.job_id,
        workflow_path=row.workflow_path,
        model=row.model,
        repository=row.repository,
        status=AgentState.parse(row.status),
        created_at=created_at,
        last_update=last_update,
        agent_id=row.agent_id,
        parent_id=row.parent_id,
        result=row.result,
        workflow_kind=WorkflowKind(row.workflow_kind) if row.workflow_kind else None,
        timeout_millis=row.timeout_millis,
        workflow_start_time=to_utc_aware(row.workflow_start_time),
        fallback_src=row.fallback_src,
        fallback_executed=bool(row.fallback_executed),
    )


def _to_prompt(row: PromptRow) -> Prompt:
    created_at = to_utc_aware(row.created_at)
    last_update = to_utc_aware(row.last_update)
    assert created_at is not None
    assert last_update is not None
    return Prompt(
        prompt_id=row.prompt_id,
        job_id=row.job_id,
        source_file=row.source_file,
        status=PromptStatus(row.status),
        created_at=created_at,
        last_update=last_update,
        position=row.position,
    )
