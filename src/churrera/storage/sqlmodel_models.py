"""SQLModel ORM tables for the job store."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Column, DateTime, ForeignKey, Index, Text
from sqlmodel import Field, SQLModel


class JobRow(SQLModel, table=True):
    __tablename__ = "jobs"  # type: ignore[bad-override]
    __table_args__ = (Index("idx_jobs_status_created", "status", "created_at"),)

    job_id: str = Field(primary_key=True)
    workflow_path: str
    agent_id: str | None = Field(default=None, index=True)
    model: str
    repository: str
    status: str = Field(index=True)
    parent_id: str | None = Field(default=None, index=True)
    result: str | None = Field(default=None, sa_column=Column(Text))
    workflow_kind: str | None = None
    timeout_millis: int | None = None
    workflow_start_time: datetime | None = Field(
        default=None,
        sa_column=Column(DateTime(timezone=True), nullable=True),
    )
    fallback_src: str | None = None
    fallback_executed: bool = Field(default=False)
    created_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
    last_update: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))


class PromptRow(SQLModel, table=True):
    __tablename__ = "prompts"  # type: ignore[bad-override]
    __table_args__ = (Index("idx_prompts_job_position", "job_id", "position"),)

    prompt_id: str = Field(primary_key=True)
    job_id: str = Field(
        sa_column=Column(
            ForeignKey("jobs.job_id", ondelete="CASCADE"),
            nullable=False,
        ),
    )
    position: int = Field(default=0)
    source_file: str
    status: str = Field(index=True)
    created_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
    last_update: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
