"""Runtime configuration for the workflow engine."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

from churrera.orchestrator.backend import DEFAULT_API_BASE_URL
from churrera.orchestrator.timeouts import STALE_TIMEOUT_FACTOR


@dataclass(slots=True)
class AgentApiSettings:
    """Remote agent API settings."""

    api_key: str = ""
    base_url: str = DEFAULT_API_BASE_URL
    request_timeout_seconds: float = 30.0
    max_retries: int = 3
    default_ref: str = "main"


@dataclass(slots=True)
class PollingSettings:
    """Dispatcher cadence and timeout heuristics."""

    interval_seconds: float = 5.0
    stale_timeout_factor: float = STALE_TIMEOUT_FACTOR


@dataclass(slots=True)
class Settings:
    """Application settings grouped by domain concerns."""

    db_path: Path = Path(".churrera.db")
    sqlite_busy_timeout_ms: int = 5_000
    agent_api: AgentApiSettings = field(default_factory=AgentApiSettings)
    polling: PollingSettings = field(default_factory=PollingSettings)
    workflow_parser: str = ""
    markup_converter: str = ""
    log_level: str = "WARNING"

    @classmethod
    def from_env(cls, db_path: Path | None = None) -> Settings:
        """Load settings from environment with sane defaults for local development."""

        return cls(
            db_path=db_path or Path(os.getenv("CHURRERA_DB_PATH", ".churrera.db")),
            sqlite_busy_timeout_ms=_env_int("CHURRERA_SQLITE_BUSY_TIMEOUT_MS", 5_000),
            agent_api=AgentApiSettings(
                api_key=os.getenv("CURSOR_API_KEY", "").strip(),
                base_url=os.getenv("CHURRERA_API_BASE_URL", DEFAULT_API_BASE_URL),
                request_timeout_seconds=_env_float("CHURRERA_API_TIMEOUT_SECONDS", 30.0),
                max_retries=_env_int("CHURRERA_API_MAX_RETRIES", 3),
                default_ref=os.getenv("CHURRERA_API_DEFAULT_REF", "main"),
            ),
            polling=PollingSettings(
                interval_seconds=_env_float("CHURRERA_POLL_INTERVAL_SECONDS", 5.0),
                stale_timeout_factor=_env_float("CHURRERA_STALE_TIMEOUT_FACTOR", STALE_TIMEOUT_FACTOR),
            ),
            workflow_parser=os.getenv("CHURRERA_WORKFLOW_PARSER", "").strip(),
            markup_converter=os.getenv("CHURRERA_MARKUP_CONVERTER", "").strip(),
            log_level=os.getenv("CHURRERA_LOG_LEVEL", "WARNING").strip().upper() or "WARNING",
        )

    def validate_polling(self) -> None:
        if self.polling.interval_seconds <= 0:
            raise ValueError("CHURRERA_POLL_INTERVAL_SECONDS must be > 0.")
        if self.polling.stale_timeout_factor < 1:
            raise ValueError("CHURRERA_STALE_TIMEOUT_FACTOR must be >= 1.")

    def validate_for_agent_api(self) -> None:
        """Fail fast before talking to the remote agent API."""

        self.validate_polling()
        if not self.agent_api.api_key:
            raise ValueError("CURSOR_API_KEY is required to talk to the agent API.")
        if self.agent_api.request_timeout_seconds <= 0:
            raise ValueError("CHURRERA_API_TIMEOUT_SECONDS must be > 0.")
        if self.agent_api.max_retries < 0:
            raise ValueError("CHURRERA_API_MAX_RETRIES must be >= 0.")

    def validate_for_workflows(self) -> None:
        if not self.workflow_parser:
            raise ValueError(
                "CHURRERA_WORKFLOW_PARSER must name a workflow parser factory as 'module:attribute'.",
            )

    @property
    def log_level_value(self) -> int:
        level = logging.getLevelName(self.log_level)
        return level if isinstance(level, int) else logging.WARNING


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        return int(value.strip())
    except ValueError as error:
        raise ValueError(f"Invalid integer value for {name}: {value!r}") from error


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        return float(value.strip())
    except ValueError as error:
        raise ValueError(f"Invalid number value for {name}: {value!r}") from error
