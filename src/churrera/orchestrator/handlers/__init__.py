"""Per-shape workflow handlers driven by the job dispatcher."""

from churrera.orchestrator.handlers.child import ChildHandler
from churrera.orchestrator.handlers.launcher import AgentLauncher
from churrera.orchestrator.handlers.parallel import ParallelHandler
from churrera.orchestrator.handlers.sequence import SequenceHandler

__all__ = ["AgentLauncher", "ChildHandler", "ParallelHandler", "SequenceHandler"]
