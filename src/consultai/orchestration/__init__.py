"""Request orchestration."""

from consultai.orchestration.orchestrator import TASK_ACTIONS, Orchestrator

__all__ = ["Orchestrator", "TASK_ACTIONS"]
