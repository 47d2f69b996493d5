"""Schema definitions for runs and archived execution logs."""

from g8n.schemas.run import ExecutionLog, ExecutionStep, RunState, RunStatus

__all__ = ["ExecutionLog", "ExecutionStep", "RunState", "RunStatus"]
