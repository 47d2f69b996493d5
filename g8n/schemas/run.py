"""
Run Schema - one execution of a workflow graph.

RunState is published as frozen snapshots. The engine replaces its snapshot
with ``model_copy(update=...)`` after every step, so a state object handed to
a caller never changes underneath it.
"""

from datetime import datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, computed_field


class RunStatus(StrEnum):
    """Status of a run."""

    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    ERROR = "error"


class ExecutionStep(BaseModel):
    """One node activation, appended in activation order."""

    model_config = ConfigDict(frozen=True)

    node_id: str
    node_type: str
    input: Any = None
    output: Any = None
    start_time: datetime
    end_time: datetime
    error: str | None = None
    tokens_used: int = 0

    @computed_field
    @property
    def duration_ms(self) -> int:
        return int((self.end_time - self.start_time).total_seconds() * 1000)


class RunState(BaseModel):
    """
    State of a single run.

    ``status`` moves idle → running → completed | error. A cancelled run goes
    back to idle with ``cancelled`` set.
    """

    model_config = ConfigDict(frozen=True)

    run_id: str
    status: RunStatus = RunStatus.IDLE
    current_node_id: str | None = None
    executed_node_ids: tuple[str, ...] = ()
    steps: tuple[ExecutionStep, ...] = ()
    final_output: Any = None

    # Failure details
    error: str | None = None
    error_code: str | None = None
    retryable: bool = False
    cancelled: bool = False

    total_tokens: int = 0
    started_at: datetime | None = None
    ended_at: datetime | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status in (RunStatus.COMPLETED, RunStatus.ERROR) or self.cancelled

    def summary(self) -> dict[str, Any]:
        """Short dict for logs and CLI output."""
        return {
            "run_id": self.run_id,
            "status": self.status.value,
            "cancelled": self.cancelled,
            "executed": list(self.executed_node_ids),
            "final_output": self.final_output,
            "error": self.error,
            "error_code": self.error_code,
            "retryable": self.retryable,
            "total_tokens": self.total_tokens,
        }


class ExecutionLog(BaseModel):
    """A finished run as archived by RunLogStore."""

    id: str
    workflow_id: str
    trigger: str = Field(default="manual", description="manual, webhook, or cronjob")
    status: str = Field(description="success, failed, or cancelled")
    started_at: datetime | None = None
    ended_at: datetime | None = None
    steps: list[ExecutionStep] = Field(default_factory=list)
    final_output: Any = None
    error: str | None = None
    error_code: str | None = None
    total_tokens_used: int = 0

    model_config = {"extra": "allow"}
