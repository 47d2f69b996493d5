"""
File-based archive of finished runs.

Directory structure:
{base_path}/
  runs/
    {run_id}.json     ExecutionLog
"""

import logging
from pathlib import Path

from g8n.schemas.run import ExecutionLog, RunState, RunStatus

logger = logging.getLogger(__name__)

TRIGGERS = ("manual", "webhook", "cronjob")


def _log_status(state: RunState) -> str:
    if state.cancelled:
        return "cancelled"
    if state.status == RunStatus.COMPLETED:
        return "success"
    return "failed"


class RunLogStore:
    """Saves, loads, and lists ExecutionLog records."""

    def __init__(self, base_path: str | Path):
        self.base_path = Path(base_path).expanduser()
        self.runs_dir = self.base_path / "runs"

    def save(self, state: RunState, workflow_id: str, trigger: str = "manual") -> ExecutionLog:
        """Archive a finished run. Runs still in progress are rejected."""
        if not state.run_id:
            raise ValueError("Cannot archive a state with no run id")
        if state.status == RunStatus.RUNNING:
            raise ValueError(f"Run {state.run_id} is still running")
        if trigger not in TRIGGERS:
            raise ValueError(f"Unknown trigger '{trigger}', expected one of {', '.join(TRIGGERS)}")

        log = ExecutionLog(
            id=state.run_id,
            workflow_id=workflow_id,
            trigger=trigger,
            status=_log_status(state),
            started_at=state.started_at,
            ended_at=state.ended_at,
            steps=list(state.steps),
            final_output=state.final_output,
            error=state.error,
            error_code=state.error_code,
            total_tokens_used=state.total_tokens,
        )
        self.runs_dir.mkdir(parents=True, exist_ok=True)
        path = self.runs_dir / f"{log.id}.json"
        path.write_text(log.model_dump_json(indent=2), encoding="utf-8")
        logger.info(f"Archived run {log.id} ({log.status}) to {path}")
        return log

    def load(self, run_id: str) -> ExecutionLog | None:
        if "/" in run_id or "\\" in run_id or ".." in run_id:
            raise ValueError(f"Invalid run id '{run_id}'")
        path = self.runs_dir / f"{run_id}.json"
        if not path.exists():
            return None
        return ExecutionLog.model_validate_json(path.read_text(encoding="utf-8"))

    def list_runs(self, workflow_id: str | None = None) -> list[ExecutionLog]:
        """All archived runs, newest first, optionally for one workflow."""
        if not self.runs_dir.exists():
            return []
        logs = [
            ExecutionLog.model_validate_json(path.read_text(encoding="utf-8"))
            for path in self.runs_dir.glob("*.json")
        ]
        if workflow_id is not None:
            logs = [log for log in logs if log.workflow_id == workflow_id]
        logs.sort(key=lambda log: log.started_at.timestamp() if log.started_at else 0.0, reverse=True)
        return logs
