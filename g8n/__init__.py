"""
g8n - a workflow execution engine for node/edge graphs of agents, tools,
classifiers, and conversation memory.

    from g8n import Graph, WorkflowEngine

    engine = WorkflowEngine.from_config()
    state = await engine.run(Graph.model_validate(workflow), "Hello")
"""

from g8n.config import RuntimeConfig
from g8n.credentials import Credentials, GoogleAccessToken
from g8n.errors import G8nError
from g8n.graph import Graph, MemoryWindow, WorkflowEngine
from g8n.schemas.run import ExecutionStep, RunState, RunStatus

__version__ = "0.1.0"

__all__ = [
    "Credentials",
    "ExecutionStep",
    "G8nError",
    "GoogleAccessToken",
    "Graph",
    "MemoryWindow",
    "RunState",
    "RunStatus",
    "RuntimeConfig",
    "WorkflowEngine",
]
