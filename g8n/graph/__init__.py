"""Graph structures, node handlers, memory, and the workflow engine."""

from g8n.graph.executor import WorkflowEngine
from g8n.graph.memory import (
    ConversationTurn,
    FileMemoryStore,
    InMemoryStore,
    MemoryStore,
    MemoryWindow,
)
from g8n.graph.model import (
    UNCLASSIFIED,
    AgentNode,
    ClassifierNode,
    Edge,
    EntryNode,
    Graph,
    MemoryNode,
    NodeType,
    OutputNode,
    ToolNode,
)
from g8n.graph.node import NodeContext, NodeHandler, NodeResult

__all__ = [
    # Model
    "Graph",
    "Edge",
    "NodeType",
    "EntryNode",
    "AgentNode",
    "ToolNode",
    "ClassifierNode",
    "OutputNode",
    "MemoryNode",
    "UNCLASSIFIED",
    # Memory
    "ConversationTurn",
    "MemoryStore",
    "InMemoryStore",
    "FileMemoryStore",
    "MemoryWindow",
    # Execution
    "NodeContext",
    "NodeHandler",
    "NodeResult",
    "WorkflowEngine",
]
