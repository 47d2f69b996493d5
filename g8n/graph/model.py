"""
Graph Model - nodes, edges, and the read-only queries over them.

Node data is a tagged union on ``type``. Each node type owns its own config
model, so handlers receive a typed config instead of probing dict keys:

    entry ─▶ agent ─▶ output
               ▲
      tool ────┘ (targetHandle="tools")
      memory ──┘ (targetHandle="memory")

Edges into an agent's ``tools`` or ``memory`` handle are port edges: they
attach a tool or memory node to the agent and are never followed by
traversal. Every other edge is a flow edge.

Example:
    graph = Graph.model_validate({
        "id": "hello",
        "nodes": [
            {"id": "in", "type": "entry"},
            {"id": "bot", "type": "agent", "config": {"system_instruction": "Be brief."}},
            {"id": "out", "type": "output"},
        ],
        "edges": [
            {"id": "e1", "source": "in", "target": "bot"},
            {"id": "e2", "source": "bot", "target": "out"},
        ],
    })
"""

from enum import StrEnum
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from g8n.errors import GraphInvalidError, NodeNotFoundError
from g8n.tools.catalog import ALL_TOOL_TYPES

UNCLASSIFIED = "Unclassified"
TOOLS_HANDLE = "tools"
MEMORY_HANDLE = "memory"
PORT_HANDLES = frozenset({TOOLS_HANDLE, MEMORY_HANDLE})
PRIMARY_OUTPUT_HANDLES = frozenset({"", "output"})


class NodeType(StrEnum):
    """Kinds of node a workflow graph may contain."""

    ENTRY = "entry"
    AGENT = "agent"
    TOOL = "tool"
    CLASSIFIER = "classifier"
    OUTPUT = "output"
    MEMORY = "memory"


class Position(BaseModel):
    """Canvas position. Stored and round-tripped, never read by the engine."""

    x: float = 0.0
    y: float = 0.0


# ---------------------------------------------------------------------------
# Per-type configuration
# ---------------------------------------------------------------------------


class InputVariable(BaseModel):
    name: str
    type: str = "string"
    default: Any = None
    description: str = ""


class EntryConfig(BaseModel):
    input_variables: list[InputVariable] = Field(default_factory=list)

    model_config = ConfigDict(populate_by_name=True, extra="allow")


class AgentConfig(BaseModel):
    model: str | None = Field(default=None, description="Model id; engine default when unset")
    system_instruction: str = Field(default="", alias="systemInstruction")
    temperature: float | None = Field(default=None, ge=0.0, le=2.0)

    model_config = ConfigDict(populate_by_name=True, extra="allow")


class ToolNodeConfig(BaseModel):
    tool_type: str = Field(alias="toolType")
    settings: dict[str, Any] = Field(default_factory=dict, alias="config")

    model_config = ConfigDict(populate_by_name=True, extra="allow")


class ClassifierExample(BaseModel):
    text: str
    category: str


class ClassifierConfig(BaseModel):
    categories: list[str] = Field(default_factory=list)
    examples: list[ClassifierExample] = Field(default_factory=list)
    instructions: str = ""
    model: str | None = None

    model_config = ConfigDict(populate_by_name=True, extra="allow")


class OutputFormat(StrEnum):
    TEXT = "text"
    JSON = "json"
    MARKDOWN = "markdown"


class OutputConfig(BaseModel):
    output_format: OutputFormat = Field(default=OutputFormat.TEXT, alias="outputFormat")

    model_config = ConfigDict(populate_by_name=True, extra="allow")


class MemoryConfig(BaseModel):
    storage_key: str = Field(default="chat_history", alias="storageKey", min_length=1)
    max_messages: int = Field(default=10, alias="maxMessages", ge=1)

    model_config = ConfigDict(populate_by_name=True, extra="allow")


# ---------------------------------------------------------------------------
# Nodes
# ---------------------------------------------------------------------------


class _NodeBase(BaseModel):
    id: str
    label: str = ""
    position: Position = Field(default_factory=Position)

    model_config = ConfigDict(populate_by_name=True, frozen=True)


class EntryNode(_NodeBase):
    type: Literal["entry"] = "entry"
    config: EntryConfig = Field(default_factory=EntryConfig)


class AgentNode(_NodeBase):
    type: Literal["agent"] = "agent"
    config: AgentConfig = Field(default_factory=AgentConfig)


class ToolNode(_NodeBase):
    type: Literal["tool"] = "tool"
    config: ToolNodeConfig


class ClassifierNode(_NodeBase):
    type: Literal["classifier"] = "classifier"
    config: ClassifierConfig = Field(default_factory=ClassifierConfig)


class OutputNode(_NodeBase):
    type: Literal["output"] = "output"
    config: OutputConfig = Field(default_factory=OutputConfig)


class MemoryNode(_NodeBase):
    type: Literal["memory"] = "memory"
    config: MemoryConfig = Field(default_factory=MemoryConfig)


Node = Annotated[
    EntryNode | AgentNode | ToolNode | ClassifierNode | OutputNode | MemoryNode,
    Field(discriminator="type"),
]


# ---------------------------------------------------------------------------
# Edges and graph
# ---------------------------------------------------------------------------


class Edge(BaseModel):
    """A directed connection between two node ports."""

    id: str
    source: str = Field(description="Source node ID")
    target: str = Field(description="Target node ID")
    source_handle: str | None = Field(default=None, alias="sourceHandle")
    target_handle: str | None = Field(default=None, alias="targetHandle")

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    @property
    def is_port(self) -> bool:
        """True for edges attaching a tool or memory node to an agent."""
        return self.target_handle in PORT_HANDLES


class Graph(BaseModel):
    """
    A workflow graph.

    All query methods are read-only; a run works on its own deep copy so
    edits made by the host mid-run are not observed.
    """

    id: str = "workflow"
    name: str = ""
    nodes: list[Node] = Field(default_factory=list)
    edges: list[Edge] = Field(default_factory=list)

    model_config = {"extra": "allow"}

    def node(self, node_id: str) -> Node:
        """Get a node by ID."""
        for node in self.nodes:
            if node.id == node_id:
                return node
        raise NodeNotFoundError(f"Node '{node_id}' not found in graph '{self.id}'", node_id=node_id)

    def has_node(self, node_id: str) -> bool:
        return any(node.id == node_id for node in self.nodes)

    def entry_node(self) -> EntryNode:
        """Get the single entry node."""
        entries = [n for n in self.nodes if n.type == NodeType.ENTRY]
        if not entries:
            raise GraphInvalidError(f"Graph '{self.id}' has no entry node")
        if len(entries) > 1:
            ids = ", ".join(n.id for n in entries)
            raise GraphInvalidError(f"Graph '{self.id}' has {len(entries)} entry nodes: {ids}")
        return entries[0]

    def outgoing_edges(self, node_id: str, handle: str | None = None) -> list[Edge]:
        """
        Get flow edges leaving a node, in declaration order.

        Args:
            node_id: Source node
            handle: When given, only edges leaving that source handle. The
                primary handle matches edges with no handle, "" or "output".
        """
        edges = [e for e in self.edges if e.source == node_id and not e.is_port]
        if handle is None:
            return edges
        if handle in PRIMARY_OUTPUT_HANDLES:
            return [e for e in edges if (e.source_handle or "") in PRIMARY_OUTPUT_HANDLES]
        return [e for e in edges if e.source_handle == handle]

    def incoming_edges(self, node_id: str, handle: str | None = None) -> list[Edge]:
        """Get all edges (flow and port) entering a node."""
        edges = [e for e in self.edges if e.target == node_id]
        if handle is None:
            return edges
        return [e for e in edges if e.target_handle == handle]

    def downstream_ids(self, node_id: str, handle: str | None = None) -> list[str]:
        """Target ids of the flow edges leaving ``node_id`` (optionally one handle)."""
        return [e.target for e in self.outgoing_edges(node_id, handle)]

    def attached_nodes(self, node_id: str, handle: str) -> list[Node]:
        """Nodes wired into ``node_id`` on a port handle (``tools`` or ``memory``)."""
        return [
            self.node(e.source)
            for e in self.incoming_edges(node_id, handle)
            if self.has_node(e.source)
        ]

    def validate(self) -> list[str]:
        """Validate the graph structure. Returns a list of problems (empty if valid)."""
        errors = []

        entries = [n.id for n in self.nodes if n.type == NodeType.ENTRY]
        if not entries:
            errors.append("Graph has no entry node")
        elif len(entries) > 1:
            errors.append(f"Graph has {len(entries)} entry nodes: {', '.join(entries)}")

        seen: set[str] = set()
        for node in self.nodes:
            if node.id in seen:
                errors.append(f"Duplicate node id '{node.id}'")
            seen.add(node.id)

        for edge in self.edges:
            if edge.source not in seen:
                errors.append(f"Edge '{edge.id}' references missing source '{edge.source}'")
            if edge.target not in seen:
                errors.append(f"Edge '{edge.id}' references missing target '{edge.target}'")

        for node in self.nodes:
            if node.type == NodeType.CLASSIFIER:
                allowed = set(node.config.categories) | {UNCLASSIFIED}
                for edge in self.outgoing_edges(node.id):
                    if edge.source_handle not in allowed:
                        errors.append(
                            f"Classifier '{node.id}' edge '{edge.id}' has handle "
                            f"'{edge.source_handle}' which is not a configured category"
                        )
            elif node.type == NodeType.TOOL and node.config.tool_type not in ALL_TOOL_TYPES:
                errors.append(f"Tool node '{node.id}' has unknown tool type '{node.config.tool_type}'")

        return errors

    def ensure_valid(self) -> None:
        """Raise GraphInvalidError listing every problem found by validate()."""
        problems = self.validate()
        if problems:
            raise GraphInvalidError(f"Invalid graph: {'; '.join(problems)}", problems=problems)
