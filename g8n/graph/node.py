"""
Node handlers - one per node type, all with the same shape:

    async def execute(self, ctx: NodeContext) -> NodeResult

A handler returns the value it produced plus the ids of the nodes to activate
next. Raising a G8nError (or returning ``success=False``) ends the whole run;
handlers turn their own recoverable failures into output text instead.

Entry, output, memory, and tool nodes are handled here. Agent and classifier
nodes live in their own modules.
"""

import json
from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable

from g8n.config import RuntimeConfig
from g8n.graph.memory import MemoryWindow
from g8n.graph.model import Graph, Node, OutputFormat, ToolNode
from g8n.llm.provider import LLMProvider
from g8n.tools.catalog import ToolCategory, category_of
from g8n.tools.router import ToolInvocation, ToolRouter


@dataclass
class NodeContext:
    """Everything a handler may touch during one activation."""

    node: Node
    graph: Graph
    input: Any
    llm: LLMProvider
    router: ToolRouter
    memory: MemoryWindow
    config: RuntimeConfig
    run_id: str = ""

    @property
    def node_id(self) -> str:
        return self.node.id

    @property
    def input_text(self) -> str:
        if self.input is None:
            return ""
        if isinstance(self.input, str):
            return self.input
        return json.dumps(self.input, ensure_ascii=False, default=str)


@dataclass
class NodeResult:
    """
    Outcome of one node activation.

    ``forward`` overrides what the children receive as input (a classifier
    records its category as output but passes the original text on). When
    unset, children receive ``output``.
    """

    success: bool = True
    output: Any = None
    next_node_ids: list[str] = field(default_factory=list)
    error: str | None = None
    tokens_used: int = 0
    forward: Any = None
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def child_input(self) -> Any:
        return self.output if self.forward is None else self.forward


@runtime_checkable
class NodeHandler(Protocol):
    """Interface every node handler implements."""

    async def execute(self, ctx: NodeContext) -> NodeResult: ...


class EntryNodeHandler:
    """Passes the run input to every downstream node."""

    async def execute(self, ctx: NodeContext) -> NodeResult:
        return NodeResult(output=ctx.input, next_node_ids=ctx.graph.downstream_ids(ctx.node_id))


class PassThroughNodeHandler:
    """Memory nodes reached by a flow edge: hand the input on unchanged."""

    async def execute(self, ctx: NodeContext) -> NodeResult:
        return NodeResult(output=ctx.input, next_node_ids=ctx.graph.downstream_ids(ctx.node_id))


class OutputNodeHandler:
    """Shapes the value that becomes the run's final output. Output nodes are terminal."""

    async def execute(self, ctx: NodeContext) -> NodeResult:
        output_format = ctx.node.config.output_format
        value = ctx.input
        if output_format == OutputFormat.JSON:
            if isinstance(value, str):
                try:
                    value = json.loads(value)
                except json.JSONDecodeError:
                    value = {"output": value}
        else:
            value = ctx.input_text
        return NodeResult(output=value)


class ToolNodeHandler:
    """
    A tool node reached by traversal runs the tool on its incoming text.

    Tool failures never end the run: the readable error becomes this node's
    output, is recorded on the step, and traversal continues to its children.
    """

    async def execute(self, ctx: NodeContext) -> NodeResult:
        node: ToolNode = ctx.node
        config = {**node.config.settings, "input": ctx.input_text}
        if category_of(node.config.tool_type) == ToolCategory.GCP_API:
            config.setdefault("query", ctx.input_text)

        result = await ctx.router.invoke(ToolInvocation(tool_type=node.config.tool_type, config=config))
        output = f"Tool error: {result.content}" if result.is_error else result.content
        return NodeResult(
            output=output,
            next_node_ids=ctx.graph.downstream_ids(ctx.node_id),
            tokens_used=result.tokens_used,
            error=result.content if result.is_error else None,
            metadata={"error_code": result.error_code} if result.is_error else {},
        )
