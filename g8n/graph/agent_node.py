"""
Agent Node - one model turn, with at most one round of function calls.

Activation:
1. Read history from the attached memory node, if any
2. Split attached tool nodes into native capabilities and function declarations
3. Call the model with prompt, system instruction, capabilities, declarations
4. If the model asked for function calls: run each through the Tool Router,
   then call the model once more with the results appended and use that text
5. Append the (input, answer) pair to memory
6. Continue along the primary output port

Tool failures are fed back to the model as text. Model failures are not
caught here and end the run.
"""

import logging

from g8n.errors import G8nError, MemoryUnavailableError, ModelUnavailableError, ToolNotSupportedError
from g8n.graph.memory import ConversationTurn
from g8n.graph.model import MEMORY_HANDLE, TOOLS_HANDLE, AgentNode, MemoryNode, ToolNode
from g8n.graph.node import NodeContext, NodeResult
from g8n.llm.provider import FunctionCall, FunctionDeclaration, NativeCapability
from g8n.tools.catalog import NATIVE_TOOLS
from g8n.tools.router import ToolInvocation, ToolRouter

logger = logging.getLogger(__name__)

FOLLOW_UP_TEMPLATE = (
    "{prompt}\n\n"
    "[System] Function executed, results:\n{results}\n\n"
    "Please respond to the user based on the results above."
)


def format_history(history: list[ConversationTurn]) -> str:
    lines = []
    for turn in history:
        speaker = "User" if turn.role == "user" else "Assistant"
        lines.append(f"{speaker}: {turn.content}")
    return "\n".join(lines)


def build_prompt(history: list[ConversationTurn], user_input: str) -> str:
    """Fold stored history and the current input into one prompt."""
    if not history:
        return user_input
    return f"{format_history(history)}\nUser: {user_input}"


class AgentNodeHandler:
    """Runs an ``agent`` node."""

    async def execute(self, ctx: NodeContext) -> NodeResult:
        node: AgentNode = ctx.node
        if not ctx.llm.is_available():
            raise ModelUnavailableError(
                f"Agent '{node.id}' cannot run: no model credential configured",
                node_id=node.id,
            )

        model = node.config.model or ctx.config.model
        temperature = (
            node.config.temperature if node.config.temperature is not None else ctx.config.temperature
        )

        # 1. Memory
        memory_node = self._memory_node(ctx)
        history: list[ConversationTurn] = []
        if memory_node is not None:
            try:
                history = ctx.memory.read(
                    memory_node.config.storage_key, memory_node.config.max_messages
                )
            except MemoryUnavailableError as e:
                logger.warning(f"⚠ Running without history: {e.message}")

        # 2. Tools
        capabilities, declarations, tool_nodes = self._collect_tools(ctx)

        # 3. First model call
        prompt = build_prompt(history, ctx.input_text)
        logger.info(
            f"📥 Agent '{node.id}' calling {model} "
            f"({len(declarations)} functions, {len(capabilities)} capabilities)"
        )
        response = await ctx.llm.generate(
            prompt,
            model=model,
            system=node.config.system_instruction,
            temperature=temperature,
            functions=declarations or None,
            capabilities=capabilities or None,
        )
        tokens_used = response.tokens_used
        final_text = response.text
        function_results: list[str] = []

        # 4. One round of function calls
        if response.function_calls:
            for call in response.function_calls:
                result_text, tool_tokens = await self._run_function_call(ctx.router, call, tool_nodes)
                function_results.append(result_text)
                tokens_used += tool_tokens

            follow_up = await ctx.llm.generate(
                FOLLOW_UP_TEMPLATE.format(prompt=prompt, results="\n\n".join(function_results)),
                model=model,
                system=node.config.system_instruction,
                temperature=temperature,
            )
            tokens_used += follow_up.tokens_used
            final_text = follow_up.text

        # 5. Memory write-back
        if memory_node is not None:
            try:
                ctx.memory.append(
                    memory_node.config.storage_key,
                    [
                        ConversationTurn(role="user", content=ctx.input_text),
                        ConversationTurn(role="model", content=final_text),
                    ],
                    memory_node.config.max_messages,
                )
            except MemoryUnavailableError as e:
                logger.warning(f"⚠ Conversation turn not stored: {e.message}")

        logger.info(f"✓ Agent '{node.id}' answered ({tokens_used} tokens)")
        return NodeResult(
            output=final_text,
            next_node_ids=ctx.graph.downstream_ids(node.id, "output"),
            tokens_used=tokens_used,
            metadata={
                "function_calls": [call.name for call in response.function_calls],
                "function_results": function_results,
            },
        )

    def _memory_node(self, ctx: NodeContext) -> MemoryNode | None:
        memory_nodes = [
            n for n in ctx.graph.attached_nodes(ctx.node_id, MEMORY_HANDLE) if isinstance(n, MemoryNode)
        ]
        if len(memory_nodes) > 1:
            logger.warning(
                f"⚠ Agent '{ctx.node_id}' has {len(memory_nodes)} memory nodes; "
                f"using '{memory_nodes[0].id}'"
            )
        return memory_nodes[0] if memory_nodes else None

    def _collect_tools(
        self, ctx: NodeContext
    ) -> tuple[list[NativeCapability], list[FunctionDeclaration], dict[str, ToolNode]]:
        """Partition attached tool nodes into capabilities and function declarations."""
        capabilities: list[NativeCapability] = []
        declarations: list[FunctionDeclaration] = []
        tool_nodes: dict[str, ToolNode] = {}

        for tool_node in ctx.graph.attached_nodes(ctx.node_id, TOOLS_HANDLE):
            if not isinstance(tool_node, ToolNode):
                continue
            tool_type = tool_node.config.tool_type
            if tool_type in NATIVE_TOOLS:
                if NATIVE_TOOLS[tool_type] not in capabilities:
                    capabilities.append(NATIVE_TOOLS[tool_type])
                continue
            try:
                declaration = ctx.router.declaration_for(tool_type)
            except ToolNotSupportedError as e:
                logger.warning(f"⚠ Skipping tool node '{tool_node.id}': {e.message}")
                continue
            if declaration is not None and tool_type not in tool_nodes:
                declarations.append(declaration)
                tool_nodes[tool_type] = tool_node

        return capabilities, declarations, tool_nodes

    async def _run_function_call(
        self, router: ToolRouter, call: FunctionCall, tool_nodes: dict[str, ToolNode]
    ) -> tuple[str, int]:
        """Execute one function call; returns the text fed back to the model."""
        try:
            tool_type = router.tool_for_function(call.name)
            tool_node = tool_nodes.get(tool_type)
            if tool_node is None:
                raise ToolNotSupportedError(f"Unknown function: {call.name}", tool_name=call.name)
            config = {**tool_node.config.settings, **router.map_args_to_config(tool_type, call.args)}
        except G8nError as e:
            logger.warning(f"⚠ Function {call.name} rejected: {e.message}")
            return f"Function {call.name} error: [{e.error_code}] {e.message}", 0

        logger.info(f"🔧 Function call {call.name} → {tool_type}")
        result = await router.invoke(ToolInvocation(tool_type=tool_type, config=config, resolved_args=call.args))
        if result.is_error:
            return f"Function {call.name} error: {result.content}", result.tokens_used
        return f"Function {call.name} result:\n{result.content}", result.tokens_used
