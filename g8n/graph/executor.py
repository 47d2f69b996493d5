"""
Workflow Engine - runs a workflow graph from its entry node to its terminals.

The engine:
1. Snapshots and validates the graph
2. Seeds a FIFO worklist with the entry node and the run input
3. Pops activations, dispatches each to its node handler, records a step
4. Enqueues the handler's next nodes with the handler's output as their input
5. Ends when the worklist drains, a handler fails, the iteration bound is
   hit, or the caller cancels

A node runs at most once per run. Reaching an already-executed node through a
converging branch is skipped; reaching a node that is already on the current
activation's own path is a cycle and ends the run with RunLoopExceededError.
"""

import asyncio
import logging
import uuid
from collections import deque
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from g8n.config import RuntimeConfig
from g8n.credentials import Credentials
from g8n.errors import G8nError, GraphInvalidError, NodeExecutionError, RunLoopExceededError
from g8n.graph.agent_node import AgentNodeHandler
from g8n.graph.classifier_node import ClassifierNodeHandler
from g8n.graph.memory import FileMemoryStore, MemoryStore, MemoryWindow
from g8n.graph.model import Graph, Node, NodeType
from g8n.graph.node import (
    EntryNodeHandler,
    NodeContext,
    NodeHandler,
    NodeResult,
    OutputNodeHandler,
    PassThroughNodeHandler,
    ToolNodeHandler,
)
from g8n.llm.litellm import LiteLLMProvider
from g8n.llm.provider import LLMProvider
from g8n.observability import clear_trace_context, set_trace_context
from g8n.schemas.run import ExecutionStep, RunState, RunStatus
from g8n.tools.bridge import AutomationBridge
from g8n.tools.gcp import GcpApiClient
from g8n.tools.router import ToolRouter


@dataclass(frozen=True)
class WorkItem:
    """A pending activation on the worklist."""

    node_id: str
    input: Any
    path: tuple[str, ...] = ()
    """Ids of the activations that led here, entry first."""


def _now() -> datetime:
    return datetime.now(UTC)


class WorkflowEngine:
    """
    Single-run-at-a-time workflow executor.

    Usage:
        engine = WorkflowEngine.from_config()
        state = await engine.run(graph, "Hello")
        if state.status == RunStatus.COMPLETED:
            print(state.final_output)
    """

    def __init__(
        self,
        llm: LLMProvider,
        router: ToolRouter | None = None,
        memory: MemoryWindow | None = None,
        config: RuntimeConfig | None = None,
        event_bus: Any | None = None,
        handlers: dict[NodeType, NodeHandler] | None = None,
    ):
        """
        Initialize the engine.

        Args:
            llm: Model backend used by agent and classifier nodes
            router: Tool router; defaults to one with no bridge or GCP client
            memory: Conversation memory; defaults to a stateless window
            config: Runtime configuration (model defaults, iteration bound, step delay)
            event_bus: Optional listener with async ``emit_node_started``,
                ``emit_node_completed`` and ``emit_node_failed`` methods
            handlers: Per-type handler overrides
        """
        self.config = config or RuntimeConfig()
        self.llm = llm
        self.router = router or ToolRouter(llm, model=self.config.model)
        self.memory = memory or MemoryWindow()
        self.event_bus = event_bus
        self.logger = logging.getLogger(__name__)

        self._handlers: dict[NodeType, NodeHandler] = {
            NodeType.ENTRY: EntryNodeHandler(),
            NodeType.AGENT: AgentNodeHandler(),
            NodeType.TOOL: ToolNodeHandler(),
            NodeType.CLASSIFIER: ClassifierNodeHandler(),
            NodeType.OUTPUT: OutputNodeHandler(),
            NodeType.MEMORY: PassThroughNodeHandler(),
        }
        if handlers:
            self._handlers.update(handlers)

        self._running = False
        self._cancel_requested = False
        self._state = RunState(run_id="")

    @classmethod
    def from_config(
        cls,
        config: RuntimeConfig | None = None,
        credentials: Credentials | None = None,
        memory_store: MemoryStore | None = None,
        event_bus: Any | None = None,
    ) -> "WorkflowEngine":
        """Build an engine wired to LiteLLM, the automation bridge, and GCP APIs."""
        config = config or RuntimeConfig()
        credentials = credentials or Credentials.from_env()
        llm = LiteLLMProvider(api_key=credentials.gemini_api_key, provider_prefix=config.model_provider)
        router = ToolRouter(
            llm,
            bridge=AutomationBridge(
                credentials.bridge_url, credentials.bridge_token, timeout=config.bridge_timeout
            ),
            gcp=GcpApiClient(credentials, timeout=config.gcp_timeout),
            model=config.model,
        )
        store = memory_store if memory_store is not None else FileMemoryStore(config.memory_dir)
        return cls(llm, router=router, memory=MemoryWindow(store), config=config, event_bus=event_bus)

    # -------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------

    @property
    def state(self) -> RunState:
        return self._state

    @property
    def steps(self) -> tuple[ExecutionStep, ...]:
        return self._state.steps

    @property
    def is_running(self) -> bool:
        return self._running

    def cancel(self) -> bool:
        """
        Request cancellation of the active run.

        Takes effect at the next worklist pop; an in-flight model or tool call
        completes first. Returns False when no run is active.
        """
        if not self._running:
            return False
        self.logger.info("⏸ Cancellation requested")
        self._cancel_requested = True
        return True

    def reset(self) -> None:
        """Discard the last run's state. While a run is active this cancels it."""
        if self._running:
            self.cancel()
            return
        self._cancel_requested = False
        self._state = RunState(run_id="")

    async def run(self, graph: Graph, input: Any) -> RunState | None:
        """
        Execute ``graph`` with ``input``.

        Returns:
            The final RunState, or None if a run is already in progress on
            this engine. Failures are reported on the state, never raised.
        """
        if self._running:
            self.logger.warning("⚠ Run already in progress; ignoring run request")
            return None

        self._running = True
        self._cancel_requested = False
        run_id = uuid.uuid4().hex
        self._state = RunState(run_id=run_id, status=RunStatus.RUNNING, started_at=_now())
        set_trace_context(run_id=run_id, workflow_id=graph.id)

        try:
            snapshot = graph.model_copy(deep=True)
            snapshot.ensure_valid()
            await self._traverse(snapshot, input)
        except G8nError as e:
            self.logger.error(f"❌ Run failed: [{e.error_code}] {e.message}")
            self._finish(
                RunStatus.ERROR,
                error=e.message,
                error_code=e.error_code,
                retryable=e.retry_allowed,
            )
        except Exception as e:
            self.logger.exception("❌ Run failed unexpectedly")
            self._finish(RunStatus.ERROR, error=str(e), error_code="RUN_FAILED")
        finally:
            self._running = False
            self._cancel_requested = False
            clear_trace_context()

        return self._state

    # -------------------------------------------------------------------
    # Traversal
    # -------------------------------------------------------------------

    async def _traverse(self, graph: Graph, run_input: Any) -> None:
        entry = graph.entry_node()
        worklist: deque[WorkItem] = deque([WorkItem(entry.id, run_input)])
        executed: set[str] = set()
        max_iterations = self.config.max_iterations
        iterations = 0
        last_terminal_output: Any = None
        output_node_output: Any = None
        output_node_ran = False

        self.logger.info(f"🚀 Starting run of '{graph.id}' at entry node '{entry.id}'")

        while worklist:
            if self._cancel_requested:
                self.logger.info("⏸ Run cancelled")
                self._finish(RunStatus.IDLE, cancelled=True)
                return

            item = worklist.popleft()
            if item.node_id in item.path:
                cycle = " → ".join([*item.path[item.path.index(item.node_id):], item.node_id])
                raise RunLoopExceededError(f"Cycle detected: {cycle}", node_id=item.node_id)
            if item.node_id in executed:
                continue

            # Only activations count; skipped converging branches do not.
            iterations += 1
            if iterations > max_iterations:
                raise RunLoopExceededError(
                    f"Run exceeded {max_iterations} iterations; the graph likely contains a cycle",
                    node_id=item.node_id,
                )

            node = graph.node(item.node_id)
            result = await self._activate(graph, node, item.input)
            executed.add(node.id)

            if node.type == NodeType.OUTPUT:
                output_node_output = result.output
                output_node_ran = True

            if result.next_node_ids:
                path = (*item.path, node.id)
                for child_id in result.next_node_ids:
                    worklist.append(WorkItem(child_id, result.child_input, path))
            else:
                last_terminal_output = result.output

            if self.config.step_delay > 0:
                await asyncio.sleep(self.config.step_delay)

        final_output = output_node_output if output_node_ran else last_terminal_output
        self.logger.info(f"✓ Run completed after {len(executed)} nodes")
        self._finish(RunStatus.COMPLETED, final_output=final_output)

    def _handler_for(self, node: Node) -> NodeHandler:
        match node.type:
            case NodeType.ENTRY:
                return self._handlers[NodeType.ENTRY]
            case NodeType.AGENT:
                return self._handlers[NodeType.AGENT]
            case NodeType.TOOL:
                return self._handlers[NodeType.TOOL]
            case NodeType.CLASSIFIER:
                return self._handlers[NodeType.CLASSIFIER]
            case NodeType.OUTPUT:
                return self._handlers[NodeType.OUTPUT]
            case NodeType.MEMORY:
                return self._handlers[NodeType.MEMORY]
            case _:
                raise GraphInvalidError(f"Node '{node.id}' has unknown type '{node.type}'", node_id=node.id)

    async def _activate(self, graph: Graph, node: Node, node_input: Any) -> NodeResult:
        """Run one node, record its step, and raise if it failed."""
        set_trace_context(node_id=node.id)
        self._state = self._state.model_copy(update={"current_node_id": node.id})
        self.logger.info(f"▶ {node.type} node '{node.id}'")

        ctx = NodeContext(
            node=node,
            graph=graph,
            input=node_input,
            llm=self.llm,
            router=self.router,
            memory=self.memory,
            config=self.config,
            run_id=self._state.run_id,
        )
        start_time = _now()
        await self._emit("emit_node_started", node_id=node.id, node_type=str(node.type), input=node_input)

        try:
            result = await self._handler_for(node).execute(ctx)
        except G8nError as e:
            if e.node_id is None:
                e.node_id = node.id
            await self._fail_step(node, node_input, start_time, e.message)
            raise
        except Exception as e:
            self.logger.exception(f"❌ Unexpected failure in node '{node.id}'")
            await self._fail_step(node, node_input, start_time, str(e))
            raise NodeExecutionError(f"Node '{node.id}' failed: {e}", node_id=node.id) from e

        if not result.success:
            message = result.error or f"Node '{node.id}' failed"
            await self._fail_step(node, node_input, start_time, message, result.tokens_used)
            raise NodeExecutionError(message, node_id=node.id)

        self._record_step(
            node,
            node_input,
            start_time,
            output=result.output,
            error=result.error,
            tokens_used=result.tokens_used,
        )
        await self._emit(
            "emit_node_completed",
            node_id=node.id,
            node_type=str(node.type),
            output=result.output,
            next_node_ids=list(result.next_node_ids),
        )
        return result

    async def _fail_step(
        self, node: Node, node_input: Any, start_time: datetime, message: str, tokens_used: int = 0
    ) -> None:
        self._record_step(
            node, node_input, start_time, error=message, tokens_used=tokens_used, completed=False
        )
        await self._emit("emit_node_failed", node_id=node.id, node_type=str(node.type), error=message)

    def _record_step(
        self,
        node: Node,
        node_input: Any,
        start_time: datetime,
        output: Any = None,
        error: str | None = None,
        tokens_used: int = 0,
        completed: bool = True,
    ) -> None:
        step = ExecutionStep(
            node_id=node.id,
            node_type=str(node.type),
            input=node_input,
            output=output,
            start_time=start_time,
            end_time=_now(),
            error=error,
            tokens_used=tokens_used,
        )
        update: dict[str, Any] = {
            "steps": (*self._state.steps, step),
            "total_tokens": self._state.total_tokens + tokens_used,
        }
        if completed:
            update["executed_node_ids"] = (*self._state.executed_node_ids, node.id)
        self._state = self._state.model_copy(update=update)

    def _finish(self, status: RunStatus, **fields: Any) -> None:
        self._state = self._state.model_copy(update={"status": status, "ended_at": _now(), **fields})

    async def _emit(self, method: str, **payload: Any) -> None:
        if self.event_bus is None:
            return
        emit = getattr(self.event_bus, method, None)
        if emit is None:
            return
        try:
            await emit(run_id=self._state.run_id, **payload)
        except Exception as e:
            self.logger.error(f"Event listener error for {method}: {e}")
