"""Tests for the workflow engine's traversal and run lifecycle."""

import asyncio
from unittest.mock import AsyncMock, patch

import httpx
import pytest
from pydantic import ValidationError

from g8n.credentials import Credentials, GoogleAccessToken
from g8n.graph.executor import WorkflowEngine
from g8n.graph.memory import ConversationTurn, InMemoryStore, MemoryWindow
from g8n.graph.model import NodeType
from g8n.graph.node import NodeResult
from g8n.llm import FunctionCall, LiteLLMProvider, LLMResponse, MockLLMProvider
from g8n.schemas.run import RunStatus
from g8n.tools.gcp import GcpApiClient
from g8n.tools.router import ToolRouter


class FakeEventBus:
    def __init__(self):
        self.events = []

    async def emit_node_started(self, **kwargs):
        self.events.append(("started", kwargs))

    async def emit_node_completed(self, **kwargs):
        self.events.append(("completed", kwargs))

    async def emit_node_failed(self, **kwargs):
        self.events.append(("failed", kwargs))


class BlockingHandler:
    """Agent handler that waits until the test releases it."""

    def __init__(self):
        self.started = asyncio.Event()
        self.release = asyncio.Event()

    async def execute(self, ctx):
        self.started.set()
        await self.release.wait()
        return NodeResult(output="done", next_node_ids=ctx.graph.downstream_ids(ctx.node_id))


class ExplodingHandler:
    async def execute(self, ctx):
        raise RuntimeError("kaboom")


class FailingHandler:
    async def execute(self, ctx):
        return NodeResult(success=False, error="could not do it")


@pytest.fixture
def hello_graph(make_graph):
    return make_graph(
        [("in", "entry"), ("bot", "agent"), ("out", "output")],
        [("in", "bot"), ("bot", "out")],
        graph_id="hello",
    )


def _engine(llm=None, runtime_config=None, **kwargs) -> WorkflowEngine:
    return WorkflowEngine(llm or MockLLMProvider(), config=runtime_config, **kwargs)


class TestTraversal:
    @pytest.mark.asyncio
    async def test_hello_world(self, hello_graph, runtime_config):
        llm = MockLLMProvider(["T"])
        engine = _engine(llm, runtime_config)

        state = await engine.run(hello_graph, "Hello")

        assert state.status == RunStatus.COMPLETED
        assert state.final_output == "T"
        assert state.executed_node_ids == ("in", "bot", "out")
        assert [s.node_id for s in state.steps] == ["in", "bot", "out"]
        assert state.steps[1].input == "Hello"
        assert state.steps[1].output == "T"
        assert llm.requests[0].prompt == "Hello"
        assert state.error is None
        assert state.ended_at is not None

    @pytest.mark.asyncio
    async def test_classifier_routes_original_text(self, make_graph, runtime_config):
        graph = make_graph(
            [
                ("in", "entry"),
                ("cls", "classifier", {"categories": ["Billing", "Support"]}),
                ("billing", "agent"),
                ("support", "agent"),
                ("out", "output"),
            ],
            [
                ("in", "cls"),
                ("cls", "billing", "Billing"),
                ("cls", "support", "Support"),
                ("billing", "out"),
                ("support", "out"),
            ],
        )
        llm = MockLLMProvider(["Billing", "Refund on its way"])

        state = await _engine(llm, runtime_config).run(graph, "I was charged twice")

        assert state.status == RunStatus.COMPLETED
        assert state.executed_node_ids == ("in", "cls", "billing", "out")
        assert state.steps[1].output == "Billing"
        assert llm.requests[1].prompt == "I was charged twice"
        assert state.final_output == "Refund on its way"

    @pytest.mark.asyncio
    async def test_classifier_dead_end_completes(self, make_graph, runtime_config):
        graph = make_graph(
            [("in", "entry"), ("cls", "classifier", {"categories": ["Billing"]}), ("b", "agent")],
            [("in", "cls"), ("cls", "b", "Billing")],
        )

        state = await _engine(MockLLMProvider(["Sales"]), runtime_config).run(graph, "hi")

        assert state.status == RunStatus.COMPLETED
        assert state.executed_node_ids == ("in", "cls")
        assert state.final_output == "Unclassified"

    @pytest.mark.asyncio
    async def test_classifier_model_error_is_not_fatal(self, make_graph, runtime_config):
        from g8n.errors import ModelError

        graph = make_graph(
            [("in", "entry"), ("cls", "classifier", {"categories": ["Billing"]}), ("b", "agent")],
            [("in", "cls"), ("cls", "b", "Billing")],
        )

        state = await _engine(MockLLMProvider([ModelError("down")]), runtime_config).run(graph, "hi")

        assert state.status == RunStatus.COMPLETED
        assert state.final_output == "Error"
        assert state.steps[-1].error == "down"

    @pytest.mark.asyncio
    async def test_diamond_runs_join_once(self, make_graph, runtime_config):
        graph = make_graph(
            [("in", "entry"), ("a", "agent"), ("b", "agent"), ("join", "output")],
            [("in", "a"), ("in", "b"), ("a", "join"), ("b", "join")],
        )
        llm = MockLLMProvider(["from a", "from b"])

        state = await _engine(llm, runtime_config).run(graph, "go")

        assert state.status == RunStatus.COMPLETED
        assert state.executed_node_ids == ("in", "a", "b", "join")
        # The first arrival wins
        assert state.final_output == "from a"

    @pytest.mark.asyncio
    async def test_cycle_ends_run(self, make_graph, runtime_config):
        graph = make_graph(
            [("in", "entry"), ("a", "agent"), ("b", "agent")],
            [("in", "a"), ("a", "b"), ("b", "a")],
        )

        state = await _engine(runtime_config=runtime_config).run(graph, "loop")

        assert state.status == RunStatus.ERROR
        assert state.error_code == "RUN_LOOP_EXCEEDED"
        assert "Cycle detected: a → b → a" in state.error
        assert state.executed_node_ids == ("in", "a", "b")

    @pytest.mark.asyncio
    async def test_iteration_bound(self, hello_graph, runtime_config):
        runtime_config.max_iterations = 2

        state = await _engine(runtime_config=runtime_config).run(hello_graph, "Hello")

        assert state.status == RunStatus.ERROR
        assert state.error_code == "RUN_LOOP_EXCEEDED"
        assert state.executed_node_ids == ("in", "bot")

    @pytest.mark.asyncio
    async def test_port_edges_are_not_followed(self, make_graph, runtime_config):
        graph = make_graph(
            [
                ("in", "entry"),
                ("mem", "memory"),
                ("search", "tool", {"toolType": "google_search"}),
                ("bot", "agent"),
            ],
            [("in", "bot"), ("mem", "bot", None, "memory"), ("search", "bot", None, "tools")],
        )

        state = await _engine(runtime_config=runtime_config).run(graph, "hi")

        assert state.executed_node_ids == ("in", "bot")
        assert state.final_output == "mock response"

    @pytest.mark.asyncio
    async def test_output_node_wins_final_output(self, make_graph, runtime_config):
        graph = make_graph(
            [("in", "entry"), ("a", "agent"), ("out", "output"), ("side", "agent")],
            [("in", "a"), ("a", "out"), ("in", "side")],
        )
        llm = MockLLMProvider(["main", "side answer"])

        state = await _engine(llm, runtime_config).run(graph, "hi")

        assert state.executed_node_ids == ("in", "a", "side", "out")
        assert state.final_output == "main"

    @pytest.mark.asyncio
    async def test_json_output_format(self, make_graph, runtime_config):
        graph = make_graph(
            [("in", "entry"), ("bot", "agent"), ("out", "output", {"outputFormat": "json"})],
            [("in", "bot"), ("bot", "out")],
        )

        state = await _engine(MockLLMProvider(['{"answer": 42}']), runtime_config).run(graph, "q")

        assert state.final_output == {"answer": 42}

    @pytest.mark.asyncio
    async def test_tool_node_failure_does_not_end_run(self, make_graph, runtime_config):
        graph = make_graph(
            [("in", "entry"), ("mail", "tool", {"toolType": "gas_gmail"}), ("out", "output")],
            [("in", "mail"), ("mail", "out")],
        )

        state = await _engine(runtime_config=runtime_config).run(graph, "send it")

        assert state.status == RunStatus.COMPLETED
        tool_step = state.steps[1]
        assert tool_step.error.startswith("[BRIDGE_NOT_CONFIGURED]")
        assert state.final_output.startswith("Tool error: [BRIDGE_NOT_CONFIGURED]")

    @pytest.mark.asyncio
    async def test_memory_shared_across_runs(self, make_graph, runtime_config):
        graph = make_graph(
            [("in", "entry"), ("mem", "memory", {"maxMessages": 4}), ("bot", "agent")],
            [("in", "bot"), ("mem", "bot", None, "memory")],
        )
        llm = MockLLMProvider(["Hi Ada", "You are Ada"])
        engine = _engine(llm, runtime_config, memory=MemoryWindow(InMemoryStore()))

        await engine.run(graph, "I am Ada")
        await engine.run(graph, "Who am I?")

        assert llm.requests[1].prompt == "User: I am Ada\nAssistant: Hi Ada\nUser: Who am I?"

    @pytest.mark.asyncio
    async def test_token_totals(self, make_graph, runtime_config):
        graph = make_graph(
            [("in", "entry"), ("a", "agent"), ("b", "agent")],
            [("in", "a"), ("a", "b")],
        )

        state = await _engine(MockLLMProvider(tokens_per_call=4), runtime_config).run(graph, "x")

        assert state.total_tokens == 8
        assert [s.tokens_used for s in state.steps] == [0, 4, 4]

    @pytest.mark.asyncio
    async def test_step_delay_sleeps_between_activations(self, hello_graph, runtime_config):
        runtime_config.step_delay = 0.5

        with patch("g8n.graph.executor.asyncio.sleep", new_callable=AsyncMock) as fast_sleep:
            state = await _engine(runtime_config=runtime_config).run(hello_graph, "Hello")

        assert state.status == RunStatus.COMPLETED
        assert fast_sleep.await_count == 3
        fast_sleep.assert_awaited_with(0.5)


class TestFailures:
    @pytest.mark.asyncio
    async def test_invalid_graph(self, make_graph, runtime_config):
        graph = make_graph([("bot", "agent")])

        state = await _engine(runtime_config=runtime_config).run(graph, "x")

        assert state.status == RunStatus.ERROR
        assert state.error_code == "GRAPH_INVALID"
        assert state.steps == ()

    @pytest.mark.asyncio
    async def test_missing_model_credential_is_fatal(self, hello_graph, runtime_config):
        bus = FakeEventBus()
        engine = _engine(MockLLMProvider(available=False), runtime_config, event_bus=bus)

        state = await engine.run(hello_graph, "Hello")

        assert state.status == RunStatus.ERROR
        assert state.error_code == "MODEL_UNAVAILABLE"
        assert state.retryable is False
        assert state.executed_node_ids == ("in",)
        assert state.steps[-1].node_id == "bot"
        assert state.steps[-1].error is not None
        assert bus.events[-1][0] == "failed"
        assert bus.events[-1][1]["node_id"] == "bot"

    @pytest.mark.asyncio
    async def test_rate_limit_is_retryable(self, hello_graph, runtime_config):
        from g8n.errors import RateLimitedError

        state = await _engine(MockLLMProvider([RateLimitedError("slow down")]), runtime_config).run(
            hello_graph, "Hello"
        )

        assert state.error_code == "RATE_LIMITED"
        assert state.retryable is True

    @pytest.mark.asyncio
    async def test_unexpected_handler_exception(self, hello_graph, runtime_config):
        engine = _engine(runtime_config=runtime_config, handlers={NodeType.AGENT: ExplodingHandler()})

        state = await engine.run(hello_graph, "Hello")

        assert state.status == RunStatus.ERROR
        assert state.error_code == "NODE_EXECUTION_FAILED"
        assert "kaboom" in state.error

    @pytest.mark.asyncio
    async def test_unsuccessful_result(self, hello_graph, runtime_config):
        engine = _engine(runtime_config=runtime_config, handlers={NodeType.AGENT: FailingHandler()})

        state = await engine.run(hello_graph, "Hello")

        assert state.error_code == "NODE_EXECUTION_FAILED"
        assert state.error == "could not do it"


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_events_in_order(self, hello_graph, runtime_config):
        bus = FakeEventBus()

        state = await _engine(runtime_config=runtime_config, event_bus=bus).run(hello_graph, "Hello")

        assert [(kind, e["node_id"]) for kind, e in bus.events] == [
            ("started", "in"),
            ("completed", "in"),
            ("started", "bot"),
            ("completed", "bot"),
            ("started", "out"),
            ("completed", "out"),
        ]
        assert bus.events[1][1]["next_node_ids"] == ["bot"]
        assert all(e["run_id"] == state.run_id for _, e in bus.events)

    @pytest.mark.asyncio
    async def test_second_run_while_running_is_ignored(self, hello_graph, runtime_config):
        blocker = BlockingHandler()
        engine = _engine(runtime_config=runtime_config, handlers={NodeType.AGENT: blocker})

        task = asyncio.create_task(engine.run(hello_graph, "first"))
        await blocker.started.wait()

        assert engine.is_running is True
        assert await engine.run(hello_graph, "second") is None

        blocker.release.set()
        state = await task
        assert state.status == RunStatus.COMPLETED
        assert state.steps[0].input == "first"
        assert engine.is_running is False

    @pytest.mark.asyncio
    async def test_cancel_stops_at_next_node(self, hello_graph, runtime_config):
        blocker = BlockingHandler()
        engine = _engine(runtime_config=runtime_config, handlers={NodeType.AGENT: blocker})

        task = asyncio.create_task(engine.run(hello_graph, "Hello"))
        await blocker.started.wait()
        assert engine.cancel() is True
        blocker.release.set()
        state = await task

        assert state.status == RunStatus.IDLE
        assert state.cancelled is True
        assert state.is_terminal is True
        # The in-flight node finishes, nothing after it runs
        assert state.executed_node_ids == ("in", "bot")

    @pytest.mark.asyncio
    async def test_reset_during_run_cancels(self, hello_graph, runtime_config):
        blocker = BlockingHandler()
        engine = _engine(runtime_config=runtime_config, handlers={NodeType.AGENT: blocker})

        task = asyncio.create_task(engine.run(hello_graph, "Hello"))
        await blocker.started.wait()
        engine.reset()
        blocker.release.set()
        state = await task

        assert state.cancelled is True

    def test_cancel_when_idle(self):
        assert _engine().cancel() is False

    @pytest.mark.asyncio
    async def test_reset_clears_state(self, hello_graph, runtime_config):
        engine = _engine(runtime_config=runtime_config)
        await engine.run(hello_graph, "Hello")

        engine.reset()

        assert engine.state.status == RunStatus.IDLE
        assert engine.state.run_id == ""
        assert engine.steps == ()

    @pytest.mark.asyncio
    async def test_published_state_is_frozen(self, hello_graph, runtime_config):
        engine = _engine(runtime_config=runtime_config)
        state = await engine.run(hello_graph, "Hello")

        with pytest.raises(ValidationError):
            state.status = RunStatus.RUNNING
        assert engine.state is state

    @pytest.mark.asyncio
    async def test_each_run_gets_a_new_id(self, hello_graph, runtime_config):
        engine = _engine(runtime_config=runtime_config)
        first = await engine.run(hello_graph, "a")
        second = await engine.run(hello_graph, "b")

        assert first.run_id != second.run_id
        assert first.final_output == "mock response"

    @pytest.mark.asyncio
    async def test_graph_edits_during_run_are_not_seen(self, hello_graph, runtime_config):
        blocker = BlockingHandler()
        engine = _engine(runtime_config=runtime_config, handlers={NodeType.AGENT: blocker})

        task = asyncio.create_task(engine.run(hello_graph, "Hello"))
        await blocker.started.wait()
        hello_graph.edges.clear()
        blocker.release.set()
        state = await task

        assert state.executed_node_ids == ("in", "bot", "out")


def test_from_config_wires_backends(runtime_config):
    credentials = Credentials.for_testing(
        gemini_api_key="test-key",
        bridge_url="https://bridge.example.com/exec",
        bridge_token="tok",
    )

    engine = WorkflowEngine.from_config(
        config=runtime_config, credentials=credentials, memory_store=InMemoryStore()
    )

    assert isinstance(engine.llm, LiteLLMProvider)
    assert engine.llm.is_available() is True
    assert engine.router.bridge.configured is True
    assert engine.router.bridge.timeout == runtime_config.bridge_timeout
    assert engine.router.gcp is not None
    assert engine.memory.available is True


class TestBoundsAndTerminals:
    @pytest.mark.asyncio
    async def test_converging_acyclic_graph_completes(self, make_graph, runtime_config):
        hubs = [f"m{i}" for i in range(10)]
        sinks = [f"o{i}" for i in range(10)]
        graph = make_graph(
            [("in", "entry"), *((h, "memory") for h in hubs), *((s, "output") for s in sinks)],
            [*(("in", h) for h in hubs), *((h, s) for h in hubs for s in sinks)],
        )
        runtime_config.max_iterations = 21

        state = await _engine(runtime_config=runtime_config).run(graph, "go")

        assert state.status == RunStatus.COMPLETED
        assert state.executed_node_ids == ("in", *hubs, *sinks)
        assert state.final_output == "go"

    @pytest.mark.asyncio
    async def test_output_node_is_terminal(self, make_graph, runtime_config):
        graph = make_graph(
            [("in", "entry"), ("bot", "agent"), ("out", "output"), ("after", "agent")],
            [("in", "bot"), ("bot", "out"), ("out", "after")],
        )
        llm = MockLLMProvider(["answer"])

        state = await _engine(llm, runtime_config).run(graph, "hi")

        assert state.status == RunStatus.COMPLETED
        assert state.executed_node_ids == ("in", "bot", "out")
        assert state.final_output == "answer"
        assert len(llm.requests) == 1


class TestRecoverableToolFailures:
    @pytest.fixture
    def gmail_graph(self, make_graph):
        return make_graph(
            [
                ("in", "entry"),
                ("inbox", "tool", {"toolType": "gmail"}),
                ("drive", "tool", {"toolType": "google_drive"}),
                ("bot", "agent"),
                ("out", "output"),
            ],
            [
                ("in", "bot"),
                ("inbox", "bot", None, "tools"),
                ("drive", "bot", None, "tools"),
                ("bot", "out"),
            ],
        )

    @pytest.mark.asyncio
    async def test_unauthorized_gcp_call_does_not_end_run(self, gmail_graph, runtime_config):
        llm = MockLLMProvider(
            [
                LLMResponse(text="", function_calls=[FunctionCall("search_gmail", {"query": "is:unread"})]),
                "Please sign in to Google first.",
            ]
        )

        state = await _engine(llm, runtime_config).run(gmail_graph, "Any new mail?")

        assert state.status == RunStatus.COMPLETED
        assert state.executed_node_ids == ("in", "bot", "out")
        assert state.final_output == "Please sign in to Google first."
        assert "Function search_gmail error: [AUTH_REQUIRED]" in llm.requests[1].prompt

    @pytest.mark.asyncio
    async def test_malformed_gcp_response_does_not_end_run(self, gmail_graph, runtime_config):
        def html_page(request):
            return httpx.Response(200, text="<html>Service Unavailable</html>")

        gcp = GcpApiClient(
            Credentials.for_testing(google_token=GoogleAccessToken("ya29.x")),
            transport=httpx.MockTransport(html_page),
        )
        llm = MockLLMProvider(
            [
                LLMResponse(text="", function_calls=[FunctionCall("list_drive_files", {})]),
                "Drive is not responding.",
            ]
        )
        engine = _engine(llm, runtime_config, router=ToolRouter(llm, gcp=gcp))

        state = await engine.run(gmail_graph, "List my files")

        assert state.status == RunStatus.COMPLETED
        assert state.executed_node_ids == ("in", "bot", "out")
        assert "Function list_drive_files error: [TOOL_EXECUTION_FAILED]" in llm.requests[1].prompt


class TestMemoryAcrossRuns:
    @pytest.mark.asyncio
    async def test_window_keeps_only_the_latest_turns(self, make_graph, runtime_config):
        graph = make_graph(
            [("in", "entry"), ("mem", "memory", {"storageKey": "chat", "maxMessages": 2}), ("bot", "agent")],
            [("in", "bot"), ("mem", "bot", None, "memory")],
        )
        store = InMemoryStore()
        engine = _engine(MockLLMProvider(["A1", "A2", "A3"]), runtime_config, memory=MemoryWindow(store))

        for question in ("first", "second", "third"):
            state = await engine.run(graph, question)
            assert state.status == RunStatus.COMPLETED

        assert MemoryWindow(store).read("chat") == [
            ConversationTurn("user", "third"),
            ConversationTurn("model", "A3"),
        ]


class BrokenEventBus(FakeEventBus):
    async def emit_node_started(self, **kwargs):
        raise RuntimeError("bus down")


class TestUnexpectedFailures:
    @pytest.mark.asyncio
    async def test_event_listener_error_does_not_escape(self, hello_graph, runtime_config):
        bus = BrokenEventBus()
        engine = _engine(MockLLMProvider(["T"]), runtime_config, event_bus=bus)

        state = await engine.run(hello_graph, "Hello")

        assert state.status == RunStatus.COMPLETED
        assert state.ended_at is not None
        assert state.executed_node_ids == ("in", "bot", "out")
        assert [kind for kind, _ in bus.events] == ["completed", "completed", "completed"]
        assert engine.is_running is False

    @pytest.mark.asyncio
    async def test_non_engine_exception_is_reported_on_state(self, hello_graph, runtime_config):
        engine = _engine(runtime_config=runtime_config)

        with patch.object(engine, "_traverse", new_callable=AsyncMock, side_effect=RuntimeError("boom")):
            state = await engine.run(hello_graph, "Hello")

        assert state.status == RunStatus.ERROR
        assert state.error_code == "RUN_FAILED"
        assert state.error == "boom"
        assert state.ended_at is not None
        assert engine.is_running is False
