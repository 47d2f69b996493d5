"""
Command-line interface for the g8n workflow engine.

Usage:
    g8n run workflow.json --input "Hello"
    g8n run workflow.json --input "Hello" --log-dir ~/.g8n/logs --trigger cronjob
    g8n validate workflow.json
    g8n bridge-ping
    g8n memory-clear chat_history
"""

import argparse
import asyncio
import json
import sys
from pathlib import Path

from pydantic import ValidationError

from g8n.config import RuntimeConfig
from g8n.credentials import Credentials
from g8n.errors import G8nError
from g8n.graph.executor import WorkflowEngine
from g8n.graph.memory import FileMemoryStore, MemoryWindow
from g8n.graph.model import Graph
from g8n.observability import configure_logging
from g8n.schemas.run import RunStatus
from g8n.storage.run_log_store import TRIGGERS, RunLogStore
from g8n.tools.bridge import AutomationBridge


def load_graph(path: str | Path) -> Graph:
    """Read a workflow JSON file into a Graph."""
    return Graph.model_validate_json(Path(path).read_text(encoding="utf-8"))


def cmd_run(args: argparse.Namespace) -> int:
    config = RuntimeConfig()
    if args.max_iterations is not None:
        config.max_iterations = args.max_iterations
    if args.memory_dir:
        config.memory_dir = Path(args.memory_dir).expanduser()

    try:
        graph = load_graph(args.workflow)
    except (OSError, ValidationError) as e:
        print(f"Could not load workflow: {e}", file=sys.stderr)
        return 1

    engine = WorkflowEngine.from_config(config=config)
    state = asyncio.run(engine.run(graph, args.input))
    if state is None:
        return 1

    if args.log_dir:
        RunLogStore(args.log_dir).save(state, workflow_id=graph.id, trigger=args.trigger)

    print(json.dumps(state.summary(), indent=2, ensure_ascii=False, default=str))
    return 0 if state.status == RunStatus.COMPLETED else 1


def cmd_validate(args: argparse.Namespace) -> int:
    try:
        graph = load_graph(args.workflow)
    except (OSError, ValidationError) as e:
        print(f"Could not load workflow: {e}", file=sys.stderr)
        return 1

    problems = graph.validate()
    if problems:
        print(f"❌ {args.workflow} has {len(problems)} problem(s):")
        for problem in problems:
            print(f"   • {problem}")
        return 1
    print(f"✓ {args.workflow} is valid ({len(graph.nodes)} nodes, {len(graph.edges)} edges)")
    return 0


def cmd_bridge_ping(args: argparse.Namespace) -> int:
    credentials = Credentials.from_env()
    bridge = AutomationBridge(
        credentials.bridge_url, credentials.bridge_token, timeout=RuntimeConfig().bridge_timeout
    )
    if args.curl:
        print(bridge.curl_command("ping"))
        return 0
    try:
        ok = asyncio.run(bridge.ping())
    except G8nError as e:
        print(f"❌ [{e.error_code}] {e.message}", file=sys.stderr)
        return 1
    print("✓ pong" if ok else "❌ Bridge answered, but not with pong")
    return 0 if ok else 1


def cmd_memory_clear(args: argparse.Namespace) -> int:
    memory_dir = Path(args.memory_dir).expanduser() if args.memory_dir else RuntimeConfig().memory_dir
    try:
        MemoryWindow(FileMemoryStore(memory_dir)).clear(args.key)
    except (G8nError, ValueError) as e:
        print(f"❌ {e}", file=sys.stderr)
        return 1
    print(f"✓ Cleared memory '{args.key}'")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="g8n",
        description="g8n - run node/edge workflows against Gemini and Google automation tools",
    )
    parser.add_argument("--log-level", default="INFO", help="Log level (default: INFO)")
    parser.add_argument(
        "--log-format",
        default="auto",
        choices=["auto", "human", "json"],
        help="Log output format",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    run_parser = subparsers.add_parser("run", help="Run a workflow")
    run_parser.add_argument("workflow", help="Path to workflow JSON")
    run_parser.add_argument("--input", default="", help="Input text for the entry node")
    run_parser.add_argument("--max-iterations", type=int, default=None, help="Traversal safety bound")
    run_parser.add_argument("--memory-dir", default=None, help="Conversation memory directory")
    run_parser.add_argument("--log-dir", default=None, help="Archive the finished run under this directory")
    run_parser.add_argument("--trigger", default="manual", choices=TRIGGERS, help="Recorded run trigger")
    run_parser.set_defaults(func=cmd_run)

    validate_parser = subparsers.add_parser("validate", help="Validate a workflow graph")
    validate_parser.add_argument("workflow", help="Path to workflow JSON")
    validate_parser.set_defaults(func=cmd_validate)

    ping_parser = subparsers.add_parser("bridge-ping", help="Check the automation bridge is reachable")
    ping_parser.add_argument("--curl", action="store_true", help="Print the equivalent curl command instead")
    ping_parser.set_defaults(func=cmd_bridge_ping)

    clear_parser = subparsers.add_parser("memory-clear", help="Delete stored history for a memory key")
    clear_parser.add_argument("key", help="Memory storage key")
    clear_parser.add_argument("--memory-dir", default=None, help="Conversation memory directory")
    clear_parser.set_defaults(func=cmd_memory_clear)

    return parser


def main(argv: list[str] | None = None):
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(level=args.log_level, format=args.log_format)
    sys.exit(args.func(args))


if __name__ == "__main__":
    main()
