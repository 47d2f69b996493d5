"""Shared fixtures: isolated configuration and small graph builders."""

from pathlib import Path

import pytest

from g8n.config import RuntimeConfig
from g8n.credentials import (
    BRIDGE_TOKEN_ENV,
    BRIDGE_URL_ENV,
    GEMINI_API_KEY_ENV,
    GOOGLE_ACCESS_TOKEN_ENV,
    PLACES_API_KEY_ENV,
)
from g8n.graph.model import Graph
from g8n.observability import clear_trace_context


@pytest.fixture(autouse=True)
def isolated_environment(tmp_path, monkeypatch):
    """Keep tests away from ~/.g8n and any real credentials in the environment."""
    monkeypatch.setattr("g8n.config.G8N_CONFIG_FILE", tmp_path / "configuration.json")
    for var in (
        GEMINI_API_KEY_ENV,
        GOOGLE_ACCESS_TOKEN_ENV,
        PLACES_API_KEY_ENV,
        BRIDGE_URL_ENV,
        BRIDGE_TOKEN_ENV,
    ):
        monkeypatch.delenv(var, raising=False)
    monkeypatch.chdir(tmp_path)
    yield
    clear_trace_context()


@pytest.fixture
def runtime_config(tmp_path) -> RuntimeConfig:
    return RuntimeConfig(
        model="gemini-2.5-flash",
        model_provider="gemini",
        temperature=0.7,
        max_iterations=100,
        step_delay=0.0,
        memory_dir=Path(tmp_path) / "memory",
        bridge_timeout=5.0,
        gcp_timeout=5.0,
    )


@pytest.fixture
def make_graph():
    """Build a Graph from compact node/edge tuples.

    nodes: (id, type) or (id, type, config)
    edges: (source, target) or (source, target, source_handle) or
           (source, target, source_handle, target_handle)
    """

    def _make(nodes, edges=(), graph_id="wf"):
        node_dicts = []
        for item in nodes:
            node = {"id": item[0], "type": item[1]}
            if len(item) > 2:
                node["config"] = item[2]
            node_dicts.append(node)
        edge_dicts = []
        for i, item in enumerate(edges):
            edge = {"id": f"e{i}", "source": item[0], "target": item[1]}
            if len(item) > 2 and item[2] is not None:
                edge["sourceHandle"] = item[2]
            if len(item) > 3 and item[3] is not None:
                edge["targetHandle"] = item[3]
            edge_dicts.append(edge)
        return Graph.model_validate({"id": graph_id, "nodes": node_dicts, "edges": edge_dicts})

    return _make
