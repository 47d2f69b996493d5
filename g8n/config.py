"""Shared g8n configuration utilities.

Centralises reading of ~/.g8n/configuration.json so that the CLI and any
embedding host build engines from the same defaults.

Example configuration.json:

    {
      "llm": {"provider": "gemini", "model": "gemini-2.5-flash", "temperature": 0.7},
      "engine": {"max_iterations": 100, "step_delay": 0.05},
      "memory_dir": "~/.g8n/memory",
      "bridge": {"timeout": 30},
      "gcp": {"timeout": 30}
    }
"""

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

DEFAULT_MODEL = "gemini-2.5-flash"
DEFAULT_PROVIDER = "gemini"
DEFAULT_TEMPERATURE = 0.7
DEFAULT_MAX_ITERATIONS = 100
DEFAULT_TIMEOUT = 30.0

# ---------------------------------------------------------------------------
# Low-level config file access
# ---------------------------------------------------------------------------

G8N_HOME = Path.home() / ".g8n"
G8N_CONFIG_FILE = G8N_HOME / "configuration.json"


def get_g8n_config() -> dict[str, Any]:
    """Load g8n configuration from ~/.g8n/configuration.json."""
    if not G8N_CONFIG_FILE.exists():
        return {}
    try:
        with open(G8N_CONFIG_FILE, encoding="utf-8-sig") as f:
            return json.load(f)
    except (json.JSONDecodeError, OSError):
        return {}


# ---------------------------------------------------------------------------
# Derived helpers
# ---------------------------------------------------------------------------


def get_preferred_model() -> str:
    """Return the default model id for agent and classifier nodes."""
    return get_g8n_config().get("llm", {}).get("model", DEFAULT_MODEL)


def get_model_provider() -> str:
    """Return the LiteLLM provider prefix used to qualify bare model ids."""
    return get_g8n_config().get("llm", {}).get("provider", DEFAULT_PROVIDER)


def get_temperature() -> float:
    return float(get_g8n_config().get("llm", {}).get("temperature", DEFAULT_TEMPERATURE))


def get_max_iterations() -> int:
    return int(get_g8n_config().get("engine", {}).get("max_iterations", DEFAULT_MAX_ITERATIONS))


def get_step_delay() -> float:
    return float(get_g8n_config().get("engine", {}).get("step_delay", 0.0))


def get_memory_dir() -> Path:
    configured = get_g8n_config().get("memory_dir")
    if configured:
        return Path(configured).expanduser()
    return G8N_HOME / "memory"


def get_bridge_timeout() -> float:
    return float(get_g8n_config().get("bridge", {}).get("timeout", DEFAULT_TIMEOUT))


def get_gcp_timeout() -> float:
    return float(get_g8n_config().get("gcp", {}).get("timeout", DEFAULT_TIMEOUT))


# ---------------------------------------------------------------------------
# RuntimeConfig
# ---------------------------------------------------------------------------


@dataclass
class RuntimeConfig:
    """Engine runtime configuration loaded from ~/.g8n/configuration.json."""

    model: str = field(default_factory=get_preferred_model)
    model_provider: str = field(default_factory=get_model_provider)
    temperature: float = field(default_factory=get_temperature)
    max_iterations: int = field(default_factory=get_max_iterations)
    step_delay: float = field(default_factory=get_step_delay)
    memory_dir: Path = field(default_factory=get_memory_dir)
    bridge_timeout: float = field(default_factory=get_bridge_timeout)
    gcp_timeout: float = field(default_factory=get_gcp_timeout)
