"""Model backend abstraction."""

from g8n.llm.litellm import LiteLLMProvider
from g8n.llm.mock import MockLLMProvider
from g8n.llm.provider import (
    FunctionCall,
    FunctionDeclaration,
    LLMProvider,
    LLMResponse,
    NativeCapability,
)

__all__ = [
    "FunctionCall",
    "FunctionDeclaration",
    "LLMProvider",
    "LLMResponse",
    "LiteLLMProvider",
    "MockLLMProvider",
    "NativeCapability",
]
