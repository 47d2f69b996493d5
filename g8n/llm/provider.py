"""LLM Provider abstraction for pluggable model backends."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any


class NativeCapability(StrEnum):
    """Capabilities the model backend answers itself, offered per call."""

    GOOGLE_SEARCH = "google_search"
    CODE_EXECUTION = "code_execution"
    URL_CONTEXT = "url_context"
    GOOGLE_MAPS = "google_maps"


@dataclass
class FunctionDeclaration:
    """A function the model may call: stable name, description, JSON schema."""

    name: str
    description: str
    parameters: dict[str, Any] = field(default_factory=dict)


@dataclass
class FunctionCall:
    """A function call requested by the model."""

    name: str
    args: dict[str, Any] = field(default_factory=dict)
    id: str = ""


@dataclass
class LLMResponse:
    """Response from a model call."""

    text: str
    function_calls: list[FunctionCall] = field(default_factory=list)
    model: str = ""
    tokens_used: int = 0
    raw_response: Any = None


class LLMProvider(ABC):
    """
    Abstract model backend.

    Implementations handle authentication, request formatting and token
    accounting, and map backend failures onto RateLimitedError,
    InvalidCredentialError or ModelError. They never retry.
    """

    def is_available(self) -> bool:
        """Return False when a call cannot even be attempted (e.g. no credential)."""
        return True

    @abstractmethod
    async def generate(
        self,
        prompt: str,
        *,
        model: str,
        system: str = "",
        temperature: float = 0.7,
        functions: list[FunctionDeclaration] | None = None,
        capabilities: list[NativeCapability] | None = None,
    ) -> LLMResponse:
        """
        Run one model call.

        Args:
            prompt: Full user-side prompt (history already folded in)
            model: Model id
            system: System instruction
            temperature: Sampling temperature
            functions: Function declarations the model may call
            capabilities: Native capabilities to enable for this call

        Returns:
            LLMResponse with text, any function calls, and token usage
        """
        pass
