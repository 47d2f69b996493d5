"""Mock LLM provider for tests and offline dry runs."""

from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from g8n.errors import ModelUnavailableError
from g8n.llm.provider import (
    FunctionDeclaration,
    LLMProvider,
    LLMResponse,
    NativeCapability,
)


@dataclass
class RecordedRequest:
    """One call made against the mock, as the provider saw it."""

    prompt: str
    model: str
    system: str
    temperature: float
    functions: list[FunctionDeclaration] = field(default_factory=list)
    capabilities: list[NativeCapability] = field(default_factory=list)


Responder = Callable[[RecordedRequest], LLMResponse | str]


class MockLLMProvider(LLMProvider):
    """
    Scripted model backend.

    Responses are consumed in order. Each entry may be an LLMResponse, a
    plain string (turned into a text response), an exception instance (raised),
    or a callable receiving the RecordedRequest. Once the script runs out,
    ``default`` is returned.

    Example:
        llm = MockLLMProvider(["Billing"])
        response = await llm.generate("I was charged twice", model="m")
        assert llm.requests[0].prompt.endswith("I was charged twice")
    """

    def __init__(
        self,
        responses: list[LLMResponse | str | Exception | Responder] | None = None,
        default: str = "mock response",
        available: bool = True,
        tokens_per_call: int = 0,
    ):
        self._responses = list(responses or [])
        self.default = default
        self.available = available
        self.tokens_per_call = tokens_per_call
        self.requests: list[RecordedRequest] = []

    def is_available(self) -> bool:
        return self.available

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
        if not self.available:
            raise ModelUnavailableError("Mock model is unavailable")

        request = RecordedRequest(
            prompt=prompt,
            model=model,
            system=system,
            temperature=temperature,
            functions=list(functions or []),
            capabilities=list(capabilities or []),
        )
        self.requests.append(request)

        item: Any = self._responses.pop(0) if self._responses else self.default
        if callable(item) and not isinstance(item, LLMResponse):
            item = item(request)
        if isinstance(item, Exception):
            raise item
        if isinstance(item, str):
            return LLMResponse(text=item, model=model, tokens_used=self.tokens_per_call)
        return item
