"""LiteLLM provider - Gemini (or any LiteLLM-supported model) behind LLMProvider.

Bare model ids such as ``gemini-2.5-flash`` are qualified with the configured
provider prefix (``gemini/gemini-2.5-flash``) before the call.

See: https://docs.litellm.ai/docs/providers/gemini
"""

import json
import logging
import os
from typing import Any

import litellm

from g8n.errors import (
    InvalidCredentialError,
    ModelError,
    ModelUnavailableError,
    RateLimitedError,
)
from g8n.llm.provider import (
    FunctionCall,
    FunctionDeclaration,
    LLMProvider,
    LLMResponse,
    NativeCapability,
)

logger = logging.getLogger(__name__)

# Gemini tool entries for capabilities the model answers itself
NATIVE_TOOL_ENTRIES: dict[NativeCapability, dict[str, Any]] = {
    NativeCapability.GOOGLE_SEARCH: {"googleSearch": {}},
    NativeCapability.CODE_EXECUTION: {"codeExecution": {}},
    NativeCapability.URL_CONTEXT: {"urlContext": {}},
    NativeCapability.GOOGLE_MAPS: {"googleMaps": {}},
}


class LiteLLMProvider(LLMProvider):
    """
    LiteLLM-based model backend.

    Usage:
        provider = LiteLLMProvider(api_key=os.environ["GEMINI_API_KEY"])
        response = await provider.generate("Hello", model="gemini-2.5-flash")
    """

    def __init__(
        self,
        api_key: str | None = None,
        provider_prefix: str = "gemini",
        api_base: str | None = None,
        api_key_env_var: str = "GEMINI_API_KEY",
        **kwargs: Any,
    ):
        """
        Initialize the LiteLLM provider.

        Args:
            api_key: API key. Falls back to ``api_key_env_var`` at call time.
            provider_prefix: LiteLLM provider used for bare model ids
            api_base: Custom API base URL (for proxies)
            **kwargs: Additional arguments passed to litellm.acompletion()
        """
        self.api_key = api_key
        self.provider_prefix = provider_prefix
        self.api_base = api_base
        self.api_key_env_var = api_key_env_var
        self.extra_kwargs = kwargs

    def _resolve_api_key(self) -> str | None:
        return self.api_key or os.environ.get(self.api_key_env_var)

    def is_available(self) -> bool:
        return bool(self._resolve_api_key())

    def qualify_model(self, model: str) -> str:
        if "/" in model or not self.provider_prefix:
            return model
        return f"{self.provider_prefix}/{model}"

    def _handle_litellm_error(self, e: Exception) -> None:
        """Map LiteLLM exceptions to engine errors."""
        error_msg = str(e)
        if isinstance(e, litellm.RateLimitError):
            raise RateLimitedError(f"Model rate limit exceeded: {error_msg}", cause=e)
        elif isinstance(e, (litellm.AuthenticationError, litellm.PermissionDeniedError)):
            raise InvalidCredentialError(f"Model credential rejected: {error_msg}", cause=e)
        else:
            raise ModelError(f"Model call failed: {error_msg}", cause=e)

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
        api_key = self._resolve_api_key()
        if not api_key:
            raise ModelUnavailableError(
                f"No model API key configured (set {self.api_key_env_var})"
            )

        messages: list[dict[str, Any]] = []
        if system:
            messages.append({"role": "system", "content": system})
        messages.append({"role": "user", "content": prompt})

        kwargs: dict[str, Any] = {
            "model": self.qualify_model(model),
            "messages": messages,
            "temperature": temperature,
            "api_key": api_key,
            **self.extra_kwargs,
        }
        if self.api_base:
            kwargs["api_base"] = self.api_base

        tools = [self._function_to_openai_format(f) for f in functions or []]
        tools.extend(NATIVE_TOOL_ENTRIES[c] for c in capabilities or [])
        if tools:
            kwargs["tools"] = tools

        try:
            response = await litellm.acompletion(**kwargs)
        except Exception as e:
            self._handle_litellm_error(e)
            raise  # unreachable; _handle_litellm_error always raises

        message = response.choices[0].message
        usage = getattr(response, "usage", None)
        tokens_used = usage.total_tokens if usage and usage.total_tokens else 0

        return LLMResponse(
            text=message.content or "",
            function_calls=self._parse_tool_calls(message),
            model=response.model or model,
            tokens_used=tokens_used,
            raw_response=response,
        )

    def _parse_tool_calls(self, message: Any) -> list[FunctionCall]:
        calls = []
        for tool_call in getattr(message, "tool_calls", None) or []:
            try:
                args = json.loads(tool_call.function.arguments or "{}")
            except json.JSONDecodeError:
                logger.warning(
                    f"⚠ Unparseable arguments for function {tool_call.function.name}, using {{}}"
                )
                args = {}
            calls.append(
                FunctionCall(name=tool_call.function.name, args=args, id=tool_call.id or "")
            )
        return calls

    def _function_to_openai_format(self, decl: FunctionDeclaration) -> dict[str, Any]:
        """Convert FunctionDeclaration to OpenAI function calling format."""
        return {
            "type": "function",
            "function": {
                "name": decl.name,
                "description": decl.description,
                "parameters": {
                    "type": "object",
                    "properties": decl.parameters.get("properties", {}),
                    "required": decl.parameters.get("required", []),
                },
            },
        }
