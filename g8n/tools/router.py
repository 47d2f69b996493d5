"""
Tool Router - decides where a tool invocation runs and runs it.

    ToolInvocation(tool_type, config, resolved_args)
        │
        ├─ native   → model call with the capability switched on
        ├─ gcp_api  → GcpApiClient (bearer token, AuthRequired before any I/O)
        └─ bridge   → AutomationBridge.execute_tool(bridge id, flattened config)

``execute`` raises the typed G8nError for the failure. ``invoke`` never does:
it folds any failure into a ToolResult whose content is readable text, which
is what agent and tool nodes feed back to the model or use as output.
"""

import json
import logging
from dataclasses import dataclass, field
from typing import Any

from g8n.errors import AuthRequiredError, G8nError, ToolExecutionError, ToolNotSupportedError
from g8n.llm.provider import FunctionDeclaration, LLMProvider
from g8n.tools.bridge import AutomationBridge
from g8n.tools.catalog import (
    BRIDGE_TOOLS,
    FUNCTION_DECLARATIONS,
    FUNCTION_TO_TOOL,
    NATIVE_TOOLS,
    ToolCategory,
    category_of,
)
from g8n.tools.gcp import GcpApiClient

logger = logging.getLogger(__name__)

NATIVE_TOOL_PROMPT = (
    "You are a helpful assistant with access to the {tool} tool.\n\n"
    "User request: {input}\n\n"
    "Use the available tool to help answer this request."
)


@dataclass
class ToolInvocation:
    """A single tool call, built by a node handler and never persisted."""

    tool_type: str
    config: dict[str, Any] = field(default_factory=dict)
    resolved_args: dict[str, Any] = field(default_factory=dict)
    """Raw function-call arguments from the model, before mapping."""


@dataclass
class ToolResult:
    """Outcome of ``ToolRouter.invoke``."""

    content: str
    is_error: bool = False
    error_code: str | None = None
    data: Any = None
    tokens_used: int = 0


@dataclass
class NativeResult:
    """Text answer from a model-native tool."""

    text: str
    tokens_used: int = 0


def _format_data(data: Any) -> str:
    if isinstance(data, str):
        return data
    return json.dumps(data, ensure_ascii=False, indent=2, default=str)


def _drop_none(values: dict[str, Any]) -> dict[str, Any]:
    return {k: v for k, v in values.items() if v is not None}


class ToolRouter:
    """
    Routes tool invocations to the model, GCP APIs, or the automation bridge.

    Usage:
        router = ToolRouter(llm, bridge=bridge, gcp=gcp, model="gemini-2.5-flash")
        result = await router.invoke(ToolInvocation("gas_gmail", {"action": "send", ...}))
    """

    def __init__(
        self,
        llm: LLMProvider,
        bridge: AutomationBridge | None = None,
        gcp: GcpApiClient | None = None,
        model: str = "gemini-2.5-flash",
    ):
        self.llm = llm
        self.bridge = bridge or AutomationBridge(url=None)
        self.gcp = gcp
        self.model = model

    # ------------------------------------------------------------------
    # Catalogue lookups
    # ------------------------------------------------------------------

    def category(self, tool_type: str) -> ToolCategory:
        category = category_of(tool_type)
        if category is None:
            raise ToolNotSupportedError(f"Tool type '{tool_type}' is not supported", tool_name=tool_type)
        return category

    def declaration_for(self, tool_type: str) -> FunctionDeclaration | None:
        """Function declaration offered to the model, None for native capabilities."""
        self.category(tool_type)
        return FUNCTION_DECLARATIONS.get(tool_type)

    def tool_for_function(self, function_name: str) -> str:
        tool_type = FUNCTION_TO_TOOL.get(function_name)
        if tool_type is None:
            raise ToolNotSupportedError(f"Unknown function: {function_name}", tool_name=function_name)
        return tool_type

    def map_args_to_config(self, tool_type: str, args: dict[str, Any]) -> dict[str, Any]:
        """
        Map a model's function-call arguments to the config the venue expects.

        Raises:
            ToolNotSupportedError: Unknown tool type, or a native capability
                (those are never called as functions)
        """
        category = self.category(tool_type)
        if category == ToolCategory.NATIVE:
            raise ToolNotSupportedError(
                f"'{tool_type}' is a model capability and takes no function arguments",
                tool_name=tool_type,
            )
        if category == ToolCategory.GCP_API:
            return _drop_none(dict(args))

        if tool_type == "gas_gmail":
            return _drop_none(
                {
                    "action": "send",
                    "to": args.get("to"),
                    "subject": args.get("subject"),
                    "body": args.get("body"),
                }
            )
        if tool_type == "gas_calendar":
            return _drop_none(
                {
                    "action": args.get("action"),
                    "title": args.get("title"),
                    "startTime": args.get("startTime"),
                    "endTime": args.get("endTime"),
                    "description": args.get("description"),
                    "daysAhead": args.get("daysAhead"),
                    "eventId": args.get("eventId"),
                }
            )
        if tool_type == "gas_sheets":
            values = args.get("values")
            if isinstance(values, str):
                try:
                    values = json.loads(values)
                except json.JSONDecodeError:
                    # Left as text; the bridge reports the bad shape
                    pass
            return _drop_none(
                {
                    "action": args.get("action"),
                    "spreadsheetId": args.get("spreadsheetId"),
                    "sheetName": args.get("sheetName"),
                    "range": args.get("range"),
                    "values": values,
                }
            )
        if tool_type == "gas_drive":
            return _drop_none(
                {
                    "action": args.get("action"),
                    "query": args.get("query"),
                    "fileName": args.get("fileName"),
                    "content": args.get("content"),
                    "folderId": args.get("folderId"),
                }
            )
        raise ToolNotSupportedError(f"No argument mapping for '{tool_type}'", tool_name=tool_type)

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    async def execute(self, invocation: ToolInvocation) -> Any:
        """
        Run an invocation in its venue.

        Returns:
            The venue's result data (text for native tools)

        Raises:
            G8nError: AuthRequiredError, Bridge*Error, ToolNotSupportedError,
                ToolExecutionError, or a model error for native tools
        """
        tool_type = invocation.tool_type
        category = self.category(tool_type)
        config = dict(invocation.config)

        if category == ToolCategory.NATIVE:
            return await self._execute_native(tool_type, config)

        if category == ToolCategory.GCP_API:
            if self.gcp is None:
                raise AuthRequiredError(
                    "Google authorization required: no Google credentials are configured",
                    tool_name=tool_type,
                )
            function_name = FUNCTION_DECLARATIONS[tool_type].name
            return await self.gcp.execute(function_name, config)

        bridge_tool = BRIDGE_TOOLS[tool_type]
        logger.info(f"Delegating {tool_type} to the automation bridge as '{bridge_tool}'")
        return await self.bridge.execute_tool(bridge_tool, config)

    async def _execute_native(self, tool_type: str, config: dict[str, Any]) -> NativeResult:
        user_input = config.get("input") or config.get("query") or ""
        response = await self.llm.generate(
            NATIVE_TOOL_PROMPT.format(tool=tool_type, input=user_input),
            model=config.get("model") or self.model,
            capabilities=[NATIVE_TOOLS[tool_type]],
        )
        return NativeResult(text=response.text, tokens_used=response.tokens_used)

    async def invoke(self, invocation: ToolInvocation) -> ToolResult:
        """Run an invocation and fold any failure into the result text."""
        try:
            data = await self.execute(invocation)
        except G8nError as e:
            logger.warning(f"⚠ Tool {invocation.tool_type} failed: [{e.error_code}] {e.message}")
            return ToolResult(
                content=f"[{e.error_code}] {e.message}",
                is_error=True,
                error_code=e.error_code,
            )
        except Exception as e:
            logger.exception(f"❌ Tool {invocation.tool_type} raised unexpectedly")
            error = ToolExecutionError(
                f"{invocation.tool_type} failed: {e}", tool_name=invocation.tool_type, cause=e
            )
            return ToolResult(
                content=f"[{error.error_code}] {error.message}",
                is_error=True,
                error_code=error.error_code,
            )

        if isinstance(data, NativeResult):
            return ToolResult(content=data.text, data=data.text, tokens_used=data.tokens_used)
        return ToolResult(content=_format_data(data), data=data)

