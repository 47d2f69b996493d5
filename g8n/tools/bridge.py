"""
Automation Bridge client - delegates tool calls to the remote automation host.

Every call is a single POST of ``{"token", "action", "payload"}`` with a
``text/plain`` content type (a "simple" request, so browsers skip the CORS
preflight and the host's web-app endpoint accepts it). The host answers with
``{"success": bool, "data"?: ..., "error"?: str}`` and usually redirects once
before answering, so redirects are followed.

Actions used here:
- ping                 → "pong"
- tool.execute         → {"toolType", "config"} → tool result
- calendar/sheets/gmail/drive → per-tool shortcuts taking the config directly
"""

import json
import logging
import shlex
from typing import Any

import httpx

from g8n.errors import (
    BridgeExecutionError,
    BridgeNotConfiguredError,
    BridgeTimeoutError,
    BridgeUnauthorizedError,
    BridgeUnreachableError,
)

logger = logging.getLogger(__name__)

BRIDGE_CONTENT_TYPE = "text/plain;charset=utf-8"
SHORTCUT_ACTIONS = frozenset({"calendar", "sheets", "gmail", "drive"})


class AutomationBridge:
    """
    Async client for the automation bridge.

    Usage:
        bridge = AutomationBridge(url, token)
        if await bridge.ping():
            result = await bridge.execute_tool("gmail", {"action": "send", "to": ...})
    """

    def __init__(
        self,
        url: str | None,
        token: str | None = None,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """
        Args:
            url: Deployed bridge endpoint. None leaves the bridge unconfigured.
            token: Shared secret checked by the bridge on every request
            timeout: Per-request timeout in seconds
            transport: Optional httpx transport (tests pass httpx.MockTransport)
        """
        self.url = url
        self.token = token or ""
        self.timeout = timeout
        self._transport = transport

    @property
    def configured(self) -> bool:
        return bool(self.url)

    def _envelope(self, action: str, payload: dict[str, Any] | None) -> dict[str, Any]:
        return {"token": self.token, "action": action, "payload": payload or {}}

    async def call(self, action: str, payload: dict[str, Any] | None = None) -> Any:
        """
        Send one action to the bridge and return its ``data``.

        Raises:
            BridgeNotConfiguredError: No URL configured
            BridgeTimeoutError: The request timed out
            BridgeUnreachableError: Network failure, non-2xx status, or a non-JSON body
            BridgeUnauthorizedError: The bridge rejected the token
            BridgeExecutionError: The bridge answered ``success: false``
        """
        if not self.url:
            raise BridgeNotConfiguredError("Automation bridge URL is not configured")

        body = json.dumps(self._envelope(action, payload))
        logger.debug(f"Bridge → {action}")

        try:
            async with httpx.AsyncClient(
                timeout=self.timeout,
                follow_redirects=True,
                transport=self._transport,
            ) as client:
                response = await client.post(
                    self.url,
                    content=body,
                    headers={"Content-Type": BRIDGE_CONTENT_TYPE},
                )
        except httpx.TimeoutException as e:
            raise BridgeTimeoutError(
                f"Bridge did not answer '{action}' within {self.timeout:g}s"
            ) from e
        except httpx.HTTPError as e:
            raise BridgeUnreachableError(f"Bridge unreachable: {e}") from e

        if response.status_code in (401, 403):
            raise BridgeUnauthorizedError(
                f"Bridge rejected the request (HTTP {response.status_code})"
            )
        if response.status_code >= 400:
            raise BridgeUnreachableError(f"Bridge returned HTTP {response.status_code}")

        try:
            result = response.json()
        except ValueError as e:
            raise BridgeUnreachableError(
                "Bridge returned a non-JSON response (is the web app deployed for anyone?)"
            ) from e

        if not isinstance(result, dict) or "success" not in result:
            raise BridgeUnreachableError("Bridge returned an unexpected response envelope")

        if not result["success"]:
            error = str(result.get("error") or "Unknown bridge error")
            if error.lower().startswith("unauthorized"):
                raise BridgeUnauthorizedError(error)
            raise BridgeExecutionError(error)

        return result.get("data")

    async def ping(self) -> bool:
        """Return True when the bridge answers ``pong``."""
        return await self.call("ping") == "pong"

    async def execute_tool(self, tool: str, config: dict[str, Any]) -> Any:
        """Run a bridge tool (``gmail``, ``calendar``, ``sheets``, ``drive``)."""
        return await self.call("tool.execute", {"toolType": tool, "config": config})

    async def shortcut(self, tool: str, config: dict[str, Any]) -> Any:
        """Call a per-tool shortcut action, e.g. ``calendar`` with ``{"action": "list_events"}``."""
        if tool not in SHORTCUT_ACTIONS:
            raise ValueError(f"No bridge shortcut for '{tool}'")
        return await self.call(tool, config)

    async def list_calendar_events(self, days_ahead: int = 7) -> Any:
        return await self.shortcut("calendar", {"action": "list_events", "daysAhead": days_ahead})

    async def create_calendar_event(
        self,
        title: str,
        start_time: str,
        end_time: str,
        description: str = "",
    ) -> Any:
        return await self.shortcut(
            "calendar",
            {
                "action": "create_event",
                "title": title,
                "startTime": start_time,
                "endTime": end_time,
                "description": description,
            },
        )

    async def delete_calendar_event(self, event_id: str) -> Any:
        return await self.shortcut("calendar", {"action": "delete_event", "eventId": event_id})

    def curl_command(self, action: str, payload: dict[str, Any] | None = None) -> str:
        """Return an equivalent curl command, for debugging a deployment by hand."""
        body = json.dumps(self._envelope(action, payload))
        return (
            f"curl -L -X POST {shlex.quote(self.url or '<BRIDGE_URL>')} "
            f"-H {shlex.quote('Content-Type: ' + BRIDGE_CONTENT_TYPE)} "
            f"-d {shlex.quote(body)}"
        )
