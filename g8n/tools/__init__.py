"""Tool catalogue, execution venues, and the router between them."""

from g8n.tools.bridge import AutomationBridge
from g8n.tools.catalog import ToolCategory, category_of
from g8n.tools.gcp import GcpApiClient
from g8n.tools.router import ToolInvocation, ToolResult, ToolRouter

__all__ = [
    "AutomationBridge",
    "GcpApiClient",
    "ToolCategory",
    "ToolInvocation",
    "ToolResult",
    "ToolRouter",
    "category_of",
]
