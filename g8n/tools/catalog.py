"""
Tool catalogue: every tool type a tool node may declare, its execution
category, and the function declaration offered to the model for it.

Categories:
- NATIVE: answered by the model itself (search, code execution, URL context,
  maps); declared as a capability on the model call
- GCP_API: direct bearer-token calls to Google APIs
- BRIDGE: delegated to the remote automation bridge
"""

from enum import StrEnum
from typing import Any

from g8n.llm.provider import FunctionDeclaration, NativeCapability


class ToolCategory(StrEnum):
    NATIVE = "native"
    GCP_API = "gcp_api"
    BRIDGE = "bridge"


# ---------------------------------------------------------------------------
# Tool types
# ---------------------------------------------------------------------------

NATIVE_TOOLS: dict[str, NativeCapability] = {
    "google_search": NativeCapability.GOOGLE_SEARCH,
    "code_execution": NativeCapability.CODE_EXECUTION,
    "url_context": NativeCapability.URL_CONTEXT,
    "google_maps": NativeCapability.GOOGLE_MAPS,
}

GCP_TOOLS = ("youtube_data", "google_calendar", "gmail", "google_drive", "places_api")

# tool type -> identifier the bridge knows the tool by
BRIDGE_TOOLS: dict[str, str] = {
    "gas_gmail": "gmail",
    "gas_calendar": "calendar",
    "gas_sheets": "sheets",
    "gas_drive": "drive",
}

ALL_TOOL_TYPES = frozenset(NATIVE_TOOLS) | frozenset(GCP_TOOLS) | frozenset(BRIDGE_TOOLS)

# OAuth scopes that make a GCP tool usable (any one suffices).
# places_api authenticates with an API key instead.
GCP_API_SCOPES: dict[str, tuple[str, ...]] = {
    "youtube_data": (
        "https://www.googleapis.com/auth/youtube.readonly",
        "https://www.googleapis.com/auth/youtube.upload",
    ),
    "google_calendar": (
        "https://www.googleapis.com/auth/calendar.readonly",
        "https://www.googleapis.com/auth/calendar.events",
    ),
    "gmail": (
        "https://www.googleapis.com/auth/gmail.readonly",
        "https://www.googleapis.com/auth/gmail.send",
    ),
    "google_drive": (
        "https://www.googleapis.com/auth/drive.readonly",
        "https://www.googleapis.com/auth/drive.file",
    ),
    "places_api": (),
}


def category_of(tool_type: str) -> ToolCategory | None:
    if tool_type in NATIVE_TOOLS:
        return ToolCategory.NATIVE
    if tool_type in GCP_TOOLS:
        return ToolCategory.GCP_API
    if tool_type in BRIDGE_TOOLS:
        return ToolCategory.BRIDGE
    return None


# ---------------------------------------------------------------------------
# Function declarations
# ---------------------------------------------------------------------------


def _schema(properties: dict[str, Any], required: list[str] | None = None) -> dict[str, Any]:
    return {"type": "object", "properties": properties, "required": required or []}


FUNCTION_DECLARATIONS: dict[str, FunctionDeclaration] = {
    # GCP API tools
    "youtube_data": FunctionDeclaration(
        name="search_youtube_videos",
        description="Search YouTube for videos matching a query.",
        parameters=_schema(
            {
                "query": {"type": "string", "description": "Search terms"},
                "maxResults": {"type": "integer", "description": "Number of videos (default 10)"},
            },
            ["query"],
        ),
    ),
    "google_calendar": FunctionDeclaration(
        name="list_calendar_events",
        description="List upcoming events from the user's primary Google Calendar.",
        parameters=_schema(
            {
                "timeMin": {"type": "string", "description": "RFC3339 start (default: now)"},
                "timeMax": {"type": "string", "description": "RFC3339 end"},
                "maxResults": {"type": "integer", "description": "Number of events (default 10)"},
            }
        ),
    ),
    "gmail": FunctionDeclaration(
        name="search_gmail",
        description="Search the user's Gmail messages using Gmail search syntax.",
        parameters=_schema(
            {
                "query": {"type": "string", "description": "Gmail search query, e.g. 'is:unread'"},
                "maxResults": {"type": "integer", "description": "Number of messages (default 10)"},
            },
            ["query"],
        ),
    ),
    "google_drive": FunctionDeclaration(
        name="list_drive_files",
        description="List or search files in the user's Google Drive.",
        parameters=_schema(
            {
                "query": {"type": "string", "description": "Drive search query or file name"},
                "maxResults": {"type": "integer", "description": "Number of files (default 20)"},
            }
        ),
    ),
    "places_api": FunctionDeclaration(
        name="search_places",
        description="Search for places (restaurants, shops, landmarks) by text.",
        parameters=_schema(
            {
                "query": {"type": "string", "description": "What and where, e.g. 'coffee in Lisbon'"},
                "maxResults": {"type": "integer", "description": "Number of places (default 10)"},
                "location": {"type": "string", "description": "Bias results around 'lat,lng'"},
                "radius": {"type": "number", "description": "Bias radius in meters (default 5000)"},
            },
            ["query"],
        ),
    ),
    # Bridge tools
    "gas_gmail": FunctionDeclaration(
        name="send_email_via_gas",
        description="Send an email from the user's Gmail account.",
        parameters=_schema(
            {
                "to": {"type": "string", "description": "Recipient email address"},
                "subject": {"type": "string", "description": "Email subject"},
                "body": {"type": "string", "description": "Plain-text email body"},
            },
            ["to", "subject", "body"],
        ),
    ),
    "gas_calendar": FunctionDeclaration(
        name="manage_calendar_via_gas",
        description="Create, list, update, or delete events in the user's Google Calendar.",
        parameters=_schema(
            {
                "action": {
                    "type": "string",
                    "enum": ["create_event", "list_events", "update_event", "delete_event"],
                    "description": "Operation to perform",
                },
                "title": {"type": "string", "description": "Event title"},
                "startTime": {"type": "string", "description": "ISO 8601 start time"},
                "endTime": {"type": "string", "description": "ISO 8601 end time"},
                "description": {"type": "string", "description": "Event description"},
                "daysAhead": {"type": "integer", "description": "Days to look ahead when listing (default 7)"},
                "eventId": {"type": "string", "description": "Event id for update/delete"},
            },
            ["action"],
        ),
    ),
    "gas_sheets": FunctionDeclaration(
        name="manage_spreadsheet_via_gas",
        description="Read, append to, or write a range of a Google Sheets spreadsheet.",
        parameters=_schema(
            {
                "action": {
                    "type": "string",
                    "enum": ["read", "append", "write"],
                    "description": "Operation to perform",
                },
                "spreadsheetId": {"type": "string", "description": "Spreadsheet id"},
                "sheetName": {"type": "string", "description": "Sheet (tab) name"},
                "range": {"type": "string", "description": "A1 range, e.g. 'A1:C10'"},
                "values": {"type": "string", "description": "JSON-encoded 2D array of cell values"},
            },
            ["action", "spreadsheetId"],
        ),
    ),
    "gas_drive": FunctionDeclaration(
        name="manage_drive_via_gas",
        description="Search for files or create a file in the user's Google Drive.",
        parameters=_schema(
            {
                "action": {
                    "type": "string",
                    "enum": ["search", "create"],
                    "description": "Operation to perform",
                },
                "query": {"type": "string", "description": "Search text for 'search'"},
                "fileName": {"type": "string", "description": "File name for 'create'"},
                "content": {"type": "string", "description": "File content for 'create'"},
                "folderId": {"type": "string", "description": "Parent folder id"},
            },
            ["action"],
        ),
    ),
}

FUNCTION_TO_TOOL: dict[str, str] = {decl.name: tool for tool, decl in FUNCTION_DECLARATIONS.items()}
