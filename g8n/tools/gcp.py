"""
GCP API client - direct bearer-token calls to Google APIs for function calls.

One coroutine per declared function:
- search_youtube_videos  → YouTube Data v3 search
- list_calendar_events   → Calendar v3, primary calendar
- search_gmail           → Gmail v1 message search (+ metadata for the first five)
- list_drive_files       → Drive v3 file listing
- search_places          → Places API (New) text search, API-key authenticated

The token is checked before any request is made; a missing, expired, or
under-scoped token raises AuthRequiredError without touching the network.
"""

import asyncio
import logging
from typing import Any

import httpx

from g8n.credentials import Credentials
from g8n.errors import AuthRequiredError, ToolExecutionError, ToolNotSupportedError
from g8n.tools.catalog import FUNCTION_DECLARATIONS, FUNCTION_TO_TOOL, GCP_API_SCOPES

logger = logging.getLogger(__name__)

YOUTUBE_API_BASE = "https://www.googleapis.com/youtube/v3"
CALENDAR_API_BASE = "https://www.googleapis.com/calendar/v3"
GMAIL_API_BASE = "https://gmail.googleapis.com/gmail/v1"
DRIVE_API_BASE = "https://www.googleapis.com/drive/v3"
PLACES_SEARCH_URL = "https://places.googleapis.com/v1/places:searchText"
PLACES_FIELD_MASK = (
    "places.displayName,places.formattedAddress,places.rating,"
    "places.userRatingCount,places.types,places.googleMapsUri"
)
GMAIL_DETAIL_LIMIT = 5


class GcpApiClient:
    """
    Executes GCP-backed function calls with the host-supplied credentials.

    Usage:
        client = GcpApiClient(Credentials.from_env())
        result = await client.execute("search_gmail", {"query": "is:unread"})
    """

    def __init__(
        self,
        credentials: Credentials,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.credentials = credentials
        self.timeout = timeout
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self._transport)

    def _require_token(self, tool_type: str) -> str:
        """Get a usable bearer token or raise AuthRequiredError."""
        token = self.credentials.google_token
        if token is None or not token.token:
            raise AuthRequiredError(
                "Google authorization required: sign in to Google to use this tool",
                tool_name=tool_type,
            )
        if token.is_expired():
            raise AuthRequiredError(
                "Google access token has expired: sign in to Google again",
                tool_name=tool_type,
            )
        if not token.has_scopes(GCP_API_SCOPES.get(tool_type, ())):
            raise AuthRequiredError(
                f"Google access token lacks the scope needed for {tool_type}: re-authorize with it",
                tool_name=tool_type,
            )
        return token.token

    def _handle_error(self, response: httpx.Response, tool_type: str) -> None:
        """Raise for non-2xx responses."""
        if response.status_code < 400:
            return
        if response.status_code in (401, 403):
            raise AuthRequiredError(
                f"Google rejected the access token for {tool_type} (HTTP {response.status_code})",
                tool_name=tool_type,
            )
        try:
            message = response.json().get("error", {}).get("message") or response.text
        except ValueError:
            message = response.text
        raise ToolExecutionError(
            f"{tool_type} API error (HTTP {response.status_code}): {message}",
            tool_name=tool_type,
        )

    def _json(self, response: httpx.Response, tool_type: str) -> dict[str, Any]:
        """Decode a 2xx body, which must be a JSON object."""
        try:
            data = response.json()
        except ValueError as e:
            raise ToolExecutionError(
                f"{tool_type} returned a non-JSON response (HTTP {response.status_code})",
                tool_name=tool_type,
            ) from e
        if not isinstance(data, dict):
            raise ToolExecutionError(f"{tool_type} returned an unexpected response body", tool_name=tool_type)
        return data

    async def _get(
        self, client: httpx.AsyncClient, tool_type: str, url: str, token: str, params: dict[str, Any]
    ) -> dict[str, Any]:
        try:
            response = await client.get(url, params=params, headers={"Authorization": f"Bearer {token}"})
        except httpx.HTTPError as e:
            raise ToolExecutionError(f"{tool_type} request failed: {e}", tool_name=tool_type) from e
        self._handle_error(response, tool_type)
        return self._json(response, tool_type)

    async def execute(self, function_name: str, args: dict[str, Any]) -> dict[str, Any]:
        """Dispatch a function call by its declared name."""
        handlers = {
            "search_youtube_videos": self.search_youtube_videos,
            "list_calendar_events": self.list_calendar_events,
            "search_gmail": self.search_gmail,
            "list_drive_files": self.list_drive_files,
            "search_places": self.search_places,
        }
        handler = handlers.get(function_name)
        if handler is None or function_name not in FUNCTION_TO_TOOL:
            raise ToolNotSupportedError(f"Unknown function: {function_name}", tool_name=function_name)
        declaration = FUNCTION_DECLARATIONS[FUNCTION_TO_TOOL[function_name]]
        missing = [p for p in declaration.parameters.get("required", []) if args.get(p) in (None, "")]
        if missing:
            raise ToolExecutionError(
                f"{function_name} is missing required arguments: {', '.join(missing)}",
                tool_name=function_name,
            )
        return await handler(**args)

    async def search_youtube_videos(self, query: str, maxResults: int | None = None, **_: Any) -> dict:
        token = self._require_token("youtube_data")
        params = {"part": "snippet", "type": "video", "q": query, "maxResults": maxResults or 10}
        async with self._client() as client:
            data = await self._get(client, "youtube_data", f"{YOUTUBE_API_BASE}/search", token, params)
        videos = []
        for item in data.get("items", []):
            snippet = item.get("snippet") or {}
            videos.append(
                {
                    "title": snippet.get("title"),
                    "description": snippet.get("description"),
                    "videoId": (item.get("id") or {}).get("videoId"),
                    "channelTitle": snippet.get("channelTitle"),
                    "publishedAt": snippet.get("publishedAt"),
                }
            )
        return {"videos": videos}

    async def list_calendar_events(
        self,
        timeMin: str | None = None,
        timeMax: str | None = None,
        maxResults: int | None = None,
        **_: Any,
    ) -> dict:
        token = self._require_token("google_calendar")
        params: dict[str, Any] = {
            "maxResults": maxResults or 10,
            "singleEvents": "true",
            "orderBy": "startTime",
        }
        if timeMin:
            params["timeMin"] = timeMin
        if timeMax:
            params["timeMax"] = timeMax
        url = f"{CALENDAR_API_BASE}/calendars/primary/events"
        async with self._client() as client:
            data = await self._get(client, "google_calendar", url, token, params)

        def _when(value: dict | None) -> str | None:
            value = value or {}
            return value.get("dateTime") or value.get("date")

        return {
            "events": [
                {
                    "summary": item.get("summary"),
                    "start": _when(item.get("start")),
                    "end": _when(item.get("end")),
                    "location": item.get("location"),
                    "description": item.get("description"),
                }
                for item in data.get("items", [])
            ]
        }

    async def search_gmail(self, query: str, maxResults: int | None = None, **_: Any) -> dict:
        token = self._require_token("gmail")
        url = f"{GMAIL_API_BASE}/users/me/messages"
        async with self._client() as client:
            data = await self._get(client, "gmail", url, token, {"q": query, "maxResults": maxResults or 10})
            ids = [m["id"] for m in data.get("messages", []) if m.get("id")][:GMAIL_DETAIL_LIMIT]
            details = await asyncio.gather(
                *(
                    self._get(
                        client,
                        "gmail",
                        f"{url}/{message_id}",
                        token,
                        {"format": "metadata", "metadataHeaders": ["Subject", "From", "Date"]},
                    )
                    for message_id in ids
                )
            )

        messages = []
        for message_id, detail in zip(ids, details, strict=True):
            headers = {h.get("name"): h.get("value", "") for h in detail.get("payload", {}).get("headers", [])}
            messages.append(
                {
                    "id": message_id,
                    "subject": headers.get("Subject", ""),
                    "from": headers.get("From", ""),
                    "date": headers.get("Date", ""),
                    "snippet": detail.get("snippet"),
                }
            )
        return {"messages": messages}

    async def list_drive_files(self, query: str | None = None, maxResults: int | None = None, **_: Any) -> dict:
        token = self._require_token("google_drive")
        params: dict[str, Any] = {
            "pageSize": maxResults or 20,
            "fields": "files(id,name,mimeType,modifiedTime,size)",
        }
        if query:
            params["q"] = query
        async with self._client() as client:
            data = await self._get(client, "google_drive", f"{DRIVE_API_BASE}/files", token, params)
        return {
            "files": [
                {
                    "name": f.get("name"),
                    "id": f.get("id"),
                    "type": f.get("mimeType"),
                    "modifiedTime": f.get("modifiedTime"),
                    "size": f.get("size"),
                }
                for f in data.get("files", [])
            ]
        }

    async def search_places(
        self,
        query: str,
        maxResults: int | None = None,
        location: str | None = None,
        radius: float | None = None,
        **_: Any,
    ) -> dict:
        api_key = self.credentials.places_api_key
        if not api_key:
            raise AuthRequiredError("Places API key is not configured", tool_name="places_api")

        body: dict[str, Any] = {"textQuery": query, "maxResultCount": maxResults or 10}
        if location:
            try:
                latitude, longitude = (float(part) for part in location.split(",", 1))
            except ValueError as e:
                raise ToolExecutionError(
                    f"Invalid location '{location}', expected 'lat,lng'", tool_name="places_api"
                ) from e
            body["locationBias"] = {
                "circle": {
                    "center": {"latitude": latitude, "longitude": longitude},
                    "radius": radius or 5000,
                }
            }

        headers = {"X-Goog-Api-Key": api_key, "X-Goog-FieldMask": PLACES_FIELD_MASK}
        async with self._client() as client:
            try:
                response = await client.post(PLACES_SEARCH_URL, json=body, headers=headers)
            except httpx.HTTPError as e:
                raise ToolExecutionError(f"places_api request failed: {e}", tool_name="places_api") from e
        self._handle_error(response, "places_api")
        data = self._json(response, "places_api")
        return {
            "places": [
                {
                    "name": (p.get("displayName") or {}).get("text"),
                    "address": p.get("formattedAddress"),
                    "rating": p.get("rating"),
                    "ratingCount": p.get("userRatingCount"),
                    "types": p.get("types"),
                    "mapsUrl": p.get("googleMapsUri"),
                }
                for p in data.get("places", [])
            ]
        }
