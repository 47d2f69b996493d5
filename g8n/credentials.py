"""
Credential contract for the engine.

The engine never acquires or refreshes tokens. It reads what the host put in
the environment (or a .env file) and answers one question per tool: is there a
credential good enough to make this call?

Usage:
    # Production
    creds = Credentials.from_env()

    # Testing
    creds = Credentials.for_testing(gemini_api_key="test-key")
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path

from dotenv import dotenv_values

GEMINI_API_KEY_ENV = "GEMINI_API_KEY"
GOOGLE_ACCESS_TOKEN_ENV = "GOOGLE_ACCESS_TOKEN"
GOOGLE_TOKEN_EXPIRES_AT_ENV = "GOOGLE_TOKEN_EXPIRES_AT"
GOOGLE_TOKEN_SCOPES_ENV = "GOOGLE_TOKEN_SCOPES"
PLACES_API_KEY_ENV = "GOOGLE_PLACES_API_KEY"
BRIDGE_URL_ENV = "G8N_BRIDGE_URL"
BRIDGE_TOKEN_ENV = "G8N_BRIDGE_TOKEN"


@dataclass
class GoogleAccessToken:
    """A previously obtained OAuth access token for Google APIs."""

    token: str
    expires_at: datetime | None = None
    """None means the host did not report an expiry; treated as valid."""

    scopes: frozenset[str] | None = None
    """None means the host did not report scopes; scope checks pass."""

    def is_expired(self, now: datetime | None = None) -> bool:
        if self.expires_at is None:
            return False
        return (now or datetime.now(UTC)) >= self.expires_at

    def has_scopes(self, required: list[str] | tuple[str, ...]) -> bool:
        if self.scopes is None or not required:
            return True
        # A tool is usable if any one of its scopes was granted
        return any(scope in self.scopes for scope in required)

    def is_valid(self, required: list[str] | tuple[str, ...] = ()) -> bool:
        return bool(self.token) and not self.is_expired() and self.has_scopes(required)


@dataclass
class Credentials:
    """Credentials available to one engine instance."""

    gemini_api_key: str | None = None
    google_token: GoogleAccessToken | None = None
    places_api_key: str | None = None
    bridge_url: str | None = None
    bridge_token: str | None = None
    extra: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_env(cls, dotenv_path: Path | None = None) -> Credentials:
        """
        Load credentials from os.environ, falling back to a .env file.

        Args:
            dotenv_path: Optional path to .env file (defaults to cwd/.env)
        """
        dotenv_path = dotenv_path or Path.cwd() / ".env"
        file_values = dotenv_values(dotenv_path) if dotenv_path.exists() else {}

        def _get(name: str) -> str | None:
            # os.environ takes precedence over the .env file
            return os.environ.get(name) or file_values.get(name) or None

        google_token = None
        raw_token = _get(GOOGLE_ACCESS_TOKEN_ENV)
        if raw_token:
            google_token = GoogleAccessToken(
                token=raw_token,
                expires_at=_parse_expiry(_get(GOOGLE_TOKEN_EXPIRES_AT_ENV)),
                scopes=_parse_scopes(_get(GOOGLE_TOKEN_SCOPES_ENV)),
            )

        return cls(
            gemini_api_key=_get(GEMINI_API_KEY_ENV),
            google_token=google_token,
            places_api_key=_get(PLACES_API_KEY_ENV),
            bridge_url=_get(BRIDGE_URL_ENV),
            bridge_token=_get(BRIDGE_TOKEN_ENV),
        )

    @classmethod
    def for_testing(cls, **values) -> Credentials:
        """
        Create credentials with explicit test values.

        Example:
            creds = Credentials.for_testing(
                gemini_api_key="test-key",
                google_token=GoogleAccessToken(token="ya29.test"),
            )
        """
        return cls(**values)

    def google_token_valid(self, required_scopes: list[str] | tuple[str, ...] = ()) -> bool:
        return self.google_token is not None and self.google_token.is_valid(required_scopes)


def _parse_expiry(value: str | None) -> datetime | None:
    """Accept epoch seconds or an ISO 8601 timestamp."""
    if not value:
        return None
    try:
        return datetime.fromtimestamp(float(value), UTC)
    except ValueError:
        pass
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def _parse_scopes(value: str | None) -> frozenset[str] | None:
    if not value:
        return None
    return frozenset(s for s in value.replace(",", " ").split() if s)
