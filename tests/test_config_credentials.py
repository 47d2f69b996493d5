"""Tests for runtime configuration and the credential contract."""

import json
from datetime import UTC, datetime, timedelta
from pathlib import Path

from g8n.config import RuntimeConfig, get_g8n_config
from g8n.credentials import Credentials, GoogleAccessToken

GMAIL_SCOPE = "https://www.googleapis.com/auth/gmail.readonly"


class TestRuntimeConfig:
    def test_defaults_without_config_file(self):
        config = RuntimeConfig()
        assert config.model == "gemini-2.5-flash"
        assert config.model_provider == "gemini"
        assert config.temperature == 0.7
        assert config.max_iterations == 100
        assert config.step_delay == 0.0
        assert config.bridge_timeout == 30.0
        assert config.memory_dir == Path.home() / ".g8n" / "memory"

    def test_reads_configuration_file(self, tmp_path):
        (tmp_path / "configuration.json").write_text(
            json.dumps(
                {
                    "llm": {"model": "gemini-2.5-pro", "temperature": 0.1},
                    "engine": {"max_iterations": 12, "step_delay": 0.05},
                    "memory_dir": str(tmp_path / "mem"),
                    "bridge": {"timeout": 10},
                }
            ),
            encoding="utf-8",
        )

        config = RuntimeConfig()

        assert config.model == "gemini-2.5-pro"
        assert config.temperature == 0.1
        assert config.max_iterations == 12
        assert config.step_delay == 0.05
        assert config.memory_dir == tmp_path / "mem"
        assert config.bridge_timeout == 10.0
        assert config.gcp_timeout == 30.0

    def test_unreadable_configuration_file(self, tmp_path):
        (tmp_path / "configuration.json").write_text("{oops", encoding="utf-8")
        assert get_g8n_config() == {}


class TestGoogleAccessToken:
    def test_no_expiry_is_valid(self):
        assert GoogleAccessToken("t").is_valid() is True

    def test_expired(self):
        token = GoogleAccessToken("t", expires_at=datetime.now(UTC) - timedelta(seconds=1))
        assert token.is_expired() is True
        assert token.is_valid() is False

    def test_any_granted_scope_suffices(self):
        token = GoogleAccessToken("t", scopes=frozenset({GMAIL_SCOPE}))
        assert token.has_scopes([GMAIL_SCOPE, "https://www.googleapis.com/auth/gmail.send"]) is True
        assert token.has_scopes(["https://www.googleapis.com/auth/drive.readonly"]) is False

    def test_unknown_scopes_pass(self):
        assert GoogleAccessToken("t").has_scopes(["anything"]) is True


class TestCredentials:
    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("GEMINI_API_KEY", "gem-key")
        monkeypatch.setenv("GOOGLE_ACCESS_TOKEN", "ya29.token")
        monkeypatch.setenv("GOOGLE_TOKEN_EXPIRES_AT", "2000-01-01T00:00:00")
        monkeypatch.setenv("GOOGLE_TOKEN_SCOPES", f"{GMAIL_SCOPE}, https://www.googleapis.com/auth/drive.file")
        monkeypatch.setenv("G8N_BRIDGE_URL", "https://bridge.example.com/exec")

        creds = Credentials.from_env()

        assert creds.gemini_api_key == "gem-key"
        assert creds.google_token.token == "ya29.token"
        assert creds.google_token.expires_at == datetime(2000, 1, 1, tzinfo=UTC)
        assert creds.google_token.scopes == {GMAIL_SCOPE, "https://www.googleapis.com/auth/drive.file"}
        assert creds.google_token_valid() is False
        assert creds.bridge_url == "https://bridge.example.com/exec"
        assert creds.bridge_token is None

    def test_epoch_expiry(self, monkeypatch):
        monkeypatch.setenv("GOOGLE_ACCESS_TOKEN", "ya29.token")
        monkeypatch.setenv("GOOGLE_TOKEN_EXPIRES_AT", "4102444800")

        creds = Credentials.from_env()

        assert creds.google_token.expires_at == datetime(2100, 1, 1, tzinfo=UTC)
        assert creds.google_token_valid() is True

    def test_dotenv_file_and_env_precedence(self, tmp_path, monkeypatch):
        (tmp_path / ".env").write_text(
            "GEMINI_API_KEY=from-file\nG8N_BRIDGE_TOKEN=file-token\n", encoding="utf-8"
        )
        monkeypatch.setenv("GEMINI_API_KEY", "from-env")

        creds = Credentials.from_env()

        assert creds.gemini_api_key == "from-env"
        assert creds.bridge_token == "file-token"
        assert creds.google_token is None

    def test_for_testing(self):
        creds = Credentials.for_testing(places_api_key="k")
        assert creds.places_api_key == "k"
        assert creds.gemini_api_key is None
        assert creds.google_token_valid() is False
