"""
Memory Window - bounded, keyed conversation history for agent nodes.

The host supplies a MemoryStore: anything with ``get/set/delete`` of strings.
History for a key is stored as a JSON list of ``{"role", "content"}`` turns,
oldest first, trimmed from the front to ``max_messages``.

    window = MemoryWindow(FileMemoryStore("~/.g8n/memory"))
    history = window.read("support-chat", max_messages=10)
    window.append("support-chat", [ConversationTurn("user", "hi"),
                                   ConversationTurn("model", "hello")], max_messages=10)

A window built without a store is stateless: reads return no history and
appends raise MemoryUnavailableError, which agent nodes log and ignore.
"""

import json
import logging
import os
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Literal, Protocol, runtime_checkable

from g8n.errors import MemoryUnavailableError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ConversationTurn:
    """A single turn in stored conversation history."""

    role: Literal["user", "model"]
    content: str

    def to_dict(self) -> dict[str, Any]:
        return {"role": self.role, "content": self.content}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ConversationTurn":
        role = data.get("role")
        if role not in ("user", "model"):
            raise ValueError(f"Invalid conversation role: {role!r}")
        return cls(role=role, content=str(data.get("content", "")))


@runtime_checkable
class MemoryStore(Protocol):
    """Keyed string store supplied by the host environment."""

    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str) -> None: ...

    def delete(self, key: str) -> None: ...


class InMemoryStore:
    """Dict-backed MemoryStore; history lives as long as the process."""

    def __init__(self) -> None:
        self._data: dict[str, str] = {}

    def get(self, key: str) -> str | None:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def delete(self, key: str) -> None:
        self._data.pop(key, None)


class FileMemoryStore:
    """
    One JSON file per key under a directory.

    Directory structure:
    {base_path}/
      {key}.json
    """

    def __init__(self, base_path: str | Path):
        self.base_path = Path(base_path).expanduser()

    def _validate_key(self, key: str) -> None:
        """
        Validate key to prevent path traversal.

        Raises:
            ValueError: If key contains path separators or dangerous patterns
        """
        if not key or key.strip() == "":
            raise ValueError("Key cannot be empty")

        if "/" in key or "\\" in key:
            raise ValueError(f"Invalid key format: path separators not allowed in '{key}'")

        if ".." in key or key.startswith("."):
            raise ValueError(f"Invalid key format: path traversal detected in '{key}'")

        if len(key) > 1 and key[1] == ":":
            raise ValueError(f"Invalid key format: absolute paths not allowed in '{key}'")

        if "\x00" in key:
            raise ValueError("Invalid key format: null bytes not allowed")

        dangerous_chars = {"<", ">", "|", "&", "$", "`", "'", '"'}
        if any(char in key for char in dangerous_chars):
            raise ValueError(f"Invalid key format: contains dangerous characters in '{key}'")

    def _path(self, key: str) -> Path:
        self._validate_key(key)
        return self.base_path / f"{key}.json"

    def get(self, key: str) -> str | None:
        path = self._path(key)
        if not path.exists():
            return None
        return path.read_text(encoding="utf-8")

    def set(self, key: str, value: str) -> None:
        path = self._path(key)
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{key}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(value)
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def delete(self, key: str) -> None:
        self._path(key).unlink(missing_ok=True)


class MemoryWindow:
    """Read/append/clear bounded history over a MemoryStore."""

    def __init__(self, store: MemoryStore | None = None):
        self.store = store

    @property
    def available(self) -> bool:
        return self.store is not None

    def _require_store(self) -> MemoryStore:
        if self.store is None:
            raise MemoryUnavailableError("No memory store configured")
        return self.store

    def _load(self, key: str, discard_corrupt: bool = False) -> list[ConversationTurn]:
        store = self._require_store()
        try:
            raw = store.get(key)
        except (OSError, ValueError) as e:
            raise MemoryUnavailableError(f"Memory store read failed for '{key}': {e}") from e
        if not raw:
            return []
        try:
            return [ConversationTurn.from_dict(item) for item in json.loads(raw)]
        except (json.JSONDecodeError, TypeError, ValueError, AttributeError) as e:
            if discard_corrupt:
                logger.warning(f"⚠ Discarding unreadable history for '{key}': {e}")
                return []
            raise MemoryUnavailableError(f"Stored history for '{key}' is corrupt: {e}") from e

    def read(self, key: str, max_messages: int | None = None) -> list[ConversationTurn]:
        """
        Return up to ``max_messages`` most recent turns for ``key``.

        Returns an empty list for an unseen key or when no store is configured.

        Raises:
            MemoryUnavailableError: The store failed or holds unreadable data
        """
        if self.store is None:
            return []
        turns = self._load(key)
        if max_messages is not None:
            turns = turns[-max_messages:] if max_messages > 0 else []
        return turns

    def append(self, key: str, turns: list[ConversationTurn], max_messages: int) -> list[ConversationTurn]:
        """
        Append turns and trim from the front to at most ``max_messages``.

        Unreadable stored history is replaced by the new turns.

        Returns:
            The history as stored after trimming

        Raises:
            MemoryUnavailableError: No store, or the store failed
        """
        store = self._require_store()
        history = self._load(key, discard_corrupt=True) + list(turns)
        history = history[-max_messages:] if max_messages > 0 else []
        try:
            store.set(key, json.dumps([t.to_dict() for t in history]))
        except (OSError, ValueError) as e:
            raise MemoryUnavailableError(f"Memory store write failed for '{key}': {e}") from e
        logger.debug(f"Memory '{key}' now holds {len(history)} turns")
        return history

    def clear(self, key: str) -> None:
        """Delete stored history for ``key``."""
        store = self._require_store()
        try:
            store.delete(key)
        except (OSError, ValueError) as e:
            raise MemoryUnavailableError(f"Memory store delete failed for '{key}': {e}") from e
