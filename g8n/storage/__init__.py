"""Persistence for finished runs."""

from g8n.storage.run_log_store import RunLogStore

__all__ = ["RunLogStore"]
