# src/logging/context.py — v2
"""Contextual logging support: attach operation_id, upload_hash, source_type
and batch group to log records.
"""

from __future__ import annotations

import contextvars
from dataclasses import dataclass
from typing import Any

# Set once per ledger session, cleared when it ends.
_operation_id: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "operation_id", default=None
)
_upload_hash: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "upload_hash", default=None
)
_source_type: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "source_type", default=None
)
# Set per batch group.
_batch_group: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "batch_group", default=None
)


@dataclass
class LogContext:
    """Immutable snapshot of current logging context."""

    operation_id: str | None = None
    upload_hash: str | None = None
    source_type: str | None = None
    batch_group: str | None = None

    def as_dict(self) -> dict[str, Any]:
        """Return non-None fields as dict for JSON log injection."""
        return {k: v for k, v in self.__dict__.items() if v is not None}


def get_context() -> LogContext:
    """Snapshot current context variables."""
    return LogContext(
        operation_id=_operation_id.get(),
        upload_hash=_upload_hash.get(),
        source_type=_source_type.get(),
        batch_group=_batch_group.get(),
    )


def set_session_context(
    operation_id: str, upload_hash: str, source_type: str | None = None
) -> None:
    """Set session-level context (called when a ledger session starts)."""
    _operation_id.set(operation_id)
    _upload_hash.set(upload_hash)
    _source_type.set(source_type)


def clear_session_context() -> None:
    _operation_id.set(None)
    _upload_hash.set(None)
    _source_type.set(None)


def set_batch_group(group: str | None) -> None:
    """Set the batch group being processed (None to clear)."""
    _batch_group.set(group)


def clear_context() -> None:
    """Reset all context variables."""
    clear_session_context()
    _batch_group.set(None)
