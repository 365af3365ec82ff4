# src/ledger/models.py — v1
"""Ledger domain models: SessionContext, UploadRecord, LedgerEntry.

A LedgerEntry is one JSON line in the operation log. Field names on disk are
camelCase; unknown fields are kept so older tools can read newer lines and
vice versa.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Literal

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_serializer,
    field_validator,
)
from pydantic.alias_generators import to_camel

LEDGER_SCHEMA_VERSION = 1

# Separator between operation id and upload hash in a printed reference.
REFERENCE_SEPARATOR = "\\"

Provenance = Literal["local", "remote", "both"]


def format_timestamp(ts: datetime) -> str:
    """ISO-8601 UTC with millisecond precision and a trailing Z."""
    ts = ts.astimezone(timezone.utc)
    return ts.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def format_size_mb(size_bytes: int) -> str:
    """Size in MiB with two decimals, as stored in ``totalSizeMB``."""
    return f"{size_bytes / (1024 * 1024):.2f}"


class SessionContext(BaseModel):
    """Hints an operation id is derived from. All optional."""

    url: str | None = None
    document_name: str | None = None
    output_file_name: str | None = None
    source_type: str | None = None


class UploadRecord(BaseModel):
    """One successful upload inside a session."""

    file_name: str
    size_bytes: int


class LedgerEntry(BaseModel):
    """Summary record of one ingestion session."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="allow",
    )

    timestamp: datetime
    username: str = "unknown"
    operation_id: str
    # Absent on lines written before upload hashes existed.
    upload_hash: str | None = None
    source_type: str | None = None
    status: str | None = None
    error: str | None = None
    documents_processed: int = 0
    document_details: list[str] = Field(default_factory=list)
    total_size_bytes: int = 0
    total_size_mb: str = Field(default="0.00", alias="totalSizeMB")
    schema_version: int | None = None

    # Set by the reconciler at dedup time; never written to a log.
    provenance: Provenance | None = Field(default=None, exclude=True)

    @field_validator("timestamp")
    @classmethod
    def assume_utc(cls, v: datetime) -> datetime:
        """Naive timestamps are UTC."""
        if v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v

    @field_serializer("timestamp")
    def serialize_timestamp(self, v: datetime) -> str:
        return format_timestamp(v)

    @property
    def identity(self) -> tuple[str, str | None]:
        """(operation_id, upload_hash): one session's contribution."""
        return (self.operation_id, self.upload_hash)

    @property
    def reference(self) -> str:
        """Reference accepted by the delete command."""
        if self.upload_hash:
            return f"{self.operation_id}{REFERENCE_SEPARATOR}{self.upload_hash}"
        return self.operation_id

    @property
    def failed(self) -> bool:
        return self.status == "failed"

    def to_log_line(self) -> str:
        """Serialize as one newline-terminated JSON line."""
        return self.model_dump_json(by_alias=True, exclude_none=True) + "\n"
