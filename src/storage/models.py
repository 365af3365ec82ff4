# src/storage/models.py — v2
"""Storage domain models: StoredObject, ListPage."""

from __future__ import annotations

from pydantic import BaseModel, Field


class StoredObject(BaseModel):
    """An object written to (or that would be written to, in a dry run) a bucket."""

    bucket: str
    key: str
    size_bytes: int
    dry_run: bool = False


class ListPage(BaseModel):
    """One page of a prefix listing.

    ``next_token`` is None on the last page.
    """

    keys: list[str] = Field(default_factory=list)
    next_token: str | None = None
