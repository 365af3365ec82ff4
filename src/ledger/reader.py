# src/ledger/reader.py — v1
"""Read and reconcile the local and remote ledger logs.

The two logs are written independently, so either can hold lines the other
lacks and both usually hold the same line. Listing merges them, keeps one
entry per (operation_id, upload_hash) and records where it was found.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from pydantic import ValidationError

from kbcreationtools.ledger.models import LedgerEntry, Provenance
from kbcreationtools.ledger.sinks import LocalLedgerLog, RemoteLedgerLog

if TYPE_CHECKING:
    from kbcreationtools.storage.base_object_store import BaseObjectStore

logger = logging.getLogger(__name__)


class LedgerReadError(Exception):
    """Raised when the local ledger log exists but cannot be read."""


def parse_log(text: str, source: str = "log") -> list[LedgerEntry]:
    """Parse line-delimited JSON, skipping blank and malformed lines."""
    entries: list[LedgerEntry] = []
    for lineno, line in enumerate(text.splitlines(), start=1):
        if not line.strip():
            continue
        try:
            entries.append(LedgerEntry.model_validate_json(line))
        except ValidationError as e:
            logger.debug(
                "Skipping malformed %s line %d: %s", source, lineno, e.errors()[0]["msg"],
            )
    return entries


def reconcile(
    remote: list[LedgerEntry],
    local: list[LedgerEntry],
) -> list[LedgerEntry]:
    """Merge both logs: dedup by identity, set provenance, newest first.

    Remote entries come first in the concatenation, so on duplicates the
    remote copy is the one kept; provenance is then "both".
    """
    merged: dict[tuple[str, str | None], LedgerEntry] = {}
    seen_in: dict[tuple[str, str | None], set[str]] = {}

    for origin, entries in (("remote", remote), ("local", local)):
        for entry in entries:
            key = entry.identity
            seen_in.setdefault(key, set()).add(origin)
            if key not in merged:
                merged[key] = entry

    result: list[LedgerEntry] = []
    for key, entry in merged.items():
        origins = seen_in[key]
        provenance: Provenance = "both" if len(origins) == 2 else origins.pop()  # type: ignore[assignment]
        result.append(entry.model_copy(update={"provenance": provenance}))

    result.sort(key=lambda e: e.timestamp, reverse=True)
    return result


class LedgerReader:
    """Read access to the ledger for listing and deletion lookups."""

    def __init__(self, local_log: LocalLedgerLog) -> None:
        self._local_log = local_log

    async def read_local(self) -> list[LedgerEntry]:
        """Entries of the local log; a missing log is an empty one.

        Raises:
            LedgerReadError: If the log exists but cannot be read.
        """
        try:
            text = await self._local_log.read_text()
        except OSError as e:
            raise LedgerReadError(
                f"Failed to read local log {self._local_log.path}: {e}"
            ) from e
        return parse_log(text, source="local")

    async def read_remote(
        self,
        store: BaseObjectStore | None,
        bucket: str | None,
    ) -> list[LedgerEntry]:
        """Entries of the remote log; any failure yields an empty list."""
        if store is None or not bucket:
            return []
        remote = RemoteLedgerLog(store, bucket)
        try:
            text = await remote.read_text()
        except Exception as e:
            logger.warning("Could not read remote ledger log %s: %s", remote.location, e)
            return []
        return parse_log(text, source="remote")

    async def list_entries(
        self,
        store: BaseObjectStore | None = None,
        bucket: str | None = None,
    ) -> list[LedgerEntry]:
        """Deduplicated entries from both logs, newest first."""
        local = await self.read_local()
        remote = await self.read_remote(store, bucket)
        return reconcile(remote, local)

    async def find_entry(
        self,
        operation_id: str,
        upload_hash: str | None = None,
        store: BaseObjectStore | None = None,
        bucket: str | None = None,
    ) -> LedgerEntry | None:
        """Most recent entry for an operation id, remote log first.

        When an upload hash is given, an entry with exactly that hash in
        either log wins over any entry of the same operation.
        """
        remote = await self.read_remote(store, bucket)
        local: list[LedgerEntry] | None = None

        for wanted_hash in ([upload_hash, None] if upload_hash else [None]):
            match = _most_recent(remote, operation_id, wanted_hash)
            if match is not None:
                return match.model_copy(update={"provenance": "remote"})

            if local is None:
                local = await self.read_local()
            match = _most_recent(local, operation_id, wanted_hash)
            if match is not None:
                return match.model_copy(update={"provenance": "local"})
        return None


def _most_recent(
    entries: list[LedgerEntry],
    operation_id: str,
    upload_hash: str | None,
) -> LedgerEntry | None:
    candidates = [
        e for e in entries
        if e.operation_id == operation_id
        and (upload_hash is None or e.upload_hash == upload_hash)
    ]
    if not candidates:
        return None
    return max(candidates, key=lambda e: e.timestamp)
