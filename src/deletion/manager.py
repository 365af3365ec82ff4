# src/deletion/manager.py — v1
"""Bulk deletion of everything one ingestion session uploaded.

An operation reference is either a bare operation id or
``operation_id\\upload_hash``. The reference is resolved through the ledger
to the namespace prefix the session wrote under; every object below that
prefix is listed (following continuation tokens) and deleted in chunks no
larger than the store's per-request limit.

Chunks are not atomic as a group: if one fails, the chunks before it stay
deleted and the keys after it stay in place. Nothing is retried; deletion is
idempotent, so calling it again finishes the job.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from pydantic import BaseModel, Field

from kbcreationtools.config.settings import MAX_KEYS_PER_REQUEST
from kbcreationtools.ledger.models import REFERENCE_SEPARATOR, LedgerEntry
from kbcreationtools.storage.namespacer import namespace_prefix

if TYPE_CHECKING:
    from kbcreationtools.ledger.reader import LedgerReader
    from kbcreationtools.storage.base_object_store import BaseObjectStore

logger = logging.getLogger(__name__)


class OperationNotFoundError(LookupError):
    """No ledger entry matches the operation id."""

    def __init__(self, operation_id: str) -> None:
        self.operation_id = operation_id
        super().__init__(f"Operation {operation_id} not found in logs")


class NoUploadHashError(LookupError):
    """The matched entry predates upload hashes, so it has no namespace."""

    def __init__(self, operation_id: str) -> None:
        self.operation_id = operation_id
        super().__init__(
            f"Operation {operation_id} has no upload hash "
            "(created before upload namespacing)"
        )


class PartialDeletionError(Exception):
    """A delete chunk failed after earlier chunks succeeded."""

    def __init__(
        self,
        prefix: str,
        deleted: int,
        batches_completed: int,
        remaining_keys: list[str],
        cause: BaseException,
    ) -> None:
        self.prefix = prefix
        self.deleted = deleted
        self.batches_completed = batches_completed
        self.remaining_keys = remaining_keys
        super().__init__(
            f"Deletion under {prefix} stopped after {deleted} objects "
            f"({batches_completed} batches); {len(remaining_keys)} remain: {cause}"
        )


@dataclass(frozen=True)
class OperationRef:
    """Parsed operation reference."""

    operation_id: str
    upload_hash: str | None = None

    def __str__(self) -> str:
        if self.upload_hash:
            return f"{self.operation_id}{REFERENCE_SEPARATOR}{self.upload_hash}"
        return self.operation_id


class DeletionReport(BaseModel):
    """Outcome of one delete call."""

    operation_id: str
    upload_hash: str
    prefix: str
    found: int = 0
    deleted: int = 0
    batches: int = 0
    keys: list[str] = Field(default_factory=list)


def parse_operation_ref(ref: str) -> OperationRef:
    """Split 'op\\hash' into its parts; a bare id has no hash.

    Raises:
        ValueError: If the operation id part is empty.
    """
    ref = ref.strip()
    operation_id, sep, upload_hash = ref.rpartition(REFERENCE_SEPARATOR)
    if not sep:
        operation_id, upload_hash = ref, ""
    if not operation_id:
        raise ValueError(f"Invalid operation reference: {ref!r}")
    return OperationRef(operation_id=operation_id, upload_hash=upload_hash or None)


def chunked(keys: list[str], size: int) -> list[list[str]]:
    return [keys[i:i + size] for i in range(0, len(keys), size)]


class DeletionManager:
    """Resolve operation references and delete their objects."""

    def __init__(
        self,
        reader: LedgerReader,
        store: BaseObjectStore,
        bucket: str,
        batch_size: int = MAX_KEYS_PER_REQUEST,
        page_size: int = MAX_KEYS_PER_REQUEST,
    ) -> None:
        if not 1 <= batch_size <= MAX_KEYS_PER_REQUEST:
            raise ValueError(f"batch_size must be between 1 and {MAX_KEYS_PER_REQUEST}")
        self._reader = reader
        self._store = store
        self._bucket = bucket
        self._batch_size = batch_size
        self._page_size = page_size

    async def resolve(self, ref: str | OperationRef) -> LedgerEntry:
        """Find the ledger entry for a reference.

        Raises:
            OperationNotFoundError: No entry has this operation id.
            NoUploadHashError: The entry has no upload hash.
        """
        parsed = parse_operation_ref(ref) if isinstance(ref, str) else ref
        entry = await self._reader.find_entry(
            parsed.operation_id,
            upload_hash=parsed.upload_hash,
            store=self._store,
            bucket=self._bucket,
        )
        if entry is None:
            raise OperationNotFoundError(parsed.operation_id)
        if not entry.upload_hash:
            raise NoUploadHashError(parsed.operation_id)
        return entry

    async def list_keys(self, prefix: str) -> list[str]:
        """All keys under prefix, following continuation tokens."""
        keys: list[str] = []
        token: str | None = None
        while True:
            page = await self._store.list_page(
                self._bucket, prefix, continuation_token=token, max_keys=self._page_size,
            )
            keys.extend(page.keys)
            token = page.next_token
            if not token:
                return keys

    async def delete(self, ref: str | OperationRef) -> DeletionReport:
        """Delete every object the referenced session uploaded.

        Raises:
            OperationNotFoundError, NoUploadHashError: From ``resolve``.
            PartialDeletionError: A delete chunk failed.
        """
        parsed = parse_operation_ref(ref) if isinstance(ref, str) else ref
        entry = await self.resolve(parsed)
        upload_hash = parsed.upload_hash or entry.upload_hash
        if not upload_hash:
            raise NoUploadHashError(entry.operation_id)
        prefix = namespace_prefix(entry.operation_id, upload_hash)

        keys = await self.list_keys(prefix)
        report = DeletionReport(
            operation_id=entry.operation_id,
            upload_hash=upload_hash,
            prefix=prefix,
            found=len(keys),
            keys=keys,
        )
        if not keys:
            logger.warning("No objects found for operation %s under %s", parsed, prefix)
            return report

        logger.info("Deleting %d objects under %s/%s", len(keys), self._bucket, prefix)
        batches = chunked(keys, self._batch_size)
        for index, batch in enumerate(batches):
            try:
                await self._store.delete_batch(self._bucket, batch)
            except Exception as exc:
                remaining = [k for b in batches[index:] for k in b]
                raise PartialDeletionError(
                    prefix, report.deleted, report.batches, remaining, exc,
                ) from exc
            report.deleted += len(batch)
            report.batches += 1

        logger.info(
            "Deleted %d objects from operation %s in %d batches",
            report.deleted, parsed, report.batches,
        )
        return report
