# src/storage/gateway.py — v1
"""Upload gateway: namespace a logical key, upload the payload, record it.

Source adapters only see this class. They hand it a bucket, a logical file
name and a payload; the active ledger session decides where it lands.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from kbcreationtools.storage.models import StoredObject
from kbcreationtools.storage.namespacer import qualify

if TYPE_CHECKING:
    from kbcreationtools.ledger.session import OperationLedger
    from kbcreationtools.storage.base_object_store import BaseObjectStore

logger = logging.getLogger(__name__)


class UploadGateway:
    """Upload payloads under the active session's namespace."""

    def __init__(
        self,
        store: BaseObjectStore,
        ledger: OperationLedger | None = None,
        dry_run: bool = False,
    ) -> None:
        self._store = store
        self._ledger = ledger
        self._dry_run = dry_run

    @property
    def store(self) -> BaseObjectStore:
        return self._store

    @property
    def ledger(self) -> OperationLedger | None:
        return self._ledger

    @property
    def dry_run(self) -> bool:
        return self._dry_run

    async def upload(
        self, bucket: str, key: str, payload: bytes | str,
    ) -> StoredObject:
        """Upload payload under the qualified form of key.

        Only namespaced uploads are recorded in the session, so writes to
        the reserved ledger key never count toward session statistics.
        """
        body = payload.encode("utf-8") if isinstance(payload, str) else payload
        session = self._ledger.active_session if self._ledger else None
        full_key = qualify(key, session)

        if self._dry_run:
            logger.info("[DRY RUN] Would upload %s to bucket %s (%d bytes)",
                        full_key, bucket, len(body))
            return StoredObject(bucket=bucket, key=full_key, size_bytes=len(body), dry_run=True)

        await self._store.put(bucket, full_key, body)
        logger.info("Uploaded %s to %s (%d bytes)", full_key, bucket, len(body))

        if full_key != key and self._ledger is not None:
            self._ledger.record_upload(key, len(body))

        return StoredObject(bucket=bucket, key=full_key, size_bytes=len(body))
