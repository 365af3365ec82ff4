# src/ledger/session.py — v1
"""Ingestion session lifecycle: start, record uploads, end with a ledger entry.

The ledger object is an explicit handle owned by the command being executed
and handed to the upload gateway. At most one session can be active per
process; the guard is shared by every ``OperationLedger`` instance.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import TYPE_CHECKING

from kbcreationtools.ledger.identifiers import (
    generate_operation_id,
    generate_upload_hash,
)
from kbcreationtools.ledger.models import (
    LEDGER_SCHEMA_VERSION,
    LedgerEntry,
    SessionContext,
    UploadRecord,
    format_size_mb,
)
from kbcreationtools.ledger.sinks import LocalLedgerLog, RemoteLedgerLog
from kbcreationtools.logging.context import (
    clear_session_context,
    set_session_context,
)

if TYPE_CHECKING:
    from kbcreationtools.config.settings import Settings
    from kbcreationtools.storage.base_object_store import BaseObjectStore

logger = logging.getLogger(__name__)


class InvalidSessionStateError(Exception):
    """Raised when a session is started while another one is active."""


class Session:
    """In-memory state of one ingestion run.

    ``record_upload`` may be called from upload-completion callbacks on
    other threads; every read and write of the upload list goes through the
    session lock, and a closed session accepts no further uploads.
    """

    def __init__(
        self,
        operation_id: str,
        upload_hash: str,
        context: SessionContext,
        start_time: datetime | None = None,
    ) -> None:
        self.operation_id = operation_id
        self.upload_hash = upload_hash
        self.context = context
        self.start_time = start_time or datetime.now(timezone.utc)
        self._lock = threading.Lock()
        self._uploads: list[UploadRecord] = []
        self._total_size_bytes = 0
        self._closed = False

    def record_upload(self, file_name: str, size_bytes: int) -> bool:
        """Append an upload record. Returns False if the session is closed."""
        with self._lock:
            if self._closed:
                return False
            self._uploads.append(UploadRecord(file_name=file_name, size_bytes=size_bytes))
            self._total_size_bytes += size_bytes
            return True

    @property
    def uploads(self) -> list[UploadRecord]:
        with self._lock:
            return list(self._uploads)

    @property
    def total_size_bytes(self) -> int:
        with self._lock:
            return self._total_size_bytes

    def close(self) -> tuple[list[UploadRecord], int]:
        """Close the session and return its final uploads and total size."""
        with self._lock:
            self._closed = True
            return list(self._uploads), self._total_size_bytes


def build_entry(
    session: Session,
    uploads: list[UploadRecord],
    total_size_bytes: int,
    username: str,
    status: str | None = None,
    error: str | None = None,
    timestamp: datetime | None = None,
) -> LedgerEntry:
    """Build the ledger entry summarizing a closed session."""
    return LedgerEntry(
        timestamp=timestamp or datetime.now(timezone.utc),
        username=username,
        operation_id=session.operation_id,
        upload_hash=session.upload_hash,
        source_type=session.context.source_type,
        status=status,
        error=error,
        documents_processed=len(uploads),
        document_details=[u.file_name for u in uploads],
        total_size_bytes=total_size_bytes,
        total_size_mb=format_size_mb(total_size_bytes),
        schema_version=LEDGER_SCHEMA_VERSION,
    )


class OperationLedger:
    """Owns the active session and writes its summary to both ledger logs."""

    # One active session per process, across all instances.
    _process_guard = threading.Lock()

    def __init__(self, local_log: LocalLedgerLog, username: str = "unknown") -> None:
        self._local_log = local_log
        self._username = username
        self._session: Session | None = None

    @classmethod
    def from_settings(cls, settings: Settings) -> OperationLedger:
        return cls(
            LocalLedgerLog(settings.ledger_path),
            username=settings.effective_username,
        )

    @property
    def local_log(self) -> LocalLedgerLog:
        return self._local_log

    @property
    def active_session(self) -> Session | None:
        return self._session

    def start_session(self, context: SessionContext | None = None) -> Session:
        """Start a session, deriving its operation id and upload hash.

        Raises:
            InvalidSessionStateError: If a session is already active in this process.
        """
        if not OperationLedger._process_guard.acquire(blocking=False):
            raise InvalidSessionStateError(
                "An ingestion session is already active in this process"
            )
        try:
            context = context or SessionContext()
            session = Session(
                operation_id=generate_operation_id(context),
                upload_hash=generate_upload_hash(),
                context=context,
            )
        except Exception:
            OperationLedger._process_guard.release()
            raise

        self._session = session
        set_session_context(session.operation_id, session.upload_hash, context.source_type)
        logger.info(
            "Started session %s/%s (source=%s)",
            session.operation_id, session.upload_hash, context.source_type,
        )
        return session

    def record_upload(self, file_name: str, size_bytes: int) -> None:
        """Record a successful upload; no-op without an active session."""
        session = self._session
        if session is None:
            return
        if not session.record_upload(file_name, size_bytes):
            logger.warning(
                "Upload of %s completed after session %s/%s ended; not recorded",
                file_name, session.operation_id, session.upload_hash,
            )

    async def end_session(
        self,
        store: BaseObjectStore | None = None,
        bucket: str | None = None,
    ) -> LedgerEntry | None:
        """End the active session and append its entry to both logs."""
        return await self._finish(store, bucket)

    async def end_session_with_failure(
        self,
        store: BaseObjectStore | None,
        bucket: str | None,
        error: BaseException | str,
    ) -> LedgerEntry | None:
        """End the active session as failed, keeping the partial uploads."""
        message = str(error) or type(error).__name__
        return await self._finish(store, bucket, status="failed", error=message)

    def abandon_session(self) -> None:
        """Discard the active session without writing a ledger entry."""
        session = self._session
        if session is None:
            return
        session.close()
        logger.info(
            "Abandoned session %s/%s without ledger entry",
            session.operation_id, session.upload_hash,
        )
        self._release()

    @asynccontextmanager
    async def session(
        self,
        context: SessionContext | None,
        store: BaseObjectStore | None,
        bucket: str | None,
        dry_run: bool = False,
    ) -> AsyncIterator[Session]:
        """Run a block inside a session.

        The session ends normally when the block returns, ends as failed and
        re-raises when it raises, and is abandoned in a dry run. Cancellation
        and other BaseExceptions abandon it so the process guard is released.
        """
        session = self.start_session(context)
        try:
            yield session
        except Exception as exc:
            if dry_run:
                self.abandon_session()
            else:
                await self.end_session_with_failure(store, bucket, exc)
            raise
        except BaseException:
            self.abandon_session()
            raise
        else:
            if dry_run:
                self.abandon_session()
            else:
                await self.end_session(store, bucket)

    async def _finish(
        self,
        store: BaseObjectStore | None,
        bucket: str | None,
        status: str | None = None,
        error: str | None = None,
    ) -> LedgerEntry | None:
        session = self._session
        if session is None:
            return None
        try:
            uploads, total = session.close()
            entry = build_entry(
                session, uploads, total, self._username, status=status, error=error,
            )
            await self._write(entry, store, bucket)
        finally:
            self._release()

        logger.info(
            "Ended session %s/%s: %d documents, %s MB%s",
            entry.operation_id, entry.upload_hash, entry.documents_processed,
            entry.total_size_mb, " (failed)" if entry.failed else "",
        )
        return entry

    async def _write(
        self,
        entry: LedgerEntry,
        store: BaseObjectStore | None,
        bucket: str | None,
    ) -> None:
        """Append to the local and remote logs independently."""
        line = entry.to_log_line()
        appends = [self._safe_append("local", self._local_log.append(line))]
        if store is not None and bucket:
            remote = RemoteLedgerLog(store, bucket)
            appends.append(self._safe_append("remote", remote.append(line)))
        await asyncio.gather(*appends)

    @staticmethod
    async def _safe_append(name: str, append) -> None:
        try:
            await append
        except Exception as exc:
            logger.warning("Failed to write %s ledger log: %s", name, exc)

    def _release(self) -> None:
        self._session = None
        clear_session_context()
        OperationLedger._process_guard.release()
