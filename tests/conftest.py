# tests/conftest.py — v2
"""Shared test fixtures for all unit tests.

Provides an in-memory object store, temp ledger logs and ledger handles that
always release the process-wide session guard. No network I/O.
"""

from __future__ import annotations

from pathlib import Path

import pytest

from kbcreationtools.ledger.reader import LedgerReader
from kbcreationtools.ledger.session import OperationLedger
from kbcreationtools.ledger.sinks import LocalLedgerLog
from kbcreationtools.storage.base_object_store import (
    BaseObjectStore,
    ObjectNotFoundError,
)
from kbcreationtools.storage.gateway import UploadGateway
from kbcreationtools.storage.models import ListPage


class InMemoryObjectStore(BaseObjectStore):
    """Dict-backed store recording every list and delete request.

    ``page_size`` caps list pages below the caller's ``max_keys`` so
    pagination can be exercised with few objects. ``fail_delete_on`` makes
    the N-th (0-based) delete_batch call raise.
    """

    def __init__(self, page_size: int | None = None) -> None:
        self.objects: dict[tuple[str, str], bytes] = {}
        self.page_size = page_size
        self.list_calls: list[tuple[str, str, str | None]] = []
        self.delete_calls: list[list[str]] = []
        self.fail_delete_on: int | None = None
        self.get_error: Exception | None = None
        self.put_error: Exception | None = None

    def keys(self, bucket: str) -> list[str]:
        return sorted(k for b, k in self.objects if b == bucket)

    async def put(self, bucket: str, key: str, body: bytes) -> None:
        if self.put_error is not None:
            raise self.put_error
        self.objects[(bucket, key)] = body

    async def get(self, bucket: str, key: str) -> bytes:
        if self.get_error is not None:
            raise self.get_error
        try:
            return self.objects[(bucket, key)]
        except KeyError:
            raise ObjectNotFoundError(f"{bucket}/{key} does not exist") from None

    async def list_page(
        self,
        bucket: str,
        prefix: str,
        continuation_token: str | None = None,
        max_keys: int = 1000,
    ) -> ListPage:
        self.list_calls.append((bucket, prefix, continuation_token))
        limit = min(max_keys, self.page_size or max_keys)
        matching = [
            k for k in self.keys(bucket)
            if k.startswith(prefix)
            and (continuation_token is None or k > continuation_token)
        ]
        page = matching[:limit]
        return ListPage(keys=page, next_token=page[-1] if len(matching) > limit else None)

    async def delete_batch(self, bucket: str, keys: list[str]) -> None:
        call_index = len(self.delete_calls)
        self.delete_calls.append(list(keys))
        if self.fail_delete_on == call_index:
            raise RuntimeError("simulated delete failure")
        for key in keys:
            self.objects.pop((bucket, key), None)


@pytest.fixture
def memory_store() -> InMemoryObjectStore:
    return InMemoryObjectStore()


@pytest.fixture
def local_log(tmp_path: Path) -> LocalLedgerLog:
    return LocalLedgerLog(tmp_path / ".kbcreationtools" / "log")


@pytest.fixture
def ledger(local_log: LocalLedgerLog):
    """OperationLedger whose session is always released at teardown."""
    handle = OperationLedger(local_log, username="tester")
    yield handle
    handle.abandon_session()


@pytest.fixture
def reader(local_log: LocalLedgerLog) -> LedgerReader:
    return LedgerReader(local_log)


@pytest.fixture
def gateway(memory_store: InMemoryObjectStore, ledger: OperationLedger) -> UploadGateway:
    return UploadGateway(memory_store, ledger=ledger)


@pytest.fixture
def make_store():
    """Factory for extra stores, e.g. ``make_store(page_size=2)``."""
    return InMemoryObjectStore
