# tests/unit/deletion/test_manager.py — v1
"""Tests for deletion/manager.py — reference resolution and chunked deletion."""

from __future__ import annotations

from datetime import datetime, timezone
from unittest.mock import AsyncMock, patch

import pytest

from kbcreationtools.deletion.manager import (
    DeletionManager,
    NoUploadHashError,
    OperationNotFoundError,
    OperationRef,
    PartialDeletionError,
    chunked,
    parse_operation_ref,
)
from kbcreationtools.ledger.models import LedgerEntry


async def _log_session(local_log, op: str, upload_hash: str | None, minute: int = 0) -> None:
    entry = LedgerEntry(
        timestamp=datetime(2025, 1, 1, 0, minute, tzinfo=timezone.utc),
        operation_id=op,
        upload_hash=upload_hash,
    )
    await local_log.append(entry.to_log_line())


def _fill(store, prefix: str, count: int, bucket: str = "kb") -> None:
    for i in range(count):
        store.objects[(bucket, f"{prefix}{i:05d}.md")] = b"x"


class TestParseOperationRef:
    def test_with_hash(self):
        assert parse_operation_ref("example\\a1b2c3") == OperationRef("example", "a1b2c3")

    def test_bare_id(self):
        assert parse_operation_ref("example") == OperationRef("example", None)

    def test_trailing_separator(self):
        assert parse_operation_ref("example\\") == OperationRef("example", None)

    def test_empty_rejected(self):
        with pytest.raises(ValueError):
            parse_operation_ref("\\a1b2c3")

    def test_str_round_trip(self):
        assert str(OperationRef("example", "a1b2c3")) == "example\\a1b2c3"


def test_chunked():
    assert [len(c) for c in chunked([str(i) for i in range(2500)], 1000)] == [1000, 1000, 500]


class TestDeletionManager:
    @pytest.mark.asyncio
    async def test_unknown_operation(self, reader, memory_store):
        manager = DeletionManager(reader, memory_store, "kb")
        with pytest.raises(OperationNotFoundError):
            await manager.delete("ghost")

    @pytest.mark.asyncio
    async def test_legacy_entry_without_hash(self, reader, local_log, memory_store):
        await _log_session(local_log, "old", None)
        manager = DeletionManager(reader, memory_store, "kb")
        with pytest.raises(NoUploadHashError):
            await manager.delete("old")

    @pytest.mark.asyncio
    async def test_delete_never_uses_an_unhashed_prefix(self, reader, memory_store):
        _fill(memory_store, "old/", 2)
        manager = DeletionManager(reader, memory_store, "kb")
        legacy = LedgerEntry(
            timestamp=datetime(2025, 1, 1, tzinfo=timezone.utc), operation_id="old",
        )
        with patch.object(manager, "resolve", AsyncMock(return_value=legacy)):
            with pytest.raises(NoUploadHashError):
                await manager.delete("old")
        assert memory_store.delete_calls == []
        assert len(memory_store.keys("kb")) == 2

    @pytest.mark.asyncio
    async def test_deletes_only_session_prefix(self, reader, local_log, memory_store):
        await _log_session(local_log, "example", "aaaaaa")
        _fill(memory_store, "example/aaaaaa/", 3)
        _fill(memory_store, "example/bbbbbb/", 2)

        report = await DeletionManager(reader, memory_store, "kb").delete("example\\aaaaaa")

        assert report.found == 3
        assert report.deleted == 3
        assert report.batches == 1
        assert memory_store.keys("kb") == [f"example/bbbbbb/{i:05d}.md" for i in range(2)]

    @pytest.mark.asyncio
    async def test_bare_id_uses_most_recent_session(self, reader, local_log, memory_store):
        await _log_session(local_log, "example", "older1", minute=1)
        await _log_session(local_log, "example", "newer1", minute=2)
        _fill(memory_store, "example/older1/", 1)
        _fill(memory_store, "example/newer1/", 1)

        report = await DeletionManager(reader, memory_store, "kb").delete("example")

        assert report.prefix == "example/newer1/"
        assert memory_store.keys("kb") == ["example/older1/00000.md"]

    @pytest.mark.asyncio
    async def test_second_delete_finds_nothing(self, reader, local_log, memory_store):
        await _log_session(local_log, "example", "aaaaaa")
        _fill(memory_store, "example/aaaaaa/", 4)
        manager = DeletionManager(reader, memory_store, "kb")

        first = await manager.delete("example\\aaaaaa")
        second = await manager.delete("example\\aaaaaa")

        assert first.deleted == 4
        assert second.found == 0
        assert second.deleted == 0
        assert len(memory_store.delete_calls) == 1

    @pytest.mark.asyncio
    async def test_chunked_deletion(self, reader, local_log, memory_store):
        await _log_session(local_log, "big", "cccccc")
        _fill(memory_store, "big/cccccc/", 2500)

        report = await DeletionManager(reader, memory_store, "kb").delete("big\\cccccc")

        assert [len(c) for c in memory_store.delete_calls] == [1000, 1000, 500]
        assert report.deleted == 2500
        assert report.batches == 3
        assert memory_store.keys("kb") == []

    @pytest.mark.asyncio
    async def test_pagination_followed(self, reader, local_log, make_store):
        store = make_store(page_size=2)
        await _log_session(local_log, "paged", "dddddd")
        _fill(store, "paged/dddddd/", 5)

        report = await DeletionManager(reader, store, "kb").delete("paged\\dddddd")

        assert report.found == 5
        assert len(store.list_calls) == 3
        assert store.keys("kb") == []

    @pytest.mark.asyncio
    async def test_partial_failure_reports_progress(self, reader, local_log, memory_store):
        await _log_session(local_log, "big", "cccccc")
        _fill(memory_store, "big/cccccc/", 2500)
        memory_store.fail_delete_on = 1

        with pytest.raises(PartialDeletionError) as exc_info:
            await DeletionManager(reader, memory_store, "kb").delete("big\\cccccc")

        err = exc_info.value
        assert err.deleted == 1000
        assert err.batches_completed == 1
        assert len(err.remaining_keys) == 1500
        assert len(memory_store.delete_calls) == 2
        assert len(memory_store.keys("kb")) == 1500

    def test_batch_size_bounds(self, reader, memory_store):
        with pytest.raises(ValueError):
            DeletionManager(reader, memory_store, "kb", batch_size=1001)
