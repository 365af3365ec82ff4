# tests/unit/batch/test_orchestrator.py — v1
"""Tests for batch/orchestrator.py — job loading and item classification."""

from __future__ import annotations

import asyncio
import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from kbcreationtools.batch.adapters import BaseSourceAdapter, TextDocumentAdapter
from kbcreationtools.batch.models import BatchState
from kbcreationtools.batch.orchestrator import (
    BatchJobError,
    BatchOrchestrator,
    load_batch_job,
)
from kbcreationtools.storage.gateway import UploadGateway
from kbcreationtools.storage.namespacer import LEDGER_LOG_KEY


@pytest.fixture
def write_job(tmp_path):
    def _write(config) -> str:
        path = tmp_path / "job.json"
        path.write_text(json.dumps(config) if not isinstance(config, str) else config)
        return str(path)
    return _write


class UploadingAdapter(BaseSourceAdapter):
    """Uploads one page per item; raises for URLs containing 'fail'."""

    def __init__(self, source_type: str = "webpage") -> None:
        self._source_type = source_type
        self.seen: list[str] = []

    @property
    def source_type(self) -> str:
        return self._source_type

    async def process(self, item, ctx):
        self.seen.append(item.url)
        if "fail" in item.url:
            raise RuntimeError(f"Navigation failed for {item.url}")
        stored = await ctx.gateway.upload(ctx.bucket, "page.md", f"content of {item.url}")
        return {"key": stored.key}


def _mock_adapter(source_type: str) -> MagicMock:
    adapter = MagicMock(spec=BaseSourceAdapter)
    adapter.source_type = source_type
    adapter.process = AsyncMock(return_value={"ok": True})
    return adapter


class TestLoadBatchJob:
    def test_missing_file(self, tmp_path):
        with pytest.raises(BatchJobError, match="not found"):
            load_batch_job(tmp_path / "absent.json")

    def test_invalid_json(self, write_job):
        with pytest.raises(BatchJobError, match="Invalid JSON"):
            load_batch_job(write_job("{oops"))

    @pytest.mark.parametrize("config", [
        {"webPages": []},
        {"kbcreationtools": 1},
        {"kbcreationtools": ""},
    ])
    def test_marker_required(self, write_job, config):
        with pytest.raises(BatchJobError, match="kbcreationtools"):
            load_batch_job(write_job(config))

    def test_group_must_be_list(self, write_job):
        with pytest.raises(BatchJobError, match="webPages"):
            load_batch_job(write_job({"kbcreationtools": "1", "webPages": {"url": "x"}}))

    def test_default_bucket_must_be_string(self, write_job):
        with pytest.raises(BatchJobError, match="defaultBucket"):
            load_batch_job(write_job({"kbcreationtools": "1", "defaultBucket": ["a"]}))

    def test_loaded(self, write_job, tmp_path):
        job = load_batch_job(write_job({
            "kbcreationtools": "1.2", "defaultBucket": "my-kb", "rss": [{"feedUrl": "x"}],
        }))
        assert job.version == "1.2"
        assert job.default_bucket == "my-kb"
        assert job.job_dir == tmp_path.resolve()
        assert list(job.groups) == ["rss"]


class TestBatchOrchestrator:
    @pytest.mark.asyncio
    async def test_abort_on_bad_job(self, tmp_path, memory_store):
        orch = BatchOrchestrator({}, UploadGateway(memory_store))
        with pytest.raises(BatchJobError):
            await orch.run(tmp_path / "absent.json")
        assert orch.state == BatchState.ABORTED

    @pytest.mark.asyncio
    async def test_continue_on_error(self, write_job, memory_store):
        adapter = UploadingAdapter()
        orch = BatchOrchestrator({"webPages": adapter}, UploadGateway(memory_store))
        result = await orch.run(write_job({
            "kbcreationtools": "1",
            "defaultBucket": "my-kb",
            "webPages": [
                {"url": "https://a.example.com"},
                {"url": "https://fail.example.com"},
                {"url": "https://c.example.com"},
            ],
        }))

        assert len(adapter.seen) == 3
        assert len(result.processed) == 2
        assert len(result.failed) == 1
        failed = result.failed[0]
        assert failed.index == 1
        assert failed.context == {"url": "https://fail.example.com"}
        assert "Navigation failed" in failed.error
        assert result.state == BatchState.COMPLETED
        assert orch.state == BatchState.COMPLETED

    @pytest.mark.asyncio
    async def test_skips(self, write_job, memory_store):
        orch = BatchOrchestrator({"documents": TextDocumentAdapter()}, UploadGateway(memory_store))
        result = await orch.run(write_job({
            "kbcreationtools": "1",
            "documents": [{"file": "missing.md", "bucket": "my-kb"}],
            "github": [{"owner": "octo", "repo": "hello", "bucket": "my-kb"}],
        }))
        reasons = [(s.group, s.reason) for s in result.skipped]
        assert reasons == [
            ("documents", "File not found"),
            ("github", "No adapter registered for github"),
        ]
        assert result.processed == []
        assert result.failed == []

    @pytest.mark.asyncio
    async def test_precondition_error_fails_only_that_item(self, write_job, memory_store, tmp_path):
        (tmp_path / "ok.txt").write_text("fine")
        orch = BatchOrchestrator({"documents": TextDocumentAdapter()}, UploadGateway(memory_store))
        result = await orch.run(write_job({
            "kbcreationtools": "1",
            "defaultBucket": "kb",
            "documents": [{"file": "bad\u0000name.txt"}, {"file": "ok.txt"}],
        }))

        assert len(result.failed) == 1
        assert result.failed[0].index == 0
        assert result.failed[0].error.startswith("Precondition check failed")
        assert [o.context for o in result.processed] == [{"file": "ok.txt"}]
        assert memory_store.objects[("kb", "ok.md")] == b"fine"
        assert orch.state == BatchState.COMPLETED

    @pytest.mark.asyncio
    async def test_skip_without_bucket(self, write_job, memory_store):
        adapter = _mock_adapter("rss")
        orch = BatchOrchestrator({"rss": adapter}, UploadGateway(memory_store))
        result = await orch.run(write_job({"kbcreationtools": "1", "rss": [{"feedUrl": "x"}]}))
        assert result.skipped[0].reason.startswith("No bucket")
        adapter.process.assert_not_called()

    @pytest.mark.asyncio
    async def test_schema_error_is_failure(self, write_job, memory_store):
        adapter = _mock_adapter("reddit")
        orch = BatchOrchestrator({"reddit": adapter}, UploadGateway(memory_store), default_bucket="kb")
        result = await orch.run(write_job({
            "kbcreationtools": "1", "reddit": [{"q": "typo", "outputFile": "r.md"}],
        }))
        assert len(result.failed) == 1
        assert "query" in result.failed[0].error
        assert result.failed[0].context == {"outputFile": "r.md"}

    @pytest.mark.asyncio
    async def test_bucket_resolution(self, write_job, memory_store):
        adapter = _mock_adapter("webpage")
        orch = BatchOrchestrator(
            {"webPages": adapter}, UploadGateway(memory_store), default_bucket="fallback",
        )
        job = {
            "kbcreationtools": "1",
            "webPages": [{"url": "https://a.example.com", "bucket": "item-kb"},
                         {"url": "https://b.example.com"}],
        }
        result = await orch.run(write_job(job))
        assert [o.bucket for o in result.processed] == ["item-kb", "fallback"]

        result = await orch.run(write_job({**job, "defaultBucket": "job-kb"}))
        assert [o.bucket for o in result.processed] == ["item-kb", "job-kb"]

    @pytest.mark.asyncio
    async def test_items_run_in_own_sessions(self, write_job, memory_store, ledger, local_log):
        gateway = UploadGateway(memory_store, ledger=ledger)
        orch = BatchOrchestrator({"webPages": UploadingAdapter()}, gateway, ledger=ledger)
        result = await orch.run(write_job({
            "kbcreationtools": "1",
            "defaultBucket": "kb",
            "webPages": [{"url": "https://docs.example.com/a"},
                         {"url": "https://fail.example.org"}],
        }))

        assert len(result.processed) == 1
        lines = [json.loads(x) for x in local_log.path.read_text().splitlines()]
        assert [line["operationId"] for line in lines] == ["example", "example"]
        assert "status" not in lines[0]
        assert lines[0]["documentDetails"] == ["page.md"]
        assert lines[1]["status"] == "failed"
        assert lines[1]["documentsProcessed"] == 0

        remote = memory_store.objects[("kb", LEDGER_LOG_KEY)].decode().splitlines()
        assert len(remote) == 2
        page_keys = [k for k in memory_store.keys("kb") if k != LEDGER_LOG_KEY]
        assert page_keys == [f"example/{lines[0]['uploadHash']}/page.md"]
        assert ledger.active_session is None

    @pytest.mark.asyncio
    async def test_dry_run_abandons_sessions(self, write_job, memory_store, ledger, local_log):
        gateway = UploadGateway(memory_store, ledger=ledger, dry_run=True)
        orch = BatchOrchestrator({"webPages": UploadingAdapter()}, gateway, ledger=ledger)
        result = await orch.run(write_job({
            "kbcreationtools": "1", "defaultBucket": "kb",
            "webPages": [{"url": "https://a.example.com"}],
        }))
        assert len(result.processed) == 1
        assert result.processed[0].details["key"].startswith("example/")
        assert memory_store.objects == {}
        assert not local_log.path.exists()

    @pytest.mark.asyncio
    async def test_concurrent_groups_keep_canonical_order(self, write_job, memory_store, ledger):
        order: list[str] = []

        class SlowAdapter(BaseSourceAdapter):
            def __init__(self, name: str, delay: float) -> None:
                self._name = name
                self._delay = delay

            @property
            def source_type(self) -> str:
                return self._name

            async def process(self, item, ctx):
                await asyncio.sleep(self._delay)
                order.append(self._name)
                return {}

        gateway = UploadGateway(memory_store, ledger=ledger)
        orch = BatchOrchestrator(
            {"reddit": SlowAdapter("reddit", 0.02), "rss": SlowAdapter("rss", 0.0)},
            gateway,
            ledger=ledger,
            default_bucket="kb",
            concurrent_groups=True,
        )
        result = await orch.run(write_job({
            "kbcreationtools": "1",
            "rss": [{"feedUrl": "https://feeds.example.com/rss"}],
            "reddit": [{"query": "kb tools"}],
        }))

        assert [o.group for o in result.processed] == ["reddit", "rss"]
        assert sorted(order) == ["reddit", "rss"]
        assert ledger.active_session is None
