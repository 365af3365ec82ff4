# src/batch/orchestrator.py — v1
"""Batch orchestrator: drive every item of a job file through its adapter.

Workflow:
    1. Load the job file; job-level problems abort before any item runs.
    2. For each group in canonical order, for each item:
       validate its schema, check preconditions, resolve its bucket,
       then run its adapter (inside its own ledger session when a ledger
       is supplied).
    3. Classify every item into exactly one of processed / failed / skipped.

One item's failure never stops the batch.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from pathlib import Path
from typing import TYPE_CHECKING, Any, Literal

from pydantic import ValidationError

from kbcreationtools.batch.adapters import AdapterContext, BaseSourceAdapter
from kbcreationtools.batch.models import (
    GROUPS,
    JOB_MARKER_KEY,
    BatchJob,
    BatchResult,
    BatchState,
    GroupSpec,
    ItemOutcome,
    JobItem,
)
from kbcreationtools.logging.context import set_batch_group

if TYPE_CHECKING:
    from kbcreationtools.ledger.session import OperationLedger
    from kbcreationtools.storage.gateway import UploadGateway

logger = logging.getLogger(__name__)

Classification = Literal["processed", "failed", "skipped"]

# Raw item keys worth echoing back when an item fails schema validation.
_IDENTIFYING_KEYS = (
    "file", "url", "source", "owner", "repo", "query", "searchTerm", "feedUrl", "outputFile",
)


class BatchJobError(Exception):
    """Raised when a job file cannot be run at all."""


def load_batch_job(path: str | Path) -> BatchJob:
    """Load and structurally check a job file.

    Raises:
        BatchJobError: Missing file, invalid JSON, missing or non-string
            marker, a present group that is not a list, or a non-string
            ``defaultBucket``.
    """
    path = Path(path)
    if not path.is_file():
        raise BatchJobError(f"Configuration file not found: {path}")

    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise BatchJobError(f"Invalid JSON in {path}: {e}") from e
    except OSError as e:
        raise BatchJobError(f"Cannot read {path}: {e}") from e

    if not isinstance(raw, dict):
        raise BatchJobError(f"{path} must contain a JSON object")

    version = raw.get(JOB_MARKER_KEY)
    if not version or not isinstance(version, str):
        raise BatchJobError(
            f'Invalid configuration file: missing or invalid "{JOB_MARKER_KEY}" key. '
            f'Expected format: {{"{JOB_MARKER_KEY}": "version"}}'
        )

    default_bucket = raw.get("defaultBucket")
    if default_bucket is not None and not isinstance(default_bucket, str):
        raise BatchJobError('"defaultBucket" must be a string')

    groups: dict[str, list[Any]] = {}
    for group in GROUPS:
        items = raw.get(group.name)
        if items is None:
            continue
        if not isinstance(items, list):
            raise BatchJobError(f'"{group.name}" must be an array')
        groups[group.name] = items

    return BatchJob(
        version=version,
        default_bucket=default_bucket or None,
        job_dir=path.resolve().parent,
        groups=groups,
    )


def _raw_context(raw: Any) -> dict[str, Any]:
    if not isinstance(raw, dict):
        return {}
    return {k: raw[k] for k in _IDENTIFYING_KEYS if isinstance(raw.get(k), str)}


class BatchOrchestrator:
    """Run batch jobs through registered source adapters.

    Args:
        adapters: Adapters keyed by job group name.
        gateway: Upload gateway handed to adapters.
        ledger: Optional ledger; when given, each item runs in its own session.
        default_bucket: Bucket used when neither the item nor the job names one.
        concurrent_groups: Run groups concurrently instead of one after another.
        dry_run: Adapters are told not to upload and sessions are abandoned.
    """

    def __init__(
        self,
        adapters: dict[str, BaseSourceAdapter],
        gateway: UploadGateway,
        ledger: OperationLedger | None = None,
        default_bucket: str | None = None,
        concurrent_groups: bool = False,
        dry_run: bool = False,
    ) -> None:
        self._adapters = adapters
        self._gateway = gateway
        self._ledger = ledger
        self._default_bucket = default_bucket
        self._concurrent_groups = concurrent_groups
        self._dry_run = dry_run or gateway.dry_run
        # Ledger sessions are one-at-a-time per process.
        self._session_lock = asyncio.Lock()
        self.state = BatchState.IDLE

    async def run(self, job_path: str | Path) -> BatchResult:
        """Load a job file and run it.

        Raises:
            BatchJobError: If the job file is unusable (state becomes ABORTED).
        """
        self.state = BatchState.RUNNING
        try:
            job = load_batch_job(job_path)
        except BatchJobError as e:
            self.state = BatchState.ABORTED
            logger.error("Batch aborted: %s", e)
            raise
        return await self.run_job(job)

    async def run_job(self, job: BatchJob) -> BatchResult:
        """Run an already loaded job."""
        t0 = time.perf_counter()
        self.state = BatchState.RUNNING
        groups = [g for g in GROUPS if job.groups.get(g.name)]
        logger.info(
            "Starting batch %s: %d groups%s",
            job.version, len(groups), " (dry run)" if self._dry_run else "",
        )

        if self._concurrent_groups:
            # gather keeps argument order, so results stay in canonical order.
            partials = await asyncio.gather(*(self._run_group(job, g) for g in groups))
        else:
            partials = [await self._run_group(job, g) for g in groups]

        result = BatchResult()
        for partial in partials:
            result.extend(partial)

        self.state = BatchState.COMPLETED
        result.state = self.state
        result.duration_seconds = round(time.perf_counter() - t0, 2)
        logger.info(
            "Batch completed in %.2fs: %d processed, %d failed, %d skipped",
            result.duration_seconds, len(result.processed),
            len(result.failed), len(result.skipped),
        )
        return result

    async def _run_group(self, job: BatchJob, group: GroupSpec) -> BatchResult:
        items = job.groups[group.name]
        result = BatchResult()
        set_batch_group(group.name)
        try:
            logger.info("Processing %d %s item(s)", len(items), group.name)
            for index, raw in enumerate(items):
                kind, outcome = await self._run_item(job, group, index, raw)
                result.add(outcome, kind)
        finally:
            set_batch_group(None)
        return result

    async def _run_item(
        self,
        job: BatchJob,
        group: GroupSpec,
        index: int,
        raw: Any,
    ) -> tuple[Classification, ItemOutcome]:
        try:
            item = group.item_model.model_validate(raw)
        except ValidationError as e:
            first = e.errors()[0]
            field = ".".join(str(p) for p in first["loc"]) or group.name
            outcome = ItemOutcome(
                type=group.source_type, group=group.name, index=index,
                context=_raw_context(raw),
                error=f"Invalid item: {field}: {first['msg']}",
            )
            logger.warning("%s[%d] failed validation: %s", group.name, index, outcome.error)
            return "failed", outcome

        bucket = item.target_bucket() or job.default_bucket or self._default_bucket
        outcome = ItemOutcome(
            type=group.source_type, group=group.name, index=index,
            bucket=bucket, context=item.context(),
        )

        try:
            reason = self._skip_reason(job, group, item, bucket)
        except Exception as exc:
            outcome.error = f"Precondition check failed: {exc}"
            logger.warning("%s[%d] failed: %s", group.name, index, outcome.error)
            return "failed", outcome
        if reason is not None:
            outcome.reason = reason
            logger.warning("Skipping %s[%d]: %s", group.name, index, reason)
            return "skipped", outcome

        adapter = self._adapters[group.name]
        ctx = AdapterContext(
            gateway=self._gateway,
            bucket=bucket,  # type: ignore[arg-type]
            job_dir=job.job_dir,
            dry_run=self._dry_run,
        )
        try:
            if self._ledger is None:
                details = await adapter.process(item, ctx)
            else:
                details = await self._process_in_session(
                    self._ledger, adapter, item, ctx, group,
                )
        except Exception as exc:
            outcome.error = str(exc) or type(exc).__name__
            logger.warning("%s[%d] failed: %s", group.name, index, outcome.error)
            return "failed", outcome

        outcome.details = details or {}
        return "processed", outcome

    def _skip_reason(
        self,
        job: BatchJob,
        group: GroupSpec,
        item: JobItem,
        bucket: str | None,
    ) -> str | None:
        reason = item.precondition(job.job_dir)
        if reason is not None:
            return reason
        if group.name not in self._adapters:
            return f"No adapter registered for {group.name}"
        if not bucket:
            return "No bucket specified and no default bucket available"
        return None

    async def _process_in_session(
        self,
        ledger: OperationLedger,
        adapter: BaseSourceAdapter,
        item: JobItem,
        ctx: AdapterContext,
        group: GroupSpec,
    ) -> dict[str, Any]:
        async with self._session_lock:
            async with ledger.session(
                item.session_context(group.source_type),
                self._gateway.store,
                ctx.bucket,
                dry_run=self._dry_run,
            ):
                return await adapter.process(item, ctx)
