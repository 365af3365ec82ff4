# src/batch/models.py — v2
"""Batch processing models: job items per group, outcomes, BatchResult.

Item models mirror the JSON job file (camelCase keys); unknown keys are kept
so adapters can read source-specific options the core does not know about.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from kbcreationtools.ledger.models import SessionContext

# Required string key that marks a file as a batch job description.
JOB_MARKER_KEY = "kbcreationtools"


class BatchState(str, enum.Enum):
    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    ABORTED = "aborted"


class JobItem(BaseModel):
    """Common base for one entry of a job group."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="allow",
    )

    bucket: str | None = None
    output_file: str | None = None

    def target_bucket(self) -> str | None:
        """Bucket named by the item itself, if any."""
        return self.bucket

    def context(self) -> dict[str, Any]:
        """Identifying fields reported in the item's outcome."""
        return {}

    def session_context(self, source_type: str) -> SessionContext:
        return SessionContext(output_file_name=self.output_file, source_type=source_type)

    def precondition(self, job_dir: Path) -> str | None:
        """Reason to skip the item without attempting it, or None."""
        return None


class ProcessDocsOptions(BaseModel):
    """Follow-up crawl of the URLs a link or sitemap step produced."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="allow",
    )

    selector: str = "body"
    selector_type: str = "css"
    bucket: str | None = None


class DocumentItem(JobItem):
    file: str

    def resolve_path(self, job_dir: Path) -> Path:
        """Path of the referenced file, relative to the job file's directory."""
        return (job_dir / self.file).resolve()

    def context(self) -> dict[str, Any]:
        return {"file": self.file}

    def session_context(self, source_type: str) -> SessionContext:
        return SessionContext(document_name=Path(self.file).name, source_type=source_type)

    def precondition(self, job_dir: Path) -> str | None:
        if not self.resolve_path(job_dir).is_file():
            return "File not found"
        return None


class WebPageItem(JobItem):
    url: str
    selector: str = "body"
    selector_type: str = "css"

    def context(self) -> dict[str, Any]:
        return {"url": self.url}

    def session_context(self, source_type: str) -> SessionContext:
        return SessionContext(url=self.url, source_type=source_type)


class LinkExtractionItem(JobItem):
    url: str
    selector: str = "body"
    selector_type: str = "css"
    process_docs: ProcessDocsOptions | None = None

    def target_bucket(self) -> str | None:
        if self.process_docs and self.process_docs.bucket:
            return self.process_docs.bucket
        return self.bucket

    def context(self) -> dict[str, Any]:
        return {"url": self.url, "outputFile": self.output_file}

    def session_context(self, source_type: str) -> SessionContext:
        return SessionContext(
            url=self.url, output_file_name=self.output_file, source_type=source_type,
        )


class SitemapItem(JobItem):
    source: str
    process_docs: ProcessDocsOptions | None = None

    def target_bucket(self) -> str | None:
        if self.process_docs and self.process_docs.bucket:
            return self.process_docs.bucket
        return self.bucket

    def context(self) -> dict[str, Any]:
        return {"source": self.source, "outputFile": self.output_file}

    def session_context(self, source_type: str) -> SessionContext:
        # A local sitemap file is not a URL; the output name then names the run.
        return SessionContext(
            url=self.source, output_file_name=self.output_file, source_type=source_type,
        )


class GithubItem(JobItem):
    owner: str
    repo: str

    def context(self) -> dict[str, Any]:
        return {"owner": self.owner, "repo": self.repo}

    def session_context(self, source_type: str) -> SessionContext:
        return SessionContext(
            url=f"https://github.com/{self.owner}/{self.repo}", source_type=source_type,
        )


class IntercomItem(JobItem):
    def context(self) -> dict[str, Any]:
        return {"outputFile": self.output_file} if self.output_file else {}


class RedditItem(JobItem):
    query: str

    def context(self) -> dict[str, Any]:
        return {"query": self.query}


class StackOverflowItem(JobItem):
    search_term: str

    def context(self) -> dict[str, Any]:
        return {"searchTerm": self.search_term}


class LlmsItem(JobItem):
    url: str

    def context(self) -> dict[str, Any]:
        return {"url": self.url, "outputFile": self.output_file}

    def session_context(self, source_type: str) -> SessionContext:
        return SessionContext(
            url=self.url, output_file_name=self.output_file, source_type=source_type,
        )


class RssItem(JobItem):
    feed_url: str

    def context(self) -> dict[str, Any]:
        return {"feedUrl": self.feed_url}

    def session_context(self, source_type: str) -> SessionContext:
        return SessionContext(url=self.feed_url, source_type=source_type)


@dataclass(frozen=True)
class GroupSpec:
    """A named job group, its source type and item schema."""

    name: str
    source_type: str
    item_model: type[JobItem]


# Canonical processing order.
GROUPS: tuple[GroupSpec, ...] = (
    GroupSpec("documents", "document", DocumentItem),
    GroupSpec("webPages", "webpage", WebPageItem),
    GroupSpec("linkExtraction", "link_extraction", LinkExtractionItem),
    GroupSpec("sitemaps", "sitemap", SitemapItem),
    GroupSpec("github", "github", GithubItem),
    GroupSpec("intercom", "intercom", IntercomItem),
    GroupSpec("reddit", "reddit", RedditItem),
    GroupSpec("stackoverflow", "stackoverflow", StackOverflowItem),
    GroupSpec("llms", "llms", LlmsItem),
    GroupSpec("rss", "rss", RssItem),
)

GROUP_NAMES: tuple[str, ...] = tuple(g.name for g in GROUPS)


class BatchJob(BaseModel):
    """A loaded job description; items stay raw until their turn."""

    version: str
    default_bucket: str | None = None
    job_dir: Path = Path(".")
    groups: dict[str, list[Any]] = Field(default_factory=dict)


class ItemOutcome(BaseModel):
    """Result of one job item."""

    type: str
    group: str
    index: int
    bucket: str | None = None
    context: dict[str, Any] = Field(default_factory=dict)
    error: str | None = None
    reason: str | None = None
    details: dict[str, Any] = Field(default_factory=dict)


class BatchResult(BaseModel):
    """Summary result of a batch run."""

    processed: list[ItemOutcome] = Field(default_factory=list)
    failed: list[ItemOutcome] = Field(default_factory=list)
    skipped: list[ItemOutcome] = Field(default_factory=list)
    state: BatchState = BatchState.IDLE
    duration_seconds: float = 0.0

    @property
    def total(self) -> int:
        return len(self.processed) + len(self.failed) + len(self.skipped)

    def add(self, outcome: ItemOutcome, kind: Literal["processed", "failed", "skipped"]) -> None:
        getattr(self, kind).append(outcome)

    def extend(self, other: BatchResult) -> None:
        self.processed.extend(other.processed)
        self.failed.extend(other.failed)
        self.skipped.extend(other.skipped)
