# src/batch/adapters.py — v1
"""Source adapter interface and the built-in plain-text document adapter.

An adapter turns one job item into uploads through the gateway it is handed.
Crawlers for web pages, sitemaps, GitHub and the other network sources plug
in through the same interface; only local text documents ship here.
"""

from __future__ import annotations

import json
import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any

from kbcreationtools.batch.models import DocumentItem

if TYPE_CHECKING:
    from kbcreationtools.batch.models import JobItem
    from kbcreationtools.storage.gateway import UploadGateway

logger = logging.getLogger(__name__)

_TAG_RE = re.compile(r"<[^>]*>")
_SPACE_RE = re.compile(r"\s+")

PASSTHROUGH_EXTENSIONS = (".txt", ".md", ".rst")
HEADED_EXTENSIONS = (".csv", ".tsv", ".json", ".jsonl", ".xml")
HTML_EXTENSIONS = (".html",)


class UnsupportedFormatError(ValueError):
    """Raised when the document adapter cannot read a file type."""


@dataclass
class AdapterContext:
    """What an adapter needs besides the item itself."""

    gateway: UploadGateway
    bucket: str
    job_dir: Path
    dry_run: bool = False


class BaseSourceAdapter(ABC):
    """Unified interface for the per-group source adapters."""

    @property
    @abstractmethod
    def source_type(self) -> str:
        """Source-type discriminator this adapter handles (e.g. 'document')."""

    @abstractmethod
    async def process(self, item: JobItem, ctx: AdapterContext) -> dict[str, Any]:
        """Ingest one item. Returns details reported in the item's outcome."""


def supported_extensions() -> list[str]:
    return sorted(PASSTHROUGH_EXTENSIONS + HEADED_EXTENSIONS + HTML_EXTENSIONS)


def render_document(path: Path) -> str:
    """Read a local document as knowledge-base text.

    Raises:
        UnsupportedFormatError: For file types without a text rendition.
    """
    ext = path.suffix.lower()
    if ext in PASSTHROUGH_EXTENSIONS:
        return path.read_text(encoding="utf-8")

    if ext in HEADED_EXTENSIONS:
        content = path.read_text(encoding="utf-8")
        if ext == ".json":
            try:
                content = json.dumps(json.loads(content), indent=2, ensure_ascii=False)
            except json.JSONDecodeError:
                logger.debug("%s is not valid JSON, uploading as-is", path.name)
        return f"File: {path.name}\n\n{content}"

    if ext in HTML_EXTENSIONS:
        content = path.read_text(encoding="utf-8")
        return _SPACE_RE.sub(" ", _TAG_RE.sub(" ", content)).strip()

    raise UnsupportedFormatError(
        f"Unsupported file type: {ext or path.name}. "
        f"Supported: {', '.join(e.lstrip('.') for e in supported_extensions())}"
    )


def upload_name(path: Path) -> str:
    """Logical key a document is uploaded under: 'guide.html' -> 'guide.md'."""
    return f"{path.stem}.md"


class TextDocumentAdapter(BaseSourceAdapter):
    """Adapter for the ``documents`` group: local text-like files."""

    @property
    def source_type(self) -> str:
        return "document"

    async def process(self, item: JobItem, ctx: AdapterContext) -> dict[str, Any]:
        if not isinstance(item, DocumentItem):
            raise TypeError(f"Expected a document item, got {type(item).__name__}")

        path = item.resolve_path(ctx.job_dir)
        text = render_document(path)
        name = upload_name(path)
        stored = await ctx.gateway.upload(ctx.bucket, name, text)

        logger.info("Processed document %s as %s", path.name, name)
        return {
            "filename": name,
            "originalPath": str(path),
            "key": stored.key,
            "sizeBytes": stored.size_bytes,
            "dryRun": stored.dry_run,
        }


def default_adapters() -> dict[str, BaseSourceAdapter]:
    """Adapters registered out of the box, keyed by job group name."""
    return {"documents": TextDocumentAdapter()}
