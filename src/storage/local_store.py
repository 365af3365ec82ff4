# src/storage/local_store.py — v2
"""Local filesystem object store (OBJECT_STORE=local).

Each bucket is a directory under the store root and each key a file path
relative to it. Listing is paginated the same way S3 paginates, using the
last key of a page as the continuation token, so deletion logic behaves
identically against both backends.
"""

from __future__ import annotations

from pathlib import Path

from kbcreationtools.config.settings import MAX_KEYS_PER_REQUEST
from kbcreationtools.storage.base_object_store import (
    BaseObjectStore,
    ObjectNotFoundError,
)
from kbcreationtools.storage.models import ListPage


class LocalObjectStore(BaseObjectStore):
    """Store objects as files under a root directory."""

    def __init__(self, root: str | Path) -> None:
        """Initialize with the root directory (created on first write)."""
        self._root = Path(root).expanduser()

    def _resolve(self, bucket: str, key: str) -> Path:
        """Resolve bucket/key to a path, refusing keys that escape the bucket."""
        bucket_dir = (self._root / bucket).resolve()
        path = (bucket_dir / key).resolve()
        if bucket_dir not in path.parents:
            raise ValueError(f"Key escapes bucket directory: {key!r}")
        return path

    async def put(self, bucket: str, key: str, body: bytes) -> None:
        p = self._resolve(bucket, key)
        p.parent.mkdir(parents=True, exist_ok=True)
        p.write_bytes(body)

    async def get(self, bucket: str, key: str) -> bytes:
        p = self._resolve(bucket, key)
        if not p.is_file():
            raise ObjectNotFoundError(f"{bucket}/{key} does not exist")
        return p.read_bytes()

    async def list_page(
        self,
        bucket: str,
        prefix: str,
        continuation_token: str | None = None,
        max_keys: int = MAX_KEYS_PER_REQUEST,
    ) -> ListPage:
        """List keys in lexicographic order, starting after the token."""
        bucket_dir = self._root / bucket
        if not bucket_dir.is_dir():
            return ListPage()

        keys = sorted(
            p.relative_to(bucket_dir).as_posix()
            for p in bucket_dir.rglob("*")
            if p.is_file()
        )
        matching = [
            k for k in keys
            if k.startswith(prefix)
            and (continuation_token is None or k > continuation_token)
        ]
        page = matching[:max_keys]
        next_token = page[-1] if len(matching) > max_keys else None
        return ListPage(keys=page, next_token=next_token)

    async def delete_batch(self, bucket: str, keys: list[str]) -> None:
        if len(keys) > MAX_KEYS_PER_REQUEST:
            raise ValueError(
                f"delete_batch accepts at most {MAX_KEYS_PER_REQUEST} keys, got {len(keys)}"
            )
        for key in keys:
            p = self._resolve(bucket, key)
            if p.is_file():
                p.unlink()
