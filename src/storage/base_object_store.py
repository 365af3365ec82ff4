# src/storage/base_object_store.py — v2
"""Abstract object store interface.

The store is the only collaborator that talks to remote storage. Every
method takes the bucket explicitly because one batch job may target several
buckets.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from kbcreationtools.storage.models import ListPage


class ObjectStoreError(Exception):
    """Raised when the store reports a failure that is not an exception of its client.

    S3 ``DeleteObjects`` returns per-key errors in a successful response;
    those are surfaced through this error.
    """

    def __init__(self, message: str, failed_keys: list[str] | None = None) -> None:
        self.failed_keys = failed_keys or []
        super().__init__(message)


class ObjectNotFoundError(ObjectStoreError):
    """Raised by ``get`` when the key does not exist."""


class BaseObjectStore(ABC):
    """Unified interface for S3-compatible storage backends."""

    @abstractmethod
    async def put(self, bucket: str, key: str, body: bytes) -> None:
        """Write body at key, overwriting any existing object."""

    @abstractmethod
    async def get(self, bucket: str, key: str) -> bytes:
        """Read the object at key.

        Raises:
            ObjectNotFoundError: If the key does not exist.
        """

    @abstractmethod
    async def list_page(
        self,
        bucket: str,
        prefix: str,
        continuation_token: str | None = None,
        max_keys: int = 1000,
    ) -> ListPage:
        """List one page of keys starting with prefix."""

    @abstractmethod
    async def delete_batch(self, bucket: str, keys: list[str]) -> None:
        """Delete up to the store's per-call maximum of keys in one request.

        Deleting an absent key is not an error.
        """
