# src/storage/store_factory.py — v3
"""Factory: instantiate the object store from configuration."""

from __future__ import annotations

from kbcreationtools.config.settings import Settings
from kbcreationtools.storage.base_object_store import BaseObjectStore
from kbcreationtools.storage.local_store import LocalObjectStore


def create_object_store(settings: Settings) -> BaseObjectStore:
    """Create the appropriate object store based on settings.

    Args:
        settings: Application settings (OBJECT_STORE env var).

    Returns:
        BaseObjectStore instance.

    Raises:
        ValueError: If the store type is not supported.
    """
    if settings.object_store == "local":
        return LocalObjectStore(settings.local_store_root)

    if settings.object_store == "s3":
        from kbcreationtools.storage.s3_store import S3ObjectStore

        return S3ObjectStore(
            region=settings.bucket_region or None,
            endpoint_url=settings.bucket_endpoint or None,
            access_key_id=settings.access_key_id or None,
            secret_access_key=settings.secret_access_key or None,
        )

    raise ValueError(f"Unsupported object store: {settings.object_store!r}")
