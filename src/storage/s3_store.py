# src/storage/s3_store.py — v2
"""S3-compatible object store (OBJECT_STORE=s3).

Works against AWS S3, DigitalOcean Spaces, MinIO and other S3-compatible
endpoints. Requires 'boto3' package: pip install boto3.
"""

from __future__ import annotations

import logging

from kbcreationtools.config.settings import MAX_KEYS_PER_REQUEST
from kbcreationtools.storage.base_object_store import (
    BaseObjectStore,
    ObjectNotFoundError,
    ObjectStoreError,
)
from kbcreationtools.storage.models import ListPage

logger = logging.getLogger(__name__)


class S3ObjectStore(BaseObjectStore):
    """Object store backed by a boto3 S3 client."""

    def __init__(
        self,
        region: str | None = None,
        endpoint_url: str | None = None,
        access_key_id: str | None = None,
        secret_access_key: str | None = None,
    ) -> None:
        """Initialize the S3 client.

        Args:
            region: Bucket region (boto3 default chain if not set).
            endpoint_url: Custom endpoint for Spaces/MinIO storage.
            access_key_id: Explicit access key (boto3 default chain if not set).
            secret_access_key: Explicit secret key, paired with access_key_id.
        """
        try:
            import boto3
        except ImportError as e:
            raise ImportError(
                "boto3 package required for S3 object store: pip install boto3"
            ) from e

        kwargs: dict = {}
        if region:
            kwargs["region_name"] = region
        if endpoint_url:
            kwargs["endpoint_url"] = endpoint_url
        if access_key_id and secret_access_key:
            kwargs["aws_access_key_id"] = access_key_id
            kwargs["aws_secret_access_key"] = secret_access_key

        self._s3 = boto3.client("s3", **kwargs)

    async def put(self, bucket: str, key: str, body: bytes) -> None:
        """Upload body to s3://bucket/key."""
        self._s3.put_object(Bucket=bucket, Key=key, Body=body)
        logger.debug("S3 put: s3://%s/%s (%d bytes)", bucket, key, len(body))

    async def get(self, bucket: str, key: str) -> bytes:
        """Download s3://bucket/key."""
        try:
            response = self._s3.get_object(Bucket=bucket, Key=key)
        except self._s3.exceptions.NoSuchKey as e:
            raise ObjectNotFoundError(f"s3://{bucket}/{key} does not exist") from e
        return response["Body"].read()

    async def list_page(
        self,
        bucket: str,
        prefix: str,
        continuation_token: str | None = None,
        max_keys: int = MAX_KEYS_PER_REQUEST,
    ) -> ListPage:
        """List one page of keys with ListObjectsV2."""
        kwargs: dict = {"Bucket": bucket, "Prefix": prefix, "MaxKeys": max_keys}
        if continuation_token:
            kwargs["ContinuationToken"] = continuation_token

        response = self._s3.list_objects_v2(**kwargs)
        keys = [obj["Key"] for obj in response.get("Contents", [])]
        next_token = response.get("NextContinuationToken") if response.get(
            "IsTruncated"
        ) else None
        return ListPage(keys=keys, next_token=next_token)

    async def delete_batch(self, bucket: str, keys: list[str]) -> None:
        """Delete keys with a single DeleteObjects request."""
        if not keys:
            return
        if len(keys) > MAX_KEYS_PER_REQUEST:
            raise ValueError(
                f"DeleteObjects accepts at most {MAX_KEYS_PER_REQUEST} keys, got {len(keys)}"
            )

        response = self._s3.delete_objects(
            Bucket=bucket,
            Delete={"Objects": [{"Key": k} for k in keys], "Quiet": True},
        )
        errors = response.get("Errors", [])
        if errors:
            failed = [err.get("Key", "") for err in errors]
            first = errors[0]
            raise ObjectStoreError(
                f"DeleteObjects failed for {len(failed)} of {len(keys)} keys "
                f"({first.get('Code')}: {first.get('Message')})",
                failed_keys=failed,
            )
        logger.debug("S3 delete: %d keys from %s", len(keys), bucket)
