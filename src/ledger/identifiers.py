# src/ledger/identifiers.py — v1
"""Operation id and upload hash generation.

The operation id is a human-meaningful label (domain, document or output
name) and repeats across runs of the same source. The upload hash is random
per session; together they form the storage namespace of one run.
"""

from __future__ import annotations

import base64
import hashlib
import json
import re
import secrets
from datetime import datetime, timezone
from urllib.parse import urlsplit

from kbcreationtools.ledger.models import SessionContext

# Length of the fallback operation id when no hint is available.
RANDOM_ID_LENGTH = 8

# Hex characters in an upload hash.
UPLOAD_HASH_LENGTH = 6

_EXTENSION_RE = re.compile(r"\.[^/.]+$")


def generate_upload_hash() -> str:
    """Return a fresh 6-character hex token from a secure random source."""
    return secrets.token_hex((UPLOAD_HASH_LENGTH + 1) // 2)[:UPLOAD_HASH_LENGTH]


def strip_extension(name: str) -> str:
    """Remove the final extension: 'guide.v2.pdf' -> 'guide.v2'."""
    return _EXTENSION_RE.sub("", name)


def operation_id_from_url(url: str) -> str | None:
    """Registrable-domain label of a URL, else its first path segment.

    'https://docs.example.com/guide' -> 'example'
    'http://localhost/handbook/intro' -> 'handbook'
    Returns None for strings that are not absolute URLs.
    """
    try:
        parts = urlsplit(url)
        hostname = parts.hostname
    except ValueError:
        return None
    if not parts.scheme or not hostname:
        return None

    labels = [label for label in hostname.split(".") if label]
    if len(labels) >= 2:
        return labels[-2]

    segments = [seg for seg in parts.path.split("/") if seg]
    return segments[0] if segments else None


def random_operation_id(
    context: SessionContext,
    timestamp: datetime | None = None,
    nonce: str | None = None,
) -> str:
    """Digest of the context, wall-clock time and a random nonce.

    URL-safe base64 so the id can never contain a '/' and break the
    namespace prefix.
    """
    ts = timestamp or datetime.now(timezone.utc)
    payload = json.dumps(
        {
            **context.model_dump(exclude_none=True),
            "timestamp": ts.isoformat(),
            "random": nonce if nonce is not None else secrets.token_hex(8),
        },
        sort_keys=True,
    )
    digest = hashlib.sha256(payload.encode("utf-8")).digest()
    return base64.urlsafe_b64encode(digest).decode("ascii")[:RANDOM_ID_LENGTH]


def generate_operation_id(
    context: SessionContext,
    timestamp: datetime | None = None,
    nonce: str | None = None,
) -> str:
    """Derive the operation id from the first hint that yields a non-empty value.

    Priority: URL domain (or first path segment), document name without
    extension, output file name without extension, random digest.
    """
    if context.url:
        from_url = operation_id_from_url(context.url)
        if from_url:
            return from_url

    if context.document_name:
        stem = strip_extension(context.document_name)
        if stem:
            return stem

    if context.output_file_name:
        stem = strip_extension(context.output_file_name)
        if stem:
            return stem

    return random_operation_id(context, timestamp=timestamp, nonce=nonce)
