# src/storage/namespacer.py — v1
"""Storage key namespacing.

Every artifact uploaded during a session lives under
``{operation_id}/{upload_hash}/``. The same derivation is used on write
(``qualify``) and on delete (``namespace_prefix``) so a ledger entry is
enough to rebuild the exact prefix of everything its session produced.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from kbcreationtools.ledger.session import Session

PRODUCT_NAME = "kbcreationtools"

# Fixed, never namespaced.
LEDGER_LOG_KEY = f".{PRODUCT_NAME}/log"


def namespace_prefix(operation_id: str, upload_hash: str) -> str:
    """Return the key prefix for one session, with trailing slash."""
    return f"{operation_id}/{upload_hash}/"


def qualify(key: str, session: Session | None) -> str:
    """Qualify a logical key with the active session's namespace.

    Returns the key unchanged when no session is active or when it is the
    reserved ledger log key.
    """
    if session is None or key == LEDGER_LOG_KEY:
        return key
    return namespace_prefix(session.operation_id, session.upload_hash) + key
