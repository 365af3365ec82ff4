# src/ledger/sinks.py — v1
"""The two ledger logs: a local file and a remote object.

Both appends are read-modify-write, not atomic appends. Two processes ending
sessions at the same moment can race and one line can be lost from either
log. Sessions are rare and operator-driven so this is accepted; the local
log is the log of record and the remote log a mirror for listing from other
machines.
"""

from __future__ import annotations

import logging
from pathlib import Path

from kbcreationtools.storage.base_object_store import (
    BaseObjectStore,
    ObjectNotFoundError,
)
from kbcreationtools.storage.namespacer import LEDGER_LOG_KEY

logger = logging.getLogger(__name__)


class LocalLedgerLog:
    """Line-delimited JSON log on local disk (``~/.kbcreationtools/log``)."""

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path).expanduser()

    @property
    def path(self) -> Path:
        return self._path

    async def read_bytes(self) -> bytes:
        try:
            return self._path.read_bytes()
        except FileNotFoundError:
            return b""

    async def read_text(self) -> str:
        """Return the whole log, or '' if it does not exist yet.

        Undecodable bytes become U+FFFD so one corrupt line only spoils
        itself; the parser then skips it as malformed.
        """
        data = await self.read_bytes()
        return data.decode("utf-8", errors="replace")

    async def append(self, line: str) -> None:
        """Append one line, creating the directory on first use.

        Existing bytes are written back untouched, corrupt ones included.
        """
        self._path.parent.mkdir(parents=True, exist_ok=True)
        existing = await self.read_bytes()
        self._path.write_bytes(existing + line.encode("utf-8"))
        logger.debug("Appended ledger line to %s", self._path)


class RemoteLedgerLog:
    """Line-delimited JSON log stored as one object at a fixed key in a bucket."""

    def __init__(
        self,
        store: BaseObjectStore,
        bucket: str,
        key: str = LEDGER_LOG_KEY,
    ) -> None:
        self._store = store
        self._bucket = bucket
        self._key = key

    @property
    def location(self) -> str:
        return f"{self._bucket}/{self._key}"

    async def read_text(self) -> str:
        """Return the whole log, or '' if the object has not been created yet."""
        try:
            data = await self._store.get(self._bucket, self._key)
        except ObjectNotFoundError:
            return ""
        return data.decode("utf-8", errors="replace")

    async def append(self, line: str) -> None:
        """Read the object, concatenate and overwrite it."""
        existing = await self.read_text()
        body = (existing + line).encode("utf-8")
        await self._store.put(self._bucket, self._key, body)
        logger.debug("Appended ledger line to %s", self.location)
