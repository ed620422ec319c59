"""Blinded webhook table: names are stored only as salted digests."""

from __future__ import annotations

import hashlib
import logging
import secrets
import threading
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Mapping

log = logging.getLogger(__name__)

SECRET_SIZE = 32


def _as_bytes(name: str | bytes) -> bytes:
    if isinstance(name, str):
        return name.encode("utf-8")
    return name


class BlindedTable:
    """Immutable mapping from ``sha256(name || secret)`` to command."""

    def __init__(self, hooks: Mapping[str, str], secret: bytes) -> None:
        self._secret = secret
        self._table: dict[bytes, str] = {
            self._digest(name): command for name, command in hooks.items()
        }

    def __repr__(self) -> str:
        return f"<BlindedTable entries={len(self._table)}>"

    def __len__(self) -> int:
        return len(self._table)

    def _digest(self, name: str | bytes) -> bytes:
        return hashlib.sha256(_as_bytes(name) + self._secret).digest()

    def get(self, name: str | bytes) -> str | None:
        """Return the command configured for name, or None."""
        return self._table.get(self._digest(name))


class WebhookResolver:
    """Builds the blinded table once, on first use, and answers lookups.

    Concurrent first callers block on a lock until the single construction
    finishes; afterwards the finished table is read without locking.
    """

    def __init__(self) -> None:
        self._table: BlindedTable | None = None
        self._lock = threading.Lock()

    def __repr__(self) -> str:
        return f"<WebhookResolver built={self._table is not None}>"

    def _get_table(self, hooks: Mapping[str, str]) -> BlindedTable:
        table = self._table
        if table is not None:
            return table
        with self._lock:
            if self._table is None:
                self._table = BlindedTable(hooks, secrets.token_bytes(SECRET_SIZE))
                log.info("Built blinded webhook table (%d entries)", len(self._table))
            return self._table

    def resolve(self, name: str | bytes, hooks: Mapping[str, str]) -> str | None:
        """Return the command for a presented webhook name, or None.

        ``hooks`` is only read on the first call; later calls use the table
        built from it. Unknown and malformed names are indistinguishable.
        """
        return self._get_table(hooks).get(name)
