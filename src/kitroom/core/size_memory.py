"""
Session-scoped memory of the last size used per player and edition.

Each write lands under three keys so a later command that omits the size can
still find one:

    player|edition    exact
    player|*          any edition for that player
    *|edition         any player for that edition

Lookups walk the same keys in that order. The memory is created empty for a
session, can be cleared, and is never written to disk.
"""

from __future__ import annotations

import threading

from loguru import logger

from .commands import Edition

WILDCARD = "*"


def _player_key(player_name: str | None) -> str:
    return player_name.strip().lower() if player_name and player_name.strip() else WILDCARD


def _edition_key(edition: Edition | str | None) -> str:
    if edition is None:
        return WILDCARD
    value = edition.value if isinstance(edition, Edition) else str(edition)
    return value.strip().lower() or WILDCARD


class SizeMemory:
    """Thread-safe last-used size lookup keyed by (player|*, edition|*)."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._data: dict[str, str] = {}

    @staticmethod
    def keys_for(player_name: str | None, edition: Edition | str | None) -> tuple[str, str, str]:
        player = _player_key(player_name)
        edition_key = _edition_key(edition)
        return (
            f"{player}|{edition_key}",
            f"{player}|{WILDCARD}",
            f"{WILDCARD}|{edition_key}",
        )

    def remember(self, player_name: str | None, edition: Edition | str | None, size: str | None) -> None:
        """Record `size` under all three fallback keys. Empty sizes are ignored."""
        if not size or not size.strip():
            return
        size = size.strip()
        with self._lock:
            for key in self.keys_for(player_name, edition):
                self._data[key] = size
        logger.debug("SizeMemory: remembered size {} for {}/{}", size, player_name or WILDCARD, edition or WILDCARD)

    def lookup(self, player_name: str | None, edition: Edition | str | None) -> str | None:
        """Return the most specific remembered size, or None."""
        with self._lock:
            for key in self.keys_for(player_name, edition):
                size = self._data.get(key)
                if size:
                    return size
        return None

    def clear(self) -> int:
        """Forget everything. Returns count of deleted entries."""
        with self._lock:
            count = len(self._data)
            self._data.clear()
            return count

    def __len__(self) -> int:
        with self._lock:
            return len(self._data)

    def __contains__(self, key: str) -> bool:
        with self._lock:
            return key in self._data
