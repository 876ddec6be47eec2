"""
Inventory rows and the client-local view the executor mutates optimistically.

InventoryRow is immutable; every change produces a new row that replaces the
old one in the InventoryView. Rolling back is just replacing it again.
"""

from __future__ import annotations

import threading
from dataclasses import asdict, dataclass, field, replace
from datetime import datetime, timezone
from typing import Any

from .commands import Edition
from .errors import ValidationFailure

QUANTITY_FIELDS = ("qty_inventory", "qty_due_lva", "qty_locker", "qty_closet")


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass(frozen=True)
class InventoryRow:
    """
    One (player, edition, size) line of jersey stock.

    All quantity fields are non-negative integers; constructing a row that
    violates this raises ValidationFailure, so no observable row can hold a
    negative count.
    """

    id: str
    player_name: str
    edition: Edition
    size: str
    qty_inventory: int = 0
    qty_due_lva: int = 0
    qty_locker: int | None = None
    qty_closet: int | None = None
    updated_at: str = field(default_factory=utc_now_iso)
    updated_by: str | None = None

    def __post_init__(self) -> None:
        if not isinstance(self.edition, Edition):
            try:
                object.__setattr__(self, "edition", Edition(self.edition))
            except ValueError as e:
                raise ValidationFailure(f"Invalid edition {self.edition!r}") from e
        for name in QUANTITY_FIELDS:
            value = getattr(self, name)
            if value is None and name in ("qty_locker", "qty_closet"):
                continue
            if isinstance(value, bool) or not isinstance(value, int):
                raise ValidationFailure(f"{name} must be an integer, got {value!r}")
            if value < 0:
                raise ValidationFailure(f"{name} cannot be negative ({value})")

    def with_fields(self, **fields: Any) -> InventoryRow:
        """Return a copy with the given fields replaced (validated on construction)."""
        return replace(self, **fields)

    def matches_player(self, player_name: str | None) -> bool:
        return player_name is None or self.player_name.casefold() == player_name.casefold()

    def matches_edition(self, edition: Edition | None) -> bool:
        return edition is None or self.edition is edition

    def matches_size(self, size: str | None) -> bool:
        return size is None or self.size == size

    def summary(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "player_name": self.player_name,
            "edition": self.edition.value,
            "size": self.size,
            "qty_inventory": self.qty_inventory,
        }

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["edition"] = self.edition.value
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> InventoryRow:
        return cls(
            id=str(data["id"]),
            player_name=str(data.get("player_name", "")),
            edition=Edition(data.get("edition", Edition.ICON.value)),
            size=str(data.get("size", "")),
            qty_inventory=int(data.get("qty_inventory", 0)),
            qty_due_lva=int(data.get("qty_due_lva", 0)),
            qty_locker=None if data.get("qty_locker") is None else int(data["qty_locker"]),
            qty_closet=None if data.get("qty_closet") is None else int(data["qty_closet"]),
            updated_at=str(data.get("updated_at") or utc_now_iso()),
            updated_by=data.get("updated_by"),
        )


class InventoryView:
    """
    Thread-safe, ordered collection of the rows currently shown to the user.

    The executor is the only writer. Readers take a snapshot at the moment a
    command is issued and resolve against that list, never against the live view.
    """

    def __init__(self, rows: list[InventoryRow] | None = None) -> None:
        self._lock = threading.RLock()
        self._rows: list[InventoryRow] = list(rows or [])
        self._version: int = 0

    def snapshot(self) -> list[InventoryRow]:
        """Return a copy of the current rows in display order."""
        with self._lock:
            return list(self._rows)

    def get(self, row_id: str) -> InventoryRow | None:
        with self._lock:
            for row in self._rows:
                if row.id == row_id:
                    return row
            return None

    def replace(self, row: InventoryRow) -> InventoryRow | None:
        """
        Swap in a new version of a row, matched by id.

        Returns:
            The previous version, or None if no row with that id is present.
        """
        with self._lock:
            for index, existing in enumerate(self._rows):
                if existing.id == row.id:
                    self._rows[index] = row
                    self._version += 1
                    return existing
            return None

    def insert(self, row: InventoryRow, index: int = 0) -> None:
        """Insert a new row; new rows go to the top of the view by default."""
        with self._lock:
            self._rows.insert(index, row)
            self._version += 1

    @property
    def version(self) -> int:
        """Incremented on every modification."""
        with self._lock:
            return self._version

    def __len__(self) -> int:
        with self._lock:
            return len(self._rows)
