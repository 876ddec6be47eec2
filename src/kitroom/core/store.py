"""
Persistence collaborator contract and a JSON-file-backed implementation.

The executor awaits every call; nothing here is fire-and-forget. Failures are
raised as PersistenceFailure so the executor can roll back its optimistic
update.
"""

from __future__ import annotations

import asyncio
import json
import threading
import uuid
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

from loguru import logger

from .errors import PersistenceFailure, ValidationFailure
from .inventory import InventoryRow, utc_now_iso


@dataclass(frozen=True)
class AuditEntry:
    """One activity-log record: who did what, and exactly which fields changed."""

    actor: str | None
    action: str
    details: dict[str, Any]
    created_at: str = field(default_factory=utc_now_iso)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@runtime_checkable
class InventoryStore(Protocol):
    async def update_row(self, row_id: str, fields: dict[str, Any]) -> None: ...

    async def insert_row(self, fields: dict[str, Any]) -> InventoryRow: ...

    async def append_audit_log(self, entry: AuditEntry) -> None: ...


class MemoryInventoryStore:
    """
    In-process inventory store with optional JSON persistence.

    Rows and the audit log live in memory; when a path is given they are
    loaded from and written back to a single JSON document after every write.

    Usage:
        store = MemoryInventoryStore(path="inventory.json")
        view = InventoryView(store.rows())
    """

    def __init__(self, path: Path | str | None = None, rows: list[InventoryRow] | None = None) -> None:
        self._lock = threading.Lock()
        self._rows: dict[str, dict[str, Any]] = {}
        self._audit: list[dict[str, Any]] = []
        self._path = Path(path) if path else None

        if self._path and self._path.exists():
            self._load()
        for row in rows or []:
            self._rows[row.id] = row.to_dict()

    def _load(self) -> None:
        """Load rows and audit log from disk."""
        if not self._path:
            return
        try:
            with self._path.open("r", encoding="utf-8") as f:
                data = json.load(f)
        except (json.JSONDecodeError, OSError) as e:
            logger.warning("InventoryStore: Failed to load from {}: {}", self._path, e)
            return
        if isinstance(data, list):
            rows, audit = data, []
        else:
            rows, audit = data.get("rows", []), data.get("audit_log", [])
        for raw in rows:
            try:
                row = InventoryRow.from_dict(raw)
            except (KeyError, ValueError, ValidationFailure) as e:
                logger.warning("InventoryStore: Skipping invalid row {}: {}", raw, e)
                continue
            self._rows[row.id] = row.to_dict()
        self._audit = list(audit)
        logger.debug("InventoryStore: Loaded {} rows from {}", len(self._rows), self._path)

    def _save(self) -> None:
        """Save rows and audit log to disk. Caller holds the lock."""
        if not self._path:
            return
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            with self._path.open("w", encoding="utf-8") as f:
                json.dump({"rows": list(self._rows.values()), "audit_log": self._audit}, f, indent=2)
        except OSError as e:
            raise PersistenceFailure(f"Failed to save inventory to {self._path}: {e}") from e

    def rows(self) -> list[InventoryRow]:
        """Return every stored row, ordered by player name."""
        with self._lock:
            raw_rows = list(self._rows.values())
        rows = [InventoryRow.from_dict(raw) for raw in raw_rows]
        return sorted(rows, key=lambda r: r.player_name.lower())

    def audit_log(self) -> list[dict[str, Any]]:
        with self._lock:
            return list(self._audit)

    async def update_row(self, row_id: str, fields: dict[str, Any]) -> None:
        await asyncio.sleep(0)
        with self._lock:
            existing = self._rows.get(row_id)
            if existing is None:
                raise PersistenceFailure(f"Row {row_id} does not exist")
            candidate = {**existing, **_jsonable(fields)}
            try:
                InventoryRow.from_dict(candidate)
            except (ValueError, ValidationFailure) as e:
                raise PersistenceFailure(f"Rejected update for row {row_id}: {e}") from e
            self._rows[row_id] = candidate
            try:
                self._save()
            except PersistenceFailure:
                self._rows[row_id] = existing
                raise

    async def insert_row(self, fields: dict[str, Any]) -> InventoryRow:
        await asyncio.sleep(0)
        raw = {"id": uuid.uuid4().hex, "updated_at": utc_now_iso(), **_jsonable(fields)}
        try:
            row = InventoryRow.from_dict(raw)
        except (KeyError, ValueError, ValidationFailure) as e:
            raise PersistenceFailure(f"Rejected new row: {e}") from e
        with self._lock:
            self._rows[row.id] = row.to_dict()
            try:
                self._save()
            except PersistenceFailure:
                del self._rows[row.id]
                raise
        return row

    async def append_audit_log(self, entry: AuditEntry) -> None:
        await asyncio.sleep(0)
        with self._lock:
            self._audit.append(entry.to_dict())
            self._save()


def _jsonable(fields: dict[str, Any]) -> dict[str, Any]:
    out: dict[str, Any] = {}
    for key, value in fields.items():
        out[key] = value.value if hasattr(value, "value") else value
    return out
