"""Tests for the JSON-backed MemoryInventoryStore."""

import asyncio
import json
from pathlib import Path

import pytest

from kitroom.core.commands import Edition
from kitroom.core.errors import PersistenceFailure
from kitroom.core.inventory import InventoryRow
from kitroom.core.store import AuditEntry, InventoryStore, MemoryInventoryStore


def _row(row_id: str = "r1", player: str = "Jalen Green", qty: int = 2) -> InventoryRow:
    return InventoryRow(id=row_id, player_name=player, edition=Edition.ICON, size="48", qty_inventory=qty)


class TestMemoryInventoryStore:
    """Tests for persistence round-trips and failure reporting."""

    def test_satisfies_protocol(self) -> None:
        """Test the store implements the persistence contract."""
        assert isinstance(MemoryInventoryStore(), InventoryStore)

    def test_rows_sorted_by_player(self) -> None:
        """Test rows come back ordered by player name."""
        store = MemoryInventoryStore(rows=[_row("r1", "Kevin Porter"), _row("r2", "amen thompson")])
        assert [r.id for r in store.rows()] == ["r2", "r1"]

    def test_update_persists_to_disk(self, tmp_path: Path) -> None:
        """Test updates are written and reloaded."""
        path = tmp_path / "inventory.json"
        store = MemoryInventoryStore(path=path, rows=[_row()])
        asyncio.run(store.update_row("r1", {"qty_inventory": 9, "edition": Edition.CITY}))

        reloaded = MemoryInventoryStore(path=path)
        row = reloaded.rows()[0]
        assert row.qty_inventory == 9
        assert row.edition is Edition.CITY

    def test_update_missing_row(self) -> None:
        """Test updating an unknown id fails."""
        store = MemoryInventoryStore()
        with pytest.raises(PersistenceFailure):
            asyncio.run(store.update_row("missing", {"qty_inventory": 1}))

    def test_update_rejects_invalid_values(self) -> None:
        """Test the store refuses rows that would be invalid."""
        store = MemoryInventoryStore(rows=[_row()])
        with pytest.raises(PersistenceFailure):
            asyncio.run(store.update_row("r1", {"qty_inventory": -4}))
        assert store.rows()[0].qty_inventory == 2

    def test_insert_assigns_id(self) -> None:
        """Test inserted rows get a fresh id."""
        store = MemoryInventoryStore()
        row = asyncio.run(
            store.insert_row({"player_name": "Generic Player", "edition": "City", "size": "48", "qty_inventory": 3})
        )
        assert row.id
        assert store.rows() == [row]

    def test_save_failure_restores_row(self, tmp_path: Path) -> None:
        """Test a failed write leaves the stored row unchanged."""
        blocker = tmp_path / "not_a_dir"
        blocker.write_text("x")
        store = MemoryInventoryStore(rows=[_row()])
        store._path = blocker / "inventory.json"

        with pytest.raises(PersistenceFailure):
            asyncio.run(store.update_row("r1", {"qty_inventory": 5}))
        assert store.rows()[0].qty_inventory == 2

    def test_audit_log_round_trip(self, tmp_path: Path) -> None:
        """Test audit entries are appended and saved."""
        path = tmp_path / "inventory.json"
        store = MemoryInventoryStore(path=path, rows=[_row()])
        asyncio.run(store.append_audit_log(AuditEntry(actor="tester", action="giveaway", details={"quantity": 1})))

        data = json.loads(path.read_text())
        assert data["audit_log"][0]["action"] == "giveaway"
        assert MemoryInventoryStore(path=path).audit_log()[0]["actor"] == "tester"

    def test_invalid_rows_skipped_on_load(self, tmp_path: Path) -> None:
        """Test corrupt rows are skipped rather than failing the load."""
        path = tmp_path / "inventory.json"
        path.write_text(
            json.dumps(
                {
                    "rows": [
                        _row().to_dict(),
                        {"id": "bad", "player_name": "X", "edition": "Limited", "size": "48"},
                        {"id": "neg", "player_name": "Y", "edition": "Icon", "size": "48", "qty_inventory": -1},
                    ]
                }
            )
        )
        assert [r.id for r in MemoryInventoryStore(path=path).rows()] == ["r1"]

    def test_corrupt_file_loads_empty(self, tmp_path: Path) -> None:
        """Test unreadable JSON starts an empty store."""
        path = tmp_path / "inventory.json"
        path.write_text("{not json")
        assert MemoryInventoryStore(path=path).rows() == []
