"""Tests for TargetResolver and size defaulting."""

from kitroom.core.commands import Command, Edition
from kitroom.core.inventory import InventoryRow
from kitroom.core.resolver import TargetResolver, resolve_size
from kitroom.core.size_memory import SizeMemory


def _row(
    row_id: str,
    player: str = "Jalen Green",
    edition: Edition = Edition.ICON,
    size: str = "48",
    qty: int = 2,
    due: int = 0,
    updated_at: str = "2025-01-01T00:00:00+00:00",
) -> InventoryRow:
    return InventoryRow(
        id=row_id,
        player_name=player,
        edition=edition,
        size=size,
        qty_inventory=qty,
        qty_due_lva=due,
        updated_at=updated_at,
    )


class TestResolveSize:
    """Tests for the size defaulting order."""

    def test_explicit_size_wins(self) -> None:
        """Test a spoken size is used as-is."""
        memory = SizeMemory()
        memory.remember("Jalen Green", Edition.ICON, "50")
        size, inferred = resolve_size(Command(type="add", player_name="Jalen Green", size="46"), [], memory)
        assert (size, inferred) == ("46", False)

    def test_memory_before_rows(self) -> None:
        """Test remembered sizes take priority over row data."""
        memory = SizeMemory()
        memory.remember("Jalen Green", Edition.ICON, "50")
        rows = [_row("r1", size="48")]
        size, inferred = resolve_size(Command(type="remove", player_name="Jalen Green", edition="Icon"), rows, memory)
        assert (size, inferred) == ("50", True)

    def test_first_matching_row(self) -> None:
        """Test the first row for the player and edition supplies the size."""
        rows = [_row("r1", edition=Edition.CITY, size="54"), _row("r2", size="52"), _row("r3", size="48")]
        size, _ = resolve_size(Command(type="add", player_name="Jalen Green", edition="Icon"), rows, None)
        assert size == "52"

    def test_default_size(self) -> None:
        """Test the fixed default is the last resort."""
        size, inferred = resolve_size(Command(type="add", edition="City"), [], SizeMemory(), default_size="48")
        assert (size, inferred) == ("48", True)


class TestResolve:
    """Tests for row selection."""

    def test_scenario_size_from_memory(self) -> None:
        """Test a remembered size narrows the match when none was spoken."""
        memory = SizeMemory()
        memory.remember("jalen green", "icon", "50")
        rows = [_row("r48", size="48"), _row("r50", size="50")]
        command = Command(type="remove", player_name="Jalen Green", edition="Icon", quantity=1)

        resolution = TargetResolver().resolve(command, rows, memory)

        assert resolution.size == "50"
        assert resolution.size_inferred
        assert resolution.target.id == "r50"
        assert resolution.command.size == "50"

    def test_player_match_is_case_insensitive(self) -> None:
        """Test player names compare without case."""
        rows = [_row("r1", player="Jalen Green")]
        resolution = TargetResolver().resolve(Command(type="add", player_name="JALEN GREEN"), rows)
        assert resolution.target.id == "r1"

    def test_named_player_takes_first_match(self) -> None:
        """Test with a player, snapshot order decides, not quantity."""
        rows = [_row("r1", qty=1), _row("r2", qty=9)]
        resolution = TargetResolver().resolve(Command(type="remove", player_name="Jalen Green", size="48"), rows)
        assert resolution.target.id == "r1"
        assert resolution.candidates == 2

    def test_unnamed_add_picks_highest_inventory(self) -> None:
        """Test add/remove/turn_in without a player pick the most stocked row."""
        rows = [
            _row("r1", player="A", qty=1),
            _row("r2", player="B", qty=7),
            _row("r3", player="C", qty=3),
        ]
        resolver = TargetResolver()
        for kind in ("add", "remove", "turn_in"):
            assert resolver.resolve(Command(type=kind, edition="Icon"), rows).target.id == "r2"

    def test_unnamed_set_picks_most_recent(self) -> None:
        """Test set without a player picks the most recently updated row."""
        rows = [
            _row("r1", player="A", qty=9, updated_at="2025-01-01T00:00:00+00:00"),
            _row("r2", player="B", qty=1, updated_at="2025-03-01T00:00:00+00:00"),
        ]
        resolution = TargetResolver().resolve(Command(type="set", edition="Icon", target_quantity=4), rows)
        assert resolution.target.id == "r2"

    def test_unnamed_laundry_return_picks_most_due(self) -> None:
        """Test laundry returns go to the row with the most units away."""
        rows = [_row("r1", player="A", due=1, qty=9), _row("r2", player="B", due=4, qty=0)]
        resolution = TargetResolver().resolve(Command(type="laundry_return", edition="Icon"), rows)
        assert resolution.target.id == "r2"

    def test_ties_keep_snapshot_order(self) -> None:
        """Test equal quantities fall back to input order."""
        rows = [_row("r1", player="A", qty=3), _row("r2", player="B", qty=3)]
        assert TargetResolver().resolve(Command(type="add", edition="Icon"), rows).target.id == "r1"

    def test_no_match(self) -> None:
        """Test an unmatched command resolves to nothing."""
        resolution = TargetResolver().resolve(Command(type="remove", player_name="Nobody"), [_row("r1")])
        assert not resolution.found
        assert resolution.target is None

    def test_delete_returns_all_candidates(self) -> None:
        """Test delete targets every matching row in snapshot order."""
        rows = [
            _row("r1", edition=Edition.CITY, size="48"),
            _row("r2", edition=Edition.ICON),
            _row("r3", player="Amen Thompson", edition=Edition.CITY, size="52"),
        ]
        resolution = TargetResolver().resolve(Command(type="delete", edition="City", quantity=3), rows)
        assert [r.id for r in resolution.target] == ["r1", "r3"]

    def test_delete_filters_size_only_when_spoken(self) -> None:
        """Test a spoken size narrows delete candidates."""
        rows = [_row("r1", edition=Edition.CITY, size="48"), _row("r2", edition=Edition.CITY, size="52")]
        resolution = TargetResolver().resolve(Command(type="delete", edition="City", size="52"), rows)
        assert [r.id for r in resolution.target] == ["r2"]

    def test_delete_needs_player_or_edition(self) -> None:
        """Test delete never matches the whole table."""
        resolution = TargetResolver().resolve(Command(type="delete", quantity=1), [_row("r1")])
        assert not resolution.found

    def test_order_needs_player_and_edition(self) -> None:
        """Test order without an edition has no target."""
        resolver = TargetResolver()
        assert not resolver.resolve(Command(type="order", player_name="Jalen Green"), [_row("r1")]).found
        assert resolver.resolve(Command(type="order", player_name="Jalen Green", edition="Icon"), [_row("r1")]).found

    def test_size_change_ignores_size_filter(self) -> None:
        """Test the new size of a size-set is not used to match rows."""
        rows = [_row("r1", size="48")]
        command = Command(type="set", notes="set_size", edition="Icon", size="52")
        resolution = TargetResolver().resolve(command, rows)
        assert resolution.target.id == "r1"

    def test_non_mutations_resolve_to_nothing(self) -> None:
        """Test unknown and show commands never pick rows."""
        resolver = TargetResolver()
        assert not resolver.resolve(Command.unknown(), [_row("r1")]).found
        assert not resolver.resolve(Command(type="show"), [_row("r1")]).found

    def test_deterministic(self) -> None:
        """Test identical inputs always resolve identically."""
        rows = [_row("r1", player="A", qty=3), _row("r2", player="B", qty=5)]
        command = Command(type="turn_in", edition="Icon", quantity=2)
        resolver = TargetResolver()
        assert resolver.resolve(command, rows) == resolver.resolve(command, rows)
