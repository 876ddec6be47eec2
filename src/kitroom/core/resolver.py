"""
Target resolution: match a possibly underspecified command to inventory rows.

Resolution is a pure function of (command, rows, size memory). The caller
passes the rows snapshot taken when the command was issued; nothing here
reads live state.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from loguru import logger

from .commands import Command, CommandType
from .inventory import InventoryRow
from .size_memory import SizeMemory

DEFAULT_SIZE = "48"


@dataclass(frozen=True)
class Resolution:
    """
    Outcome of resolving one command.

    `command` is the input with any inferred size filled in. `rows` holds the
    single chosen row, every candidate for `delete`, or nothing.
    """

    command: Command
    rows: tuple[InventoryRow, ...] = ()
    size: str | None = None
    size_inferred: bool = False
    candidates: int = 0
    notes: list[str] = field(default_factory=list)

    @property
    def found(self) -> bool:
        return bool(self.rows)

    @property
    def target(self) -> InventoryRow | list[InventoryRow] | None:
        """The resolver target: one row, all delete candidates, or None."""
        if not self.rows:
            return None
        if self.command.type is CommandType.DELETE:
            return list(self.rows)
        return self.rows[0]


def resolve_size(
    command: Command,
    rows: list[InventoryRow],
    size_memory: SizeMemory | None,
    default_size: str = DEFAULT_SIZE,
) -> tuple[str, bool]:
    """
    Pick the size a command applies to.

    Order: the command's own size, then size memory (player|edition,
    player|*, *|edition), then the first row matching the known player and
    edition, then `default_size`.

    Returns:
        (size, inferred) where inferred is False only when the command named it.
    """
    if command.size:
        return command.size, False
    if size_memory is not None:
        remembered = size_memory.lookup(command.player_name, command.edition)
        if remembered:
            return remembered, True
    for row in rows:
        if row.matches_edition(command.edition) and row.matches_player(command.player_name):
            return row.size, True
    return default_size, True


def _highest_inventory(candidates: list[InventoryRow]) -> list[InventoryRow]:
    return sorted(candidates, key=lambda r: r.qty_inventory, reverse=True)


def _most_recent(candidates: list[InventoryRow]) -> list[InventoryRow]:
    return sorted(candidates, key=lambda r: r.updated_at, reverse=True)


def _most_away(candidates: list[InventoryRow]) -> list[InventoryRow]:
    return sorted(candidates, key=lambda r: r.qty_due_lva, reverse=True)


class TargetResolver:
    """
    Resolves commands against an inventory snapshot.

    With a player name, rows must match the player exactly (case-insensitive)
    plus edition and size wherever the command carries them; the first match
    in snapshot order wins. Without one, rows are filtered by edition and size
    and a per-command tie-break picks the target:

    - add, remove, turn_in: highest qty_inventory
    - set: most recently updated
    - laundry_return: highest qty_due_lva
    - delete: every candidate, in snapshot order
    """

    def __init__(self, default_size: str = DEFAULT_SIZE) -> None:
        self.default_size = default_size

    def resolve(
        self,
        command: Command,
        rows: list[InventoryRow],
        size_memory: SizeMemory | None = None,
    ) -> Resolution:
        kind = command.type
        if kind in (CommandType.UNKNOWN, CommandType.SHOW, CommandType.FILTER, CommandType.GENERATE):
            return Resolution(command=command)

        if kind is CommandType.DELETE:
            return self._resolve_delete(command, rows)
        if kind is CommandType.ORDER:
            return self._resolve_order(command, rows)
        if command.is_size_change:
            return self._resolve_size_change(command, rows)

        size, inferred = resolve_size(command, rows, size_memory, self.default_size)
        resolved = command.model_copy(update={"size": size}) if inferred else command
        candidates = [
            r
            for r in rows
            if r.matches_player(command.player_name) and r.matches_edition(command.edition) and r.matches_size(size)
        ]

        if command.player_name:
            ordered = candidates
        elif kind is CommandType.SET:
            ordered = _most_recent(candidates)
        elif kind is CommandType.LAUNDRY_RETURN:
            ordered = _most_away(candidates)
        else:
            ordered = _highest_inventory(candidates)

        chosen = tuple(ordered[:1])
        self._log(command, chosen, len(candidates), size, inferred)
        return Resolution(
            command=resolved,
            rows=chosen,
            size=size,
            size_inferred=inferred,
            candidates=len(candidates),
        )

    def _resolve_delete(self, command: Command, rows: list[InventoryRow]) -> Resolution:
        # Delete only narrows by size when one was spoken, and refuses to match
        # the whole table when neither player nor edition is known.
        if not command.player_name and command.edition is None:
            logger.debug("Resolver: delete without player or edition matches nothing")
            return Resolution(command=command, notes=["delete needs a player or an edition"])
        candidates = tuple(
            r
            for r in rows
            if r.matches_player(command.player_name)
            and r.matches_edition(command.edition)
            and r.matches_size(command.size)
        )
        self._log(command, candidates, len(candidates), command.size, False)
        return Resolution(command=command, rows=candidates, size=command.size, candidates=len(candidates))

    def _resolve_order(self, command: Command, rows: list[InventoryRow]) -> Resolution:
        if not command.player_name or command.edition is None:
            return Resolution(command=command, notes=["order needs a player and an edition"])
        candidates = [
            r
            for r in rows
            if r.matches_player(command.player_name)
            and r.matches_edition(command.edition)
            and r.matches_size(command.size)
        ]
        chosen = tuple(candidates[:1])
        self._log(command, chosen, len(candidates), command.size, False)
        return Resolution(command=command, rows=chosen, size=command.size, candidates=len(candidates))

    def _resolve_size_change(self, command: Command, rows: list[InventoryRow]) -> Resolution:
        # The command's size is the new value, so it is not a filter here.
        candidates = [r for r in rows if r.matches_player(command.player_name) and r.matches_edition(command.edition)]
        ordered = candidates if command.player_name else _most_recent(candidates)
        chosen = tuple(ordered[:1])
        self._log(command, chosen, len(candidates), command.size, False)
        return Resolution(command=command, rows=chosen, size=command.size, candidates=len(candidates))

    @staticmethod
    def _log(
        command: Command,
        chosen: tuple[InventoryRow, ...],
        candidates: int,
        size: str | None,
        inferred: bool,
    ) -> None:
        logger.debug(
            "Resolver: {} player={} edition={} size={}{} -> {} of {} candidates",
            command.type.value,
            command.player_name,
            command.edition,
            size,
            " (inferred)" if inferred else "",
            [r.id for r in chosen],
            candidates,
        )
