"""
Spoken acknowledgments for executed commands.

One template per command type. Quantity, edition, player, size and recipient
are included whenever the command carries them. For `delete` the executor's
removed count, and for `remove` and `turn_in` the units actually taken off
the row, win over the requested quantity so partial fulfillment is reported
truthfully.
"""

from __future__ import annotations

from collections.abc import Iterable

from .commands import Command, CommandType
from .executor import ExecutionResult


def _actual(quantity: int, result: ExecutionResult | None) -> int:
    if result is None or result.units_moved is None:
        return quantity
    return result.units_moved


def _jerseys(quantity: int | None, command: Command) -> str:
    parts = [str(quantity or 0)]
    if command.edition:
        parts.append(command.edition.value)
    parts.append("jersey" if quantity == 1 else "jerseys")
    if command.player_name:
        parts.append(f"for {command.player_name}")
    if command.size:
        parts.append(f"size {command.size}")
    return " ".join(parts)


def confirm(command: Command, result: ExecutionResult | None = None) -> str | None:
    """
    Render the acknowledgment for one command.

    Returns None for `unknown`, for commands that do not change inventory and
    for failed executions; the session speaks its fallback instead.
    """
    if result is not None and not result.success:
        return None

    quantity = command.requested_quantity()
    match command.type:
        case CommandType.ADD:
            return f"Ok, added {_jerseys(quantity, command)} to inventory."
        case CommandType.REMOVE:
            return f"Ok, removed {_jerseys(_actual(quantity, result), command)} from inventory."
        case CommandType.DELETE:
            removed = result.removed_count if result is not None and result.removed_count is not None else quantity
            return f"Ok, removed {_jerseys(removed, command)} from inventory."
        case CommandType.SET if command.is_size_change:
            who = " ".join(p for p in (command.player_name, command.edition and command.edition.value) if p)
            return f"Ok, changed {who or 'the'} jerseys to size {command.size}."
        case CommandType.SET:
            who = " ".join(p for p in (command.player_name, command.edition and command.edition.value) if p)
            size = f" size {command.size}" if command.size else ""
            return f"Ok, set {who + ' ' if who else ''}jerseys{size} to {command.target_quantity or 0} in inventory."
        case CommandType.TURN_IN:
            recipient = f" to {command.recipient}" if command.recipient else ""
            return f"Ok, turned in {_jerseys(_actual(quantity, result), command)}{recipient}."
        case CommandType.LAUNDRY_RETURN:
            return f"Ok, returned {_jerseys(quantity, command)} from laundry."
        case CommandType.ORDER:
            return f"Ok, order placed for {_jerseys(quantity, command)}."
        case _:
            return None


def confirm_all(outcomes: Iterable[tuple[Command, ExecutionResult | None]]) -> str | None:
    """Join the acknowledgments of a multi-command turn into one utterance."""
    spoken = [text for command, result in outcomes if (text := confirm(command, result))]
    return " ".join(spoken) or None
