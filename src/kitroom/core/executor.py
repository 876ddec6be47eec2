"""
Command execution with optimistic updates and rollback.

For every row mutation the executor:

1. applies the change to the in-memory InventoryView,
2. awaits the persistence call, reverting step 1 if it fails (never retried),
3. appends an audit entry naming the actor, the action and the changed fields,
4. fires the low-stock side channel once if qty_inventory ended at or below
   the threshold.

Quantities are clamped at zero; a negative requested quantity is rejected
before anything is written.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Protocol, assert_never, runtime_checkable

from loguru import logger

from ..integrations.notifications import LowStockNotifier, build_reorder_email_draft
from .commands import Command, CommandType, Edition
from .config import KitroomConfig
from .errors import (
    AmbiguousOrMissingTarget,
    CollaboratorUnavailable,
    InventoryError,
    PersistenceFailure,
    UnknownCommand,
    ValidationFailure,
)
from .inventory import InventoryRow, InventoryView, utc_now_iso
from .resolver import Resolution
from .store import AuditEntry, InventoryStore


@runtime_checkable
class OrderRequester(Protocol):
    async def request_order(self, row: InventoryRow, quantity: int) -> None: ...


@dataclass(frozen=True)
class AppliedChange:
    """Exactly which fields of one row changed, before and after."""

    row_id: str
    before: dict[str, Any]
    after: dict[str, Any]
    created: bool = False


@dataclass
class ExecutionResult:
    command: Command
    success: bool = False
    applied: list[AppliedChange] = field(default_factory=list)
    rows: list[InventoryRow] = field(default_factory=list)
    removed_count: int | None = None
    low_stock: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    error: InventoryError | None = None

    @property
    def created_row(self) -> InventoryRow | None:
        created = {change.row_id for change in self.applied if change.created}
        return next((row for row in self.rows if row.id in created), None)

    @property
    def units_moved(self) -> int | None:
        """Units of qty_inventory actually added or taken away, or None if no count changed."""
        moved = [
            abs(change.after["qty_inventory"] - (change.before.get("qty_inventory") or 0))
            for change in self.applied
            if "qty_inventory" in change.after
        ]
        return sum(moved) if moved else None

    @property
    def applied_delta(self) -> dict[str, dict[str, int]]:
        """Per-row numeric deltas, e.g. {"row-1": {"qty_inventory": -3}}."""
        delta: dict[str, dict[str, int]] = {}
        for change in self.applied:
            numeric = {
                key: change.after[key] - (change.before.get(key) or 0)
                for key, value in change.after.items()
                if isinstance(value, int) and not isinstance(value, bool)
            }
            if numeric:
                delta.setdefault(change.row_id, {}).update(numeric)
        return delta


class CommandExecutor:
    """Turns a resolved command into persisted inventory changes."""

    def __init__(
        self,
        store: InventoryStore,
        notifier: LowStockNotifier | None = None,
        orderer: OrderRequester | None = None,
        actor: str | None = None,
        low_stock_threshold: int = 1,
        placeholder_player: str = "Generic Player",
        default_edition: Edition = Edition.ICON,
        default_size: str = "48",
    ) -> None:
        self.store = store
        self.notifier = notifier
        self.orderer = orderer
        self.actor = actor
        self.low_stock_threshold = low_stock_threshold
        self.placeholder_player = placeholder_player
        self.default_edition = default_edition
        self.default_size = default_size

    @classmethod
    def from_config(
        cls,
        config: KitroomConfig,
        store: InventoryStore,
        notifier: LowStockNotifier | None = None,
        orderer: OrderRequester | None = None,
    ) -> "CommandExecutor":
        return cls(
            store,
            notifier=notifier,
            orderer=orderer,
            actor=config.actor,
            low_stock_threshold=config.low_stock_threshold,
            placeholder_player=config.placeholder_player,
            default_edition=config.default_edition,
            default_size=config.default_size,
        )

    async def execute(self, command: Command, resolution: Resolution, view: InventoryView) -> ExecutionResult:
        """
        Execute one command against the rows chosen by the resolver.

        Never raises InventoryError: failures are reported on the result with
        success=False. Rows already persisted before a failure stay applied.
        """
        result = ExecutionResult(command=command)
        try:
            await self._dispatch(command, resolution, view, result)
        except InventoryError as e:
            logger.warning("Executor: {} failed: {}", command.type.value, e)
            result.success = False
            result.error = e
            return result
        result.success = True
        logger.success("Executor: {} applied to {} row(s)", command.type.value, len(result.applied))
        return result

    async def _dispatch(
        self,
        command: Command,
        resolution: Resolution,
        view: InventoryView,
        result: ExecutionResult,
    ) -> None:
        match command.type:
            case CommandType.ADD:
                await self._add(command, resolution, view, result)
            case CommandType.REMOVE:
                await self._remove(command, resolution, view, result)
            case CommandType.SET:
                await self._set(command, resolution, view, result)
            case CommandType.TURN_IN:
                await self._turn_in(command, resolution, view, result)
            case CommandType.LAUNDRY_RETURN:
                await self._laundry_return(command, resolution, view, result)
            case CommandType.DELETE:
                await self._delete(command, resolution, view, result)
            case CommandType.ORDER:
                await self._order(command, resolution, view, result)
            case CommandType.SHOW | CommandType.FILTER | CommandType.GENERATE:
                raise UnknownCommand(f"'{command.type.value}' does not change inventory")
            case CommandType.UNKNOWN:
                raise UnknownCommand("Command was not understood")
            case _:
                assert_never(command.type)

    # Command handlers

    async def _add(self, command: Command, resolution: Resolution, view: InventoryView, result: ExecutionResult) -> None:
        quantity = self._quantity(command)
        if not resolution.found:
            if command.player_name:
                raise AmbiguousOrMissingTarget(f"No {command.edition or ''} jersey found for {command.player_name}")
            await self._create(command, resolution, quantity, view, result)
            return
        row = self._live_row(resolution.rows[0], view)
        await self._mutate(
            row,
            {"qty_inventory": max(0, row.qty_inventory + quantity)},
            "inventory_update",
            {"quantity": quantity},
            view,
            result,
        )

    async def _remove(self, command: Command, resolution: Resolution, view: InventoryView, result: ExecutionResult) -> None:
        quantity = self._quantity(command)
        row = self._single_target(command, resolution, view)
        await self._mutate(
            row,
            {"qty_inventory": max(0, row.qty_inventory - quantity)},
            "inventory_update",
            {"quantity": quantity},
            view,
            result,
        )

    async def _set(self, command: Command, resolution: Resolution, view: InventoryView, result: ExecutionResult) -> None:
        row = self._single_target(command, resolution, view)
        if command.is_size_change:
            if not command.size:
                raise ValidationFailure("A size change needs a new size")
            await self._mutate(row, {"size": command.size}, "size_change", {}, view, result)
            return
        target = max(0, command.target_quantity or 0)
        await self._mutate(row, {"qty_inventory": target}, "inventory_update", {"target_quantity": target}, view, result)

    async def _turn_in(self, command: Command, resolution: Resolution, view: InventoryView, result: ExecutionResult) -> None:
        quantity = self._quantity(command)
        row = self._single_target(command, resolution, view)
        decrement = min(quantity, row.qty_inventory)
        if decrement <= 0:
            raise ValidationFailure(f"No {row.edition.value} size {row.size} jerseys on hand for {row.player_name}")
        await self._mutate(
            row,
            {"qty_inventory": row.qty_inventory - decrement},
            "giveaway",
            {"quantity": decrement, "recipient": command.recipient},
            view,
            result,
        )

    async def _laundry_return(
        self, command: Command, resolution: Resolution, view: InventoryView, result: ExecutionResult
    ) -> None:
        quantity = self._quantity(command)
        row = self._single_target(command, resolution, view)
        await self._mutate(
            row,
            {
                "qty_inventory": row.qty_inventory + quantity,
                "qty_due_lva": max(0, row.qty_due_lva - quantity),
            },
            "laundry_return",
            {"quantity": quantity},
            view,
            result,
        )

    async def _delete(self, command: Command, resolution: Resolution, view: InventoryView, result: ExecutionResult) -> None:
        # Removes up to N units spread across every candidate in resolver order.
        # Rows that reach zero stay in the table.
        if not resolution.found:
            raise AmbiguousOrMissingTarget("No matching jerseys found to remove")
        requested = self._quantity(command)
        remaining = requested
        result.removed_count = 0
        for candidate in resolution.rows:
            if remaining <= 0:
                break
            row = view.get(candidate.id)
            if row is None:
                continue
            take = min(remaining, row.qty_inventory)
            if take <= 0:
                continue
            # A failure here leaves earlier rows applied and removed_count honest.
            await self._mutate(
                row,
                {"qty_inventory": row.qty_inventory - take},
                "delete",
                {"quantity_removed": take, "quantity_requested": requested},
                view,
                result,
            )
            remaining -= take
            result.removed_count = requested - remaining

        if result.removed_count == 0:
            raise ValidationFailure("Matching jerseys are already at zero")
        if result.removed_count < requested:
            logger.info("Executor: delete asked for {}, only {} available", requested, result.removed_count)

    async def _order(self, command: Command, resolution: Resolution, view: InventoryView, result: ExecutionResult) -> None:
        row = self._single_target(command, resolution, view)
        quantity = self._quantity(command)
        if self.orderer is not None:
            try:
                await self.orderer.request_order(row, quantity)
            except Exception as e:
                raise CollaboratorUnavailable(f"Ordering service failed: {e}") from e
        else:
            logger.info("Executor: no ordering service configured, recording order request only")
        result.rows.append(row)
        await self._audit(
            "order_request",
            {**_identity(row), "quantity": quantity, "vendor": command.vendor},
            result,
        )

    # Mutation plumbing

    async def _create(
        self,
        command: Command,
        resolution: Resolution,
        quantity: int,
        view: InventoryView,
        result: ExecutionResult,
    ) -> None:
        fields: dict[str, Any] = {
            "player_name": command.player_name or self.placeholder_player,
            "edition": (command.edition or self.default_edition).value,
            "size": resolution.size or command.size or self.default_size,
            "qty_inventory": max(0, quantity),
            "qty_due_lva": 0,
            "updated_at": utc_now_iso(),
            "updated_by": self.actor,
        }
        try:
            row = await self.store.insert_row(fields)
        except Exception as e:
            raise PersistenceFailure(f"Failed to create new item: {e}") from e
        view.insert(row)
        logger.success(
            "Executor: created {} {} size {} with {}", row.player_name, row.edition.value, row.size, row.qty_inventory
        )
        result.applied.append(
            AppliedChange(row_id=row.id, before={}, after={"qty_inventory": row.qty_inventory}, created=True)
        )
        result.rows.append(row)
        await self._audit("inventory_create", {**_identity(row), "created": True, "quantity": quantity}, result)
        await self._check_low_stock(row, result)

    async def _mutate(
        self,
        row: InventoryRow,
        fields: dict[str, Any],
        action: str,
        details: dict[str, Any],
        view: InventoryView,
        result: ExecutionResult,
    ) -> InventoryRow:
        before = {key: getattr(row, key) for key in fields}
        stamp = {"updated_at": utc_now_iso(), "updated_by": self.actor}
        updated = row.with_fields(**fields, **stamp)

        view.replace(updated)
        try:
            await self.store.update_row(row.id, {**fields, **stamp})
        except PersistenceFailure:
            view.replace(row)
            logger.error("Executor: persisting row {} failed, rolled back", row.id)
            raise
        except Exception as e:
            view.replace(row)
            logger.error("Executor: persisting row {} failed, rolled back: {}", row.id, e)
            raise PersistenceFailure(f"Failed to update inventory item: {e}") from e

        result.applied.append(AppliedChange(row_id=row.id, before=before, after=dict(fields)))
        result.rows.append(updated)
        changes = {key: {"from": before[key], "to": fields[key]} for key in fields}
        await self._audit(action, {**_identity(row), "changes": changes, **details}, result)
        if "qty_inventory" in fields:
            await self._check_low_stock(updated, result)
        return updated

    async def _audit(self, action: str, details: dict[str, Any], result: ExecutionResult) -> None:
        entry = AuditEntry(actor=self.actor, action=action, details=details)
        try:
            await self.store.append_audit_log(entry)
        except Exception as e:
            # The row write is already durable; report rather than roll back.
            logger.warning("Executor: audit log write for {} failed: {}", action, e)
            result.warnings.append(f"audit log write failed: {e}")

    async def _check_low_stock(self, row: InventoryRow, result: ExecutionResult) -> None:
        if row.qty_inventory > self.low_stock_threshold:
            return
        qty_needed = max(1, self.low_stock_threshold - row.qty_inventory)
        summary = {
            **row.summary(),
            "reorder_email_draft": build_reorder_email_draft(row.player_name, row.edition.value, row.size, qty_needed),
        }
        result.low_stock.append(row.id)
        if self.notifier is not None:
            try:
                await self.notifier.notify_low_stock(summary)
            except Exception as e:
                logger.warning("Executor: low stock notification failed: {}", e)
        await self._audit("low_stock_alert", row.summary(), result)

    # Helpers

    def _quantity(self, command: Command) -> int:
        quantity = command.requested_quantity()
        if quantity < 0:
            raise ValidationFailure(f"Quantity cannot be negative ({quantity})")
        return quantity

    def _single_target(self, command: Command, resolution: Resolution, view: InventoryView) -> InventoryRow:
        if not resolution.found:
            parts = [p for p in (command.edition and command.edition.value, resolution.size and f"size {resolution.size}") if p]
            who = f" for {command.player_name}" if command.player_name else ""
            raise AmbiguousOrMissingTarget(f"No matching item found for {' '.join(parts) or 'that'}{who}")
        return self._live_row(resolution.rows[0], view)

    @staticmethod
    def _live_row(row: InventoryRow, view: InventoryView) -> InventoryRow:
        live = view.get(row.id)
        if live is None:
            raise AmbiguousOrMissingTarget(f"Row {row.id} is no longer in inventory")
        return live


def _identity(row: InventoryRow) -> dict[str, Any]:
    return {"id": row.id, "player_name": row.player_name, "edition": row.edition.value, "size": row.size}
