"""
Low-stock notification side channel.

Notifications are best effort: a failing webhook is logged and swallowed so
it can never fail the inventory mutation that triggered it.
"""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable

import httpx
from loguru import logger

from ..core.config import NotificationConfig


@runtime_checkable
class LowStockNotifier(Protocol):
    async def notify_low_stock(self, summary: dict[str, Any]) -> None: ...


def build_reorder_email_draft(player_name: str, edition: str, size: str, qty_needed: int) -> str:
    """Plain-text reorder request for an item at or below the stock threshold."""
    return (
        f"Subject: Jersey Reorder Request - {player_name} {edition} {size}\n"
        "\n"
        "Hi Team,\n"
        "\n"
        "We are at or below threshold for the following item and request reorder:\n"
        "\n"
        f"- Player: {player_name}\n"
        f"- Edition: {edition}\n"
        f"- Size: {size}\n"
        f"- Quantity requested: {qty_needed}\n"
        "\n"
        "Please advise on lead time and confirm order.\n"
        "\n"
        "Thanks,\n"
        "Equipment Team"
    )


class WebhookNotifier:
    """POSTs the low-stock row summary to a webhook. Without a URL it only logs."""

    def __init__(
        self,
        config: NotificationConfig | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.config = config or NotificationConfig()
        self._transport = transport

    async def notify_low_stock(self, summary: dict[str, Any]) -> None:
        logger.warning(
            "Low stock: {} {} size {} has {} left",
            summary.get("player_name"),
            summary.get("edition"),
            summary.get("size"),
            summary.get("qty_inventory"),
        )
        if not self.config.webhook_url:
            return
        try:
            async with httpx.AsyncClient(timeout=self.config.timeout, transport=self._transport) as client:
                response = await client.post(self.config.webhook_url, json=summary)
                response.raise_for_status()
        except httpx.HTTPError as e:
            logger.warning("Low stock webhook failed: {}", e)
