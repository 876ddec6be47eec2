"""
Transcript parsing through an OpenAI-compatible chat endpoint.

The adapter is an optional upgrade over the local grammar: it handles
free-form speech with several actions in one sentence. It never raises; any
transport, HTTP, JSON or schema problem is logged and reported as an
`unknown` command so the caller can fall back to the grammar interpreter.

Usage:
    adapter = NLUAdapter(config.nlu)
    commands = await interpret_with_fallback(transcript, view.snapshot(), adapter)
"""

from __future__ import annotations

import json
import re
from typing import Any

import httpx
from loguru import logger
from pydantic import ValidationError

from ..core.commands import Command, Edition
from ..core.config import NLUConfig
from ..core.errors import CollaboratorUnavailable, status_error
from ..core.grammar import Interpreter, interpret_many
from ..core.inventory import InventoryRow

SYSTEM_PROMPT = f"""You are a practical, detail-oriented assistant helping an NBA equipment manager track player jerseys in real time. Your job is:

- Listen to casual, conversational, even noisy English describing events. The input may contain several sentences, dictation or informal language.
- Extract ALL inventory actions described, ignoring small talk.
- Always output a JSON array with one object per action.
- The supported action types are: add, remove, delete, set, turn_in, laundry_return, order.
  - turn_in: a jersey was given away (to a player, fan, staff member...). Put who received it in "recipient".
  - laundry_return: jerseys came back from the laundry or cleaners.
  - add: jerseys were received or an order arrived. Put the supplier in "vendor" when known.
  - set: an absolute count ("set X to 10"): put the count in "target_quantity".
  - order: a reorder request.
- Fields: type, player_name, edition ({", ".join(e.value for e in Edition)}), size, quantity, target_quantity, recipient, vendor, location (locker, closet, storage), notes.
- Omit fields that were not spoken. Never invent a size.

Example:
"I just gave 2 city jerseys to a fan and three statements came back from laundry for Jalen Green"
[
  {{"type": "turn_in", "edition": "City", "quantity": 2, "recipient": "Fan"}},
  {{"type": "laundry_return", "edition": "Statement", "quantity": 3, "player_name": "Jalen Green"}}
]

Only return the JSON array, no explanations."""

_CODE_FENCE_RE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)


def _extract_content(result: dict[str, Any]) -> str | None:
    """Extract content from OpenAI or Ollama response format."""
    if "choices" in result and result["choices"]:
        return result["choices"][0]["message"]["content"]
    if "message" in result:
        return result["message"].get("content")
    return None


def parse_commands(content: str | None) -> list[Command]:
    """
    Parse the model's reply into commands.

    Accepts a JSON array, a single object, or an object wrapping a `commands`
    array, optionally inside a Markdown code fence. Entries that fail schema
    validation are dropped.
    """
    if not content:
        return []
    text = _CODE_FENCE_RE.sub("", content.strip()).strip()
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        logger.warning("NLU: invalid JSON response: {}", e)
        return []

    if isinstance(data, dict):
        items = data["commands"] if isinstance(data.get("commands"), list) else [data]
    elif isinstance(data, list):
        items = data
    else:
        return []

    commands: list[Command] = []
    for item in items:
        if not isinstance(item, dict):
            continue
        try:
            commands.append(Command.model_validate(item))
        except ValidationError as e:
            logger.debug("NLU: dropping invalid command {}: {}", item, e.errors()[0].get("msg"))
    return commands


def _snapshot_lines(snapshot: list[InventoryRow], limit: int) -> str:
    lines = [
        f"- {row.player_name} | {row.edition.value} | size {row.size} | on hand {row.qty_inventory}"
        for row in snapshot[:limit]
    ]
    return "\n".join(lines)


class NLUAdapter:
    """Structured command extraction from an OpenAI-compatible chat completion."""

    def __init__(self, config: NLUConfig | None = None, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self.config = config or NLUConfig()
        self._transport = transport

    async def interpret(self, transcript: str, snapshot: list[InventoryRow] | None = None) -> list[Command]:
        """Return the commands in `transcript`, or `[Command.unknown()]` on any failure."""
        try:
            content = await self._complete(transcript, snapshot or [])
        except CollaboratorUnavailable as e:
            logger.warning("NLU: {}", e)
            return [Command.unknown()]

        commands = parse_commands(content)
        if not commands:
            return [Command.unknown()]
        logger.debug("NLU: {} command(s) from {!r}", len(commands), transcript)
        return commands

    async def _complete(self, transcript: str, snapshot: list[InventoryRow]) -> str | None:
        user_message = f'Voice command: "{transcript}"'
        if snapshot:
            user_message += "\n\nCurrent inventory:\n" + _snapshot_lines(snapshot, self.config.max_snapshot_rows)

        data = {
            "model": self.config.model,
            "messages": [
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": user_message},
            ],
            "stream": False,
            "temperature": self.config.temperature,
        }

        try:
            async with httpx.AsyncClient(timeout=self.config.timeout, transport=self._transport) as client:
                response = await client.post(self.config.url, headers=self.config.headers, json=data)
                if response.is_error:
                    raise status_error("OpenAI chat", response.status_code, response.reason_phrase)
                result = response.json()
        except httpx.TimeoutException as e:
            raise CollaboratorUnavailable("NLU request timed out") from e
        except httpx.HTTPError as e:
            raise CollaboratorUnavailable(f"NLU request failed: {e}") from e
        except json.JSONDecodeError as e:
            raise CollaboratorUnavailable(f"NLU response was not JSON: {e}") from e

        try:
            return _extract_content(result)
        except (KeyError, IndexError, TypeError) as e:
            raise CollaboratorUnavailable(f"Unexpected NLU response shape: {e}") from e


async def interpret_with_fallback(
    transcript: str,
    snapshot: list[InventoryRow] | None = None,
    adapter: NLUAdapter | None = None,
    grammar: Interpreter = interpret_many,
) -> list[Command]:
    """
    Interpret a transcript with the NLU adapter, falling back to the grammar.

    The grammar is used when there is no adapter or when the adapter produced
    nothing but `unknown`.
    """
    if adapter is not None:
        commands = [c for c in await adapter.interpret(transcript, snapshot) if not c.is_unknown]
        if commands:
            return commands
        logger.info("NLU: nothing usable, falling back to grammar")
    return grammar(transcript)
