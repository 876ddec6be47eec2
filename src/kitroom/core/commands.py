"""
Command schema shared by the grammar interpreter, the NLU adapter and the executor.

A command is a tagged variant discriminated by `type`. Producers build them,
the resolver fills in missing details and the executor dispatches on `type`
with an exhaustive match.
"""

from __future__ import annotations

import re
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, field_validator


class CommandType(StrEnum):
    ADD = "add"
    REMOVE = "remove"
    DELETE = "delete"
    SET = "set"
    TURN_IN = "turn_in"
    LAUNDRY_RETURN = "laundry_return"
    ORDER = "order"
    SHOW = "show"
    FILTER = "filter"
    GENERATE = "generate"
    UNKNOWN = "unknown"


class Edition(StrEnum):
    ICON = "Icon"
    STATEMENT = "Statement"
    ASSOCIATION = "Association"
    CITY = "City"


class FilterType(StrEnum):
    LOW_STOCK = "low_stock"
    ZERO_STOCK = "zero_stock"
    LVA = "lva"
    PLAYER = "player"
    EDITION = "edition"


class ActionKind(StrEnum):
    REORDER_EMAIL = "reorder_email"
    REPORT = "report"
    EXPORT = "export"


SET_SIZE_NOTE = "set_size"

_PLURAL_S = re.compile(r"s\b")


def normalize_edition(text: str | None) -> Edition | None:
    """
    Map a spoken edition word onto the closed edition enum.

    A trailing pluralizing "s" is stripped first, then the canonical edition
    names are matched as substrings. Returns None when nothing matches.
    """
    if not text:
        return None
    lowered = text.strip().lower().replace("cities", "city")
    singular = _PLURAL_S.sub("", lowered, count=1)
    for edition in Edition:
        if edition.value.lower() in singular:
            return edition
    return None


class Command(BaseModel):
    """A single structured inventory instruction."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    type: CommandType
    player_name: str | None = None
    edition: Edition | None = None
    size: str | None = None
    quantity: int | None = None
    target_quantity: int | None = None
    recipient: str | None = None
    filter_type: FilterType | None = None
    action: ActionKind | None = None
    notes: str | None = None
    vendor: str | None = None
    location: str | None = None

    @field_validator("type", mode="before")
    @classmethod
    def _lower_type(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip().lower()
        return value

    @field_validator("edition", mode="before")
    @classmethod
    def _coerce_edition(cls, value: Any) -> Any:
        if value is None or isinstance(value, Edition):
            return value
        if isinstance(value, str):
            if not value.strip():
                return None
            edition = normalize_edition(value)
            if edition is None:
                raise ValueError(f"edition must be one of: {', '.join(e.value for e in Edition)}")
            return edition
        return value

    @field_validator("size", mode="before")
    @classmethod
    def _coerce_size(cls, value: Any) -> Any:
        if isinstance(value, bool):
            return value
        if isinstance(value, float) and not value.is_integer():
            raise ValueError(f"size must be a whole number, got {value}")
        if isinstance(value, (int, float)):
            return str(int(value))
        if isinstance(value, str):
            return value.strip() or None
        return value

    @field_validator("player_name", "recipient", "notes", "vendor", "location", mode="before")
    @classmethod
    def _blank_to_none(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip() or None
        return value

    @classmethod
    def unknown(cls) -> Command:
        return cls(type=CommandType.UNKNOWN)

    @property
    def is_unknown(self) -> bool:
        return self.type is CommandType.UNKNOWN

    @property
    def is_size_change(self) -> bool:
        """True for `set` commands that rewrite the size field instead of a quantity."""
        return self.type is CommandType.SET and self.notes == SET_SIZE_NOTE

    def requested_quantity(self, default: int = 1) -> int:
        return self.quantity if self.quantity is not None else default

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json", exclude_none=True)
