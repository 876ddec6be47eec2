"""Voice command engine for jersey inventory."""

from .core import (
    Command,
    CommandExecutor,
    CommandType,
    Edition,
    InventoryRow,
    InventoryView,
    KitroomConfig,
    MemoryInventoryStore,
    TargetResolver,
    VoiceSession,
)

__version__ = "0.1.0"

__all__ = [
    "Command",
    "CommandExecutor",
    "CommandType",
    "Edition",
    "InventoryRow",
    "InventoryView",
    "KitroomConfig",
    "MemoryInventoryStore",
    "TargetResolver",
    "VoiceSession",
]
