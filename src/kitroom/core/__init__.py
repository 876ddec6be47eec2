from .commands import ActionKind, Command, CommandType, Edition, FilterType
from .config import KitroomConfig, NLUConfig, NotificationConfig, TranscriptionConfig
from .errors import (
    AmbiguousOrMissingTarget,
    CollaboratorUnavailable,
    InvalidTransition,
    InventoryError,
    PersistenceFailure,
    UnknownCommand,
    ValidationFailure,
)
from .grammar import interpret, interpret_many
from .inventory import InventoryRow, InventoryView
from .resolver import Resolution, TargetResolver
from .size_memory import SizeMemory
from .store import AuditEntry, InventoryStore, MemoryInventoryStore
from .executor import AppliedChange, CommandExecutor, ExecutionResult
from .confirmation import confirm, confirm_all
from .session import SessionState, TurnResult, VoiceSession

__all__ = [
    "ActionKind",
    "AmbiguousOrMissingTarget",
    "AppliedChange",
    "AuditEntry",
    "CollaboratorUnavailable",
    "Command",
    "CommandExecutor",
    "CommandType",
    "Edition",
    "ExecutionResult",
    "FilterType",
    "InvalidTransition",
    "InventoryError",
    "InventoryRow",
    "InventoryStore",
    "InventoryView",
    "KitroomConfig",
    "MemoryInventoryStore",
    "NLUConfig",
    "NotificationConfig",
    "PersistenceFailure",
    "Resolution",
    "SessionState",
    "SizeMemory",
    "TargetResolver",
    "TranscriptionConfig",
    "TurnResult",
    "UnknownCommand",
    "ValidationFailure",
    "VoiceSession",
    "confirm",
    "confirm_all",
    "interpret",
    "interpret_many",
]
