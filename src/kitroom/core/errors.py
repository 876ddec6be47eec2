"""
Error taxonomy for a single voice turn.

Every failure is scoped to the turn that produced it. The session reports it,
speaks a fallback and returns to idle; nothing here is fatal to the process.
"""

from __future__ import annotations


class InventoryError(Exception):
    """Base class for all turn-scoped errors."""

    spoken: str = "Sorry, something went wrong with that command."


class UnknownCommand(InventoryError):
    """Neither the grammar nor the NLU service could classify the transcript."""

    spoken = "Sorry, I didn't understand that command."


class AmbiguousOrMissingTarget(InventoryError):
    """No inventory row matched the command; nothing was mutated."""

    spoken = "I couldn't find a matching jersey for that."


class ValidationFailure(InventoryError):
    """The mutation would leave an invalid state and was rejected before persistence."""

    spoken = "That change isn't valid, so I left inventory alone."


class PersistenceFailure(InventoryError):
    """The storage collaborator failed; the optimistic update was rolled back."""

    spoken = "I couldn't save that change. Please try again."


class CollaboratorUnavailable(InventoryError):
    """A transcription or NLU service could not be reached."""

    spoken = "The voice service is unavailable right now."


class InvalidTransition(RuntimeError):
    """Raised when the session state machine is driven through an illegal edge."""

    pass


_STATUS_REASONS = {
    401: "API key invalid or expired",
    402: "payment required - insufficient credits",
    429: "rate limit exceeded or insufficient credits",
}


def status_error(service: str, status_code: int, detail: str = "") -> CollaboratorUnavailable:
    """Build the error for a non-2xx response from an external service."""
    reason = _STATUS_REASONS.get(status_code)
    if reason:
        return CollaboratorUnavailable(f"{service} {reason}")
    suffix = f" - {detail}" if detail else ""
    return CollaboratorUnavailable(f"{service} failed with status {status_code}{suffix}")
