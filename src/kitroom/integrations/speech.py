"""
Speech output and audible cue collaborators.

Speech output is fire-and-forget from the session's point of view: `speak`
starts an utterance and `cancel` stops it, so a new recording can always
interrupt an in-flight confirmation.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from loguru import logger
from rich.console import Console


@runtime_checkable
class SpeechOutput(Protocol):
    @property
    def speaking(self) -> bool: ...

    def speak(self, text: str) -> None: ...

    def cancel(self) -> None: ...


@runtime_checkable
class AudioCue(Protocol):
    def play_cue(self) -> None: ...


class ConsoleSpeaker:
    """Prints utterances to the terminal. An utterance lasts until the next one or a cancel."""

    def __init__(self, console: Console | None = None) -> None:
        self.console = console or Console()
        self._current: str | None = None

    @property
    def speaking(self) -> bool:
        return self._current is not None

    def speak(self, text: str) -> None:
        if self._current is not None:
            self.cancel()
        self._current = text
        self.console.print(f"[bold cyan]>>[/bold cyan] {text}")

    def cancel(self) -> None:
        if self._current is not None:
            logger.debug("Speaker: interrupted {!r}", self._current)
        self._current = None
