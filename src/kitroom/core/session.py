"""
Voice session state machine.

One turn runs through:

    idle -> recording -> transcribing -> interpreting -> executing -> success|error -> idle

Typed input enters at `interpreting`. Only one turn is processed at a time,
starting a recording while a turn is processing is a no-op, and starting one
while a confirmation is being spoken interrupts the speech. `success` and
`error` fall back to `idle` on their own after a short delay.

Usage:
    session = VoiceSession.from_config(config, store, view)
    session.start_recording()
    session.feed_audio(chunk)
    turn = await session.stop_recording()
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import StrEnum

from loguru import logger

from ..integrations.nlu import NLUAdapter, interpret_with_fallback
from ..integrations.notifications import LowStockNotifier, WebhookNotifier
from ..integrations.speech import AudioCue, SpeechOutput
from ..integrations.transcription import Transcriber, WhisperTranscriber, transcribe_with_fallback
from .commands import Command
from .confirmation import confirm_all
from .config import KitroomConfig
from .errors import CollaboratorUnavailable, InvalidTransition, InventoryError, UnknownCommand
from .executor import CommandExecutor, ExecutionResult, OrderRequester
from .grammar import Interpreter, interpret_many
from .inventory import InventoryView
from .resolver import Resolution, TargetResolver
from .size_memory import SizeMemory
from .store import InventoryStore


class SessionState(StrEnum):
    IDLE = "idle"
    RECORDING = "recording"
    TRANSCRIBING = "transcribing"
    INTERPRETING = "interpreting"
    EXECUTING = "executing"
    SUCCESS = "success"
    ERROR = "error"


_TRANSITIONS: dict[SessionState, frozenset[SessionState]] = {
    SessionState.IDLE: frozenset({SessionState.RECORDING, SessionState.INTERPRETING}),
    SessionState.RECORDING: frozenset({SessionState.TRANSCRIBING, SessionState.IDLE}),
    SessionState.TRANSCRIBING: frozenset({SessionState.INTERPRETING, SessionState.ERROR}),
    SessionState.INTERPRETING: frozenset({SessionState.EXECUTING, SessionState.ERROR}),
    SessionState.EXECUTING: frozenset({SessionState.SUCCESS, SessionState.ERROR}),
    SessionState.SUCCESS: frozenset({SessionState.IDLE, SessionState.RECORDING, SessionState.INTERPRETING}),
    SessionState.ERROR: frozenset({SessionState.IDLE, SessionState.RECORDING, SessionState.INTERPRETING}),
}

PROCESSING_STATES = frozenset({SessionState.TRANSCRIBING, SessionState.INTERPRETING, SessionState.EXECUTING})

StateListener = Callable[[SessionState, SessionState], None]


@dataclass
class TurnResult:
    """Everything that happened during one user turn."""

    transcript: str
    commands: list[Command] = field(default_factory=list)
    results: list[ExecutionResult] = field(default_factory=list)
    spoken: str | None = None
    state: SessionState = SessionState.IDLE
    error: InventoryError | None = None

    @property
    def success(self) -> bool:
        return self.state is SessionState.SUCCESS


class VoiceSession:
    """Drives one user turn at a time from capture to spoken confirmation."""

    def __init__(
        self,
        executor: CommandExecutor,
        view: InventoryView,
        transcriber: Transcriber | None = None,
        fallback_transcriber: Transcriber | None = None,
        nlu: NLUAdapter | None = None,
        interpreter: Interpreter = interpret_many,
        resolver: TargetResolver | None = None,
        size_memory: SizeMemory | None = None,
        speaker: SpeechOutput | None = None,
        cue: AudioCue | None = None,
        reset_delay_s: float = 3.0,
        error_reset_delay_s: float = 2.0,
        fallback_utterance: str = "Sorry, I didn't catch that.",
    ) -> None:
        self.executor = executor
        self.view = view
        self.transcriber = transcriber
        self.fallback_transcriber = fallback_transcriber
        self.nlu = nlu
        self.interpreter = interpreter
        self.resolver = resolver or TargetResolver()
        self.size_memory = size_memory if size_memory is not None else SizeMemory()
        self.speaker = speaker
        self.cue = cue
        self.reset_delay_s = reset_delay_s
        self.error_reset_delay_s = error_reset_delay_s
        self.fallback_utterance = fallback_utterance

        self._state = SessionState.IDLE
        self._lock = asyncio.Lock()
        self._audio = bytearray()
        self._reset_handle: asyncio.TimerHandle | None = None
        self._listeners: list[StateListener] = []
        self.last_turn: TurnResult | None = None

    @classmethod
    def from_config(
        cls,
        config: KitroomConfig,
        store: InventoryStore,
        view: InventoryView,
        speaker: SpeechOutput | None = None,
        cue: AudioCue | None = None,
        notifier: LowStockNotifier | None = None,
        orderer: OrderRequester | None = None,
        fallback_transcriber: Transcriber | None = None,
    ) -> "VoiceSession":
        """Build a session and its collaborators from a KitroomConfig."""
        executor = CommandExecutor.from_config(
            config,
            store,
            notifier=notifier or WebhookNotifier(config.notifications),
            orderer=orderer,
        )
        return cls(
            executor,
            view,
            transcriber=WhisperTranscriber(config.transcription) if config.transcription.enabled else None,
            fallback_transcriber=fallback_transcriber,
            nlu=NLUAdapter(config.nlu) if config.nlu.enabled else None,
            resolver=TargetResolver(default_size=config.default_size),
            speaker=speaker,
            cue=cue,
            reset_delay_s=config.reset_delay_s,
            error_reset_delay_s=config.error_reset_delay_s,
            fallback_utterance=config.fallback_utterance,
        )

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def processing(self) -> bool:
        return self._state in PROCESSING_STATES

    def add_listener(self, listener: StateListener) -> None:
        """Register a callback invoked with (previous, current) on every state change."""
        self._listeners.append(listener)

    def start_recording(self) -> bool:
        """
        Begin capturing a new turn.

        Returns:
            False if a turn is already recording or processing, True otherwise
        """
        if self.processing or self._state is SessionState.RECORDING:
            logger.debug("Session: start ignored while {}", self._state.value)
            return False
        self._cancel_reset()
        if self.speaker is not None and self.speaker.speaking:
            logger.info("Session: barge-in, interrupting speech")
            self.speaker.cancel()
        self._audio.clear()
        self._transition(SessionState.RECORDING)
        if self.cue is not None:
            self.cue.play_cue()
        return True

    def feed_audio(self, chunk: bytes) -> None:
        if self._state is not SessionState.RECORDING:
            logger.debug("Session: dropping {} audio bytes while {}", len(chunk), self._state.value)
            return
        self._audio.extend(chunk)

    def cancel(self) -> bool:
        """Abandon the current recording, discarding buffered audio."""
        if self._state is not SessionState.RECORDING:
            return False
        discarded = len(self._audio)
        self._audio.clear()
        self._transition(SessionState.IDLE)
        logger.info("Session: recording cancelled, discarded {} bytes", discarded)
        return True

    async def stop_recording(self, audio: bytes | None = None) -> TurnResult | None:
        """
        Finish the recording and process it as one turn.

        Returns:
            The turn outcome, or None if no recording was active
        """
        if self._state is not SessionState.RECORDING:
            logger.debug("Session: stop ignored while {}", self._state.value)
            return None
        if audio:
            self._audio.extend(audio)
        payload = bytes(self._audio)
        self._audio.clear()

        async with self._lock:
            self._transition(SessionState.TRANSCRIBING)
            turn = TurnResult(transcript="")
            try:
                if self.transcriber is None:
                    raise CollaboratorUnavailable("No transcriber configured")
                turn.transcript = await transcribe_with_fallback(payload, self.transcriber, self.fallback_transcriber)
            except CollaboratorUnavailable as e:
                logger.error("Session: transcription failed: {}", e)
                return self._finish(turn, e)
            return await self._run_turn(turn)

    async def submit_transcript(self, text: str) -> TurnResult | None:
        """
        Process typed or externally transcribed text as one turn.

        Returns:
            The turn outcome, or None if a recording is in progress
        """
        async with self._lock:
            if self._state is SessionState.RECORDING:
                logger.warning("Session: transcript ignored while recording")
                return None
            self._cancel_reset()
            if self.speaker is not None and self.speaker.speaking:
                self.speaker.cancel()
            return await self._run_turn(TurnResult(transcript=text))

    def reset(self) -> None:
        """Return to idle from success or error and forget the last turn."""
        self._cancel_reset()
        if self._state in (SessionState.SUCCESS, SessionState.ERROR):
            self._transition(SessionState.IDLE)
            self.last_turn = None

    async def _run_turn(self, turn: TurnResult) -> TurnResult:
        self._transition(SessionState.INTERPRETING)
        try:
            turn.commands = await interpret_with_fallback(
                turn.transcript, self.view.snapshot(), self.nlu, self.interpreter
            )
            known = [c for c in turn.commands if not c.is_unknown]
            if not known:
                return self._finish(turn, UnknownCommand(f"Could not interpret {turn.transcript!r}"))

            self._transition(SessionState.EXECUTING)
            for command in known:
                # Each command resolves against the rows as they stand when it is issued.
                resolution = self.resolver.resolve(command, self.view.snapshot(), self.size_memory)
                result = await self.executor.execute(resolution.command, resolution, self.view)
                turn.results.append(result)
                if result.success:
                    self._remember_sizes(resolution, result)
        except Exception:
            logger.exception("Session: turn failed unexpectedly")
            if self._state in PROCESSING_STATES:
                self._transition(SessionState.ERROR)
                self._schedule_reset(self.error_reset_delay_s)
            raise

        if any(r.success for r in turn.results):
            return self._finish(turn)
        return self._finish(turn, next((r.error for r in turn.results if r.error), None))

    def _finish(self, turn: TurnResult, error: InventoryError | None = None) -> TurnResult:
        if error is None and any(r.success for r in turn.results):
            turn.state = SessionState.SUCCESS
            turn.spoken = confirm_all((r.command, r) for r in turn.results)
            delay = self.reset_delay_s
        else:
            turn.state = SessionState.ERROR
            turn.error = error or UnknownCommand("Nothing was executed")
            turn.spoken = self.fallback_utterance if isinstance(turn.error, UnknownCommand) else turn.error.spoken
            delay = self.error_reset_delay_s

        self._transition(turn.state)
        self.last_turn = turn
        if turn.spoken and self.speaker is not None:
            self.speaker.speak(turn.spoken)
        if turn.state is SessionState.SUCCESS:
            logger.success("Session: {!r} -> {}", turn.transcript, turn.spoken)
        else:
            logger.warning("Session: {!r} failed: {}", turn.transcript, turn.error)
        self._schedule_reset(delay)
        return turn

    def _remember_sizes(self, resolution: Resolution, result: ExecutionResult) -> None:
        if not (resolution.size or resolution.command.is_size_change):
            return
        for row in result.rows:
            self.size_memory.remember(row.player_name, row.edition, row.size)

    def _transition(self, new_state: SessionState) -> None:
        previous = self._state
        if new_state not in _TRANSITIONS[previous]:
            raise InvalidTransition(f"Illegal session transition {previous.value} -> {new_state.value}")
        self._state = new_state
        logger.debug("Session: {} -> {}", previous.value, new_state.value)
        for listener in list(self._listeners):
            try:
                listener(previous, new_state)
            except Exception as e:
                logger.warning("Session: state listener failed: {}", e)

    def _schedule_reset(self, delay: float) -> None:
        self._cancel_reset()
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        self._reset_handle = loop.call_later(delay, self.reset)

    def _cancel_reset(self) -> None:
        if self._reset_handle is not None:
            self._reset_handle.cancel()
            self._reset_handle = None
