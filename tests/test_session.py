"""Tests for the VoiceSession state machine."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from kitroom.core.commands import Command, CommandType, Edition
from kitroom.core.config import KitroomConfig
from kitroom.core.errors import AmbiguousOrMissingTarget, CollaboratorUnavailable, InvalidTransition, UnknownCommand
from kitroom.core.executor import CommandExecutor
from kitroom.core.inventory import InventoryRow, InventoryView
from kitroom.core.session import SessionState, VoiceSession
from kitroom.core.store import MemoryInventoryStore


def _row(row_id: str, player: str = "Jalen Green", edition: Edition = Edition.ICON, size: str = "48", qty: int = 2):
    return InventoryRow(id=row_id, player_name=player, edition=edition, size=size, qty_inventory=qty)


def _session(rows: list[InventoryRow] | None = None, **kwargs):
    rows = rows if rows is not None else [_row("r1")]
    store = MemoryInventoryStore(rows=rows)
    view = InventoryView(list(rows))
    speaker = MagicMock()
    speaker.speaking = False
    session = VoiceSession(
        CommandExecutor(store, actor="tester"),
        view,
        speaker=speaker,
        fallback_utterance="Sorry, I didn't catch that.",
        **kwargs,
    )
    return session, store, view, speaker


class TestTextTurns:
    """Tests for typed transcripts."""

    def test_successful_turn(self) -> None:
        """Test a turn executes, confirms and speaks."""
        session, store, view, speaker = _session()

        turn = asyncio.run(session.submit_transcript("add 5 icon jerseys for Jalen Green size 48"))

        assert turn.success
        assert session.state is SessionState.SUCCESS
        assert view.get("r1").qty_inventory == 7
        assert turn.spoken == "Ok, added 5 Icon jerseys for Jalen Green size 48 to inventory."
        speaker.speak.assert_called_once_with(turn.spoken)
        assert session.last_turn is turn

    def test_unknown_transcript_speaks_fallback(self) -> None:
        """Test an unrecognized transcript mutates nothing and speaks the fallback."""
        session, store, view, speaker = _session()

        turn = asyncio.run(session.submit_transcript("What's the weather today"))

        assert session.state is SessionState.ERROR
        assert isinstance(turn.error, UnknownCommand)
        assert turn.spoken == "Sorry, I didn't catch that."
        assert turn.results == []
        assert view.get("r1").qty_inventory == 2
        assert store.audit_log() == []
        speaker.speak.assert_called_once_with("Sorry, I didn't catch that.")

    def test_missing_target_is_an_error(self) -> None:
        """Test a command with no matching row ends in error without a confirmation."""
        session, _, _, _ = _session()
        turn = asyncio.run(session.submit_transcript("take away 1 city jersey for Kevin Porter"))

        assert turn.state is SessionState.ERROR
        assert turn.results[0].command.type is CommandType.REMOVE
        assert isinstance(turn.error, AmbiguousOrMissingTarget)
        assert turn.spoken == AmbiguousOrMissingTarget.spoken

    def test_short_turn_in_speaks_actual_count(self) -> None:
        """Test a give-away larger than stock confirms only what was handed over."""
        session, _, view, _ = _session([_row("c1", player="Amen Thompson", edition=Edition.CITY, qty=2)])

        turn = asyncio.run(session.submit_transcript("give away 5 city jerseys to a fan"))

        assert turn.success
        assert view.get("c1").qty_inventory == 0
        assert turn.spoken == "Ok, turned in 2 City jerseys size 48 to a fan."

    def test_state_sequence(self) -> None:
        """Test listeners observe every transition in order."""
        session, _, _, _ = _session()
        seen = []
        session.add_listener(lambda previous, current: seen.append(current))

        asyncio.run(session.submit_transcript("add 1 icon jersey for Jalen Green"))

        assert seen == [SessionState.INTERPRETING, SessionState.EXECUTING, SessionState.SUCCESS]

    def test_broken_listener_does_not_stop_turn(self) -> None:
        """Test a failing listener is logged and ignored."""
        session, _, view, _ = _session()
        session.add_listener(MagicMock(side_effect=RuntimeError("ui gone")))
        turn = asyncio.run(session.submit_transcript("add 1 icon jersey for Jalen Green"))
        assert turn.success
        assert view.get("r1").qty_inventory == 3

    def test_multi_command_turn(self) -> None:
        """Test several commands in one transcript run in order."""
        rows = [_row("r1"), _row("r2", player="Amen Thompson", edition=Edition.CITY, qty=4)]
        session, _, view, _ = _session(rows)

        turn = asyncio.run(
            session.submit_transcript("add 2 icon jerseys for Jalen Green then take away 1 city jersey for Amen Thompson")
        )

        assert turn.success
        assert len(turn.results) == 2
        assert view.get("r1").qty_inventory == 4
        assert view.get("r2").qty_inventory == 3
        assert turn.spoken.count("Ok,") == 2

    def test_size_memory_carries_between_turns(self) -> None:
        """Test a size used once is reused when the next command omits it."""
        rows = [_row("r48", size="48", qty=5), _row("r50", size="50", qty=5)]
        session, _, view, _ = _session(rows)

        async def scenario() -> None:
            await session.submit_transcript("add 1 icon jersey for Jalen Green size 50")
            await session.submit_transcript("take away 2 icon jerseys for Jalen Green")

        asyncio.run(scenario())

        assert session.size_memory.lookup("Jalen Green", Edition.ICON) == "50"
        assert view.get("r50").qty_inventory == 4
        assert view.get("r48").qty_inventory == 5

    def test_nlu_adapter_used(self) -> None:
        """Test the NLU adapter's commands are executed when available."""
        nlu = AsyncMock()
        nlu.interpret.return_value = [Command(type="add", player_name="Jalen Green", edition="Icon", quantity=3)]
        session, _, view, _ = _session(nlu=nlu)

        turn = asyncio.run(session.submit_transcript("three more icons for jalen"))

        assert turn.success
        assert view.get("r1").qty_inventory == 5


class TestRecording:
    """Tests for the audio capture path."""

    def test_recording_turn(self) -> None:
        """Test buffered audio is transcribed and executed."""
        transcriber = AsyncMock()
        transcriber.transcribe.return_value = "add 1 icon jersey for Jalen Green"
        cue = MagicMock()
        session, _, view, _ = _session(transcriber=transcriber, cue=cue)

        assert session.start_recording()
        assert session.state is SessionState.RECORDING
        cue.play_cue.assert_called_once()
        session.feed_audio(b"chunk1")
        turn = asyncio.run(session.stop_recording(b"chunk2"))

        transcriber.transcribe.assert_awaited_once_with(b"chunk1chunk2")
        assert turn.transcript == "add 1 icon jersey for Jalen Green"
        assert turn.success
        assert view.get("r1").qty_inventory == 3

    def test_start_while_processing_is_noop(self) -> None:
        """Test start_recording does nothing while a turn is processing."""
        attempts = []

        async def transcribe(audio: bytes) -> str:
            attempts.append(session.start_recording())
            return "add 1 icon jersey for Jalen Green"

        transcriber = AsyncMock()
        transcriber.transcribe.side_effect = transcribe
        session, _, _, _ = _session(transcriber=transcriber)

        session.start_recording()
        asyncio.run(session.stop_recording(b"audio"))

        assert attempts == [False]
        assert session.state is SessionState.SUCCESS

    def test_start_while_recording_is_noop(self) -> None:
        """Test only one recording can be active."""
        session, _, _, _ = _session()
        assert session.start_recording()
        assert not session.start_recording()

    def test_barge_in_cancels_speech(self) -> None:
        """Test starting a recording interrupts an in-flight confirmation."""
        session, _, _, speaker = _session()
        speaker.speaking = True
        session.start_recording()
        speaker.cancel.assert_called_once()

    def test_cancel_discards_audio(self) -> None:
        """Test cancelling mid-recording returns to idle without interpreting."""
        interpreter = MagicMock()
        transcriber = AsyncMock()
        session, _, _, _ = _session(transcriber=transcriber, interpreter=interpreter)

        session.start_recording()
        session.feed_audio(b"partial")
        assert session.cancel()

        assert session.state is SessionState.IDLE
        assert asyncio.run(session.stop_recording()) is None
        interpreter.assert_not_called()
        transcriber.transcribe.assert_not_awaited()

    def test_cancel_outside_recording(self) -> None:
        """Test cancel is a no-op when not recording."""
        session, _, _, _ = _session()
        assert not session.cancel()
        assert session.state is SessionState.IDLE

    def test_audio_outside_recording_is_dropped(self) -> None:
        """Test audio fed while idle is ignored."""
        transcriber = AsyncMock()
        transcriber.transcribe.return_value = "add 1 icon jersey for Jalen Green"
        session, _, _, _ = _session(transcriber=transcriber)

        session.feed_audio(b"stray")
        session.start_recording()
        asyncio.run(session.stop_recording(b"real"))

        transcriber.transcribe.assert_awaited_once_with(b"real")

    def test_no_transcriber_is_an_error(self) -> None:
        """Test a recording without a transcriber fails the turn."""
        session, _, _, _ = _session()
        session.start_recording()
        turn = asyncio.run(session.stop_recording(b"audio"))

        assert session.state is SessionState.ERROR
        assert isinstance(turn.error, CollaboratorUnavailable)
        assert turn.spoken == CollaboratorUnavailable.spoken

    def test_fallback_transcriber(self) -> None:
        """Test the fallback transcriber is used when the primary is down."""
        primary = AsyncMock()
        primary.transcribe.side_effect = CollaboratorUnavailable("rate limited")
        fallback = AsyncMock()
        fallback.transcribe.return_value = "add 1 icon jersey for Jalen Green"
        session, _, _, _ = _session(transcriber=primary, fallback_transcriber=fallback)

        session.start_recording()
        turn = asyncio.run(session.stop_recording(b"audio"))

        assert turn.success

    def test_submit_during_recording_is_ignored(self) -> None:
        """Test typed input cannot interleave with an active recording."""
        session, _, view, _ = _session()
        session.start_recording()
        assert asyncio.run(session.submit_transcript("add 1 icon jersey for Jalen Green")) is None
        assert view.get("r1").qty_inventory == 2


class TestReset:
    """Tests for the automatic return to idle."""

    def test_success_resets_to_idle(self) -> None:
        """Test success falls back to idle after the delay and forgets the turn."""
        session, _, _, _ = _session(reset_delay_s=0.01)

        async def scenario() -> None:
            await session.submit_transcript("add 1 icon jersey for Jalen Green")
            assert session.state is SessionState.SUCCESS
            await asyncio.sleep(0.05)

        asyncio.run(scenario())
        assert session.state is SessionState.IDLE
        assert session.last_turn is None

    def test_error_resets_to_idle(self) -> None:
        """Test errors also return to idle on their own."""
        session, _, _, _ = _session(error_reset_delay_s=0.01)

        async def scenario() -> None:
            await session.submit_transcript("hello there")
            await asyncio.sleep(0.05)

        asyncio.run(scenario())
        assert session.state is SessionState.IDLE

    def test_new_turn_cancels_pending_reset(self) -> None:
        """Test a recording started during success is not reset underneath."""
        session, _, _, _ = _session(reset_delay_s=0.01)

        async def scenario() -> None:
            await session.submit_transcript("add 1 icon jersey for Jalen Green")
            session.start_recording()
            await asyncio.sleep(0.05)

        asyncio.run(scenario())
        assert session.state is SessionState.RECORDING

    def test_manual_reset(self) -> None:
        """Test reset only applies from success or error."""
        session, _, _, _ = _session()
        session.reset()
        assert session.state is SessionState.IDLE
        session.start_recording()
        session.reset()
        assert session.state is SessionState.RECORDING


class TestTransitions:
    """Tests for the transition table."""

    def test_illegal_transition_raises(self) -> None:
        """Test skipping stages is a programming error."""
        session, _, _, _ = _session()
        with pytest.raises(InvalidTransition):
            session._transition(SessionState.EXECUTING)


class TestFromConfig:
    """Tests for building a session from configuration."""

    def test_collaborators_follow_config(self) -> None:
        """Test disabled services are not constructed."""
        config = KitroomConfig(actor="equipment", reset_delay_s=1.5, default_size="50")
        store = MemoryInventoryStore()
        session = VoiceSession.from_config(config, store, InventoryView())

        assert session.nlu is None
        assert session.transcriber is None
        assert session.reset_delay_s == 1.5
        assert session.executor.actor == "equipment"
        assert session.resolver.default_size == "50"
