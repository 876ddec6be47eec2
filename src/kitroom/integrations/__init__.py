from .nlu import NLUAdapter, interpret_with_fallback, parse_commands
from .notifications import LowStockNotifier, WebhookNotifier, build_reorder_email_draft
from .speech import AudioCue, ConsoleSpeaker, SpeechOutput
from .transcription import Transcriber, WhisperTranscriber, transcribe_with_fallback

__all__ = [
    "AudioCue",
    "ConsoleSpeaker",
    "LowStockNotifier",
    "NLUAdapter",
    "SpeechOutput",
    "Transcriber",
    "WebhookNotifier",
    "WhisperTranscriber",
    "build_reorder_email_draft",
    "interpret_with_fallback",
    "parse_commands",
    "transcribe_with_fallback",
]
