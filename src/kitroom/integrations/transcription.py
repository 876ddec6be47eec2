"""
Speech-to-text collaborators.

A transcriber takes the raw bytes captured during one recording and returns
the transcript. Failures are raised as CollaboratorUnavailable.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

import httpx
from loguru import logger

from ..core.config import TranscriptionConfig
from ..core.errors import CollaboratorUnavailable, status_error


@runtime_checkable
class Transcriber(Protocol):
    async def transcribe(self, audio: bytes) -> str: ...


class WhisperTranscriber:
    """Whisper-compatible `/audio/transcriptions` client."""

    def __init__(
        self,
        config: TranscriptionConfig | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        filename: str = "audio.webm",
    ) -> None:
        self.config = config or TranscriptionConfig()
        self.filename = filename
        self._transport = transport

    async def transcribe(self, audio: bytes) -> str:
        if not audio:
            raise CollaboratorUnavailable("No audio captured")
        api_key = self.config.resolved_api_key()
        headers = {"Authorization": f"Bearer {api_key}"} if api_key else {}
        data = {"model": self.config.model, "language": self.config.language}
        files = {"file": (self.filename, audio, "application/octet-stream")}

        try:
            async with httpx.AsyncClient(timeout=self.config.timeout, transport=self._transport) as client:
                response = await client.post(self.config.url, headers=headers, data=data, files=files)
                if response.is_error:
                    raise status_error("OpenAI Whisper", response.status_code, response.reason_phrase)
                payload = response.json()
        except httpx.TimeoutException as e:
            raise CollaboratorUnavailable("Transcription request timed out") from e
        except httpx.HTTPError as e:
            raise CollaboratorUnavailable(f"Transcription request failed: {e}") from e
        except ValueError as e:
            raise CollaboratorUnavailable(f"Transcription response was not JSON: {e}") from e

        text = (payload.get("text") or "").strip() if isinstance(payload, dict) else ""
        logger.debug("Transcriber: {!r}", text)
        return text


async def transcribe_with_fallback(
    audio: bytes,
    primary: Transcriber,
    fallback: Transcriber | None = None,
) -> str:
    """
    Transcribe with `primary`, retrying once on `fallback` if it fails.

    Raises:
        CollaboratorUnavailable: If every configured transcriber failed
    """
    try:
        return await primary.transcribe(audio)
    except CollaboratorUnavailable as e:
        if fallback is None:
            raise
        logger.warning("Transcriber: primary failed ({}), trying fallback", e)
    return await fallback.transcribe(audio)
