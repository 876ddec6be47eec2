"""
Configuration models for the voice command engine.

Loaded from YAML with the same nested-key navigation the assistant config
uses, and validated with pydantic.
"""

from __future__ import annotations

import os
from pathlib import Path

from pydantic import BaseModel, conint, confloat
import yaml

from .commands import Edition


class NLUConfig(BaseModel):
    """OpenAI-compatible chat endpoint used to parse transcripts."""

    enabled: bool = False
    url: str = "https://api.openai.com/v1/chat/completions"
    model: str = "gpt-4o-mini"
    api_key: str | None = None
    api_key_env: str | None = "OPENAI_API_KEY"
    timeout: float = 15.0
    temperature: float = 0.1
    max_snapshot_rows: int = 200

    def resolved_api_key(self) -> str | None:
        if self.api_key:
            return self.api_key
        if self.api_key_env:
            return os.environ.get(self.api_key_env) or None
        return None

    @property
    def headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        api_key = self.resolved_api_key()
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"
        return headers


class TranscriptionConfig(BaseModel):
    """Whisper-compatible transcription endpoint."""

    enabled: bool = False
    url: str = "https://api.openai.com/v1/audio/transcriptions"
    model: str = "whisper-1"
    language: str = "en"
    api_key: str | None = None
    api_key_env: str | None = "OPENAI_API_KEY"
    timeout: float = 30.0

    def resolved_api_key(self) -> str | None:
        if self.api_key:
            return self.api_key
        if self.api_key_env:
            return os.environ.get(self.api_key_env) or None
        return None


class NotificationConfig(BaseModel):
    webhook_url: str | None = None
    timeout: float = 10.0


class KitroomConfig(BaseModel):
    """
    Top-level configuration for a voice session.

    Defines the actor recorded in audit entries, stock thresholds, defaults
    for underspecified commands, session timing and the external services.
    """

    actor: str | None = None
    low_stock_threshold: conint(ge=0) = 1
    default_size: str = "48"
    default_edition: Edition = Edition.ICON
    placeholder_player: str = "Generic Player"
    reset_delay_s: confloat(ge=0.0) = 3.0
    error_reset_delay_s: confloat(ge=0.0) = 2.0
    fallback_utterance: str = (
        "Sorry, I didn't catch that. Try something like: add 5 Icon jerseys for Jalen Green."
    )
    inventory_path: str | None = None
    nlu: NLUConfig = NLUConfig()
    transcription: TranscriptionConfig = TranscriptionConfig()
    notifications: NotificationConfig = NotificationConfig()

    @classmethod
    def from_yaml(cls, path: str | Path, key_to_config: tuple[str, ...] = ("Kitroom",)) -> "KitroomConfig":
        """
        Load a KitroomConfig from a YAML file.

        Parameters:
            path: Path to the YAML configuration file
            key_to_config: Tuple of keys to navigate nested configuration

        Raises:
            ValueError: If the YAML content cannot be decoded
            OSError: If the file cannot be read
            pydantic.ValidationError: If the configuration is invalid
        """
        path = Path(path)

        for encoding in ["utf-8", "utf-8-sig"]:
            try:
                data = yaml.safe_load(path.read_text(encoding=encoding))
                break
            except UnicodeDecodeError:
                if encoding == "utf-8-sig":
                    raise ValueError(f"Could not decode YAML file {path} with any supported encoding")

        config = data or {}
        for key in key_to_config:
            config = config[key]

        return cls.model_validate(config or {})
