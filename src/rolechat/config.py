"""Application configuration using environment variables."""

from functools import lru_cache
from pathlib import Path
from typing import Literal, Optional

from pydantic import AliasChoices, AnyHttpUrl, Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

# Resolve the project root once so that `.env` is discovered regardless of CWD
PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent


class Settings(BaseSettings):
    """Load configuration from environment variables and `.env`."""

    model_config = SettingsConfigDict(
        env_file=str(PROJECT_ROOT / ".env"),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Letta agent platform
    letta_base_url: AnyHttpUrl = Field(
        default_factory=lambda: AnyHttpUrl("https://api.letta.com"),
        validation_alias=AliasChoices("LETTA_BASE_URL", "letta_base_url"),
    )
    letta_api_key: Optional[SecretStr] = Field(
        default=None,
        validation_alias=AliasChoices("LETTA_API_KEY", "letta_api_key"),
    )
    letta_model: str = Field(
        default="openai/gpt-4o-mini",
        validation_alias=AliasChoices("LETTA_MODEL", "letta_model"),
    )
    letta_embedding: str = Field(
        default="openai/text-embedding-3-small",
        validation_alias=AliasChoices("LETTA_EMBEDDING", "letta_embedding"),
    )
    request_timeout: float = Field(
        default=120.0,
        validation_alias=AliasChoices("LETTA_TIMEOUT", "request_timeout"),
        ge=1,
    )

    chat_database_path: Path = Field(
        default_factory=lambda: Path("data/rolechat.db"),
        validation_alias=AliasChoices("CHAT_DATABASE_PATH", "chat_database_path"),
    )

    # Speech synthesis
    tts_provider: Literal["openai", "worker"] = Field(
        default="openai",
        validation_alias=AliasChoices("TTS_PROVIDER", "tts_provider"),
    )
    openai_api_key: Optional[SecretStr] = Field(
        default=None,
        validation_alias=AliasChoices("OPENAI_API_KEY", "openai_api_key"),
    )
    # Used only for /audio/speech
    openai_base_url: AnyHttpUrl = Field(
        default_factory=lambda: AnyHttpUrl("https://api.openai.com/v1"),
        validation_alias=AliasChoices("OPENAI_BASE_URL", "openai_base_url"),
    )
    tts_model: str = Field(
        default="gpt-4o-mini-tts",
        validation_alias=AliasChoices("TTS_MODEL", "tts_model"),
    )
    tts_format: Literal["wav", "mp3", "opus", "aac", "flac"] = Field(
        default="mp3",
        validation_alias=AliasChoices("TTS_FORMAT", "tts_format"),
    )
    tts_default_voice: str = Field(
        default="shimmer",
        validation_alias=AliasChoices("TTS_DEFAULT_VOICE", "tts_default_voice"),
    )
    tts_default_speed: float = Field(
        default=1.1,
        ge=0.25,
        le=4.0,
        validation_alias=AliasChoices("TTS_DEFAULT_SPEED", "tts_default_speed"),
    )
    tts_instructions: Optional[str] = Field(
        default="Read in a healthy, sunny and lively young voice.",
        validation_alias=AliasChoices("TTS_INSTRUCTIONS", "tts_instructions"),
    )
    tts_worker_url: Optional[AnyHttpUrl] = Field(
        default=None,
        validation_alias=AliasChoices("TTS_WORKER_URL", "tts_worker_url"),
    )
    tts_worker_token: Optional[SecretStr] = Field(
        default=None,
        validation_alias=AliasChoices("TTS_WORKER_TOKEN", "tts_worker_token"),
    )
    tts_timeout: float = Field(
        default=60.0,
        ge=1,
        validation_alias=AliasChoices("TTS_TIMEOUT", "tts_timeout"),
    )

    # Generated audio files
    tts_audio_dir: Path = Field(
        default_factory=lambda: Path("temp_audio"),
        validation_alias=AliasChoices("TTS_AUDIO_DIR", "tts_audio_dir"),
    )
    tts_audio_ttl_seconds: int = Field(
        default=30 * 60,
        ge=0,
        validation_alias=AliasChoices(
            "TTS_AUDIO_TTL_SECONDS",
            "tts_audio_ttl_seconds",
        ),
    )
    tts_audio_max_files: int = Field(
        default=200,
        ge=1,
        validation_alias=AliasChoices("TTS_AUDIO_MAX_FILES", "tts_audio_max_files"),
    )
    tts_audio_cleanup_interval_seconds: int = Field(
        default=300,
        ge=1,
        validation_alias=AliasChoices(
            "TTS_AUDIO_CLEANUP_INTERVAL_SECONDS",
            "tts_audio_cleanup_interval_seconds",
        ),
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached `Settings` instance."""

    return Settings()  # pyright: ignore[reportCallIssue]


__all__ = ["Settings", "get_settings"]
