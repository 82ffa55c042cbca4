"""
Configuration Management for PalliScribe
========================================

All application configuration goes through one pydantic-settings class:

1. **Environment Variable Support**: Easy deployment configuration
2. **Validation**: Catches configuration errors at startup
3. **Defaults**: Sensible defaults for development

Settings are loaded once through a cached accessor, with a factory for tests
that need specific values.
"""

import logging
from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_MEDICAL_TERMS = [
    "ESAS", "Edmonton Symptom Assessment", "pain scale", "dyspnea", "nausea",
    "fatigue", "appetite", "wellbeing", "anxiety", "depression", "drowsiness",
    "PRN", "as needed", "morphine", "oxycodone", "lorazepam", "haloperidol",
    "comfort care", "goals of care", "advance directives", "DNR", "DNI",
    "hospice", "palliative", "symptom management", "caregiver burden",
]


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Environment variables are prefixed with PALLISCRIBE_.
    Example: PALLISCRIBE_OLLAMA_MODEL=llama3.2

    Priority order (highest to lowest):
    1. Environment variables
    2. .env file
    3. Default values defined here
    """

    model_config = SettingsConfigDict(
        env_prefix="PALLISCRIBE_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # =================================================================
    # Whisper Configuration
    # =================================================================
    whisper_model: str = Field(
        default="base",
        description="Whisper model size. Options: tiny, base, small, medium, large"
    )

    whisper_device: str = Field(
        default="cpu",
        description="Device for Whisper: 'cpu' or 'cuda'"
    )

    whisper_language: str = Field(
        default="en",
        description="Language code passed to the transcription backend"
    )

    medical_terms: list[str] = Field(
        default_factory=lambda: list(DEFAULT_MEDICAL_TERMS),
        description="Palliative-care vocabulary used to bias word recognition"
    )

    vocabulary_hint_size: int = Field(
        default=10,
        ge=1,
        description="How many medical terms are sent as the transcription hint"
    )

    # =================================================================
    # Ollama Configuration
    # =================================================================
    ollama_base_url: str = Field(
        default="http://localhost:11434",
        description="Ollama server URL. Default is local installation."
    )

    ollama_model: str = Field(
        default="llama3.2",
        description="Ollama model used for note synthesis and entity extraction"
    )

    ollama_timeout: int = Field(
        default=120,
        description="Timeout in seconds for Ollama requests"
    )

    ollama_context_window: int = Field(
        default=4096,
        description="Context window size for Ollama model (tokens)"
    )

    note_temperature: float = Field(
        default=0.3,
        ge=0.0,
        le=2.0,
        description="""
        Sampling temperature for note synthesis.

        Kept low: this is a documentation tool, not a drafting assistant.
        """
    )

    note_max_tokens: int = Field(
        default=2000,
        description="Maximum output tokens for note synthesis"
    )

    entity_temperature: float = Field(
        default=0.1,
        ge=0.0,
        le=2.0,
        description="Sampling temperature for entity extraction"
    )

    entity_max_tokens: int = Field(
        default=800,
        description="Maximum output tokens for entity extraction"
    )

    # =================================================================
    # Datastore Configuration
    # =================================================================
    database_path: Optional[str] = Field(
        default=None,
        description="""
        Path to the SQLite datastore.

        Required by the dispatch server, which exits at startup when unset.
        The pipeline only persists notes when this is configured.
        """
    )

    # =================================================================
    # Dispatch Server Configuration
    # =================================================================
    server_name: str = Field(
        default="palliscribe-mcp-server",
        description="Name announced to MCP clients"
    )

    server_version: str = Field(
        default="0.1.0",
        description="Version announced to MCP clients"
    )

    # =================================================================
    # Logging Configuration
    # =================================================================
    log_level: str = Field(
        default="INFO",
        description="Logging level: DEBUG, INFO, WARNING, ERROR, CRITICAL"
    )

    log_format: str = Field(
        default="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        description="Python logging format string"
    )

    @property
    def vocabulary_hint(self) -> str:
        """Prompt string that biases the transcription backend toward domain terms."""
        terms = self.medical_terms[:self.vocabulary_hint_size]
        return "Medical visit documentation including: " + ", ".join(terms)


@lru_cache()
def get_settings() -> Settings:
    """
    Get application settings (cached singleton).

    For testing, you can clear the cache:
        get_settings.cache_clear()
    """
    return Settings()


def get_settings_for_testing(**overrides) -> Settings:
    """
    Create a Settings instance with custom values for testing.

    Example:
        settings = get_settings_for_testing(database_path=str(tmp_path / "db.sqlite3"))
    """
    return Settings(**overrides)


def setup_logging(settings: Optional[Settings] = None, level: Optional[int] = None) -> None:
    """
    Configure root logging from settings.

    Logs go to stderr, which keeps stdout free for the MCP stdio transport.
    """
    settings = settings or get_settings()
    if level is None:
        level = getattr(logging, settings.log_level.upper(), logging.INFO)

    logging.basicConfig(
        level=level,
        format=settings.log_format
    )
