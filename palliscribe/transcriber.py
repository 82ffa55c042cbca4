"""
Transcription Adapter for PalliScribe
=====================================

Audio-to-text conversion using OpenAI's Whisper model.

The adapter takes a binary audio payload (as recorded by the point-of-care
app), sends it to Whisper with a palliative-care vocabulary prompt to bias
word recognition, and returns a Transcript.

Failure Policy
--------------
Any failure (empty payload, model load, decode, inference) raises
TranscriptionError carrying the upstream message. No retry is attempted
here; retry policy belongs to the caller.
"""

import asyncio
import logging
import os
import tempfile
from typing import Optional, Protocol

import whisper

from palliscribe.config import Settings, get_settings
from palliscribe.exceptions import TranscriptionError
from palliscribe.models import Transcript


logger = logging.getLogger(__name__)


class TranscriberProtocol(Protocol):
    """
    Protocol defining the interface for transcription services.

    Any class with a matching `atranscribe` method is a valid transcriber.
    """

    async def atranscribe(
        self,
        audio: bytes,
        language: Optional[str] = None,
        file_suffix: str = ".wav"
    ) -> Transcript:
        """
        Transcribe an audio payload to text.

        Raises:
            TranscriptionError: If the backend fails for any reason
        """
        ...


class WhisperTranscriber:
    """
    Transcriber implementation using a local Whisper model.

    The model is loaded lazily on first use and reused for every request.
    Inference is blocking, so it runs in a worker thread.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        model: Optional[whisper.Whisper] = None
    ):
        """
        Initialize the Whisper transcriber.

        Args:
            settings: Application settings (uses defaults if not provided)
            model: Pre-loaded Whisper model (loads fresh if not provided)
        """
        self.settings = settings or get_settings()
        self._model = model

        logger.info(f"WhisperTranscriber initialized with model: {self.settings.whisper_model}")

    @property
    def model(self) -> whisper.Whisper:
        """Lazy-load the Whisper model."""
        if self._model is None:
            self._load_model()
        return self._model

    def _load_model(self) -> None:
        try:
            logger.info(f"Loading Whisper model: {self.settings.whisper_model}")
            self._model = whisper.load_model(
                self.settings.whisper_model,
                device=self.settings.whisper_device
            )
            logger.info(f"Whisper model loaded successfully on {self.settings.whisper_device}")
        except Exception as e:
            logger.error(f"Failed to load Whisper model: {e}")
            raise TranscriptionError(
                reason=f"model load failed: {e}",
                model_name=self.settings.whisper_model
            ) from e

    def transcribe(
        self,
        audio: bytes,
        language: Optional[str] = None,
        file_suffix: str = ".wav"
    ) -> Transcript:
        """
        Transcribe an audio payload (blocking).

        Whisper reads audio through ffmpeg from a file path, so the payload
        is written to a temporary file for the duration of the call.
        """
        if not audio:
            raise TranscriptionError(reason="empty audio payload", model_name=self.settings.whisper_model)

        language = language or self.settings.whisper_language
        logger.info(f"Starting transcription ({len(audio)} bytes, language: {language})")

        fd, audio_path = tempfile.mkstemp(suffix=file_suffix, prefix="palliscribe_")
        try:
            with os.fdopen(fd, "wb") as handle:
                handle.write(audio)

            result = self.model.transcribe(
                audio_path,
                language=language,
                initial_prompt=self.settings.vocabulary_hint,
                verbose=False
            )
        except TranscriptionError:
            raise
        except Exception as e:
            logger.error(f"Transcription failed: {e}")
            raise TranscriptionError(reason=str(e), model_name=self.settings.whisper_model) from e
        finally:
            if os.path.exists(audio_path):
                os.remove(audio_path)

        text = result["text"].strip()
        duration = None
        if result.get("segments"):
            duration = result["segments"][-1].get("end")

        logger.info(f"Transcription complete: {len(text)} characters")
        return Transcript(
            text=text,
            duration_seconds=duration,
            language=result.get("language") or language
        )

    async def atranscribe(
        self,
        audio: bytes,
        language: Optional[str] = None,
        file_suffix: str = ".wav"
    ) -> Transcript:
        """
        Async version of transcribe().

        Whisper inference is CPU/GPU bound, so it runs in the default thread
        pool and the event loop stays responsive.
        """
        return await asyncio.to_thread(self.transcribe, audio, language, file_suffix)


class MockTranscriber:
    """
    Mock transcriber for testing.

    Usage in tests:
        transcriber = MockTranscriber(mock_text="Patient reports pain...")
        transcriber = MockTranscriber(error=TranscriptionError("timeout"))
    """

    def __init__(
        self,
        mock_text: str = "Mock transcription text",
        error: Optional[Exception] = None
    ):
        self.mock_text = mock_text
        self.error = error
        self.call_count = 0

    async def atranscribe(
        self,
        audio: bytes,
        language: Optional[str] = None,
        file_suffix: str = ".wav"
    ) -> Transcript:
        self.call_count += 1
        if self.error is not None:
            raise self.error
        return Transcript(text=self.mock_text, duration_seconds=60.0, language=language or "en")


def create_transcriber(
    settings: Optional[Settings] = None,
    use_mock: bool = False,
    mock_text: str = ""
) -> TranscriberProtocol:
    """Factory function to create the appropriate transcriber."""
    if use_mock:
        logger.info("Creating mock transcriber")
        return MockTranscriber(mock_text=mock_text)

    logger.info("Creating Whisper transcriber")
    return WhisperTranscriber(settings=settings)
