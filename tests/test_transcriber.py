import os

import pytest

from palliscribe.exceptions import TranscriptionError
from palliscribe.transcriber import MockTranscriber, WhisperTranscriber, create_transcriber


pytestmark = pytest.mark.anyio


class FakeWhisperModel:
    """Stands in for a loaded whisper.Whisper model."""

    def __init__(self, result=None, error=None):
        self.result = result or {
            "text": "  Patient states pain is worsening.  ",
            "language": "en",
            "segments": [{"start": 0.0, "end": 4.0}, {"start": 4.0, "end": 12.5}],
        }
        self.error = error
        self.calls = []

    def transcribe(self, path, **kwargs):
        self.calls.append({"path": path, "exists": os.path.exists(path), **kwargs})
        with open(path, "rb") as handle:
            self.calls[-1]["payload"] = handle.read()
        if self.error is not None:
            raise self.error
        return self.result


async def test_transcribes_with_vocabulary_hint(settings):
    model = FakeWhisperModel()
    transcriber = WhisperTranscriber(settings=settings, model=model)

    transcript = await transcriber.atranscribe(b"RIFF....WAVE", file_suffix=".wav")

    assert transcript.text == "Patient states pain is worsening."
    assert transcript.duration_seconds == 12.5
    assert transcript.language == "en"

    call = model.calls[0]
    assert call["payload"] == b"RIFF....WAVE"
    assert call["path"].endswith(".wav")
    assert call["language"] == "en"
    assert call["initial_prompt"] == settings.vocabulary_hint
    assert call["initial_prompt"].startswith("Medical visit documentation including: ESAS")


async def test_temporary_audio_file_is_removed(settings):
    model = FakeWhisperModel()
    transcriber = WhisperTranscriber(settings=settings, model=model)

    await transcriber.atranscribe(b"audio")

    assert model.calls[0]["exists"]
    assert not os.path.exists(model.calls[0]["path"])


async def test_backend_failure_raises_transcription_error(settings):
    model = FakeWhisperModel(error=RuntimeError("ffmpeg: invalid data found"))
    transcriber = WhisperTranscriber(settings=settings, model=model)

    with pytest.raises(TranscriptionError) as exc_info:
        await transcriber.atranscribe(b"not audio")

    assert "ffmpeg: invalid data found" in exc_info.value.message
    assert exc_info.value.details["model_name"] == settings.whisper_model
    assert not os.path.exists(model.calls[0]["path"])


async def test_empty_payload_is_rejected(settings):
    model = FakeWhisperModel()
    transcriber = WhisperTranscriber(settings=settings, model=model)

    with pytest.raises(TranscriptionError):
        await transcriber.atranscribe(b"")
    assert model.calls == []


async def test_explicit_language_overrides_default(settings):
    model = FakeWhisperModel(result={"text": "Dolor controlado", "segments": []})
    transcriber = WhisperTranscriber(settings=settings, model=model)

    transcript = await transcriber.atranscribe(b"audio", language="es")

    assert model.calls[0]["language"] == "es"
    assert transcript.language == "es"
    assert transcript.duration_seconds is None


async def test_mock_transcriber():
    transcriber = create_transcriber(use_mock=True, mock_text="Patient reports nausea")

    transcript = await transcriber.atranscribe(b"ignored")

    assert transcript.text == "Patient reports nausea"
    assert transcriber.call_count == 1


async def test_mock_transcriber_error():
    transcriber = MockTranscriber(error=TranscriptionError("decoder crashed"))

    with pytest.raises(TranscriptionError, match="decoder crashed"):
        await transcriber.atranscribe(b"audio")
