import json

import pytest

from palliscribe.completion import MockCompletionClient
from palliscribe.datastore import Filter
from palliscribe.entity_extractor import EntityExtractor
from palliscribe.exceptions import TranscriptionError
from palliscribe.models import NoteSource, ProcessingStatus
from palliscribe.note_synthesizer import NoteSynthesizer
from palliscribe.pipeline import DocumentationPipeline, save_result_to_file
from palliscribe.transcriber import MockTranscriber

from conftest import EXAMPLE_TRANSCRIPT


pytestmark = pytest.mark.anyio


@pytest.fixture
def transcriber():
    return MockTranscriber(mock_text=EXAMPLE_TRANSCRIPT)


@pytest.fixture
def pipeline(settings, transcriber, synthesizer, extractor, datastore):
    return DocumentationPipeline(
        settings=settings,
        transcriber=transcriber,
        note_synthesizer=synthesizer,
        entity_extractor=extractor,
        datastore=datastore,
    )


async def test_audio_runs_every_stage(pipeline):
    result = await pipeline.aprocess(b"audio")

    assert result.status == ProcessingStatus.COMPLETED
    assert result.transcript.text == EXAMPLE_TRANSCRIPT
    assert result.synthesis.source == NoteSource.GENERATED
    assert result.validation.is_valid
    assert result.extraction.entities.confidence == pytest.approx(0.85)
    assert result.record_id is None
    assert result.processing_time_seconds is not None


async def test_note_is_stored_for_patient(pipeline, datastore):
    result = await pipeline.aprocess(b"audio", patient_id="p-1", visit_id="v-1")

    assert result.record_id
    rows = await datastore.select("clinical_notes", [Filter("id", result.record_id)])
    row = rows[0]
    assert row["patient_id"] == "p-1"
    assert row["visit_id"] == "v-1"
    assert row["status"] == "draft"
    assert row["note_source"] == "generated"
    assert row["original_transcription"] == EXAMPLE_TRANSCRIPT
    assert row["soap_note"]["plan"].startswith("Continue morphine PRN")
    assert row["missing_fields"] == []
    assert row["confidence_score"] == pytest.approx(0.85)
    assert row["ai_model_used"] == pipeline.settings.ollama_model


async def test_transcription_failure_fails_the_job(settings, synthesizer, extractor):
    client = synthesizer.client
    pipeline = DocumentationPipeline(
        settings=settings,
        transcriber=MockTranscriber(error=TranscriptionError("model load failed: out of memory")),
        note_synthesizer=synthesizer,
        entity_extractor=extractor,
    )

    result = await pipeline.aprocess(b"audio")

    assert result.status == ProcessingStatus.FAILED
    assert "out of memory" in result.error_message
    assert result.synthesis is None
    assert client.call_count == 0


async def test_degraded_backend_still_completes(settings, datastore):
    down = MockCompletionClient(ConnectionError("connection refused"))
    pipeline = DocumentationPipeline(
        settings=settings,
        note_synthesizer=NoteSynthesizer(settings=settings, completion_client=down),
        entity_extractor=EntityExtractor(settings=settings, completion_client=down),
        datastore=datastore,
    )

    result = await pipeline.aprocess_transcript(EXAMPLE_TRANSCRIPT, patient_id="p-1")

    assert result.status == ProcessingStatus.COMPLETED
    assert result.synthesis.is_fallback
    assert result.validation.missing_fields == []
    assert result.extraction.source == NoteSource.FALLBACK

    row = (await datastore.select("clinical_notes", [Filter("id", result.record_id)]))[0]
    assert row["note_source"] == "fallback"
    assert row["confidence_score"] == 0.0


async def test_stages_run_in_order(pipeline):
    seen = []

    await pipeline.aprocess(b"audio", patient_id="p-2", progress_callback=lambda s, m, p: seen.append((s, p)))

    statuses = [status for status, _ in seen]
    order = [
        ProcessingStatus.TRANSCRIBING,
        ProcessingStatus.SYNTHESIZING,
        ProcessingStatus.VALIDATING,
        ProcessingStatus.EXTRACTING,
        ProcessingStatus.SAVING,
        ProcessingStatus.COMPLETED,
    ]
    assert [s for i, s in enumerate(statuses) if i == 0 or statuses[i - 1] != s] == order
    progress = [p for _, p in seen]
    assert progress == sorted(progress)
    assert progress[-1] == 100


async def test_async_and_failing_callbacks(pipeline):
    seen = []

    async def on_progress(status, message, progress):
        seen.append(status)

    result = await pipeline.aprocess_transcript(EXAMPLE_TRANSCRIPT, progress_callback=on_progress)
    assert result.status == ProcessingStatus.COMPLETED
    assert seen[-1] == ProcessingStatus.COMPLETED

    def broken(status, message, progress):
        raise RuntimeError("display detached")

    result = await pipeline.aprocess_transcript(EXAMPLE_TRANSCRIPT, progress_callback=broken)
    assert result.status == ProcessingStatus.COMPLETED


async def test_save_result_to_file(pipeline, tmp_path):
    result = await pipeline.aprocess_transcript(EXAMPLE_TRANSCRIPT)

    saved = save_result_to_file(result, str(tmp_path / "out"))

    assert set(saved) == {"json", "note", "transcript"}
    with open(saved["json"]) as f:
        data = json.load(f)
    assert data["status"] == "completed"
    assert data["synthesis"]["note"]["visitSummary"] == "Routine hospice visit focused on pain control."
    with open(saved["note"]) as f:
        assert f.read().startswith("SUBJECTIVE:")
