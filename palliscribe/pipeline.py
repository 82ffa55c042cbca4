"""
Documentation Pipeline for PalliScribe
======================================

Orchestrates one visit's documentation end to end:

Audio → [Transcriber] → Transcript → [Note Synthesizer] → ClinicalNote
      → [Validator] → ValidationReport → [Entity Extractor] → EntityExtraction
      → [Datastore] → clinical_notes row

Stages run strictly in sequence. Only transcription can fail the job:
synthesis and extraction degrade to their fallback results, and the
validator is a pure function. Persistence only happens when a datastore is
configured and the caller supplied a patient id.
"""

import asyncio
import json
import logging
import uuid
from datetime import datetime
from pathlib import Path
from typing import Awaitable, Callable, Optional, Union

from palliscribe.config import Settings, get_settings
from palliscribe.datastore import DatastoreProtocol
from palliscribe.entity_extractor import EntityExtractor
from palliscribe.exceptions import PalliScribeError
from palliscribe.models import (
    DocumentationResult,
    PatientContext,
    ProcessingStatus,
    Transcript,
)
from palliscribe.note_synthesizer import NoteSynthesizerProtocol, create_note_synthesizer
from palliscribe.transcriber import TranscriberProtocol, create_transcriber
from palliscribe.validator import validate_clinical_note


logger = logging.getLogger(__name__)


ProgressCallback = Callable[[ProcessingStatus, str, int], None]
AsyncProgressCallback = Callable[[ProcessingStatus, str, int], Awaitable[None]]
AnyProgressCallback = Union[ProgressCallback, AsyncProgressCallback]


class _ProgressHelper:
    """
    Maps stage-local progress onto an overall percentage.

    Weights sum to 100. Transcription dominates because Whisper is by far the
    slowest stage.
    """

    STAGE_RANGES = {
        ProcessingStatus.TRANSCRIBING: (0, 40),
        ProcessingStatus.SYNTHESIZING: (40, 80),
        ProcessingStatus.VALIDATING: (80, 85),
        ProcessingStatus.EXTRACTING: (85, 95),
        ProcessingStatus.SAVING: (95, 100),
    }

    @staticmethod
    def overall(status: ProcessingStatus, stage_percent: int) -> int:
        start, end = _ProgressHelper.STAGE_RANGES[status]
        return start + stage_percent * (end - start) // 100


def build_clinical_note_row(result: DocumentationResult, model_name: str) -> dict:
    """Map a finished pipeline result onto a clinical_notes row."""
    note = result.note
    extraction = result.extraction
    return {
        "visit_id": result.visit_id,
        "patient_id": result.patient_id,
        "soap_note": note.soap.model_dump() if note and note.soap else None,
        "visit_summary": note.visit_summary if note else None,
        "recommendations": note.recommendations if note else [],
        "follow_up_actions": note.follow_up_actions if note else [],
        "clinical_entities": (
            note.clinical_entities.model_dump()
            if note and note.clinical_entities else None
        ),
        "original_transcription": result.transcript.text if result.transcript else "",
        "ai_model_used": model_name,
        "note_source": result.synthesis.source.value if result.synthesis else None,
        "confidence_score": extraction.entities.confidence if extraction else None,
        "status": "draft",
        "missing_fields": result.validation.missing_fields if result.validation else [],
    }


class DocumentationPipeline:
    """
    Main pipeline for turning a visit recording into a stored clinical note.

    Services are injected for tests and created lazily from settings
    otherwise.

    Usage:
        pipeline = DocumentationPipeline(datastore=SQLiteDatastore("care.db"))
        result = await pipeline.aprocess(audio_bytes, patient_id="p-1")
        print(result.note.to_formatted_string())
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        transcriber: Optional[TranscriberProtocol] = None,
        note_synthesizer: Optional[NoteSynthesizerProtocol] = None,
        entity_extractor: Optional[EntityExtractor] = None,
        datastore: Optional[DatastoreProtocol] = None,
    ):
        self.settings = settings or get_settings()
        self._transcriber = transcriber
        self._note_synthesizer = note_synthesizer
        self._entity_extractor = entity_extractor
        self.datastore = datastore

        logger.info("DocumentationPipeline initialized")

    @property
    def transcriber(self) -> TranscriberProtocol:
        """Lazy-load the transcriber service."""
        if self._transcriber is None:
            self._transcriber = create_transcriber(settings=self.settings)
        return self._transcriber

    @property
    def note_synthesizer(self) -> NoteSynthesizerProtocol:
        if self._note_synthesizer is None:
            self._note_synthesizer = create_note_synthesizer(settings=self.settings)
        return self._note_synthesizer

    @property
    def entity_extractor(self) -> EntityExtractor:
        if self._entity_extractor is None:
            self._entity_extractor = EntityExtractor(settings=self.settings)
        return self._entity_extractor

    async def aprocess(
        self,
        audio: bytes,
        patient_context: Optional[PatientContext] = None,
        patient_id: Optional[str] = None,
        visit_id: Optional[str] = None,
        progress_callback: Optional[AnyProgressCallback] = None,
        file_suffix: str = ".wav",
    ) -> DocumentationResult:
        """
        Process a recorded visit into a clinical note.

        Args:
            audio: Binary audio payload
            patient_context: Optional context embedded in the synthesis prompt
            patient_id: Patient the note belongs to (enables persistence)
            visit_id: Visit the note belongs to
            progress_callback: Sync or async (status, message, percent) callback
            file_suffix: Container hint for the decoder (".wav", ".m4a", ...)

        Returns:
            DocumentationResult; status is FAILED only when transcription or
            persistence failed.
        """
        result = self._new_result(patient_id, visit_id)
        logger.info(f"[{result.id}] Starting pipeline for {len(audio)} byte(s) of audio")

        async def stages():
            await self._notify(progress_callback, ProcessingStatus.TRANSCRIBING, "Transcribing audio...", 0)
            result.status = ProcessingStatus.TRANSCRIBING
            result.transcript = await self.transcriber.atranscribe(audio, file_suffix=file_suffix)
            await self._notify(progress_callback, ProcessingStatus.TRANSCRIBING, "Transcription complete", 100)
            logger.info(f"[{result.id}] Transcription complete: {len(result.transcript.text)} chars")
            await self._run_documentation(result, patient_context, progress_callback)

        return await self._run(result, stages, progress_callback)

    async def aprocess_transcript(
        self,
        text: str,
        patient_context: Optional[PatientContext] = None,
        patient_id: Optional[str] = None,
        visit_id: Optional[str] = None,
        progress_callback: Optional[AnyProgressCallback] = None,
    ) -> DocumentationResult:
        """Same as aprocess() but starting from transcript text (typed or re-processed)."""
        result = self._new_result(patient_id, visit_id)
        result.transcript = Transcript(text=text, language=self.settings.whisper_language)
        logger.info(f"[{result.id}] Starting pipeline for {len(text)} chars of text")

        async def stages():
            await self._run_documentation(result, patient_context, progress_callback)

        return await self._run(result, stages, progress_callback)

    def _new_result(self, patient_id: Optional[str], visit_id: Optional[str]) -> DocumentationResult:
        return DocumentationResult(
            id=str(uuid.uuid4())[:8],
            patient_id=patient_id,
            visit_id=visit_id,
        )

    async def _run(
        self,
        result: DocumentationResult,
        stages: Callable[[], Awaitable[None]],
        progress_callback: Optional[AnyProgressCallback],
    ) -> DocumentationResult:
        start_time = datetime.now()
        try:
            await stages()

            result.status = ProcessingStatus.COMPLETED
            result.completed_at = datetime.now()
            result.processing_time_seconds = (result.completed_at - start_time).total_seconds()
            await self._notify(
                progress_callback,
                ProcessingStatus.COMPLETED,
                f"Processing complete in {result.processing_time_seconds:.1f}s",
                100,
            )
            logger.info(f"[{result.id}] Pipeline completed in {result.processing_time_seconds:.1f}s")

        except PalliScribeError as e:
            result.status = ProcessingStatus.FAILED
            result.error_message = e.message
            result.completed_at = datetime.now()
            await self._notify(progress_callback, ProcessingStatus.FAILED, f"Error: {e.message}", 0)
            logger.error(f"[{result.id}] Pipeline failed: {e.message}")

        except Exception as e:
            result.status = ProcessingStatus.FAILED
            result.error_message = f"Unexpected error: {e}"
            result.completed_at = datetime.now()
            await self._notify(progress_callback, ProcessingStatus.FAILED, f"Unexpected error: {e}", 0)
            logger.exception(f"[{result.id}] Unexpected error in pipeline")

        return result

    async def _run_documentation(
        self,
        result: DocumentationResult,
        patient_context: Optional[PatientContext],
        progress_callback: Optional[AnyProgressCallback],
    ) -> None:
        text = result.transcript.text

        result.status = ProcessingStatus.SYNTHESIZING
        await self._notify(progress_callback, ProcessingStatus.SYNTHESIZING, "Synthesizing clinical note...", 0)
        result.synthesis = await self.note_synthesizer.synthesize(text, patient_context)
        if result.synthesis.is_fallback:
            await self._notify(
                progress_callback,
                ProcessingStatus.SYNTHESIZING,
                "Generative synthesis unavailable, used keyword fallback",
                100,
            )

        result.status = ProcessingStatus.VALIDATING
        await self._notify(progress_callback, ProcessingStatus.VALIDATING, "Validating note...", 0)
        result.validation = validate_clinical_note(result.synthesis.note)
        if not result.validation.is_valid:
            logger.info(
                f"[{result.id}] Note incomplete: {', '.join(result.validation.missing_fields)}"
            )

        result.status = ProcessingStatus.EXTRACTING
        await self._notify(progress_callback, ProcessingStatus.EXTRACTING, "Extracting medical entities...", 0)
        result.extraction = await self.entity_extractor.extract(text)

        if self.datastore is not None and result.patient_id:
            result.status = ProcessingStatus.SAVING
            await self._notify(progress_callback, ProcessingStatus.SAVING, "Saving clinical note...", 0)
            row = await self.datastore.insert(
                "clinical_notes",
                build_clinical_note_row(result, self.settings.ollama_model),
            )
            result.record_id = row["id"]
            logger.info(f"[{result.id}] Clinical note saved as {result.record_id}")

    async def _notify(
        self,
        callback: Optional[AnyProgressCallback],
        status: ProcessingStatus,
        message: str,
        stage_percent: int,
    ) -> None:
        """Call the progress callback (sync or async); callback errors never break the pipeline."""
        if not callback:
            return
        if status in _ProgressHelper.STAGE_RANGES:
            progress = _ProgressHelper.overall(status, stage_percent)
        else:
            progress = stage_percent
        try:
            if asyncio.iscoroutinefunction(callback):
                await callback(status, message, progress)
            else:
                callback(status, message, progress)
        except Exception as e:
            logger.warning(f"Progress callback failed: {e}")


def create_pipeline(
    settings: Optional[Settings] = None,
    datastore: Optional[DatastoreProtocol] = None,
    use_mock_transcriber: bool = False,
    mock_text: str = "",
) -> DocumentationPipeline:
    """Factory function to create a pipeline wired from settings."""
    settings = settings or get_settings()
    return DocumentationPipeline(
        settings=settings,
        transcriber=create_transcriber(settings=settings, use_mock=use_mock_transcriber, mock_text=mock_text),
        datastore=datastore,
    )


def save_result_to_file(
    result: DocumentationResult,
    output_dir: str = "./output"
) -> dict[str, str]:
    """
    Save a pipeline result to files.

    Writes the full result as JSON, the note as formatted text and the
    transcript as plain text. Returns the paths written, keyed by kind.
    """
    output_path = Path(output_dir)
    output_path.mkdir(parents=True, exist_ok=True)

    base_name = f"PalliScribe_{result.id}"
    saved_files = {}

    json_path = output_path / f"{base_name}_result.json"
    with open(json_path, "w") as f:
        json.dump(result.model_dump(mode="json", by_alias=True), f, indent=2, default=str)
    saved_files["json"] = str(json_path)

    if result.note:
        note_path = output_path / f"{base_name}_note.txt"
        with open(note_path, "w") as f:
            f.write(result.note.to_formatted_string())
        saved_files["note"] = str(note_path)

    if result.transcript:
        transcript_path = output_path / f"{base_name}_transcript.txt"
        with open(transcript_path, "w") as f:
            f.write(result.transcript.text)
        saved_files["transcript"] = str(transcript_path)

    logger.info(f"Saved results to {output_dir}: {list(saved_files.keys())}")
    return saved_files
