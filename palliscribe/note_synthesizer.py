"""
Clinical Note Synthesizer for PalliScribe
=========================================

Turns a visit transcript (plus optional patient context) into a structured
ClinicalNote using the completion backend.

Degradation Policy
------------------
Synthesis never fails outward. The generative call is attempted exactly
once; if it fails, returns something that is not a JSON object, or the
object lacks a complete SOAP section, the deterministic fallback extractor
builds the note instead. The returned SynthesisResult records which path
produced the note and why the generative path was abandoned.

Sampling parameters are fixed low-variance values from settings: this is a
documentation tool, not a drafting assistant.
"""

import logging
from typing import Optional, Protocol

from pydantic import ValidationError

from palliscribe.completion import (
    CompletionClientProtocol,
    create_completion_client,
    parse_json_object,
)
from palliscribe.config import Settings, get_settings
from palliscribe.exceptions import GenerationError, MalformedResponseError
from palliscribe.fallback import build_fallback_note
from palliscribe.models import (
    SOAP_FIELDS,
    ClinicalNote,
    NoteSource,
    PatientContext,
    SynthesisResult,
)
from palliscribe.prompts import get_clinical_note_prompt


logger = logging.getLogger(__name__)


def _describe_failure(error: Exception) -> str:
    if isinstance(error, GenerationError):
        return error.message
    if isinstance(error, ValidationError):
        return f"schema validation failed: {error.error_count()} error(s)"
    return f"{type(error).__name__}: {error}"


class NoteSynthesizerProtocol(Protocol):
    """Protocol for note synthesizers (real or mock)."""

    async def synthesize(
        self,
        transcript: str,
        patient_context: Optional[PatientContext] = None
    ) -> SynthesisResult:
        ...


class NoteSynthesizer:
    """
    Note synthesizer backed by a completion client.

    The completion client is injected for tests; production code gets the
    Ollama client from the factory.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        completion_client: Optional[CompletionClientProtocol] = None
    ):
        self.settings = settings or get_settings()
        self._client = completion_client

    @property
    def client(self) -> CompletionClientProtocol:
        """Lazy-load the completion client."""
        if self._client is None:
            self._client = create_completion_client(settings=self.settings)
        return self._client

    async def synthesize(
        self,
        transcript: str,
        patient_context: Optional[PatientContext] = None
    ) -> SynthesisResult:
        """
        Synthesize a clinical note from transcript text.

        Args:
            transcript: Raw visit transcript
            patient_context: Optional context embedded in the prompt

        Returns:
            SynthesisResult tagged "generated" or "fallback"; never raises
            for backend or parse failures.
        """
        logger.info(f"Synthesizing clinical note ({len(transcript)} chars)")

        try:
            note = await self._generate(transcript, patient_context)
        except Exception as e:
            reason = _describe_failure(e)
            logger.warning(f"Generative synthesis failed, using fallback extractor: {reason}")
            return SynthesisResult(
                note=build_fallback_note(transcript),
                source=NoteSource.FALLBACK,
                failure_reason=reason,
            )

        logger.info("Clinical note generated successfully")
        return SynthesisResult(note=note, source=NoteSource.GENERATED)

    async def _generate(
        self,
        transcript: str,
        patient_context: Optional[PatientContext]
    ) -> ClinicalNote:
        if not transcript or not transcript.strip():
            raise MalformedResponseError("empty transcript, nothing to synthesize")

        system_prompt, user_prompt = get_clinical_note_prompt(transcript, patient_context)
        raw_response = await self.client.acomplete(
            [("system", system_prompt), ("user", user_prompt)],
            temperature=self.settings.note_temperature,
            max_tokens=self.settings.note_max_tokens,
        )
        return self._parse_note_response(raw_response)

    def _parse_note_response(self, response: str) -> ClinicalNote:
        """
        Parse the completion into a ClinicalNote.

        Required shape: a JSON object whose "soap" member is an object with
        four non-empty string sections. Everything else is optional.
        """
        data = parse_json_object(response)

        soap = data.get("soap")
        if not isinstance(soap, dict):
            raise MalformedResponseError("missing 'soap' object", response_preview=response)

        note = ClinicalNote.model_validate(data)
        empty = [name for name in SOAP_FIELDS if not getattr(note.soap, name).strip()]
        if empty:
            raise MalformedResponseError(
                f"empty SOAP section(s): {', '.join(empty)}",
                response_preview=response
            )
        return note


def create_note_synthesizer(
    settings: Optional[Settings] = None,
    completion_client: Optional[CompletionClientProtocol] = None
) -> NoteSynthesizerProtocol:
    """Factory function to create a note synthesizer."""
    return NoteSynthesizer(settings=settings, completion_client=completion_client)
