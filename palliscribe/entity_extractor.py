"""
Medical entity extraction.

A narrower completion request than note synthesis: symptoms, medications,
vitals and interventions plus a confidence score. Independent of the note
synthesizer and callable on any text.

Like synthesis, extraction never fails outward. Any backend or parse
failure degrades to the zero-confidence empty result.
"""

import logging
from typing import Optional

from palliscribe.completion import (
    CompletionClientProtocol,
    create_completion_client,
    parse_json_object,
)
from palliscribe.config import Settings, get_settings
from palliscribe.exceptions import GenerationError
from palliscribe.models import EntityExtraction, ExtractionResult, NoteSource
from palliscribe.prompts import get_entity_extraction_prompt


logger = logging.getLogger(__name__)


class EntityExtractor:
    """Entity extractor backed by a completion client."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        completion_client: Optional[CompletionClientProtocol] = None
    ):
        self.settings = settings or get_settings()
        self._client = completion_client

    @property
    def client(self) -> CompletionClientProtocol:
        if self._client is None:
            self._client = create_completion_client(settings=self.settings)
        return self._client

    async def extract(self, text: str) -> ExtractionResult:
        """
        Extract medical entities from text.

        Blank text short-circuits to the empty result without a backend call.
        """
        if not text or not text.strip():
            return ExtractionResult(
                entities=EntityExtraction.empty(),
                source=NoteSource.FALLBACK,
                failure_reason="empty input",
            )

        logger.info(f"Extracting medical entities ({len(text)} chars)")

        try:
            system_prompt, user_prompt = get_entity_extraction_prompt(text)
            response = await self.client.acomplete(
                [("system", system_prompt), ("user", user_prompt)],
                temperature=self.settings.entity_temperature,
                max_tokens=self.settings.entity_max_tokens,
            )
            entities = EntityExtraction.model_validate(parse_json_object(response))
        except Exception as e:
            reason = e.message if isinstance(e, GenerationError) else f"{type(e).__name__}: {e}"
            logger.warning(f"Entity extraction failed, returning empty result: {reason}")
            return ExtractionResult(
                entities=EntityExtraction.empty(),
                source=NoteSource.FALLBACK,
                failure_reason=reason,
            )

        logger.info(
            f"Extracted {len(entities.symptoms)} symptoms, {len(entities.medications)} medications "
            f"(confidence {entities.confidence:.2f})"
        )
        return ExtractionResult(entities=entities, source=NoteSource.GENERATED)
