"""
PalliScribe
===========

Point-of-care documentation for hospice and palliative care:
- pipeline: visit audio or text to a validated, stored SOAP note
- transcriber: audio transcription with Whisper
- note_synthesizer: SOAP note synthesis with an LLM, keyword fallback
- entity_extractor: medical entity extraction
- validator: note completeness checks
- dispatch: MCP server exposing patient data and note creation
"""

from palliscribe.entity_extractor import EntityExtractor
from palliscribe.fallback import build_fallback_note, extract_soap_sections
from palliscribe.note_synthesizer import NoteSynthesizer, create_note_synthesizer
from palliscribe.pipeline import DocumentationPipeline, create_pipeline, save_result_to_file
from palliscribe.transcriber import WhisperTranscriber, create_transcriber
from palliscribe.validator import validate_clinical_note

__all__ = [
    'DocumentationPipeline',
    'create_pipeline',
    'save_result_to_file',
    'NoteSynthesizer',
    'create_note_synthesizer',
    'EntityExtractor',
    'WhisperTranscriber',
    'create_transcriber',
    'build_fallback_note',
    'extract_soap_sections',
    'validate_clinical_note',
]
