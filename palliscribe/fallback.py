"""
Fallback SOAP extraction.

Deterministic, offline segmentation of a transcript into SOAP sections,
used whenever the generative path fails or returns something unusable.

Each sentence goes to the first section (S, O, A, P order) whose keyword set
it contains, so a sentence never lands in two sections even where the
keyword sets overlap ("appears"). Sections with no matching sentence get a
fixed placeholder, so every section is always non-empty.
"""

import logging
import re
from typing import Optional

from palliscribe.models import SOAP_FIELDS, ClinicalEntities, ClinicalNote, SOAPNote


logger = logging.getLogger(__name__)

SECTION_KEYWORDS: dict[str, tuple[str, ...]] = {
    "subjective": ("patient states", "reports", "complains", "family reports", "feels"),
    "objective": ("observed", "vital signs", "appears", "examination", "assessment shows"),
    "assessment": ("appears", "seems", "condition", "status", "improvement", "decline"),
    "plan": ("will", "continue", "increase", "decrease", "follow up", "contact", "schedule"),
}

SUMMARY_LENGTH = 200

_SENTENCE_BREAK = re.compile(r"[.!?]+")


def placeholder_for(section: str) -> str:
    return f"Please document {section} findings."


def split_sentences(text: str) -> list[str]:
    """Split on runs of terminal punctuation, dropping blank fragments."""
    return [s.strip() for s in _SENTENCE_BREAK.split(text) if s.strip()]


def classify_sentence(sentence: str) -> Optional[str]:
    """Return the first SOAP section whose keywords appear in the sentence."""
    lowered = sentence.lower()
    for section in SOAP_FIELDS:
        if any(keyword in lowered for keyword in SECTION_KEYWORDS[section]):
            return section
    return None


def extract_soap_sections(text: str) -> SOAPNote:
    """Segment free text into a best-effort SOAP note with no empty section."""
    matched: dict[str, list[str]] = {section: [] for section in SOAP_FIELDS}
    for sentence in split_sentences(text):
        section = classify_sentence(sentence)
        if section is not None:
            matched[section].append(sentence)

    sections = {
        section: ". ".join(sentences) if sentences else placeholder_for(section)
        for section, sentences in matched.items()
    }
    return SOAPNote(**sections)


def build_fallback_note(text: str) -> ClinicalNote:
    """Build the complete fallback ClinicalNote for a transcript."""
    soap = extract_soap_sections(text)
    unmatched = [name for name in SOAP_FIELDS if getattr(soap, name) == placeholder_for(name)]
    if unmatched:
        logger.debug(f"Fallback extraction found no sentences for: {', '.join(unmatched)}")

    return ClinicalNote(
        soap=soap,
        visit_summary=text[:SUMMARY_LENGTH] + "...",
        recommendations=[],
        follow_up_actions=[],
        clinical_entities=ClinicalEntities(),
    )
