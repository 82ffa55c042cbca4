"""
Clinical note completeness validation.

A mechanical check only: each SOAP section must be present and at least
MIN_SECTION_LENGTH characters long. No clinical or semantic judgment.
"""

from palliscribe.models import ClinicalNote, ValidationReport


MIN_SECTION_LENGTH = 10

# (field, label reported as missing, suggestion)
SECTION_RULES = (
    ("subjective", "Subjective", "Add patient/family reported symptoms and concerns"),
    ("objective", "Objective", "Include vital signs, observations, and examination findings"),
    ("assessment", "Assessment", "Provide clinical interpretation of findings"),
    ("plan", "Plan", "Document interventions and follow-up actions"),
)


def validate_clinical_note(
    note: ClinicalNote,
    min_length: int = MIN_SECTION_LENGTH
) -> ValidationReport:
    """
    Flag every SOAP section that is absent or shorter than min_length.

    Pure function: the same note always yields the same report.
    """
    missing_fields: list[str] = []
    suggestions: list[str] = []

    for field, label, suggestion in SECTION_RULES:
        value = getattr(note.soap, field, None) if note.soap else None
        if not value or len(value.strip()) < min_length:
            missing_fields.append(label)
            suggestions.append(suggestion)

    return ValidationReport(
        is_valid=not missing_fields,
        missing_fields=missing_fields,
        suggestions=suggestions,
    )
