"""
Prompts for PalliScribe
=======================

Prompt text for the two completion requests the pipeline makes:

- Clinical note synthesis: SOAP note, visit summary, recommendations,
  follow-up actions and categorized entities, returned as one JSON object.
- Entity extraction: four string arrays and a confidence score.

Both prompts ask for JSON only and spell out the exact keys expected, since
the parsers treat any deviation as a malformed response.
"""

from typing import Optional

from palliscribe.models import PatientContext


# =============================================================================
# Shared context
# =============================================================================

MEDICAL_CONTEXT = """You are an AI assistant specialized in hospice and palliative care documentation.
You understand medical terminology, patient assessment protocols, and clinical documentation standards.
Focus on comfort care, symptom management, family support, and end-of-life care."""


# =============================================================================
# Clinical Note Synthesis
# =============================================================================

CLINICAL_NOTE_SYSTEM_PROMPT = (
    "You are an expert hospice and palliative care nurse practitioner specializing "
    "in clinical documentation. Respond only with valid JSON."
)

CLINICAL_NOTE_SCHEMA_HINT = """{
  "soap": {
    "subjective": "Patient/family reported symptoms, concerns, and experiences",
    "objective": "Observable findings, vital signs, assessments performed",
    "assessment": "Clinical interpretation and current status",
    "plan": "Interventions, medications, follow-up actions"
  },
  "visitSummary": "Brief overview of the visit",
  "recommendations": ["Specific care recommendation"],
  "followUpActions": ["Task that needs to be completed"],
  "clinicalEntities": {
    "symptoms": ["symptom"],
    "medications": ["medication"],
    "interventions": ["intervention performed"],
    "assessments": ["assessment completed"]
  }
}"""

CLINICAL_NOTE_PROMPT = """{medical_context}

Patient Context:
{patient_context}

Transcribed Visit Notes:
"{transcript}"

Generate a structured clinical note from the visit notes above.
- Use only information present in the visit notes; never invent findings.
- Every SOAP section must be a non-empty string. If a section was not discussed, say so explicitly.
- Focus on the hospice/palliative care context. Use professional medical language while being clear and concise.

Return ONLY a JSON object with exactly these keys (no markdown, no explanation):
{schema_hint}"""


def format_patient_context(patient_context: Optional[PatientContext]) -> str:
    """Render the optional patient context block of the synthesis prompt."""
    if patient_context is None:
        return "Limited patient context available"

    symptoms = ", ".join(patient_context.current_symptoms) or "Not specified"
    medications = ", ".join(patient_context.current_medications) or "Not specified"
    return (
        f"- Name: {patient_context.name}\n"
        f"- Primary Condition: {patient_context.primary_condition or 'Not specified'}\n"
        f"- Current Symptoms: {symptoms}\n"
        f"- Current Medications: {medications}"
    )


def get_clinical_note_prompt(
    transcript: str,
    patient_context: Optional[PatientContext] = None
) -> tuple[str, str]:
    """
    Build the clinical note synthesis prompt.

    Returns:
        Tuple of (system_prompt, user_prompt)
    """
    user_prompt = CLINICAL_NOTE_PROMPT.format(
        medical_context=MEDICAL_CONTEXT,
        patient_context=format_patient_context(patient_context),
        transcript=transcript,
        schema_hint=CLINICAL_NOTE_SCHEMA_HINT,
    )
    return (CLINICAL_NOTE_SYSTEM_PROMPT, user_prompt)


# =============================================================================
# Entity Extraction
# =============================================================================

ENTITY_EXTRACTION_SYSTEM_PROMPT = (
    "You are a medical entity extraction specialist. Return only valid JSON."
)

ENTITY_SCHEMA_HINT = """{
  "symptoms": ["symptom mentioned"],
  "medications": ["medication discussed"],
  "vitals": ["vital sign or measurement"],
  "interventions": ["care intervention performed"],
  "confidence": 0.0
}"""

ENTITY_EXTRACTION_PROMPT = """Extract medical entities from this hospice/palliative care visit note:

"{text}"

Return only a JSON object with these categories:
- symptoms: Array of symptoms mentioned
- medications: Array of medications discussed
- vitals: Array of vital signs or measurements
- interventions: Array of care interventions performed
- confidence: Overall confidence score (0-1)

Focus on hospice/palliative care terminology. Use this exact shape:
{schema_hint}"""


def get_entity_extraction_prompt(text: str) -> tuple[str, str]:
    """
    Build the entity extraction prompt.

    Returns:
        Tuple of (system_prompt, user_prompt)
    """
    user_prompt = ENTITY_EXTRACTION_PROMPT.format(text=text, schema_hint=ENTITY_SCHEMA_HINT)
    return (ENTITY_EXTRACTION_SYSTEM_PROMPT, user_prompt)
