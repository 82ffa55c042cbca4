"""
Domain Models for PalliScribe
=============================

Core data structures shared by the note pipeline and the dispatch server.
These models have no dependencies on external services, so they can be
constructed freely in tests.

Model output is untrusted: list fields accept a bare string or a mapping
and normalize it, but anything that still does not fit the schema raises a
pydantic ValidationError, which callers treat as a malformed response.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


SOAP_FIELDS = ("subjective", "objective", "assessment", "plan")


def _coerce_str_list(value: Any) -> Any:
    """Normalize loosely-typed model output into a list of strings."""
    if value is None:
        return []
    if isinstance(value, str):
        return [value] if value.strip() else []
    if isinstance(value, dict):
        return [f"{key}: {item}" for key, item in value.items() if item not in (None, "")]
    if isinstance(value, (list, tuple)):
        items = []
        for item in value:
            if item is None:
                continue
            if isinstance(item, dict):
                parts = [f"{key}: {val}" for key, val in item.items() if val not in (None, "")]
                if parts:
                    items.append(", ".join(parts))
            elif isinstance(item, (str, int, float)):
                items.append(str(item))
            else:
                return value  # let pydantic reject it
        return items
    return value


class NoteSource(str, Enum):
    """Which path produced a note or an extraction."""
    GENERATED = "generated"
    FALLBACK = "fallback"


class ProcessingStatus(str, Enum):
    """Status of a documentation pipeline job."""
    PENDING = "pending"
    TRANSCRIBING = "transcribing"
    SYNTHESIZING = "synthesizing"
    VALIDATING = "validating"
    EXTRACTING = "extracting"
    SAVING = "saving"
    COMPLETED = "completed"
    FAILED = "failed"


class Transcript(BaseModel):
    """
    Output of the transcription adapter.

    Immutable once created; consumed by the synthesizer and the entity
    extractor.
    """
    model_config = ConfigDict(frozen=True)

    text: str = Field(..., description="The transcribed text from audio")
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="When the transcript was produced"
    )
    duration_seconds: Optional[float] = Field(
        default=None,
        description="Audio duration in seconds, when the backend reports it"
    )
    language: str = Field(default="en", description="Language code of the transcript")


class PatientContext(BaseModel):
    """Optional, caller-supplied patient context embedded in the synthesis prompt."""
    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    name: str
    primary_condition: str = ""
    current_symptoms: list[str] = Field(default_factory=list)
    current_medications: list[str] = Field(default_factory=list)

    @field_validator(
        "current_symptoms", "current_medications", mode="before"
    )
    @classmethod
    def normalize_lists(cls, value: Any) -> Any:
        return _coerce_str_list(value)


class SOAPNote(BaseModel):
    """
    SOAP Note: Subjective, Objective, Assessment, Plan.

    The synthesizer only hands out SOAP notes whose four sections are
    non-empty; the validator applies the stricter minimum-length check.
    """
    model_config = ConfigDict(frozen=True)

    subjective: str = Field(..., description="Patient/family reported symptoms and concerns")
    objective: str = Field(..., description="Observable findings, vital signs, assessments performed")
    assessment: str = Field(..., description="Clinical interpretation and current status")
    plan: str = Field(..., description="Interventions, medications, follow-up actions")

    @field_validator(*SOAP_FIELDS, mode="before")
    @classmethod
    def join_list_sections(cls, value: Any) -> Any:
        if isinstance(value, (list, tuple)) and all(isinstance(item, str) for item in value):
            return " ".join(item.strip() for item in value if item.strip())
        return value

    def is_complete(self) -> bool:
        """True when every section holds non-whitespace text."""
        return all(getattr(self, name).strip() for name in SOAP_FIELDS)


class ClinicalEntities(BaseModel):
    """Entities categorized inside a clinical note."""
    model_config = ConfigDict(frozen=True)

    symptoms: list[str] = Field(default_factory=list)
    medications: list[str] = Field(default_factory=list)
    interventions: list[str] = Field(default_factory=list)
    assessments: list[str] = Field(default_factory=list)

    @field_validator(
        "symptoms", "medications", "interventions", "assessments", mode="before"
    )
    @classmethod
    def normalize_lists(cls, value: Any) -> Any:
        return _coerce_str_list(value)


class ClinicalNote(BaseModel):
    """
    Structured clinical document produced by the note synthesizer.

    Serialized with camelCase keys (visitSummary, followUpActions,
    clinicalEntities), the same keys the completion prompt asks for.
    Never mutated after creation.
    """
    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    soap: Optional[SOAPNote] = None
    visit_summary: Optional[str] = None
    recommendations: list[str] = Field(default_factory=list)
    follow_up_actions: list[str] = Field(default_factory=list)
    clinical_entities: Optional[ClinicalEntities] = None

    @field_validator(
        "recommendations", "follow_up_actions", mode="before"
    )
    @classmethod
    def normalize_lists(cls, value: Any) -> Any:
        return _coerce_str_list(value)

    def to_formatted_string(self) -> str:
        """Plain-text rendering for terminals and agent-facing summaries."""
        lines = []
        if self.soap:
            for name in SOAP_FIELDS:
                lines.append(f"{name.upper()}:")
                lines.append(f"  {getattr(self.soap, name)}")
                lines.append("")
        if self.visit_summary:
            lines.append("VISIT SUMMARY:")
            lines.append(f"  {self.visit_summary}")
            lines.append("")
        for title, items in (
            ("RECOMMENDATIONS", self.recommendations),
            ("FOLLOW-UP ACTIONS", self.follow_up_actions),
        ):
            if items:
                lines.append(f"{title}:")
                lines.extend(f"  - {item}" for item in items)
                lines.append("")
        return "\n".join(lines).rstrip()


class EntityExtraction(BaseModel):
    """
    Medical entities pulled from arbitrary text by the entity extractor.

    Independent of ClinicalNote: either may exist without the other.
    """
    model_config = ConfigDict(frozen=True)

    symptoms: list[str] = Field(default_factory=list)
    medications: list[str] = Field(default_factory=list)
    vitals: list[str] = Field(default_factory=list)
    interventions: list[str] = Field(default_factory=list)
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)

    @field_validator(
        "symptoms", "medications", "vitals", "interventions", mode="before"
    )
    @classmethod
    def normalize_lists(cls, value: Any) -> Any:
        return _coerce_str_list(value)

    @classmethod
    def empty(cls) -> "EntityExtraction":
        """The deterministic zero-confidence answer used on any failure."""
        return cls(symptoms=[], medications=[], vitals=[], interventions=[], confidence=0.0)


class ValidationReport(BaseModel):
    """Completeness report derived from a ClinicalNote. Recomputed on demand."""
    model_config = ConfigDict(frozen=True)

    is_valid: bool
    missing_fields: list[str] = Field(default_factory=list)
    suggestions: list[str] = Field(default_factory=list)


class SynthesisResult(BaseModel):
    """A clinical note plus the path that produced it."""
    model_config = ConfigDict(frozen=True)

    note: ClinicalNote
    source: NoteSource
    failure_reason: Optional[str] = Field(
        default=None,
        description="Why the generative path was abandoned (fallback only)"
    )

    @property
    def is_fallback(self) -> bool:
        return self.source == NoteSource.FALLBACK


class ExtractionResult(BaseModel):
    """Entity extraction plus the path that produced it."""
    model_config = ConfigDict(frozen=True)

    entities: EntityExtraction
    source: NoteSource
    failure_reason: Optional[str] = None


class DocumentationResult(BaseModel):
    """
    Complete result of one pipeline run.

    Updated stage by stage as the pipeline progresses.
    """
    id: str = Field(..., description="Unique identifier for this processing job")
    status: ProcessingStatus = Field(default=ProcessingStatus.PENDING)
    patient_id: Optional[str] = None
    visit_id: Optional[str] = None
    transcript: Optional[Transcript] = None
    synthesis: Optional[SynthesisResult] = None
    validation: Optional[ValidationReport] = None
    extraction: Optional[ExtractionResult] = None
    record_id: Optional[str] = Field(
        default=None,
        description="Datastore id of the saved clinical note, when persisted"
    )
    error_message: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.now)
    completed_at: Optional[datetime] = None
    processing_time_seconds: Optional[float] = None

    @property
    def note(self) -> Optional[ClinicalNote]:
        return self.synthesis.note if self.synthesis else None
