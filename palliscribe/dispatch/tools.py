"""
Dispatch tool handlers.

Every handler is `async (DispatchContext, arguments) -> str` and answers in
two formats at once: markdown prose for the agent reading the reply,
followed by a fenced JSON block holding the exact data.
"""

import json
import logging
from datetime import date, datetime, time
from typing import Any, Optional

from palliscribe.datastore import Filter, Include, OrderBy
from palliscribe.exceptions import InvalidArgumentsError, NotFoundError, PalliScribeError
from palliscribe.models import ClinicalNote, PatientContext, ProcessingStatus
from palliscribe.dispatch.catalog import DispatchContext, ToolDefinition


logger = logging.getLogger(__name__)

ACTIVE_TASK_STATUSES = ("pending", "inProgress")
PRIORITIES = ("low", "medium", "high", "urgent")
PRIORITY_RANK = {priority: rank for rank, priority in enumerate(PRIORITIES, start=1)}
NOTE_TYPES = ("symptom_assessment", "family_support", "goals_of_care", "medication_review", "general")
RECENT_VISIT_LIMIT = 5
DEFAULT_TASK_LIMIT = 10
NOTE_STATUSES = ("draft", "reviewed", "approved", "archived")
DEFAULT_NOTE_LIMIT = 20


# =============================================================================
# Helpers
# =============================================================================

def dual_format(prose: str, data: Any, heading: str = "Full Data") -> str:
    """Prose followed by the exact payload as a fenced JSON block."""
    payload = json.dumps(data, indent=2, default=str)
    return f"{prose}\n\n**{heading}:**\n```json\n{payload}\n```"


def priority_sort_key(task: dict) -> tuple:
    """Highest priority first; ties by due time, undated tasks last."""
    due_time = task.get("due_time")
    return (-PRIORITY_RANK.get(task.get("priority"), 0), due_time is None, due_time or "")


def sort_by_priority(tasks: list[dict]) -> list[dict]:
    return sorted(tasks, key=priority_sort_key)


def format_date(value: Optional[str]) -> str:
    if not value:
        return "unscheduled"
    try:
        return datetime.fromisoformat(value).date().isoformat()
    except ValueError:
        return value


def require(arguments: dict, name: str, operation: str, kind: type = str) -> Any:
    """Fetch a required argument, rejecting absent, blank or ill-typed values."""
    value = arguments.get(name)
    if value is None or (isinstance(value, str) and not value.strip()):
        raise InvalidArgumentsError(operation, f"'{name}' is required")
    if not isinstance(value, kind):
        raise InvalidArgumentsError(operation, f"'{name}' must be of type {kind.__name__}")
    return value


def require_choice(value: str, choices: tuple[str, ...], name: str, operation: str) -> str:
    if value not in choices:
        raise InvalidArgumentsError(operation, f"'{name}' must be one of {', '.join(choices)}")
    return value


def parse_limit(value: Any, operation: str) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, float)) or value != int(value) or value < 1:
        raise InvalidArgumentsError(operation, "'limit' must be a positive integer")
    return int(value)


def parse_date(value: Any, name: str, operation: str) -> date:
    try:
        return date.fromisoformat(str(value))
    except ValueError:
        raise InvalidArgumentsError(operation, f"'{name}' must be a YYYY-MM-DD date") from None


# =============================================================================
# Tool Handlers
# =============================================================================

async def get_patient_summary(ctx: DispatchContext, arguments: dict) -> str:
    patient_id = require(arguments, "patient_id", "get_patient_summary")

    patients = await ctx.datastore.select("patients", [Filter("id", patient_id)], limit=1)
    if not patients:
        raise NotFoundError("patient", patient_id)
    patient = patients[0]

    tasks = sort_by_priority(await ctx.datastore.select(
        "tasks",
        [Filter("patient_id", patient_id), Filter("status", ACTIVE_TASK_STATUSES, op="in")],
    ))
    visits = await ctx.datastore.select(
        "visits",
        [Filter("patient_id", patient_id)],
        order_by=OrderBy("scheduled_time", descending=True),
        limit=RECENT_VISIT_LIMIT,
    )

    summary = {
        "patient": patient,
        "active_tasks": tasks,
        "recent_visits": visits,
        "summary_generated_at": datetime.now().isoformat(),
    }

    lines = [
        f"Patient Summary for {patient['name']}:",
        "",
        "**Patient Information:**",
        f"- ID: {patient['id']}",
        f"- Priority: {patient.get('priority')}",
        f"- Address: {patient.get('address') or 'Not recorded'}",
        f"- Primary condition: {patient.get('primary_condition') or 'Not recorded'}",
        "",
        f"**Active Tasks:** {len(tasks)}",
    ]
    lines.extend(f"- {t['title']} ({t['status']}, Priority: {t['priority']})" for t in tasks)
    lines.append("")
    lines.append(f"**Recent Visits:** {len(visits)}")
    lines.extend(
        f"- {v.get('visit_type') or 'Visit'} on {format_date(v.get('scheduled_time'))} ({v.get('status')})"
        for v in visits
    )
    return dual_format("\n".join(lines), summary)


async def create_care_plan_note(ctx: DispatchContext, arguments: dict) -> str:
    operation = "create_care_plan_note"
    patient_id = require(arguments, "patient_id", operation)
    note_type = require_choice(require(arguments, "note_type", operation), NOTE_TYPES, "note_type", operation)
    content = require(arguments, "content", operation)
    priority = require_choice(arguments.get("priority") or "medium", PRIORITIES, "priority", operation)

    note = await ctx.datastore.insert("care_plan_notes", {
        "patient_id": patient_id,
        "note_type": note_type,
        "content": content,
        "priority": priority,
        "created_by": "MCP Server",
        "tags": [note_type, priority],
    })
    logger.info(f"Care plan note {note['id']} created for patient {patient_id}")

    prose = "\n".join([
        "Care Plan Note Created:",
        "",
        f"**Type:** {note_type}",
        f"**Priority:** {priority}",
        f"**Patient ID:** {patient_id}",
        f"**Content:** {content}",
    ])
    return dual_format(prose, note, heading="Structured Note")


async def get_pending_tasks_summary(ctx: DispatchContext, arguments: dict) -> str:
    operation = "get_pending_tasks_summary"
    priority_filter = arguments.get("priority_filter")
    limit = parse_limit(arguments.get("limit", DEFAULT_TASK_LIMIT), operation)

    filters = [Filter("status", ACTIVE_TASK_STATUSES, op="in")]
    if priority_filter:
        filters.append(Filter("priority", require_choice(priority_filter, PRIORITIES, "priority_filter", operation)))

    tasks = await ctx.datastore.select(
        "tasks",
        filters,
        include=[Include("patients", "patient_id", ("name", "priority", "address"), alias="patient")],
    )
    tasks = sort_by_priority(tasks)[:limit]

    by_priority: dict[str, int] = {}
    for task in tasks:
        by_priority[task["priority"]] = by_priority.get(task["priority"], 0) + 1

    summary = {"total_tasks": len(tasks), "tasks_by_priority": by_priority, "tasks": tasks}

    lines = [
        "Pending Tasks Summary:",
        "",
        f"**Total Tasks:** {len(tasks)}",
        f"**By Priority:** {', '.join(f'{p}: {n}' for p, n in by_priority.items()) or 'none'}",
        "",
        "**Task List:**",
    ]
    lines.extend(
        f"- **{t['title']}** ({t['priority']}) - Patient: {(t.get('patient') or {}).get('name', 'Unknown')}"
        f" - Due: {t.get('due_time') or 'No due date'}"
        for t in tasks
    )
    return dual_format("\n".join(lines), summary)


async def create_visit_documentation(ctx: DispatchContext, arguments: dict) -> str:
    operation = "create_visit_documentation"
    visit_id = require(arguments, "visit_id", operation)
    assessment = require(arguments, "assessment_data", operation, kind=dict)
    next_steps = arguments.get("next_steps")

    pain_level = assessment.get("pain_level")
    if pain_level is not None and (
        isinstance(pain_level, bool) or not isinstance(pain_level, (int, float)) or not 0 <= pain_level <= 10
    ):
        raise InvalidArgumentsError(operation, "'pain_level' must be a number from 0 to 10")

    interventions = assessment.get("interventions")
    if interventions is None:
        interventions = []
    elif not isinstance(interventions, list) or not all(isinstance(item, str) for item in interventions):
        raise InvalidArgumentsError(operation, "'interventions' must be a list of strings")

    documentation = await ctx.datastore.insert("visit_notes", {
        "visit_id": visit_id,
        "assessment_data": assessment,
        "next_steps": next_steps,
        "documentation_type": "comprehensive_visit_note",
    })

    prose = "\n".join([
        "Visit Documentation Created:",
        "",
        f"**Visit ID:** {visit_id}",
        f"**Pain Level:** {pain_level if pain_level is not None else 'Not assessed'}",
        f"**Symptoms:** {assessment.get('symptoms') or 'None noted'}",
        f"**Family Support:** {assessment.get('family_support') or 'Not assessed'}",
        f"**Goals of Care:** {assessment.get('goals_of_care') or 'Not discussed'}",
        f"**Interventions:** {', '.join(interventions) or 'None'}",
        f"**Next Steps:** {next_steps or 'None specified'}",
    ])
    return dual_format(prose, documentation, heading="Complete Documentation")


async def generate_medication_report(ctx: DispatchContext, arguments: dict) -> str:
    operation = "generate_medication_report"
    patient_id = require(arguments, "patient_id", operation)
    date_range = require(arguments, "date_range", operation, kind=dict)
    start = parse_date(date_range.get("start_date"), "start_date", operation)
    end = parse_date(date_range.get("end_date"), "end_date", operation)
    if end < start:
        raise InvalidArgumentsError(operation, "'end_date' is before 'start_date'")

    # Timestamps compare as ISO strings; the end bound covers the whole end day.
    visits = await ctx.datastore.select(
        "visits",
        [
            Filter("patient_id", patient_id),
            Filter("scheduled_time", start.isoformat(), op="gte"),
            Filter("scheduled_time", datetime.combine(end, time.max).isoformat(), op="lte"),
        ],
        order_by=OrderBy("scheduled_time"),
    )
    with_medications = [v for v in visits if v.get("medications_administered")]

    report = {
        "patient_id": patient_id,
        "date_range": {"start_date": start.isoformat(), "end_date": end.isoformat()},
        "total_visits": len(visits),
        "medications_administered": with_medications,
        "report_generated_at": datetime.now().isoformat(),
    }

    lines = [
        f"Medication Report for Patient {patient_id}:",
        "",
        f"**Date Range:** {start.isoformat()} to {end.isoformat()}",
        f"**Total Visits:** {len(visits)}",
        f"**Visits with Medications:** {len(with_medications)}",
        "",
        "**Medication Administration Details:**",
    ]
    lines.extend(
        f"- {format_date(v.get('scheduled_time'))}: {', '.join(map(str, v['medications_administered']))}"
        for v in with_medications
    )
    return dual_format("\n".join(lines), report, heading="Full Report Data")


async def synthesize_clinical_note(ctx: DispatchContext, arguments: dict) -> str:
    operation = "synthesize_clinical_note"
    transcript = require(arguments, "transcript", operation)
    patient_id = arguments.get("patient_id")
    visit_id = arguments.get("visit_id")

    patient_context = None
    if arguments.get("patient_context") is not None:
        raw_context = require(arguments, "patient_context", operation, kind=dict)
        try:
            patient_context = PatientContext.model_validate(raw_context)
        except ValueError as e:
            raise InvalidArgumentsError(operation, f"'patient_context' is invalid: {e}") from e

    result = await ctx.pipeline.aprocess_transcript(
        transcript,
        patient_context=patient_context,
        patient_id=patient_id,
        visit_id=visit_id,
    )
    if result.status == ProcessingStatus.FAILED:
        raise PalliScribeError(result.error_message or "note synthesis failed")

    note: ClinicalNote = result.note
    payload = {
        "note": note.model_dump(by_alias=True),
        "source": result.synthesis.source.value,
        "failure_reason": result.synthesis.failure_reason,
        "validation": result.validation.model_dump(),
        "entities": result.extraction.entities.model_dump(),
        "record_id": result.record_id,
    }

    lines = [
        "Clinical Note Synthesized:",
        "",
        f"**Source:** {result.synthesis.source.value}",
    ]
    if result.synthesis.is_fallback:
        lines.append(f"**Fallback reason:** {result.synthesis.failure_reason}")
    lines.append(f"**Complete:** {'yes' if result.validation.is_valid else 'no'}")
    lines.extend(f"- {suggestion}" for suggestion in result.validation.suggestions)
    if result.record_id:
        lines.append(f"**Stored as:** {result.record_id}")
    lines.extend(["", note.to_formatted_string()])
    return dual_format("\n".join(lines), payload)


async def extract_medical_entities(ctx: DispatchContext, arguments: dict) -> str:
    text = require(arguments, "text", "extract_medical_entities")
    result = await ctx.entity_extractor.extract(text)
    entities = result.entities

    lines = [
        "Medical Entities:",
        "",
        f"**Source:** {result.source.value}",
        f"**Confidence:** {entities.confidence:.2f}",
        f"**Symptoms:** {', '.join(entities.symptoms) or 'None'}",
        f"**Medications:** {', '.join(entities.medications) or 'None'}",
        f"**Vitals:** {', '.join(entities.vitals) or 'None'}",
        f"**Interventions:** {', '.join(entities.interventions) or 'None'}",
    ]
    payload = {**entities.model_dump(), "source": result.source.value, "failure_reason": result.failure_reason}
    return dual_format("\n".join(lines), payload)


async def get_clinical_notes(ctx: DispatchContext, arguments: dict) -> str:
    """Stored clinical notes, newest first. With no filters, the drafts awaiting review."""
    operation = "get_clinical_notes"
    limit = parse_limit(arguments.get("limit", DEFAULT_NOTE_LIMIT), operation)

    filters = []
    for name in ("patient_id", "visit_id"):
        if arguments.get(name) is not None:
            filters.append(Filter(name, require(arguments, name, operation)))
    status = arguments.get("status")
    if status is not None:
        filters.append(Filter("status", require_choice(status, NOTE_STATUSES, "status", operation)))
    elif not filters:
        filters.append(Filter("status", "draft"))

    notes = await ctx.datastore.select(
        "clinical_notes",
        filters,
        order_by=OrderBy("created_at", descending=True),
        limit=limit,
        include=[Include("patients", "patient_id", ("name",), alias="patient")],
    )

    lines = [
        "Clinical Notes:",
        "",
        f"**Total Notes:** {len(notes)}",
    ]
    for note in notes:
        missing = note.get("missing_fields") or []
        lines.append(
            f"- **{note['id']}** ({note['status']}, {note.get('note_source') or 'unknown source'})"
            f" - Patient: {(note.get('patient') or {}).get('name', 'Unknown')}"
            f" - {format_date(note.get('created_at'))}"
            f" - Missing: {', '.join(missing) or 'none'}"
        )
    return dual_format("\n".join(lines), {"total_notes": len(notes), "notes": notes})


# =============================================================================
# Catalog
# =============================================================================

def _string(description: str, **extra) -> dict:
    return {"type": "string", "description": description, **extra}


TOOL_DEFINITIONS = (
    ToolDefinition(
        name="get_patient_summary",
        description="Get a comprehensive summary of a patient including current tasks, recent visits, and care plan",
        input_schema={
            "type": "object",
            "properties": {"patient_id": _string("The ID of the patient")},
            "required": ["patient_id"],
        },
        handler=get_patient_summary,
    ),
    ToolDefinition(
        name="create_care_plan_note",
        description="Create a structured care plan note for a patient",
        input_schema={
            "type": "object",
            "properties": {
                "patient_id": _string("The ID of the patient"),
                "note_type": _string("Type of care plan note", enum=list(NOTE_TYPES)),
                "content": _string("The note content"),
                "priority": _string("Priority level of the note", enum=list(PRIORITIES)),
            },
            "required": ["patient_id", "note_type", "content"],
        },
        handler=create_care_plan_note,
    ),
    ToolDefinition(
        name="get_pending_tasks_summary",
        description="Get a summary of all pending tasks with patient context",
        input_schema={
            "type": "object",
            "properties": {
                "priority_filter": _string("Filter tasks by priority (optional)", enum=list(PRIORITIES)),
                "limit": {
                    "type": "number",
                    "description": f"Maximum number of tasks to return (default: {DEFAULT_TASK_LIMIT})",
                },
            },
        },
        handler=get_pending_tasks_summary,
    ),
    ToolDefinition(
        name="create_visit_documentation",
        description="Create comprehensive visit documentation with assessment data",
        input_schema={
            "type": "object",
            "properties": {
                "visit_id": _string("The ID of the visit"),
                "assessment_data": {
                    "type": "object",
                    "properties": {
                        "symptoms": _string("Symptom assessment notes"),
                        "pain_level": {
                            "type": "number",
                            "minimum": 0,
                            "maximum": 10,
                            "description": "Pain level (0-10 scale)",
                        },
                        "family_support": _string("Family support assessment"),
                        "goals_of_care": _string("Goals of care discussion notes"),
                        "interventions": {
                            "type": "array",
                            "items": {"type": "string"},
                            "description": "List of interventions performed",
                        },
                    },
                },
                "next_steps": _string("Recommended next steps or follow-up actions"),
            },
            "required": ["visit_id", "assessment_data"],
        },
        handler=create_visit_documentation,
    ),
    ToolDefinition(
        name="generate_medication_report",
        description="Generate a medication administration report for a patient",
        input_schema={
            "type": "object",
            "properties": {
                "patient_id": _string("The ID of the patient"),
                "date_range": {
                    "type": "object",
                    "properties": {
                        "start_date": _string("Start date for the report (YYYY-MM-DD)", format="date"),
                        "end_date": _string("End date for the report (YYYY-MM-DD)", format="date"),
                    },
                    "required": ["start_date", "end_date"],
                },
            },
            "required": ["patient_id", "date_range"],
        },
        handler=generate_medication_report,
    ),
    ToolDefinition(
        name="synthesize_clinical_note",
        description=(
            "Structure a visit transcript into a SOAP clinical note, check it for completeness, "
            "extract medical entities, and store it when a patient is given"
        ),
        input_schema={
            "type": "object",
            "properties": {
                "transcript": _string("The visit transcript"),
                "patient_id": _string("Store the note for this patient (optional)"),
                "visit_id": _string("Link the stored note to this visit (optional)"),
                "patient_context": {
                    "type": "object",
                    "description": "Patient context embedded in the prompt (optional)",
                    "properties": {
                        "name": _string("Patient name"),
                        "primaryCondition": _string("Primary condition"),
                        "currentSymptoms": {"type": "array", "items": {"type": "string"}},
                        "currentMedications": {"type": "array", "items": {"type": "string"}},
                    },
                    "required": ["name"],
                },
            },
            "required": ["transcript"],
        },
        handler=synthesize_clinical_note,
    ),
    ToolDefinition(
        name="extract_medical_entities",
        description="Extract symptoms, medications, vitals and interventions from clinical text",
        input_schema={
            "type": "object",
            "properties": {"text": _string("Clinical text to analyze")},
            "required": ["text"],
        },
        handler=extract_medical_entities,
    ),
    ToolDefinition(
        name="get_clinical_notes",
        description=(
            "List stored clinical notes with their review status and missing sections. "
            "Without filters, returns draft notes awaiting review"
        ),
        input_schema={
            "type": "object",
            "properties": {
                "patient_id": _string("Only notes for this patient (optional)"),
                "visit_id": _string("Only notes for this visit (optional)"),
                "status": _string("Only notes with this status (optional)", enum=list(NOTE_STATUSES)),
                "limit": {
                    "type": "number",
                    "description": f"Maximum number of notes to return (default: {DEFAULT_NOTE_LIMIT})",
                },
            },
        },
        handler=get_clinical_notes,
    ),
)
