"""
Shared fixtures.

Async tests run on the anyio pytest plugin with the asyncio backend. The
datastore fixture is a fresh SQLite file per test, seeded with two patients,
their tasks and a month of visits.
"""

import json

import pytest

from palliscribe.completion import MockCompletionClient
from palliscribe.config import get_settings_for_testing
from palliscribe.datastore import SQLiteDatastore
from palliscribe.entity_extractor import EntityExtractor
from palliscribe.note_synthesizer import NoteSynthesizer


EXAMPLE_TRANSCRIPT = (
    "Patient states pain is worsening. Vitals stable, appears comfortable. "
    "Plan: continue morphine PRN."
)

GENERATED_NOTE = {
    "soap": {
        "subjective": "Patient reports worsening abdominal pain, 7/10, and poor sleep.",
        "objective": "Resting in bed, grimacing on movement. Vital signs stable.",
        "assessment": "Uncontrolled cancer pain with increasing analgesic need.",
        "plan": "Continue morphine PRN, increase scheduled dose, follow up in 48 hours.",
    },
    "visitSummary": "Routine hospice visit focused on pain control.",
    "recommendations": ["Review breakthrough dose frequency"],
    "followUpActions": ["Call family tomorrow"],
    "clinicalEntities": {
        "symptoms": ["abdominal pain", "insomnia"],
        "medications": ["morphine"],
        "interventions": ["repositioning"],
        "assessments": ["pain 7/10"],
    },
}

GENERATED_ENTITIES = {
    "symptoms": ["pain"],
    "medications": ["morphine"],
    "vitals": ["BP 118/76"],
    "interventions": ["repositioning"],
    "confidence": 0.85,
}

PATIENTS = [
    {"id": "p-1", "name": "Margaret Ellis", "priority": "high", "address": "12 Alder Lane",
     "primary_condition": "Metastatic pancreatic cancer", "created_at": "2024-01-01T08:00:00"},
    {"id": "p-2", "name": "Walter Brooks", "priority": "medium", "address": "4 Birch Road",
     "primary_condition": "End-stage COPD", "created_at": "2024-01-05T08:00:00"},
]

TASKS = [
    {"id": "t-1", "patient_id": "p-1", "title": "Check skin integrity", "status": "pending",
     "priority": "low", "due_time": "2024-03-01T09:00:00"},
    {"id": "t-2", "patient_id": "p-2", "title": "Oxygen supply review", "status": "pending",
     "priority": "urgent", "due_time": "2024-03-01T12:00:00"},
    {"id": "t-3", "patient_id": "p-1", "title": "Pain reassessment", "status": "inProgress",
     "priority": "high", "due_time": "2024-03-01T10:00:00"},
    {"id": "t-4", "patient_id": "p-1", "title": "Initial intake", "status": "completed",
     "priority": "urgent", "due_time": "2024-02-01T10:00:00"},
    {"id": "t-5", "patient_id": "p-1", "title": "Breakthrough pain call", "status": "inProgress",
     "priority": "urgent", "due_time": "2024-03-01T08:00:00"},
    {"id": "t-6", "patient_id": "p-2", "title": "Caregiver check-in", "status": "pending",
     "priority": "medium", "due_time": "2024-03-02T09:00:00"},
    {"id": "t-7", "patient_id": "p-2", "title": "Goals of care meeting", "status": "pending",
     "priority": "high", "due_time": None},
]

VISITS = [
    {"id": "v-1", "patient_id": "p-1", "visit_type": "Routine", "status": "completed",
     "scheduled_time": "2024-01-03T10:00:00", "medications_administered": ["morphine 5mg"]},
    {"id": "v-2", "patient_id": "p-1", "visit_type": "Routine", "status": "completed",
     "scheduled_time": "2024-01-10T10:00:00", "medications_administered": []},
    {"id": "v-3", "patient_id": "p-1", "visit_type": "Urgent", "status": "completed",
     "scheduled_time": "2024-01-15T16:30:00", "medications_administered": ["lorazepam 0.5mg", "morphine 5mg"]},
    {"id": "v-4", "patient_id": "p-1", "visit_type": "Routine", "status": "completed",
     "scheduled_time": "2024-01-20T10:00:00", "medications_administered": None},
    {"id": "v-5", "patient_id": "p-1", "visit_type": "Routine", "status": "completed",
     "scheduled_time": "2024-01-31T18:00:00", "medications_administered": ["haloperidol 1mg"]},
    {"id": "v-6", "patient_id": "p-1", "visit_type": "Routine", "status": "scheduled",
     "scheduled_time": "2024-02-07T10:00:00", "medications_administered": []},
    {"id": "v-7", "patient_id": "p-1", "visit_type": "Family meeting", "status": "scheduled",
     "scheduled_time": "2024-02-14T10:00:00", "medications_administered": []},
    {"id": "v-8", "patient_id": "p-2", "visit_type": "Routine", "status": "completed",
     "scheduled_time": "2024-01-12T09:00:00", "medications_administered": ["salbutamol"]},
]


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def settings(tmp_path):
    return get_settings_for_testing(database_path=str(tmp_path / "palliscribe.sqlite3"))


@pytest.fixture
async def empty_datastore(settings):
    store = SQLiteDatastore(settings.database_path)
    await store.initialize()
    return store


@pytest.fixture
async def datastore(empty_datastore):
    for table, rows in (("patients", PATIENTS), ("tasks", TASKS), ("visits", VISITS)):
        for row in rows:
            await empty_datastore.insert(table, row)
    return empty_datastore


@pytest.fixture
def note_client():
    return MockCompletionClient(json.dumps(GENERATED_NOTE))


@pytest.fixture
def entity_client():
    return MockCompletionClient(json.dumps(GENERATED_ENTITIES))


@pytest.fixture
def synthesizer(settings, note_client):
    return NoteSynthesizer(settings=settings, completion_client=note_client)


@pytest.fixture
def extractor(settings, entity_client):
    return EntityExtractor(settings=settings, completion_client=entity_client)
