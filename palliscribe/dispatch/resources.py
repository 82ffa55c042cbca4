"""
Dispatch resources.

Data resources are read-only live queries serialized as JSON. The guideline
resource is a fixed markdown document and never touches the datastore.
"""

import json

from palliscribe.datastore import Filter, Include, OrderBy
from palliscribe.dispatch.catalog import DispatchContext, ResourceDefinition
from palliscribe.dispatch.tools import ACTIVE_TASK_STATUSES, sort_by_priority


RECENT_VISITS_LIMIT = 20

GUIDELINES_MARKDOWN = """# Palliative Care Guidelines

## Core Principles
1. **Comfort-focused care** - Prioritize symptom management and quality of life
2. **Patient-centered approach** - Respect patient values, preferences, and goals
3. **Family involvement** - Include family members in care planning and support
4. **Interdisciplinary care** - Coordinate across multiple healthcare disciplines

## Assessment Areas
### Symptom Management
- Pain assessment using validated scales (0-10)
- Nausea, fatigue, and breathing difficulties
- Psychological symptoms (anxiety, depression)

### Family Support
- Caregiver burden assessment
- Emotional support needs
- Practical support requirements

### Goals of Care
- Treatment preferences and limitations
- End-of-life care planning
- Quality vs. quantity of life discussions

## Documentation Requirements
- Regular pain and symptom assessments
- Family meeting notes
- Advance directive status
- Medication reconciliation"""

_PATIENT_BRIEF = Include("patients", "patient_id", ("name", "priority"), alias="patient")


def _to_json(rows: list[dict]) -> str:
    return json.dumps(rows, indent=2, default=str)


async def read_all_patients(ctx: DispatchContext) -> str:
    rows = await ctx.datastore.select("patients", order_by=OrderBy("created_at", descending=True))
    return _to_json(rows)


async def read_pending_tasks(ctx: DispatchContext) -> str:
    rows = await ctx.datastore.select(
        "tasks",
        [Filter("status", ACTIVE_TASK_STATUSES, op="in")],
        include=[_PATIENT_BRIEF],
    )
    return _to_json(sort_by_priority(rows))


async def read_recent_visits(ctx: DispatchContext) -> str:
    rows = await ctx.datastore.select(
        "visits",
        order_by=OrderBy("scheduled_time", descending=True),
        limit=RECENT_VISITS_LIMIT,
        include=[_PATIENT_BRIEF],
    )
    return _to_json(rows)


async def read_guidelines(ctx: DispatchContext) -> str:
    return GUIDELINES_MARKDOWN


RESOURCE_DEFINITIONS = (
    ResourceDefinition(
        uri="medical://patients/all",
        name="All Patients",
        description="List of all patients in the system",
        mime_type="application/json",
        handler=read_all_patients,
    ),
    ResourceDefinition(
        uri="medical://tasks/pending",
        name="Pending Tasks",
        description="All pending medical tasks",
        mime_type="application/json",
        handler=read_pending_tasks,
    ),
    ResourceDefinition(
        uri="medical://visits/recent",
        name="Recent Visits",
        description="Recent patient visits",
        mime_type="application/json",
        handler=read_recent_visits,
    ),
    ResourceDefinition(
        uri="medical://guidelines/palliative-care",
        name="Palliative Care Guidelines",
        description="Clinical guidelines for palliative care",
        mime_type="text/markdown",
        handler=read_guidelines,
    ),
)
