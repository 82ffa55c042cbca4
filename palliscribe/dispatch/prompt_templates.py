"""
Dispatch prompt templates.

Pure string interpolation of caller-supplied arguments into fixed templates.
No I/O.
"""

from palliscribe.dispatch.catalog import PromptArgumentSpec, PromptDefinition
from palliscribe.exceptions import InvalidArgumentsError


CLINICAL_SUMMARY_TEMPLATE = """Please generate a comprehensive clinical summary based on the following patient data:

{patient_data}

Please structure the summary with the following sections:
1. Patient Overview
2. Current Symptoms and Assessment
3. Interventions Performed
4. Patient/Family Response
5. Plan and Next Steps
6. Recommendations

Use professional medical terminology while keeping the summary clear and actionable."""

CARE_PLAN_REVIEW_TEMPLATE = """Please review the following care plan and recent assessments, then provide recommendations for updates:

Current Care Plan:
{current_plan}

Recent Assessments:
{recent_assessments}

Please provide:
1. Assessment of current plan effectiveness
2. Identified gaps or areas for improvement
3. Specific recommendations for plan updates
4. Priority level for each recommendation
5. Suggested timeline for implementation

Focus on evidence-based palliative care practices and patient-centered outcomes."""

MEDICATION_RECONCILIATION_TEMPLATE = """Please review the following medication list and patient conditions to identify potential issues and provide recommendations:

Current Medications:
{current_medications}

Patient Conditions:
{patient_conditions}

Please analyze for:
1. Drug interactions
2. Duplicate therapies
3. Inappropriate medications for palliative care
4. Missing medications that might improve comfort
5. Dosing appropriateness
6. Route of administration considerations

Provide specific recommendations with rationale for each identified issue."""


def _renderer(prompt_name: str, template: str, argument_names: tuple[str, ...]):
    def render(arguments: dict[str, str]) -> str:
        missing = [name for name in argument_names if not str(arguments.get(name) or "").strip()]
        if missing:
            raise InvalidArgumentsError(prompt_name, f"missing required argument(s): {', '.join(missing)}")
        # Substituted values are inserted verbatim; braces in them are not re-expanded.
        return template.format(**{name: arguments[name] for name in argument_names})
    return render


def _prompt(name: str, description: str, template: str, *arguments: tuple[str, str]) -> PromptDefinition:
    return PromptDefinition(
        name=name,
        description=description,
        arguments=tuple(PromptArgumentSpec(arg_name, arg_description) for arg_name, arg_description in arguments),
        render=_renderer(name, template, tuple(arg_name for arg_name, _ in arguments)),
    )


PROMPT_DEFINITIONS = (
    _prompt(
        "clinical_summary",
        "Generate a clinical summary for a patient visit",
        CLINICAL_SUMMARY_TEMPLATE,
        ("patient_data", "Patient information and visit data"),
    ),
    _prompt(
        "care_plan_review",
        "Review and suggest updates to a patient's care plan",
        CARE_PLAN_REVIEW_TEMPLATE,
        ("current_plan", "Current care plan data"),
        ("recent_assessments", "Recent assessment data"),
    ),
    _prompt(
        "medication_reconciliation",
        "Help reconcile patient medications and identify potential issues",
        MEDICATION_RECONCILIATION_TEMPLATE,
        ("current_medications", "List of current medications"),
        ("patient_conditions", "Patient's current conditions"),
    ),
)
