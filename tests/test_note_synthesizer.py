import json

import pytest

from palliscribe.completion import MockCompletionClient
from palliscribe.exceptions import CompletionError
from palliscribe.models import NoteSource, PatientContext
from palliscribe.note_synthesizer import NoteSynthesizer

from conftest import EXAMPLE_TRANSCRIPT, GENERATED_NOTE


pytestmark = pytest.mark.anyio


def _synthesizer(settings, *responses) -> tuple[NoteSynthesizer, MockCompletionClient]:
    client = MockCompletionClient(*responses)
    return NoteSynthesizer(settings=settings, completion_client=client), client


async def test_generated_note_is_parsed(synthesizer, note_client):
    result = await synthesizer.synthesize(EXAMPLE_TRANSCRIPT)

    assert result.source == NoteSource.GENERATED
    assert result.failure_reason is None
    assert result.note.soap.plan.startswith("Continue morphine PRN")
    assert result.note.follow_up_actions == ["Call family tomorrow"]
    assert result.note.clinical_entities.medications == ["morphine"]


async def test_single_call_with_fixed_sampling(synthesizer, note_client):
    await synthesizer.synthesize(EXAMPLE_TRANSCRIPT)

    assert note_client.call_count == 1
    call = note_client.calls[0]
    assert call["temperature"] == 0.3
    assert call["max_tokens"] == 2000
    roles = [role for role, _ in call["messages"]]
    assert roles == ["system", "user"]
    assert EXAMPLE_TRANSCRIPT in call["messages"][1][1]


async def test_patient_context_is_embedded_in_prompt(synthesizer, note_client):
    context = PatientContext(
        name="Margaret Ellis",
        primary_condition="Metastatic pancreatic cancer",
        current_medications=["morphine"],
    )
    await synthesizer.synthesize(EXAMPLE_TRANSCRIPT, patient_context=context)

    user_prompt = note_client.calls[0]["messages"][1][1]
    assert "- Name: Margaret Ellis" in user_prompt
    assert "Metastatic pancreatic cancer" in user_prompt
    assert "- Current Symptoms: Not specified" in user_prompt


async def test_code_fenced_response_is_accepted(settings):
    synthesizer, _ = _synthesizer(settings, "```json\n" + json.dumps(GENERATED_NOTE) + "\n```")

    result = await synthesizer.synthesize(EXAMPLE_TRANSCRIPT)

    assert result.source == NoteSource.GENERATED


async def test_list_valued_sections_are_joined(settings):
    payload = {"soap": {**GENERATED_NOTE["soap"], "plan": ["Continue morphine.", "Follow up Friday."]}}
    synthesizer, _ = _synthesizer(settings, json.dumps(payload))

    result = await synthesizer.synthesize(EXAMPLE_TRANSCRIPT)

    assert result.source == NoteSource.GENERATED
    assert result.note.soap.plan == "Continue morphine. Follow up Friday."


@pytest.mark.parametrize(
    "response, reason_fragment",
    [
        ("I'm sorry, I can't help with that.", "invalid JSON"),
        ("[1, 2, 3]", "expected a JSON object"),
        (json.dumps({"visitSummary": "no soap here"}), "missing 'soap'"),
        (json.dumps({"soap": {**GENERATED_NOTE["soap"], "assessment": "  "}}), "empty SOAP section"),
        (json.dumps({"soap": {"subjective": "only one"}}), "schema validation failed"),
        ("", "empty response"),
    ],
)
async def test_malformed_responses_fall_back(settings, response, reason_fragment):
    synthesizer, client = _synthesizer(settings, response)

    result = await synthesizer.synthesize(EXAMPLE_TRANSCRIPT)

    assert result.source == NoteSource.FALLBACK
    assert reason_fragment in result.failure_reason
    assert result.note.soap.subjective == "Patient states pain is worsening"
    assert client.call_count == 1


async def test_backend_failure_falls_back_without_retry(settings):
    synthesizer, client = _synthesizer(
        settings,
        CompletionError("http://localhost:11434", "connection refused"),
        json.dumps(GENERATED_NOTE),
    )

    result = await synthesizer.synthesize(EXAMPLE_TRANSCRIPT)

    assert result.is_fallback
    assert "connection refused" in result.failure_reason
    assert client.call_count == 1


async def test_unexpected_exception_is_absorbed(settings):
    synthesizer, _ = _synthesizer(settings, RuntimeError("socket closed"))

    result = await synthesizer.synthesize(EXAMPLE_TRANSCRIPT)

    assert result.is_fallback
    assert result.failure_reason == "RuntimeError: socket closed"


@pytest.mark.parametrize(
    "transcript",
    [
        EXAMPLE_TRANSCRIPT,
        "",
        "   ",
        "Nothing clinical was said during this visit",
        "Family reports she seems more withdrawn! Will contact chaplain?",
    ],
)
@pytest.mark.parametrize(
    "response",
    [json.dumps(GENERATED_NOTE), "not json", CompletionError("http://x", "timeout")],
)
async def test_every_section_is_always_non_empty(settings, transcript, response):
    synthesizer, _ = _synthesizer(settings, response)

    result = await synthesizer.synthesize(transcript)

    for section in ("subjective", "objective", "assessment", "plan"):
        assert getattr(result.note.soap, section).strip()


async def test_blank_transcript_skips_backend(settings):
    synthesizer, client = _synthesizer(settings, json.dumps(GENERATED_NOTE))

    result = await synthesizer.synthesize("  ")

    assert result.is_fallback
    assert client.call_count == 0
