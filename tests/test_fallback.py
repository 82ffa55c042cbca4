from palliscribe.fallback import (
    SUMMARY_LENGTH,
    build_fallback_note,
    classify_sentence,
    extract_soap_sections,
    placeholder_for,
    split_sentences,
)

from conftest import EXAMPLE_TRANSCRIPT


def test_example_transcript_segments_into_sections():
    soap = extract_soap_sections(EXAMPLE_TRANSCRIPT)

    assert "Patient states pain is worsening" in soap.subjective
    assert "Vitals stable, appears comfortable" in soap.objective
    assert "Plan: continue morphine PRN" in soap.plan
    assert soap.assessment == "Please document assessment findings."


def test_sentence_lands_in_first_matching_section_only():
    # "appears" is both an objective and an assessment keyword
    soap = extract_soap_sections("Patient appears restless")

    assert soap.objective == "Patient appears restless"
    assert soap.assessment == placeholder_for("assessment")


def test_matches_are_joined_in_order():
    soap = extract_soap_sections("Family reports poor appetite! Patient feels tired. Will reassess")

    assert soap.subjective == "Family reports poor appetite. Patient feels tired"
    assert soap.plan == "Will reassess"


def test_matching_is_case_insensitive():
    assert classify_sentence("VITAL SIGNS within normal limits") == "objective"
    assert classify_sentence("Schedule chaplain visit") == "plan"
    assert classify_sentence("No keywords here") is None


def test_unmatched_text_gets_placeholders_everywhere():
    soap = extract_soap_sections("Lovely weather today.")

    for section in ("subjective", "objective", "assessment", "plan"):
        assert getattr(soap, section) == f"Please document {section} findings."


def test_split_sentences_drops_blank_fragments():
    assert split_sentences("One... Two?! Three.  ") == ["One", "Two", "Three"]
    assert split_sentences("") == []


def test_fallback_note_shape():
    text = "Patient reports nausea. " * 20
    note = build_fallback_note(text)

    assert note.visit_summary == text[:SUMMARY_LENGTH] + "..."
    assert note.recommendations == []
    assert note.follow_up_actions == []
    assert note.clinical_entities is not None
    assert note.clinical_entities.symptoms == []
    assert note.soap.is_complete()


def test_empty_transcript_still_yields_complete_note():
    note = build_fallback_note("")

    assert note.soap.is_complete()
    assert note.visit_summary == "..."
