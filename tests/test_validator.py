from palliscribe.models import ClinicalNote, SOAPNote
from palliscribe.validator import validate_clinical_note


def _note(**sections) -> ClinicalNote:
    soap = {
        "subjective": "Patient reports pain 6/10 overnight.",
        "objective": "Resting comfortably, respirations even.",
        "assessment": "Pain partially controlled on current regimen.",
        "plan": "Continue current regimen and reassess tomorrow.",
    }
    soap.update(sections)
    return ClinicalNote(soap=SOAPNote(**soap))


def test_complete_note_is_valid():
    report = validate_clinical_note(_note())

    assert report.is_valid
    assert report.missing_fields == []
    assert report.suggestions == []


def test_flags_exactly_the_short_sections():
    report = validate_clinical_note(_note(plan="ok"))

    assert report.missing_fields == ["Plan"]
    assert not report.is_valid
    assert report.suggestions == ["Document interventions and follow-up actions"]


def test_length_is_measured_after_stripping():
    report = validate_clinical_note(_note(objective="   short     "))

    assert report.missing_fields == ["Objective"]


def test_exactly_minimum_length_passes():
    report = validate_clinical_note(_note(assessment="x" * 10))

    assert report.is_valid


def test_note_without_soap_flags_every_section():
    report = validate_clinical_note(ClinicalNote(visit_summary="Phone call only"))

    assert report.missing_fields == ["Subjective", "Objective", "Assessment", "Plan"]
    assert len(report.suggestions) == 4


def test_validation_is_idempotent():
    note = _note(subjective="n/a", plan="")

    first = validate_clinical_note(note)
    second = validate_clinical_note(note)

    assert first == second
    assert first.missing_fields == ["Subjective", "Plan"]


def test_custom_minimum_length():
    report = validate_clinical_note(_note(plan="Continue."), min_length=20)

    assert "Plan" in report.missing_fields
