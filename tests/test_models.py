from palliscribe.models import ClinicalNote, EntityExtraction


def test_list_of_dicts_drops_empty_values():
    extraction = EntityExtraction(
        medications=[
            {"name": "morphine", "dose": None, "route": "oral"},
            {"name": "haloperidol", "dose": ""},
            {"dose": None},
        ],
        confidence=0.7,
    )

    assert extraction.medications == ["name: morphine, route: oral", "name: haloperidol"]


def test_top_level_dict_drops_empty_values():
    extraction = EntityExtraction(vitals={"bp": "110/70", "hr": None})

    assert extraction.vitals == ["bp: 110/70"]


def test_note_lists_accept_single_string():
    note = ClinicalNote.model_validate({"followUpActions": "Call family Friday", "recommendations": None})

    assert note.follow_up_actions == ["Call family Friday"]
    assert note.recommendations == []
