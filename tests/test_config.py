from palliscribe.config import Settings, get_settings_for_testing


def test_defaults():
    settings = Settings()

    assert settings.note_temperature == 0.3
    assert settings.note_max_tokens == 2000
    assert settings.entity_temperature == 0.1
    assert settings.entity_max_tokens == 800
    assert settings.server_name == "palliscribe-mcp-server"


def test_vocabulary_hint_uses_first_ten_terms():
    settings = get_settings_for_testing(medical_terms=[f"term{i}" for i in range(15)])

    assert settings.vocabulary_hint == (
        "Medical visit documentation including: "
        + ", ".join(f"term{i}" for i in range(10))
    )


def test_environment_overrides(monkeypatch, tmp_path):
    monkeypatch.setenv("PALLISCRIBE_DATABASE_PATH", str(tmp_path / "care.db"))
    monkeypatch.setenv("PALLISCRIBE_OLLAMA_MODEL", "mistral")

    settings = Settings()

    assert settings.database_path == str(tmp_path / "care.db")
    assert settings.ollama_model == "mistral"
