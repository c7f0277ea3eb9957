from autocrud.config import CrudSettings, load_settings


def test_defaults():
    settings = CrudSettings()

    assert settings.default_limit == 100
    assert settings.default_order == "desc"
    assert settings.metas_field == "metas"
    assert settings.max_limit is None


def test_from_dict_ignores_unknown_keys():
    settings = CrudSettings.from_dict({"default_limit": 20, "theme": "dark"})

    assert settings.default_limit == 20


def test_load_settings_missing_file(tmp_path, monkeypatch):
    monkeypatch.delenv("AUTOCRUD_DEFAULT_LIMIT", raising=False)

    assert load_settings(tmp_path / "missing.yaml").default_limit == 100


def test_load_settings_file_then_env(tmp_path, monkeypatch):
    path = tmp_path / "autocrud.yaml"
    path.write_text("default_limit: 25\nmax_limit: 200\nmetas_field: extra\n")
    monkeypatch.setenv("AUTOCRUD_MAX_LIMIT", "50")
    monkeypatch.setenv("SQL_ECHO", "true")

    settings = load_settings(path)

    assert settings.default_limit == 25
    assert settings.max_limit == 50
    assert settings.metas_field == "extra"
    assert settings.sql_echo is True


def test_save_writes_yaml(tmp_path, monkeypatch):
    for name in ("DATABASE_URL", "SQL_ECHO", "AUTOCRUD_DEFAULT_LIMIT", "AUTOCRUD_MAX_LIMIT", "AUTOCRUD_UID_FIELD"):
        monkeypatch.delenv(name, raising=False)
    path = tmp_path / "autocrud.yaml"

    CrudSettings(uid_field="slug", database_url="sqlite+aiosqlite:///app.db").save(path)

    settings = load_settings(path)
    assert settings.uid_field == "slug"
    assert settings.database_url == "sqlite+aiosqlite:///app.db"
