import os
import pytest
from darknova_core.config import ConfigError, Settings


def test_settings_repo_root_is_directory():
    s = Settings()
    root = s.repo_root()
    assert os.path.isdir(root)


def test_settings_read_environment(monkeypatch):
    monkeypatch.setenv("DARKNOVA_STORAGE", "local")
    monkeypatch.setenv("DARKNOVA_LOGIN_DOMAIN", "example.org")
    s = Settings()
    assert s.storage == "local"
    assert s.login_domain == "example.org"


def test_effective_state_file_resolves_against_root(tmp_path, monkeypatch):
    s = Settings(state_file="data/state.json")
    monkeypatch.setattr(s, "repo_root", lambda: str(tmp_path))
    assert s.effective_state_file() == str(tmp_path / "data" / "state.json")
    absolute = str(tmp_path / "elsewhere.json")
    assert Settings(state_file=absolute).effective_state_file() == absolute


def test_validate_requires_db_url_and_secret_for_sql():
    with pytest.raises(ConfigError) as exc:
        Settings(storage="sql", db_url=None, secret_key=None).validate()
    assert "DARKNOVA_DB_URL" in str(exc.value)
    assert "SECRET_KEY" in str(exc.value)
    Settings(storage="sql", db_url="sqlite://", secret_key="x").validate()


def test_validate_local_needs_no_database():
    Settings(storage="local", db_url=None, secret_key=None).validate()


def test_validate_rejects_unknown_storage():
    with pytest.raises(ConfigError):
        Settings(storage="firebase").validate()
