# tests/test_config.py
import pytest

from conftest import make_settings
from weam.config import ConfigError, Settings, parse_duration_to_seconds, validate_settings


@pytest.mark.parametrize(
    "value, expected",
    [
        ("15m", 900),
        ("1h", 3600),
        ("7d", 604800),
        ("3600", 3600),
        ("45s", 45),
        (120, 120),
        ("soon", 42),
        ("", 42),
        (None, 42),
    ],
)
def test_parse_duration(value, expected):
    assert parse_duration_to_seconds(value, 42) == expected


def test_settings_from_env(monkeypatch, tmp_path):
    monkeypatch.setenv("PORT", "8080")
    monkeypatch.setenv("CLIENT_ORIGINS", "https://a.example, https://b.example")
    monkeypatch.setenv("APP_ENV", "production")
    monkeypatch.setenv("ACCESS_TOKEN_TTL", "30m")
    monkeypatch.setenv("DATABASE_FILE", str(tmp_path / "db.sqlite"))

    s = Settings()
    assert s.port == 8080
    assert s.client_origins == ["https://a.example", "https://b.example"]
    assert s.is_production
    assert s.secure_cookies
    assert s.access_ttl_seconds == 1800
    assert s.database_file == str(tmp_path / "db.sqlite")


def test_bad_int_env_falls_back(monkeypatch):
    monkeypatch.setenv("PORT", "eighty")
    assert Settings().port == 4000


def test_refresh_secret_falls_back_to_jwt_secret(tmp_path):
    s = make_settings(tmp_path / "db.sqlite", refresh_secret="")
    assert s.effective_refresh_secret == s.jwt_secret


def test_short_secret_is_fatal(tmp_path):
    with pytest.raises(ConfigError):
        validate_settings(make_settings(tmp_path / "db.sqlite", jwt_secret="short"))


def test_bad_samesite_is_fatal(tmp_path):
    with pytest.raises(ConfigError):
        validate_settings(make_settings(tmp_path / "db.sqlite", cookie_samesite="sometimes"))


def test_validate_creates_database_file(tmp_path, caplog):
    db_file = tmp_path / "nested" / "db.sqlite"
    validate_settings(make_settings(db_file))
    assert db_file.exists()
    assert "did not exist" in caplog.text


def test_unwritable_database_is_fatal(tmp_path):
    blocker = tmp_path / "file"
    blocker.write_text("")
    with pytest.raises(ConfigError):
        # parent "directory" is a regular file
        validate_settings(make_settings(blocker / "db.sqlite"))
