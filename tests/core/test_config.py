from __future__ import annotations

import pytest

from app.core.config import AppEnv, Settings, load_settings

# ---- valid values ----


def test_load_settings_defaults(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("APP_ENV", raising=False)
    monkeypatch.delenv("LOG_LEVEL", raising=False)
    settings = load_settings()
    assert settings.app_env == "dev"
    assert settings.log_level == "info"


def test_load_settings_respects_env_vars(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("APP_ENV", "prod")
    monkeypatch.setenv("CERTIFICATE_HASH_SECRET", "prod-secret")
    monkeypatch.setenv("LOG_LEVEL", "error")
    settings = load_settings()
    assert settings.app_env == "prod"
    assert settings.log_level == "error"


def test_load_settings_normalizes_case(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("APP_ENV", "PROD")
    monkeypatch.setenv("CERTIFICATE_HASH_SECRET", "prod-secret")
    monkeypatch.setenv("LOG_LEVEL", "DEBUG")
    settings = load_settings()
    assert settings.app_env == "prod"
    assert settings.log_level == "debug"


def test_load_settings_strips_whitespace(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("APP_ENV", "  test  ")
    monkeypatch.setenv("LOG_LEVEL", "  warning  ")
    settings = load_settings()
    assert settings.app_env == "test"
    assert settings.log_level == "warning"


# ---- invalid APP_ENV ----


def test_load_settings_rejects_invalid_app_env(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setenv("APP_ENV", "staging")
    monkeypatch.setenv("LOG_LEVEL", "info")
    with pytest.raises(ValueError, match="APP_ENV must be dev|test|prod"):
        load_settings()


def test_load_settings_rejects_empty_app_env(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setenv("APP_ENV", "")
    with pytest.raises(ValueError, match="APP_ENV must be dev|test|prod"):
        load_settings()


# ---- invalid LOG_LEVEL ----


def test_load_settings_rejects_invalid_log_level(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setenv("APP_ENV", "dev")
    monkeypatch.setenv("LOG_LEVEL", "verbose")
    with pytest.raises(ValueError, match="LOG_LEVEL must be debug|info|warning|error"):
        load_settings()


def test_load_settings_rejects_empty_log_level(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setenv("LOG_LEVEL", "")
    with pytest.raises(ValueError, match="LOG_LEVEL must be debug|info|warning|error"):
        load_settings()


# ---- compliance settings ----


def test_prod_refuses_dev_certificate_secret(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("APP_ENV", "prod")
    monkeypatch.delenv("CERTIFICATE_HASH_SECRET", raising=False)
    with pytest.raises(ValueError, match="CERTIFICATE_HASH_SECRET must be set"):
        load_settings()


def test_dev_falls_back_to_dev_secret(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("APP_ENV", "dev")
    monkeypatch.delenv("CERTIFICATE_HASH_SECRET", raising=False)
    assert load_settings().certificate_hash_secret


def test_compliance_defaults(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in (
        "CERTIFICATE_VALIDITY_DAYS",
        "CERTIFICATE_BASE_URL",
        "AUDIT_APPEND_RETRIES",
        "AUDIT_APPEND_BACKOFF_MS",
        "PROGRESS_MAX_MINUTES_PER_REPORT",
    ):
        monkeypatch.delenv(name, raising=False)
    settings = load_settings()
    assert settings.certificate_validity_days is None
    assert settings.certificate_base_url == "https://certificates.local"
    assert settings.audit_append_retries == 3
    assert settings.audit_append_backoff_ms == 50
    assert settings.progress_max_minutes_per_report == 240


def test_compliance_env_vars(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("CERTIFICATE_VALIDITY_DAYS", "365")
    monkeypatch.setenv("CERTIFICATE_BASE_URL", "https://certs.example.com/")
    monkeypatch.setenv("AUDIT_APPEND_RETRIES", "5")
    settings = load_settings()
    assert settings.certificate_validity_days == 365
    assert settings.certificate_base_url == "https://certs.example.com"
    assert settings.audit_append_retries == 5


@pytest.mark.parametrize(
    ("name", "value"),
    [
        ("AUDIT_APPEND_RETRIES", "0"),
        ("AUDIT_APPEND_RETRIES", "many"),
        ("PROGRESS_MAX_MINUTES_PER_REPORT", "0"),
        ("CERTIFICATE_VALIDITY_DAYS", "-1"),
        ("PORT", "0"),
    ],
)
def test_rejects_bad_integers(
    monkeypatch: pytest.MonkeyPatch, name: str, value: str
) -> None:
    monkeypatch.setenv(name, value)
    with pytest.raises(ValueError, match=name):
        load_settings()


# ---- Settings properties ----


def _make_settings(app_env: AppEnv = "dev") -> Settings:
    return Settings(  # type: ignore[arg-type]
        app_env=app_env,
        log_level="info",
        log_json=False,
        port=8000,
        database_url=None,
        certificate_hash_secret="s",
        certificate_base_url="https://certificates.local",
        certificate_validity_days=None,
        audit_append_retries=3,
        audit_append_backoff_ms=50,
        progress_max_minutes_per_report=240,
    )


def test_settings_is_dev() -> None:
    s = _make_settings("dev")
    assert s.is_dev is True
    assert s.is_test is False
    assert s.is_prod is False


def test_settings_is_test() -> None:
    s = _make_settings("test")
    assert s.is_dev is False
    assert s.is_test is True
    assert s.is_prod is False


def test_settings_is_prod() -> None:
    s = _make_settings("prod")
    assert s.is_dev is False
    assert s.is_test is False
    assert s.is_prod is True


def test_settings_is_frozen() -> None:
    s = _make_settings()
    with pytest.raises(AttributeError):
        s.app_env = "prod"  # type: ignore[misc]
