"""
Tests for `config.py`.
"""

from __future__ import annotations

from decimal import Decimal

import pytest

from config import Settings, load_settings
from domain.lifecycle import RejectionPolicy

_VARIABLES = (
    "LEAD_STORE_BACKEND",
    "SUPABASE_URL",
    "SUPABASE_KEY",
    "LOG_LEVEL",
    "COMMISSION_AGENCY_RATE",
    "COMMISSION_SPOTTER_SHARE",
    "LEAD_REJECTION_POLICY",
    "NOTIFICATION_MAX_ATTEMPTS",
    "NOTIFICATION_RETRY_BASE_DELAY",
    "NOTIFICATION_WORKERS",
    "CORS_ORIGINS",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in _VARIABLES:
        monkeypatch.delenv(name, raising=False)


def test_defaults() -> None:
    settings = load_settings()

    assert settings.lead_store_backend == "supabase"
    assert settings.uses_supabase
    assert settings.commission_agency_rate == Decimal("0.05")
    assert settings.commission_spotter_share == Decimal("0.10")
    assert settings.rejection_policy == RejectionPolicy.CLOSE
    assert settings.notification_max_attempts == 3
    assert settings.notification_workers == 4
    assert settings.cors_origins == ("*",)


def test_values_from_environment(monkeypatch) -> None:
    monkeypatch.setenv("LEAD_STORE_BACKEND", "Memory")
    monkeypatch.setenv("LEAD_REJECTION_POLICY", "reopen")
    monkeypatch.setenv("COMMISSION_AGENCY_RATE", "0.025")
    monkeypatch.setenv("NOTIFICATION_WORKERS", "0")
    monkeypatch.setenv("CORS_ORIGINS", "https://app.example.com, https://admin.example.com")
    monkeypatch.setenv("LOG_LEVEL", "debug")

    settings = load_settings()

    assert settings.lead_store_backend == "memory"
    assert not settings.uses_supabase
    assert settings.rejection_policy == RejectionPolicy.REOPEN
    assert settings.commission_agency_rate == Decimal("0.025")
    assert settings.notification_workers == 0
    assert settings.cors_origins == ("https://app.example.com", "https://admin.example.com")
    assert settings.log_level == "DEBUG"


@pytest.mark.parametrize(
    "name,value",
    [
        ("LEAD_STORE_BACKEND", "postgres"),
        ("LEAD_REJECTION_POLICY", "ignore"),
        ("COMMISSION_AGENCY_RATE", "five percent"),
        ("COMMISSION_SPOTTER_SHARE", "1.5"),
        ("NOTIFICATION_MAX_ATTEMPTS", "0"),
        ("NOTIFICATION_WORKERS", "-1"),
        ("NOTIFICATION_RETRY_BASE_DELAY", "soon"),
    ],
)
def test_invalid_values_raise(monkeypatch, name: str, value: str) -> None:
    monkeypatch.setenv(name, value)

    with pytest.raises(ValueError):
        load_settings()


def test_settings_can_be_built_directly() -> None:
    settings = Settings(lead_store_backend="memory", notification_workers=0)

    assert not settings.uses_supabase
