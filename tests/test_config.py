from __future__ import annotations

import pytest

from sla_tracker.config import get_config


def test_testing_config_from_env(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("ENV", "testing")
    monkeypatch.setenv("SLA_DUE_SOON_MINUTES", "5")
    monkeypatch.setenv("SLA_TICK_INTERVAL_MS", "10")
    monkeypatch.setenv("CORS_ORIGINS", "https://a.example, https://b.example")
    cfg = get_config()
    assert cfg.TESTING is True
    assert cfg.DUE_SOON_MS == 5 * 60 * 1000
    assert cfg.SLA_TICK_INTERVAL_MS == 50
    assert cfg.CORS_ORIGINS == ["https://a.example", "https://b.example"]


def test_invalid_fetch_mode_fails_fast(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("ENV", "testing")
    monkeypatch.setenv("LIVE_FETCH_MODE", "eventually")
    with pytest.raises(RuntimeError):
        get_config()


def test_production_rejects_wildcard_cors(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("ENV", "production")
    monkeypatch.setenv("BACKEND_BASE_URL", "https://hrms.example.com")
    monkeypatch.setenv("CORS_ORIGINS", "*")
    with pytest.raises(RuntimeError):
        get_config()
