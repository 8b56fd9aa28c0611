"""Settings validation and the live coefficient read."""
import pytest

from ftgi.config import (
    DEFAULT_AI_COEFFICIENT,
    ConfigError,
    Settings,
    current_ai_coefficient,
    get_settings,
)
from ftgi.trust.engine import HUMAN_CHANNEL_WEIGHTS


def test_defaults():
    settings = Settings()
    assert settings.AI_COEFFICIENT == DEFAULT_AI_COEFFICIENT == 0.6
    assert settings.STORE_BACKEND == "memory"
    assert settings.RECOMPUTE_MODE == "inline"
    assert settings.ADMIN_KEY == "admin_dev_key"
    assert not settings.is_production


def test_coefficient_from_env(monkeypatch):
    monkeypatch.setenv("FTGI_AI_COEFFICIENT", "0.4")
    assert current_ai_coefficient() == 0.4
    assert Settings().AI_COEFFICIENT == 0.4


def test_blank_coefficient_uses_default(monkeypatch):
    monkeypatch.setenv("FTGI_AI_COEFFICIENT", "  ")
    assert current_ai_coefficient() == 0.6


@pytest.mark.parametrize("raw", ["0", "1", "1.5", "-0.2", "abc", "nan"])
def test_invalid_coefficient_fails_at_load(monkeypatch, raw):
    monkeypatch.setenv("FTGI_AI_COEFFICIENT", raw)
    with pytest.raises(ConfigError):
        Settings()
    with pytest.raises(ConfigError):
        current_ai_coefficient()


def test_coefficient_is_not_cached(monkeypatch):
    settings = get_settings()
    monkeypatch.setenv("FTGI_AI_COEFFICIENT", "0.3")
    assert current_ai_coefficient() == 0.3
    assert get_settings() is settings


def test_broken_weights_fail_at_load(monkeypatch):
    monkeypatch.setitem(HUMAN_CHANNEL_WEIGHTS, "reviews", 0.6)
    with pytest.raises(ConfigError):
        Settings()


def test_production_requires_admin_key(monkeypatch):
    monkeypatch.setenv("FTGI_ENV", "production")
    with pytest.raises(ConfigError):
        Settings()
    monkeypatch.setenv("FTGI_ADMIN_KEY", "s3cret")
    assert Settings().ADMIN_KEY == "s3cret"


@pytest.mark.parametrize("var,value", [
    ("FTGI_STORE_BACKEND", "postgres"),
    ("FTGI_RECOMPUTE_MODE", "later"),
    ("FTGI_RECOMPUTE_MODE", "queue"),
    ("FTGI_CACHE_TTL", "an hour"),
])
def test_invalid_backend_settings(monkeypatch, var, value):
    monkeypatch.setenv(var, value)
    with pytest.raises(ConfigError):
        Settings()


def test_queue_mode_needs_shared_store(monkeypatch):
    monkeypatch.setenv("FTGI_RECOMPUTE_MODE", "queue")
    monkeypatch.setenv("FTGI_STORE_BACKEND", "neo4j")
    settings = Settings()
    assert settings.RECOMPUTE_MODE == "queue"
    assert settings.STORE_BACKEND == "neo4j"
