"""Shared fixtures: in-memory pipeline, fixed clock, clean environment."""
import pytest

from ftgi.compute.pipeline import FactoryScorePipeline
from ftgi.compute.stores import (
    MemorySignalStore,
    MemoryScoreStore,
    PersistenceError,
)
from ftgi.config import get_settings
from tests.helpers import FIXED_NOW

_ENV_KEYS = (
    "FTGI_ENV",
    "FTGI_AI_COEFFICIENT",
    "FTGI_STORE_BACKEND",
    "FTGI_RECOMPUTE_MODE",
    "FTGI_ADMIN_KEY",
    "FTGI_CACHE_TTL",
)


class FailingScoreStore(MemoryScoreStore):
    """Memory store whose writes can be switched off."""

    def __init__(self):
        super().__init__()
        self.fail = False

    def save(self, record):
        if self.fail:
            raise PersistenceError("save_score failed: connection refused")
        super().save(record)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for key in _ENV_KEYS:
        monkeypatch.delenv(key, raising=False)
    monkeypatch.setenv("FTGI_CACHE_ENABLED", "false")
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def clock():
    return lambda: FIXED_NOW


@pytest.fixture
def score_store():
    return FailingScoreStore()


@pytest.fixture
def pipeline(score_store, clock):
    return FactoryScorePipeline(
        MemorySignalStore(),
        score_store,
        coefficient=lambda: 0.6,
        clock=clock,
    )
