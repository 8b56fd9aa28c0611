"""
FTGI — Configuration

All settings load from environment variables with safe defaults for development.
In production, set FTGI_ENV=production to enforce required values.

The AI/Human split coefficient is the one setting that is never cached:
current_ai_coefficient() re-reads FTGI_AI_COEFFICIENT on every call, so a
change applies to the next recompute without a restart.
"""
import os
from functools import lru_cache
from typing import List

from dotenv import load_dotenv

from ftgi.trust.engine import check_weight_sums, validate_coefficient

load_dotenv()

DEFAULT_AI_COEFFICIENT = 0.6

STORE_BACKENDS = ("memory", "neo4j")
RECOMPUTE_MODES = ("inline", "queue")


class ConfigError(ValueError):
    """Invalid configuration. Raised at settings load, never mid-computation."""


def _parse_coefficient(raw) -> float:
    if raw is None or str(raw).strip() == "":
        return DEFAULT_AI_COEFFICIENT
    try:
        return validate_coefficient(float(raw))
    except ValueError as e:
        raise ConfigError(f"FTGI_AI_COEFFICIENT={raw!r}: {e}") from e


def current_ai_coefficient() -> float:
    """The AI share for the next mix, read fresh from the environment."""
    return _parse_coefficient(os.getenv("FTGI_AI_COEFFICIENT"))


class Settings:
    def __init__(self):
        self.ENVIRONMENT = os.getenv("FTGI_ENV", "development")

        # === Database ===
        self.NEO4J_URI = os.getenv("NEO4J_URI", "bolt://localhost:7687")
        self.NEO4J_USER = os.getenv("NEO4J_USER", "neo4j")
        self.NEO4J_PASSWORD = os.getenv("NEO4J_PASSWORD", "ftgi_dev_password")
        self.REDIS_URL = os.getenv("REDIS_URL", "redis://localhost:6379/0")

        # === Scoring ===
        self.AI_COEFFICIENT = current_ai_coefficient()
        try:
            check_weight_sums()
        except ValueError as e:
            raise ConfigError(str(e)) from e

        # === Backends ===
        self.STORE_BACKEND = os.getenv("FTGI_STORE_BACKEND", "memory").lower()
        if self.STORE_BACKEND not in STORE_BACKENDS:
            raise ConfigError(f"FTGI_STORE_BACKEND must be one of {STORE_BACKENDS}, got {self.STORE_BACKEND!r}")

        self.RECOMPUTE_MODE = os.getenv("FTGI_RECOMPUTE_MODE", "inline").lower()
        if self.RECOMPUTE_MODE not in RECOMPUTE_MODES:
            raise ConfigError(f"FTGI_RECOMPUTE_MODE must be one of {RECOMPUTE_MODES}, got {self.RECOMPUTE_MODE!r}")
        if self.RECOMPUTE_MODE == "queue" and self.STORE_BACKEND == "memory":
            # worker processes would each see their own empty memory store
            raise ConfigError("FTGI_RECOMPUTE_MODE=queue requires FTGI_STORE_BACKEND=neo4j")

        self.CACHE_ENABLED = os.getenv("FTGI_CACHE_ENABLED", "true").lower() in ("1", "true", "yes")
        try:
            self.CACHE_TTL = int(os.getenv("FTGI_CACHE_TTL", "3600"))
        except ValueError as e:
            raise ConfigError(f"FTGI_CACHE_TTL must be an integer: {e}") from e

        # === Worker ===
        self.WORKER_MAX_JOBS = int(os.getenv("FTGI_WORKER_MAX_JOBS", "10"))
        self.WORKER_JOB_TIMEOUT = int(os.getenv("FTGI_WORKER_JOB_TIMEOUT", "60"))

        # === Application ===
        self.CORS_ORIGINS: List[str] = [
            o.strip()
            for o in os.getenv("FTGI_CORS_ORIGINS", "http://localhost:3000").split(",")
            if o.strip()
        ]

        self.ADMIN_KEY = os.getenv("FTGI_ADMIN_KEY", "")
        if not self.ADMIN_KEY:
            if self.is_production:
                raise ConfigError("FTGI_ADMIN_KEY must be set in production. Add it to .env")
            self.ADMIN_KEY = "admin_dev_key"

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT == "production"


@lru_cache()
def get_settings() -> Settings:
    return Settings()
