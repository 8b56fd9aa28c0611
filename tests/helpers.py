"""Signal builders and a fake Redis client shared across the test modules."""
from datetime import datetime, timezone

import redis

from ftgi.trust.signals import Review, WebinarVote, ExpertReview

FIXED_NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def make_review(factory_id=1, stars=5, verified=False, **overrides):
    values = dict(
        factory_id=factory_id,
        rating_overall=stars,
        rating_communication=stars,
        rating_quality=stars,
        rating_lead_time=stars,
        rating_service=stars,
        is_verified_purchase=verified,
    )
    values.update(overrides)
    return Review(**values)


def make_vote(factory_id=1, value=50.0, **overrides):
    return WebinarVote(factory_id=factory_id, value=value, **overrides)


def make_expert(factory_id=1, score=80.0, published=True, **overrides):
    values = dict(
        factory_id=factory_id,
        score_innovation=score,
        score_management=score,
        score_potential=score,
        summary="Solid tooling, clear QA process, strong export record.",
        is_published=published,
    )
    values.update(overrides)
    return ExpertReview(**values)


class FakeRedisClient:
    """The handful of redis.Redis calls ScoreCache makes, backed by a dict."""

    def __init__(self, fail=False):
        self.data = {}
        self.fail = fail

    def _check(self):
        if self.fail:
            raise redis.ConnectionError("redis down")

    def get(self, key):
        self._check()
        return self.data.get(key)

    def set(self, key, value, ex=None, nx=False):
        self._check()
        if nx and key in self.data:
            return None
        self.data[key] = value
        return True

    def setex(self, key, ttl, value):
        self._check()
        self.data[key] = value

    def delete(self, key):
        self._check()
        return 1 if self.data.pop(key, None) is not None else 0
