"""Memory stores, Neo4j stores against a fake session, and the Redis cache."""
import json
from contextlib import contextmanager

import pytest
from neo4j.exceptions import ServiceUnavailable

from ftgi.compute.cache import ScoreCache
from ftgi.compute.persistence import Neo4jSignalStore, Neo4jScoreStore
from ftgi.compute.stores import MemorySignalStore, MemoryScoreStore, PersistenceError
from ftgi.trust.engine import compute_factory_score
from ftgi.trust.signals import AIVerification, FactorySignals, signal_to_dict

from tests.helpers import FIXED_NOW, FakeRedisClient, make_review, make_vote, make_expert


def _record(factory_id=1, stars=4):
    signals = FactorySignals(factory_id=factory_id, reviews=[make_review(factory_id, stars=stars)])
    return compute_factory_score(signals, 0.6, FIXED_NOW)


# ── Memory stores ─────────────────────────────────

def test_memory_store_assigns_ids_and_lists_per_factory():
    store = MemorySignalStore()
    review = store.add_review(make_review(1))
    vote = store.add_webinar_vote(make_vote(1, value=70))
    store.add_review(make_review(2))

    assert review.review_id.startswith("rev_")
    assert vote.vote_id.startswith("vote_")
    assert store.list_reviews(1) == [review]
    assert store.list_webinar_votes(2) == []


def test_memory_store_snapshot_only_published_experts():
    store = MemorySignalStore()
    published = store.add_expert_review(make_expert(1, score=70))
    draft = store.add_expert_review(make_expert(1, score=10, published=False))
    store.put_ai_verification(AIVerification(factory_id=1, verification_score=80))

    snapshot = store.snapshot(1)
    assert snapshot.expert_reviews == [published]
    assert snapshot.ai_verification.verification_score == 80
    assert len(store.list_expert_reviews(1)) == 2

    store.publish_expert_review(1, draft.review_id)
    assert len(store.snapshot(1).expert_reviews) == 2


def test_memory_verification_is_replaced():
    store = MemorySignalStore()
    store.put_ai_verification(AIVerification(factory_id=1, verification_score=40))
    store.put_ai_verification(AIVerification(factory_id=1, verification_score=90))
    assert store.get_ai_verification(1).verification_score == 90


def test_memory_score_store_overwrites():
    store = MemoryScoreStore()
    store.save(_record(1, stars=2))
    store.save(_record(1, stars=5))
    assert store.get(1).score_from_reviews == 100.0
    assert len(store.top()) == 1


def test_memory_score_store_top_range():
    store = MemoryScoreStore()
    for factory_id, stars in ((1, 5), (2, 3), (3, 1)):
        store.save(_record(factory_id, stars))
    ordered = store.top()
    assert [r.factory_id for r in ordered] == [1, 2, 3]
    middle = store.top(min_score=ordered[1].total_score, below=ordered[0].total_score)
    assert [r.factory_id for r in middle] == [2]


# ── Neo4j stores ──────────────────────────────────

class FakeSession:
    def __init__(self, rows=None, error=None):
        self.rows = rows or []
        self.error = error
        self.calls = []

    def run(self, query, **params):
        self.calls.append((query, params))
        if self.error:
            raise self.error
        return [{"n": row} for row in self.rows]


def _factory(session):
    @contextmanager
    def get_session():
        yield session
    return get_session


def test_neo4j_score_store_writes_single_set():
    session = FakeSession()
    store = Neo4jScoreStore(session_factory=_factory(session))
    record = _record(4)
    store.save(record)

    query, params = session.calls[0]
    assert "SET s = $props" in query
    assert "HAS_FTGI_SCORE" in query
    assert params["factory_id"] == 4
    assert params["props"]["total_score"] == record.total_score
    assert params["props"]["last_computed_at"] == FIXED_NOW.isoformat()


def test_neo4j_score_store_reads_record():
    record = _record(4)
    store = Neo4jScoreStore(session_factory=_factory(FakeSession(rows=[record.to_storage()])))
    assert store.get(4) == record


def test_neo4j_missing_record_is_none():
    store = Neo4jScoreStore(session_factory=_factory(FakeSession(rows=[])))
    assert store.get(4) is None


def test_neo4j_failure_raises_persistence_error():
    session = FakeSession(error=ServiceUnavailable("connection refused"))
    store = Neo4jScoreStore(session_factory=_factory(session))
    with pytest.raises(PersistenceError):
        store.save(_record(4))
    with pytest.raises(PersistenceError):
        store.get(4)


def test_neo4j_signal_store_round_trips_reviews():
    review = make_review(9, stars=3, review_id="rev_abc")
    session = FakeSession(rows=[signal_to_dict(review)])
    store = Neo4jSignalStore(session_factory=_factory(session))

    assert store.list_reviews(9) == [review]
    assert session.calls[0][1] == {"factory_id": 9}


def test_neo4j_signal_store_add_assigns_id():
    session = FakeSession()
    store = Neo4jSignalStore(session_factory=_factory(session))
    stored = store.add_review(make_review(9))
    assert stored.review_id.startswith("rev_")
    assert session.calls[0][1]["props"]["review_id"] == stored.review_id


def test_neo4j_signal_read_failure():
    session = FakeSession(error=ServiceUnavailable("down"))
    store = Neo4jSignalStore(session_factory=_factory(session))
    with pytest.raises(PersistenceError):
        store.snapshot(9)


# ── Cache ─────────────────────────────────────────

def test_cache_set_get_invalidate():
    client = FakeRedisClient()
    cache = ScoreCache(client=client, ttl=60)
    record = _record(3)

    assert cache.get(3) is None
    assert cache.set(record)
    assert json.loads(client.data["ftgi:score:3"])["factory_id"] == 3
    assert cache.get(3) == record
    assert cache.invalidate(3)
    assert cache.get(3) is None


def test_cache_failures_are_not_fatal():
    cache = ScoreCache(client=FakeRedisClient(fail=True))
    assert cache.get(3) is None
    assert cache.set(_record(3)) is False
    assert cache.invalidate(3) is False


def test_corrupt_cache_entry_is_dropped():
    client = FakeRedisClient()
    client.data["ftgi:score:3"] = "{not json"
    cache = ScoreCache(client=client)
    assert cache.get(3) is None
    assert "ftgi:score:3" not in client.data


def test_cache_add_does_not_overwrite():
    client = FakeRedisClient()
    cache = ScoreCache(client=client)
    fresh = _record(3, stars=5)
    stale = _record(3, stars=2)

    assert cache.set(fresh)
    assert cache.add(stale) is False
    assert cache.get(3) == fresh

    cache.invalidate(3)
    assert cache.add(stale)
    assert cache.get(3) == stale
