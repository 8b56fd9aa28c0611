"""
FTGI — Compute Pipeline

Every score goes through the same path:

    Signal write → [Cache invalidate] → Snapshot → Score → Persist → Cache → Record

The pipeline handles:
    - Full recompute from the current signal set (never patches a record)
    - Reading the AI coefficient fresh on every recompute
    - Read-through caching of records
    - Keeping the last-known-good record when the store fails

Failure model:
    If the signal read fails  → PersistenceError, previous record untouched.
    If the record write fails → PersistenceError, previous record untouched.
    If Redis is down          → reads go to the store, nothing else changes.
"""
from datetime import datetime
from typing import Optional, Dict, Any, List, Callable

import structlog

from ftgi.compute.cache import ScoreCache
from ftgi.compute.stores import (
    SignalStore,
    ScoreStore,
    MemorySignalStore,
    MemoryScoreStore,
)
from ftgi.config import current_ai_coefficient, get_settings
from ftgi.trust.engine import (
    CertLevel,
    FactoryScoreRecord,
    cert_level_bounds,
    compute_factory_score,
)
from ftgi.trust.signals import (
    Review,
    WebinarVote,
    ExpertReview,
    AIVerification,
    utcnow,
)

logger = structlog.get_logger()

MAX_LEADERBOARD = 500


class FactoryScorePipeline:
    """
    Wires a signal store, a score store and an optional cache around the pure engine.

    Usage:
        pipeline = FactoryScorePipeline(MemorySignalStore(), MemoryScoreStore())
        pipeline.submit_review(Review(factory_id=7, rating_overall=5, ...))
        record = pipeline.get_factory_score(7)
    """

    def __init__(
        self,
        signals: SignalStore,
        scores: ScoreStore,
        cache: Optional[ScoreCache] = None,
        coefficient: Callable[[], float] = current_ai_coefficient,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.signals = signals
        self.scores = scores
        self.cache = cache
        self._coefficient = coefficient
        self._clock = clock

    # ── Recompute ─────────────────────────────────

    def recompute_factory_score(self, factory_id: int) -> FactoryScoreRecord:
        """
        Re-read every signal, rescore from scratch and overwrite the record.
        Raises PersistenceError or ConfigError; the stored record is then unchanged.
        """
        if self.cache:
            self.cache.invalidate(factory_id)

        snapshot = self.signals.snapshot(factory_id)
        ai_coefficient = self._coefficient()
        record = compute_factory_score(snapshot, ai_coefficient, computed_at=self._clock())

        self.scores.save(record)

        if self.cache:
            self.cache.set(record)

        logger.info("ftgi_score_computed",
                    factory_id=factory_id,
                    total_score=record.total_score,
                    human_raw=record.human_raw_score,
                    ai_raw=record.ai_raw_score,
                    ai_coefficient=ai_coefficient,
                    reviews=record.review_count,
                    votes=record.webinar_vote_count,
                    experts=record.expert_review_count)
        return record

    def try_recompute(self, factory_id: int) -> Optional[FactoryScoreRecord]:
        """Recompute after a signal write. The signal is already stored, so failure is logged, not raised."""
        try:
            return self.recompute_factory_score(factory_id)
        except Exception as e:
            logger.error("ftgi_recompute_failed", factory_id=factory_id,
                         error=str(e), type=type(e).__name__)
            return None

    # ── Reads ─────────────────────────────────────

    def get_factory_score(self, factory_id: int) -> Optional[FactoryScoreRecord]:
        """Latest record, or None if the factory was never scored. May lag a just-written signal."""
        if self.cache:
            cached = self.cache.get(factory_id)
            if cached is not None:
                return cached

        record = self.scores.get(factory_id)
        if record is not None and self.cache:
            self.cache.add(record)
        return record

    def leaderboard(
        self,
        limit: int = 50,
        min_score: Optional[float] = None,
        cert_level: Optional[CertLevel] = None,
    ) -> List[Dict[str, Any]]:
        limit = max(1, min(limit, MAX_LEADERBOARD))
        low, below = min_score, None
        if cert_level is not None:
            floor, below = cert_level_bounds(CertLevel(cert_level))
            low = floor if low is None else max(low, floor)

        records = self.scores.top(limit=limit, min_score=low, below=below)
        return [
            {"rank": i, **record.to_dict()}
            for i, record in enumerate(records, start=1)
        ]

    # ── Signal writes ─────────────────────────────

    def submit_review(self, review: Review, recompute: bool = True) -> Review:
        stored = self.signals.add_review(review)
        logger.info("review_submitted", factory_id=stored.factory_id,
                    review_id=stored.review_id, verified=stored.is_verified_purchase)
        if recompute:
            self.try_recompute(stored.factory_id)
        return stored

    def cast_webinar_vote(self, vote: WebinarVote, recompute: bool = True) -> WebinarVote:
        stored = self.signals.add_webinar_vote(vote)
        logger.info("webinar_vote_cast", factory_id=stored.factory_id, vote_id=stored.vote_id)
        if recompute:
            self.try_recompute(stored.factory_id)
        return stored

    def submit_expert_review(self, review: ExpertReview, recompute: bool = True) -> ExpertReview:
        stored = self.signals.add_expert_review(review)
        logger.info("expert_review_submitted", factory_id=stored.factory_id,
                    review_id=stored.review_id, published=stored.is_published)
        # Unpublished reviews don't move the score
        if recompute and stored.is_published:
            self.try_recompute(stored.factory_id)
        return stored

    def publish_expert_review(
        self, factory_id: int, review_id: str, recompute: bool = True,
    ) -> Optional[ExpertReview]:
        published = self.signals.publish_expert_review(factory_id, review_id)
        if published is None:
            logger.warning("expert_review_not_found", factory_id=factory_id, review_id=review_id)
            return None
        logger.info("expert_review_published", factory_id=factory_id, review_id=review_id)
        if recompute:
            self.try_recompute(factory_id)
        return published

    def refresh_ai_verification(self, verification: AIVerification, recompute: bool = True) -> AIVerification:
        stored = self.signals.put_ai_verification(verification)
        logger.info("ai_verification_refreshed", factory_id=stored.factory_id)
        if recompute:
            self.try_recompute(stored.factory_id)
        return stored

    def status(self) -> Dict[str, Any]:
        return {
            "signal_store": type(self.signals).__name__,
            "score_store": type(self.scores).__name__,
            "cache": self.cache.stats() if self.cache else {"enabled": False},
        }


# =============================================
# PROCESS-WIDE PIPELINE
# =============================================

_pipeline: Optional[FactoryScorePipeline] = None


def get_pipeline() -> FactoryScorePipeline:
    """Singleton pipeline built from settings (initialized on first use)."""
    global _pipeline
    if _pipeline is None:
        settings = get_settings()
        if settings.STORE_BACKEND == "neo4j":
            from ftgi.compute.persistence import Neo4jSignalStore, Neo4jScoreStore
            signals, scores = Neo4jSignalStore(), Neo4jScoreStore()
        else:
            signals, scores = MemorySignalStore(), MemoryScoreStore()

        cache = ScoreCache(settings.REDIS_URL, ttl=settings.CACHE_TTL) if settings.CACHE_ENABLED else None
        _pipeline = FactoryScorePipeline(signals, scores, cache=cache)
        logger.info("ftgi_pipeline_initialized",
                    store=settings.STORE_BACKEND,
                    cache_enabled=cache is not None,
                    ai_coefficient=settings.AI_COEFFICIENT)
    return _pipeline


def set_pipeline(pipeline: Optional[FactoryScorePipeline]) -> None:
    """Swap the process-wide pipeline (tests, embedding)."""
    global _pipeline
    _pipeline = pipeline


def recompute_factory_score(factory_id: int) -> FactoryScoreRecord:
    return get_pipeline().recompute_factory_score(factory_id)


def get_factory_score(factory_id: int) -> Optional[FactoryScoreRecord]:
    return get_pipeline().get_factory_score(factory_id)


def shutdown():
    """Close the cache connection pool."""
    global _pipeline
    if _pipeline is not None and _pipeline.cache:
        _pipeline.cache.close()
    _pipeline = None
