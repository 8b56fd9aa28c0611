"""
FTGI — Neo4j Persistence

Signals and scores live on the factory node:

    (:Factory {factory_id})-[:HAS_REVIEW]->(:Review)
                           -[:HAS_WEBINAR_VOTE]->(:WebinarVote)
                           -[:HAS_EXPERT_REVIEW]->(:ExpertReview)
                           -[:HAS_AI_VERIFICATION]->(:AIVerification)   # at most one
                           -[:HAS_FTGI_SCORE]->(:FtgiScore)             # exactly one once scored

The score node is overwritten with a single `SET s = $props`, so a failed
write leaves the previous record in place. Datetimes are stored as ISO
strings. Every driver error surfaces as PersistenceError.

Dependencies: neo4j >= 5.17.0
"""
from typing import Optional, Dict, Any, List, Callable

import structlog
from neo4j.exceptions import Neo4jError, DriverError

from ftgi.compute.stores import SignalStore, ScoreStore, PersistenceError, new_id
from ftgi.db.neo4j import get_session
from ftgi.trust.engine import FactoryScoreRecord
from ftgi.trust.signals import (
    Review,
    WebinarVote,
    ExpertReview,
    AIVerification,
    signal_to_dict,
    signal_from_dict,
)

logger = structlog.get_logger()


class _Neo4jStore:
    def __init__(self, session_factory: Callable = get_session):
        self._session_factory = session_factory

    def _run(self, op: str, query: str, **params) -> List[Dict[str, Any]]:
        """Run one statement; rows come back as the dict aliased `n`."""
        try:
            with self._session_factory() as session:
                return [dict(row["n"]) for row in session.run(query, **params)]
        except (Neo4jError, DriverError) as e:
            logger.error("ftgi_store_failed", op=op,
                         factory_id=params.get("factory_id"), error=str(e))
            raise PersistenceError(f"{op} failed: {e}") from e


class Neo4jSignalStore(_Neo4jStore, SignalStore):

    def list_reviews(self, factory_id: int) -> List[Review]:
        rows = self._run("list_reviews", """
            MATCH (:Factory {factory_id: $factory_id})-[:HAS_REVIEW]->(r:Review)
            RETURN r {.*} AS n
            ORDER BY r.created_at
        """, factory_id=factory_id)
        return [signal_from_dict(Review, row) for row in rows]

    def list_webinar_votes(self, factory_id: int) -> List[WebinarVote]:
        rows = self._run("list_webinar_votes", """
            MATCH (:Factory {factory_id: $factory_id})-[:HAS_WEBINAR_VOTE]->(v:WebinarVote)
            RETURN v {.*} AS n
            ORDER BY v.created_at
        """, factory_id=factory_id)
        return [signal_from_dict(WebinarVote, row) for row in rows]

    def list_expert_reviews(self, factory_id: int) -> List[ExpertReview]:
        rows = self._run("list_expert_reviews", """
            MATCH (:Factory {factory_id: $factory_id})-[:HAS_EXPERT_REVIEW]->(r:ExpertReview)
            RETURN r {.*} AS n
            ORDER BY r.created_at
        """, factory_id=factory_id)
        return [signal_from_dict(ExpertReview, row) for row in rows]

    def list_published_expert_reviews(self, factory_id: int) -> List[ExpertReview]:
        rows = self._run("list_published_expert_reviews", """
            MATCH (:Factory {factory_id: $factory_id})-[:HAS_EXPERT_REVIEW]->(r:ExpertReview)
            WHERE r.is_published = true
            RETURN r {.*} AS n
            ORDER BY r.created_at
        """, factory_id=factory_id)
        return [signal_from_dict(ExpertReview, row) for row in rows]

    def get_ai_verification(self, factory_id: int) -> Optional[AIVerification]:
        rows = self._run("get_ai_verification", """
            MATCH (:Factory {factory_id: $factory_id})-[:HAS_AI_VERIFICATION]->(v:AIVerification)
            RETURN v {.*} AS n
            LIMIT 1
        """, factory_id=factory_id)
        return signal_from_dict(AIVerification, rows[0]) if rows else None

    def add_review(self, review: Review) -> Review:
        if review.review_id is None:
            review = signal_from_dict(Review, {**signal_to_dict(review), "review_id": new_id("rev")})
        self._run("add_review", """
            MERGE (f:Factory {factory_id: $factory_id})
            CREATE (f)-[:HAS_REVIEW]->(r:Review)
            SET r = $props
            RETURN r {.*} AS n
        """, factory_id=review.factory_id, props=signal_to_dict(review))
        logger.info("review_stored", factory_id=review.factory_id, review_id=review.review_id)
        return review

    def add_webinar_vote(self, vote: WebinarVote) -> WebinarVote:
        if vote.vote_id is None:
            vote = signal_from_dict(WebinarVote, {**signal_to_dict(vote), "vote_id": new_id("vote")})
        self._run("add_webinar_vote", """
            MERGE (f:Factory {factory_id: $factory_id})
            CREATE (f)-[:HAS_WEBINAR_VOTE]->(v:WebinarVote)
            SET v = $props
            RETURN v {.*} AS n
        """, factory_id=vote.factory_id, props=signal_to_dict(vote))
        logger.info("webinar_vote_stored", factory_id=vote.factory_id, vote_id=vote.vote_id)
        return vote

    def add_expert_review(self, review: ExpertReview) -> ExpertReview:
        if review.review_id is None:
            review = signal_from_dict(ExpertReview, {**signal_to_dict(review), "review_id": new_id("exp")})
        self._run("add_expert_review", """
            MERGE (f:Factory {factory_id: $factory_id})
            CREATE (f)-[:HAS_EXPERT_REVIEW]->(r:ExpertReview)
            SET r = $props
            RETURN r {.*} AS n
        """, factory_id=review.factory_id, props=signal_to_dict(review))
        logger.info("expert_review_stored", factory_id=review.factory_id,
                    review_id=review.review_id, published=review.is_published)
        return review

    def publish_expert_review(self, factory_id: int, review_id: str) -> Optional[ExpertReview]:
        rows = self._run("publish_expert_review", """
            MATCH (:Factory {factory_id: $factory_id})-[:HAS_EXPERT_REVIEW]->(r:ExpertReview {review_id: $review_id})
            SET r.is_published = true
            RETURN r {.*} AS n
        """, factory_id=factory_id, review_id=review_id)
        return signal_from_dict(ExpertReview, rows[0]) if rows else None

    def put_ai_verification(self, verification: AIVerification) -> AIVerification:
        self._run("put_ai_verification", """
            MERGE (f:Factory {factory_id: $factory_id})
            MERGE (f)-[:HAS_AI_VERIFICATION]->(v:AIVerification)
            SET v = $props
            RETURN v {.*} AS n
        """, factory_id=verification.factory_id, props=signal_to_dict(verification))
        logger.info("ai_verification_stored", factory_id=verification.factory_id)
        return verification


class Neo4jScoreStore(_Neo4jStore, ScoreStore):

    def get(self, factory_id: int) -> Optional[FactoryScoreRecord]:
        rows = self._run("get_score", """
            MATCH (:Factory {factory_id: $factory_id})-[:HAS_FTGI_SCORE]->(s:FtgiScore)
            RETURN s {.*} AS n
            LIMIT 1
        """, factory_id=factory_id)
        return FactoryScoreRecord.from_storage(rows[0]) if rows else None

    def save(self, record: FactoryScoreRecord) -> None:
        self._run("save_score", """
            MERGE (f:Factory {factory_id: $factory_id})
            MERGE (f)-[:HAS_FTGI_SCORE]->(s:FtgiScore)
            SET s = $props
            RETURN s {.*} AS n
        """, factory_id=record.factory_id, props=record.to_storage())
        logger.info("ftgi_score_persisted", factory_id=record.factory_id,
                    total_score=record.total_score)

    def top(
        self,
        limit: int = 50,
        min_score: Optional[float] = None,
        below: Optional[float] = None,
    ) -> List[FactoryScoreRecord]:
        rows = self._run("top_scores", """
            MATCH (s:FtgiScore)
            WHERE ($min_score IS NULL OR s.total_score >= $min_score)
              AND ($below IS NULL OR s.total_score < $below)
            RETURN s {.*} AS n
            ORDER BY s.total_score DESC, s.factory_id ASC
            LIMIT $limit
        """, limit=limit, min_score=min_score, below=below)
        return [FactoryScoreRecord.from_storage(row) for row in rows]
