"""
FTGI — Signal & Score Stores

Two narrow interfaces the pipeline talks to:

    SignalStore — every raw signal per factory, returned as full sets
    ScoreStore  — exactly one FactoryScoreRecord per factory

In-memory implementations live here (development default, tests).
Neo4j implementations live in ftgi.compute.persistence.
"""
import threading
import uuid
from abc import ABC, abstractmethod
from dataclasses import replace
from typing import Optional, Dict, List

from ftgi.trust.engine import FactoryScoreRecord
from ftgi.trust.signals import (
    Review,
    WebinarVote,
    ExpertReview,
    AIVerification,
    FactorySignals,
)


class PersistenceError(RuntimeError):
    """A read or write against the backing store failed. Nothing was changed."""


def new_id(prefix: str) -> str:
    return f"{prefix}_{uuid.uuid4().hex[:16]}"


# =============================================
# INTERFACES
# =============================================

class SignalStore(ABC):

    @abstractmethod
    def list_reviews(self, factory_id: int) -> List[Review]: ...

    @abstractmethod
    def list_webinar_votes(self, factory_id: int) -> List[WebinarVote]: ...

    @abstractmethod
    def list_expert_reviews(self, factory_id: int) -> List[ExpertReview]:
        """All expert reviews, published or not."""

    @abstractmethod
    def get_ai_verification(self, factory_id: int) -> Optional[AIVerification]: ...

    @abstractmethod
    def add_review(self, review: Review) -> Review: ...

    @abstractmethod
    def add_webinar_vote(self, vote: WebinarVote) -> WebinarVote: ...

    @abstractmethod
    def add_expert_review(self, review: ExpertReview) -> ExpertReview: ...

    @abstractmethod
    def publish_expert_review(self, factory_id: int, review_id: str) -> Optional[ExpertReview]:
        """Mark a review published. Returns None if it does not exist."""

    @abstractmethod
    def put_ai_verification(self, verification: AIVerification) -> AIVerification:
        """Replace the factory's verification record."""

    def list_published_expert_reviews(self, factory_id: int) -> List[ExpertReview]:
        return [r for r in self.list_expert_reviews(factory_id) if r.is_published]

    def snapshot(self, factory_id: int) -> FactorySignals:
        return FactorySignals(
            factory_id=factory_id,
            reviews=self.list_reviews(factory_id),
            webinar_votes=self.list_webinar_votes(factory_id),
            expert_reviews=self.list_published_expert_reviews(factory_id),
            ai_verification=self.get_ai_verification(factory_id),
        )


class ScoreStore(ABC):

    @abstractmethod
    def get(self, factory_id: int) -> Optional[FactoryScoreRecord]: ...

    @abstractmethod
    def save(self, record: FactoryScoreRecord) -> None:
        """Overwrite the factory's record in one step. Raises PersistenceError."""

    @abstractmethod
    def top(
        self,
        limit: int = 50,
        min_score: Optional[float] = None,
        below: Optional[float] = None,
    ) -> List[FactoryScoreRecord]:
        """Records ordered by total score, highest first, within [min_score, below)."""


# =============================================
# IN-MEMORY
# =============================================

class MemorySignalStore(SignalStore):
    """Thread-safe dict-backed signal store."""

    def __init__(self):
        self._lock = threading.Lock()
        self._reviews: Dict[int, List[Review]] = {}
        self._votes: Dict[int, List[WebinarVote]] = {}
        self._experts: Dict[int, List[ExpertReview]] = {}
        self._verifications: Dict[int, AIVerification] = {}

    def list_reviews(self, factory_id: int) -> List[Review]:
        with self._lock:
            return list(self._reviews.get(factory_id, []))

    def list_webinar_votes(self, factory_id: int) -> List[WebinarVote]:
        with self._lock:
            return list(self._votes.get(factory_id, []))

    def list_expert_reviews(self, factory_id: int) -> List[ExpertReview]:
        with self._lock:
            return list(self._experts.get(factory_id, []))

    def get_ai_verification(self, factory_id: int) -> Optional[AIVerification]:
        with self._lock:
            return self._verifications.get(factory_id)

    def add_review(self, review: Review) -> Review:
        if review.review_id is None:
            review = replace(review, review_id=new_id("rev"))
        with self._lock:
            self._reviews.setdefault(review.factory_id, []).append(review)
        return review

    def add_webinar_vote(self, vote: WebinarVote) -> WebinarVote:
        if vote.vote_id is None:
            vote = replace(vote, vote_id=new_id("vote"))
        with self._lock:
            self._votes.setdefault(vote.factory_id, []).append(vote)
        return vote

    def add_expert_review(self, review: ExpertReview) -> ExpertReview:
        if review.review_id is None:
            review = replace(review, review_id=new_id("exp"))
        with self._lock:
            self._experts.setdefault(review.factory_id, []).append(review)
        return review

    def publish_expert_review(self, factory_id: int, review_id: str) -> Optional[ExpertReview]:
        with self._lock:
            reviews = self._experts.get(factory_id, [])
            for i, review in enumerate(reviews):
                if review.review_id == review_id:
                    reviews[i] = replace(review, is_published=True)
                    return reviews[i]
        return None

    def put_ai_verification(self, verification: AIVerification) -> AIVerification:
        with self._lock:
            self._verifications[verification.factory_id] = verification
        return verification


class MemoryScoreStore(ScoreStore):
    """Thread-safe dict-backed score store. Records are immutable, so replace is atomic."""

    def __init__(self):
        self._lock = threading.Lock()
        self._records: Dict[int, FactoryScoreRecord] = {}

    def get(self, factory_id: int) -> Optional[FactoryScoreRecord]:
        with self._lock:
            return self._records.get(factory_id)

    def save(self, record: FactoryScoreRecord) -> None:
        with self._lock:
            self._records[record.factory_id] = record

    def top(
        self,
        limit: int = 50,
        min_score: Optional[float] = None,
        below: Optional[float] = None,
    ) -> List[FactoryScoreRecord]:
        with self._lock:
            records = list(self._records.values())
        if min_score is not None:
            records = [r for r in records if r.total_score >= min_score]
        if below is not None:
            records = [r for r in records if r.total_score < below]
        records.sort(key=lambda r: (-r.total_score, r.factory_id))
        return records[:limit]
