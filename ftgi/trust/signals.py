"""
FTGI — Raw Signal Input

Every signal the engine knows about a factory. Written by the signal
write paths (buyer reviews, webinar votes, expert panel, verification
refresh) and read back as one snapshot per recompute.
No scoring logic here.

Signals are immutable once created. Upstream validation is expected to
keep values in range, but nothing here enforces it: the aggregators
treat out-of-range values as malformed and skip them.
"""
from __future__ import annotations
from dataclasses import dataclass, field, fields, asdict
from datetime import datetime, timezone
from typing import Optional, Dict, Any, List, Tuple


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ── Signals ───────────────────────────────────────

@dataclass(frozen=True)
class Review:
    """A buyer's post-transaction review: five 1-5 star ratings."""
    factory_id: int
    rating_overall: Optional[float] = None
    rating_communication: Optional[float] = None
    rating_quality: Optional[float] = None
    rating_lead_time: Optional[float] = None
    rating_service: Optional[float] = None
    is_verified_purchase: bool = False
    comment: Optional[str] = None
    order_id: Optional[int] = None
    user_id: Optional[int] = None
    review_id: Optional[str] = None
    created_at: datetime = field(default_factory=utcnow)

    @property
    def ratings(self) -> Tuple[Optional[float], ...]:
        return (
            self.rating_overall,
            self.rating_communication,
            self.rating_quality,
            self.rating_lead_time,
            self.rating_service,
        )


@dataclass(frozen=True)
class WebinarVote:
    """A community member's 0-100 vote cast during or after a webinar."""
    factory_id: int
    value: Optional[float] = None
    webinar_id: Optional[int] = None
    user_id: Optional[int] = None
    vote_id: Optional[str] = None
    created_at: datetime = field(default_factory=utcnow)


@dataclass(frozen=True)
class ExpertReview:
    """An expert panel assessment. Only published reviews are scored."""
    factory_id: int
    score_innovation: Optional[float] = None
    score_management: Optional[float] = None
    score_potential: Optional[float] = None
    summary: str = ""
    expert_id: Optional[int] = None
    is_published: bool = True
    review_id: Optional[str] = None
    created_at: datetime = field(default_factory=utcnow)

    @property
    def scores(self) -> Tuple[Optional[float], ...]:
        return (self.score_innovation, self.score_management, self.score_potential)


@dataclass(frozen=True)
class AIVerification:
    """
    Output of the AI verification pipeline, consumed as given.
    None means "signal not yet available" and scores neutral.
    """
    factory_id: int
    verification_score: Optional[float] = None     # 0-100
    compliance_score: Optional[float] = None       # 0-100
    certification_count: Optional[int] = None
    dispute_rate: Optional[float] = None           # percent of orders disputed
    response_rate: Optional[float] = None          # percent, 0-100
    sample_conversion_rate: Optional[float] = None # percent, 0-100
    content_asset_count: Optional[int] = None      # reels, images, documents
    verified_at: datetime = field(default_factory=utcnow)


@dataclass(frozen=True)
class FactorySignals:
    """One consistent read of everything known about a factory."""
    factory_id: int
    reviews: List[Review] = field(default_factory=list)
    webinar_votes: List[WebinarVote] = field(default_factory=list)
    expert_reviews: List[ExpertReview] = field(default_factory=list)
    ai_verification: Optional[AIVerification] = None


# ── Aggregator output ─────────────────────────────

@dataclass(frozen=True)
class ChannelResult:
    """What every human channel reduces to: a 0-100 score and a sample count."""
    score: float
    count: int
    ignored: int = 0    # malformed signals skipped
    breakdown: Dict[str, float] = field(default_factory=dict)   # per-rating 0-100 means


# ── Serialization helpers ─────────────────────────

def signal_to_dict(signal: Any) -> Dict[str, Any]:
    """Dataclass signal → JSON-safe dict (datetimes as ISO strings)."""
    data = asdict(signal)
    for key, value in data.items():
        if isinstance(value, datetime):
            data[key] = value.isoformat()
    return data


def signal_from_dict(cls, data: Dict[str, Any]):
    """Inverse of signal_to_dict. Unknown keys are dropped."""
    known = {f.name for f in fields(cls)}
    kwargs = {k: v for k, v in data.items() if k in known}
    for key in ("created_at", "verified_at"):
        value = kwargs.get(key)
        if isinstance(value, str):
            kwargs[key] = datetime.fromisoformat(value)
        elif value is None:
            kwargs.pop(key, None)
    return cls(**kwargs)
