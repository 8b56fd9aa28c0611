"""
FTGI — Composite Trust Score Engine

Architecture:
    Human side — three channel aggregators, weighted 50/30/20
    AI side    — five dimensions from the AI verification record, weighted 20/30/25/15/10
    Mixer      — split coefficient a: total = ai_raw * a + human_raw * (1 - a)

    Reviews ──┐
    Votes   ──┼─► Human Raw (0-100) ──┐
    Experts ──┘                       ├─► Coefficient Mixer ─► Total (0-100)
    AI record ──► AI Raw (0-100) ─────┘

Every function here is pure: the same signal snapshot and coefficient always
produce the same record. No I/O, no clock reads except through computed_at.
"""
from __future__ import annotations
import json
import math
from dataclasses import dataclass, field, replace, asdict
from datetime import datetime
from enum import Enum
from typing import Optional, Dict, Any, List, Tuple

from ftgi.trust.aggregators import (
    NEUTRAL_SCORE,
    clamp,
    round1,
    rescale_rating,
    is_valid_review,
    aggregate_reviews,
    aggregate_webinar_votes,
    aggregate_expert_reviews,
)
from ftgi.trust.signals import (
    AIVerification,
    ChannelResult,
    FactorySignals,
    Review,
    utcnow,
)

ENGINE_VERSION = "1.0.0"


# ── Weights ───────────────────────────────────────

HUMAN_CHANNEL_WEIGHTS: Dict[str, float] = {
    "reviews":  0.50,   # buyer post-transaction reviews
    "webinars": 0.30,   # community webinar votes
    "experts":  0.20,   # expert panel
}

DIMENSION_WEIGHTS: Dict[str, float] = {
    "d1_trust":       0.20,
    "d2_fulfillment": 0.30,
    "d3_market":      0.25,
    "d4_ecosystem":   0.15,
    "d5_community":   0.10,
}

_D1_SUB_WEIGHTS = {"ai_verification": 0.4, "certifications": 0.3, "compliance": 0.3}
_D2_SUB_WEIGHTS = {"response_rate": 0.4, "sample_conversion": 0.3, "dispute_inverse": 0.3}
_D5_SUB_WEIGHTS = {"avg_rating": 0.6, "review_volume": 0.4}

_CERT_SATURATION = 5          # certifications for full marks
_CONTENT_SATURATION = 10      # content assets for full marks
_CONTENT_BASELINE = 40.0      # zero assets still scores this
_CONTENT_SPAN = 0.6
_REVIEW_VOLUME_SATURATION = 20
_DISPUTE_PENALTY_PER_POINT = 10
_DEFAULT_STARS = 3.0          # mid-scale when there are no reviews


def check_weight_sums() -> None:
    """Raise ValueError if either weight table does not sum to 1.0."""
    for name, table in (("human channel", HUMAN_CHANNEL_WEIGHTS), ("AI dimension", DIMENSION_WEIGHTS)):
        total = sum(table.values())
        if not math.isclose(total, 1.0, abs_tol=1e-9):
            raise ValueError(f"{name} weights must sum to 1.0, got {total}")


def validate_coefficient(ai_coefficient: float) -> float:
    """The AI share must be a real number strictly between 0 and 1."""
    if isinstance(ai_coefficient, bool) or not isinstance(ai_coefficient, (int, float)):
        raise ValueError(f"AI coefficient must be a number, got {ai_coefficient!r}")
    if not math.isfinite(ai_coefficient) or not 0 < ai_coefficient < 1:
        raise ValueError(f"AI coefficient must be in (0, 1), got {ai_coefficient}")
    return float(ai_coefficient)


# ── Certification levels ──────────────────────────

class CertLevel(str, Enum):
    PLATINUM = "platinum"
    GOLD     = "gold"
    SILVER   = "silver"
    BRONZE   = "bronze"
    PENDING  = "pending"


# Floor of each level, highest first
CERT_THRESHOLDS: List[Tuple[float, CertLevel]] = [
    (85, CertLevel.PLATINUM),
    (70, CertLevel.GOLD),
    (55, CertLevel.SILVER),
    (40, CertLevel.BRONZE),
    (0,  CertLevel.PENDING),
]


def cert_level(total_score: float) -> CertLevel:
    for floor, level in CERT_THRESHOLDS:
        if total_score >= floor:
            return level
    return CertLevel.PENDING


def cert_level_bounds(level: CertLevel) -> Tuple[float, Optional[float]]:
    """[low, high) total-score range of a level. high is None for the top level."""
    ceiling = None
    for floor, candidate in CERT_THRESHOLDS:
        if candidate == level:
            return floor, ceiling
        ceiling = floor
    raise ValueError(f"unknown certification level: {level!r}")


# ── Human Score Combiner ──────────────────────────

def combine_human(
    reviews: ChannelResult,
    webinars: ChannelResult,
    experts: ChannelResult,
) -> float:
    raw = (
        reviews.score  * HUMAN_CHANNEL_WEIGHTS["reviews"] +
        webinars.score * HUMAN_CHANNEL_WEIGHTS["webinars"] +
        experts.score  * HUMAN_CHANNEL_WEIGHTS["experts"]
    )
    return round1(clamp(raw))


# ── AI Dimensions ─────────────────────────────────

def _percent_or_neutral(value) -> float:
    """A 0-100 input, clamped; absent or non-numeric reads as neutral."""
    if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
        return NEUTRAL_SCORE
    return clamp(float(value))


def _count_or_none(value) -> Optional[float]:
    if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
        return None
    return max(float(value), 0.0)


def score_trust_compliance(v: Optional[AIVerification]) -> Tuple[float, Dict[str, float]]:
    """D1: Is the factory verified, certified and compliant?"""
    certs = _count_or_none(v.certification_count) if v else None
    breakdown = {
        "ai_verification": _percent_or_neutral(v.verification_score if v else None),
        "certifications": (
            min(certs / _CERT_SATURATION, 1.0) * 100 if certs is not None else NEUTRAL_SCORE
        ),
        # placeholder until the compliance check ships
        "compliance": _percent_or_neutral(v.compliance_score if v else None),
    }
    raw = sum(breakdown[k] * w for k, w in _D1_SUB_WEIGHTS.items())
    return round1(clamp(raw)), breakdown


def score_fulfillment(v: Optional[AIVerification]) -> Tuple[float, Dict[str, float]]:
    """D2: Does the factory answer, convert samples and avoid disputes?"""
    dispute = _count_or_none(v.dispute_rate) if v else None
    breakdown = {
        "response_rate": _percent_or_neutral(v.response_rate if v else None),
        "sample_conversion": _percent_or_neutral(v.sample_conversion_rate if v else None),
        "dispute_inverse": (
            max(0.0, 100 - dispute * _DISPUTE_PENALTY_PER_POINT) if dispute is not None else NEUTRAL_SCORE
        ),
    }
    raw = sum(breakdown[k] * w for k, w in _D2_SUB_WEIGHTS.items())
    return round1(clamp(raw)), breakdown


def score_market_content(v: Optional[AIVerification]) -> Tuple[float, Dict[str, float]]:
    """D3: Saturating content volume on top of a baseline."""
    assets = _count_or_none(v.content_asset_count) if v else None
    if assets is None:
        return NEUTRAL_SCORE, {"content_volume": NEUTRAL_SCORE}

    volume = min(assets / _CONTENT_SATURATION, 1.0) * 100
    raw = volume * _CONTENT_SPAN + _CONTENT_BASELINE
    return round1(clamp(raw)), {"content_volume": volume}


def score_ecosystem(v: Optional[AIVerification]) -> Tuple[float, Dict[str, float]]:
    """D4: No upstream ecosystem signals yet, so neutral."""
    return NEUTRAL_SCORE, {}


def score_community(reviews: List[Review]) -> Tuple[float, Dict[str, float]]:
    """
    D5: A light second read of buyer reviews for the AI side.
    Uses overall ratings and volume only; the human channel does the heavy lifting.
    """
    valid = [r for r in reviews if is_valid_review(r)]
    stars = (
        sum(r.rating_overall for r in valid) / len(valid) if valid else _DEFAULT_STARS
    )
    breakdown = {
        "avg_rating": rescale_rating(stars),
        "review_volume": min(len(valid) / _REVIEW_VOLUME_SATURATION, 1.0) * 100,
    }
    raw = sum(breakdown[k] * w for k, w in _D5_SUB_WEIGHTS.items())
    return round1(clamp(raw)), breakdown


@dataclass(frozen=True)
class AIScore:
    d1_trust: float
    d2_fulfillment: float
    d3_market: float
    d4_ecosystem: float
    d5_community: float
    raw: float
    breakdown: Dict[str, Dict[str, float]] = field(default_factory=dict)


def combine_ai(verification: Optional[AIVerification], reviews: List[Review]) -> AIScore:
    """AI Dimension Combiner. A missing verification record scores every AI input neutral."""
    d1, d1_bd = score_trust_compliance(verification)
    d2, d2_bd = score_fulfillment(verification)
    d3, d3_bd = score_market_content(verification)
    d4, d4_bd = score_ecosystem(verification)
    d5, d5_bd = score_community(reviews)

    dims = {
        "d1_trust": d1,
        "d2_fulfillment": d2,
        "d3_market": d3,
        "d4_ecosystem": d4,
        "d5_community": d5,
    }
    raw = sum(dims[k] * w for k, w in DIMENSION_WEIGHTS.items())

    return AIScore(
        raw=round1(clamp(raw)),
        breakdown={
            "d1_trust": d1_bd,
            "d2_fulfillment": d2_bd,
            "d3_market": d3_bd,
            "d4_ecosystem": d4_bd,
            "d5_community": d5_bd,
        },
        **dims,
    )


# ── Coefficient Mixer ─────────────────────────────

@dataclass(frozen=True)
class ScoreMix:
    ai_contribution: float
    human_contribution: float
    total_score: float


def mix_scores(ai_raw: float, human_raw: float, ai_coefficient: float) -> ScoreMix:
    """
    Split the 0-100 scale between the AI and human sides.
    Contributions scale linearly with the coefficient; no re-aggregation needed.
    """
    a = validate_coefficient(ai_coefficient)
    ai_contribution = round1(ai_raw * a)
    human_contribution = round1(human_raw * (1 - a))
    return ScoreMix(
        ai_contribution=ai_contribution,
        human_contribution=human_contribution,
        total_score=round1(clamp(ai_contribution + human_contribution)),
    )


# ── The Score Record ──────────────────────────────

def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.capitalize() for part in rest)


def _camel_keys(value):
    if isinstance(value, dict):
        return {_camel(k): _camel_keys(v) for k, v in value.items()}
    return value


@dataclass(frozen=True)
class FactoryScoreRecord:
    """One row per factory. Overwritten in full on every recompute."""
    factory_id: int

    # Human channels (0-100 each)
    score_from_reviews: float
    score_from_webinars: float
    score_from_experts: float
    human_raw_score: float

    # AI dimensions (0-100 each)
    d1_trust: float
    d2_fulfillment: float
    d3_market: float
    d4_ecosystem: float
    d5_community: float
    ai_raw_score: float

    # Mix
    ai_coefficient: float
    ai_contribution: float
    human_contribution: float
    total_score: float

    # Sample sizes
    review_count: int
    webinar_vote_count: int
    expert_review_count: int

    last_computed_at: datetime
    engine_version: str = ENGINE_VERSION

    # Per-rating, per-expert-score and per-dimension sub-scores
    score_details: Dict[str, Any] = field(default_factory=dict)

    @property
    def cert_level(self) -> CertLevel:
        return cert_level(self.total_score)

    def to_dict(self) -> Dict[str, Any]:
        """Field names as read by downstream consumers."""
        return {
            "factoryId": self.factory_id,
            "scoreFromReviews": self.score_from_reviews,
            "scoreFromWebinars": self.score_from_webinars,
            "scoreFromExperts": self.score_from_experts,
            "humanRawScore": self.human_raw_score,
            "aiRawScore": self.ai_raw_score,
            "aiContribution": self.ai_contribution,
            "humanContribution": self.human_contribution,
            "totalScore": self.total_score,
            "reviewCount": self.review_count,
            "webinarVoteCount": self.webinar_vote_count,
            "expertReviewCount": self.expert_review_count,
            "lastComputedAt": self.last_computed_at.isoformat(),
            "dimensions": {
                "d1Trust": self.d1_trust,
                "d2Fulfillment": self.d2_fulfillment,
                "d3Market": self.d3_market,
                "d4Ecosystem": self.d4_ecosystem,
                "d5Community": self.d5_community,
            },
            "aiCoefficient": self.ai_coefficient,
            "certLevel": self.cert_level.value,
            "engineVersion": self.engine_version,
            "scoreDetails": _camel_keys(self.score_details),
        }

    def to_storage(self) -> Dict[str, Any]:
        """Flat snake_case properties for the score store and cache."""
        data = asdict(self)
        data["last_computed_at"] = self.last_computed_at.isoformat()
        # Neo4j properties cannot hold nested maps
        data["score_details"] = json.dumps(self.score_details, sort_keys=True)
        return data

    @classmethod
    def from_storage(cls, data: Dict[str, Any]) -> "FactoryScoreRecord":
        values = dict(data)
        computed_at = values.get("last_computed_at")
        if isinstance(computed_at, str):
            values["last_computed_at"] = datetime.fromisoformat(computed_at)
        elif hasattr(computed_at, "to_native"):
            values["last_computed_at"] = computed_at.to_native()
        details = values.get("score_details")
        if isinstance(details, str):
            values["score_details"] = json.loads(details)
        known = cls.__dataclass_fields__.keys()
        return cls(**{k: v for k, v in values.items() if k in known})


# ── Main Entry Point ──────────────────────────────

def compute_factory_score(
    signals: FactorySignals,
    ai_coefficient: float,
    computed_at: Optional[datetime] = None,
) -> FactoryScoreRecord:
    """
    Full recompute from the current signal set. Never reads a previous record.
    """
    reviews = aggregate_reviews(signals.reviews)
    webinars = aggregate_webinar_votes(signals.webinar_votes)
    experts = aggregate_expert_reviews(signals.expert_reviews)
    human_raw = combine_human(reviews, webinars, experts)

    ai = combine_ai(signals.ai_verification, signals.reviews)

    mix = mix_scores(ai.raw, human_raw, ai_coefficient)

    return FactoryScoreRecord(
        factory_id=signals.factory_id,
        score_from_reviews=reviews.score,
        score_from_webinars=webinars.score,
        score_from_experts=experts.score,
        human_raw_score=human_raw,
        d1_trust=ai.d1_trust,
        d2_fulfillment=ai.d2_fulfillment,
        d3_market=ai.d3_market,
        d4_ecosystem=ai.d4_ecosystem,
        d5_community=ai.d5_community,
        ai_raw_score=ai.raw,
        ai_coefficient=float(ai_coefficient),
        ai_contribution=mix.ai_contribution,
        human_contribution=mix.human_contribution,
        total_score=mix.total_score,
        review_count=reviews.count,
        webinar_vote_count=webinars.count,
        expert_review_count=experts.count,
        last_computed_at=computed_at or utcnow(),
        score_details={
            "reviews": reviews.breakdown,
            "experts": experts.breakdown,
            "dimensions": {
                dim: {k: round1(v) for k, v in sub.items()}
                for dim, sub in ai.breakdown.items()
            },
        },
    )


def remix(
    record: FactoryScoreRecord,
    ai_coefficient: float,
    computed_at: Optional[datetime] = None,
) -> FactoryScoreRecord:
    """Re-run only the mix step under a different coefficient."""
    mix = mix_scores(record.ai_raw_score, record.human_raw_score, ai_coefficient)
    return replace(
        record,
        ai_coefficient=float(ai_coefficient),
        ai_contribution=mix.ai_contribution,
        human_contribution=mix.human_contribution,
        total_score=mix.total_score,
        last_computed_at=computed_at or record.last_computed_at,
    )
