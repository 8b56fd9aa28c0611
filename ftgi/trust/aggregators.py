"""
FTGI — Human Channel Aggregators

Three pure reductions, one per human signal channel:

    Buyer reviews      → scoreFromReviews   (verified purchases weigh 2x)
    Webinar votes      → scoreFromWebinars  (plain mean)
    Expert panel       → scoreFromExperts   (published reviews only)

Each returns a ChannelResult(score 0-100, count). An empty channel scores
the neutral 50. A malformed signal is skipped and logged.
"""
import math
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, Optional

import structlog

from ftgi.trust.signals import ChannelResult, Review, WebinarVote, ExpertReview

logger = structlog.get_logger()

NEUTRAL_SCORE = 50.0

VERIFIED_PURCHASE_WEIGHT = 2.0
UNVERIFIED_WEIGHT = 1.0

RATING_MIN, RATING_MAX = 1, 5
VOTE_MIN, VOTE_MAX = 0, 100
EXPERT_MIN, EXPERT_MAX = 0, 100


# ── Numeric helpers ───────────────────────────────

def clamp(value: float, low: float = 0.0, high: float = 100.0) -> float:
    return max(low, min(high, value))


def round1(value: float) -> float:
    """Round half-up to one decimal place. round() would turn 58.35 into 58.3."""
    return float(Decimal(repr(value)).quantize(Decimal("0.1"), rounding=ROUND_HALF_UP))


def _in_range(value, low: float, high: float) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return math.isfinite(value) and low <= value <= high


def rescale_rating(stars: float) -> float:
    """1-5 stars → 0-100."""
    return (stars - RATING_MIN) / (RATING_MAX - RATING_MIN) * 100


# ── Reviews ───────────────────────────────────────

def is_valid_review(review: Review) -> bool:
    return all(_in_range(r, RATING_MIN, RATING_MAX) for r in review.ratings)


def review_mean(review: Review) -> Optional[float]:
    """Mean of the five ratings, or None if any is missing or out of range."""
    if not is_valid_review(review):
        return None
    ratings = review.ratings
    return sum(ratings) / len(ratings)


REVIEW_RATING_KEYS = ("overall", "communication", "quality", "lead_time", "service")
EXPERT_SCORE_KEYS = ("innovation", "management", "potential")


def _column_means(rows, keys, rescale=None):
    """Unweighted per-column means, rounded. Empty input gives an empty dict."""
    if not rows:
        return {}
    means = {}
    for i, key in enumerate(keys):
        mean = sum(row[i] for row in rows) / len(rows)
        means[key] = round1(clamp(rescale(mean) if rescale else mean))
    return means


def aggregate_reviews(reviews: Iterable[Review]) -> ChannelResult:
    weighted_sum = 0.0
    total_weight = 0.0
    count = 0
    ignored = 0
    valid_ratings = []

    for review in reviews:
        mean = review_mean(review)
        if mean is None:
            ignored += 1
            logger.warning("review_ignored_malformed",
                           factory_id=review.factory_id,
                           review_id=review.review_id,
                           ratings=review.ratings)
            continue

        weight = VERIFIED_PURCHASE_WEIGHT if review.is_verified_purchase else UNVERIFIED_WEIGHT
        weighted_sum += rescale_rating(mean) * weight
        total_weight += weight
        count += 1
        valid_ratings.append(review.ratings)

    if count == 0:
        return ChannelResult(score=NEUTRAL_SCORE, count=0, ignored=ignored)

    return ChannelResult(
        score=round1(clamp(weighted_sum / total_weight)),
        count=count,
        ignored=ignored,
        breakdown=_column_means(valid_ratings, REVIEW_RATING_KEYS, rescale=rescale_rating),
    )


# ── Webinar votes ─────────────────────────────────

def aggregate_webinar_votes(votes: Iterable[WebinarVote]) -> ChannelResult:
    total = 0.0
    count = 0
    ignored = 0

    for vote in votes:
        if not _in_range(vote.value, VOTE_MIN, VOTE_MAX):
            ignored += 1
            logger.warning("webinar_vote_ignored_malformed",
                           factory_id=vote.factory_id,
                           vote_id=vote.vote_id,
                           value=vote.value)
            continue
        total += vote.value
        count += 1

    if count == 0:
        return ChannelResult(score=NEUTRAL_SCORE, count=0, ignored=ignored)

    return ChannelResult(score=round1(clamp(total / count)), count=count, ignored=ignored)


# ── Expert panel ──────────────────────────────────

def aggregate_expert_reviews(reviews: Iterable[ExpertReview]) -> ChannelResult:
    """Mean of per-review means. Unpublished reviews are skipped silently."""
    total = 0.0
    count = 0
    ignored = 0
    valid_scores = []

    for review in reviews:
        if not review.is_published:
            continue
        scores = review.scores
        if not all(_in_range(s, EXPERT_MIN, EXPERT_MAX) for s in scores):
            ignored += 1
            logger.warning("expert_review_ignored_malformed",
                           factory_id=review.factory_id,
                           review_id=review.review_id,
                           scores=scores)
            continue
        total += sum(scores) / len(scores)
        count += 1
        valid_scores.append(scores)

    if count == 0:
        return ChannelResult(score=NEUTRAL_SCORE, count=0, ignored=ignored)

    return ChannelResult(
        score=round1(clamp(total / count)),
        count=count,
        ignored=ignored,
        breakdown=_column_means(valid_scores, EXPERT_SCORE_KEYS),
    )
