"""
FTGI — Factory Trust Score API

Public endpoints:
    GET  /v1/ftgi/health                                        - Health check
    GET  /v1/ftgi/factories/{factory_id}/score                  - Latest record
    GET  /v1/ftgi/leaderboard                                   - Top factories

Signal writes (each triggers a recompute, inline or queued):
    POST /v1/ftgi/factories/{factory_id}/reviews                - Buyer review
    POST /v1/ftgi/factories/{factory_id}/webinar-votes          - Webinar vote
    POST /v1/ftgi/factories/{factory_id}/expert-reviews         - Expert panel review

Admin (X-Admin-Key):
    POST /v1/ftgi/factories/{factory_id}/expert-reviews/{review_id}/publish
    PUT  /v1/ftgi/factories/{factory_id}/ai-verification        - Refresh AI inputs
    POST /v1/ftgi/factories/{factory_id}/recompute              - Force recompute

A score read right after a signal write may still show the previous record
until the recompute lands. lastComputedAt tells you which one you have.
"""
from typing import Optional, Dict, Any
from datetime import datetime, timezone

from fastapi import APIRouter, HTTPException, Depends, Query
from fastapi.concurrency import run_in_threadpool
from pydantic import BaseModel, Field
import structlog

from ftgi import __version__
from ftgi.compute.pipeline import FactoryScorePipeline, get_pipeline
from ftgi.config import Settings, get_settings
from ftgi.security import require_admin_key
from ftgi.trust.engine import CertLevel
from ftgi.trust.signals import (
    Review,
    WebinarVote,
    ExpertReview,
    AIVerification,
    signal_to_dict,
)
from ftgi.workers.recompute_runner import queue_recompute

logger = structlog.get_logger()


# =============================================
# REQUEST MODELS
# =============================================

class ReviewCreate(BaseModel):
    rating_overall: int = Field(..., ge=1, le=5)
    rating_communication: int = Field(..., ge=1, le=5)
    rating_quality: int = Field(..., ge=1, le=5)
    rating_lead_time: int = Field(..., ge=1, le=5)
    rating_service: int = Field(..., ge=1, le=5)
    is_verified_purchase: bool = False
    comment: Optional[str] = Field(None, max_length=2000)
    order_id: Optional[int] = None
    user_id: Optional[int] = None


class WebinarVoteCreate(BaseModel):
    value: float = Field(..., ge=0, le=100)
    webinar_id: Optional[int] = None
    user_id: Optional[int] = None


class ExpertReviewCreate(BaseModel):
    score_innovation: float = Field(..., ge=0, le=100)
    score_management: float = Field(..., ge=0, le=100)
    score_potential: float = Field(..., ge=0, le=100)
    summary: str = Field(..., min_length=20, max_length=2000)
    expert_id: Optional[int] = None
    is_published: bool = True


class AIVerificationUpdate(BaseModel):
    """Every field optional: a missing input scores neutral."""
    verification_score: Optional[float] = Field(None, ge=0, le=100)
    compliance_score: Optional[float] = Field(None, ge=0, le=100)
    certification_count: Optional[int] = Field(None, ge=0)
    dispute_rate: Optional[float] = Field(None, ge=0, le=100)
    response_rate: Optional[float] = Field(None, ge=0, le=100)
    sample_conversion_rate: Optional[float] = Field(None, ge=0, le=100)
    content_asset_count: Optional[int] = Field(None, ge=0)


class SignalWriteResponse(BaseModel):
    signal: Dict[str, Any]
    recompute: str          # completed | queued | failed | skipped
    score: Optional[Dict[str, Any]] = None


# =============================================
# HELPERS
# =============================================

async def _dispatch_recompute(
    pipeline: FactoryScorePipeline,
    settings: Settings,
    factory_id: int,
) -> SignalWriteResponse:
    """Run or enqueue the recompute for a signal that is already stored."""
    if settings.RECOMPUTE_MODE == "queue":
        try:
            await queue_recompute(factory_id)
            return SignalWriteResponse(signal={}, recompute="queued")
        except Exception as e:
            logger.error("ftgi_recompute_enqueue_failed", factory_id=factory_id, error=str(e))
            return SignalWriteResponse(signal={}, recompute="failed")

    record = await run_in_threadpool(pipeline.try_recompute, factory_id)
    if record is None:
        return SignalWriteResponse(signal={}, recompute="failed")
    return SignalWriteResponse(signal={}, recompute="completed", score=record.to_dict())


async def _after_write(pipeline, settings, factory_id: int, stored, recompute: bool = True) -> SignalWriteResponse:
    if not recompute:
        return SignalWriteResponse(signal=signal_to_dict(stored), recompute="skipped")
    result = await _dispatch_recompute(pipeline, settings, factory_id)
    result.signal = signal_to_dict(stored)
    return result


# =============================================
# ROUTES
# =============================================

router = APIRouter(prefix="/v1/ftgi", tags=["ftgi"])


@router.get("/health")
async def ftgi_health(
    pipeline: FactoryScorePipeline = Depends(get_pipeline),
    settings: Settings = Depends(get_settings),
):
    return {
        "status": "healthy",
        "service": "ftgi-trust-engine",
        "version": __version__,
        "ai_coefficient": settings.AI_COEFFICIENT,
        "recompute_mode": settings.RECOMPUTE_MODE,
        "pipeline": pipeline.status(),
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@router.get("/factories/{factory_id}/score")
async def get_factory_score(
    factory_id: int,
    pipeline: FactoryScorePipeline = Depends(get_pipeline),
):
    """Latest score record. May lag a signal written moments ago."""
    record = await run_in_threadpool(pipeline.get_factory_score, factory_id)
    if record is None:
        raise HTTPException(
            status_code=404,
            detail={"error": "not_yet_scored", "factory_id": factory_id},
        )
    return record.to_dict()


@router.post("/factories/{factory_id}/recompute", dependencies=[Depends(require_admin_key)])
async def recompute_factory(
    factory_id: int,
    pipeline: FactoryScorePipeline = Depends(get_pipeline),
):
    """Admin: rescore now, synchronously. Store failures surface as 503."""
    record = await run_in_threadpool(pipeline.recompute_factory_score, factory_id)
    return record.to_dict()


@router.post("/factories/{factory_id}/reviews", status_code=201, response_model=SignalWriteResponse)
async def submit_review(
    factory_id: int,
    body: ReviewCreate,
    pipeline: FactoryScorePipeline = Depends(get_pipeline),
    settings: Settings = Depends(get_settings),
):
    review = Review(factory_id=factory_id, **body.model_dump())
    stored = await run_in_threadpool(pipeline.submit_review, review, False)
    return await _after_write(pipeline, settings, factory_id, stored)


@router.post("/factories/{factory_id}/webinar-votes", status_code=201, response_model=SignalWriteResponse)
async def cast_webinar_vote(
    factory_id: int,
    body: WebinarVoteCreate,
    pipeline: FactoryScorePipeline = Depends(get_pipeline),
    settings: Settings = Depends(get_settings),
):
    vote = WebinarVote(factory_id=factory_id, **body.model_dump())
    stored = await run_in_threadpool(pipeline.cast_webinar_vote, vote, False)
    return await _after_write(pipeline, settings, factory_id, stored)


@router.post("/factories/{factory_id}/expert-reviews", status_code=201, response_model=SignalWriteResponse)
async def submit_expert_review(
    factory_id: int,
    body: ExpertReviewCreate,
    pipeline: FactoryScorePipeline = Depends(get_pipeline),
    settings: Settings = Depends(get_settings),
):
    review = ExpertReview(factory_id=factory_id, **body.model_dump())
    stored = await run_in_threadpool(pipeline.submit_expert_review, review, False)
    return await _after_write(pipeline, settings, factory_id, stored, recompute=stored.is_published)


@router.post(
    "/factories/{factory_id}/expert-reviews/{review_id}/publish",
    response_model=SignalWriteResponse,
    dependencies=[Depends(require_admin_key)],
)
async def publish_expert_review(
    factory_id: int,
    review_id: str,
    pipeline: FactoryScorePipeline = Depends(get_pipeline),
    settings: Settings = Depends(get_settings),
):
    published = await run_in_threadpool(pipeline.publish_expert_review, factory_id, review_id, False)
    if published is None:
        raise HTTPException(status_code=404, detail="Expert review not found.")
    return await _after_write(pipeline, settings, factory_id, published)


@router.put(
    "/factories/{factory_id}/ai-verification",
    response_model=SignalWriteResponse,
    dependencies=[Depends(require_admin_key)],
)
async def refresh_ai_verification(
    factory_id: int,
    body: AIVerificationUpdate,
    pipeline: FactoryScorePipeline = Depends(get_pipeline),
    settings: Settings = Depends(get_settings),
):
    verification = AIVerification(factory_id=factory_id, **body.model_dump())
    stored = await run_in_threadpool(pipeline.refresh_ai_verification, verification, False)
    return await _after_write(pipeline, settings, factory_id, stored)


@router.get("/leaderboard")
async def leaderboard(
    limit: int = Query(50, ge=1, le=500),
    min_score: Optional[float] = Query(None, ge=0, le=100),
    cert_level: Optional[CertLevel] = Query(None),
    pipeline: FactoryScorePipeline = Depends(get_pipeline),
):
    entries = await run_in_threadpool(pipeline.leaderboard, limit, min_score, cert_level)
    return {
        "count": len(entries),
        "factories": entries,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
