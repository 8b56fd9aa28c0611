"""
FTGI - Recompute Runner

Background job that rescores one factory after a signal write.
Used when FTGI_RECOMPUTE_MODE=queue; the API enqueues, the arq worker runs.

Jobs are not deduplicated: two writes enqueue two recomputes, and both
re-read the full signal set, so whichever finishes last is correct.
"""
import asyncio
from typing import Optional

import structlog
from arq import create_pool
from arq.connections import ArqRedis, RedisSettings

from ftgi.compute.pipeline import get_pipeline
from ftgi.config import get_settings

logger = structlog.get_logger()

_redis_pool: Optional[ArqRedis] = None


async def get_redis_pool() -> ArqRedis:
    global _redis_pool
    if _redis_pool is None:
        _redis_pool = await create_pool(RedisSettings.from_dsn(get_settings().REDIS_URL))
    return _redis_pool


async def queue_recompute(factory_id: int) -> str:
    """Queue a recompute job. Returns the arq job id."""
    redis_pool = await get_redis_pool()
    job = await redis_pool.enqueue_job("recompute_factory_job", factory_id)
    logger.info("ftgi_recompute_queued", factory_id=factory_id,
                job_id=job.job_id if job else None)
    return job.job_id if job else ""


async def close_redis_pool():
    global _redis_pool
    if _redis_pool is not None:
        await _redis_pool.close()
        _redis_pool = None


async def recompute_factory_job(ctx, factory_id: int):
    """
    arq job function. Failures are logged and re-raised so arq records them;
    the previous record stays in place and no retry happens here.

    The pipeline comes from ctx (set in worker startup). Recompute does
    blocking Neo4j and Redis I/O, so it runs in a thread off the event loop.
    """
    pipeline = ctx.get("pipeline") or get_pipeline()
    logger.info("ftgi_recompute_job_start", factory_id=factory_id,
                job_try=ctx.get("job_try"))
    try:
        record = await asyncio.to_thread(pipeline.recompute_factory_score, factory_id)
    except Exception as e:
        logger.error("ftgi_recompute_job_failed", factory_id=factory_id,
                     error=str(e), type=type(e).__name__)
        raise

    return {
        "status": "completed",
        "factory_id": factory_id,
        "total_score": record.total_score,
        "computed_at": record.last_computed_at.isoformat(),
    }
