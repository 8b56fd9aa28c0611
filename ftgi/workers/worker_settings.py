"""
FTGI - Worker Settings

arq worker configuration for deferred recomputes.

Start with:
    arq ftgi.workers.worker_settings.WorkerSettings
"""
import structlog
from arq.connections import RedisSettings

from ftgi.compute.pipeline import get_pipeline, shutdown as pipeline_shutdown
from ftgi.config import get_settings
from ftgi.workers.recompute_runner import recompute_factory_job

logger = structlog.get_logger()

settings = get_settings()


async def startup(ctx):
    ctx["pipeline"] = get_pipeline()
    logger.info("ftgi_worker_started", store=settings.STORE_BACKEND,
                ai_coefficient=settings.AI_COEFFICIENT)


async def shutdown(ctx):
    pipeline_shutdown()
    if settings.STORE_BACKEND == "neo4j":
        from ftgi.db.neo4j import close
        close()
    logger.info("ftgi_worker_stopped")


class WorkerSettings:
    """arq worker configuration."""

    functions = [
        recompute_factory_job,
    ]

    on_startup = startup
    on_shutdown = shutdown

    redis_settings = RedisSettings.from_dsn(settings.REDIS_URL)
    max_jobs = settings.WORKER_MAX_JOBS
    job_timeout = settings.WORKER_JOB_TIMEOUT
    max_tries = 1  # a failed recompute waits for the next signal write
