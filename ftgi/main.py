"""
FTGI — Composite Trust Score Service
Buyer reviews, webinar votes, expert panels and AI verification,
fused into one 0-100 trust score per factory.

Start with:
    uvicorn ftgi.main:app --host 0.0.0.0 --port 8000
"""
import time
import uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import structlog

from ftgi import __version__
from ftgi.api.scores import router as scores_router
from ftgi.compute.stores import PersistenceError
from ftgi.config import ConfigError, get_settings

structlog.configure(
    processors=[
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.JSONRenderer(),
    ],
)
logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Invalid coefficient or weights must stop startup
    settings = get_settings()
    logger.info("ftgi_starting", version=__version__,
                env=settings.ENVIRONMENT,
                store=settings.STORE_BACKEND,
                recompute_mode=settings.RECOMPUTE_MODE,
                ai_coefficient=settings.AI_COEFFICIENT)

    if settings.STORE_BACKEND == "neo4j":
        try:
            from ftgi.db.neo4j import init_schema
            init_schema()
        except Exception as e:
            logger.warning("neo4j_init_failed", error=str(e))

    yield

    from ftgi.compute.pipeline import shutdown as pipeline_shutdown
    pipeline_shutdown()
    if settings.RECOMPUTE_MODE == "queue":
        from ftgi.workers.recompute_runner import close_redis_pool
        await close_redis_pool()
    if settings.STORE_BACKEND == "neo4j":
        from ftgi.db.neo4j import close
        close()
    logger.info("ftgi_stopped")


app = FastAPI(
    title="FTGI — Factory Trust Score",
    description=(
        "Composite trust score per factory: AI verification dimensions mixed "
        "with buyer reviews, webinar votes and expert panel reviews."
    ),
    version=__version__,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Request-Id", "X-Response-Time"],
)


@app.middleware("http")
async def request_middleware(request: Request, call_next):
    request_id = str(uuid.uuid4())[:8]
    start = time.time()
    request.state.request_id = request_id
    response = await call_next(request)
    duration_ms = round((time.time() - start) * 1000, 2)
    response.headers["X-Request-Id"] = request_id
    response.headers["X-Response-Time"] = f"{duration_ms}ms"
    if request.url.path != "/v1/ftgi/health":
        logger.info("request",
                    method=request.method,
                    path=request.url.path,
                    status=response.status_code,
                    duration_ms=duration_ms,
                    request_id=request_id)
    return response


@app.exception_handler(PersistenceError)
async def persistence_exception_handler(request: Request, exc: PersistenceError):
    logger.error("store_unavailable", path=request.url.path, error=str(exc))
    return JSONResponse(
        status_code=503,
        content={
            "error": "store_unavailable",
            "message": "The score store is unavailable. The previous score is unchanged.",
            "request_id": getattr(request.state, "request_id", "unknown"),
        },
    )


@app.exception_handler(ConfigError)
async def config_exception_handler(request: Request, exc: ConfigError):
    logger.error("config_invalid", path=request.url.path, error=str(exc))
    return JSONResponse(
        status_code=500,
        content={
            "error": "config_invalid",
            "message": str(exc),
            "request_id": getattr(request.state, "request_id", "unknown"),
        },
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error("unhandled_exception",
                 path=request.url.path,
                 error=str(exc),
                 type=type(exc).__name__)
    return JSONResponse(
        status_code=500,
        content={
            "error": "internal_server_error",
            "message": "Something went wrong. We've been notified.",
            "request_id": getattr(request.state, "request_id", "unknown"),
        },
    )


app.include_router(scores_router)


@app.get("/")
async def root():
    return {
        "name": "FTGI",
        "version": __version__,
        "endpoints": {
            "score": "GET /v1/ftgi/factories/{factory_id}/score",
            "leaderboard": "GET /v1/ftgi/leaderboard",
            "health": "GET /v1/ftgi/health",
            "docs": "GET /docs",
        },
    }
