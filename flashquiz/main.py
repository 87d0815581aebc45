from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from slowapi.errors import RateLimitExceeded
import time
import structlog

from flashquiz.config import get_settings
from flashquiz.db import engine, init_db
from flashquiz.routers import auth as auth_router
from flashquiz.routers import user_data as user_data_router
from flashquiz.routers import documents as documents_router
from flashquiz.routers import generate as generate_router
from flashquiz.routers import stats as stats_router
from flashquiz.services.cache import CacheService
from flashquiz.services.extraction import DocumentExtractor
from flashquiz.services.llm import GenerationClient
from flashquiz.services.logging import configure_logging, log_api_request
from flashquiz.services.monitoring import HealthChecker, get_metrics, REQUEST_COUNT, REQUEST_DURATION
from flashquiz.middleware.rate_limit import limiter, rate_limit_exceeded_handler

# Configure logging
configure_logging()
logger = structlog.get_logger()

settings = get_settings()

app = FastAPI(
    title="FlashQuiz+",
    description="Turn documents into flashcards and quizzes and track study progress",
    version="1.0.0"
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Rate limiting
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)

# Services shared by the routes
app.state.settings = settings
app.state.cache = CacheService(settings.redis_url, prefix="flashquiz:")
app.state.generation_client = GenerationClient(settings)
app.state.extractor = DocumentExtractor()
app.state.health_checker = HealthChecker(engine, app.state.cache, settings)


@app.middleware("http")
async def add_process_time_header(request: Request, call_next):
    start_time = time.time()
    log_api_request(request)

    response = await call_next(request)

    process_time = time.time() - start_time
    response.headers["X-Process-Time"] = str(process_time)

    REQUEST_COUNT.labels(
        method=request.method,
        endpoint=request.url.path,
        status=response.status_code
    ).inc()

    REQUEST_DURATION.labels(
        method=request.method,
        endpoint=request.url.path
    ).observe(process_time)

    response.response_time = process_time
    log_api_request(request, response)

    return response


# ----------------- Health & Monitoring Endpoints -----------------
@app.get("/health")
async def health_check(request: Request):
    """Health check endpoint"""
    return request.app.state.health_checker.get_health_status()


@app.get("/metrics")
async def metrics():
    """Prometheus metrics endpoint"""
    return get_metrics()


# ----------------- Startup -----------------
@app.on_event("startup")
def on_startup():
    init_db()
    logger.info(
        "flashquiz_started",
        mock_data=settings.use_mock_data,
        provider_configured=settings.provider_configured,
        cache_backend=app.state.cache.backend,
    )


# ----------------- Routers -----------------
app.include_router(auth_router.router)
app.include_router(user_data_router.router)
app.include_router(documents_router.router)
app.include_router(generate_router.router)
app.include_router(stats_router.router)
