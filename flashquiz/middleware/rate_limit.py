"""
Rate limiting using slowapi
"""
from slowapi import Limiter
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded
from fastapi import Request
from fastapi.responses import JSONResponse
import structlog

from flashquiz.config import get_settings

logger = structlog.get_logger()

limiter = Limiter(
    key_func=get_remote_address,
    default_limits=["1000/hour", "100/minute"]
)


def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded):
    client = request.client.host if request.client else "unknown"
    logger.warning("rate_limit_exceeded", client_ip=client, path=request.url.path, limit=str(exc.detail))
    return JSONResponse(
        status_code=429,
        content={"detail": f"Rate limit exceeded: {exc.detail}. Please try again later."},
    )


def ai_generation_limit():
    """Rate limit for AI generation endpoints"""
    return limiter.limit(get_settings().generation_rate_limit)


def general_api_limit():
    """Rate limit for document and data endpoints"""
    return limiter.limit("60/minute")
