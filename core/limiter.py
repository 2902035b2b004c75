from fastapi import Request, Response
import redis.asyncio as redis
from fastapi_limiter import FastAPILimiter
from fastapi_limiter.depends import RateLimiter
from core.config import settings

import logging

logger = logging.getLogger(__name__)


def get_real_ip(request: Request) -> str:
    """Extract real IP even behind a proxy/nginx"""
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


async def client_identifier(request: Request) -> str:
    # One bucket per caller IP and route
    return f"{get_real_ip(request)}:{request.scope['path']}"


async def init_redis(redis_url: str = settings.REDIS_URL):
    try:
        redis_conn = redis.from_url(redis_url, encoding="utf-8", decode_responses=True)
        await redis_conn.ping()
        await FastAPILimiter.init(redis_conn, prefix="payments-limiter", identifier=client_identifier)
        logger.info("✅ Redis Limiter initialized")
        return redis_conn
    except Exception as e:
        logger.warning(f"⚠️ Redis not available at {redis_url}: {e}. Rate limiting will be disabled.")
        return None


def rate_limit(times: int, seconds: int):
    """Route dependency limiting each client IP; lets everything through while Redis is unavailable."""
    limiter = RateLimiter(times=times, seconds=seconds)

    async def dependency(request: Request, response: Response):
        if FastAPILimiter.redis is None:
            return
        await limiter(request, response)

    return dependency
