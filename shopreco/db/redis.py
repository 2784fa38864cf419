# shopreco/db/redis.py
import logging

import redis.asyncio as redis
from shopreco.core.config import get_settings

logger = logging.getLogger(__name__)

redis_client: redis.Redis | None = None


async def connect():
    """
    Connect Redis when REDIS_URL is set.
    Missing or unreachable Redis only disables memoization; the app keeps running.
    """
    global redis_client
    settings = get_settings()
    if not settings.REDIS_URL:
        logger.warning("No REDIS_URL configured, skipping Redis connection")
        redis_client = None
        return

    try:
        logger.info("Connecting to Redis at %s", settings.REDIS_URL)
        redis_client = redis.from_url(settings.REDIS_URL, decode_responses=True)
        await redis_client.ping()
        logger.info("Redis connection successful")
    except Exception as e:
        logger.warning("Failed to connect to Redis: %s", e)
        redis_client = None


async def disconnect():
    global redis_client
    if redis_client:
        await redis_client.aclose()
        redis_client = None
        logger.info("Redis disconnected")


def get_redis() -> redis.Redis | None:
    """Redis client, or None when not configured or unavailable."""
    return redis_client
