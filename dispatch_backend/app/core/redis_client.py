"""
Redis client for the real-time dispatch board.

Dispatch changes fan out over pub/sub, one channel per terminal, so a board
subscribes only to the terminal it displays.
"""

import logging
import redis.asyncio as redis
from dispatch_backend.app.core.config import settings

logger = logging.getLogger("dispatch.redis")

TERMINAL_CHANNEL_PREFIX = "terminal:"

# Shared by every request; closed on application shutdown
redis_client = redis.from_url(
    settings.redis_url,
    decode_responses=settings.redis_decode_responses,
)


def terminal_channel(terminal_id: int) -> str:
    """Pub/sub channel of a terminal's dispatch board."""
    return f"{TERMINAL_CHANNEL_PREFIX}{terminal_id}"


async def get_redis():
    """FastAPI dependency for the publisher's client; tests override it."""
    return redis_client


async def ping_redis() -> bool:
    """Health check: False when the real-time channel is down."""
    try:
        return await redis_client.ping()
    except Exception as exc:
        logger.warning("Redis ping failed: %s", exc)
        return False


async def close_redis():
    """Release the pub/sub connection pool."""
    try:
        await redis_client.aclose()
    except Exception as exc:
        logger.warning("Redis close failed: %s", exc)
