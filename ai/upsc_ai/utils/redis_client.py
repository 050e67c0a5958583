"""Shared async Redis connection.

Components that persist state (credit ledger, flashcard store, summary cache)
share one ``redis.asyncio`` client. When ``REDIS_URL`` is not configured, or
Redis is disabled, ``get_redis`` returns ``None`` and callers fall back to
their in-memory stores.
"""
from typing import Optional

import redis.asyncio as aioredis

from upsc_ai.config import settings
from .logger import get_logger

LOG = get_logger()

_client = None


def get_redis() -> Optional[aioredis.Redis]:
    global _client
    if _client is not None:
        return _client
    url = settings.REDIS_URL
    if not settings.REDIS_ENABLED or not url:
        return None
    _client = aioredis.from_url(url, decode_responses=True)
    LOG.info('redis_client_created', extra={'redis_url': url.split('@')[-1]})
    return _client


def reset_redis(client=None):
    """Replace the shared client (``None`` drops it so the next call reconnects)."""
    global _client
    _client = client
