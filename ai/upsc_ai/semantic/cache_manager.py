import os
import json
import hashlib
from typing import Optional, Dict, Any

from redis.exceptions import RedisError

from upsc_ai.utils import get_logger, get_redis

LOG = get_logger()


class CacheManager:
    _instance = None

    def __init__(self, redis_client=None):
        self.enabled = os.getenv('REDIS_CACHE_ENABLED', 'true').lower() in ('1', 'true', 'yes')
        self.ttl = int(os.getenv('SUMMARY_CACHE_TTL', '86400'))
        self._client = redis_client if redis_client is not None else get_redis()
        if not self.enabled or self._client is None:
            self.enabled = False
            LOG.info('summary_cache_disabled')

    @classmethod
    def get_instance(cls) -> 'CacheManager':
        if cls._instance is None:
            cls._instance = CacheManager()
        return cls._instance

    def _key(self, text: str, namespace: str) -> str:
        h = hashlib.sha256(text.strip().encode('utf-8')).hexdigest()[:24]
        return f'{namespace}:{h}'

    async def get(self, text: str, namespace: str = 'summary') -> Optional[Dict[str, Any]]:
        if not self.enabled:
            return None
        key = self._key(text, namespace)
        try:
            val = await self._client.get(key)
        except RedisError as e:
            LOG.warning('cache_get_failed', extra={'key': key, 'error': str(e)})
            return None
        if val is None:
            LOG.info('cache_miss', extra={'key': key})
            return None
        LOG.info('cache_hit', extra={'key': key})
        return json.loads(val)

    async def set(self, text: str, value: Dict[str, Any], namespace: str = 'summary', ttl: Optional[int] = None):
        if not self.enabled:
            return
        key = self._key(text, namespace)
        ttl = ttl or self.ttl
        try:
            await self._client.setex(key, ttl, json.dumps(value))
            LOG.info('cache_set', extra={'key': key, 'ttl': ttl})
        except RedisError as e:
            LOG.warning('cache_set_failed', extra={'key': key, 'error': str(e)})

