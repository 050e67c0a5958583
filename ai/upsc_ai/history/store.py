"""Per-user study history.

Each kind of record lives in one Redis list per user
(``history:<kind>:<user_id>``), newest first and trimmed to
``HISTORY_MAX_ENTRIES``. Without Redis an in-process list is used. Writes
happen after the user has already been charged, so a Redis failure while
saving is logged and the record is dropped rather than failing the request.
"""
import os
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from redis.exceptions import RedisError

from upsc_ai.utils import get_logger, get_redis

LOG = get_logger()

HISTORY_KEY_PREFIX = os.getenv('HISTORY_KEY_PREFIX', 'history:')
HISTORY_MAX_ENTRIES = int(os.getenv('HISTORY_MAX_ENTRIES', '50'))
HISTORY_DEFAULT_LIMIT = int(os.getenv('HISTORY_DEFAULT_LIMIT', '10'))


class HistoryKind(str, Enum):
    QUIZ = 'quiz'
    GRADING = 'grading'
    MINDMAP = 'mindmap'


class HistoryRecord(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    user_id: str
    kind: HistoryKind
    data: Dict[str, Any] = Field(default_factory=dict)
    tokens_used: int = Field(0, ge=0)
    model: Optional[str] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class HistoryStore:
    _instance = None

    def __init__(self, redis_client=None, max_entries: int = HISTORY_MAX_ENTRIES):
        self._redis = redis_client if redis_client is not None else get_redis()
        self.max_entries = max_entries
        self._records: Dict[str, List[HistoryRecord]] = {}

    @classmethod
    def get_instance(cls) -> 'HistoryStore':
        if cls._instance is None:
            cls._instance = HistoryStore()
        return cls._instance

    def _key(self, user_id: str, kind: HistoryKind) -> str:
        return f'{HISTORY_KEY_PREFIX}{HistoryKind(kind).value}:{user_id}'

    async def add(self, record: HistoryRecord) -> Optional[HistoryRecord]:
        """Store ``record`` as the newest entry; ``None`` when Redis rejected the write."""
        key = self._key(record.user_id, record.kind)
        if self._redis is not None:
            try:
                await self._redis.lpush(key, record.model_dump_json(by_alias=True))
                await self._redis.ltrim(key, 0, self.max_entries - 1)
            except RedisError as e:
                LOG.warning('history_save_failed', extra={'user_id': record.user_id, 'kind': record.kind.value, 'error': str(e)})
                return None
        else:
            entries = self._records.setdefault(key, [])
            entries.insert(0, record)
            del entries[self.max_entries:]
        LOG.info('history_saved', extra={'user_id': record.user_id, 'kind': record.kind.value, 'record_id': record.id})
        return record

    async def list(self, user_id: str, kind: HistoryKind, limit: int = HISTORY_DEFAULT_LIMIT) -> List[HistoryRecord]:
        """Newest first, at most ``limit`` (capped at the retention size)."""
        if limit < 1:
            raise ValueError('limit must be a positive integer')
        limit = min(limit, self.max_entries)
        key = self._key(user_id, kind)
        if self._redis is not None:
            raw = await self._redis.lrange(key, 0, limit - 1)
            return [HistoryRecord.model_validate_json(v) for v in raw]
        return list(self._records.get(key, [])[:limit])
