"""Per-user flashcard storage.

Cards live in one Redis hash per user (``flashcards:<user_id>``, field = card
id, value = the card's JSON document). Without Redis an in-process dict is
used. Scheduling state only changes through ``review``.
"""
import os
from datetime import datetime
from typing import Dict, List, Optional

from upsc_ai.utils import get_logger, get_redis, log_flashcard_review
from .spaced_repetition import FlashcardState, schedule_review, due_cards, parse_quality

LOG = get_logger()

FLASHCARD_KEY_PREFIX = os.getenv('FLASHCARD_KEY_PREFIX', 'flashcards:')


class FlashcardStoreError(Exception):
    pass


class FlashcardNotFoundError(FlashcardStoreError):
    def __init__(self, card_id: str):
        self.card_id = card_id
        super().__init__(f'flashcard not found: {card_id}')


class FlashcardStore:
    _instance = None

    def __init__(self, redis_client=None):
        self._redis = redis_client if redis_client is not None else get_redis()
        self._cards: Dict[str, Dict[str, FlashcardState]] = {}

    @classmethod
    def get_instance(cls) -> 'FlashcardStore':
        if cls._instance is None:
            cls._instance = FlashcardStore()
        return cls._instance

    def _key(self, user_id: str) -> str:
        return f'{FLASHCARD_KEY_PREFIX}{user_id}'

    async def _save(self, card: FlashcardState) -> None:
        if self._redis is not None:
            await self._redis.hset(self._key(card.user_id), card.id, card.model_dump_json(by_alias=True))
        else:
            self._cards.setdefault(card.user_id, {})[card.id] = card

    async def add(self, card: FlashcardState) -> FlashcardState:
        await self._save(card)
        LOG.info('flashcard_created', extra={'user_id': card.user_id, 'card_id': card.id, 'topic': card.topic})
        return card

    async def add_many(self, cards: List[FlashcardState]) -> List[FlashcardState]:
        for card in cards:
            await self._save(card)
        return cards

    async def get(self, user_id: str, card_id: str) -> FlashcardState:
        if self._redis is not None:
            raw = await self._redis.hget(self._key(user_id), card_id)
            if raw is None:
                raise FlashcardNotFoundError(card_id)
            return FlashcardState.model_validate_json(raw)
        card = self._cards.get(user_id, {}).get(card_id)
        if card is None:
            raise FlashcardNotFoundError(card_id)
        return card

    async def list(self, user_id: str) -> List[FlashcardState]:
        if self._redis is not None:
            raw = await self._redis.hgetall(self._key(user_id))
            cards = [FlashcardState.model_validate_json(v) for v in raw.values()]
        else:
            cards = list(self._cards.get(user_id, {}).values())
        return sorted(cards, key=lambda c: c.next_review_date)

    async def due(self, user_id: str, now: Optional[datetime] = None) -> List[FlashcardState]:
        return due_cards(await self.list(user_id), now)

    async def review(self, user_id: str, card_id: str, quality, now: Optional[datetime] = None) -> FlashcardState:
        q = parse_quality(quality)
        card = await self.get(user_id, card_id)
        updated = schedule_review(card, q, now)
        await self._save(updated)
        log_flashcard_review(user_id, card_id, q, updated.interval, updated.ease_factor, updated.repetitions)
        return updated

    async def delete(self, user_id: str, card_id: str) -> None:
        if self._redis is not None:
            removed = await self._redis.hdel(self._key(user_id), card_id)
        else:
            removed = 1 if self._cards.get(user_id, {}).pop(card_id, None) is not None else 0
        if not removed:
            raise FlashcardNotFoundError(card_id)
        LOG.info('flashcard_deleted', extra={'user_id': user_id, 'card_id': card_id})
