"""SM-2 spaced-repetition scheduling for flashcards.

Scheduling is a pure function of the card's current state and a 0-5 recall
quality. Whether a card is due is computed from ``next_review_date`` at query
time; no due flag is stored.
"""
from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone
from enum import IntEnum
from typing import Iterable, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

MIN_EASE_FACTOR = 1.3
DEFAULT_EASE_FACTOR = 2.5
FIRST_INTERVAL_DAYS = 1
SECOND_INTERVAL_DAYS = 6
PASSING_QUALITY = 3
CARD_DIFFICULTIES = ('Easy', 'Medium', 'Hard')


class ReviewQuality(IntEnum):
    AGAIN = 1
    HARD = 3
    GOOD = 4
    EASY = 5


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class FlashcardState(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    user_id: str
    front: str
    back: str
    topic: str = 'General'
    subject: Optional[str] = None
    difficulty: str = 'Medium'
    repetitions: int = Field(0, ge=0)
    ease_factor: float = Field(DEFAULT_EASE_FACTOR, ge=MIN_EASE_FACTOR)
    interval: int = Field(0, ge=0)
    next_review_date: datetime = Field(default_factory=utcnow)
    created_at: datetime = Field(default_factory=utcnow)
    last_reviewed_at: Optional[datetime] = None

    @field_validator('next_review_date', 'created_at', 'last_reviewed_at')
    @classmethod
    def utc_datetimes(cls, v):
        return as_utc(v) if v is not None else v

    @field_validator('difficulty')
    @classmethod
    def known_difficulty(cls, v):
        return v if v in CARD_DIFFICULTIES else 'Medium'


def new_flashcard(user_id: str, front: str, back: str, topic: Optional[str] = None, subject: Optional[str] = None, difficulty: str = 'Medium', now: Optional[datetime] = None) -> FlashcardState:
    now = as_utc(now) if now else utcnow()
    return FlashcardState(
        user_id=user_id,
        front=front.strip(),
        back=back.strip(),
        topic=(topic or '').strip() or 'General',
        subject=subject,
        difficulty=difficulty,
        repetitions=0,
        ease_factor=DEFAULT_EASE_FACTOR,
        interval=0,
        next_review_date=now,
        created_at=now,
    )


def parse_quality(value) -> int:
    """Accept a 0-5 integer or one of the review button labels (again/hard/good/easy)."""
    if isinstance(value, str):
        label = value.strip().upper()
        if label in ReviewQuality.__members__:
            return int(ReviewQuality[label])
        if label.isdigit():
            value = int(label)
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError('quality must be an integer 0-5 or one of again|hard|good|easy')
    if value < 0 or value > 5:
        raise ValueError('quality must be between 0 and 5')
    return int(value)


def next_ease_factor(ease_factor: float, quality: int) -> float:
    miss = 5 - quality
    return max(MIN_EASE_FACTOR, ease_factor + (0.1 - miss * (0.08 + miss * 0.02)))


def schedule_review(state: FlashcardState, quality, now: Optional[datetime] = None) -> FlashcardState:
    """Return the card's new state after a review of the given quality.

    A passing review advances the interval 1 -> 6 -> round(previous interval *
    ease factor) days, using the ease factor the card had before this review.
    A failed one resets repetitions and schedules the card for tomorrow. The
    ease factor is updated either way.
    """
    q = parse_quality(quality)
    now = as_utc(now) if now else utcnow()
    ease_factor = next_ease_factor(state.ease_factor, q)
    if q < PASSING_QUALITY:
        repetitions = 0
        interval = FIRST_INTERVAL_DAYS
    else:
        repetitions = state.repetitions + 1
        if repetitions == 1:
            interval = FIRST_INTERVAL_DAYS
        elif repetitions == 2:
            interval = SECOND_INTERVAL_DAYS
        else:
            # half-up rounding
            interval = max(1, int(state.interval * state.ease_factor + 0.5))
    return state.model_copy(update={
        'repetitions': repetitions,
        'ease_factor': ease_factor,
        'interval': interval,
        'next_review_date': now + timedelta(days=interval),
        'last_reviewed_at': now,
    })


def is_due(state: FlashcardState, now: Optional[datetime] = None) -> bool:
    now = as_utc(now) if now else utcnow()
    return state.next_review_date <= now


def due_cards(cards: Iterable[FlashcardState], now: Optional[datetime] = None) -> List[FlashcardState]:
    now = as_utc(now) if now else utcnow()
    return sorted((c for c in cards if is_due(c, now)), key=lambda c: c.next_review_date)
