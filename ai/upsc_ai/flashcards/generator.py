from __future__ import annotations

import os
import time
from typing import Optional, List, Dict, Any, Tuple

from pydantic import BaseModel

from upsc_ai.errors import InputValidationError
from upsc_ai.providers import LLMClient, AIResponse, Tier
from upsc_ai.semantic.llm_parser import ParseFailure, ParseTier, extract_json_object
from upsc_ai.utils import get_logger, log_flashcard_generation, log_parse_fallback

LOG = get_logger()


class FlashcardValidationError(InputValidationError):
    pass


class GeneratedFlashcard(BaseModel):
    front: str
    back: str
    topic: str


# Config
FLASHCARD_TEMPERATURE = float(os.getenv('FLASHCARD_TEMPERATURE', '0.3'))
FLASHCARD_DEFAULT_COUNT = int(os.getenv('FLASHCARD_DEFAULT_COUNT', '10'))
FLASHCARD_MAX_COUNT = int(os.getenv('FLASHCARD_MAX_COUNT', '50'))
FLASHCARD_MAX_TEXT_LENGTH = int(os.getenv('FLASHCARD_MAX_TEXT_LENGTH', '30000'))


def placeholder_flashcard(topic: Optional[str]) -> GeneratedFlashcard:
    topic = (topic or '').strip() or 'General'
    return GeneratedFlashcard(
        front=f'What are the key points of {topic}?',
        back='Flashcards could not be generated from this text automatically. Review the source material and try again.',
        topic=topic,
    )


def _text(value: Any) -> str:
    if value is None:
        return ''
    return value.strip() if isinstance(value, str) else str(value).strip()


def normalize_flashcards(data: Dict[str, Any], topic: Optional[str], count: int) -> List[GeneratedFlashcard]:
    default_topic = (topic or '').strip() or 'General'
    items = data.get('flashcards')
    if not isinstance(items, list):
        items = data.get('cards') if isinstance(data.get('cards'), list) else []
    out: List[GeneratedFlashcard] = []
    for item in items:
        if not isinstance(item, dict):
            continue
        front = _text(item.get('front') or item.get('question'))
        back = _text(item.get('back') or item.get('answer'))
        if not front or not back:
            continue
        out.append(GeneratedFlashcard(front=front, back=back, topic=_text(item.get('topic')) or default_topic))
        if len(out) >= count:
            break
    return out


def parse_flashcards(text: str, topic: Optional[str], count: int) -> Tuple[List[GeneratedFlashcard], ParseTier]:
    """Return at most ``count`` cards; a single placeholder card when none are usable."""
    try:
        data, tier = extract_json_object(text)
    except ParseFailure:
        return [placeholder_flashcard(topic)], ParseTier.FALLBACK
    cards = normalize_flashcards(data, topic, count)
    if not cards:
        return [placeholder_flashcard(topic)], ParseTier.FALLBACK
    return cards, tier


class FlashcardGenerator:
    _instance = None

    def __init__(self, client: Optional[LLMClient] = None):
        self.client = client or LLMClient.get_instance()

    @classmethod
    def get_instance(cls) -> 'FlashcardGenerator':
        if cls._instance is None:
            cls._instance = FlashcardGenerator()
        return cls._instance

    def _build_prompt(self, text: str, count: int, topic: Optional[str]) -> str:
        topic_line = f'All cards belong to the topic "{topic}".\n' if topic else ''
        return (
            f"Extract {count} key concepts from this text and create flashcards.\n\n"
            f"Text: {text}\n\n"
            f"{topic_line}"
            'Create flashcards in this EXACT JSON format:\n'
            '{"flashcards": [{"front": "<Question or term>", "back": "<Answer or definition>", "topic": "<Topic/Subject>"}]}\n\n'
            "Requirements:\n"
            "- Focus on UPSC-relevant facts\n"
            "- Questions should be specific and testable\n"
            "- Answers should be concise (under 50 words)\n"
            "- Return ONLY valid JSON, no other text"
        )

    def validate_request(self, text: Optional[str], count) -> None:
        if not text or not str(text).strip():
            raise FlashcardValidationError('Text content is required')
        if len(text) > FLASHCARD_MAX_TEXT_LENGTH:
            raise FlashcardValidationError(f'Text too long ({len(text)} > {FLASHCARD_MAX_TEXT_LENGTH})')
        if isinstance(count, bool) or not isinstance(count, int) or count < 1 or count > FLASHCARD_MAX_COUNT:
            raise FlashcardValidationError(f'count must be 1-{FLASHCARD_MAX_COUNT}')

    async def request(self, text: str, count: int = FLASHCARD_DEFAULT_COUNT, topic: Optional[str] = None, request_id: Optional[str] = None) -> AIResponse:
        return await self.client.complete(
            self._build_prompt(text, count, topic),
            tier=Tier.FAST,
            temperature=FLASHCARD_TEMPERATURE,
            system_prompt='You are a UPSC preparation expert creating study materials. Always respond with valid JSON only.',
            request_id=request_id,
        )

    def parse(self, response: AIResponse, topic: Optional[str], count: int, request_id: Optional[str] = None, started: Optional[float] = None):
        cards, tier = parse_flashcards(response.text, topic, count)
        if tier != ParseTier.STRICT:
            log_parse_fallback('flashcards', tier.value, request_id=request_id)
        duration_ms = int((time.time() - started) * 1000) if started else 0
        log_flashcard_generation(request_id, len(cards), tier.value, duration_ms)
        return cards, tier
