from __future__ import annotations

import os
import re
import time
from typing import Optional, List

from pydantic import BaseModel, ConfigDict, Field

from upsc_ai.errors import InputValidationError
from upsc_ai.providers import LLMClient, AIResponse, Tier
from upsc_ai.utils import get_logger, log_summarization

from .cache_manager import CacheManager

LOG = get_logger()


class SummarizerValidationError(InputValidationError):
    pass


class SummaryResult(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    summary: str
    gs_paper: Optional[int] = Field(None, ge=1, le=4, alias='gsPaper')
    topics: List[str] = Field(default_factory=list)


# Config
SUMMARY_WORDS = int(os.getenv('SUMMARY_WORDS', '60'))
SUMMARIZER_MAX_TEXT_LENGTH = int(os.getenv('SUMMARIZER_MAX_TEXT_LENGTH', '30000'))

_GS_PAPER_LINE = re.compile(r'^[\s*\-]*(?:primary\s+)?gs\s+paper\s*:?\s*\[?\s*(?:gs\s*-?\s*)?([1-4])\b', re.IGNORECASE)
_TOPICS_LINE = re.compile(r'^[\s*\-]*topics\s*:\s*(.*)$', re.IGNORECASE)


def parse_summary(text: str) -> SummaryResult:
    """Split model text into the summary body and its GS paper / topic tags.

    The tag lines are optional; when absent the whole text is the summary.
    """
    gs_paper = None
    topics: List[str] = []
    body = []
    for line in (text or '').splitlines():
        cleaned = line.replace('**', '')
        m = _GS_PAPER_LINE.match(cleaned)
        if m:
            if gs_paper is None:
                gs_paper = int(m.group(1))
            continue
        m = _TOPICS_LINE.match(cleaned)
        if m:
            raw = m.group(1).strip().strip('[]')
            topics.extend(t.strip() for t in raw.split(',') if t.strip())
            continue
        body.append(line)
    summary = '\n'.join(body).strip() or (text or '').strip()
    return SummaryResult(summary=summary, gs_paper=gs_paper, topics=topics)


class Summarizer:
    _instance = None

    def __init__(self, client: Optional[LLMClient] = None, cache: Optional[CacheManager] = None):
        self.client = client or LLMClient.get_instance()
        self.cache = cache or CacheManager.get_instance()

    @classmethod
    def get_instance(cls) -> 'Summarizer':
        if cls._instance is None:
            cls._instance = Summarizer()
        return cls._instance

    def _build_prompt(self, article: str) -> str:
        return (
            f"Summarize this article in exactly {SUMMARY_WORDS} words for UPSC preparation.\n\n"
            f"Article: {article}\n\n"
            "Focus on:\n"
            "1. Main argument or news point\n"
            "2. Government policy angle (if any)\n"
            "3. UPSC relevance (which GS paper/topic)\n\n"
            "Also identify:\n"
            "- Primary GS Paper: [1/2/3/4]\n"
            "- Topics: [comma-separated relevant topics]"
        )

    def validate_request(self, text: Optional[str]) -> None:
        if not text or not str(text).strip():
            raise SummarizerValidationError('Text is required')
        if len(text) > SUMMARIZER_MAX_TEXT_LENGTH:
            raise SummarizerValidationError(f'Text too long ({len(text)} > {SUMMARIZER_MAX_TEXT_LENGTH})')

    async def request(self, text: str, request_id: Optional[str] = None) -> AIResponse:
        start = time.time()
        cached = await self.cache.get(text)
        if cached:
            log_summarization(request_id, len(text.split()), int((time.time() - start) * 1000), cache_hit=True)
            # cached answers cost no provider tokens
            return AIResponse(text=cached['text'], tokens_used=0, model=cached.get('model', 'cache'))
        resp = await self.client.complete(
            self._build_prompt(text),
            tier=Tier.FAST,
            system_prompt='You are a UPSC current affairs expert. Create concise, exam-focused summaries that capture the essence for aspirants.',
            request_id=request_id,
        )
        await self.cache.set(text, {'text': resp.text, 'model': resp.model})
        log_summarization(request_id, len(text.split()), int((time.time() - start) * 1000), cache_hit=False)
        return resp

    def parse(self, response: AIResponse) -> SummaryResult:
        return parse_summary(response.text)
