import os
import time
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from upsc_ai.errors import InputValidationError
from upsc_ai.providers import LLMClient, AIResponse, Tier
from upsc_ai.utils import get_logger, log_grading, log_parse_fallback
from .llm_parser import ParseFailure, ParseTier, extract_json_object, clamp, coerce_str_list

LOG = get_logger()

# marks available per criterion; total is out of 10
BREAKDOWN_LIMITS = {
    'content': 3,
    'structure': 2,
    'accuracy': 3,
    'examples': 2,
}
MAX_TOTAL_SCORE = 10
GRADING_MODES = ('standard', 'deep_pro')

GRADER_TEMPERATURE = float(os.getenv('GRADER_TEMPERATURE', '0.5'))
GRADER_MAX_ANSWER_CHARS = int(os.getenv('GRADER_MAX_ANSWER_CHARS', '20000'))
GRADER_DEFAULT_WORD_LIMIT = int(os.getenv('GRADER_DEFAULT_WORD_LIMIT', '250'))


class GradingValidationError(InputValidationError):
    pass


class GradingBreakdown(BaseModel):
    content: float = Field(0, ge=0, le=3)
    structure: float = Field(0, ge=0, le=2)
    accuracy: float = Field(0, ge=0, le=3)
    examples: float = Field(0, ge=0, le=2)


class GradingResult(BaseModel):
    model_config = ConfigDict(populate_by_name=True, protected_namespaces=())

    total_score: float = Field(0, ge=0, le=10, alias='totalScore')
    breakdown: GradingBreakdown = Field(default_factory=GradingBreakdown)
    strengths: List[str] = Field(default_factory=list)
    weaknesses: List[str] = Field(default_factory=list)
    suggestions: List[str] = Field(default_factory=list)
    model_answer: str = Field('', alias='modelAnswer')


def fallback_grading() -> GradingResult:
    # nothing could be read from the model, so award nothing
    return GradingResult(
        total_score=0,
        breakdown=GradingBreakdown(),
        strengths=[],
        weaknesses=['The answer could not be evaluated automatically.'],
        suggestions=['Please resubmit the answer for grading.'],
        model_answer='',
    )


def normalize_grading(data: dict) -> GradingResult:
    """Clamp every score into range; the total is clamped but not recomputed."""
    raw_breakdown = data.get('breakdown')
    if not isinstance(raw_breakdown, dict):
        raw_breakdown = {}
    breakdown = GradingBreakdown(**{name: clamp(raw_breakdown.get(name), 0, limit) for name, limit in BREAKDOWN_LIMITS.items()})
    if data.get('totalScore') is None:
        total = sum(getattr(breakdown, name) for name in BREAKDOWN_LIMITS)
    else:
        total = data.get('totalScore')
    model_answer = data.get('modelAnswer')
    return GradingResult(
        total_score=clamp(total, 0, MAX_TOTAL_SCORE),
        breakdown=breakdown,
        strengths=coerce_str_list(data.get('strengths')),
        weaknesses=coerce_str_list(data.get('weaknesses')),
        suggestions=coerce_str_list(data.get('suggestions')),
        model_answer=model_answer.strip() if isinstance(model_answer, str) else ('' if model_answer is None else str(model_answer)),
    )


def parse_grading(text: str):
    """Return ``(GradingResult, ParseTier)``; never raises."""
    try:
        data, tier = extract_json_object(text)
    except ParseFailure:
        return fallback_grading(), ParseTier.FALLBACK
    return normalize_grading(data), tier


class EssayGrader:
    _instance = None

    def __init__(self, client: Optional[LLMClient] = None):
        self.client = client or LLMClient.get_instance()

    @classmethod
    def get_instance(cls) -> 'EssayGrader':
        if cls._instance is None:
            cls._instance = EssayGrader()
        return cls._instance

    def _build_system_prompt(self, mode: str) -> str:
        prompt = (
            "You are an experienced UPSC Mains examiner. Be fair but strict. Provide constructive feedback "
            "that helps students improve. Always respond with valid JSON only, no other text."
        )
        if mode == 'deep_pro':
            prompt += " Give a detailed, line-by-line critique and a fuller model answer."
        return prompt

    def _build_user_prompt(self, question: str, answer: str, word_limit: int) -> str:
        return (
            "Grade this UPSC Mains answer.\n\n"
            f"Question: {question}\n"
            f"Word Limit: {word_limit} words\n"
            f"Student's Answer: {answer}\n\n"
            "Evaluate strictly on:\n"
            "1. Content Relevance (0-3 marks)\n"
            "2. Structure & Presentation (0-2 marks)\n"
            "3. Factual Accuracy (0-3 marks)\n"
            "4. Examples & Data (0-2 marks)\n\n"
            "Respond in this EXACT JSON format:\n"
            '{"totalScore": <0-10>, "breakdown": {"content": <0-3>, "structure": <0-2>, "accuracy": <0-3>, "examples": <0-2>}, '
            '"strengths": [], "weaknesses": [], "suggestions": [], "modelAnswer": "<model answer outline>"}'
        )

    def validate_request(self, question: Optional[str], answer: Optional[str], word_limit, mode: str) -> None:
        if not question or not str(question).strip():
            raise GradingValidationError('Question is required')
        if not answer or not str(answer).strip():
            raise GradingValidationError('Answer is required')
        if len(answer) > GRADER_MAX_ANSWER_CHARS:
            raise GradingValidationError(f'Answer too long ({len(answer)} > {GRADER_MAX_ANSWER_CHARS})')
        if isinstance(word_limit, bool) or not isinstance(word_limit, int) or word_limit < 1:
            raise GradingValidationError('wordLimit must be a positive integer')
        if mode not in GRADING_MODES:
            raise GradingValidationError(f"mode must be one of {'|'.join(GRADING_MODES)}")

    async def request(self, question: str, answer: str, word_limit: int = GRADER_DEFAULT_WORD_LIMIT, mode: str = 'standard', request_id: Optional[str] = None) -> AIResponse:
        return await self.client.complete(
            self._build_user_prompt(question, answer, word_limit),
            tier=Tier.SMART,
            temperature=GRADER_TEMPERATURE,
            system_prompt=self._build_system_prompt(mode),
            request_id=request_id,
        )

    def parse(self, response: AIResponse, mode: str = 'standard', request_id: Optional[str] = None, started: Optional[float] = None):
        result, tier = parse_grading(response.text)
        if tier != ParseTier.STRICT:
            log_parse_fallback('grading', tier.value, request_id=request_id)
        duration_ms = int((time.time() - started) * 1000) if started else 0
        log_grading(request_id, result.total_score, tier.value, mode, duration_ms)
        return result, tier
