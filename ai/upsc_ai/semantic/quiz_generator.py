import os
import re
import time
from typing import List, Optional, Dict, Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from upsc_ai.errors import InputValidationError
from upsc_ai.providers import LLMClient, AIResponse, Tier
from upsc_ai.utils import get_logger, log_quiz_generation, log_parse_fallback
from .llm_parser import ParseTier

LOG = get_logger()

OPTION_LETTERS = ('A', 'B', 'C', 'D')
DIFFICULTIES = ('Easy', 'Medium', 'Hard')

# Env
QUIZ_MAX_QUESTIONS = int(os.getenv('QUIZ_MAX_QUESTIONS', '20'))
QUIZ_DEFAULT_COUNT = int(os.getenv('QUIZ_DEFAULT_COUNT', '5'))
QUIZ_TEMPERATURE = float(os.getenv('QUIZ_TEMPERATURE', '0.7'))

_QUESTION_MARKER = re.compile(r'Q\d+\.\s+')
_OPTION_LINE = re.compile(r'^\(?([A-Da-d])\)\s*(.*)$')
_CORRECT_LINE = re.compile(r'^correct(?:\s+answer)?\s*:\s*(.*)$', re.IGNORECASE)
_EXPLANATION_LINE = re.compile(r'^explanation\s*:\s*(.*)$', re.IGNORECASE)
_ANSWER_LETTER = re.compile(r'^\(?([A-Da-d])\b\)?')


class QuizValidationError(InputValidationError):
    pass


class QuizQuestion(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    question: str
    options: List[str]
    correct_answer: str = Field(..., alias='correctAnswer')
    explanation: str = 'No explanation provided.'

    @field_validator('question')
    @classmethod
    def stem_not_empty(cls, v):
        if not v or not v.strip():
            raise ValueError('question stem is empty')
        return v.strip()

    @field_validator('options')
    @classmethod
    def four_populated_options(cls, v):
        if len(v) != 4:
            raise ValueError('exactly 4 options are required')
        if any(not o or not o.strip() for o in v):
            raise ValueError('options must be non-empty')
        return [o.strip() for o in v]

    @field_validator('correct_answer')
    @classmethod
    def answer_letter(cls, v):
        v = (v or '').strip().upper()
        if v not in OPTION_LETTERS:
            raise ValueError('correctAnswer must be one of A, B, C, D')
        return v


class QuizParseResult(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    questions: List[QuizQuestion]
    tier: ParseTier
    needs_review: bool = Field(False, alias='needsReview')
    rejected_blocks: int = Field(0, alias='rejectedBlocks')


def placeholder_question(subject: str) -> QuizQuestion:
    subject = (subject or 'General Studies').strip() or 'General Studies'
    return QuizQuestion(
        question=f'The generated {subject} quiz could not be read. Which option should you choose to get a fresh set of questions?',
        options=[
            f'Regenerate the {subject} quiz',
            f'Review {subject} notes first',
            'Try a different difficulty',
            'Contact support',
        ],
        correct_answer='A',
        explanation='This placeholder was shown because the AI response did not contain any complete questions. Please regenerate the quiz.',
    )


def _clean(line: str) -> str:
    # markdown emphasis around markers ("**Correct:** B")
    return re.sub(r'[*_]{2,}', '', line).strip()


def _parse_block(block: str) -> Optional[QuizQuestion]:
    lines = [_clean(l) for l in block.splitlines()]
    lines = [l for l in lines if l]
    if not lines:
        return None
    stem = lines[0]
    options: List[str] = []
    correct = ''
    explanation = ''
    for line in lines[1:]:
        m = _OPTION_LINE.match(line)
        if m:
            options.append(m.group(2).strip())
            continue
        m = _CORRECT_LINE.match(line)
        if m:
            letter = _ANSWER_LETTER.match(m.group(1).strip())
            correct = letter.group(1).upper() if letter else ''
            continue
        m = _EXPLANATION_LINE.match(line)
        if m:
            explanation = m.group(1).strip()
    if not stem or len(options) != 4 or not correct:
        return None
    try:
        return QuizQuestion(question=stem, options=options, correct_answer=correct, explanation=explanation or 'No explanation provided.')
    except ValueError:
        return None


def parse_quiz_questions(text: str, subject: str) -> QuizParseResult:
    """Read ``Q<n>.`` blocks out of model text.

    A marker is ``Q<n>.`` followed by whitespace, wherever it appears, so a
    question run on after a preamble on the same line is still found.

    Incomplete blocks are dropped whole. If nothing survives, a single
    placeholder question for ``subject`` is returned with ``needs_review`` set.
    """
    text = text or ''
    markers = list(_QUESTION_MARKER.finditer(text))
    questions: List[QuizQuestion] = []
    rejected = 0
    for i, m in enumerate(markers):
        end = markers[i + 1].start() if i + 1 < len(markers) else len(text)
        q = _parse_block(text[m.end():end])
        if q is None:
            rejected += 1
        else:
            questions.append(q)
    if not questions:
        return QuizParseResult(questions=[placeholder_question(subject)], tier=ParseTier.FALLBACK, needs_review=True, rejected_blocks=rejected)
    return QuizParseResult(questions=questions, tier=ParseTier.PARSED, needs_review=False, rejected_blocks=rejected)


def score_quiz(questions: List[QuizQuestion], answers: Dict[Any, str]) -> Dict[str, Any]:
    """Score user answers against parsed questions.

    ``answers`` maps the 0-based question index (int or numeric string, as it
    arrives from JSON) to the chosen letter. Unanswered questions score 0.
    """
    normalized: Dict[int, str] = {}
    for k, v in (answers or {}).items():
        try:
            idx = int(k)
        except (TypeError, ValueError):
            raise QuizValidationError(f'invalid question index: {k}')
        normalized[idx] = str(v).strip().upper() if v is not None else None

    results = []
    score = 0
    for idx, q in enumerate(questions):
        user_ans = normalized.get(idx)
        correct = user_ans == q.correct_answer
        if correct:
            score += 1
        results.append({
            'questionIndex': idx,
            'correct': correct,
            'userAnswer': user_ans,
            'correctAnswer': q.correct_answer,
            'explanation': q.explanation,
        })
    total = len(questions)
    percentage = round(score * 100.0 / total, 1) if total else 0.0
    return {'score': score, 'total': total, 'percentage': percentage, 'results': results}


class QuizGenerator:
    _instance = None

    def __init__(self, client: Optional[LLMClient] = None):
        self.client = client or LLMClient.get_instance()
        self.temperature = QUIZ_TEMPERATURE

    @classmethod
    def get_instance(cls):
        if cls._instance is None:
            cls._instance = QuizGenerator()
        return cls._instance

    def _build_system_prompt(self) -> str:
        return (
            "You are an expert UPSC question paper setter. Create high-quality, exam-standard MCQs that test "
            "factual knowledge and conceptual understanding. Ensure questions are accurate and align with the UPSC syllabus."
        )

    def _build_user_prompt(self, subject: str, difficulty: str, count: int, topics: Optional[List[str]]) -> str:
        topics_text = f"Focus on these topics: {', '.join(topics)}\n" if topics else ''
        return (
            f"Generate {count} UPSC Prelims style MCQs for {subject}.\n"
            f"Difficulty: {difficulty}\n"
            f"{topics_text}\n"
            "Format each question EXACTLY as:\n"
            "Q1. [Question text]\n"
            "A) [Option A]\nB) [Option B]\nC) [Option C]\nD) [Option D]\n"
            "Correct: [A/B/C/D]\n"
            "Explanation: [Brief explanation]\n\n"
            "Requirements:\n"
            "- Questions should be factual and UPSC-relevant\n"
            "- All options should be plausible\n"
            "- Explanations should be concise but educational"
        )

    def validate_request(self, subject: Optional[str], difficulty: str, count: int) -> None:
        if not subject or not str(subject).strip():
            raise QuizValidationError('Subject is required')
        if difficulty not in DIFFICULTIES:
            raise QuizValidationError(f"difficulty must be one of {'|'.join(DIFFICULTIES)}")
        if isinstance(count, bool) or not isinstance(count, int) or count < 1 or count > QUIZ_MAX_QUESTIONS:
            raise QuizValidationError(f'count must be 1-{QUIZ_MAX_QUESTIONS}')

    async def request(self, subject: str, difficulty: str = 'Medium', count: int = QUIZ_DEFAULT_COUNT, topics: Optional[List[str]] = None, request_id: Optional[str] = None) -> AIResponse:
        return await self.client.complete(
            self._build_user_prompt(subject, difficulty, count, topics),
            tier=Tier.FAST,
            temperature=self.temperature,
            system_prompt=self._build_system_prompt(),
            request_id=request_id,
        )

    def parse(self, response: AIResponse, subject: str, requested: int, request_id: Optional[str] = None, started: Optional[float] = None) -> QuizParseResult:
        result = parse_quiz_questions(response.text, subject)
        if result.needs_review:
            log_parse_fallback('quiz', result.tier.value, reason=f'{result.rejected_blocks} incomplete blocks', request_id=request_id)
        duration_ms = int((time.time() - started) * 1000) if started else 0
        log_quiz_generation(request_id, subject, requested, len(result.questions), result.needs_review, duration_ms)
        return result
