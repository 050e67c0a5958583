import os
import hmac
import time
from datetime import datetime, timezone
from typing import Optional, List, Dict, Any

from fastapi import FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel
from redis.exceptions import RedisError

from upsc_ai import __version__
from upsc_ai.config import settings
from upsc_ai.errors import InputValidationError
from upsc_ai.credits import AIAction, compute_cost, CreditLedger
from upsc_ai.providers import LLMClient
from upsc_ai.pipeline import RequestOrchestrator, ActionResult, Parsed
from upsc_ai.semantic import (
    QuizGenerator,
    QuizQuestion,
    QuizValidationError,
    score_quiz,
    EssayGrader,
    MindmapGenerator,
    Summarizer,
    ChatTutor,
    ParseTier,
)
from upsc_ai.flashcards import (
    FlashcardGenerator,
    FlashcardStore,
    FlashcardNotFoundError,
    new_flashcard,
    parse_quality,
)
from upsc_ai.history import HistoryStore, HistoryRecord, HistoryKind, HISTORY_DEFAULT_LIMIT
from upsc_ai.utils import get_logger, set_request_context, get_redis

LOG = get_logger()

app = FastAPI(title='UPSC Prep AI Service', version=__version__, description='Credit-gated AI study tools for UPSC preparation')

# CORS config
origins = [o.strip() for o in settings.CORS_ORIGIN.split(',') if o.strip()]
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins or ["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

@app.middleware('http')
async def add_request_id_and_logging(request: Request, call_next):
    # prefer incoming X-Request-ID header for cross-service tracing
    request_id = request.headers.get('x-request-id') or os.urandom(8).hex()
    user_id = (request.headers.get('x-user-id') or '').strip() or None
    request.state.request_id = request_id
    request.state.user_id = user_id
    set_request_context(request_id, user_id)
    start = time.time()
    LOG.info('http_request_start', extra={'method': request.method, 'path': request.url.path, 'request_id': request_id, 'client': request.client.host if request.client else None})
    try:
        response: Response = await call_next(request)
    except Exception:
        LOG.exception('Unhandled exception in request', exc_info=True)
        body = {'success': False, 'error': 'Internal server error', 'request_id': request_id}
        return JSONResponse(status_code=500, content=body, headers={'X-Request-ID': request_id})
    duration = int((time.time() - start) * 1000)
    LOG.info('http_request_end', extra={'method': request.method, 'path': request.url.path, 'status_code': response.status_code, 'duration_ms': duration, 'request_id': request_id})
    # echo back the request id for downstream tracing
    response.headers['X-Request-ID'] = request_id
    return response

@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    request_id = getattr(request.state, 'request_id', None)
    LOG.info('request_validation_failed', extra={'request_id': request_id, 'path': request.url.path})
    return JSONResponse(status_code=400, content={'success': False, 'error': 'Invalid request body', 'details': str(exc.errors()), 'request_id': request_id})

def _request_id(request: Request) -> str:
    return getattr(request.state, 'request_id', None) or os.urandom(8).hex()

def _error(status_code: int, error: str, request_id: str, details: Optional[str] = None) -> JSONResponse:
    body = {'success': False, 'error': error, 'request_id': request_id}
    if details:
        body['details'] = details
    return JSONResponse(status_code=status_code, content=body)

def _unauthenticated(request_id: str) -> JSONResponse:
    return _error(401, 'Authentication required', request_id, details='X-User-ID header is missing')

def _action_body(result: ActionResult, request_id: str, **payload) -> Dict[str, Any]:
    body = {'success': True}
    body.update(payload)
    body.update({
        'tokensUsed': result.tokens_used,
        'model': result.model,
        'creditsCharged': result.credits_charged,
        'needsReview': result.needs_review,
        'request_id': request_id,
    })
    return body

async def _save_history(user_id: str, kind: HistoryKind, data: Dict[str, Any], tokens_used: int = 0, model: Optional[str] = None) -> Optional[str]:
    record = await HistoryStore.get_instance().add(HistoryRecord(user_id=user_id, kind=kind, data=data, tokens_used=tokens_used, model=model))
    return record.id if record is not None else None

class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

class QuizRequest(CamelModel):
    subject: Optional[str] = None
    difficulty: str = 'Medium'
    count: int = 5
    topics: List[str] = Field(default_factory=list)

class GradeRequest(CamelModel):
    question: Optional[str] = None
    answer: Optional[str] = None
    word_limit: int = 250
    mode: str = 'standard'

class FlashcardsGenerateRequest(CamelModel):
    text: Optional[str] = None
    count: int = 10
    topic: Optional[str] = None
    save: bool = Field(False, description='Persist generated cards to the caller\'s deck')

class MindmapRequest(CamelModel):
    topic: Optional[str] = None
    subject: Optional[str] = None

class ChatMessage(CamelModel):
    role: str
    content: str

class ChatRequest(CamelModel):
    message: Optional[str] = None
    subject: Optional[str] = None
    mode: str = 'socratic'
    conversation_history: List[ChatMessage] = Field(default_factory=list)

class SummarizeRequest(CamelModel):
    text: Optional[str] = None

class ExplainRequest(CamelModel):
    question: Optional[str] = None
    answer: Optional[str] = None
    subject: Optional[str] = None

class GrantRequest(CamelModel):
    user_id: Optional[str] = None
    amount: int

class FlashcardCreateRequest(CamelModel):
    front: Optional[str] = None
    back: Optional[str] = None
    topic: Optional[str] = None
    subject: Optional[str] = None
    difficulty: str = 'Medium'

class ReviewRequest(CamelModel):
    quality: Any = None

class QuizScoreRequest(CamelModel):
    questions: List[Dict[str, Any]] = Field(default_factory=list)
    answers: Dict[str, Optional[str]] = Field(default_factory=dict)
    subject: Optional[str] = None
    difficulty: Optional[str] = None
    # echoed from the /api/ai/quiz response so the saved result keeps them
    tokens_used: int = Field(0, ge=0)
    model: Optional[str] = None

@app.get('/health')
async def health():
    return {'status': 'ok', 'timestamp': datetime.now(timezone.utc).isoformat(), 'service': 'upsc-ai', 'version': __version__}

async def _check_redis() -> str:
    client = get_redis()
    if client is None:
        return 'disabled'
    try:
        await client.ping()
        return 'ok'
    except (RedisError, OSError) as e:
        return f'error: {str(e)}'

def _check_llm() -> str:
    if LLMClient.get_instance().configured:
        return 'ok'
    if settings.LLM_REQUIRED_FOR_READY:
        return 'error: no llm api key'
    return 'warn: no llm api key'

@app.get('/ready')
async def ready():
    services = {
        'redis': await _check_redis(),
        'llm': _check_llm(),
        'ledger': CreditLedger.get_instance().backend,
    }
    ready_ok = True
    if settings.REDIS_REQUIRED_FOR_READY and not services['redis'] == 'ok':
        ready_ok = False
    if settings.LLM_REQUIRED_FOR_READY and services['llm'].startswith('error'):
        ready_ok = False
    status_code = 200 if ready_ok else 503
    return JSONResponse(status_code=status_code, content={'status': 'ready' if ready_ok else 'not ready', 'services': services})

@app.post('/api/ai/quiz')
async def ai_quiz(req: QuizRequest, fastapi_request: Request):
    request_id = _request_id(fastapi_request)
    user_id = fastapi_request.state.user_id
    if not user_id:
        return _unauthenticated(request_id)
    gen = QuizGenerator.get_instance()
    try:
        gen.validate_request(req.subject, req.difficulty, req.count)
    except InputValidationError as e:
        return _error(400, str(e), request_id)

    started = time.time()

    def parse(resp):
        result = gen.parse(resp, req.subject, req.count, request_id=request_id, started=started)
        return Parsed(result, result.needs_review)

    result = await RequestOrchestrator.get_instance().execute(
        user_id, AIAction.QUIZ.value, compute_cost(AIAction.QUIZ, size=req.count),
        call=lambda: gen.request(req.subject, req.difficulty, req.count, req.topics, request_id=request_id),
        parse=parse,
        request_id=request_id,
    )
    if not result.success:
        return JSONResponse(status_code=result.status_code, content=result.error_body(request_id))
    questions = [q.model_dump(by_alias=True) for q in result.data.questions]
    return _action_body(result, request_id, questions=questions, rawResponse=result.raw_text)

@app.post('/api/ai/grade')
async def ai_grade(req: GradeRequest, fastapi_request: Request):
    request_id = _request_id(fastapi_request)
    user_id = fastapi_request.state.user_id
    if not user_id:
        return _unauthenticated(request_id)
    grader = EssayGrader.get_instance()
    try:
        grader.validate_request(req.question, req.answer, req.word_limit, req.mode)
    except InputValidationError as e:
        return _error(400, str(e), request_id)

    started = time.time()

    def parse(resp):
        grading, tier = grader.parse(resp, mode=req.mode, request_id=request_id, started=started)
        return Parsed(grading, tier == ParseTier.FALLBACK)

    result = await RequestOrchestrator.get_instance().execute(
        user_id, AIAction.GRADE.value, compute_cost(AIAction.GRADE, mode=req.mode),
        call=lambda: grader.request(req.question, req.answer, req.word_limit, req.mode, request_id=request_id),
        parse=parse,
        request_id=request_id,
    )
    if not result.success:
        return JSONResponse(status_code=result.status_code, content=result.error_body(request_id))
    grading = result.data.model_dump(by_alias=True)
    history_id = None
    # fallback gradings are placeholders, not the student's result
    if not result.needs_review:
        history_id = await _save_history(user_id, HistoryKind.GRADING, {
            'question': req.question,
            'answer': req.answer,
            'wordCount': len(req.answer.split()),
            'wordLimit': req.word_limit,
            'mode': req.mode,
            'grading': grading,
        }, result.tokens_used, result.model)
    return _action_body(result, request_id, grading=grading, historyId=history_id)

@app.post('/api/ai/flashcards')
async def ai_flashcards(req: FlashcardsGenerateRequest, fastapi_request: Request):
    request_id = _request_id(fastapi_request)
    user_id = fastapi_request.state.user_id
    if not user_id:
        return _unauthenticated(request_id)
    gen = FlashcardGenerator.get_instance()
    try:
        gen.validate_request(req.text, req.count)
    except InputValidationError as e:
        return _error(400, str(e), request_id)

    started = time.time()

    def parse(resp):
        cards, tier = gen.parse(resp, req.topic, req.count, request_id=request_id, started=started)
        return Parsed(cards, tier == ParseTier.FALLBACK)

    result = await RequestOrchestrator.get_instance().execute(
        user_id, AIAction.FLASHCARDS.value, compute_cost(AIAction.FLASHCARDS),
        call=lambda: gen.request(req.text, req.count, req.topic, request_id=request_id),
        parse=parse,
        request_id=request_id,
    )
    if not result.success:
        return JSONResponse(status_code=result.status_code, content=result.error_body(request_id))
    if req.save and not result.needs_review:
        saved = await FlashcardStore.get_instance().add_many([new_flashcard(user_id, c.front, c.back, topic=c.topic) for c in result.data])
        flashcards = [c.model_dump(mode='json', by_alias=True) for c in saved]
    else:
        flashcards = [c.model_dump() for c in result.data]
    return _action_body(result, request_id, flashcards=flashcards)

@app.post('/api/ai/mindmap')
async def ai_mindmap(req: MindmapRequest, fastapi_request: Request):
    request_id = _request_id(fastapi_request)
    user_id = fastapi_request.state.user_id
    if not user_id:
        return _unauthenticated(request_id)
    gen = MindmapGenerator.get_instance()
    try:
        gen.validate_request(req.topic)
    except InputValidationError as e:
        return _error(400, str(e), request_id)
    topic = req.topic.strip()

    started = time.time()

    def parse(resp):
        root, tier = gen.parse(resp, topic, request_id=request_id, started=started)
        return Parsed(root, tier == ParseTier.FALLBACK)

    result = await RequestOrchestrator.get_instance().execute(
        user_id, AIAction.MINDMAP.value, compute_cost(AIAction.MINDMAP),
        call=lambda: gen.request(topic, req.subject, request_id=request_id),
        parse=parse,
        request_id=request_id,
    )
    if not result.success:
        return JSONResponse(status_code=result.status_code, content=result.error_body(request_id))
    mind_map = result.data.model_dump(exclude_none=True)
    history_id = None
    if not result.needs_review:
        history_id = await _save_history(user_id, HistoryKind.MINDMAP, {'topic': topic, 'subject': req.subject, 'mindMap': mind_map}, result.tokens_used, result.model)
    return _action_body(result, request_id, mindMap=mind_map, historyId=history_id)

@app.post('/api/ai/chat')
async def ai_chat(req: ChatRequest, fastapi_request: Request):
    request_id = _request_id(fastapi_request)
    user_id = fastapi_request.state.user_id
    if not user_id:
        return _unauthenticated(request_id)
    tutor = ChatTutor.get_instance()
    try:
        tutor.validate_request(req.message, req.mode, req.conversation_history)
    except InputValidationError as e:
        return _error(400, str(e), request_id)
    history = [m.model_dump() for m in req.conversation_history]

    result = await RequestOrchestrator.get_instance().execute(
        user_id, AIAction.CHAT.value, compute_cost(AIAction.CHAT, mode=req.mode),
        call=lambda: tutor.chat(req.message, req.subject, req.mode, history, request_id=request_id),
        parse=lambda resp: resp.text,
        request_id=request_id,
    )
    if not result.success:
        return JSONResponse(status_code=result.status_code, content=result.error_body(request_id))
    return _action_body(result, request_id, response=result.data)

@app.post('/api/ai/summarize')
async def ai_summarize(req: SummarizeRequest, fastapi_request: Request):
    request_id = _request_id(fastapi_request)
    user_id = fastapi_request.state.user_id
    if not user_id:
        return _unauthenticated(request_id)
    summarizer = Summarizer.get_instance()
    try:
        summarizer.validate_request(req.text)
    except InputValidationError as e:
        return _error(400, str(e), request_id)

    result = await RequestOrchestrator.get_instance().execute(
        user_id, AIAction.SUMMARIZE.value, compute_cost(AIAction.SUMMARIZE),
        call=lambda: summarizer.request(req.text, request_id=request_id),
        parse=summarizer.parse,
        request_id=request_id,
    )
    if not result.success:
        return JSONResponse(status_code=result.status_code, content=result.error_body(request_id))
    summary = result.data
    return _action_body(result, request_id, summary=summary.summary, gsPaper=summary.gs_paper, topics=summary.topics)

@app.post('/api/ai/explain')
async def ai_explain(req: ExplainRequest, fastapi_request: Request):
    request_id = _request_id(fastapi_request)
    user_id = fastapi_request.state.user_id
    if not user_id:
        return _unauthenticated(request_id)
    tutor = ChatTutor.get_instance()
    try:
        tutor.validate_explain(req.question)
    except InputValidationError as e:
        return _error(400, str(e), request_id)

    result = await RequestOrchestrator.get_instance().execute(
        user_id, AIAction.EXPLAIN.value, compute_cost(AIAction.EXPLAIN),
        call=lambda: tutor.explain(req.question, req.answer, req.subject, request_id=request_id),
        parse=lambda resp: resp.text,
        request_id=request_id,
    )
    if not result.success:
        return JSONResponse(status_code=result.status_code, content=result.error_body(request_id))
    return _action_body(result, request_id, explanation=result.data)

@app.get('/api/credits/balance')
async def credits_balance(fastapi_request: Request):
    request_id = _request_id(fastapi_request)
    user_id = fastapi_request.state.user_id
    if not user_id:
        return _unauthenticated(request_id)
    balance = await CreditLedger.get_instance().get_balance(user_id)
    return {'success': True, 'userId': user_id, 'balance': balance, 'request_id': request_id}

@app.post('/api/credits/grant')
async def credits_grant(req: GrantRequest, fastapi_request: Request):
    request_id = _request_id(fastapi_request)
    admin_key = fastapi_request.headers.get('x-admin-key') or ''
    if not settings.ADMIN_API_KEY or not hmac.compare_digest(admin_key, settings.ADMIN_API_KEY):
        LOG.warning('credit_grant_forbidden', extra={'request_id': request_id})
        return _error(403, 'Forbidden', request_id)
    if not req.user_id or not req.user_id.strip():
        return _error(400, 'userId is required', request_id)
    try:
        balance = await CreditLedger.get_instance().credit(req.user_id.strip(), req.amount, request_id=request_id)
    except ValueError as e:
        return _error(400, 'Invalid amount', request_id, details=str(e))
    return {'success': True, 'userId': req.user_id.strip(), 'balance': balance, 'request_id': request_id}

@app.post('/api/flashcards')
async def flashcards_create(req: FlashcardCreateRequest, fastapi_request: Request):
    request_id = _request_id(fastapi_request)
    user_id = fastapi_request.state.user_id
    if not user_id:
        return _unauthenticated(request_id)
    if not req.front or not req.front.strip() or not req.back or not req.back.strip():
        return _error(400, 'front and back are required', request_id)
    card = new_flashcard(user_id, req.front, req.back, topic=req.topic, subject=req.subject, difficulty=req.difficulty)
    await FlashcardStore.get_instance().add(card)
    return {'success': True, 'flashcard': card.model_dump(mode='json', by_alias=True), 'request_id': request_id}

@app.get('/api/flashcards')
async def flashcards_list(fastapi_request: Request):
    request_id = _request_id(fastapi_request)
    user_id = fastapi_request.state.user_id
    if not user_id:
        return _unauthenticated(request_id)
    cards = await FlashcardStore.get_instance().list(user_id)
    return {'success': True, 'flashcards': [c.model_dump(mode='json', by_alias=True) for c in cards], 'request_id': request_id}

@app.get('/api/flashcards/due')
async def flashcards_due(fastapi_request: Request):
    request_id = _request_id(fastapi_request)
    user_id = fastapi_request.state.user_id
    if not user_id:
        return _unauthenticated(request_id)
    cards = await FlashcardStore.get_instance().due(user_id)
    return {'success': True, 'flashcards': [c.model_dump(mode='json', by_alias=True) for c in cards], 'count': len(cards), 'request_id': request_id}

@app.post('/api/flashcards/{card_id}/review')
async def flashcards_review(card_id: str, req: ReviewRequest, fastapi_request: Request):
    request_id = _request_id(fastapi_request)
    user_id = fastapi_request.state.user_id
    if not user_id:
        return _unauthenticated(request_id)
    try:
        quality = parse_quality(req.quality)
    except ValueError as e:
        return _error(400, 'Invalid quality', request_id, details=str(e))
    try:
        card = await FlashcardStore.get_instance().review(user_id, card_id, quality)
    except FlashcardNotFoundError:
        return _error(404, 'Flashcard not found', request_id)
    return {'success': True, 'flashcard': card.model_dump(mode='json', by_alias=True), 'request_id': request_id}

@app.delete('/api/flashcards/{card_id}')
async def flashcards_delete(card_id: str, fastapi_request: Request):
    request_id = _request_id(fastapi_request)
    user_id = fastapi_request.state.user_id
    if not user_id:
        return _unauthenticated(request_id)
    try:
        await FlashcardStore.get_instance().delete(user_id, card_id)
    except FlashcardNotFoundError:
        return _error(404, 'Flashcard not found', request_id)
    return {'success': True, 'request_id': request_id}

@app.post('/api/quiz/score')
async def quiz_score(req: QuizScoreRequest, fastapi_request: Request):
    request_id = _request_id(fastapi_request)
    if not req.questions:
        return _error(400, 'questions are required', request_id)
    try:
        questions = [QuizQuestion.model_validate(q) for q in req.questions]
        result = score_quiz(questions, req.answers)
    except ValidationError as e:
        return _error(400, 'Invalid quiz question', request_id, details=str(e))
    except QuizValidationError as e:
        return _error(400, 'Invalid answers', request_id, details=str(e))
    history_id = None
    user_id = fastapi_request.state.user_id
    if user_id:
        answered = [
            {
                'question': q.question,
                'options': q.options,
                'correctAnswer': q.correct_answer,
                'userAnswer': r['userAnswer'],
                'isCorrect': r['correct'],
            }
            for q, r in zip(questions, result['results'])
        ]
        history_id = await _save_history(user_id, HistoryKind.QUIZ, {
            'subject': req.subject,
            'difficulty': req.difficulty,
            'score': result['score'],
            'total': result['total'],
            'percentage': result['percentage'],
            'questions': answered,
        }, req.tokens_used, req.model)
    return {'success': True, **result, 'historyId': history_id, 'request_id': request_id}

async def _history_list(fastapi_request: Request, kind: HistoryKind, limit: int):
    request_id = _request_id(fastapi_request)
    user_id = fastapi_request.state.user_id
    if not user_id:
        return _unauthenticated(request_id)
    try:
        records = await HistoryStore.get_instance().list(user_id, kind, limit)
    except ValueError as e:
        return _error(400, 'Invalid limit', request_id, details=str(e))
    return {'success': True, 'history': [r.model_dump(mode='json', by_alias=True) for r in records], 'count': len(records), 'request_id': request_id}

@app.get('/api/history/quizzes')
async def history_quizzes(fastapi_request: Request, limit: int = HISTORY_DEFAULT_LIMIT):
    return await _history_list(fastapi_request, HistoryKind.QUIZ, limit)

@app.get('/api/history/gradings')
async def history_gradings(fastapi_request: Request, limit: int = HISTORY_DEFAULT_LIMIT):
    return await _history_list(fastapi_request, HistoryKind.GRADING, limit)

@app.get('/api/history/mindmaps')
async def history_mindmaps(fastapi_request: Request, limit: int = HISTORY_DEFAULT_LIMIT):
    return await _history_list(fastapi_request, HistoryKind.MINDMAP, limit)

@app.on_event('startup')
async def on_startup():
    LOG.info('AI service starting', extra={'env': settings.ENVIRONMENT, 'version': __version__})
    if not settings.REDIS_URL:
        LOG.warning('REDIS_URL not set; credits, flashcards and history are kept in memory')
    # warm singletons so configuration problems show up at boot
    llm = LLMClient.get_instance()
    if not llm.configured:
        LOG.warning('LLM API key not set; AI endpoints will fail until it is configured')
    ledger = CreditLedger.get_instance()
    LOG.info('CreditLedger ready', extra={'backend': ledger.backend})
    FlashcardStore.get_instance()
    HistoryStore.get_instance()

@app.on_event('shutdown')
async def on_shutdown():
    LOG.info('AI service shutting down')
    client = get_redis()
    if client is not None:
        await client.aclose()
        LOG.info('redis connection closed')


if __name__ == '__main__':
    import uvicorn

    workers = int(os.getenv('WORKERS', '1'))
    # uvicorn does not support reload with multiple workers
    if settings.ENVIRONMENT == 'development':
        workers = 1
    reload_enabled = (settings.ENVIRONMENT == 'development') and (workers == 1)

    uvicorn.run(
        'main:app',
        host=settings.HOST,
        port=settings.PORT,
        log_level=settings.LOG_LEVEL.lower(),
        reload=reload_enabled,
        workers=workers,
    )
