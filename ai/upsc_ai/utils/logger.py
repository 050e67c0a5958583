import os
import sys
import logging
import pathlib
import contextvars
from logging.handlers import RotatingFileHandler
from pythonjsonlogger import jsonlogger

_request_ctx_var = contextvars.ContextVar('request_ctx', default={})


def set_request_context(request_id: str, user_id: str = None):
    _request_ctx_var.set({'request_id': request_id, 'user_id': user_id})


def get_request_context():
    return _request_ctx_var.get()


def _inject_request_context(record):
    ctx = get_request_context()
    if not getattr(record, 'request_id', None):
        record.request_id = ctx.get('request_id')
    if not getattr(record, 'user_id', None):
        record.user_id = ctx.get('user_id')
    return True


def get_logger(name: str = 'upsc_ai'):
    LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO')
    LOG_FORMAT = os.getenv('LOG_FORMAT', 'json')
    LOG_TO_FILE = os.getenv('LOG_TO_FILE', 'true').lower() in ('1', 'true', 'yes')
    # default to a relative logs directory so local dev doesn't require /app
    LOG_FILE_PATH = os.getenv('LOG_FILE_PATH', 'logs')
    LOG_MAX_SIZE = int(os.getenv('LOG_MAX_SIZE', str(10 * 1024 * 1024)))
    LOG_MAX_FILES = int(os.getenv('LOG_MAX_FILES', '7'))

    logger = logging.getLogger(name)
    if logger.handlers:
        return logger

    logger.setLevel(LOG_LEVEL.upper())

    # Console handler
    ch = logging.StreamHandler(sys.stdout)
    if LOG_FORMAT == 'json':
        fmt = jsonlogger.JsonFormatter('%(asctime)s %(levelname)s %(name)s %(message)s %(request_id)s %(user_id)s')
    else:
        fmt = logging.Formatter('%(asctime)s %(levelname)s %(name)s %(message)s')
    ch.setFormatter(fmt)
    logger.addHandler(ch)

    if LOG_TO_FILE:
        log_path = pathlib.Path(LOG_FILE_PATH)
        if not log_path.is_absolute():
            log_path = pathlib.Path(os.getcwd()) / log_path
        log_path.mkdir(parents=True, exist_ok=True)

        combined = RotatingFileHandler(log_path / 'combined.log', maxBytes=LOG_MAX_SIZE, backupCount=LOG_MAX_FILES)
        combined.setFormatter(fmt)
        logger.addHandler(combined)

        errors = RotatingFileHandler(log_path / 'error.log', maxBytes=LOG_MAX_SIZE, backupCount=LOG_MAX_FILES)
        errors.setLevel(logging.ERROR)
        errors.setFormatter(fmt)
        logger.addHandler(errors)

    # inject context
    f = logging.Filter()
    f.filter = _inject_request_context
    logger.addFilter(f)

    logging.captureWarnings(True)

    return logger


def log_llm_call(request_id: str, model: str, tier: str, tokens_used: int, duration_ms: float):
    logger = get_logger()
    logger.info('llm_call', extra={'request_id': request_id, 'model': model, 'tier': tier, 'tokens_used': tokens_used, 'duration_ms': duration_ms})


def log_credit_event(event: str, user_id: str, amount: int, balance: int = None, request_id: str = None):
    logger = get_logger()
    logger.info(event, extra={
        'request_id': request_id,
        'user_id': user_id,
        'amount': amount,
        'balance': balance,
    })


def log_parse_fallback(task: str, tier: str, reason: str = None, request_id: str = None):
    logger = get_logger()
    logger.warning('parse_fallback', extra={
        'request_id': request_id,
        'task': task,
        'tier': tier,
        'reason': reason,
    })


def log_quiz_generation(request_id: str, subject: str, requested: int, accepted: int, needs_review: bool, duration_ms: float):
    logger = get_logger()
    logger.info('quiz_generation', extra={
        'request_id': request_id,
        'subject': subject,
        'requested_count': requested,
        'accepted_count': accepted,
        'needs_review': needs_review,
        'duration_ms': duration_ms,
    })


def log_flashcard_generation(request_id: str, flashcard_count: int, tier: str, duration_ms: float):
    logger = get_logger()
    logger.info('flashcard_generation', extra={
        'request_id': request_id,
        'flashcard_count': flashcard_count,
        'tier': tier,
        'duration_ms': duration_ms,
    })


def log_mindmap_generation(request_id: str, topic: str, node_count: int, tier: str, duration_ms: float):
    logger = get_logger()
    logger.info('mindmap_generation', extra={
        'request_id': request_id,
        'topic': topic,
        'node_count': node_count,
        'tier': tier,
        'duration_ms': duration_ms,
    })


def log_grading(request_id: str, total_score: float, tier: str, mode: str, duration_ms: float):
    logger = get_logger()
    logger.info('essay_grading', extra={
        'request_id': request_id,
        'total_score': total_score,
        'tier': tier,
        'mode': mode,
        'duration_ms': duration_ms,
    })


def log_summarization(request_id: str, word_count: int, duration_ms: float, cache_hit: bool = False):
    logger = get_logger()
    logger.info('summarization', extra={
        'request_id': request_id,
        'word_count': word_count,
        'duration_ms': duration_ms,
        'cache_hit': cache_hit,
    })


def log_flashcard_review(user_id: str, card_id: str, quality: int, interval: int, ease_factor: float, repetitions: int):
    logger = get_logger()
    logger.info('flashcard_review', extra={
        'user_id': user_id,
        'card_id': card_id,
        'quality': quality,
        'interval_days': interval,
        'ease_factor': ease_factor,
        'repetitions': repetitions,
    })
