"""Utility subpackage: structured logging and shared Redis access"""

from .logger import (
	get_logger,
	log_llm_call,
	log_credit_event,
	log_parse_fallback,
	log_quiz_generation,
	log_flashcard_generation,
	log_mindmap_generation,
	log_grading,
	log_summarization,
	log_flashcard_review,
	set_request_context,
	get_request_context,
)
from .redis_client import get_redis, reset_redis

__all__ = [
	'get_logger',
	'log_llm_call',
	'log_credit_event',
	'log_parse_fallback',
	'log_quiz_generation',
	'log_flashcard_generation',
	'log_mindmap_generation',
	'log_grading',
	'log_summarization',
	'log_flashcard_review',
	'set_request_context',
	'get_request_context',
	'get_redis',
	'reset_redis',
]
