"""
Semantic processing for LLM output: quiz, grading, mind map and summary
generation plus the tolerant parsers that turn model text into validated objects.
"""
from .llm_parser import ParseFailure, ParseTier, extract_json_object, clamp, coerce_str_list
from .cache_manager import CacheManager
from .quiz_generator import QuizGenerator, QuizQuestion, QuizParseResult, QuizValidationError, parse_quiz_questions, placeholder_question, score_quiz
from .essay_grader import EssayGrader, GradingResult, GradingBreakdown, GradingValidationError, parse_grading, fallback_grading
from .mindmap_generator import MindmapGenerator, MindMapNode, MindmapValidationError, parse_mindmap, fallback_mindmap
from .summarizer import Summarizer, SummaryResult, SummarizerValidationError, parse_summary
from .chat_tutor import ChatTutor, ChatValidationError

__all__ = [
	'ParseFailure', 'ParseTier', 'extract_json_object', 'clamp', 'coerce_str_list', 'CacheManager',
	'QuizGenerator', 'QuizQuestion', 'QuizParseResult', 'QuizValidationError', 'parse_quiz_questions', 'placeholder_question', 'score_quiz',
	'EssayGrader', 'GradingResult', 'GradingBreakdown', 'GradingValidationError', 'parse_grading', 'fallback_grading',
	'MindmapGenerator', 'MindMapNode', 'MindmapValidationError', 'parse_mindmap', 'fallback_mindmap',
	'Summarizer', 'SummaryResult', 'SummarizerValidationError', 'parse_summary',
	'ChatTutor', 'ChatValidationError',
]
