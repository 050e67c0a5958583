from enum import Enum
from typing import Optional


class AIAction(str, Enum):
    QUIZ = 'quiz'
    GRADE = 'grade'
    FLASHCARDS = 'flashcards'
    MINDMAP = 'mindmap'
    CHAT = 'chat'
    SUMMARIZE = 'summarize'
    EXPLAIN = 'explain'


# credits per action; quiz is charged per requested question
QUIZ_COST_PER_QUESTION = 2
CHAT_SOCRATIC_COST = 5
CHAT_DIRECT_COST = 3
MINDMAP_COST = 5
GRADE_STANDARD_COST = 8
GRADE_DEEP_PRO_COST = 15
FLASHCARDS_COST = 5
SUMMARIZE_COST = 3
EXPLAIN_COST = 3

CHAT_MODES = ('socratic', 'direct')
GRADE_MODES = ('standard', 'deep_pro')


def compute_cost(action, size: int = 1, mode: Optional[str] = None) -> int:
    """Return the credit price of one AI action.

    ``size`` only matters for quizzes (number of questions). ``mode`` selects
    the chat style (socratic|direct) or grading depth (standard|deep_pro);
    ``None`` means the default for the action.
    """
    action = AIAction(action)
    if action == AIAction.QUIZ:
        if isinstance(size, bool) or not isinstance(size, int) or size < 1:
            raise ValueError('quiz size must be a positive integer')
        return QUIZ_COST_PER_QUESTION * size
    if action == AIAction.CHAT:
        mode = mode or 'socratic'
        if mode not in CHAT_MODES:
            raise ValueError(f'invalid chat mode: {mode}')
        return CHAT_SOCRATIC_COST if mode == 'socratic' else CHAT_DIRECT_COST
    if action == AIAction.GRADE:
        mode = mode or 'standard'
        if mode not in GRADE_MODES:
            raise ValueError(f'invalid grading mode: {mode}')
        return GRADE_DEEP_PRO_COST if mode == 'deep_pro' else GRADE_STANDARD_COST
    if action == AIAction.MINDMAP:
        return MINDMAP_COST
    if action == AIAction.FLASHCARDS:
        return FLASHCARDS_COST
    if action == AIAction.SUMMARIZE:
        return SUMMARIZE_COST
    return EXPLAIN_COST
