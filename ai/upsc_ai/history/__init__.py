"""
Study history: scored quizzes, essay gradings and generated mind maps per user.
"""
from .store import HistoryStore, HistoryRecord, HistoryKind, HISTORY_DEFAULT_LIMIT

__all__ = ['HistoryStore', 'HistoryRecord', 'HistoryKind', 'HISTORY_DEFAULT_LIMIT']
