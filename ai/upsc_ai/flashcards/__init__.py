"""
Flashcards: generation from study text, SM-2 scheduling and per-user storage.
"""
from .spaced_repetition import (
	FlashcardState,
	ReviewQuality,
	new_flashcard,
	parse_quality,
	schedule_review,
	is_due,
	due_cards,
)
from .generator import (
	FlashcardGenerator,
	GeneratedFlashcard,
	FlashcardValidationError,
	parse_flashcards,
	placeholder_flashcard,
)
from .store import FlashcardStore, FlashcardStoreError, FlashcardNotFoundError

__all__ = [
	'FlashcardState',
	'ReviewQuality',
	'new_flashcard',
	'parse_quality',
	'schedule_review',
	'is_due',
	'due_cards',
	'FlashcardGenerator',
	'GeneratedFlashcard',
	'FlashcardValidationError',
	'parse_flashcards',
	'placeholder_flashcard',
	'FlashcardStore',
	'FlashcardStoreError',
	'FlashcardNotFoundError',
]
