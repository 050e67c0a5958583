from types import SimpleNamespace

import httpx
import openai

from .sample_data import QUIZ_TEXT, GRADING_JSON, FLASHCARD_JSON, MINDMAP_JSON, SUMMARY_TEXT

TUTOR_REPLY = 'What do you already know about the separation of powers?'
EXPLANATION_TEXT = 'Article 14 applies to all persons, so option B is correct.'

_REQUEST = httpx.Request('POST', 'http://llm.test/v1/chat/completions')


def status_error(cls, status_code: int, message: str = 'provider error'):
    """Build an ``openai`` status error the way the SDK raises it."""
    return cls(message, response=httpx.Response(status_code, request=_REQUEST), body=None)


def timeout_error():
    return openai.APITimeoutError(request=_REQUEST)


def default_reply(prompt: str) -> str:
    if 'UPSC Prelims style MCQs' in prompt:
        return QUIZ_TEXT
    if 'Grade this UPSC Mains answer' in prompt:
        return GRADING_JSON
    if 'create flashcards' in prompt:
        return FLASHCARD_JSON
    if 'hierarchical mind map' in prompt:
        return MINDMAP_JSON
    if 'Summarize this article' in prompt:
        return SUMMARY_TEXT
    if 'Provide a clear, concise explanation' in prompt:
        return EXPLANATION_TEXT
    return TUTOR_REPLY


class FakeCompletions:
    def __init__(self, owner):
        self.owner = owner

    async def create(self, **kwargs):
        self.owner.calls.append(kwargs)
        if self.owner.error is not None:
            raise self.owner.error
        prompt = '\n'.join(m.get('content', '') for m in kwargs.get('messages', []))
        text = self.owner.reply if self.owner.reply is not None else default_reply(prompt)
        return SimpleNamespace(
            id='mock-1',
            model=kwargs.get('model', 'mock-model'),
            choices=[SimpleNamespace(index=0, message=SimpleNamespace(role='assistant', content=text))],
            usage=SimpleNamespace(prompt_tokens=40, completion_tokens=80, total_tokens=120),
        )


class FakeAsyncOpenAI:
    """Replacement for ``openai.AsyncOpenAI`` that answers by prompt keywords.

    Set ``reply`` to force a response text or ``error`` to raise on every call.
    """

    def __init__(self, **kwargs):
        self.kwargs = kwargs
        self.calls = []
        self.reply = None
        self.error = None
        self.chat = SimpleNamespace(completions=FakeCompletions(self))
