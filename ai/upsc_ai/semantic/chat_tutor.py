"""Conversational tutoring: Socratic or direct chat, and answer explanations."""
import os
from typing import List, Optional, Dict

from upsc_ai.errors import InputValidationError
from upsc_ai.providers import LLMClient, AIResponse, Tier
from upsc_ai.utils import get_logger

LOG = get_logger()

CHAT_MODES = ('socratic', 'direct')
CHAT_HISTORY_LIMIT = int(os.getenv('CHAT_HISTORY_LIMIT', '10'))
CHAT_MAX_MESSAGE_LENGTH = int(os.getenv('CHAT_MAX_MESSAGE_LENGTH', '4000'))
SOCRATIC_TEMPERATURE = float(os.getenv('SOCRATIC_TEMPERATURE', '0.8'))
DIRECT_TEMPERATURE = float(os.getenv('DIRECT_TEMPERATURE', '0.5'))


class ChatValidationError(InputValidationError):
    pass


SOCRATIC_SYSTEM_PROMPT = """You are a UPSC Socratic Tutor specializing in {subject}. Your teaching philosophy:

1. Never give direct answers immediately
2. First, ask what the student already knows about the topic
3. Probe their understanding with 1-2 clarifying questions
4. Guide them to discover the answer through hints
5. Only provide direct information after 2-3 question cycles
6. Be encouraging, patient, and concise
7. Use examples from the Indian context when possible

Keep responses concise."""


class ChatTutor:
    _instance = None

    def __init__(self, client: Optional[LLMClient] = None):
        self.client = client or LLMClient.get_instance()

    @classmethod
    def get_instance(cls) -> 'ChatTutor':
        if cls._instance is None:
            cls._instance = ChatTutor()
        return cls._instance

    def validate_request(self, message: Optional[str], mode: str, history) -> None:
        if not message or not str(message).strip():
            raise ChatValidationError('Message is required')
        if len(message) > CHAT_MAX_MESSAGE_LENGTH:
            raise ChatValidationError(f'Message too long ({len(message)} > {CHAT_MAX_MESSAGE_LENGTH})')
        if mode not in CHAT_MODES:
            raise ChatValidationError(f"mode must be one of {'|'.join(CHAT_MODES)}")
        if history is not None and not isinstance(history, list):
            raise ChatValidationError('conversationHistory must be a list')

    def _history_text(self, history: List[Dict[str, str]]) -> str:
        lines = []
        for msg in (history or [])[-CHAT_HISTORY_LIMIT:]:
            if not isinstance(msg, dict):
                continue
            speaker = 'Student' if msg.get('role') == 'user' else 'Tutor'
            lines.append(f"{speaker}: {msg.get('content', '')}")
        return '\n'.join(lines)

    async def chat(self, message: str, subject: Optional[str] = None, mode: str = 'socratic', history: Optional[List[Dict[str, str]]] = None, request_id: Optional[str] = None) -> AIResponse:
        if mode == 'direct':
            system_prompt = (
                f"You are a UPSC subject expert{f' specializing in {subject}' if subject else ''}. Provide clear, accurate, "
                "and concise answers suitable for UPSC preparation. Include relevant facts, constitutional provisions, "
                "or data where applicable."
            )
            return await self.client.complete(message, tier=Tier.FAST, temperature=DIRECT_TEMPERATURE, system_prompt=system_prompt, request_id=request_id)

        history_text = self._history_text(history)
        prompt = f"Previous conversation:\n{history_text}\n\n" if history_text else ''
        prompt += f"Student's new message: {message}"
        return await self.client.complete(
            prompt,
            tier=Tier.FAST,
            temperature=SOCRATIC_TEMPERATURE,
            system_prompt=SOCRATIC_SYSTEM_PROMPT.format(subject=subject or 'General'),
            request_id=request_id,
        )

    def validate_explain(self, question: Optional[str]) -> None:
        if not question or not str(question).strip():
            raise ChatValidationError('Question is required')

    async def explain(self, question: str, answer: Optional[str] = None, subject: Optional[str] = None, request_id: Optional[str] = None) -> AIResponse:
        parts = [
            'You are a UPSC expert. Provide a clear, concise explanation for this question.',
            '',
            f'Question: {question}',
        ]
        if answer:
            parts.append(f'Correct Answer: {answer}')
        if subject:
            parts.append(f'Subject: {subject}')
        parts += [
            '',
            'Explain why this is the correct answer, clarify common misconceptions, give relevant context '
            'for UPSC preparation and mention related topics to study. Keep it under 200 words.',
        ]
        return await self.client.complete('\n'.join(parts), tier=Tier.SMART, request_id=request_id)
