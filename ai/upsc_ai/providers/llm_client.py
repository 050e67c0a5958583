"""Chat-completion client for the hosted LLM provider.

Provides:
- Tier enum selecting the fast or smart model
- AIResponse, the normalised result of a successful completion
- LLMClient singleton wrapping ``openai.AsyncOpenAI`` pointed at an
  OpenAI-compatible endpoint (Groq by default)

Custom exceptions: ProviderError, ProviderUnconfiguredError, ProviderAuthError,
ProviderRateLimitError, ProviderUnknownError, ProviderTimeoutError

Calls are never retried: the SDK is built with ``max_retries=0`` and failures
are reported to the caller immediately.
"""
from __future__ import annotations

import os
import time
from enum import Enum
from typing import Optional, List, Dict

import openai
from openai import AsyncOpenAI
from pydantic import BaseModel, ConfigDict, Field

from upsc_ai.config import settings
from upsc_ai.utils import get_logger, log_llm_call

LOG = get_logger()


class ProviderError(Exception):
    pass


class ProviderUnconfiguredError(ProviderError):
    pass


class ProviderAuthError(ProviderError):
    pass


class ProviderRateLimitError(ProviderError):
    pass


class ProviderUnknownError(ProviderError):
    pass


class ProviderTimeoutError(ProviderUnknownError):
    pass


class Tier(str, Enum):
    FAST = 'fast'
    SMART = 'smart'


class AIResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    text: str
    tokens_used: int = Field(0, ge=0, alias='tokensUsed')
    model: str


# Config
LLM_BASE_URL = os.getenv('LLM_BASE_URL', 'https://api.groq.com/openai/v1')
LLM_FAST_MODEL = os.getenv('LLM_FAST_MODEL', 'llama-3.1-8b-instant')
LLM_FAST_MAX_TOKENS = int(os.getenv('LLM_FAST_MAX_TOKENS', '2048'))
LLM_SMART_MODEL = os.getenv('LLM_SMART_MODEL', 'llama-3.3-70b-versatile')
LLM_SMART_MAX_TOKENS = int(os.getenv('LLM_SMART_MAX_TOKENS', '4096'))
LLM_DEFAULT_TEMPERATURE = float(os.getenv('LLM_DEFAULT_TEMPERATURE', '0.7'))
LLM_TIMEOUT_SECONDS = float(os.getenv('LLM_TIMEOUT_SECONDS', '60'))


class LLMClient:
    _instance = None

    def __init__(self):
        self.models = {
            Tier.FAST: (LLM_FAST_MODEL, LLM_FAST_MAX_TOKENS),
            Tier.SMART: (LLM_SMART_MODEL, LLM_SMART_MAX_TOKENS),
        }
        self.timeout = LLM_TIMEOUT_SECONDS
        key = settings.LLM_API_KEY
        self._client = None
        if key:
            self._client = AsyncOpenAI(api_key=key, base_url=LLM_BASE_URL, timeout=self.timeout, max_retries=0)
            LOG.info('LLMClient initialized', extra={'base_url': LLM_BASE_URL, 'fast_model': LLM_FAST_MODEL, 'smart_model': LLM_SMART_MODEL})
        else:
            # missing key is reported per call so the service can still boot
            LOG.warning('LLMClient has no API key configured')

    @classmethod
    def get_instance(cls) -> 'LLMClient':
        if cls._instance is None:
            cls._instance = LLMClient()
        return cls._instance

    @property
    def configured(self) -> bool:
        return self._client is not None

    def model_for(self, tier: Tier) -> str:
        return self.models[Tier(tier)][0]

    def _build_messages(self, prompt: str, system_prompt: Optional[str]) -> List[Dict[str, str]]:
        messages = []
        if system_prompt:
            messages.append({'role': 'system', 'content': system_prompt})
        messages.append({'role': 'user', 'content': prompt})
        return messages

    async def complete(self, prompt: str, *, tier: Tier = Tier.FAST, temperature: Optional[float] = None, max_tokens: Optional[int] = None, system_prompt: Optional[str] = None, request_id: Optional[str] = None) -> AIResponse:
        if self._client is None:
            raise ProviderUnconfiguredError('LLM_API_KEY not set')
        tier = Tier(tier)
        model, tier_max_tokens = self.models[tier]
        start = time.time()
        try:
            resp = await self._client.chat.completions.create(
                model=model,
                messages=self._build_messages(prompt, system_prompt),
                temperature=LLM_DEFAULT_TEMPERATURE if temperature is None else temperature,
                max_tokens=max_tokens or tier_max_tokens,
            )
        except (openai.AuthenticationError, openai.PermissionDeniedError) as e:
            LOG.error('llm_auth_error', extra={'request_id': request_id, 'model': model, 'details': str(e)})
            raise ProviderAuthError(str(e)) from e
        except openai.RateLimitError as e:
            LOG.warning('llm_rate_limited', extra={'request_id': request_id, 'model': model})
            raise ProviderRateLimitError(str(e)) from e
        except openai.APITimeoutError as e:
            LOG.exception('llm_timeout', exc_info=True, extra={'request_id': request_id, 'model': model})
            raise ProviderTimeoutError(str(e)) from e
        except openai.APIError as e:
            LOG.exception('llm_api_error', exc_info=True, extra={'request_id': request_id, 'model': model})
            raise ProviderUnknownError(str(e)) from e
        duration_ms = int((time.time() - start) * 1000)

        choices = getattr(resp, 'choices', None) or []
        text = ''
        if choices and choices[0].message is not None:
            text = choices[0].message.content or ''
        if not text.strip():
            LOG.warning('llm_empty_completion', extra={'request_id': request_id, 'model': model})
            raise ProviderUnknownError('Empty response from provider')
        usage = getattr(resp, 'usage', None)
        tokens_used = int(getattr(usage, 'total_tokens', 0) or 0) if usage is not None else 0
        model_used = getattr(resp, 'model', None) or model
        log_llm_call(request_id, model_used, tier.value, tokens_used, duration_ms)
        return AIResponse(text=text, tokens_used=tokens_used, model=model_used)
