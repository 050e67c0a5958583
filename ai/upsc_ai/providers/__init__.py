"""
LLM provider access: tiered chat completions with a normalised error taxonomy.
"""
from .llm_client import (
	LLMClient,
	AIResponse,
	Tier,
	ProviderError,
	ProviderUnconfiguredError,
	ProviderAuthError,
	ProviderRateLimitError,
	ProviderUnknownError,
	ProviderTimeoutError,
)

__all__ = [
	'LLMClient', 'AIResponse', 'Tier',
	'ProviderError', 'ProviderUnconfiguredError', 'ProviderAuthError',
	'ProviderRateLimitError', 'ProviderUnknownError', 'ProviderTimeoutError',
]
