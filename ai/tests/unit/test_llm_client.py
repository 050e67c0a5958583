import asyncio

import openai
import pytest

from upsc_ai.providers import (
    LLMClient,
    Tier,
    ProviderAuthError,
    ProviderRateLimitError,
    ProviderTimeoutError,
    ProviderUnconfiguredError,
    ProviderUnknownError,
)
from upsc_ai.config import settings
from tests.fixtures.mock_openai import status_error, timeout_error


@pytest.mark.unit
def test_complete_returns_normalised_response(mock_openai_client):
    client = LLMClient.get_instance()
    assert client.configured
    resp = asyncio.run(client.complete('Hello tutor', tier=Tier.SMART, system_prompt='Be brief'))
    assert resp.text
    assert resp.tokens_used == 120
    assert resp.model == client.model_for(Tier.SMART)
    call = mock_openai_client.calls[-1]
    assert call['messages'][0] == {'role': 'system', 'content': 'Be brief'}
    assert call['messages'][1] == {'role': 'user', 'content': 'Hello tutor'}


@pytest.mark.unit
def test_key_comes_from_settings_not_process_env(monkeypatch):
    # a key read from .env reaches settings without being exported to os.environ
    for name in ('LLM_API_KEY', 'GROQ_API_KEY', 'OPENAI_API_KEY'):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setattr(settings, 'LLM_API_KEY', 'key-from-dotenv')
    built = {}
    monkeypatch.setattr('upsc_ai.providers.llm_client.AsyncOpenAI', lambda **kw: built.update(kw) or object())
    client = LLMClient()
    assert client.configured
    assert built['api_key'] == 'key-from-dotenv'
    assert built['max_retries'] == 0


@pytest.mark.unit
@pytest.mark.parametrize('make_error,expected', [
    (lambda: status_error(openai.RateLimitError, 429), ProviderRateLimitError),
    (lambda: status_error(openai.AuthenticationError, 401), ProviderAuthError),
    (lambda: status_error(openai.PermissionDeniedError, 403), ProviderAuthError),
    (lambda: status_error(openai.InternalServerError, 500), ProviderUnknownError),
    (timeout_error, ProviderTimeoutError),
])
def test_sdk_errors_are_mapped(mock_openai_client, make_error, expected):
    mock_openai_client.error = make_error()
    with pytest.raises(expected):
        asyncio.run(LLMClient.get_instance().complete('Hello'))


@pytest.mark.unit
def test_empty_completion_is_an_error(mock_openai_client):
    mock_openai_client.reply = '   '
    with pytest.raises(ProviderUnknownError):
        asyncio.run(LLMClient.get_instance().complete('Hello'))


@pytest.mark.unit
def test_missing_key_reports_unconfigured(monkeypatch):
    monkeypatch.setattr(settings, 'LLM_API_KEY', None)
    client = LLMClient()
    assert client.configured is False
    with pytest.raises(ProviderUnconfiguredError):
        asyncio.run(client.complete('Hello'))
