import asyncio

import pytest

from upsc_ai.providers import Tier
from upsc_ai.semantic import ChatTutor, ChatValidationError
from upsc_ai.semantic.chat_tutor import CHAT_HISTORY_LIMIT
from tests.fixtures.mock_openai import TUTOR_REPLY


@pytest.mark.unit
def test_validate_request():
    tutor = ChatTutor(client=object())
    tutor.validate_request('What is federalism?', 'socratic', [])
    with pytest.raises(ChatValidationError):
        tutor.validate_request('', 'socratic', [])
    with pytest.raises(ChatValidationError):
        tutor.validate_request('Hi', 'lecture', [])
    with pytest.raises(ChatValidationError):
        tutor.validate_request('Hi', 'direct', 'not a list')
    with pytest.raises(ChatValidationError):
        tutor.validate_explain(None)


@pytest.mark.unit
def test_socratic_chat_includes_recent_history(mock_openai_client):
    history = [{'role': 'user' if i % 2 == 0 else 'assistant', 'content': f'turn {i}'} for i in range(14)]
    resp = asyncio.run(ChatTutor.get_instance().chat('What about Article 356?', 'Polity', 'socratic', history))
    assert resp.text == TUTOR_REPLY
    call = mock_openai_client.calls[-1]
    assert 'Socratic Tutor specializing in Polity' in call['messages'][0]['content']
    prompt = call['messages'][-1]['content']
    assert 'turn 3' not in prompt
    assert 'Student: turn 4' in prompt
    assert 'Tutor: turn 13' in prompt
    assert prompt.count('turn ') == CHAT_HISTORY_LIMIT
    assert prompt.endswith("Student's new message: What about Article 356?")


@pytest.mark.unit
def test_direct_chat_sends_message_as_is(mock_openai_client):
    tutor = ChatTutor.get_instance()
    asyncio.run(tutor.chat('Define fiscal deficit.', None, 'direct'))
    call = mock_openai_client.calls[-1]
    assert call['messages'][-1]['content'] == 'Define fiscal deficit.'
    assert call['model'] == tutor.client.model_for(Tier.FAST)


@pytest.mark.unit
def test_explain_uses_smart_tier(mock_openai_client):
    tutor = ChatTutor.get_instance()
    resp = asyncio.run(tutor.explain('Which Article guarantees equality?', 'B', 'Polity'))
    call = mock_openai_client.calls[-1]
    assert call['model'] == tutor.client.model_for(Tier.SMART)
    assert 'Correct Answer: B' in call['messages'][-1]['content']
    assert 'Article 14' in resp.text
