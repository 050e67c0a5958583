import openai
import pytest
from fastapi.testclient import TestClient
import main as ai_main

from upsc_ai.config import settings
from upsc_ai.credits import CreditLedger
from tests.fixtures.mock_openai import TUTOR_REPLY, EXPLANATION_TEXT, status_error


def _balance(client, headers):
    return client.get('/api/credits/balance', headers=headers).json()['balance']


@pytest.mark.integration
def test_quiz_endpoint(mock_openai_client, user_headers):
    client = TestClient(ai_main.app)
    r = client.post('/api/ai/quiz', json={'subject': 'Polity', 'difficulty': 'Easy', 'count': 2}, headers=user_headers)
    assert r.status_code == 200
    j = r.json()
    assert j['success'] is True
    assert len(j['questions']) == 2
    assert set(j['questions'][0]) == {'question', 'options', 'correctAnswer', 'explanation'}
    assert j['creditsCharged'] == 4
    assert j['tokensUsed'] == 120
    assert j['needsReview'] is False
    assert 'Q1.' in j['rawResponse']
    assert _balance(client, user_headers) == 496


@pytest.mark.integration
def test_quiz_placeholder_flags_review(mock_openai_client, user_headers):
    mock_openai_client.reply = 'I am unable to generate questions right now.'
    client = TestClient(ai_main.app)
    r = client.post('/api/ai/quiz', json={'subject': 'Economy', 'count': 3}, headers=user_headers)
    assert r.status_code == 200
    j = r.json()
    assert j['needsReview'] is True
    assert len(j['questions']) == 1
    assert j['questions'][0]['correctAnswer'] == 'A'


@pytest.mark.integration
def test_invalid_input_is_rejected_without_charge(mock_openai_client, user_headers):
    client = TestClient(ai_main.app)
    assert client.post('/api/ai/quiz', json={'difficulty': 'Easy'}, headers=user_headers).status_code == 400
    assert client.post('/api/ai/quiz', json={'subject': 'Polity', 'count': 50}, headers=user_headers).status_code == 400
    assert client.post('/api/ai/quiz', json={'subject': 'Polity', 'count': 'many'}, headers=user_headers).status_code == 400
    assert client.post('/api/ai/grade', json={'question': 'Q'}, headers=user_headers).status_code == 400
    assert client.post('/api/ai/chat', json={'message': 'Hi', 'mode': 'lecture'}, headers=user_headers).status_code == 400
    assert client.post('/api/ai/mindmap', json={}, headers=user_headers).status_code == 400
    assert mock_openai_client.calls == []
    assert _balance(client, user_headers) == 500


@pytest.mark.integration
def test_missing_user_is_unauthenticated(mock_openai_client):
    client = TestClient(ai_main.app)
    r = client.post('/api/ai/chat', json={'message': 'Hi'})
    assert r.status_code == 401
    assert r.json()['error'] == 'Authentication required'
    assert mock_openai_client.calls == []


@pytest.mark.integration
def test_insufficient_credit_returns_402(mock_openai_client, user_headers):
    CreditLedger._instance = CreditLedger(starting_credits=3)
    client = TestClient(ai_main.app)
    r = client.post('/api/ai/quiz', json={'subject': 'Polity', 'count': 5}, headers=user_headers)
    assert r.status_code == 402
    assert r.json()['error'] == 'Not enough tokens. Please upgrade your plan.'
    assert mock_openai_client.calls == []
    assert _balance(client, user_headers) == 3

    # a cheaper action still fits
    r = client.post('/api/ai/chat', json={'message': 'Hi', 'mode': 'direct'}, headers=user_headers)
    assert r.status_code == 200
    assert _balance(client, user_headers) == 0


@pytest.mark.integration
def test_rate_limited_provider_returns_429(mock_openai_client, user_headers):
    mock_openai_client.error = status_error(openai.RateLimitError, 429)
    client = TestClient(ai_main.app)
    r = client.post('/api/ai/mindmap', json={'topic': 'Monsoon'}, headers=user_headers)
    assert r.status_code == 429
    assert r.json()['success'] is False
    assert 'wait 30 seconds' in r.json()['error']


@pytest.mark.integration
def test_unconfigured_provider_returns_500(monkeypatch, user_headers):
    monkeypatch.setattr(settings, 'LLM_API_KEY', None)
    client = TestClient(ai_main.app)
    r = client.post('/api/ai/summarize', json={'text': 'Some article'}, headers=user_headers)
    assert r.status_code == 500
    assert r.json()['error'] == 'AI service not configured.'


@pytest.mark.integration
def test_grade_endpoint(mock_openai_client, user_headers):
    client = TestClient(ai_main.app)
    body = {'question': 'Discuss cooperative federalism.', 'answer': 'Cooperative federalism means...', 'wordLimit': 150, 'mode': 'deep_pro'}
    r = client.post('/api/ai/grade', json=body, headers=user_headers)
    assert r.status_code == 200
    j = r.json()
    assert j['grading']['totalScore'] == 7
    assert j['grading']['breakdown']['content'] == 2.5
    assert j['creditsCharged'] == 15
    assert j['needsReview'] is False


@pytest.mark.integration
def test_grade_fallback_flags_review(mock_openai_client, user_headers):
    mock_openai_client.reply = 'Good answer overall, maybe 6 out of 10.'
    client = TestClient(ai_main.app)
    r = client.post('/api/ai/grade', json={'question': 'Q', 'answer': 'A'}, headers=user_headers)
    assert r.status_code == 200
    assert r.json()['grading']['totalScore'] == 0
    assert r.json()['needsReview'] is True


@pytest.mark.integration
def test_flashcards_endpoint_with_save(mock_openai_client, user_headers):
    client = TestClient(ai_main.app)
    r = client.post('/api/ai/flashcards', json={'text': 'Constitution notes', 'count': 2, 'topic': 'Polity', 'save': True}, headers=user_headers)
    assert r.status_code == 200
    cards = r.json()['flashcards']
    assert len(cards) == 2
    assert cards[0]['repetitions'] == 0
    assert cards[0]['easeFactor'] == 2.5
    deck = client.get('/api/flashcards', headers=user_headers).json()['flashcards']
    assert sorted(c['id'] for c in deck) == sorted(c['id'] for c in cards)


@pytest.mark.integration
def test_mindmap_endpoint(mock_openai_client, user_headers):
    client = TestClient(ai_main.app)
    r = client.post('/api/ai/mindmap', json={'topic': 'Indian Federalism', 'subject': 'Polity'}, headers=user_headers)
    assert r.status_code == 200
    mm = r.json()['mindMap']
    assert mm['name'] == 'Indian Federalism'
    assert mm['children'][0]['name'] == 'Features'
    assert 'children' not in mm['children'][1]['children'][0]
    assert r.json()['creditsCharged'] == 5


@pytest.mark.integration
def test_chat_endpoint(mock_openai_client, user_headers):
    client = TestClient(ai_main.app)
    body = {'message': 'Explain Article 356', 'subject': 'Polity', 'conversationHistory': [{'role': 'user', 'content': 'Hi'}, {'role': 'assistant', 'content': 'Hello'}]}
    r = client.post('/api/ai/chat', json=body, headers=user_headers)
    assert r.status_code == 200
    assert r.json()['response'] == TUTOR_REPLY
    assert r.json()['creditsCharged'] == 5
    assert 'Tutor: Hello' in mock_openai_client.calls[-1]['messages'][-1]['content']


@pytest.mark.integration
def test_summarize_endpoint(mock_openai_client, user_headers):
    client = TestClient(ai_main.app)
    r = client.post('/api/ai/summarize', json={'text': 'Cabinet approves green hydrogen mission.'}, headers=user_headers)
    assert r.status_code == 200
    j = r.json()
    assert j['gsPaper'] == 3
    assert 'Energy security' in j['topics']
    assert j['summary']
    assert j['creditsCharged'] == 3


@pytest.mark.integration
def test_explain_endpoint(mock_openai_client, user_headers):
    client = TestClient(ai_main.app)
    r = client.post('/api/ai/explain', json={'question': 'Which Article guarantees equality?', 'answer': 'B'}, headers=user_headers)
    assert r.status_code == 200
    assert r.json()['explanation'] == EXPLANATION_TEXT
    assert client.post('/api/ai/explain', json={}, headers=user_headers).status_code == 400
