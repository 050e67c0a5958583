import pytest
from fastapi.testclient import TestClient
import main as ai_main

from upsc_ai.semantic import parse_quiz_questions
from tests.fixtures.sample_data import QUIZ_TEXT, flashcard_payload


@pytest.mark.integration
def test_flashcard_lifecycle(user_headers):
    client = TestClient(ai_main.app)
    r = client.post('/api/flashcards', json=flashcard_payload(), headers=user_headers)
    assert r.status_code == 200
    card = r.json()['flashcard']
    assert card['userId'] == 'aspirant-1'
    assert card['topic'] == 'Geography'
    assert card['interval'] == 0

    due = client.get('/api/flashcards/due', headers=user_headers).json()
    assert due['count'] == 1

    r = client.post(f"/api/flashcards/{card['id']}/review", json={'quality': 'good'}, headers=user_headers)
    assert r.status_code == 200
    reviewed = r.json()['flashcard']
    assert reviewed['repetitions'] == 1
    assert reviewed['interval'] == 1
    assert reviewed['lastReviewedAt'] is not None
    assert client.get('/api/flashcards/due', headers=user_headers).json()['count'] == 0

    assert client.delete(f"/api/flashcards/{card['id']}", headers=user_headers).status_code == 200
    assert client.get('/api/flashcards', headers=user_headers).json()['flashcards'] == []
    assert client.delete(f"/api/flashcards/{card['id']}", headers=user_headers).status_code == 404


@pytest.mark.integration
def test_flashcard_errors(user_headers):
    client = TestClient(ai_main.app)
    assert client.post('/api/flashcards', json=flashcard_payload(back=''), headers=user_headers).status_code == 400
    assert client.post('/api/flashcards', json=flashcard_payload()).status_code == 401

    card = client.post('/api/flashcards', json=flashcard_payload(), headers=user_headers).json()['flashcard']
    assert client.post(f"/api/flashcards/{card['id']}/review", json={'quality': 9}, headers=user_headers).status_code == 400
    assert client.post(f"/api/flashcards/{card['id']}/review", json={}, headers=user_headers).status_code == 400
    assert client.post('/api/flashcards/unknown/review', json={'quality': 4}, headers=user_headers).status_code == 404

    # another user cannot see or review the card
    other = {'X-User-ID': 'aspirant-2'}
    assert client.get('/api/flashcards', headers=other).json()['flashcards'] == []
    assert client.post(f"/api/flashcards/{card['id']}/review", json={'quality': 4}, headers=other).status_code == 404


@pytest.mark.integration
def test_quiz_score_endpoint():
    client = TestClient(ai_main.app)
    questions = [q.model_dump(by_alias=True) for q in parse_quiz_questions(QUIZ_TEXT, 'Polity').questions]
    r = client.post('/api/quiz/score', json={'questions': questions, 'answers': {'0': 'B', '1': 'D'}})
    assert r.status_code == 200
    j = r.json()
    assert j['score'] == 1
    assert j['total'] == 2
    assert j['percentage'] == 50.0
    assert j['results'][1]['correctAnswer'] == 'C'


@pytest.mark.integration
def test_quiz_score_rejects_bad_input():
    client = TestClient(ai_main.app)
    assert client.post('/api/quiz/score', json={'questions': [], 'answers': {}}).status_code == 400
    bad = {'question': 'Q?', 'options': ['a', 'b', 'c'], 'correctAnswer': 'A'}
    assert client.post('/api/quiz/score', json={'questions': [bad], 'answers': {}}).status_code == 400
    good = {'question': 'Q?', 'options': ['a', 'b', 'c', 'd'], 'correctAnswer': 'A'}
    assert client.post('/api/quiz/score', json={'questions': [good], 'answers': {'x': 'A'}}).status_code == 400
