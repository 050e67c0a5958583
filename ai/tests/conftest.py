import os
import pytest
from pathlib import Path

from dotenv import load_dotenv

# load test env first
env_path = Path(__file__).resolve().parents[1] / '.env.test'
if env_path.exists():
    load_dotenv(env_path)

os.environ.setdefault('TESTING', '1')

from upsc_ai.utils import reset_redis
from upsc_ai.providers import LLMClient
from upsc_ai.credits import CreditLedger
from upsc_ai.pipeline import RequestOrchestrator
from upsc_ai.semantic import QuizGenerator, EssayGrader, MindmapGenerator, Summarizer, ChatTutor, CacheManager
from upsc_ai.flashcards import FlashcardGenerator, FlashcardStore
from upsc_ai.history import HistoryStore

from tests.fixtures.mock_openai import FakeAsyncOpenAI
from tests.fixtures.mock_redis import MockAsyncRedis

SINGLETONS = (
    LLMClient, CreditLedger, RequestOrchestrator, QuizGenerator, EssayGrader, MindmapGenerator,
    Summarizer, ChatTutor, CacheManager, FlashcardGenerator, FlashcardStore, HistoryStore,
)


@pytest.fixture(autouse=True)
def reset_singletons():
    # every test starts with fresh balances, decks and clients
    for cls in SINGLETONS:
        cls._instance = None
    reset_redis(None)
    yield
    for cls in SINGLETONS:
        cls._instance = None
    reset_redis(None)


@pytest.fixture
def mock_openai_client(monkeypatch):
    fake = FakeAsyncOpenAI()
    monkeypatch.setattr('upsc_ai.providers.llm_client.AsyncOpenAI', lambda **kw: fake)
    return fake


@pytest.fixture
def mock_redis_client():
    client = MockAsyncRedis()
    reset_redis(client)
    return client


@pytest.fixture
def user_headers():
    return {'X-User-ID': 'aspirant-1'}
