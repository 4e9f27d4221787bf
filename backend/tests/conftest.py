"""
Shared test fixtures and configuration.
"""

import asyncio
import os
import pytest

# Set test environment variables before importing app modules
os.environ.setdefault("SECRET_KEY", "test-secret-key-for-testing")
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("LOCAL_STORAGE_PATH", "/tmp/chat_test_data")
os.environ.setdefault("LOG_FILE_ENABLED", "false")
os.environ.setdefault("LOG_API_REQUESTS", "true")
os.environ["LLM_API_KEY"] = ""

from fastapi.testclient import TestClient  # noqa: E402

from app.api.deps import get_llm_provider, get_storage  # noqa: E402
from app.core.turn_accumulator import send_registry  # noqa: E402
from app.llm.base import LLMProvider  # noqa: E402
from app.main import app  # noqa: E402
from app.middleware import reset_rate_limiters  # noqa: E402
from app.storage import ConversationStore, LocalStorage  # noqa: E402
from app.utils.auth import create_access_token  # noqa: E402

CTR_FRAGMENTS = ["Click", "-through rate", " is..."]


class FakeLLMProvider(LLMProvider):
    """Streams canned fragments; optionally fails after ``fail_after`` of them."""

    def __init__(self, fragments=None, fail_after=None):
        super().__init__(api_key="test-key", model="fake-model")
        self.fragments = list(fragments if fragments is not None else CTR_FRAGMENTS)
        self.fail_after = fail_after
        self.calls = []

    async def chat_completion_stream(self, messages, temperature=None, max_tokens=None, **kwargs):
        self.calls.append(list(messages))
        for index, fragment in enumerate(self.fragments):
            if self.fail_after is not None and index >= self.fail_after:
                break
            yield fragment
        if self.fail_after is not None:
            raise RuntimeError("upstream model failed")


class GatedLLMProvider(FakeLLMProvider):
    """Holds the stream open until ``gate`` is set."""

    def __init__(self, fragments=None):
        super().__init__(fragments)
        self.gate = asyncio.Event()

    async def chat_completion_stream(self, messages, temperature=None, max_tokens=None, **kwargs):
        self.calls.append(list(messages))
        await self.gate.wait()
        for fragment in self.fragments:
            yield fragment


def make_auth_headers(user_id: str) -> dict:
    token = create_access_token(data={"sub": user_id, "username": user_id})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture(autouse=True)
def reset_shared_state():
    reset_rate_limiters()
    send_registry.clear()
    yield
    send_registry.clear()


@pytest.fixture
def storage(tmp_path):
    return LocalStorage(str(tmp_path / "data"))


@pytest.fixture
def store(storage):
    return ConversationStore(storage)


@pytest.fixture
def fake_llm():
    return FakeLLMProvider()


@pytest.fixture
def app_overrides(storage, fake_llm):
    """Point the app at the temp storage and the fake model."""
    app.dependency_overrides[get_storage] = lambda: storage
    app.dependency_overrides[get_llm_provider] = lambda: fake_llm
    yield app
    app.dependency_overrides.clear()


@pytest.fixture
def client(app_overrides):
    with TestClient(app_overrides) as test_client:
        yield test_client


@pytest.fixture
def auth_headers():
    return make_auth_headers("user-alice")


@pytest.fixture
def other_headers():
    return make_auth_headers("user-bob")
