"""Shared fixtures."""

from typing import List, Optional

import pytest

from local_ai_chat.api.app import app, get_completion_client
from local_ai_chat.domain.models import ChatSettings, Message
from local_ai_chat.repositories.conversations import ConversationRepository
from local_ai_chat.repositories.storage import LocalStorage
from local_ai_chat.repositories.stores import InMemoryStore


class FakeTransport:
    """Records chat turns and answers from a script of replies or errors."""

    def __init__(self, replies: Optional[list] = None) -> None:
        self.replies = list(replies or [])
        self.calls: List[tuple] = []

    async def complete(self, messages: List[Message], settings: ChatSettings) -> str:
        self.calls.append((list(messages), settings))
        reply = self.replies.pop(0) if self.replies else "ok"
        if isinstance(reply, Exception):
            raise reply
        return reply


class StubCompletionClient:
    """Stands in for the remote completion API behind the gateway."""

    def __init__(self, reply="  Hello from the model  ", error=None, healthy=True) -> None:
        self.reply = reply
        self.error = error
        self.healthy = healthy
        self.calls: List[tuple] = []

    async def complete(self, messages: List[Message], settings: ChatSettings) -> str:
        self.calls.append((messages, settings))
        if self.error is not None:
            raise self.error
        return self.reply

    async def test_connection(self) -> bool:
        if isinstance(self.healthy, Exception):
            raise self.healthy
        return self.healthy


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def storage(store) -> LocalStorage:
    return LocalStorage(store)


@pytest.fixture
def repository(storage) -> ConversationRepository:
    return ConversationRepository(storage)


@pytest.fixture
def make_transport():
    return FakeTransport


@pytest.fixture
def completion_stub():
    client = StubCompletionClient()
    app.dependency_overrides[get_completion_client] = lambda: client
    yield client
    app.dependency_overrides.clear()
