import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ.setdefault("OPENAI_API_KEY", "test-key")
for key in ("DB_HOST", "DB_USER", "DB_PWD", "DB_NAME"):
    os.environ.pop(key, None)

import pytest
from fastapi.testclient import TestClient

from support_chat.api.deps import get_relay, get_store
from support_chat.db.session import Base, engine
from support_chat.main import app
from support_chat.service.chat.relay import StreamingRelay
from support_chat.service.store.conversation_store import ConversationStore


class FakeCompletionClient:
    """Scripted stand-in for the OpenAI client.

    Yields ``fragments`` in order; with ``error`` set, raises it after
    ``fail_after`` fragments (default: before the first one).
    """

    def __init__(self, fragments=(), error=None, fail_after=0):
        self.fragments = list(fragments)
        self.error = error
        self.fail_after = fail_after
        self.calls = []
        self.closed = False

    async def stream_reply(self, messages):
        self.calls.append(list(messages))
        try:
            for index, fragment in enumerate(self.fragments):
                if self.error is not None and index == self.fail_after:
                    raise self.error
                yield fragment
            if self.error is not None:
                raise self.error
        finally:
            self.closed = True


@pytest.fixture(autouse=True)
def reset_db():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def store():
    return ConversationStore()


@pytest.fixture
def fake_llm():
    return FakeCompletionClient(fragments=["Hel", "lo!"])


@pytest.fixture
def relay(store, fake_llm):
    return StreamingRelay(store, fake_llm)


#scope : function < class < module < package < session
@pytest.fixture(scope="function")
def client(store, relay):
    app.dependency_overrides[get_store] = lambda: store
    app.dependency_overrides[get_relay] = lambda: relay
    yield TestClient(app)
    app.dependency_overrides.clear()
