import os

os.environ["APP_DATABASE_URL"] = "sqlite://"
os.environ["ADMIN_API_KEY"] = "test-admin-key"
os.environ["ADMIN_TASK_SECRET"] = "test-task-secret"
os.environ["JOB_TRIGGER_BASE_URL"] = ""
os.environ["JOB_SWEEP_INTERVAL_SECONDS"] = "0"
os.environ["CREDITS_PER_1K_TOKENS"] = "1.0"
os.environ["FREE_IDENTITY_PREFIXES"] = "guest:"

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from app.core.database import build_engine, create_tables, get_engine  # noqa: E402
from app.core.llm.schemas import CompletionResult  # noqa: E402
from app.core.llm.service import get_provider_router  # noqa: E402
from app.main import app  # noqa: E402

ADMIN_HEADERS = {"X-Admin-Key": "test-admin-key"}
TASK_HEADERS = {"X-Admin-Task": "test-task-secret"}


class FakeProviderRouter:
    """Stands in for ProviderRouter; records every call."""

    def __init__(self):
        self.calls = []
        self.error = None
        self.text = "Here is a short answer."
        self.tokens_in = 30
        self.tokens_out = 20

    def complete(self, request, provider=None):
        self.calls.append({"request": request, "provider": provider})
        if self.error is not None:
            raise self.error
        return CompletionResult(
            text=self.text,
            provider=provider or "fake",
            model="fake-model",
            tokens_in=self.tokens_in,
            tokens_out=self.tokens_out,
        )


@pytest.fixture()
def engine():
    test_engine = build_engine("sqlite://")
    create_tables(test_engine)
    yield test_engine
    test_engine.dispose()


@pytest.fixture()
def fake_router():
    return FakeProviderRouter()


@pytest.fixture()
def admin_headers():
    return dict(ADMIN_HEADERS)


@pytest.fixture()
def task_headers():
    return dict(TASK_HEADERS)


@pytest.fixture()
def client(engine, fake_router):
    app.dependency_overrides[get_engine] = lambda: engine
    app.dependency_overrides[get_provider_router] = lambda: fake_router
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()
