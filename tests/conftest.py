import os

os.environ["DATABASE_URL"] = "sqlite:///:memory:"
os.environ.pop("OPENAI_API_KEY", None)
os.environ.pop("ADMIN_TOKEN", None)

from unittest.mock import Mock  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from missing_matters.config import Settings  # noqa: E402
from missing_matters.database import Base, SessionLocal, engine, get_db  # noqa: E402
from missing_matters.main import app  # noqa: E402
from missing_matters.schemas.session import ChatSession  # noqa: E402
from missing_matters.services.capabilities import build_capabilities, get_capabilities  # noqa: E402
from missing_matters.services.llm import LLMResponse  # noqa: E402


@pytest.fixture
def db():
    """SQLite in-memory database, recreated per test."""
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def capabilities():
    """Capabilities with no external services configured."""
    return build_capabilities(Settings(_env_file=None, openai_api_key=None))


@pytest.fixture
def fake_llm():
    """LLM provider mock returning a fixed reply."""
    provider = Mock()
    provider.generate.return_value = LLMResponse(content="LLM reply", model="test-model")
    return provider


@pytest.fixture
def llm_capabilities(fake_llm):
    return build_capabilities(Settings(_env_file=None, openai_api_key=None), llm_provider=fake_llm)


@pytest.fixture
def client(db, capabilities):
    app.dependency_overrides[get_db] = lambda: db
    app.dependency_overrides[get_capabilities] = lambda: capabilities
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def session():
    return ChatSession(user_identity="whatsapp15551234567", raw_address="whatsapp:+15551234567")
