import os
import tempfile

# Settings are read at import time
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["UPLOADS_DIR"] = tempfile.mkdtemp(prefix="bites-uploads-")
os.environ["SECRET_KEY"] = "test-secret"
os.environ["REDIS_URL"] = "redis://127.0.0.1:1"
for name in ("SMTP_USER", "SMTP_PASSWORD", "GEMINI_API_KEY",
             "TWILIO_ACCOUNT_SID", "TWILIO_AUTH_TOKEN", "TWILIO_FROM_NUMBER"):
    os.environ[name] = ""

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

from bites import assistant_routes, events, inventory_models, models  # noqa: F401
from bites.db import get_session
from bites.main import app
from bites.security import get_password_hash
from bites.settings import settings

PASSWORD = "secret123"


class FakeLLM:
    """Scripted stand-in for the Gemini client."""

    def __init__(self, *replies):
        self.replies = list(replies)
        self.prompts = []

    def generate(self, prompt: str) -> str:
        self.prompts.append(prompt)
        if not self.replies:
            raise AssertionError(f"Unexpected LLM call: {prompt[:80]}")
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply


@pytest.fixture(name="engine")
def engine_fixture():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    SQLModel.metadata.drop_all(engine)


@pytest.fixture(name="session")
def session_fixture(engine):
    with Session(engine) as session:
        yield session


@pytest.fixture(autouse=True)
def isolate_side_effects(monkeypatch, tmp_path):
    monkeypatch.setattr(events, "get_redis", lambda: None)
    monkeypatch.setattr(settings, "uploads_dir", tmp_path)
    yield
    app.dependency_overrides.clear()


@pytest.fixture(name="client")
def client_fixture(engine):
    def get_session_override():
        with Session(engine) as session:
            yield session

    app.dependency_overrides[get_session] = get_session_override
    return TestClient(app)


def create_user(session: Session, username: str, role: str, password: str = PASSWORD, **extra) -> models.User:
    user = models.User(
        username=username,
        email=extra.pop("email", f"{username}@example.com"),
        name=extra.pop("name", username.title()),
        hashed_password=get_password_hash(password),
        role=role,
        **extra,
    )
    session.add(user)
    session.commit()
    session.refresh(user)
    return user


@pytest.fixture(name="login_as")
def login_as_fixture(client, session):
    """Factory returning a TestClient logged in with a fresh account of the given role."""
    clients = []

    def login(role: str, username: str | None = None) -> TestClient:
        username = username or f"{role}{len(clients) + 1}"
        create_user(session, username, role)
        role_client = TestClient(app)
        response = role_client.post(
            "/api/v1/login",
            json={"username": username, "password": PASSWORD, "role": role},
        )
        assert response.status_code == 200, response.text
        clients.append(role_client)
        return role_client

    return login


@pytest.fixture(name="admin")
def admin_fixture(login_as):
    return login_as("admin")


@pytest.fixture(name="fake_llm")
def fake_llm_fixture():
    """Install a FakeLLM; tests fill in `replies`."""
    llm = FakeLLM()
    app.dependency_overrides[assistant_routes.llm_factory] = lambda: (lambda: llm)
    return llm
