from __future__ import annotations

import json
import os
import re
import tempfile

os.environ.setdefault("RXGUARD_UPLOAD_DIR", tempfile.mkdtemp(prefix="rxguard-uploads-"))

import pytest  # noqa: E402
import httpx  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402
from sqlmodel import SQLModel, Session, create_engine  # noqa: E402

from database import get_session  # noqa: E402
from main import app  # noqa: E402
from models import Profile, User  # noqa: E402
from routers.interactions import get_llm_gateway  # noqa: E402
from services.auth import hash_password  # noqa: E402
from services.llm_gateway import LLMResponse  # noqa: E402

TEST_ENGINE = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

NO_INTERACTION = {
    "hasInteraction": False,
    "risk_level": "none",
    "risk_percentage": 0,
    "description": "No known interaction",
    "severity": "None",
}

_PAIR_PATTERN = re.compile(r"between (.+?) and (.+?)\. Provide")


def _override_get_session():
    with Session(TEST_ENGINE) as session:
        yield session


class FakeGateway:
    """Stands in for the AI gateway; answers by drug pair."""

    configured = True

    def __init__(self):
        self.extraction_text = ""
        self.responses: dict[tuple[str, str], object] = {}
        self.pairs: list[tuple[str, str]] = []
        self.extraction_calls = 0

    def respond(self, drug_a: str, drug_b: str, outcome: object):
        self.responses[(drug_a, drug_b)] = outcome

    async def complete(self, system_prompt: str, user_prompt: str, *, json_mode: bool = False) -> LLMResponse:
        if not json_mode:
            self.extraction_calls += 1
            return LLMResponse(content=self.extraction_text, model="fake")

        match = _PAIR_PATTERN.search(user_prompt)
        assert match, user_prompt
        pair = (match.group(1), match.group(2))
        self.pairs.append(pair)
        outcome = self.responses.get(pair, self.responses.get((pair[1], pair[0]), NO_INTERACTION))
        if isinstance(outcome, Exception):
            raise outcome
        content = outcome if isinstance(outcome, str) else json.dumps(outcome)
        return LLMResponse(content=content, model="fake")


@pytest.fixture(autouse=True)
def reset_db():
    SQLModel.metadata.drop_all(TEST_ENGINE)
    SQLModel.metadata.create_all(TEST_ENGINE)


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def db_session():
    with Session(TEST_ENGINE) as session:
        yield session


@pytest.fixture
def client():
    app.dependency_overrides[get_session] = _override_get_session
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
async def async_client():
    app.dependency_overrides[get_session] = _override_get_session
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def fake_gateway():
    gateway = FakeGateway()
    app.dependency_overrides[get_llm_gateway] = lambda: gateway
    yield gateway
    app.dependency_overrides.pop(get_llm_gateway, None)


@pytest.fixture
def seeded_users():
    users = {
        "alice": {
            "full_name": "Alice Moreau",
            "email": "alice@rxguard.local",
            "password": "alice-pass-123",
        },
        "bob": {
            "full_name": "Bob Okafor",
            "email": "bob@rxguard.local",
            "password": "bob-pass-123",
        },
    }

    with Session(TEST_ENGINE) as session:
        for account in users.values():
            user = User(email=account["email"], password_hash=hash_password(account["password"]))
            session.add(user)
            session.commit()
            session.refresh(user)
            account["id"] = user.id
            session.add(Profile(user_id=user.id, full_name=account["full_name"]))
            session.commit()

    return users


def _login(client: TestClient, email: str, password: str) -> dict[str, str]:
    response = client.post("/auth/login", json={"email": email, "password": password})
    assert response.status_code == 200, response.text
    token = response.json()["access_token"]
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def alice_headers(client: TestClient, seeded_users):
    return _login(client, seeded_users["alice"]["email"], seeded_users["alice"]["password"])


@pytest.fixture
def bob_headers(client: TestClient, seeded_users):
    return _login(client, seeded_users["bob"]["email"], seeded_users["bob"]["password"])
