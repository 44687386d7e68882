"""
Pytest configuration for web_app. In-memory SQLite, a fresh audit table and rate
limiter per test, and a stub identity authority behind the identity client dependency.
"""
import os

# In-memory SQLite; database.py uses StaticPool so all connections share the same DB
os.environ["WEB_DATABASE_URL"] = "sqlite:///:memory:"
os.environ.pop("APP_ENV", None)

import httpx
import pytest
from fastapi.testclient import TestClient

from identity_client.client import IdentityClient
from web_app.database import engine, init_db
from web_app.main import app, get_identity_client
from web_app.models import Base
from web_app.rate_limit import login_limiter


class AuthorityStub:
    """MockTransport handler standing in for the identity authority; records every request."""

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.responses = {
            "otp": httpx.Response(200, json={}),
            "token": httpx.Response(
                200,
                json={"access_token": "at-from-authority", "refresh_token": "rt-from-authority", "expires_in": 3600},
            ),
            "verify": httpx.Response(
                200,
                json={"access_token": "at-from-verify", "refresh_token": "rt-from-verify", "expires_in": 3600},
            ),
        }

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.responses[request.url.path.rsplit("/", 1)[-1]]

    def paths(self) -> list[str]:
        return [r.url.path.rsplit("/", 1)[-1] for r in self.requests]


@pytest.fixture(autouse=True)
def clean_state():
    Base.metadata.drop_all(bind=engine)
    init_db()
    login_limiter.reset()
    yield
    app.dependency_overrides.clear()


@pytest.fixture
def authority():
    stub = AuthorityStub()

    async def override():
        identity = IdentityClient("https://auth.example", "anon-key", transport=httpx.MockTransport(stub))
        try:
            yield identity
        finally:
            await identity.aclose()

    app.dependency_overrides[get_identity_client] = override
    return stub


@pytest.fixture
def client():
    return TestClient(app)
