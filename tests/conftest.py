import json
import os

# In-memory database and a fixed secret; must be set before hangouts is imported
os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"
os.environ["DB_CREATE_ALL"] = "true"
os.environ["JWT_SECRET_KEY"] = "test-secret"
os.environ["LOG_LEVEL"] = "WARNING"

import anyio
import pytest
from fastapi.testclient import TestClient

from hangouts.core.database import AsyncSessionLocal, create_all, drop_all, engine
from hangouts.main import app


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture()
def client():
    # The lifespan creates the schema and disposes the engine on exit,
    # so every test starts from an empty in-memory database.
    with TestClient(app) as c:
        yield c


@pytest.fixture()
def make_user(client):
    def _make(username: str):
        r = client.post(
            "/api/v1/auth/register",
            json={"username": username, "email": f"{username}@example.com", "password": "secret123"},
        )
        assert r.status_code == 201, r.text
        user = r.json()

        login = client.post(
            "/api/v1/auth/login", json={"username": username, "password": "secret123"}
        )
        assert login.status_code == 200, login.text
        token = login.json()["access_token"]
        user["token"] = token
        user["headers"] = {"Authorization": f"Bearer {token}"}
        return user

    return _make


@pytest.fixture
async def db():
    await create_all()
    async with AsyncSessionLocal() as session:
        yield session
    await drop_all()
    await engine.dispose()


class FakeConnection:
    """Stands in for a WebSocket in registry tests"""

    def __init__(self, delay: float = 0, fail: bool = False, close_delay: float = 0):
        self.delay = delay
        self.close_delay = close_delay
        self.fail = fail
        self.sent = []
        self.closed = False

    async def send_text(self, data: str) -> None:
        if self.delay:
            await anyio.sleep(self.delay)
        if self.fail:
            raise RuntimeError("connection reset")
        self.sent.append(json.loads(data))

    async def close(self, code: int = 1000) -> None:
        if self.close_delay:
            await anyio.sleep(self.close_delay)
        self.closed = True
