import json
import os
import tempfile

os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["ENVIRONMENT"] = "test"
os.environ["REDIS_URL"] = ""
os.environ.setdefault("JWT_SECRET", "test-secret")
os.environ.setdefault("UPLOAD_DIR", tempfile.mkdtemp(prefix="roomchat-uploads-"))

import pytest
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from roomchat.models.base import Base
from roomchat.models import message, room, room_membership  # noqa: F401
from roomchat.models.user import User
from roomchat.core.security import create_access_token, hash_password
from roomchat.database.postgres import get_db_session
from roomchat.dependencies.service_dependencies import get_websocket_manager
from roomchat.main import app
from roomchat.utils.websocket_manager import WebsocketManager

DATABASE_URL = "sqlite+aiosqlite:///:memory:"


class FakeWebSocket:
    """Stands in for a starlette WebSocket; records every frame sent to it."""

    def __init__(self):
        self.accepted = False
        self.closed = None
        self.sent = []

    async def accept(self):
        self.accepted = True

    async def send_text(self, data: str):
        self.sent.append(json.loads(data))

    async def close(self, code: int = 1000, reason: str = None):
        self.closed = (code, reason)

    def events(self, event_type: str = None):
        return [frame for frame in self.sent if event_type is None or frame["type"] == event_type]


@pytest.fixture
async def async_session():
    engine = create_async_engine(
        DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    async_session_factory = sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)
    async with async_session_factory() as session:
        yield session
    await engine.dispose()

async def _create_user(session, username, email):
    user = User(
        username=username,
        email=email,
        hashed_password=hash_password("password123")
    )
    session.add(user)
    await session.commit()
    await session.refresh(user)
    return user

@pytest.fixture
async def test_user(async_session):
    return await _create_user(async_session, "testuser", "test@example.com")

@pytest.fixture
async def second_user(async_session):
    return await _create_user(async_session, "seconduser", "second@example.com")

@pytest.fixture
def test_token(test_user):
    return create_access_token({"user_id": str(test_user.id)})

@pytest.fixture
def second_token(second_user):
    return create_access_token({"user_id": str(second_user.id)})

@pytest.fixture
def auth_headers(test_token):
    return {"Authorization": f"Bearer {test_token}"}

@pytest.fixture
def second_headers(second_token):
    return {"Authorization": f"Bearer {second_token}"}

@pytest.fixture
def load_room(async_session):
    """Fetch a room straight from the session, bypassing any stale identity-map copy."""
    async def _load(room_id):
        return await async_session.get(room.Room, room_id, populate_existing=True)
    return _load

@pytest.fixture
def ws_manager():
    return WebsocketManager()

@pytest.fixture
def fake_websocket():
    return FakeWebSocket

@pytest.fixture
async def async_test_client(async_session, ws_manager):
    async def _override():
        yield async_session

    app.dependency_overrides[get_db_session] = _override
    app.dependency_overrides[get_websocket_manager] = lambda: ws_manager
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()
