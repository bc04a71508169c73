import os

# Настройки читаются при импорте app
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

import pytest
from datetime import datetime, timedelta, timezone

from httpx import AsyncClient
from httpx._transports.asgi import ASGITransport
from sqlalchemy import update
from sqlalchemy.ext.asyncio import (
  AsyncSession,
  create_async_engine,
  async_sessionmaker
)

from app.main import app
from app.core.security import create_access_token
from app.database import get_db
from app.models.base import Base
from app.models.conversation import Conversation, ConversationParticipant
from app.models.message import Message
from app.models.profile import Profile
from app.realtime.feed import change_feed


BASE_TIME = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
async def async_engine(tmp_path):
  # Файловая база: сервисы и realtime-представления открывают свои сессии
  engine = create_async_engine(
    f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
    echo=False,
  )

  async with engine.begin() as conn:
    await conn.run_sync(Base.metadata.create_all)

  yield engine

  await engine.dispose()


@pytest.fixture
def session_factory(async_engine):
  return async_sessionmaker(
    bind=async_engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
  )


@pytest.fixture
async def async_session(session_factory):
  async with session_factory() as session:
    yield session
    await session.rollback()


@pytest.fixture(autouse=True)
def override_get_db(session_factory):
  async def _get_db_override():
    async with session_factory() as session:
      yield session

  app.dependency_overrides[get_db] = _get_db_override
  yield
  app.dependency_overrides.clear()


@pytest.fixture(autouse=True)
def clean_change_feed():
  yield
  change_feed.subscriptions.clear()
  change_feed.relay = None


@pytest.fixture
async def async_client():
  async with AsyncClient(
    transport=ASGITransport(app=app),
    base_url="http://test",
    ) as client:
      yield client


@pytest.fixture
async def profiles(async_session):
  """alice, bob, carol"""

  users = [
    Profile(id="alice", full_name="אליס כהן", avatar_url="https://cdn.test/alice.png"),
    Profile(id="bob", full_name="בוב לוי"),
    Profile(id="carol", full_name="קרול מזרחי"),
  ]
  async_session.add_all(users)
  await async_session.commit()

  return {user.id: user for user in users}


@pytest.fixture
def make_conversation(async_session):
  async def _make(*user_ids, conversation_id=None, pair_key=None, last_message_at=None):
    conversation = Conversation(
      pair_key=pair_key,
      last_message_at=last_message_at or BASE_TIME,
    )
    if conversation_id:
      conversation.id = conversation_id

    async_session.add(conversation)
    await async_session.flush()

    async_session.add_all([
      ConversationParticipant(conversation_id=conversation.id, user_id=user_id)
      for user_id in user_ids
    ])
    await async_session.commit()

    return conversation.id

  return _make


@pytest.fixture
def make_message(async_session):
  async def _make(conversation_id, sender_id, content, minutes=0, is_read=False):
    created_at = BASE_TIME + timedelta(minutes=minutes)
    message = Message(
      conversation_id=conversation_id,
      sender_id=sender_id,
      content=content,
      created_at=created_at,
      is_read=is_read,
    )
    async_session.add(message)

    await async_session.execute(
      update(Conversation)
      .where(Conversation.id == conversation_id)
      .values(last_message_at=created_at)
    )
    await async_session.commit()

    return message

  return _make


@pytest.fixture
def auth_headers():
  def _headers(user_id):
    return {"Authorization": f"Bearer {create_access_token(user_id)}"}

  return _headers
