import asyncio
import pytest

from sqlalchemy import func, select

from app.core.config import UNKNOWN_USER_LABEL
from app.models.conversation import Conversation, ConversationParticipant
from app.models.message import Message
from app.realtime.feed import ChangeOp, RowFilter, change_feed
from app.services.conversation_service import ConversationService
from app.services.message_service import MessageService


async def _last_message_at(db, conversation_id):
  result = await db.execute(
    select(Conversation.last_message_at).where(Conversation.id == conversation_id)
  )
  return result.scalar_one()


@pytest.mark.asyncio
async def test_send_message(async_session, profiles, make_conversation):
  conversation_id = await make_conversation("alice", "bob")
  subscription = change_feed.subscribe("messages", RowFilter("conversation_id", conversation_id))

  message = await MessageService.send_message(conversation_id, "alice", "  שלום  ", async_session)

  assert message.content == "שלום"
  assert message.is_read is False
  assert message.sender_id == "alice"

  stored = await _last_message_at(async_session, conversation_id)
  assert stored.replace(tzinfo=None) == message.created_at.replace(tzinfo=None)

  event = await asyncio.wait_for(subscription.__anext__(), timeout=1)
  assert event.op == ChangeOp.INSERT
  assert event.row["id"] == message.id
  assert event.row["content"] == "שלום"

  subscription.close()


@pytest.mark.asyncio
@pytest.mark.parametrize("content", ["", "   ", "\n\t"])
async def test_send_empty_message_rejected(async_session, profiles, make_conversation, content):
  conversation_id = await make_conversation("alice", "bob")
  before = await _last_message_at(async_session, conversation_id)

  message = await MessageService.send_message(conversation_id, "alice", content, async_session)

  assert message is None
  result = await async_session.execute(select(func.count(Message.id)))
  assert result.scalar() == 0
  assert await _last_message_at(async_session, conversation_id) == before


@pytest.mark.asyncio
async def test_send_message_forbidden(async_session, profiles, make_conversation):
  conversation_id = await make_conversation("alice", "bob")

  with pytest.raises(ValueError, match="FORBIDDEN"):
    await MessageService.send_message(conversation_id, "carol", "היי", async_session)


@pytest.mark.asyncio
async def test_send_message_publishes_domain_event(async_session, profiles, make_conversation, mocker):
  conversation_id = await make_conversation("alice", "bob")

  mocker.patch(
    "app.rabbit.manager.RabbitMQManager.is_connected",
    new_callable=mocker.PropertyMock,
    return_value=True,
  )
  mock_publish = mocker.patch(
    "app.services.message_service.rabbit_manager.publish_event",
    new_callable=mocker.AsyncMock,
  )

  message = await MessageService.send_message(conversation_id, "alice", "היי", async_session)

  mock_publish.assert_awaited_once()
  routing_key, payload = mock_publish.await_args.args
  assert routing_key == "message.created"
  assert payload["id"] == message.id


@pytest.mark.asyncio
async def test_send_message_survives_broker_failure(async_session, profiles, make_conversation, mocker):
  conversation_id = await make_conversation("alice", "bob")

  mocker.patch(
    "app.rabbit.manager.RabbitMQManager.is_connected",
    new_callable=mocker.PropertyMock,
    return_value=True,
  )
  mocker.patch(
    "app.services.message_service.rabbit_manager.publish_event",
    new_callable=mocker.AsyncMock,
    side_effect=ConnectionError("broker down"),
  )

  message = await MessageService.send_message(conversation_id, "alice", "היי", async_session)

  assert message is not None


@pytest.mark.asyncio
async def test_thread_ordering(session_factory, profiles, make_conversation):
  conversation_id = await make_conversation("alice", "bob")

  for i in range(6):
    sender = "alice" if i % 2 == 0 else "bob"
    async with session_factory() as db:
      await MessageService.send_message(conversation_id, sender, f"הודעה {i}", db)

  async with session_factory() as db:
    messages = await MessageService.get_thread_messages(conversation_id, db)

  assert [m.content for m in messages] == [f"הודעה {i}" for i in range(6)]
  created = [m.created_at for m in messages]
  assert created == sorted(created)
  assert messages[0].sender_name == "אליס כהן"


@pytest.mark.asyncio
async def test_thread_unknown_sender(async_session, profiles, make_conversation, make_message):
  conversation_id = await make_conversation("alice", "ghost")
  await make_message(conversation_id, "ghost", "בוו")

  [message] = await MessageService.get_thread_messages(conversation_id, async_session)

  assert message.sender_name == UNKNOWN_USER_LABEL


@pytest.mark.asyncio
async def test_open_thread_marks_incoming_read(async_session, profiles, make_conversation, make_message):
  conversation_id = await make_conversation("alice", "bob")
  await make_message(conversation_id, "bob", "1", minutes=1)
  await make_message(conversation_id, "alice", "2", minutes=2)
  await make_message(conversation_id, "bob", "3", minutes=3)

  messages = await MessageService.open_thread(conversation_id, "alice", async_session)

  assert [m.content for m in messages] == ["1", "2", "3"]

  result = await async_session.execute(
    select(Message.content, Message.is_read).order_by(Message.created_at)
  )
  # Свое сообщение остается непрочитанным для собеседника
  assert result.all() == [("1", True), ("2", False), ("3", True)]

  result = await async_session.execute(
    select(ConversationParticipant.last_read_at).where(
      ConversationParticipant.conversation_id == conversation_id,
      ConversationParticipant.user_id == "alice",
    )
  )
  assert result.scalar_one() is not None

  [summary] = await ConversationService.list_conversations("alice", async_session)
  assert summary.unread_count == 0


@pytest.mark.asyncio
async def test_open_thread_forbidden(async_session, profiles, make_conversation):
  conversation_id = await make_conversation("alice", "bob")

  with pytest.raises(ValueError, match="FORBIDDEN"):
    await MessageService.open_thread(conversation_id, "carol", async_session)


@pytest.mark.asyncio
async def test_mark_message_read(async_session, profiles, make_conversation, make_message):
  conversation_id = await make_conversation("alice", "bob")
  message = await make_message(conversation_id, "bob", "היי")

  # Отправитель не может прочитать свое сообщение
  assert await MessageService.mark_message_read(message.id, "bob", async_session) is False
  assert await MessageService.mark_message_read(message.id, "alice", async_session) is True

  result = await async_session.execute(select(Message.is_read).where(Message.id == message.id))
  assert result.scalar_one() is True


@pytest.mark.asyncio
async def test_get_recent_messages(async_session, profiles, make_conversation, make_message):
  with_bob = await make_conversation("alice", "bob")
  with_carol = await make_conversation("alice", "carol")
  not_mine = await make_conversation("bob", "carol")

  await make_message(with_bob, "bob", "1", minutes=1)
  await make_message(with_carol, "carol", "2", minutes=2)
  await make_message(with_bob, "alice", "3", minutes=3)
  await make_message(not_mine, "bob", "secret", minutes=4)
  await make_message(with_carol, "alice", "5", minutes=5)

  recent = await MessageService.get_recent_messages("alice", async_session)

  assert [m.content for m in recent] == ["5", "3", "2"]
  assert await MessageService.get_recent_messages(None, async_session) == []
