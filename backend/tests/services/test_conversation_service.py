import pytest

from sqlalchemy import select

from app.core.config import GLOBAL_CONVERSATION_ID, UNKNOWN_USER_LABEL
from app.models.conversation import Conversation, ConversationParticipant
from app.services.conversation_service import ConversationService


@pytest.mark.asyncio
async def test_get_participant_ids(async_session, profiles, make_conversation):
  conversation_id = await make_conversation("alice", "bob")

  member_ids = await ConversationService.get_participant_ids(conversation_id, async_session)

  assert set(member_ids) == {"alice", "bob"}


@pytest.mark.asyncio
async def test_ensure_participant_forbidden(async_session, profiles, make_conversation):
  conversation_id = await make_conversation("alice", "bob")

  await ConversationService.ensure_participant("alice", conversation_id, async_session)
  with pytest.raises(ValueError, match="FORBIDDEN"):
    await ConversationService.ensure_participant("carol", conversation_id, async_session)


# ============ СПИСОК ПЕРЕПИСОК ============
@pytest.mark.asyncio
async def test_list_conversations_unread_and_last_message(async_session, profiles, make_conversation, make_message):
  conversation_id = await make_conversation("alice", "bob")
  await make_message(conversation_id, "bob", "היי", minutes=1)
  await make_message(conversation_id, "bob", "מה נשמע?", minutes=2)
  await make_message(conversation_id, "alice", "הכל טוב", minutes=3)
  await make_message(conversation_id, "bob", "נקרא", minutes=4, is_read=True)

  [summary] = await ConversationService.list_conversations("alice", async_session)

  assert summary.id == conversation_id
  assert summary.other_user.id == "bob"
  assert summary.other_user.full_name == "בוב לוי"
  assert summary.last_message.content == "נקרא"
  # Только чужие и непрочитанные
  assert summary.unread_count == 2

  [for_bob] = await ConversationService.list_conversations("bob", async_session)
  assert for_bob.other_user.avatar_url == "https://cdn.test/alice.png"
  assert for_bob.unread_count == 1


@pytest.mark.asyncio
async def test_list_conversations_order_and_global_excluded(async_session, profiles, make_conversation, make_message):
  with_bob = await make_conversation("alice", "bob")
  with_carol = await make_conversation("alice", "carol")
  await make_conversation("alice", "bob", "carol", conversation_id=GLOBAL_CONVERSATION_ID)

  await make_message(with_bob, "bob", "ישן", minutes=1)
  await make_message(with_carol, "carol", "חדש", minutes=5)
  await make_message(GLOBAL_CONVERSATION_ID, "bob", "לכולם", minutes=10)

  summaries = await ConversationService.list_conversations("alice", async_session)

  assert [s.id for s in summaries] == [with_carol, with_bob]
  assert summaries[0].last_message_at > summaries[1].last_message_at


@pytest.mark.asyncio
async def test_list_conversations_unknown_profile(async_session, profiles, make_conversation):
  conversation_id = await make_conversation("alice", "deleted-user")

  [summary] = await ConversationService.list_conversations("alice", async_session)

  assert summary.id == conversation_id
  assert summary.other_user.full_name == UNKNOWN_USER_LABEL
  assert summary.last_message is None
  assert summary.unread_count == 0


@pytest.mark.asyncio
async def test_list_conversations_without_user(async_session):
  assert await ConversationService.list_conversations(None, async_session) == []
  assert await ConversationService.get_unread_total(None, async_session) == 0


@pytest.mark.asyncio
async def test_get_unread_total(async_session, profiles, make_conversation, make_message):
  with_bob = await make_conversation("alice", "bob")
  with_carol = await make_conversation("alice", "carol")
  await make_message(with_bob, "bob", "1")
  await make_message(with_carol, "carol", "2")
  await make_message(with_carol, "alice", "3")

  assert await ConversationService.get_unread_total("alice", async_session) == 2
  assert await ConversationService.get_unread_total("carol", async_session) == 1


# ============ НОВАЯ ПЕРЕПИСКА ============
@pytest.mark.asyncio
async def test_resolve_creates_conversation_once(async_session, profiles):
  first = await ConversationService.resolve_private_conversation("alice", "bob", async_session)
  second = await ConversationService.resolve_private_conversation("alice", "bob", async_session)
  reverse = await ConversationService.resolve_private_conversation("bob", "alice", async_session)

  assert first == second == reverse

  member_ids = await ConversationService.get_participant_ids(first, async_session)
  assert set(member_ids) == {"alice", "bob"}

  result = await async_session.execute(select(Conversation.pair_key).where(Conversation.id == first))
  assert result.scalar_one() == "alice:bob"


@pytest.mark.asyncio
async def test_resolve_finds_conversation_without_pair_key(async_session, profiles, make_conversation):
  legacy_id = await make_conversation("alice", "bob")

  resolved = await ConversationService.resolve_private_conversation("bob", "alice", async_session)

  assert resolved == legacy_id


@pytest.mark.asyncio
async def test_resolve_ignores_global_conversation(async_session, profiles, make_conversation):
  await make_conversation("alice", "bob", conversation_id=GLOBAL_CONVERSATION_ID)

  resolved = await ConversationService.resolve_private_conversation("alice", "bob", async_session)

  assert resolved != GLOBAL_CONVERSATION_ID


@pytest.mark.asyncio
async def test_resolve_self_conversation(async_session, profiles):
  with pytest.raises(ValueError, match="SELF_CONVERSATION"):
    await ConversationService.resolve_private_conversation("alice", "alice", async_session)


@pytest.mark.asyncio
async def test_resolve_user_not_found(async_session, profiles):
  with pytest.raises(ValueError, match="USER_NOT_FOUND"):
    await ConversationService.resolve_private_conversation("alice", "nobody", async_session)


@pytest.mark.asyncio
async def test_resolve_returns_winner_on_conflict(session_factory, profiles, mocker):
  async with session_factory() as db:
    winner_id = await ConversationService.resolve_private_conversation("alice", "bob", db)

  # Параллельный запрос не увидел переписку при поиске
  mocker.patch(
    "app.services.conversation_service.ConversationService._find_private_conversation",
    return_value=None,
  )

  async with session_factory() as db:
    loser_id = await ConversationService.resolve_private_conversation("bob", "alice", db)

  assert loser_id == winner_id

  async with session_factory() as db:
    result = await db.execute(select(Conversation.id))
    assert result.scalars().all() == [winner_id]


# ============ ОБЩИЙ ЧАТ ============
@pytest.mark.asyncio
async def test_global_conversation_join(async_session, profiles):
  await ConversationService.ensure_global_conversation(async_session)
  await ConversationService.ensure_global_conversation(async_session)

  assert await ConversationService.join_global_conversation("alice", async_session) is True
  assert await ConversationService.join_global_conversation("alice", async_session) is False

  result = await async_session.execute(
    select(ConversationParticipant.user_id).where(
      ConversationParticipant.conversation_id == GLOBAL_CONVERSATION_ID
    )
  )
  assert result.scalars().all() == ["alice"]

  # Общий чат не попадает в список личных переписок
  assert await ConversationService.list_conversations("alice", async_session) == []
