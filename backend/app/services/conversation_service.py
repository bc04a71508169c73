from typing import Optional
import logging

from sqlalchemy import select, update, exists, func, and_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased

from app.core.config import GLOBAL_CONVERSATION_ID, UNKNOWN_USER_LABEL
from app.models.base import utcnow
from app.models.conversation import Conversation, ConversationParticipant, make_pair_key
from app.models.message import Message
from app.models.profile import Profile
from app.schemas.conversation import ConversationSummary, LastMessage
from app.schemas.profile import ProfileResponse

logger = logging.getLogger(__name__)


class ConversationService:

  @staticmethod
  async def get_participant_ids(conversation_id: str, db: AsyncSession) -> list[str]:
    """Возвращает список ID пользователей - участников переписки"""

    stmt = select(ConversationParticipant.user_id).where(
      ConversationParticipant.conversation_id == conversation_id
    )

    result = await db.execute(stmt)
    return list(result.scalars().all())


  @staticmethod
  async def is_participant(
    user_id: str,
    conversation_id: str,
    db: AsyncSession,
  ) -> bool:
    """Проверка, является ли пользователь участником переписки"""

    stmt = select(
      exists().where(
        ConversationParticipant.user_id == user_id,
        ConversationParticipant.conversation_id == conversation_id,
      )
    )

    result = await db.execute(stmt)
    return bool(result.scalar())


  @staticmethod
  async def ensure_participant(
    user_id: str,
    conversation_id: str,
    db: AsyncSession,
  ) -> None:
    """Состоит ли пользователь в переписке"""

    if not await ConversationService.is_participant(user_id, conversation_id, db):
      raise ValueError("FORBIDDEN")


  # ============ СПИСОК ПЕРЕПИСОК ============
  @staticmethod
  async def list_conversations(user_id: Optional[str], db: AsyncSession) -> list[ConversationSummary]:
    """
    Личные переписки пользователя одним запросом:
    1. Собеседник и его профиль
    2. Последнее сообщение (row_number по переписке)
    3. Количество непрочитанных (чужие сообщения с is_read = false)
    Общий чат исключается, сортировка по last_message_at по убыванию
    """

    if not user_id:
      return []

    me = aliased(ConversationParticipant)
    other = aliased(ConversationParticipant)

    my_conversations = select(ConversationParticipant.conversation_id).where(
      ConversationParticipant.user_id == user_id
    )

    ranked = (
      select(
        Message.conversation_id.label("conversation_id"),
        Message.content.label("content"),
        Message.created_at.label("created_at"),
        func.row_number().over(
          partition_by=Message.conversation_id,
          order_by=(Message.created_at.desc(), Message.id.desc()),
        ).label("rn"),
      )
      .where(Message.conversation_id.in_(my_conversations))
      .subquery("ranked")
    )

    unread = (
      select(
        Message.conversation_id.label("conversation_id"),
        func.count(Message.id).label("unread_count"),
      )
      .where(
        Message.conversation_id.in_(my_conversations),
        Message.is_read.is_(False),
        Message.sender_id != user_id,
      )
      .group_by(Message.conversation_id)
      .subquery("unread")
    )

    stmt = (
      select(
        Conversation.id,
        Conversation.last_message_at,
        other.user_id.label("other_user_id"),
        Profile.full_name,
        Profile.avatar_url,
        ranked.c.content,
        ranked.c.created_at,
        func.coalesce(unread.c.unread_count, 0).label("unread_count"),
      )
      .join(me, and_(me.conversation_id == Conversation.id, me.user_id == user_id))
      .outerjoin(other, and_(other.conversation_id == Conversation.id, other.user_id != user_id))
      .outerjoin(Profile, Profile.id == other.user_id)
      .outerjoin(ranked, and_(ranked.c.conversation_id == Conversation.id, ranked.c.rn == 1))
      .outerjoin(unread, unread.c.conversation_id == Conversation.id)
      .where(Conversation.id != GLOBAL_CONVERSATION_ID)
      .order_by(Conversation.last_message_at.desc().nulls_last(), Conversation.id)
    )

    result = await db.execute(stmt)

    summaries: list[ConversationSummary] = []
    seen: set[str] = set()

    for row in result.all():
      # Лишние участники (если их больше двух) дают дубли строк
      if row.id in seen:
        continue
      seen.add(row.id)

      last_message = None
      if row.content is not None:
        last_message = LastMessage(content=row.content, created_at=row.created_at)

      summaries.append(
        ConversationSummary(
          id=row.id,
          last_message_at=row.last_message_at,
          other_user=ProfileResponse(
            id=row.other_user_id or "",
            full_name=row.full_name or UNKNOWN_USER_LABEL,
            avatar_url=row.avatar_url,
          ),
          last_message=last_message,
          unread_count=row.unread_count,
        )
      )

    return summaries


  @staticmethod
  async def get_unread_total(user_id: Optional[str], db: AsyncSession) -> int:
    """Непрочитанные сообщения во всех переписках пользователя (значок в виджете чата)"""

    if not user_id:
      return 0

    stmt = select(func.count(Message.id)).where(
      Message.conversation_id.in_(
        select(ConversationParticipant.conversation_id)
        .where(ConversationParticipant.user_id == user_id)
      ),
      Message.is_read.is_(False),
      Message.sender_id != user_id,
    )

    result = await db.execute(stmt)
    return result.scalar() or 0


  @staticmethod
  async def touch_last_read(conversation_id: str, user_id: str, db: AsyncSession) -> int:
    """Обновляет last_read_at участника (пользователь открыл переписку)"""

    result = await db.execute(
      update(ConversationParticipant)
      .where(
        ConversationParticipant.conversation_id == conversation_id,
        ConversationParticipant.user_id == user_id,
      )
      .values(last_read_at=utcnow())
    )
    await db.commit()

    return result.rowcount


  # ============ НОВАЯ ПЕРЕПИСКА ============
  @staticmethod
  async def resolve_private_conversation(
    user_id: str,
    other_user_id: str,
    db: AsyncSession,
  ) -> str:
    """
    Найти существующую личную переписку или создать новую
    Возвращает ID переписки
    """

    if user_id == other_user_id:
      raise ValueError("SELF_CONVERSATION")

    if await db.get(Profile, other_user_id) is None:
      raise ValueError("USER_NOT_FOUND")

    existing_id = await ConversationService._find_private_conversation(user_id, other_user_id, db)
    if existing_id:
      return existing_id

    return await ConversationService._create_private_conversation(user_id, other_user_id, db)


  @staticmethod
  async def _find_private_conversation(
    user_id: str,
    other_user_id: str,
    db: AsyncSession,
  ) -> Optional[str]:
    """
    Поиск существующей личной переписки
    1. По ключу пары
    2. По таблице участников (записи без pair_key), одним запросом
    """

    result = await db.execute(
      select(Conversation.id).where(
        Conversation.pair_key == make_pair_key(user_id, other_user_id)
      )
    )
    conversation_id = result.scalar_one_or_none()
    if conversation_id:
      return conversation_id

    me = aliased(ConversationParticipant)
    other = aliased(ConversationParticipant)

    stmt = (
      select(me.conversation_id)
      .join(
        other,
        and_(
          other.conversation_id == me.conversation_id,
          other.user_id == other_user_id,
        ),
      )
      .where(
        me.user_id == user_id,
        me.conversation_id != GLOBAL_CONVERSATION_ID,
      )
      .order_by(me.joined_at)
      .limit(1)
    )
    result = await db.execute(stmt)
    return result.scalar_one_or_none()


  @staticmethod
  async def _create_private_conversation(
    user_id: str,
    other_user_id: str,
    db: AsyncSession,
  ) -> str:
    """
    Создание новой личной переписки с двумя участниками в одной транзакции
    Уникальный pair_key закрывает гонку: проигравший получает ID победителя
    """

    pair_key = make_pair_key(user_id, other_user_id)

    try:
      # Создаем переписку
      conversation = Conversation(pair_key=pair_key)
      db.add(conversation)
      await db.flush()      # Получаем ID

      # Добавляем участников
      db.add_all([
        ConversationParticipant(conversation_id=conversation.id, user_id=user_id),
        ConversationParticipant(conversation_id=conversation.id, user_id=other_user_id),
      ])

      await db.commit()

    except IntegrityError:
      await db.rollback()

      result = await db.execute(
        select(Conversation.id).where(Conversation.pair_key == pair_key)
      )
      winner_id = result.scalar_one_or_none()
      if winner_id:
        logger.info(f"[create_private_conversation] Переписка {pair_key} уже создана параллельно: {winner_id}")
        return winner_id
      raise

    logger.info(f"[create_private_conversation] Создана переписка {conversation.id} для {pair_key}")
    return conversation.id


  # ============ ОБЩИЙ ЧАТ ============
  @staticmethod
  async def ensure_global_conversation(db: AsyncSession) -> None:
    """Создает зарезервированную строку общего чата, если ее нет"""

    if await db.get(Conversation, GLOBAL_CONVERSATION_ID) is not None:
      return

    db.add(Conversation(id=GLOBAL_CONVERSATION_ID, pair_key=None))
    try:
      await db.commit()
      logger.info(f"[ensure_global_conversation] Общий чат создан")
    except IntegrityError:
      await db.rollback()


  @staticmethod
  async def join_global_conversation(user_id: str, db: AsyncSession) -> bool:
    """
    Добавляет пользователя в общий чат
    Возвращает True, если пользователь добавлен впервые
    """

    if await ConversationService.is_participant(user_id, GLOBAL_CONVERSATION_ID, db):
      return False

    db.add(ConversationParticipant(conversation_id=GLOBAL_CONVERSATION_ID, user_id=user_id))
    try:
      await db.commit()
      return True

    except IntegrityError:
      # Уже добавлен параллельным запросом
      await db.rollback()
      return False
