from typing import Iterable, Optional
import logging

from sqlalchemy import select, delete
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import REACTION_EMOJIS
from app.models.message import Message, MessageReaction
from app.schemas.reaction import ReactionCount
from app.services.conversation_service import ConversationService
from app.realtime.feed import ChangeOp, change_feed

logger = logging.getLogger(__name__)


class ReactionService:

  @staticmethod
  async def get_reactions(message_id: str, db: AsyncSession) -> list[MessageReaction]:
    """Все реакции на сообщение в порядке добавления"""

    stmt = (
      select(MessageReaction)
      .where(MessageReaction.message_id == message_id)
      .order_by(MessageReaction.created_at, MessageReaction.id)
    )

    result = await db.execute(stmt)
    return list(result.scalars().all())


  @staticmethod
  def aggregate(
    reactions: Iterable[MessageReaction],
    viewer_id: Optional[str],
  ) -> list[ReactionCount]:
    """
    Группировка по эмодзи: сколько всего и стоит ли реакция у текущего пользователя
    Порядок - по первому появлению эмодзи, клиент не должен на него полагаться
    """

    counts: dict[str, ReactionCount] = {}

    for reaction in reactions:
      summary = counts.get(reaction.emoji)
      if summary is None:
        summary = counts[reaction.emoji] = ReactionCount(emoji=reaction.emoji, count=0)

      summary.count += 1
      if viewer_id is not None and reaction.user_id == viewer_id:
        summary.viewer_has_reacted = True

    return list(counts.values())


  @staticmethod
  async def get_reaction_counts(
    message_id: str,
    viewer_id: Optional[str],
    db: AsyncSession,
  ) -> list[ReactionCount]:
    reactions = await ReactionService.get_reactions(message_id, db)
    return ReactionService.aggregate(reactions, viewer_id)


  @staticmethod
  async def toggle_reaction(
    message_id: str,
    user_id: Optional[str],
    emoji: str,
    db: AsyncSession,
  ) -> Optional[bool]:
    """
    Переключение реакции
    1. DELETE строки (message, user, emoji) - если удалили, реакция снята
    2. Иначе INSERT; нарушение уникальности = реакцию уже поставил параллельный запрос
    Возвращает итоговое состояние (True - реакция стоит), None для анонима
    """

    if not user_id:
      return None

    if emoji not in REACTION_EMOJIS:
      raise ValueError("INVALID_EMOJI")

    message = await db.get(Message, message_id)
    if message is None:
      raise ValueError("MESSAGE_NOT_FOUND")

    await ConversationService.ensure_participant(
      user_id=user_id,
      conversation_id=message.conversation_id,
      db=db,
    )

    row = {"message_id": message_id, "user_id": user_id, "emoji": emoji}

    # 1. Пытаемся снять реакцию
    result = await db.execute(
      delete(MessageReaction).where(
        MessageReaction.message_id == message_id,
        MessageReaction.user_id == user_id,
        MessageReaction.emoji == emoji,
      )
    )

    if result.rowcount:
      await db.commit()
      await change_feed.publish(MessageReaction.__tablename__, ChangeOp.DELETE, row)
      return False

    # 2. Реакции не было - ставим
    reaction = MessageReaction(message_id=message_id, user_id=user_id, emoji=emoji)
    db.add(reaction)

    try:
      await db.commit()
    except IntegrityError:
      await db.rollback()
      logger.info(f"[toggle_reaction] {emoji} на {message_id} от {user_id} уже поставлена параллельно")
      return True

    await change_feed.publish(
      MessageReaction.__tablename__,
      ChangeOp.INSERT,
      {**row, "id": reaction.id, "created_at": reaction.created_at},
    )
    return True
