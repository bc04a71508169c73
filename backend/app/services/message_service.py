from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy import select, update

from app.core.config import UNKNOWN_USER_LABEL, settings
from app.models.conversation import Conversation, ConversationParticipant
from app.models.message import Message
from app.models.profile import Profile
from app.schemas.message import MessageResponse, MessageView
from app.services.conversation_service import ConversationService
from app.realtime.feed import ChangeOp, change_feed
from app.rabbit.manager import rabbit_manager
import logging

logger = logging.getLogger(__name__)


class MessageService:

  @staticmethod
  async def get_thread_messages(
    conversation_id: str,
    db: AsyncSession,
  ) -> list[MessageView]:
    """
    Вся лента переписки по возрастанию времени, с именем отправителя
    Пустая переписка - пустой список
    """

    stmt = (
      select(Message, Profile.full_name)
      .outerjoin(Profile, Profile.id == Message.sender_id)
      .where(Message.conversation_id == conversation_id)
      .order_by(Message.created_at.asc(), Message.id.asc())
    )

    result = await db.execute(stmt)
    return [
      MessageView(
        **MessageResponse.model_validate(message).model_dump(),
        sender_name=full_name or UNKNOWN_USER_LABEL,
      )
      for message, full_name in result.all()
    ]


  @staticmethod
  async def mark_conversation_read(
    conversation_id: str,
    reader_id: str,
    db: AsyncSession,
  ) -> int:
    """
    Отмечает прочитанными все чужие непрочитанные сообщения переписки одним запросом
    Возвращает количество обновленных записей
    """

    result = await db.execute(
      update(Message)
      .where(
        Message.conversation_id == conversation_id,
        Message.sender_id != reader_id,
        Message.is_read.is_(False),
      )
      .values(is_read=True)
    )
    await db.commit()

    updated = result.rowcount
    if updated:
      await change_feed.publish(
        Message.__tablename__,
        ChangeOp.UPDATE,
        {
          "conversation_id": conversation_id,
          "reader_id": reader_id,
          "updated": updated,
        },
      )

    return updated


  @staticmethod
  async def mark_message_read(
    message_id: str,
    reader_id: str,
    db: AsyncSession,
  ) -> bool:
    """Отмечает прочитанным одно сообщение (пришло, пока переписка открыта)"""

    message = await db.get(Message, message_id)
    if message is None or message.sender_id == reader_id or message.is_read:
      return False

    result = await db.execute(
      update(Message)
      .where(
        Message.id == message_id,
        Message.sender_id != reader_id,
        Message.is_read.is_(False),
      )
      .values(is_read=True)
    )
    await db.commit()

    if not result.rowcount:
      return False

    await change_feed.publish(
      Message.__tablename__,
      ChangeOp.UPDATE,
      {
        "id": message_id,
        "conversation_id": message.conversation_id,
        "is_read": True,
      },
    )
    return True


  @staticmethod
  async def open_thread(
    conversation_id: str,
    viewer_id: str,
    db: AsyncSession,
  ) -> list[MessageView]:
    """
    Открытие переписки:
    1. Загрузка ленты
    2. Чужие сообщения -> прочитаны
    3. last_read_at участника -> сейчас
    Шаги 2 и 3 независимы, их ошибки не мешают показать ленту
    """

    await ConversationService.ensure_participant(
      user_id=viewer_id,
      conversation_id=conversation_id,
      db=db,
    )

    messages = await MessageService.get_thread_messages(conversation_id, db)

    try:
      await MessageService.mark_conversation_read(conversation_id, viewer_id, db)
    except SQLAlchemyError as e:
      await db.rollback()
      logger.error(f"[open_thread] Ошибка отметки прочтения в {conversation_id}: {e}")

    try:
      await ConversationService.touch_last_read(conversation_id, viewer_id, db)
    except SQLAlchemyError as e:
      await db.rollback()
      logger.error(f"[open_thread] Ошибка обновления last_read_at в {conversation_id}: {e}")

    return messages


  @staticmethod
  async def send_message(
    conversation_id: str,
    sender_id: str,
    content: str,
    db: AsyncSession,
  ) -> Optional[Message]:
    """
    Отправка сообщения
    Пустой текст (после strip) - ничего не делаем и возвращаем None
    Ошибки БД пробрасываются вызывающему
    """

    content = (content or "").strip()
    if not content:
      return None

    await ConversationService.ensure_participant(
      user_id=sender_id,
      conversation_id=conversation_id,
      db=db,
    )

    try:
      message = Message(
        conversation_id=conversation_id,
        sender_id=sender_id,
        content=content,
        is_read=False,
      )
      db.add(message)
      await db.flush()

      await db.execute(
        update(Conversation)
        .where(Conversation.id == conversation_id)
        .values(last_message_at=message.created_at)
      )

      await db.commit()

    except SQLAlchemyError as e:
      await db.rollback()
      logger.error(f"[send_message] Ошибка создания сообщения в {conversation_id}: {e}")
      raise

    row = MessageResponse.model_validate(message).model_dump(mode="json")

    await change_feed.publish(Message.__tablename__, ChangeOp.INSERT, row)
    await MessageService._publish_message_created(row)

    return message


  @staticmethod
  async def _publish_message_created(row: dict):
    """Доменное событие для уведомлений. Без RabbitMQ отправка не ломается"""

    if not rabbit_manager.is_connected:
      logger.debug(f"[send_message] RabbitMQ не подключен, message.created пропущено")
      return

    try:
      await rabbit_manager.publish_event("message.created", row)
    except Exception as e:
      logger.error(f"[send_message] Ошибка публикации message.created: {e}")


  @staticmethod
  async def get_recent_messages(
    user_id: Optional[str],
    db: AsyncSession,
    limit: int = settings.RECENT_MESSAGES_LIMIT,
  ) -> list[MessageView]:
    """Последние сообщения во всех переписках пользователя (виджет чата)"""

    if not user_id:
      return []

    stmt = (
      select(Message, Profile.full_name)
      .outerjoin(Profile, Profile.id == Message.sender_id)
      .where(
        Message.conversation_id.in_(
          select(ConversationParticipant.conversation_id)
          .where(ConversationParticipant.user_id == user_id)
        )
      )
      .order_by(Message.created_at.desc(), Message.id.desc())
      .limit(limit)
    )

    result = await db.execute(stmt)
    return [
      MessageView(
        **MessageResponse.model_validate(message).model_dump(),
        sender_name=full_name or UNKNOWN_USER_LABEL,
      )
      for message, full_name in result.all()
    ]
