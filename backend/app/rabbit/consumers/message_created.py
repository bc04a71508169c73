import logging

from app.database import get_db_session
from app.realtime.feed import ChangeOp, change_feed
from app.services.conversation_service import ConversationService

logger = logging.getLogger(__name__)


NOTIFICATIONS_TABLE = "user_notifications"


class UnreadNotificationConsumer:
  """
  Обработчик события 'сообщение создано'
  Считает непрочитанные у каждого получателя и публикует уведомление в realtime-шину
  """

  def __init__(self, session_factory=get_db_session, feed=change_feed):
    self.session_factory = session_factory
    self.feed = feed


  async def handle(self, payload: dict):
    """
    Обрабатывает событие message.created
    """

    conversation_id = payload.get("conversation_id")
    sender_id = payload.get("sender_id")

    if not conversation_id or not sender_id:
      logger.warning(f"[UnreadNotificationConsumer] Событие без conversation_id/sender_id отброшено")
      return

    # 1. Получаем получателей и их счетчики
    notifications = []
    async with self.session_factory() as db:
      user_ids = await ConversationService.get_participant_ids(conversation_id, db)

      for user_id in user_ids:
        if user_id == sender_id:
          continue

        unread_count = await ConversationService.get_unread_total(user_id, db)
        notifications.append({
          "user_id": user_id,
          "conversation_id": conversation_id,
          "message_id": payload.get("id"),
          "unread_count": unread_count,
        })

    # 2. Рассылаем уведомления
    for row in notifications:
      await self.feed.publish(NOTIFICATIONS_TABLE, ChangeOp.INSERT, row)

    logger.debug(f"[UnreadNotificationConsumer] {conversation_id}: уведомлений {len(notifications)}")
