import logging
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError

from app.rabbit.consumers.message_created import NOTIFICATIONS_TABLE
from app.realtime.base import LiveView
from app.realtime.feed import ChangeEvent, RowFilter, Subscription
from app.services.conversation_service import ConversationService


logger = logging.getLogger(__name__)


class NotificationView(LiveView):
  """
  Счетчик непрочитанных пользователя (значок плавающего чата)
  Начальное значение из БД, дальше - уведомления из шины
  """

  def __init__(self, user_id: str, **kwargs):
    super().__init__(**kwargs)
    self.user_id = user_id
    self.unread_count = 0
    self.conversation_id: Optional[str] = None


  def subscribe(self) -> Subscription:
    return self.feed.subscribe(NOTIFICATIONS_TABLE, RowFilter("user_id", self.user_id))


  def snapshot(self) -> dict:
    return {
      "unread_count": self.unread_count,
      "conversation_id": self.conversation_id,
    }


  async def reload(self):
    try:
      async with self.session_factory() as db:
        self.unread_count = await ConversationService.get_unread_total(self.user_id, db)
    except SQLAlchemyError as e:
      logger.error(f"[NotificationView] Ошибка подсчета непрочитанных {self.user_id}: {e}")
      return

    await self.notify()


  async def handle_event(self, event: ChangeEvent):
    unread_count = event.row.get("unread_count")
    if not isinstance(unread_count, int):
      logger.debug(f"[NotificationView] Уведомление без unread_count отброшено")
      return

    self.unread_count = unread_count
    self.conversation_id = event.row.get("conversation_id")
    await self.notify()
