import logging

from sqlalchemy.exc import SQLAlchemyError

from app.models.message import Message
from app.realtime.base import LiveView
from app.realtime.feed import ChangeEvent, Subscription
from app.schemas.conversation import ConversationSummary
from app.services.conversation_service import ConversationService


logger = logging.getLogger(__name__)


class ConversationListView(LiveView):
  """
  Список переписок пользователя
  Любое изменение в messages (без фильтра) - полная перезагрузка списка
  """

  def __init__(self, user_id: str, **kwargs):
    super().__init__(**kwargs)
    self.user_id = user_id
    self.conversations: list[ConversationSummary] = []


  def subscribe(self) -> Subscription:
    return self.feed.subscribe(Message.__tablename__)


  def snapshot(self) -> list[ConversationSummary]:
    return list(self.conversations)


  async def reload(self):
    """При ошибке чтения оставляем предыдущий список"""

    try:
      async with self.session_factory() as db:
        self.conversations = await ConversationService.list_conversations(self.user_id, db)
    except SQLAlchemyError as e:
      logger.error(f"[ConversationListView] Ошибка загрузки переписок {self.user_id}: {e}")
      return

    await self.notify()


  async def handle_event(self, event: ChangeEvent):
    await self.reload()
