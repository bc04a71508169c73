import logging
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError

from app.models.message import MessageReaction
from app.realtime.base import LiveView
from app.realtime.feed import ChangeEvent, RowFilter, Subscription
from app.schemas.reaction import ReactionCount
from app.services.reaction_service import ReactionService


logger = logging.getLogger(__name__)


class ReactionView(LiveView):
  """
  Реакции под одним сообщением
  Любое изменение (INSERT/UPDATE/DELETE) по message_id - полная перезагрузка
  """

  def __init__(self, message_id: str, viewer_id: Optional[str], **kwargs):
    super().__init__(**kwargs)
    self.message_id = message_id
    self.viewer_id = viewer_id
    self.counts: list[ReactionCount] = []


  def subscribe(self) -> Subscription:
    return self.feed.subscribe(
      MessageReaction.__tablename__,
      RowFilter("message_id", self.message_id),
    )


  def snapshot(self) -> list[ReactionCount]:
    return list(self.counts)


  async def reload(self):
    try:
      async with self.session_factory() as db:
        self.counts = await ReactionService.get_reaction_counts(self.message_id, self.viewer_id, db)
    except SQLAlchemyError as e:
      logger.error(f"[ReactionView] Ошибка загрузки реакций {self.message_id}: {e}")
      return

    await self.notify()


  async def handle_event(self, event: ChangeEvent):
    await self.reload()


  async def toggle(self, emoji: str) -> Optional[bool]:
    """Без пользователя - ничего не делаем"""

    if not self.viewer_id:
      return None

    async with self.session_factory() as db:
      return await ReactionService.toggle_reaction(self.message_id, self.viewer_id, emoji, db)
