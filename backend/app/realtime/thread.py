import bisect
import logging
from typing import Optional

from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError

from app.core.config import UNKNOWN_USER_LABEL
from app.models.message import Message
from app.realtime.base import LiveView
from app.realtime.feed import ChangeEvent, ChangeOp, RowFilter, Subscription
from app.schemas.message import MessageResponse, MessageView
from app.services.message_service import MessageService
from app.services.profile_service import ProfileService


logger = logging.getLogger(__name__)


def _sort_key(message: MessageView):
  return (message.created_at, message.id)


class MessageThread(LiveView):
  """
  Открытая лента одной переписки у одного пользователя
  1. Загрузка ленты + отметка прочтения
  2. Новые сообщения из realtime-шины (без дублей, по порядку времени)
  3. Отправка сообщений
  """

  def __init__(self, conversation_id: str, viewer_id: str, **kwargs):
    super().__init__(**kwargs)
    self.conversation_id = conversation_id
    self.viewer_id = viewer_id
    self.messages: list[MessageView] = []
    self._message_ids: set[str] = set()
    self._sending = False


  def subscribe(self) -> Subscription:
    return self.feed.subscribe(
      Message.__tablename__,
      RowFilter("conversation_id", self.conversation_id),
      ops=[ChangeOp.INSERT],
    )


  def snapshot(self) -> list[MessageView]:
    return list(self.messages)


  async def reload(self):
    """
    Загрузка ленты
    ValueError (не участник) пробрасывается, ошибки БД - оставляем прежнюю ленту
    """

    try:
      async with self.session_factory() as db:
        loaded = await MessageService.open_thread(self.conversation_id, self.viewer_id, db)
    except SQLAlchemyError as e:
      logger.error(f"[MessageThread] Ошибка загрузки ленты {self.conversation_id}: {e}")
      return

    # Живые сообщения, пришедшие во время загрузки, не теряем
    merged = {message.id: message for message in self.messages}
    merged.update({message.id: message for message in loaded})

    self.messages = sorted(merged.values(), key=_sort_key)
    self._message_ids = set(merged)
    await self.notify()


  async def handle_event(self, event: ChangeEvent):
    """Новое сообщение из шины"""

    try:
      row = MessageResponse.model_validate(event.row)
    except ValidationError:
      logger.debug(f"[MessageThread] Некорректная строка сообщения отброшена")
      return

    if row.conversation_id != self.conversation_id or row.id in self._message_ids:
      return

    try:
      async with self.session_factory() as db:
        sender_name = await ProfileService.get_display_name(row.sender_id, db)
    except SQLAlchemyError as e:
      logger.error(f"[MessageThread] Ошибка загрузки имени отправителя {row.sender_id}: {e}")
      sender_name = UNKNOWN_USER_LABEL

    # Пока ждали БД, сообщение могло прийти повторно
    if row.id in self._message_ids:
      return

    message = MessageView(**row.model_dump(), sender_name=sender_name)
    keys = [_sort_key(item) for item in self.messages]
    self.messages.insert(bisect.bisect_right(keys, _sort_key(message)), message)
    self._message_ids.add(message.id)

    await self.notify()

    # Пришло чужое сообщение, пока лента открыта
    if row.sender_id != self.viewer_id:
      await self._mark_read(row.id)


  async def _mark_read(self, message_id: str):
    """Отметка прочтения - мягкое состояние, ошибка не убирает сообщение из ленты"""

    try:
      async with self.session_factory() as db:
        await MessageService.mark_message_read(message_id, self.viewer_id, db)
    except SQLAlchemyError as e:
      logger.error(f"[MessageThread] Ошибка отметки прочтения {message_id}: {e}")


  async def send(self, content: str) -> Optional[Message]:
    """
    Отправка сообщения
    Пустой текст или уже идущая отправка - тихо игнорируем
    Локально не добавляем: сообщение придет из шины. Ошибки пробрасываются
    """

    content = (content or "").strip()
    if not content or self._sending:
      return None

    self._sending = True
    try:
      async with self.session_factory() as db:
        return await MessageService.send_message(
          conversation_id=self.conversation_id,
          sender_id=self.viewer_id,
          content=content,
          db=db,
        )
    finally:
      self._sending = False
