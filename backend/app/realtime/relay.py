import asyncio
import logging
from typing import Optional

from redis.asyncio.client import PubSub
from redis.exceptions import RedisError

from app.core.config import settings
from app.realtime.feed import ChangeEvent, ChangeFeed


logger = logging.getLogger(__name__)


class RedisChangeRelay:
  """
  Пересылка изменений между процессами через Redis Pub/Sub
  Каждая таблица - свой канал "<prefix>:<table>", слушаем все по шаблону
  """

  def __init__(self, redis_manager, feed: ChangeFeed, prefix: str = settings.REALTIME_CHANNEL_PREFIX):
    self.redis_manager = redis_manager
    self.feed = feed
    self.prefix = prefix
    self.pubsub: Optional[PubSub] = None
    self.active = False
    self._listener: Optional[asyncio.Task] = None


  def channel_for(self, table: str) -> str:
    return f"{self.prefix}:{table}"


  async def start(self) -> bool:
    """Запуск слушателя. Без Redis шина работает только внутри процесса"""

    if self.active:
      return True

    if not self.redis_manager.is_connected:
      logger.warning(f"[RedisChangeRelay] Redis недоступен, realtime только внутри процесса")
      return False

    try:
      self.pubsub = self.redis_manager.pubsub()
      await self.pubsub.psubscribe(f"{self.prefix}:*")
    except RedisError as e:
      logger.error(f"[RedisChangeRelay] Ошибка подписки: {e}")
      return False

    self.feed.relay = self
    self.active = True
    self._listener = asyncio.create_task(self._listen())

    logger.info(f"[RedisChangeRelay] Запущен, шаблон каналов: {self.prefix}:*")
    return True


  async def stop(self):
    """Остановка слушателя"""

    self.active = False

    if self._listener:
      self._listener.cancel()
      try:
        await self._listener
      except asyncio.CancelledError:
        pass
      self._listener = None

    if self.pubsub:
      await self.pubsub.aclose()
      self.pubsub = None

    if self.feed.relay is self:
      self.feed.relay = None

    logger.info("[RedisChangeRelay] Остановлен")


  async def publish(self, event: ChangeEvent) -> None:
    await self.redis_manager.publish(
      self.channel_for(event.table),
      event.model_dump_json(),
    )


  async def _listen(self):
    """Читает сообщения Redis и раздает их локальным подпискам"""

    try:
      async for message in self.pubsub.listen():
        if message.get("type") != "pmessage":
          continue
        self.feed.dispatch_raw(message.get("data") or "")

      # Поток подписки закрылся без ошибки
      logger.warning(f"[RedisChangeRelay] Подписка Redis завершилась, realtime только внутри процесса")
      self.active = False

    except asyncio.CancelledError:
      raise
    except RedisError as e:
      # Дальше публикуем локально, чтобы не терять события этого процесса
      logger.error(f"[RedisChangeRelay] Соединение с Redis потеряно: {e}")
      self.active = False
