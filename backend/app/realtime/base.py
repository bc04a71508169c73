import logging
from typing import Any, Awaitable, Callable, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.database import AsyncSessionLocal
from app.realtime.feed import ChangeEvent, ChangeFeed, Subscription, change_feed


logger = logging.getLogger(__name__)


OnChange = Callable[[Any], Awaitable[None]]


class LiveView:
  """
  Основа realtime-представлений (лента, список переписок, реакции)
  open() подписывается и загружает данные, run() обрабатывает события,
  close() освобождает подписку. Владелец обязан вызвать close()
  """

  def __init__(
    self,
    session_factory: async_sessionmaker[AsyncSession] = AsyncSessionLocal,
    feed: ChangeFeed = change_feed,
    on_change: Optional[OnChange] = None,
  ):
    self.session_factory = session_factory
    self.feed = feed
    self.on_change = on_change
    self.subscription: Optional[Subscription] = None


  def subscribe(self) -> Subscription:
    raise NotImplementedError

  async def reload(self) -> None:
    raise NotImplementedError

  async def handle_event(self, event: ChangeEvent) -> None:
    raise NotImplementedError

  def snapshot(self) -> Any:
    raise NotImplementedError


  async def open(self):
    # Сначала подписка, потом загрузка: событие между ними не потеряется
    self.subscription = self.subscribe()
    await self.reload()
    return self


  async def run(self):
    """Обрабатывает события, пока подписка не закрыта"""

    if self.subscription is None:
      raise RuntimeError(f"{type(self).__name__} не открыт")

    async for event in self.subscription:
      await self.handle_event(event)


  async def close(self):
    if self.subscription is not None:
      self.subscription.close()


  async def notify(self):
    if self.on_change is not None:
      await self.on_change(self.snapshot())


  async def __aenter__(self):
    return await self.open()

  async def __aexit__(self, exc_type, exc, tb):
    await self.close()
