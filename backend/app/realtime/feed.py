import asyncio
import enum
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Iterable, Optional, Protocol, Set

from pydantic import BaseModel, Field, ValidationError

from app.core.config import settings
from app.models.base import utcnow


logger = logging.getLogger(__name__)


class ChangeOp(str, enum.Enum):
  INSERT = "INSERT"
  UPDATE = "UPDATE"
  DELETE = "DELETE"


class ChangeEvent(BaseModel):
  """Изменение строки таблицы: что за таблица, какая операция и сама строка"""

  table: str
  op: ChangeOp
  row: Dict[str, Any] = Field(default_factory=dict)
  commit_timestamp: datetime = Field(default_factory=utcnow)


@dataclass(frozen=True)
class RowFilter:
  """
  Фильтр подписки по значению колонки
  Поддерживается только равенство: "conversation_id=eq.<id>"
  """

  column: str
  value: str

  @classmethod
  def parse(cls, expression: str) -> "RowFilter":
    column, sep, rest = expression.partition("=")
    operator, dot, value = rest.partition(".")

    if not sep or not dot or not column or not value:
      raise ValueError(f"Неверный фильтр: {expression!r}")
    if operator != "eq":
      raise ValueError(f"Неподдерживаемый оператор фильтра: {operator!r}")

    return cls(column=column.strip(), value=value.strip())

  def matches(self, row: Dict[str, Any]) -> bool:
    if self.column not in row or row[self.column] is None:
      return False
    return str(row[self.column]) == self.value


class ChangeRelay(Protocol):
  """Транспорт между процессами (Redis)"""

  active: bool

  async def publish(self, event: ChangeEvent) -> None: ...


_CLOSED = object()


class Subscription:
  """
  Подписка на изменения одной таблицы
  Асинхронный итератор событий, живет пока владелец не вызовет close()
  """

  def __init__(
    self,
    feed: "ChangeFeed",
    table: str,
    row_filter: Optional[RowFilter] = None,
    ops: Optional[Iterable[ChangeOp]] = None,
    maxsize: int = settings.SUBSCRIPTION_QUEUE_SIZE,
  ):
    self.feed = feed
    self.table = table
    self.row_filter = row_filter
    self.ops = frozenset(ops) if ops else None
    self.closed = False
    self._queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)


  def matches(self, event: ChangeEvent) -> bool:
    if event.table != self.table:
      return False
    if self.ops is not None and event.op not in self.ops:
      return False
    if self.row_filter is not None and not self.row_filter.matches(event.row):
      return False
    return True


  def offer(self, event: ChangeEvent) -> bool:
    """Кладет событие в очередь, если оно подходит под подписку"""

    if self.closed or not self.matches(event):
      return False

    try:
      self._queue.put_nowait(event)
      return True
    except asyncio.QueueFull:
      logger.warning(f"[Subscription] Очередь {self.table} переполнена, событие {event.op.value} пропущено")
      return False


  def close(self):
    """Отписка. Итератор завершится после уже полученных событий"""

    if self.closed:
      return

    self.closed = True
    self.feed.unsubscribe(self)

    # Будим читателя, даже если очередь забита
    while True:
      try:
        self._queue.put_nowait(_CLOSED)
        break
      except asyncio.QueueFull:
        self._queue.get_nowait()


  def __aiter__(self):
    return self

  async def __anext__(self) -> ChangeEvent:
    item = await self._queue.get()
    if item is _CLOSED:
      raise StopAsyncIteration
    return item

  async def __aenter__(self) -> "Subscription":
    return self

  async def __aexit__(self, exc_type, exc, tb):
    self.close()


class ChangeFeed:
  """
  Шина изменений таблиц
  Сервисы публикуют изменения после commit, контроллеры подписываются с фильтром
  """

  def __init__(self):
    self.subscriptions: Set[Subscription] = set()
    self.relay: Optional[ChangeRelay] = None


  def subscribe(
    self,
    table: str,
    row_filter: Optional[RowFilter | str] = None,
    ops: Optional[Iterable[ChangeOp]] = None,
  ) -> Subscription:
    if isinstance(row_filter, str):
      row_filter = RowFilter.parse(row_filter)

    subscription = Subscription(self, table, row_filter, ops)
    self.subscriptions.add(subscription)

    logger.debug(f"[subscribe] {table} filter={row_filter}, подписок: {len(self.subscriptions)}")
    return subscription


  def unsubscribe(self, subscription: Subscription):
    self.subscriptions.discard(subscription)
    logger.debug(f"[unsubscribe] {subscription.table}, подписок: {len(self.subscriptions)}")


  async def publish(self, table: str, op: ChangeOp, row: Dict[str, Any]) -> ChangeEvent:
    """
    Публикация изменения
    Через Redis, если relay активен (тогда событие вернется и в этот процесс),
    иначе сразу локальным подписчикам. Ошибки транспорта не ломают запись
    """

    event = ChangeEvent(table=table, op=op, row=row)

    if self.relay is not None and self.relay.active:
      try:
        await self.relay.publish(event)
        return event
      except Exception as e:
        logger.error(f"[publish] Ошибка публикации в relay, доставляем локально: {e}")

    self.dispatch(event)
    return event


  def dispatch(self, event: ChangeEvent) -> int:
    """Раздает событие локальным подпискам, возвращает число получателей"""

    delivered = 0
    for subscription in list(self.subscriptions):
      if subscription.offer(event):
        delivered += 1
    return delivered


  def dispatch_raw(self, payload: str | bytes) -> int:
    """Событие из внешнего транспорта. Битый payload молча отбрасывается"""

    try:
      event = ChangeEvent.model_validate_json(payload)
    except ValidationError as e:
      logger.debug(f"[dispatch_raw] Некорректное событие отброшено: {e.error_count()} ошибок")
      return 0

    return self.dispatch(event)


# Глобальный экземпляр
change_feed = ChangeFeed()
