import json
import logging
from typing import Optional, Callable, Awaitable

import aio_pika
from aio_pika import ExchangeType
from aio_pika.abc import (
  AbstractRobustConnection,
  AbstractChannel,
  AbstractExchange,
  AbstractIncomingMessage,
)

from app.core.config import settings

logger = logging.getLogger(__name__)


class RabbitMQManager:
  """
  RabbitMQ менеджер
  1. Подключение
  2. Exchange
  3. Публикация и потребление доменных событий
  """

  def __init__(
    self,
    url: str = settings.RABBITMQ_URL,
    exchange_name: str = settings.RABBITMQ_EXCHANGE,
  ):
    """Инициализация: сохраняет настройки, пока ничего не подключается"""

    self.url = url
    self.exchange_name = exchange_name

    self.connection: Optional[AbstractRobustConnection] = None
    self.channel: Optional[AbstractChannel] = None
    self.exchange: Optional[AbstractExchange] = None


  @property
  def is_connected(self) -> bool:
    return self.exchange is not None and self.connection is not None and not self.connection.is_closed


  async def connect(self):
    """Устанавливает соединение + создает канал + объявляет exchange"""

    logger.info("Подключение к RabbitMQ...")

    self.connection = await aio_pika.connect_robust(self.url)       # Надежное подключение, авто-reconnect
    self.channel = await self.connection.channel()                  # Канал для операций

    self.exchange = await self.channel.declare_exchange(            # Создаем/получаем Exchange
      self.exchange_name,
      ExchangeType.TOPIC,                                           # Тип topic - маршрутизация по шаблонам
      durable=True,                                                 # Сохраняется после перезагрузки
    )

    logger.info("RabbitMQ подключен")


  async def close(self):
    """Закрывает соединение при остановке приложения"""

    if self.connection and not self.connection.is_closed:
      await self.connection.close()

    self.connection = None
    self.channel = None
    self.exchange = None
    logger.info("RabbitMQ отключен")


  async def publish_event(
    self,
    routing_key: str,
    payload: dict,
  ):
    """
    Публикация события
    """

    # 1. Проверка, что exchange существует
    if not self.exchange:
      raise RuntimeError("RabbitMQ не подключен")

    # 2. Создает persistent сообщение (сохранится при перезагрузке)
    message = aio_pika.Message(
      body=json.dumps(payload, ensure_ascii=False).encode(),        # Сериализует payload в JSON
      content_type="application/json",
      delivery_mode=aio_pika.DeliveryMode.PERSISTENT,               # Сообщение сохраняется на диск
    )

    # 3. Отправляет по указанному routing_key
    await self.exchange.publish(
      message=message,
      routing_key=routing_key,
    )

    logger.debug(f"Публикация события: {routing_key}")


  async def consume(
    self,
    queue_name: str,
    routing_key: str,
    handler: Callable[[dict], Awaitable[None]],
  ):
    """Обработка сообщений из очереди"""

    # 1. Проверка подключения
    if not self.channel or not self.exchange:
      raise RuntimeError("RabbitMQ не подключен")

    # 2. Создает/получает очередь
    queue = await self.channel.declare_queue(
      queue_name,
      durable=True,
    )

    # 3. Привязывает очередь к exchange по ключу
    await queue.bind(self.exchange, routing_key)

    # 4. Внутренняя функция-обработчик
    async def on_message(message: AbstractIncomingMessage):
      # Подтверждает обработку, битые сообщения не возвращаются в очередь
      async with message.process(requeue=False):
        try:
          payload = json.loads(message.body.decode())
        except ValueError:
          logger.warning(f"[consume] {queue_name}: некорректный JSON, сообщение отброшено")
          return

        # Вызывает переданный обработчик
        await handler(payload)

    # 5. Запускает потребление
    await queue.consume(on_message)
    logger.info(f"[consume] Очередь {queue_name} слушает {routing_key}")


# Глобальный инстанс
rabbit_manager = RabbitMQManager()
