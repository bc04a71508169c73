from app.rabbit.manager import rabbit_manager
from app.rabbit.consumers.message_created import UnreadNotificationConsumer


async def start_consumers():
  """Запускает потребителя событий message.created для уведомлений о непрочитанных"""

  await rabbit_manager.consume(         # Запускает потребителя сообщений
    queue_name="message.created.unread",  # Имя очереди
    routing_key="message.created",      # Ключ маршрутизации
    handler=UnreadNotificationConsumer().handle,    # Функция-обработчик каждого сообщения
  )
