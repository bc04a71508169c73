from redis.asyncio import Redis
from redis.asyncio.client import PubSub
from redis.exceptions import RedisError
import json
import logging

from app.core.config import settings


logger = logging.getLogger(__name__)


class RedisManager:
  """
  Менеджер для асинхронной работы с Redis
  1. Кэш профилей
  2. Реестр WebSocket-соединений
  3. Pub/Sub для realtime-событий
  """

  def __init__(self, url: str = settings.REDIS_URL):
    """
    Инициализация клиента
    Соединение открывается лениво, при первой команде
    """

    self.redis = Redis.from_url(
      url,
      decode_responses=True,      # Автоматически декодируем bytes -> str
      socket_keepalive=True,      # Поддержание соединения
    )
    self.is_connected = False
    logger.info(f"RedisManager инициализирован: {url}")


  async def connect(self) -> bool:
    """
    Проверка подключения к Redis
    """

    try:
      # Отправляем PING и ждем PONG
      self.is_connected = bool(await self.redis.ping())
      if self.is_connected:
        logger.info(f"[connect] Redis подключен")

    except (RedisError, OSError) as e:
      logger.error(f"[connect] Ошибка при подключении к Redis: {e}")
      self.is_connected = False

    return self.is_connected


  async def close(self):
    """Закрытие клиента при остановке приложения"""

    self.is_connected = False
    await self.redis.aclose()
    logger.info(f"[close] Redis отключен")


  # ============ ПРОФИЛЬ ПОЛЬЗОВАТЕЛЯ ============
  async def cache_user_profile(self, user_id: str, profile_data: dict, ttl: int = settings.PROFILE_CACHE_TTL):
    """
    Кэшируем публичный профиль (имя, аватар)
    ttl = Time To Live (время жизни кэша в секундах)
    """

    if not self.is_connected:
      return

    cache_key = f"user:profile:{user_id}"
    try:
      await self.redis.setex(
        cache_key,
        ttl,
        json.dumps(profile_data, ensure_ascii=False)
      )
      logger.debug(f"[cache_user_profile] Профиль user: {user_id} закэширован на {ttl} секунд")

    except RedisError as e:
      logger.error(f"[cache_user_profile] Ошибка кэширования профиля: {e}")


  async def get_cached_user_profile(self, user_id: str) -> dict | None:
    """Получить профиль пользователя из кэша"""

    if not self.is_connected:
      return None

    cache_key = f"user:profile:{user_id}"
    try:
      cached = await self.redis.get(cache_key)
      if cached:
        return json.loads(cached)

    except (RedisError, ValueError) as e:
      logger.error(f"[get_cached_user_profile] Ошибка получения кэша профиля: {e}")
    return None


  # ============ СОЕДИНЕНИЯ WEB SOCKET ============
  async def add_websocket_connection(self, channel: str, websocket_id: str, user_id: str):
    """
    Регистрирует WebSocket соединение
    Используется в ConnectionManager
    """

    if not self.is_connected:
      return

    try:
      # 1. Channel -> WebSocket
      await self.redis.sadd(f"ws:channel:{channel}", websocket_id)

      # 2. WebSocket -> User
      await self.redis.setex(f"ws:{websocket_id}", 300, user_id)

      logger.info(f"[add_connection] Добавлено WebSocket соединение: {websocket_id} для пользователя user: {user_id}")

    except RedisError as e:
      logger.error(f"[add_connection] Ошибка добавления WebSocket соединения: {e}")


  async def remove_websocket_connection(self, channel: str, websocket_id: str):
    """
    Удаляет WebSocket соединение
    """

    if not self.is_connected:
      return

    try:
      # 1. Удаляем WebSocket -> User
      await self.redis.delete(f"ws:{websocket_id}")

      # 2. Удаляем из канала
      await self.redis.srem(f"ws:channel:{channel}", websocket_id)

      logger.info(f"[remove_websocket_connection] WebSocket {websocket_id} удален")

    except RedisError as e:
      logger.error(f"[remove_websocket_connection] Ошибка: {e}")


  # ============ PUB/SUB ============
  async def publish(self, channel: str, payload: str) -> int:
    """
    Публикация строки в канал
    Возвращает количество получателей, ошибки пробрасываются вызывающему
    """

    return await self.redis.publish(channel, payload)


  def pubsub(self) -> PubSub:
    return self.redis.pubsub(ignore_subscribe_messages=True)


redis_manager = RedisManager()
