from fastapi import WebSocket
from typing import Any, Dict, Set
import logging
import uuid

from app.utils.json_encoder import json_dumps
from app.redis.manager import redis_manager


logger = logging.getLogger(__name__)


class ConnectionManager:
  """
  Менеджер WebSocket-соединений
  Хранит активные соединения по каналу ("thread:<id>", "list:<user>", ...)
  и регистрирует их в Redis для наблюдения за присутствием
  """

  def __init__(self):
    # channel -> set(websocket)
    self.active_connections: Dict[str, Set[WebSocket]] = {}
    self.websocket_ids: Dict[WebSocket, str] = {}


  async def connect(self, websocket: WebSocket, channel: str, user_id: str) -> str:
    """
    Принимает WebSocket и регистрирует его в канале
    """

    # 1. Генерируем уникальный ID для WebSocket
    ws_id = uuid.uuid4().hex[:8]   # Короткий ID
    self.websocket_ids[websocket] = ws_id

    # 2. Локальное хранилище
    await websocket.accept()
    self.active_connections.setdefault(channel, set()).add(websocket)

    # 3. Redis: Сохраняем соединение
    await redis_manager.add_websocket_connection(channel, ws_id, user_id)

    logger.info(f"[connect] Пользователь {user_id} подключился к {channel}, ws_id {ws_id}")
    return ws_id


  async def disconnect(self, websocket: WebSocket, channel: str):
    """
    Отключает WebSocket из канала
    """

    # 1. Удаляем из mapping
    ws_id = self.websocket_ids.pop(websocket, None)

    # 2. Локальное хранилише
    connections = self.active_connections.get(channel)
    if connections is not None:
      connections.discard(websocket)
      if not connections:
        del self.active_connections[channel]

    # 3. Redis: удаляем WebSocket соединение
    if ws_id:
      await redis_manager.remove_websocket_connection(channel, ws_id)

    logger.info(f"[disconnect] Отключение от {channel}, ws_id: {ws_id}")


  def connection_count(self, channel: str) -> int:
    return len(self.active_connections.get(channel, ()))


  async def send_json(self, websocket: WebSocket, data: Any) -> bool:
    """
    Отправляет кадр одному соединению
    Ошибка отправки - соединение мертвое, возвращаем False
    """

    try:
      await websocket.send_text(json_dumps(data))
      return True
    except Exception as e:
      logger.warning(f"[send_json] Ошибка отправки WebSocket {self.websocket_ids.get(websocket)}: {e}")
      return False


manager = ConnectionManager()
