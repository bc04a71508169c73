import logging
from typing import Optional

from fastapi import WebSocket

from app.core.security import decode_user_id

logger = logging.getLogger(__name__)


async def get_current_user_ws(websocket: WebSocket) -> Optional[str]:
  """
  Аутентификация для WebSocket
  Токен берется из query-параметра token или заголовка Authorization
  """

  # 1. Получаем токен
  token = websocket.query_params.get("token")
  if not token:
    authorization = websocket.headers.get("authorization", "")
    scheme, _, credentials = authorization.partition(" ")
    if scheme.lower() == "bearer":
      token = credentials.strip()

  if not token:
    logger.info(f"[ws_auth] Нет токена в подключении {websocket.url.path}")
    return None

  # 2. Декодируем токен
  user_id = decode_user_id(token)
  if user_id is None:
    logger.warning(f"[ws_auth] Невалидный токен в подключении {websocket.url.path}")

  return user_id
