from datetime import datetime, timedelta, timezone
from typing import Optional

from jose import JWTError, jwt
from app.core.config import settings


def create_access_token(user_id: str, expires_delta: timedelta | None = None) -> str:
  """
  Создание access-токена
  В продакшене токены выдает сервис авторизации платформы, здесь - для тестов и скриптов
  """

  # 1. Вычисляем время жизни access-токена
  expire = datetime.now(timezone.utc) + (expires_delta or timedelta(hours=1))

  # 2. Payload: sub - ID пользователя
  to_encode = {
    "sub": str(user_id),
    "exp": expire,
  }

  # 3. Возвращаем закодированный JSON Web Token
  return jwt.encode(
    to_encode,
    settings.SECRET_KEY,
    algorithm=settings.ALGORITHM,
  )


def decode_user_id(token: str) -> Optional[str]:
  """
  Достает ID пользователя из access-токена
  Невалидный или просроченный токен - None
  """

  try:
    payload = jwt.decode(
      token,
      settings.SECRET_KEY,
      algorithms=[settings.ALGORITHM],
      options={"verify_aud": False},
    )
  except JWTError:
    return None

  user_id = payload.get("sub")
  if not user_id:
    return None
  return str(user_id)
