from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer

from app.core.security import decode_user_id


oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/token")
optional_oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/token", auto_error=False)


async def get_current_user_id(token: str = Depends(oauth2_scheme)) -> str:
  """
  Dependency: ID текущего пользователя из JWT
  Токен выдает сервис авторизации платформы
  """

  user_id = decode_user_id(token)

  # Если токен поврежден или просрочен - ошибка
  if user_id is None:
    raise HTTPException(
      status_code=status.HTTP_401_UNAUTHORIZED,
      detail="Невалидный токен",
      headers={"WWW-Authenticate": "Bearer"},
    )

  return user_id


async def get_optional_user_id(token: Optional[str] = Depends(optional_oauth2_scheme)) -> Optional[str]:
  """
  Dependency: ID пользователя, если он авторизован
  Аноним получает None (например, смотрит реакции без возможности их ставить)
  """

  if not token:
    return None
  return decode_user_id(token)
