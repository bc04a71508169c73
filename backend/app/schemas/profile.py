from pydantic import BaseModel, ConfigDict
from typing import Optional


class ProfileResponse(BaseModel):
  """Публичные данные пользователя (имя и аватар)"""

  id: str
  full_name: str
  avatar_url: Optional[str] = None

  model_config = ConfigDict(from_attributes=True)
